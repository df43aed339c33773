"""Exercise configuration loaded from a JSON file and ``CROSSTALK_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import orjson

from .core.schemas import DEFAULT_TIMER_DURATION

DEFAULT_CONFIG_PATH = Path("config/crosstalk.json")
ENV_PREFIX = "CROSSTALK_"

_TRUE = {"1", "true", "yes", "on"}


@dataclass
class ExerciseConfig:
    """Runtime settings for sessions and the services that host them."""

    timer_duration: int = DEFAULT_TIMER_DURATION
    enforce_deadline: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    host: str = "127.0.0.1"
    port: int = 8000

    def __post_init__(self) -> None:
        if self.timer_duration <= 0:
            raise ValueError("timer_duration must be a positive number of seconds")


def _coerce(name: str, raw: Any, default: Any) -> Any:
    if isinstance(default, bool):
        return raw if isinstance(raw, bool) else str(raw).strip().lower() in _TRUE
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, list):
        if isinstance(raw, list):
            return [str(item) for item in raw]
        return [item.strip() for item in str(raw).split(",") if item.strip()]
    return str(raw)


def load_config(
    path: Optional[Path] = DEFAULT_CONFIG_PATH,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> ExerciseConfig:
    """Load configuration from disk, falling back to defaults, then apply env overrides."""

    defaults = ExerciseConfig()
    values: Dict[str, Any] = {}

    if path is not None and path.exists():
        data = orjson.loads(path.read_bytes())
        for item in fields(ExerciseConfig):
            if item.name in data and data[item.name] is not None:
                values[item.name] = _coerce(item.name, data[item.name], getattr(defaults, item.name))

    env = os.environ if environ is None else environ
    for item in fields(ExerciseConfig):
        raw = env.get(f"{ENV_PREFIX}{item.name.upper()}")
        if raw is not None and raw != "":
            values[item.name] = _coerce(item.name, raw, getattr(defaults, item.name))

    return ExerciseConfig(**values)
