"""Shared fixtures for the crosstalk test-suite."""

from __future__ import annotations

import asyncio
import random
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Callable, List, TypeVar

import pytest

from crosstalk.config import ExerciseConfig
from crosstalk.core.schemas import Participant
from crosstalk.services.exercise import ExerciseService
from crosstalk.store.memory import MemoryStore

T = TypeVar("T")

START = datetime(2025, 3, 14, 9, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def run(coro: Awaitable[T]) -> T:
    return asyncio.run(coro)  # type: ignore[arg-type]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_service(clock: FakeClock) -> Callable[..., ExerciseService]:
    def _make(store: Any = None, **config: Any) -> ExerciseService:
        return ExerciseService(
            store if store is not None else MemoryStore(),
            config=ExerciseConfig(**config),
            clock=clock,
            rng=random.Random(7),
        )

    return _make


@pytest.fixture
def service(make_service: Callable[..., ExerciseService]) -> ExerciseService:
    return make_service()


async def join_many(service: ExerciseService, pin: str, count: int) -> List[Participant]:
    return [await service.join_session(pin, f"Player {index}") for index in range(1, count + 1)]
