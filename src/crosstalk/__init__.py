"""Cross-language negotiation exercise: team formation, role assignment and garbled chat."""

from . import config, store
from .core import assignment, errors, garbling, lifecycle, reconcile, roles, schemas, teams
from .utils import rng

__all__ = [
    "assignment",
    "config",
    "errors",
    "garbling",
    "lifecycle",
    "reconcile",
    "rng",
    "roles",
    "schemas",
    "store",
    "teams",
]
