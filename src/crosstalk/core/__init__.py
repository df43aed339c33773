"""Core exercise logic and data structures."""

from . import assignment, debrief, errors, garbling, lifecycle, questions, reconcile, roles, schemas, teams

__all__ = [
    "assignment",
    "debrief",
    "errors",
    "garbling",
    "lifecycle",
    "questions",
    "reconcile",
    "roles",
    "schemas",
    "teams",
]
