"""Shared helpers."""

from . import log, rng

__all__ = ["log", "rng"]
