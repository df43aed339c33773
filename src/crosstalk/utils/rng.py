"""Seeded randomness helpers for garbling and join codes."""

import random
import string

PIN_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_PIN_LENGTH = 6


def build_rng(*, seed: int | None = None) -> random.Random:
    """Return a random generator, deterministic when ``seed`` is given."""
    return random.Random(seed)


def generate_pin(rng: random.Random, length: int = DEFAULT_PIN_LENGTH) -> str:
    """Return an uppercase alphanumeric join code.

    Args:
        rng: Random number generator
        length: Number of characters in the code (default 6)

    Returns:
        Join code drawn uniformly from ``A-Z`` and ``0-9``
    """
    return "".join(rng.choice(PIN_ALPHABET) for _ in range(length))
