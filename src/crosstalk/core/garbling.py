"""Perspective-dependent garbling of chat messages.

A message is rendered separately for every viewer. Whether (and how heavily) it is
obscured depends only on the sender's and viewer's fluency flags and on whether the
sender chose to code-switch into their simulated native language:

* unknown fluency on either side: shown as written
* same fluency class, not code-switched: shown as written
* code-switched: fully garbled for native viewers, clear for non-native viewers
* different fluency classes: each eligible word garbled with probability 0.25

Every call draws fresh randomness, so the same viewer may see a different rendering
each time. Callers that need reproducible output pass their own ``random.Random``.
"""

from __future__ import annotations

import random
import re
from typing import Any, Optional, Tuple

from ..utils.rng import build_rng

SYMBOLS: Tuple[str, ...] = ("*", "!", "#", "@", "%", "&")
PUNCTUATION = frozenset(".,!?;:")
CROSS_FLUENCY_PROBABILITY = 0.25
CODE_SWITCH_PROBABILITY = 1.0
MAX_EXEMPT_LENGTH = 3

_DIGITS = re.compile(r"^\d+$")


def garble_probability(
    sender_is_native: Optional[bool],
    viewer_is_native: Optional[bool],
    is_code_switched: bool,
) -> float:
    """Per-word garbling probability for a sender/viewer pair (0.0 means untouched)."""

    if sender_is_native is None or viewer_is_native is None:
        return 0.0
    if not is_code_switched and sender_is_native == viewer_is_native:
        return 0.0
    if is_code_switched:
        return CODE_SWITCH_PROBABILITY if viewer_is_native else 0.0
    return CROSS_FLUENCY_PROBABILITY


def is_exempt(word: str) -> bool:
    """Short words and plain numbers always come through."""

    return len(word) <= MAX_EXEMPT_LENGTH or bool(_DIGITS.match(word))


def garble_word(word: str, rng: random.Random) -> str:
    """Replace every non-punctuation character with a random symbol."""

    return "".join(char if char in PUNCTUATION else rng.choice(SYMBOLS) for char in word)


def garble_words(message: str, probability: float, rng: Optional[random.Random] = None) -> str:
    """Garble each eligible word of ``message`` independently with ``probability``."""

    if probability <= 0:
        return message
    rng = rng or build_rng()
    words = message.split(" ")
    rendered = []
    for word in words:
        if not is_exempt(word) and rng.random() < probability:
            rendered.append(garble_word(word, rng))
        else:
            rendered.append(word)
    return " ".join(rendered)


def render(
    message: str,
    sender_role: Any,
    sender_is_native: Optional[bool],
    viewer_role: Any,
    viewer_is_native: Optional[bool],
    is_code_switched: bool,
    *,
    rng: Optional[random.Random] = None,
) -> str:
    """Return the text ``message`` displays as for the given viewer.

    Roles are accepted so callers can pass a full perspective, but only the fluency
    flags and the code-switch flag influence the result. ``message`` itself is never
    modified.
    """

    probability = garble_probability(sender_is_native, viewer_is_native, is_code_switched)
    if probability <= 0:
        return message
    return garble_words(message, probability, rng)
