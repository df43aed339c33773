"""The four questions each team's CEO answers before time runs out."""

from typing import Dict, Tuple

QUESTIONS: Tuple[str, ...] = (
    "What is the primary market opportunity?",
    "What are the key operational challenges?",
    "What is the financial projection for Year 1?",
    "What is the recommended marketing strategy?",
)


def question_map() -> Dict[int, str]:
    """Questions keyed by their 1-based slot number."""
    return {number: text for number, text in enumerate(QUESTIONS, start=1)}
