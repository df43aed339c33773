import random
from itertools import product

import pytest

from crosstalk.core import garbling
from crosstalk.core.garbling import SYMBOLS, garble_probability, garble_word, is_exempt, render
from crosstalk.core.roles import Role

ROLES = list(Role) + [None]


def _is_symbols(word):
    return all(char in SYMBOLS for char in word)


@pytest.mark.parametrize("native", [True, False])
def test_same_fluency_is_never_garbled(native):
    message = "Should we reconsider the quarterly distribution budget?"
    rng = random.Random(1)
    for sender_role, viewer_role in product(ROLES, ROLES):
        assert render(message, sender_role, native, viewer_role, native, False, rng=rng) == message


@pytest.mark.parametrize("sender_native", [True, False])
def test_code_switched_reads_clearly_for_non_native_viewers(sender_native):
    message = "Nous devons parler du budget marketing"
    for _ in range(50):
        assert render(message, Role.VP_FINANCE, sender_native, Role.VP_MARKETING, False, True) == message


def test_unknown_fluency_shows_original_text():
    message = "Pricing strategy needs another round"
    assert render(message, None, None, Role.CEO, True, True) == message
    assert render(message, Role.CEO, True, None, None, False) == message


def test_code_switched_is_fully_garbled_for_native_viewers():
    for trial in range(100):
        rng = random.Random(trial)
        words = render("Hi there friend", Role.VP_FINANCE, False, Role.CEO, True, True, rng=rng).split(" ")
        assert words[0] == "Hi"
        assert len(words[1]) == len("there") and _is_symbols(words[1])
        assert len(words[2]) == len("friend") and _is_symbols(words[2])


def test_default_randomness_still_garbles_code_switched_text():
    rendered = render("Hi there friend", Role.VP_MARKETING, False, Role.VP_OPERATIONS, True, True)
    assert rendered.startswith("Hi ")
    assert "there" not in rendered and "friend" not in rendered


def test_cross_fluency_rate_converges_to_a_quarter():
    words = ["alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf", "hotel", "india", "juliet"]
    message = " ".join(words)
    rng = random.Random(2024)
    garbled = 0
    total = 0
    for _ in range(10_000):
        rendered = render(message, Role.CEO, True, Role.VP_FINANCE, False, False, rng=rng).split(" ")
        garbled += sum(1 for before, after in zip(words, rendered) if before != after)
        total += len(words)
    assert abs(garbled / total - 0.25) < 0.01


def test_direction_does_not_matter_across_fluency_classes():
    assert garble_probability(True, False, False) == garble_probability(False, True, False) == 0.25


def test_probability_table():
    assert garble_probability(True, True, False) == 0.0
    assert garble_probability(False, False, False) == 0.0
    assert garble_probability(False, True, True) == 1.0
    assert garble_probability(True, True, True) == 1.0
    assert garble_probability(True, False, True) == 0.0
    assert garble_probability(None, True, True) == 0.0


def test_punctuation_survives_in_place():
    rng = random.Random(3)
    assert garble_word("hello,", rng)[-1] == ","
    rendered = garble_word("wait?!", rng)
    assert rendered[-2:] == "?!"
    assert _is_symbols(rendered[:-2])
    rendered = render("Really, really: fine.", Role.CEO, True, Role.VP_MARKETING, True, True, rng=rng)
    first, second, third = rendered.split(" ")
    assert first[-1] == "," and _is_symbols(first[:-1])
    assert second[-1] == ":" and _is_symbols(second[:-1])
    assert third[-1] == "." and _is_symbols(third[:-1])


def test_short_words_and_numbers_are_exempt():
    assert is_exempt("the")
    assert is_exempt("12345")
    assert not is_exempt("four")
    assert not is_exempt("250k")

    message = "Our offer is 250000 for year 2026"
    rendered = render(message, Role.VP_FINANCE, False, Role.CEO, True, True, rng=random.Random(5))
    tokens = rendered.split(" ")
    assert tokens[0] == "Our" and tokens[2:5] == ["is", "250000", "for"]
    assert _is_symbols(tokens[1])
    assert tokens[5] != "year"
    assert tokens[6] == "2026"


def test_each_render_draws_fresh_randomness():
    rng = random.Random(11)
    renders = {render("negotiation strategy", Role.VP_MARKETING, False, Role.CEO, True, True, rng=rng) for _ in range(20)}
    assert len(renders) > 1


def test_seeded_renders_are_reproducible():
    first = render("supplier discount proposal", Role.CEO, True, Role.VP_FINANCE, False, False, rng=random.Random(9))
    second = render("supplier discount proposal", Role.CEO, True, Role.VP_FINANCE, False, False, rng=random.Random(9))
    assert first == second


def test_multiple_spaces_are_kept():
    message = "lots   of  spacing here"
    rendered = garbling.garble_words(message, 1.0, random.Random(0))
    assert rendered.count(" ") == message.count(" ")
