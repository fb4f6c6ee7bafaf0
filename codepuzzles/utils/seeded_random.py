"""
Deterministic pseudo-random source for puzzle generation.

A seed string is hashed with a 31-multiplier rolling hash and then drives a
32-bit linear congruential generator, so the same seed replays the same
language, repository and file choices.
"""

import random
from collections.abc import Callable, Sequence
from typing import TypeVar

T = TypeVar("T")

RandomSource = Callable[[], float]


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def seed_random(seed: str | None = None) -> RandomSource:
    """
    Build a random source returning floats in [0, 1).

    Args:
        seed: Optional seed string; when missing or empty the process-wide RNG is used

    Returns:
        Zero-argument callable producing the next value
    """
    if not seed:
        return random.random

    h = 0
    for char in seed:
        h = _to_int32((h << 5) - h + ord(char))

    state = h & 0xFFFFFFFF

    def next_value() -> float:
        nonlocal state
        state = (state * 1664525 + 1013904223) & 0xFFFFFFFF
        return state / 2**32

    return next_value


def shuffle(items: Sequence[T], rng: RandomSource) -> list[T]:
    """Return a Fisher-Yates shuffled copy of ``items`` driven by ``rng``."""
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = int(rng() * (i + 1))
        result[i], result[j] = result[j], result[i]
    return result


def pick(items: Sequence[T], rng: RandomSource) -> T:
    """Pick one element of a non-empty sequence."""
    return items[int(rng() * len(items))]
