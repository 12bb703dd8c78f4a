"""
Injectable randomness for economy rolls.

Shop tier rolls, pity intervals, base-material picks and craft outcomes all
draw from a `RandomSource`. Production uses the OS CSPRNG
(`secrets.SystemRandom`); tests inject a scripted source so outcomes are
reproducible.

Draw order is part of each operation's contract:
- Shop purchase: arm interval (only when unset), tier roll, recipe choice,
  re-arm interval. A base-material purchase draws a single choice.
- Craft: one `random()` after ingredients are consumed.
"""

from __future__ import annotations

import secrets
from typing import Protocol, Sequence, TypeVar

T = TypeVar("T")


class RandomSource(Protocol):
    """Subset of `random.Random` the economy services rely on."""

    def randint(self, a: int, b: int) -> int:
        """Uniform integer in [a, b], both inclusive."""
        ...

    def random(self) -> float:
        """Uniform float in [0.0, 1.0)."""
        ...

    def choice(self, seq: Sequence[T]) -> T:
        """Uniform pick from a non-empty sequence."""
        ...


def default_random_source() -> RandomSource:
    return secrets.SystemRandom()
