from __future__ import annotations

import random
from typing import Optional, Protocol


class JitterSource(Protocol):
    def next(self) -> float: ...


class UniformJitter:
    """Uniform draws in ``[0, max_value)`` from a private, optionally seeded generator."""

    def __init__(self, max_value: float = 5.0, seed: Optional[int] = None) -> None:
        self._max_value = max_value
        self._random = random.Random(seed)

    def next(self) -> float:
        return self._random.random() * self._max_value


class NoJitter:
    def next(self) -> float:
        return 0.0
