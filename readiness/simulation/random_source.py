from __future__ import annotations

"""Uniform random sources and the Box–Muller normal draw built on them.

Every random number the engine consumes comes through `UniformSource`, so tests
can swap in a fixed sequence while production runs use numpy generators spawned
from a SeedSequence (one independent stream per trial).
"""

import math
from typing import Iterable, List, Protocol

import numpy as np


class UniformSource(Protocol):
    def next_uniform(self) -> float:
        """Return a float in [0, 1)."""
        ...


class GeneratorSource:
    """Adapts a numpy Generator to the `UniformSource` interface."""

    def __init__(self, generator: np.random.Generator) -> None:
        self.generator = generator

    def next_uniform(self) -> float:
        return float(self.generator.random())


class SequenceSource:
    """Replays a fixed list of uniforms, cycling when exhausted.

    Used to make paths fully deterministic: identical sequences always yield
    identical trials.
    """

    def __init__(self, values: Iterable[float]) -> None:
        self.values: List[float] = list(values)
        if not self.values:
            raise ValueError("SequenceSource needs at least one value")
        for v in self.values:
            if not 0.0 <= v < 1.0:
                raise ValueError(f"uniform values must lie in [0, 1), got {v}")
        self.position = 0

    def next_uniform(self) -> float:
        value = self.values[self.position % len(self.values)]
        self.position += 1
        return value


def standard_normal(source: UniformSource) -> float:
    """Draw one standard normal variate from two uniforms via Box–Muller.

    The first uniform is reflected to (0, 1] so the logarithm stays finite
    when the source returns exactly 0.
    """
    u1 = 1.0 - source.next_uniform()
    u2 = source.next_uniform()
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def normal(source: UniformSource, mean: float, std: float) -> float:
    return mean + std * standard_normal(source)
