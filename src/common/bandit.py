# ABOUTME: Implements the Beta-arm statistics shared by the Thompson-Sampling bandits.
# ABOUTME: Provides the injectable random source and the moment-matched Beta sampler.

from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Protocol, Sequence, Tuple, TypeVar

import numpy as np

T = TypeVar("T")


class RandomSource(Protocol):
    """Minimal random interface consumed by every probabilistic branch."""

    def random(self) -> float:
        """Return a float uniformly drawn from [0, 1)."""

    def randrange(self, n: int) -> int:
        """Return an int uniformly drawn from [0, n)."""


class NumpyRandomSource:
    """RandomSource backed by numpy's PCG64 generator; pass a seed for reproducible runs."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def random(self) -> float:
        return float(self._rng.random())

    def randrange(self, n: int) -> int:
        if n <= 0:
            raise ValueError(f"randrange() needs a positive bound, got {n}")
        return int(self._rng.integers(n))


def choose(rng: RandomSource, items: Sequence[T]) -> T:
    """Pick one element uniformly; callers guard against empty sequences."""
    return items[rng.randrange(len(items))]


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def beta_moments(alpha: float, beta: float) -> Tuple[float, float]:
    """Mean and variance of Beta(alpha, beta)."""
    total = alpha + beta
    mean = alpha / total
    variance = (alpha * beta) / (total**2 * (total + 1))
    return mean, variance


def sample_beta(alpha: float, beta: float, rng: RandomSource) -> float:
    """
    Draw an approximate Beta(alpha, beta) sample.

    Uses a moment-matched uniform perturbation rather than exact posterior
    sampling: sample = clamp01(mean + (U - 0.5) * sqrt(variance) * 3).
    Every bandit in the engine goes through this one sampler.
    """
    mean, variance = beta_moments(alpha, beta)
    noise = (rng.random() - 0.5) * math.sqrt(variance) * 3
    return clamp(mean + noise, 0.0, 1.0)


@dataclass
class BetaArm:
    """Bernoulli arm statistics under a Beta(1, 1) prior."""

    alpha: float = 1.0  # 1 + successes
    beta: float = 1.0  # 1 + failures
    pulls: int = 0
    successes: int = 0
    avg_time: float = 0.0  # running mean response time (seconds)
    last_pulled: int = 0  # epoch ms

    @property
    def failures(self) -> int:
        return self.pulls - self.successes

    @property
    def mean(self) -> float:
        return beta_moments(self.alpha, self.beta)[0]

    @property
    def variance(self) -> float:
        return beta_moments(self.alpha, self.beta)[1]

    @property
    def success_rate(self) -> float:
        return self.successes / self.pulls if self.pulls else 0.0

    def record(self, success: bool, response_time_sec: Optional[float] = None, now: Optional[int] = None) -> None:
        """Apply one observed Bernoulli outcome."""
        self.pulls += 1
        if success:
            self.successes += 1
            self.alpha += 1
        else:
            self.beta += 1
        if response_time_sec is not None:
            self.avg_time = (self.avg_time * (self.pulls - 1) + response_time_sec) / self.pulls
        if now is not None:
            self.last_pulled = now

    def sample(self, rng: RandomSource) -> float:
        return sample_beta(self.alpha, self.beta, rng)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "BetaArm":
        return cls(
            alpha=float(data.get("alpha", 1.0)),
            beta=float(data.get("beta", 1.0)),
            pulls=int(data.get("pulls", data.get("uses", 0))),
            successes=int(data.get("successes", 0)),
            avg_time=float(data.get("avg_time", 0.0)),
            last_pulled=int(data.get("last_pulled", 0)),
        )
