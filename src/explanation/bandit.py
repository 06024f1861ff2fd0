# ABOUTME: Learns which explanation style resolves each (skill, error) pair via Thompson Sampling.
# ABOUTME: Rewards are delayed: a style is judged on the learner's next encounter with that error.

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, NamedTuple, Optional, Sequence

from loguru import logger

from src.common.bandit import BetaArm, RandomSource, NumpyRandomSource, choose
from src.common.config import EXPLANATION_STYLES, ExplanationConfig
from src.common.schemas import now_ms


class ErrorKey(NamedTuple):
    skill_id: str
    error_tag: str


class ExplanationArmKey(NamedTuple):
    skill_id: str
    error_tag: str
    style: str

    @property
    def error_key(self) -> ErrorKey:
        return ErrorKey(self.skill_id, self.error_tag)


@dataclass(frozen=True)
class PendingReward:
    """A served explanation awaiting the learner's next encounter with the same error."""

    key: ErrorKey
    style: str
    timestamp: int


@dataclass
class StyleStatistics:
    style: str
    uses: int
    successes: int
    success_rate: float
    mean: float
    alpha: float
    beta: float


class ExplanationBandit:
    """Thompson-Sampling bandit over explanation styles keyed by (skill, error tag)."""

    def __init__(
        self,
        config: Optional[ExplanationConfig] = None,
        rng: Optional[RandomSource] = None,
        clock: Callable[[], int] = now_ms,
        styles: Sequence[str] = EXPLANATION_STYLES,
    ):
        self.config = config or ExplanationConfig()
        self.rng = rng or NumpyRandomSource()
        self.clock = clock
        self.styles = tuple(styles)
        self.arms: Dict[ExplanationArmKey, BetaArm] = {}
        self.pending: Deque[PendingReward] = deque(maxlen=self.config.pending_capacity)

    def get_arm(self, skill_id: str, error_tag: str, style: str) -> BetaArm:
        key = ExplanationArmKey(skill_id, error_tag, style)
        if key not in self.arms:
            self.arms[key] = BetaArm()
        return self.arms[key]

    def select_style(self, skill_id: str, error_tag: str) -> str:
        if self.rng.random() < self.config.exploration_rate:
            style = choose(self.rng, self.styles)
            logger.debug(f"Explanation explore {skill_id}/{error_tag} -> {style}")
        else:
            style = self.styles[0]
            best_sample = -1.0
            for candidate in self.styles:
                sample = self.get_arm(skill_id, error_tag, candidate).sample(self.rng)
                if sample > best_sample:
                    best_sample = sample
                    style = candidate
        self.record_selection(ErrorKey(skill_id, error_tag), style)
        return style

    def record_selection(self, key: ErrorKey, style: str) -> None:
        # deque(maxlen) evicts the oldest record once capacity is reached
        self.pending.append(PendingReward(key=key, style=style, timestamp=self.clock()))

    def has_pending(self, skill_id: str, error_tag: str) -> bool:
        key = ErrorKey(skill_id, error_tag)
        return any(p.key == key for p in self.pending)

    def pending_keys_for_skill(self, skill_id: str) -> List[ErrorKey]:
        """Distinct pending error keys for a skill, oldest first."""
        keys: List[ErrorKey] = []
        for record in self.pending:
            if record.key.skill_id == skill_id and record.key not in keys:
                keys.append(record.key)
        return keys

    def update_from_outcome(self, skill_id: str, error_tag: str, error_repeated: bool) -> Optional[str]:
        """
        Resolve the oldest pending explanation for (skill, tag).

        Success means the learner did not repeat the error. Returns the
        rewarded style, or None when nothing was pending.
        """

        key = ErrorKey(skill_id, error_tag)
        match = next((p for p in self.pending if p.key == key), None)
        if match is None:
            return None
        self.pending.remove(match)

        arm = self.get_arm(skill_id, error_tag, match.style)
        arm.record(success=not error_repeated, now=self.clock())
        logger.debug(
            f"Explanation reward {skill_id}/{error_tag}/{match.style}: "
            f"{'resolved' if not error_repeated else 'repeated'}"
        )
        return match.style

    def statistics(self, skill_id: str, error_tag: str) -> List[StyleStatistics]:
        stats = []
        for style in self.styles:
            arm = self.get_arm(skill_id, error_tag, style)
            stats.append(
                StyleStatistics(
                    style=style,
                    uses=arm.pulls,
                    successes=arm.successes,
                    success_rate=arm.success_rate,
                    mean=arm.mean,
                    alpha=arm.alpha,
                    beta=arm.beta,
                )
            )
        return stats

    def best_style(self, skill_id: str, error_tag: str) -> Optional[StyleStatistics]:
        stats = self.statistics(skill_id, error_tag)
        if all(s.uses == 0 for s in stats):
            return None
        return max(stats, key=lambda s: s.success_rate)

    def reset(self) -> None:
        self.arms = {}
        self.pending.clear()

    def to_records(self) -> List[Dict]:
        return [
            {"skill_id": k.skill_id, "error_tag": k.error_tag, "style": k.style, **arm.to_dict()}
            for k, arm in self.arms.items()
        ]

    def load_records(self, records: Sequence[Dict]) -> None:
        self.arms = {}
        for record in records:
            key = ExplanationArmKey(str(record["skill_id"]), str(record["error_tag"]), str(record["style"]))
            self.arms[key] = BetaArm.from_dict(record)
