# ABOUTME: Selects question difficulty with a per-skill Thompson-Sampling bandit over five levels.
# ABOUTME: Nudges arm samples with contextual bonuses and decides when to surface hints.

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence

from loguru import logger

from src.common.bandit import BetaArm, NumpyRandomSource, RandomSource, choose, clamp
from src.common.config import (
    DIFFICULTY_LEVELS,
    FATIGUE_HARD_DIFFICULTY,
    FATIGUE_HARD_PENALTY,
    HINT_LOW_ACCURACY,
    HINT_RECENT_ERRORS,
    RECENT_ERRORS_PENALTY,
    RECENT_ERRORS_THRESHOLD,
    STREAK_STEP_BONUS,
    STREAK_THRESHOLD,
    TOWARD_BONUS_REWARD,
    DifficultyConfig,
)
from src.common.schemas import now_ms

from .context import DifficultyContext


class DifficultyArmKey(NamedTuple):
    skill_id: str
    difficulty: int


@dataclass
class ArmStatistics:
    difficulty: int
    pulls: int
    success_rate: float
    avg_time: float
    confidence: float  # alpha + beta; grows with data


class DifficultyBandit:
    """
    Layer A: Thompson Sampling over difficulty levels 1-5 for each skill.

    Algorithm:
    1. Compute a signed context bonus from accuracy, fatigue and hint usage
    2. Explore (15%): random level within +-1 of the bonus-shifted current level
    3. Exploit: sample every arm, add a contextual adjustment, take the argmax
    4. Observe correctness and update the chosen arm
    """

    def __init__(
        self,
        config: Optional[DifficultyConfig] = None,
        rng: Optional[RandomSource] = None,
        clock: Callable[[], int] = now_ms,
        levels: Sequence[int] = DIFFICULTY_LEVELS,
    ):
        self.config = config or DifficultyConfig()
        self.rng = rng or NumpyRandomSource()
        self.clock = clock
        self.levels = tuple(levels)
        self.arms: Dict[DifficultyArmKey, BetaArm] = {}

    def get_arm(self, skill_id: str, difficulty: int) -> BetaArm:
        key = DifficultyArmKey(skill_id, difficulty)
        if key not in self.arms:
            self.arms[key] = BetaArm()
        return self.arms[key]

    def context_bonus(self, context: DifficultyContext) -> int:
        bonus = 0
        if context.recent_accuracy > self.config.high_accuracy:
            bonus += 1
        elif context.recent_accuracy < self.config.low_accuracy:
            bonus -= 1
        if context.fatigue_high:
            bonus -= 1
        if context.hints_used_recently > self.config.hint_overuse:
            bonus -= 1
        return bonus

    def adjustment(self, difficulty: int, context: DifficultyContext, bonus: int) -> float:
        """Deterministic score nudge added to an arm's sample."""
        current = context.current_difficulty
        score = 0.0
        if bonus > 0 and difficulty > current:
            score += TOWARD_BONUS_REWARD
        elif bonus < 0 and difficulty < current:
            score += TOWARD_BONUS_REWARD
        if context.fatigue_high and difficulty >= FATIGUE_HARD_DIFFICULTY:
            score -= FATIGUE_HARD_PENALTY
        if context.recent_errors > RECENT_ERRORS_THRESHOLD and difficulty > current:
            score -= RECENT_ERRORS_PENALTY
        if context.streak > STREAK_THRESHOLD and difficulty == current + 1:
            score += STREAK_STEP_BONUS
        return score

    def constrained_random_difficulty(self, context: DifficultyContext, bonus: int) -> int:
        low, high = self.levels[0], self.levels[-1]
        target = int(clamp(context.current_difficulty + bonus, low, high))
        candidates = [d for d in self.levels if abs(d - target) <= 1]
        return choose(self.rng, candidates) if candidates else target

    def select_difficulty(self, skill_id: str, context: DifficultyContext) -> int:
        bonus = self.context_bonus(context)

        if self.rng.random() < self.config.exploration_rate:
            difficulty = self.constrained_random_difficulty(context, bonus)
            logger.debug(f"Difficulty explore {skill_id}: bonus={bonus} -> {difficulty}")
            return difficulty

        best_difficulty = self.levels[0]
        best_score = float("-inf")
        for difficulty in self.levels:
            sample = self.get_arm(skill_id, difficulty).sample(self.rng)
            score = sample + self.adjustment(difficulty, context, bonus)
            if score > best_score:
                best_score = score
                best_difficulty = difficulty

        logger.debug(f"Difficulty exploit {skill_id}: bonus={bonus} -> {best_difficulty} ({best_score:.3f})")
        return best_difficulty

    def update_arm(self, skill_id: str, difficulty: int, correct: bool, response_time_sec: float) -> BetaArm:
        arm = self.get_arm(skill_id, difficulty)
        arm.record(success=correct, response_time_sec=response_time_sec, now=self.clock())
        return arm

    def should_show_hint(self, context: DifficultyContext, attempt_number: int, time_spent: float) -> bool:
        if context.recent_errors >= HINT_RECENT_ERRORS and attempt_number == 1:
            return True
        if time_spent > self.config.hint_slow_seconds and attempt_number == 1:
            return True
        if attempt_number >= 2:
            return True
        if context.recent_accuracy < HINT_LOW_ACCURACY:
            return self.rng.random() < self.config.hint_coin_flip
        return False

    def arm_statistics(self, skill_id: str) -> List[ArmStatistics]:
        stats = []
        for difficulty in self.levels:
            arm = self.arms.get(DifficultyArmKey(skill_id, difficulty))
            if arm and arm.pulls > 0:
                stats.append(
                    ArmStatistics(
                        difficulty=difficulty,
                        pulls=arm.pulls,
                        success_rate=arm.success_rate,
                        avg_time=arm.avg_time,
                        confidence=arm.alpha + arm.beta,
                    )
                )
        return stats

    def reset(self) -> None:
        self.arms = {}

    def to_records(self) -> List[Dict]:
        return [{"skill_id": k.skill_id, "difficulty": k.difficulty, **arm.to_dict()} for k, arm in self.arms.items()]

    def load_records(self, records: Sequence[Dict]) -> None:
        self.arms = {
            DifficultyArmKey(str(r["skill_id"]), int(r["difficulty"])): BetaArm.from_dict(r) for r in records
        }
