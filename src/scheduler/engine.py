# ABOUTME: Layer B skill scheduler combining mastery, SM-2 reviews and session switching.
# ABOUTME: Mixes the baseline cascade with the greedy policy and decides when to insert reviews.

from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from src.common.bandit import NumpyRandomSource, RandomSource
from src.common.config import SchedulerConfig, WEAK_SKILL_POOL
from src.common.schemas import now_ms

from .mastery import MasteryTracker
from .policy import BaselinePolicy, GreedyPolicy, SchedulerState, SessionSignals, SkillDecision
from .spaced_repetition import ReviewItem, ReviewQueue

# (minimum due count, probability); first match wins, the last entry is the floor
DUE_COUNT_TIERS = ((5, 0.5), (3, 0.3), (0, 0.2))
# (minimum session question count, probability)
SESSION_LENGTH_TIERS = ((10, 0.3), (5, 0.2))
# (exclusive overdue days bound, probability)
OVERDUE_TIERS = ((3, 0.3), (1, 0.2))
URGENT_OVERDUE_DAYS = 2


def _tier(value: float, tiers, inclusive: bool = True) -> float:
    for bound, points in tiers:
        if (value >= bound) if inclusive else (value > bound):
            return points
    return 0.0


class SkillScheduler:
    """
    Layer B: which skill to practice next.

    State: a mastery estimate and an SM-2 review item per skill, plus
    last-skill / switch-count session tracking.
    """

    def __init__(
        self,
        config: Optional[SchedulerConfig] = None,
        rng: Optional[RandomSource] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or SchedulerConfig()
        self.rng = rng or NumpyRandomSource()
        self.clock = clock
        self.mastery = MasteryTracker()
        self.reviews = ReviewQueue()
        self.baseline = BaselinePolicy(self.config, self.rng)
        self.greedy = GreedyPolicy()
        self.last_skill_id: Optional[str] = None
        self.switch_count = 0

    def curriculum_state(self, signals: Optional[SessionSignals] = None) -> SchedulerState:
        now = self.clock()
        due = self.reviews.due(now)
        return SchedulerState(
            mastery=self.mastery.snapshot(),
            due_skills=tuple(item.skill_id for item in due),
            review_priorities={item.skill_id: self.review_priority(item.skill_id) for item in due},
            weakest=tuple(self.mastery.weakest(WEAK_SKILL_POOL)),
            last_skill_id=self.last_skill_id,
            switch_count=self.switch_count,
            signals=signals or SessionSignals(),
            fatigue_threshold=self.config.fatigue_threshold,
        )

    def select_next_skill(
        self, available: Sequence[str], signals: Optional[SessionSignals] = None
    ) -> Optional[SkillDecision]:
        if not available:
            return None
        state = self.curriculum_state(signals)
        if self.rng.random() < self.config.baseline_weight:
            decision = self.baseline.decide(available, state)
        else:
            decision = self.greedy.decide(available, state)
        if decision is not None:
            logger.debug(f"Next skill {decision.skill_id} ({decision.reason}, target d{decision.target_difficulty})")
        return decision

    def update_spaced_repetition(self, skill_id: str, correct: bool) -> ReviewItem:
        return self.reviews.update(skill_id, correct, self.clock())

    def update_mastery(self, skill_id: str, correct: bool, difficulty: int) -> float:
        return self.mastery.update(skill_id, correct, difficulty)

    def get_mastery(self, skill_id: str) -> float:
        return self.mastery.get(skill_id)

    def due_reviews(self) -> List[ReviewItem]:
        return self.reviews.due(self.clock())

    def review_priority(self, skill_id: str) -> int:
        return self.reviews.priority(skill_id, self.mastery.get(skill_id), self.clock())

    def review_insert_probability(self, session_question_count: int) -> float:
        due = self.due_reviews()
        if not due:
            return 0.0
        probability = _tier(len(due), DUE_COUNT_TIERS)
        probability += _tier(session_question_count, SESSION_LENGTH_TIERS)
        probability += _tier(due[0].overdue_days(self.clock()), OVERDUE_TIERS, inclusive=False)
        return min(self.config.review_insert_cap, probability)

    def should_insert_review(self, session_question_count: int = 0) -> bool:
        probability = self.review_insert_probability(session_question_count)
        if probability <= 0:
            return False
        return self.rng.random() < probability

    def update_session_tracking(self, skill_id: str) -> None:
        if skill_id != self.last_skill_id:
            self.switch_count += 1
        else:
            self.switch_count = 0
        self.last_skill_id = skill_id

    def curriculum_reward(
        self, skill_id: str, correct: bool, was_review: bool, signals: Optional[SessionSignals] = None
    ) -> float:
        """Long-term reward hook for a future learned scheduling policy."""
        signals = signals or SessionSignals()
        reward = (0.05 if correct else -0.03) * 10
        if was_review and correct:
            reward += 1.0
        if not correct and signals.recent_errors > 3:
            reward -= 1.0
        if skill_id != self.last_skill_id and self.switch_count < 5:
            reward += 0.2
        return reward

    def session_stats(self) -> Dict[str, float]:
        now = self.clock()
        due = self.reviews.due(now)
        stats = {
            "due_reviews_count": len(due),
            "urgent_reviews": sum(1 for item in due if item.overdue_days(now) > URGENT_OVERDUE_DAYS),
        }
        stats.update(self.mastery.summary())
        return stats

    def reset(self) -> None:
        self.mastery.reset()
        self.reviews.clear()
        self.last_skill_id = None
        self.switch_count = 0

    def load_state(self, review_records: Sequence[Dict], mastery: Mapping[str, float]) -> None:
        self.reviews = ReviewQueue.from_records(review_records)
        self.mastery = MasteryTracker(mastery)
