# ABOUTME: Skill-selection policies for Layer B: a randomized baseline cascade and a greedy scorer.
# ABOUTME: Both read an immutable SchedulerState snapshot and return a SkillDecision.

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Tuple

from src.common.bandit import NumpyRandomSource, RandomSource, choose
from src.common.config import (
    DIFFICULTY_LEVELS,
    DIVERSITY_MAX_SWITCHES,
    FATIGUED_HARD_MASTERY,
    FATIGUED_MAX_TARGET_DIFFICULTY,
    STANDARD_PRIORITY_SCORE,
    URGENT_PRIORITY_SCORE,
    WEAK_SKILL_POOL,
    SchedulerConfig,
)

MODE_REVIEW = "review"
MODE_PRACTICE = "practice"
MODE_LEARN = "learn"


@dataclass(frozen=True)
class SessionSignals:
    """Session-level inputs the orchestrator hands to the scheduler."""

    fatigue_score: float = 0.0
    session_length_min: float = 0.0
    recent_accuracy: float = 0.5
    streak: int = 0
    recent_errors: int = 0


@dataclass(frozen=True)
class SchedulerState:
    mastery: Mapping[str, float] = field(default_factory=dict)
    due_skills: Tuple[str, ...] = ()  # earliest due first
    review_priorities: Mapping[str, int] = field(default_factory=dict)
    weakest: Tuple[Tuple[str, float], ...] = ()
    last_skill_id: Optional[str] = None
    switch_count: int = 0
    signals: SessionSignals = SessionSignals()
    fatigue_threshold: float = 0.6

    def mastery_of(self, skill_id: str) -> float:
        return self.mastery.get(skill_id, 0.0)

    @property
    def fatigued(self) -> bool:
        return self.signals.fatigue_score > self.fatigue_threshold


@dataclass(frozen=True)
class SkillDecision:
    skill_id: str
    mode: str
    reason: str
    confidence: float
    target_difficulty: int


def target_difficulty(mastery: float, fatigued: bool) -> int:
    level = min(int(math.floor(mastery * 4)) + 1, DIFFICULTY_LEVELS[-1])
    if fatigued:
        level = min(level, FATIGUED_MAX_TARGET_DIFFICULTY)
    return level


def score_skill(skill_id: str, state: SchedulerState) -> float:
    mastery = state.mastery_of(skill_id)
    score = (1 - mastery) * 2
    if skill_id in state.due_skills:
        score += 3
    if skill_id != state.last_skill_id:
        score += 1
    if state.fatigued and mastery < FATIGUED_HARD_MASTERY:
        score -= 1
    return score


def _argmax_skill(available: Sequence[str], state: SchedulerState) -> str:
    best_skill = available[0]
    best_score = float("-inf")
    for skill_id in available:
        score = score_skill(skill_id, state)
        if score > best_score:
            best_skill, best_score = skill_id, score
    return best_skill


def _decision(skill_id: str, mode: str, reason: str, confidence: float, state: SchedulerState) -> SkillDecision:
    return SkillDecision(
        skill_id=skill_id,
        mode=mode,
        reason=reason,
        confidence=confidence,
        target_difficulty=target_difficulty(state.mastery_of(skill_id), state.fatigued),
    )


class BaselinePolicy:
    """
    Rule cascade evaluated in priority order, each rule gated by its own draw:

    1. due review, probability scaled by the top review priority
    2. weak skill among the weakest tracked skills
    3. diversity, while recent switching is low
    4. exploration
    5. balanced scoring (deterministic)
    """

    def __init__(self, config: Optional[SchedulerConfig] = None, rng: Optional[RandomSource] = None):
        self.config = config or SchedulerConfig()
        self.rng = rng or NumpyRandomSource()

    def review_probability(self, top_priority: int) -> float:
        if top_priority >= URGENT_PRIORITY_SCORE:
            return self.config.urgent_review_probability
        if top_priority >= STANDARD_PRIORITY_SCORE:
            return self.config.due_review_probability
        return self.config.low_priority_review_probability

    def decide(self, available: Sequence[str], state: SchedulerState) -> Optional[SkillDecision]:
        if not available:
            return None

        due = [s for s in state.due_skills if s in available]
        if due:
            top_priority = max(state.review_priorities.get(s, 0) for s in due)
            probability = self.review_probability(top_priority)
            if self.rng.random() < probability:
                # min() keeps the first of equal values, and due is ordered by due date
                skill_id = min(due, key=state.mastery_of)
                return _decision(skill_id, MODE_REVIEW, "due_review", probability, state)

        weak = [
            skill_id
            for skill_id, mastery in state.weakest[:WEAK_SKILL_POOL]
            if skill_id in available and mastery < self.config.weak_skill_threshold
        ]
        if weak and self.rng.random() < self.config.weak_skill_probability:
            return _decision(choose(self.rng, weak), MODE_PRACTICE, "weak_skill", self.config.weak_skill_probability, state)

        if state.last_skill_id is not None and state.switch_count < DIVERSITY_MAX_SWITCHES:
            others = [s for s in available if s != state.last_skill_id]
            if others and self.rng.random() < self.config.diversity_probability:
                return _decision(choose(self.rng, others), MODE_LEARN, "diversity", self.config.diversity_probability, state)

        if self.rng.random() < self.config.exploration_probability:
            return _decision(
                choose(self.rng, list(available)), MODE_LEARN, "exploration", self.config.exploration_probability, state
            )

        return _decision(_argmax_skill(available, state), MODE_PRACTICE, "balanced", 1.0, state)


class GreedyPolicy:
    """Deterministic scorer; stands in for a future learned policy."""

    def decide(self, available: Sequence[str], state: SchedulerState) -> Optional[SkillDecision]:
        if not available:
            return None
        return _decision(_argmax_skill(available, state), MODE_PRACTICE, "greedy_policy", 1.0, state)
