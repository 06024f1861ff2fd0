# ABOUTME: Builds the per-attempt context consumed by the difficulty bandit and hint policy.
# ABOUTME: Derives accuracy, error, hint and fatigue signals deterministically from learner history.

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from src.common.config import DEFAULT_CURRENT_DIFFICULTY, DEFAULT_RECENT_ACCURACY, DifficultyConfig, FATIGUE_THRESHOLD
from src.common.schemas import AttemptEvent


@dataclass(frozen=True)
class DifficultyContext:
    """Learner signals for one difficulty decision."""

    recent_accuracy: float = DEFAULT_RECENT_ACCURACY  # last 5 attempts on this skill
    recent_errors: int = 0  # last 3 attempts in the session, any skill
    hints_used_recently: int = 0  # last 5 attempts in the session
    current_difficulty: int = DEFAULT_CURRENT_DIFFICULTY
    streak: int = 0
    fatigue_high: bool = False


def build_difficulty_context(
    skill_id: str,
    question_logs: Sequence[AttemptEvent],
    recent_questions: Sequence[AttemptEvent],
    streak: int,
    fatigue_score: float,
    config: Optional[DifficultyConfig] = None,
    fatigue_threshold: float = FATIGUE_THRESHOLD,
) -> DifficultyContext:
    """
    Summarize history into a DifficultyContext.

    The skill window and the global error window intentionally differ
    (5 per-skill vs 3 session-wide).
    """

    config = config or DifficultyConfig()
    for_skill = [e for e in question_logs if e.skill_id == skill_id][-config.skill_accuracy_window :]

    if for_skill:
        recent_accuracy = sum(1 for e in for_skill if e.correct) / len(for_skill)
        current_difficulty = for_skill[-1].difficulty
    else:
        recent_accuracy = DEFAULT_RECENT_ACCURACY
        current_difficulty = DEFAULT_CURRENT_DIFFICULTY

    recent_errors = sum(1 for e in list(recent_questions)[-config.recent_errors_window :] if not e.correct)
    hints = sum(1 for e in list(recent_questions)[-config.recent_hints_window :] if e.hint_used)

    return DifficultyContext(
        recent_accuracy=recent_accuracy,
        recent_errors=recent_errors,
        hints_used_recently=hints,
        current_difficulty=current_difficulty,
        streak=streak,
        fatigue_high=fatigue_score > fatigue_threshold,
    )
