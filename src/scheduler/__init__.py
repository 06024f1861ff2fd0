# ABOUTME: Exposes Layer B: mastery tracking, SM-2 review scheduling and skill selection.
# ABOUTME: Groups the policies with the scheduler that mixes them.

from .engine import SkillScheduler
from .mastery import MasteryTracker
from .policy import BaselinePolicy, GreedyPolicy, SchedulerState, SessionSignals, SkillDecision, score_skill, target_difficulty
from .spaced_repetition import DAY_MS, ReviewItem, ReviewQueue, apply_sm2, review_priority

__all__ = [
    "SkillScheduler",
    "MasteryTracker",
    "BaselinePolicy",
    "GreedyPolicy",
    "SchedulerState",
    "SessionSignals",
    "SkillDecision",
    "score_skill",
    "target_difficulty",
    "DAY_MS",
    "ReviewItem",
    "ReviewQueue",
    "apply_sm2",
    "review_priority",
]
