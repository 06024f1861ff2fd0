# ABOUTME: Exposes Layer A: the contextual Thompson-Sampling difficulty bandit.
# ABOUTME: Groups the per-attempt context builder with the bandit and hint policy.

from .bandit import ArmStatistics, DifficultyArmKey, DifficultyBandit
from .context import DifficultyContext, build_difficulty_context

__all__ = [
    "ArmStatistics",
    "DifficultyArmKey",
    "DifficultyBandit",
    "DifficultyContext",
    "build_difficulty_context",
]
