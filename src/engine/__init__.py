# ABOUTME: Exposes the per-learner adaptive engine and its attempt value types.
# ABOUTME: Keeps profile and session state types importable alongside the orchestrator.

from .adaptive import AdaptiveEngine, AttemptOutcome, AttemptPlan
from .state import LearnerProfile, SessionData

__all__ = ["AdaptiveEngine", "AttemptOutcome", "AttemptPlan", "LearnerProfile", "SessionData"]
