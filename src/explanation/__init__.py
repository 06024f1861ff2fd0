# ABOUTME: Exposes Layer C: error diagnosis, explanation-style bandit, and feedback rendering.
# ABOUTME: Groups the rule-based classifier, style templates, and the delayed-reward bandit.

from .bandit import ErrorKey, ExplanationArmKey, ExplanationBandit, PendingReward
from .classifier import classify, describe, error_types, is_recurring_error
from .feedback import ExplanationEngine, Feedback, correct_feedback

__all__ = [
    "ErrorKey",
    "ExplanationArmKey",
    "ExplanationBandit",
    "PendingReward",
    "classify",
    "describe",
    "error_types",
    "is_recurring_error",
    "ExplanationEngine",
    "Feedback",
    "correct_feedback",
]
