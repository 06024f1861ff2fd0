# ABOUTME: Turns a learner's answer into diagnosed, style-adapted feedback.
# ABOUTME: Tracks error patterns and history that drive recurring-error advice and analytics.

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, asdict
from typing import Callable, Deque, Dict, List, Optional, Sequence

from loguru import logger

from src.common.bandit import RandomSource
from src.common.config import ExplanationConfig
from src.common.schemas import now_ms

from .bandit import ErrorKey, ExplanationBandit
from .classifier import ARITHMETIC_SLIP, NO_ERROR, classify
from .templates import render_explanation

NEXT_ACTION_REVIEW = "review_concept"
NEXT_ACTION_RETRY = "try_again"
NEXT_ACTION_CONTINUE = "continue"


@dataclass
class ErrorPattern:
    count: int = 0
    last_seen: int = 0


@dataclass(frozen=True)
class Feedback:
    is_correct: bool
    explanation: str
    next_action: str
    error_tag: Optional[str] = None
    style_used: Optional[str] = None


def correct_feedback() -> Feedback:
    return Feedback(is_correct=True, explanation="Correct! Well done.", next_action=NEXT_ACTION_CONTINUE)


class ExplanationEngine:
    """Layer C: error diagnosis, explanation-style selection and feedback rendering."""

    def __init__(
        self,
        config: Optional[ExplanationConfig] = None,
        rng: Optional[RandomSource] = None,
        clock: Callable[[], int] = now_ms,
        bandit: Optional[ExplanationBandit] = None,
    ):
        self.config = config or ExplanationConfig()
        self.clock = clock
        self.bandit = bandit or ExplanationBandit(config=self.config, rng=rng, clock=clock)
        self.error_patterns: Dict[ErrorKey, ErrorPattern] = {}
        self.error_history: Deque[Dict] = deque(maxlen=self.config.error_history_capacity)

    def diagnose_error(
        self,
        skill_id: str,
        question: str,
        correct_answer: float,
        user_answer: float,
        difficulty: int,
        time_spent: float,
        error_tag: Optional[str] = None,
    ) -> str:
        """Classify the answer (unless already tagged) and, for wrong answers, log the error occurrence."""
        if error_tag is None:
            error_tag = classify(skill_id, question, correct_answer, user_answer, difficulty)
        if error_tag == NO_ERROR:
            return error_tag

        now = self.clock()
        self.error_history.append(
            {
                "timestamp": now,
                "skill_id": skill_id,
                "error_tag": error_tag,
                "difficulty": difficulty,
                "time_spent": time_spent,
            }
        )
        pattern = self.error_patterns.setdefault(ErrorKey(skill_id, error_tag), ErrorPattern())
        pattern.count += 1
        pattern.last_seen = now
        return error_tag

    def suggest_next_action(self, skill_id: str, error_tag: str) -> str:
        pattern = self.error_patterns.get(ErrorKey(skill_id, error_tag))
        if pattern and pattern.count >= self.config.recurring_error_count:
            return NEXT_ACTION_REVIEW
        if error_tag == ARITHMETIC_SLIP:
            return NEXT_ACTION_RETRY
        return NEXT_ACTION_CONTINUE

    def generate_feedback(
        self,
        skill_id: str,
        question: str,
        correct_answer: float,
        user_answer: float,
        difficulty: int,
        time_spent: float,
        hint_used: bool,
        hint: str,
        error_tag: Optional[str] = None,
    ) -> Feedback:
        error_tag = self.diagnose_error(
            skill_id, question, correct_answer, user_answer, difficulty, time_spent, error_tag=error_tag
        )
        if error_tag == NO_ERROR:
            return correct_feedback()

        style = self.bandit.select_style(skill_id, error_tag)
        explanation = render_explanation(style, skill_id, error_tag, correct_answer, hint)
        logger.debug(f"Feedback {skill_id}: tag={error_tag} style={style} hint_used={hint_used}")
        return Feedback(
            is_correct=False,
            explanation=explanation,
            next_action=self.suggest_next_action(skill_id, error_tag),
            error_tag=error_tag,
            style_used=style,
        )

    def resolve_pending(self, skill_id: str, error_tag: Optional[str]) -> List[str]:
        """
        Settle delayed rewards for a skill after a new answer on it.

        A pending explanation for the tag just repeated counts as a failure;
        every other pending explanation on the skill counts as a success.
        """

        rewarded = []
        for key in self.bandit.pending_keys_for_skill(skill_id):
            repeated = error_tag is not None and key.error_tag == error_tag
            style = self.bandit.update_from_outcome(skill_id, key.error_tag, error_repeated=repeated)
            if style is not None:
                rewarded.append(style)
        return rewarded

    def update_explanation_effectiveness(self, skill_id: str, error_tag: str, was_effective: bool) -> Optional[str]:
        return self.bandit.update_from_outcome(skill_id, error_tag, error_repeated=not was_effective)

    def error_analytics(self, skill_id: str) -> List[Dict]:
        rows = [
            {"error_tag": key.error_tag, "count": p.count, "last_seen": p.last_seen}
            for key, p in self.error_patterns.items()
            if key.skill_id == skill_id
        ]
        return sorted(rows, key=lambda r: r["count"], reverse=True)

    def most_common_errors(self, n: int = 5) -> List[Dict]:
        rows = [
            {"skill_id": key.skill_id, "error_tag": key.error_tag, "count": p.count, "last_seen": p.last_seen}
            for key, p in self.error_patterns.items()
        ]
        return sorted(rows, key=lambda r: r["count"], reverse=True)[:n]

    def reset(self) -> None:
        self.error_patterns = {}
        self.error_history.clear()
        self.bandit.reset()

    def pattern_records(self) -> List[Dict]:
        return [{"skill_id": k.skill_id, "error_tag": k.error_tag, **asdict(p)} for k, p in self.error_patterns.items()]

    def load_state(self, patterns: Sequence[Dict], history: Sequence[Dict]) -> None:
        self.error_patterns = {
            ErrorKey(str(r["skill_id"]), str(r["error_tag"])): ErrorPattern(
                count=int(r.get("count", 0)), last_seen=int(r.get("last_seen", 0))
            )
            for r in patterns
        }
        self.error_history = deque(history, maxlen=self.config.error_history_capacity)
