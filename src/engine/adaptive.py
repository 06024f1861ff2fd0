# ABOUTME: Per-learner orchestrator wiring difficulty, scheduling and explanation layers together.
# ABOUTME: Sequences every attempt, logs validated AttemptEvents and persists state best-effort.

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Sequence

from loguru import logger

from src.common.bandit import NumpyRandomSource, RandomSource
from src.common.config import EngineConfig
from src.common.schemas import (
    AttemptEvent,
    AttemptEventValidationError,
    create_attempt_event,
    now_ms,
    validate_attempt_inputs,
)
from src.common.storage import InMemoryStore, LearnerStore
from src.difficulty import DifficultyBandit, DifficultyContext, build_difficulty_context
from src.explanation import ExplanationEngine, Feedback, correct_feedback
from src.explanation.classifier import classify, known_skills
from src.scheduler import ReviewItem, SessionSignals, SkillDecision, SkillScheduler

from .state import LearnerProfile, SessionData

# (exclusive threshold, fatigue added)
FATIGUE_MINUTE_STEPS = ((20, 0.3), (40, 0.3))
FATIGUE_QUESTION_STEPS = ((30, 0.2), (50, 0.2))
CHALLENGE_ACCURACY = 0.85
REST_QUESTION_COUNT = 40
PROGRESS_WINDOW = 30

# Valid JSON in the wrong shape surfaces as one of these while loading.
STORED_SHAPE_ERRORS = (KeyError, TypeError, ValueError, AttributeError)


@dataclass(frozen=True)
class AttemptPlan:
    """Difficulty decision for one attempt; its context is reused for hint checks."""

    skill_id: str
    difficulty: int
    context: DifficultyContext
    planned_at: int


@dataclass(frozen=True)
class AttemptOutcome:
    event: AttemptEvent
    feedback: Feedback
    session_accuracy: float
    current_streak: int
    mastery: float
    rewarded_styles: List[str] = field(default_factory=list)


class AdaptiveEngine:
    """
    All mutable state for one learner.

    Callers sequence attempts: plan_attempt -> (should_show_hint)* ->
    submit_answer. Every decision reads state left by the previous attempt.
    """

    def __init__(
        self,
        user_id: str = "guest",
        store: Optional[LearnerStore] = None,
        config: Optional[EngineConfig] = None,
        rng: Optional[RandomSource] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or EngineConfig()
        self.store = store if store is not None else InMemoryStore()
        self.rng = rng or NumpyRandomSource(self.config.seed)
        self.clock = clock

        self.difficulty = DifficultyBandit(self.config.difficulty, self.rng, clock)
        self.scheduler = SkillScheduler(self.config.scheduler, self.rng, clock)
        self.explanation = ExplanationEngine(self.config.explanation, self.rng, clock)

        self.profile = LearnerProfile(user_id=user_id, created_at=clock())
        self.question_logs: Deque[AttemptEvent] = deque(maxlen=self.config.session.question_log_capacity)
        self.session = SessionData.start(clock(), self.config.session.recent_questions_capacity)
        self._load_state(user_id)
        self.store.save_profile(self.profile.to_dict())

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    def _load_state(self, user_id: str) -> None:
        """
        Restore every layer from the store.

        A section whose stored shape is unusable is logged and reset to its
        default; the other sections still load.
        """

        sections = (
            ("profile", lambda: self._load_profile(user_id), self._reset_profile),
            (
                "difficulty_arms",
                lambda: self.difficulty.load_records(self.store.load_difficulty_arms()),
                self.difficulty.reset,
            ),
            (
                "scheduler",
                lambda: self.scheduler.load_state(self.store.load_review_queue(), self.store.load_skill_mastery()),
                self.scheduler.reset,
            ),
            (
                "explanation_arms",
                lambda: self.explanation.bandit.load_records(self.store.load_explanation_arms()),
                self.explanation.bandit.reset,
            ),
            (
                "error_patterns",
                lambda: self.explanation.load_state(self.store.load_error_patterns(), self.store.load_error_history()),
                lambda: self.explanation.load_state([], []),
            ),
            ("question_logs", lambda: self._load_question_logs(user_id), self.question_logs.clear),
        )
        for name, load, reset in sections:
            try:
                load()
            except STORED_SHAPE_ERRORS as exc:
                logger.warning(f"Discarding stored {name} for {user_id}: {exc!r}")
                reset()

    def _load_profile(self, user_id: str) -> None:
        self.profile = LearnerProfile.from_dict(self.store.load_profile(), user_id, self.clock())

    def _reset_profile(self) -> None:
        self.profile = LearnerProfile(user_id=self.profile.user_id, created_at=self.clock())

    def _load_question_logs(self, user_id: str) -> None:
        capacity = self.config.session.question_log_capacity
        for record in self.store.load_question_logs(capacity):
            try:
                self.question_logs.append(AttemptEvent.from_dict(record))
            except (AttemptEventValidationError, TypeError, AttributeError) as exc:
                logger.warning(f"Skipping stored attempt for {user_id}: {exc}")

    def persist(self) -> None:
        store = self.store
        store.save_profile(self.profile.to_dict())
        store.save_question_logs([e.to_dict() for e in self.question_logs], self.config.session.question_log_capacity)
        store.save_difficulty_arms(self.difficulty.to_records())
        store.save_review_queue(self.scheduler.reviews.to_records())
        store.save_skill_mastery(self.scheduler.mastery.snapshot())
        store.save_explanation_arms(self.explanation.bandit.to_records())
        store.save_error_patterns(self.explanation.pattern_records())
        store.save_error_history(list(self.explanation.error_history), self.config.explanation.error_history_capacity)

    # ------------------------------------------------------------------
    # session signals
    # ------------------------------------------------------------------

    def fatigue_score(self) -> float:
        minutes = self.session.duration_min(self.clock())
        questions = self.session.questions_attempted
        fatigue = sum(step for bound, step in FATIGUE_MINUTE_STEPS if minutes > bound)
        fatigue += sum(step for bound, step in FATIGUE_QUESTION_STEPS if questions > bound)
        return min(1.0, fatigue)

    def recent_accuracy(self) -> float:
        recent = self.session.recent_questions
        if not recent:
            return 0.5
        return sum(1 for e in recent if e.correct) / len(recent)

    def session_signals(self) -> SessionSignals:
        return SessionSignals(
            fatigue_score=self.fatigue_score(),
            session_length_min=self.session.duration_min(self.clock()),
            recent_accuracy=self.recent_accuracy(),
            streak=self.session.current_streak,
            recent_errors=self.session.recent_errors,
        )

    def difficulty_context(self, skill_id: str) -> DifficultyContext:
        return build_difficulty_context(
            skill_id,
            list(self.question_logs),
            list(self.session.recent_questions),
            streak=self.session.current_streak,
            fatigue_score=self.fatigue_score(),
            config=self.config.difficulty,
            fatigue_threshold=self.config.scheduler.fatigue_threshold,
        )

    # ------------------------------------------------------------------
    # decisions
    # ------------------------------------------------------------------

    def plan_attempt(self, skill_id: str) -> AttemptPlan:
        context = self.difficulty_context(skill_id)
        difficulty = self.difficulty.select_difficulty(skill_id, context)
        return AttemptPlan(skill_id=skill_id, difficulty=difficulty, context=context, planned_at=self.clock())

    def select_difficulty(self, skill_id: str) -> int:
        return self.plan_attempt(skill_id).difficulty

    def should_show_hint(self, plan: AttemptPlan, attempt_number: int, time_spent: float) -> bool:
        return self.difficulty.should_show_hint(plan.context, attempt_number, time_spent)

    def select_next_skill(self, available: Sequence[str]) -> Optional[SkillDecision]:
        return self.scheduler.select_next_skill(available, self.session_signals())

    def should_insert_review(self) -> bool:
        return self.scheduler.should_insert_review(self.session.questions_attempted)

    def due_reviews(self) -> List[ReviewItem]:
        return self.scheduler.due_reviews()

    # ------------------------------------------------------------------
    # attempts
    # ------------------------------------------------------------------

    def is_correct(self, correct_answer: float, user_answer: float) -> bool:
        return abs(correct_answer - user_answer) < self.config.session.answer_tolerance

    def submit_answer(
        self,
        plan: AttemptPlan,
        question: str,
        correct_answer: float,
        user_answer: float,
        response_time_sec: float,
        hint_used: bool = False,
        attempt_count: int = 1,
        hint: str = "",
    ) -> AttemptOutcome:
        """
        Grade an answer, explain it, and fold it into every layer.

        Pending explanations for the skill are settled before a new style is
        chosen: repeating a pending error tag marks that explanation as a
        failure, anything else marks it as a success. Inputs are validated
        before any layer changes, so a rejected attempt leaves no trace.
        """

        skill_id = plan.skill_id
        validate_attempt_inputs(skill_id, plan.difficulty, response_time_sec, hint_used, attempt_count)
        correct = self.is_correct(correct_answer, user_answer)

        if correct:
            rewarded = self.explanation.resolve_pending(skill_id, None)
            feedback = correct_feedback()
        else:
            error_tag = classify(skill_id, question, correct_answer, user_answer, plan.difficulty)
            rewarded = self.explanation.resolve_pending(skill_id, error_tag)
            feedback = self.explanation.generate_feedback(
                skill_id, question, correct_answer, user_answer, plan.difficulty, response_time_sec, hint_used, hint,
                error_tag=error_tag,
            )

        event = self.log_attempt(
            skill_id,
            plan.difficulty,
            correct,
            response_time_sec,
            hint_used=hint_used,
            attempt_count=attempt_count,
            error_tag=feedback.error_tag,
            explanation_style=feedback.style_used,
        )
        return AttemptOutcome(
            event=event,
            feedback=feedback,
            session_accuracy=self.session.accuracy,
            current_streak=self.session.current_streak,
            mastery=self.scheduler.get_mastery(skill_id),
            rewarded_styles=rewarded,
        )

    def log_attempt(
        self,
        skill_id: str,
        difficulty: int,
        correct: bool,
        response_time_sec: float,
        hint_used: bool = False,
        attempt_count: int = 1,
        error_tag: Optional[str] = None,
        explanation_style: Optional[str] = None,
    ) -> AttemptEvent:
        event = create_attempt_event(
            user_id=self.profile.user_id,
            session_id=self.session.session_id,
            skill_id=skill_id,
            difficulty=difficulty,
            correct=correct,
            response_time_sec=response_time_sec,
            hint_used=hint_used,
            attempt_count=attempt_count,
            error_tag=error_tag,
            explanation_style=explanation_style,
            clock=self.clock,
        )

        self.question_logs.append(event)
        self.session.record(event)

        self.difficulty.update_arm(skill_id, difficulty, correct, response_time_sec)
        self.scheduler.update_mastery(skill_id, correct, difficulty)
        self.scheduler.update_spaced_repetition(skill_id, correct)
        self.scheduler.update_session_tracking(skill_id)

        self.profile.total_questions += 1
        if correct:
            self.profile.total_correct += 1

        self.persist()
        logger.debug(
            f"{self.profile.user_id} {skill_id} d{difficulty} correct={correct} "
            f"mastery={self.scheduler.get_mastery(skill_id):.2f}"
        )
        return event

    def update_explanation_effectiveness(self, skill_id: str, error_tag: str, was_effective: bool) -> Optional[str]:
        style = self.explanation.update_explanation_effectiveness(skill_id, error_tag, was_effective)
        self.store.save_explanation_arms(self.explanation.bandit.to_records())
        return style

    # ------------------------------------------------------------------
    # sessions
    # ------------------------------------------------------------------

    def start_session(self) -> SessionData:
        self.session = SessionData.start(self.clock(), self.config.session.recent_questions_capacity)
        self.profile.total_sessions += 1
        self.store.save_profile(self.profile.to_dict())
        logger.info(f"Started {self.session.session_id} for {self.profile.user_id}")
        return self.session

    def end_session(self) -> Dict:
        summary = {
            "session_id": self.session.session_id,
            "duration_min": round(self.session.duration_min(self.clock()), 1),
            "questions_attempted": self.session.questions_attempted,
            "accuracy": round(self.session.accuracy * 100, 1),
            "avg_time": round(self.session.average_time, 1),
            "best_streak": self.session.best_streak,
        }
        logger.info(f"Ended {self.session.session_id}: {summary}")
        return summary

    # ------------------------------------------------------------------
    # analytics
    # ------------------------------------------------------------------

    def insights(self) -> Dict:
        due_count = len(self.due_reviews())
        insights = {
            "total_questions": self.profile.total_questions,
            "overall_accuracy": self.profile.overall_accuracy,
            "session_questions": self.session.questions_attempted,
            "session_accuracy": round(self.session.accuracy * 100, 1),
            "current_streak": self.session.current_streak,
            "average_time": round(self.session.average_time, 1),
            "fatigue_score": round(self.fatigue_score() * 100),
            "due_reviews": due_count,
            "weakest_skills": self.scheduler.mastery.weakest(3),
            "common_errors": self.explanation.most_common_errors(5),
            "recommendations": [],
        }

        if self.session.questions_attempted and self.session.accuracy > CHALLENGE_ACCURACY:
            insights["recommendations"].append(
                {"type": "challenge", "message": "You're doing great! Difficulty will increase automatically."}
            )
        if due_count > 0:
            insights["recommendations"].append(
                {"type": "review", "message": f"You have {due_count} skill(s) due for review to maintain mastery."}
            )
        if self.session.questions_attempted > REST_QUESTION_COUNT:
            insights["recommendations"].append(
                {"type": "rest", "message": "Great session! Consider taking a break to avoid fatigue."}
            )
        return insights

    def progress_data(self, last_n: int = PROGRESS_WINDOW) -> Dict[str, List[Dict]]:
        recent = list(self.question_logs)[-last_n:]
        return {
            "accuracy_over_time": [{"x": i + 1, "y": int(e.correct)} for i, e in enumerate(recent)],
            "time_over_time": [{"x": i + 1, "y": e.response_time_sec} for i, e in enumerate(recent)],
            "difficulty_over_time": [{"x": i + 1, "y": e.difficulty} for i, e in enumerate(recent)],
        }

    def skill_mastery_data(self, skills: Optional[Sequence[str]] = None) -> List[Dict]:
        skills = list(skills) if skills is not None else list(known_skills())
        return [
            {
                "skill_id": skill_id,
                "mastery": self.scheduler.get_mastery(skill_id),
                "attempts": sum(1 for e in self.question_logs if e.skill_id == skill_id),
            }
            for skill_id in skills
        ]

    def scheduler_stats(self) -> Dict:
        return self.scheduler.session_stats()

    def difficulty_statistics(self, skill_id: str):
        return self.difficulty.arm_statistics(skill_id)

    def error_analytics(self, skill_id: str) -> List[Dict]:
        return self.explanation.error_analytics(skill_id)

    def reset_progress(self) -> bool:
        """Wipe every layer and the learner's stored data; the user id survives."""
        user_id = self.profile.user_id
        self.difficulty.reset()
        self.scheduler.reset()
        self.explanation.reset()
        self.store.clear_all()

        self.profile = LearnerProfile(user_id=user_id, created_at=self.clock())
        self.question_logs.clear()
        self.session = SessionData.start(self.clock(), self.config.session.recent_questions_capacity)
        self.store.save_profile(self.profile.to_dict())
        logger.info(f"Reset all progress for {user_id}")
        return True
