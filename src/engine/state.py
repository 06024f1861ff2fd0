# ABOUTME: Per-learner profile and in-session state owned by the adaptive engine.
# ABOUTME: Profiles round-trip through the store; session data lives only for one sitting.

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Deque, Dict, Mapping

from src.common.config import RECENT_QUESTIONS_CAPACITY
from src.common.schemas import AttemptEvent

MINUTE_MS = 60 * 1000


@dataclass
class LearnerProfile:
    user_id: str
    created_at: int
    total_sessions: int = 0
    total_questions: int = 0
    total_correct: int = 0
    preferences: Dict[str, Any] = field(
        default_factory=lambda: {"target_accuracy": 0.75, "max_difficulty": 5, "hint_preference": "adaptive"}
    )

    @property
    def overall_accuracy(self) -> float:
        return self.total_correct / self.total_questions if self.total_questions else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], user_id: str, created_at: int) -> "LearnerProfile":
        """Tolerates partial or corrupted counters by falling back to zero."""

        def _count(name: str) -> int:
            value = data.get(name)
            return value if isinstance(value, int) and not isinstance(value, bool) and value >= 0 else 0

        profile = cls(
            user_id=str(data.get("user_id") or user_id),
            created_at=int(data.get("created_at") or created_at),
            total_sessions=_count("total_sessions"),
            total_questions=_count("total_questions"),
            total_correct=_count("total_correct"),
        )
        if isinstance(data.get("preferences"), dict):
            profile.preferences.update(data["preferences"])
        return profile


@dataclass
class SessionData:
    session_id: str
    start_time: int
    questions_attempted: int = 0
    correct_answers: int = 0
    total_time: float = 0.0
    current_streak: int = 0
    best_streak: int = 0
    recent_errors: int = 0  # consecutive wrong answers
    recent_questions: Deque[AttemptEvent] = field(default_factory=lambda: deque(maxlen=RECENT_QUESTIONS_CAPACITY))

    @classmethod
    def start(cls, now: int, capacity: int = RECENT_QUESTIONS_CAPACITY) -> "SessionData":
        return cls(session_id=f"session_{now}", start_time=now, recent_questions=deque(maxlen=capacity))

    def record(self, event: AttemptEvent) -> None:
        self.questions_attempted += 1
        if event.correct:
            self.correct_answers += 1
            self.current_streak += 1
            self.best_streak = max(self.best_streak, self.current_streak)
            self.recent_errors = 0
        else:
            self.current_streak = 0
            self.recent_errors += 1
        self.total_time += event.response_time_sec
        self.recent_questions.append(event)

    def duration_min(self, now: int) -> float:
        return max(0, now - self.start_time) / MINUTE_MS

    @property
    def accuracy(self) -> float:
        return self.correct_answers / self.questions_attempted if self.questions_attempted else 0.0

    @property
    def average_time(self) -> float:
        return self.total_time / self.questions_attempted if self.questions_attempted else 0.0
