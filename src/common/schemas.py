# ABOUTME: Defines the canonical AttemptEvent record shared by all three engine layers.
# ABOUTME: Centralizes event validation, the factory that stamps timestamps, and the reward function.

from __future__ import annotations

import math
import time
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Mapping, Optional

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5

REQUIRED_FIELDS = (
    "user_id",
    "session_id",
    "skill_id",
    "difficulty",
    "correct",
    "response_time_sec",
    "hint_used",
    "attempt_count",
    "timestamp",
)

# Wire names used by every transport (REST body, batch log line, JSON store).
WIRE_KEYS = {
    "user_id": "userId",
    "session_id": "sessionId",
    "skill_id": "skillId",
    "difficulty": "difficulty",
    "correct": "correct",
    "response_time_sec": "responseTimeSec",
    "hint_used": "hintUsed",
    "attempt_count": "attemptCount",
    "error_tag": "errorTag",
    "explanation_style": "explanationStyle",
    "timestamp": "timestamp",
}


class AttemptEventValidationError(ValueError):
    """Raised when an AttemptEvent is malformed."""


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class AttemptEvent:
    """Immutable record of one answered question."""

    user_id: str
    session_id: str
    skill_id: str
    difficulty: int
    correct: bool
    response_time_sec: float
    hint_used: bool
    attempt_count: int
    error_tag: Optional[str]
    explanation_style: Optional[str]
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {WIRE_KEYS[f.name]: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttemptEvent":
        """Rebuild and validate an event from its wire representation."""
        values = {name: data.get(wire) for name, wire in WIRE_KEYS.items()}
        event = cls(**values)
        validate_attempt_event(event)
        return event


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_attempt_inputs(
    skill_id: Any,
    difficulty: Any,
    response_time_sec: Any,
    hint_used: Any,
    attempt_count: Any,
) -> None:
    """
    Check the caller-supplied measurements of an attempt.

    Runs before any layer state is touched so a rejected attempt leaves the
    engine unchanged.
    """

    if not isinstance(skill_id, str) or not skill_id:
        raise AttemptEventValidationError(f"skill_id must be a non-empty string, got {skill_id!r}")
    if not _is_int(difficulty) or not MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY:
        raise AttemptEventValidationError(
            f"difficulty must be an integer between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}, got {difficulty!r}"
        )
    if not _is_number(response_time_sec) or not math.isfinite(response_time_sec) or response_time_sec < 0:
        raise AttemptEventValidationError(
            f"responseTimeSec must be a finite non-negative number, got {response_time_sec!r}"
        )
    if not isinstance(hint_used, bool):
        raise AttemptEventValidationError(f"hintUsed must be a boolean, got {hint_used!r}")
    if not _is_int(attempt_count) or attempt_count < 1:
        raise AttemptEventValidationError(f"attemptCount must be a positive integer, got {attempt_count!r}")


def validate_attempt_event(event: AttemptEvent) -> None:
    """
    Check an event against the schema.

    Raises AttemptEventValidationError naming the offending field; values are
    never coerced.
    """

    for name in REQUIRED_FIELDS:
        if getattr(event, name, None) is None:
            raise AttemptEventValidationError(f"AttemptEvent missing required field: {name}")

    for name in ("user_id", "session_id"):
        value = getattr(event, name)
        if not isinstance(value, str) or not value:
            raise AttemptEventValidationError(f"{name} must be a non-empty string, got {value!r}")

    if not isinstance(event.correct, bool):
        raise AttemptEventValidationError(f"correct must be a boolean, got {event.correct!r}")
    validate_attempt_inputs(
        event.skill_id, event.difficulty, event.response_time_sec, event.hint_used, event.attempt_count
    )
    if not _is_int(event.timestamp) or event.timestamp < 0:
        raise AttemptEventValidationError(f"timestamp must be epoch milliseconds, got {event.timestamp!r}")

    if event.correct:
        if event.error_tag is not None:
            raise AttemptEventValidationError("errorTag must be null when correct=true")
        if event.explanation_style is not None:
            raise AttemptEventValidationError("explanationStyle must be null when correct=true")
    else:
        if not isinstance(event.error_tag, str) or not event.error_tag:
            raise AttemptEventValidationError("errorTag is required when correct=false")
        if not isinstance(event.explanation_style, str) or not event.explanation_style:
            raise AttemptEventValidationError("explanationStyle is required when correct=false")


def create_attempt_event(
    user_id: str,
    session_id: str,
    skill_id: str,
    difficulty: int,
    correct: bool,
    response_time_sec: float,
    hint_used: bool = False,
    attempt_count: int = 1,
    error_tag: Optional[str] = None,
    explanation_style: Optional[str] = None,
    clock: Callable[[], int] = now_ms,
) -> AttemptEvent:
    """
    Build a validated AttemptEvent stamped with the current time.

    Diagnosis fields are dropped for correct answers; an incorrect answer
    without them fails validation.
    """

    event = AttemptEvent(
        user_id=user_id,
        session_id=session_id,
        skill_id=skill_id,
        difficulty=difficulty,
        correct=correct,
        response_time_sec=response_time_sec,
        hint_used=hint_used,
        attempt_count=attempt_count,
        error_tag=None if correct else error_tag,
        explanation_style=None if correct else explanation_style,
        timestamp=clock(),
    )
    validate_attempt_event(event)
    return event


TIME_BONUS = 0.2
DIFFICULTY_BONUS_STEP = 0.1
HINT_PENALTY = 0.3
RETRY_PENALTY = 0.2


def expected_response_time(difficulty: int) -> float:
    """Seconds a competent learner needs at this difficulty (8s at 1, 20s at 5)."""
    return 5 + difficulty * 3


def compute_reward(event: AttemptEvent, context: Optional[Mapping[str, Any]] = None) -> float:
    """
    Composite reward for analytics and future RL hooks.

    The bandit layers learn from raw correctness; this score is not consumed by
    them. ``context`` is accepted for interface compatibility and unused.
    """

    reward = 1.0 if event.correct else 0.0
    if event.correct and event.response_time_sec < expected_response_time(event.difficulty) * 1.5:
        reward += TIME_BONUS
    if event.correct:
        reward += (event.difficulty - 1) * DIFFICULTY_BONUS_STEP
    if event.hint_used:
        reward -= HINT_PENALTY
    if event.attempt_count > 1:
        reward -= (event.attempt_count - 1) * RETRY_PENALTY
    return max(0.0, reward)
