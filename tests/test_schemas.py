# ABOUTME: Tests AttemptEvent validation, the stamping factory and the composite reward.
# ABOUTME: Covers the correct/errorTag/explanationStyle null-coupling rule in both directions.

import dataclasses

import pytest

from src.common.schemas import (
    AttemptEvent,
    AttemptEventValidationError,
    compute_reward,
    create_attempt_event,
    validate_attempt_event,
    validate_attempt_inputs,
)
from tests.fakes import FixedClock


def _event(**overrides):
    base = dict(
        user_id="u1",
        session_id="s1",
        skill_id="b1",
        difficulty=3,
        correct=True,
        response_time_sec=4.0,
        hint_used=False,
        attempt_count=1,
        error_tag=None,
        explanation_style=None,
        timestamp=1000,
    )
    base.update(overrides)
    return AttemptEvent(**base)


def test_incorrect_without_error_tag_fails():
    with pytest.raises(AttemptEventValidationError, match="errorTag"):
        create_attempt_event("u1", "s1", "b1", 3, correct=False, response_time_sec=2.0)


def test_correct_with_error_tag_is_forced_to_null():
    event = create_attempt_event(
        "u1", "s1", "b1", 3, correct=True, response_time_sec=2.0, error_tag="pairing_missed", explanation_style="short"
    )
    assert event.error_tag is None
    assert event.explanation_style is None


def test_factory_stamps_timestamp_from_clock():
    clock = FixedClock(now=42_000)
    event = create_attempt_event("u1", "s1", "b1", 2, correct=True, response_time_sec=1.5, clock=clock)
    assert event.timestamp == 42_000


@pytest.mark.parametrize(
    "overrides",
    [
        {"difficulty": 0},
        {"difficulty": 6},
        {"difficulty": 2.5},
        {"difficulty": True},
        {"response_time_sec": -1.0},
        {"response_time_sec": float("nan")},
        {"response_time_sec": float("inf")},
        {"attempt_count": 0},
        {"correct": 1},
        {"hint_used": "no"},
        {"skill_id": ""},
        {"user_id": None},
    ],
)
def test_malformed_events_are_rejected(overrides):
    with pytest.raises(AttemptEventValidationError):
        validate_attempt_event(_event(**overrides))


def test_non_finite_response_time_is_rejected_before_building():
    with pytest.raises(AttemptEventValidationError, match="finite"):
        validate_attempt_inputs("b1", 3, float("nan"), False, 1)
    with pytest.raises(AttemptEventValidationError, match="finite"):
        create_attempt_event("u1", "s1", "b1", 3, correct=True, response_time_sec=float("nan"))
    validate_attempt_inputs("b1", 3, 0.0, False, 1)


def test_correct_event_with_error_tag_is_rejected_by_validation():
    with pytest.raises(AttemptEventValidationError, match="null"):
        validate_attempt_event(_event(error_tag="pairing_missed"))


def test_incorrect_event_needs_explanation_style():
    with pytest.raises(AttemptEventValidationError, match="explanationStyle"):
        validate_attempt_event(_event(correct=False, error_tag="pairing_missed"))


def test_wire_format_uses_camel_case_and_reloads():
    event = _event(correct=False, error_tag="pairing_missed", explanation_style="short")
    wire = event.to_dict()
    assert wire["responseTimeSec"] == 4.0
    assert wire["errorTag"] == "pairing_missed"
    assert AttemptEvent.from_dict(wire) == event


def test_from_dict_rejects_missing_fields():
    wire = _event().to_dict()
    del wire["sessionId"]
    with pytest.raises(AttemptEventValidationError, match="session_id"):
        AttemptEvent.from_dict(wire)


def test_reward_for_fast_correct_answer():
    # base 1.0 + time bonus 0.2 + (3-1)*0.1
    assert compute_reward(_event(difficulty=3, response_time_sec=4.0)) == pytest.approx(1.4)


def test_reward_penalties_and_floor():
    slow_hinted = _event(difficulty=1, response_time_sec=60.0, hint_used=True, attempt_count=2)
    assert compute_reward(slow_hinted) == pytest.approx(1.0 - 0.3 - 0.2)

    wrong = _event(correct=False, error_tag="x", explanation_style="short", hint_used=True, attempt_count=3)
    assert compute_reward(wrong) == 0.0


def test_events_are_immutable():
    event = _event()
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.correct = False
