# ABOUTME: End-to-end tests of the per-learner orchestrator across all three layers.
# ABOUTME: Uses an in-memory store, a fixed clock and scripted draws for reproducibility.

import pytest

from src.common.schemas import AttemptEventValidationError
from src.common.storage import InMemoryStore
from src.engine import AdaptiveEngine, adaptive
from src.explanation import feedback
from src.explanation.classifier import classify
from src.scheduler import DAY_MS
from tests.fakes import FixedClock, ScriptedRandom

MINUTE_MS = 60 * 1000


def _engine(rng=None, store=None, clock=None, user_id="learner"):
    return AdaptiveEngine(
        user_id=user_id,
        store=store if store is not None else InMemoryStore(),
        rng=rng or ScriptedRandom(),
        clock=clock or FixedClock(),
    )


def test_five_correct_attempts_build_mastery_and_arm():
    engine = _engine()
    for _ in range(5):
        engine.log_attempt("s1", 3, True, 2.0)

    assert engine.scheduler.get_mastery("s1") == pytest.approx(0.25)
    arm = engine.difficulty.get_arm("s1", 3)
    assert (arm.pulls, arm.successes) == (5, 5)
    assert engine.session.current_streak == 5
    assert engine.profile.total_correct == 5


def test_repeating_the_same_error_penalizes_the_served_style():
    # always explore: explanations come out "short", difficulty picks its lowest candidate
    engine = _engine(rng=ScriptedRandom(default_random=0.0, default_randrange=0))
    for _ in range(3):
        plan = engine.plan_attempt("b1")
        outcome = engine.submit_answer(plan, "14 + 5 + 6 + 25", 50, 40, response_time_sec=5.0, hint="Pair 14 and 6")
        assert outcome.feedback.error_tag == "pairing_missed"
        assert outcome.feedback.style_used == "short"

    arm = engine.explanation.bandit.get_arm("b1", "pairing_missed", "short")
    assert arm.beta == 3.0
    assert arm.alpha == 1.0
    assert arm.pulls == 2


def test_correct_answer_after_explanation_rewards_it():
    engine = _engine(rng=ScriptedRandom(default_random=0.0, default_randrange=0))
    plan = engine.plan_attempt("b1")
    engine.submit_answer(plan, "q", 50, 40, response_time_sec=5.0)

    plan = engine.plan_attempt("b1")
    outcome = engine.submit_answer(plan, "q", 50, 50, response_time_sec=5.0)
    assert outcome.rewarded_styles == ["short"]
    assert engine.explanation.bandit.get_arm("b1", "pairing_missed", "short").alpha == 2.0


def test_answers_within_tolerance_are_correct():
    engine = _engine()
    plan = engine.plan_attempt("m2")
    outcome = engine.submit_answer(plan, "3.6 × 23 + 3.6 × 77", 360.0, 360.004, response_time_sec=9.0)
    assert outcome.feedback.is_correct
    assert outcome.event.correct
    assert outcome.event.error_tag is None and outcome.event.explanation_style is None


def test_wrong_answer_event_carries_diagnosis():
    engine = _engine()
    plan = engine.plan_attempt("b1")
    outcome = engine.submit_answer(plan, "q", 50, 47, response_time_sec=4.0, hint_used=True, attempt_count=2)
    event = outcome.event
    assert not event.correct
    assert event.error_tag == "arithmetic_mistake"
    assert event.explanation_style in ("short", "stepwise", "analogy")
    assert event.difficulty == plan.difficulty
    assert event.hint_used and event.attempt_count == 2
    assert outcome.current_streak == 0


def test_plan_context_is_reused_for_hint_checks():
    engine = _engine(rng=ScriptedRandom(default_random=0.9))
    for _ in range(3):
        engine.log_attempt("b1", 2, False, 3.0, error_tag="arithmetic_mistake", explanation_style="short")
    plan = engine.plan_attempt("b1")
    assert plan.context.recent_errors == 3
    assert plan.context.current_difficulty == 2
    assert engine.should_show_hint(plan, attempt_number=1, time_spent=1.0)
    assert engine.should_show_hint(plan, attempt_number=2, time_spent=1.0)


def test_difficulty_plan_stays_in_bounds():
    engine = _engine(rng=ScriptedRandom(default_random=0.5))
    plan = engine.plan_attempt("b1")
    assert 1 <= plan.difficulty <= 5
    assert plan.skill_id == "b1"


def test_fatigue_grows_with_time_and_volume():
    clock = FixedClock()
    engine = _engine(clock=clock)
    assert engine.fatigue_score() == 0.0
    clock.advance(25 * MINUTE_MS)
    assert engine.fatigue_score() == pytest.approx(0.3)
    clock.advance(20 * MINUTE_MS)
    assert engine.fatigue_score() == pytest.approx(0.6)
    for _ in range(31):
        engine.log_attempt("b1", 1, True, 1.0)
    assert engine.fatigue_score() == pytest.approx(0.8)
    assert engine.session_signals().fatigue_score == pytest.approx(0.8)


def test_state_survives_reload_from_store():
    store = InMemoryStore()
    clock = FixedClock()
    engine = _engine(store=store, clock=clock)
    engine.log_attempt("b1", 3, True, 2.0)
    engine.log_attempt("b1", 4, False, 5.0, error_tag="pairing_missed", explanation_style="short")
    engine.explanation.generate_feedback("b1", "q", 50, 40, 3, 5.0, False, "h")
    engine.persist()

    reloaded = _engine(store=store, clock=clock)
    assert [e.difficulty for e in reloaded.question_logs] == [3, 4]
    assert reloaded.scheduler.get_mastery("b1") == pytest.approx(engine.scheduler.get_mastery("b1"))
    assert reloaded.difficulty.get_arm("b1", 4).pulls == 1
    assert reloaded.scheduler.reviews.get("b1") == engine.scheduler.reviews.get("b1")
    assert reloaded.explanation.error_analytics("b1") == engine.explanation.error_analytics("b1")
    assert reloaded.profile.total_questions == 2
    # pending explanations live only in memory
    assert not reloaded.explanation.bandit.pending


@pytest.mark.parametrize(
    "stored",
    [
        {"question_logs": [{"userId": "x"}, "not a dict", 5]},
        {"question_logs": 5},
        {"profile": "x"},
        {"profile": {"total_questions": "lots"}},
        {"difficulty_arms": [{"difficulty": 2}]},
        {"skill_mastery": [["b1", 0.5]]},
        {"review_queue": ["x"]},
        {"explanation_arms": [{"style": "short"}]},
        {"error_patterns": [{"count": 2}]},
        {"error_history": 5},
    ],
)
def test_wrong_shape_stored_state_falls_back_to_defaults(stored):
    engine = _engine(store=InMemoryStore(stored))
    assert not engine.question_logs
    assert engine.profile.total_questions == 0
    assert engine.difficulty.arms == {}
    assert engine.scheduler.get_mastery("b1") == 0.0
    assert engine.explanation.bandit.arms == {}
    assert engine.explanation.error_patterns == {}

    engine.log_attempt("b1", 3, True, 2.0)
    assert engine.profile.total_questions == 1
    assert len(engine.question_logs) == 1


def test_one_broken_section_does_not_discard_the_others():
    store = InMemoryStore({"profile": ["x"], "skill_mastery": {"b1": 0.4}, "difficulty_arms": "junk"})
    engine = _engine(store=store)
    assert engine.scheduler.get_mastery("b1") == pytest.approx(0.4)
    assert engine.profile.user_id == "learner"
    assert engine.difficulty.arms == {}


def test_rejected_answer_leaves_every_layer_untouched():
    # always explore: the first wrong answer leaves a pending "short" explanation
    engine = _engine(rng=ScriptedRandom(default_random=0.0, default_randrange=0))
    plan = engine.plan_attempt("b1")
    engine.submit_answer(plan, "q", 50, 40, response_time_sec=5.0)
    arm = engine.explanation.bandit.get_arm("b1", "pairing_missed", "short")
    arm_before = (arm.alpha, arm.beta, arm.pulls)
    mastery_before = engine.scheduler.get_mastery("b1")

    plan = engine.plan_attempt("b1")
    for bad_time in (-1.0, float("nan")):
        with pytest.raises(AttemptEventValidationError):
            engine.submit_answer(plan, "q", 50, 40, response_time_sec=bad_time)
    with pytest.raises(AttemptEventValidationError):
        engine.submit_answer(plan, "q", 50, 40, response_time_sec=5.0, attempt_count=0)

    assert engine.explanation.bandit.has_pending("b1", "pairing_missed")
    assert (arm.alpha, arm.beta, arm.pulls) == arm_before
    assert engine.explanation.error_analytics("b1")[0]["count"] == 1
    assert len(engine.explanation.error_history) == 1
    assert len(engine.question_logs) == 1
    assert engine.profile.total_questions == 1
    assert engine.scheduler.get_mastery("b1") == mastery_before


def test_wrong_answer_is_classified_once(monkeypatch):
    calls = []

    def counting_classify(*args):
        calls.append(args)
        return classify(*args)

    monkeypatch.setattr(adaptive, "classify", counting_classify)
    monkeypatch.setattr(feedback, "classify", counting_classify)

    engine = _engine()
    plan = engine.plan_attempt("b1")
    outcome = engine.submit_answer(plan, "14 + 5 + 6 + 25", 50, 40, response_time_sec=5.0)
    assert outcome.feedback.error_tag == "pairing_missed"
    assert len(calls) == 1


def test_learners_are_isolated():
    a, b = _engine(user_id="a"), _engine(user_id="b")
    a.log_attempt("b1", 3, True, 2.0)
    assert b.scheduler.get_mastery("b1") == 0.0
    assert not b.question_logs


def test_sessions_and_summary():
    clock = FixedClock()
    engine = _engine(clock=clock)
    engine.start_session()
    engine.log_attempt("b1", 2, True, 4.0)
    engine.log_attempt("b1", 2, True, 6.0)
    engine.log_attempt("b1", 2, False, 2.0, error_tag="arithmetic_mistake", explanation_style="short")
    clock.advance(3 * MINUTE_MS)

    summary = engine.end_session()
    assert summary["questions_attempted"] == 3
    assert summary["accuracy"] == pytest.approx(66.7)
    assert summary["avg_time"] == pytest.approx(4.0)
    assert summary["best_streak"] == 2
    assert summary["duration_min"] == pytest.approx(3.0)
    assert engine.profile.total_sessions == 1

    engine.start_session()
    assert engine.session.questions_attempted == 0
    assert engine.profile.total_sessions == 2


def test_insights_recommend_reviews_when_due():
    clock = FixedClock()
    engine = _engine(clock=clock)
    engine.log_attempt("b1", 3, True, 2.0)
    clock.advance(2 * DAY_MS)

    insights = engine.insights()
    assert insights["due_reviews"] == 1
    assert insights["total_questions"] == 1
    assert {r["type"] for r in insights["recommendations"]} == {"challenge", "review"}


def test_progress_and_mastery_data():
    engine = _engine()
    for difficulty in (1, 2, 3):
        engine.log_attempt("a1", difficulty, True, float(difficulty))

    progress = engine.progress_data()
    assert [p["y"] for p in progress["difficulty_over_time"]] == [1, 2, 3]
    assert [p["x"] for p in progress["accuracy_over_time"]] == [1, 2, 3]

    rows = {r["skill_id"]: r for r in engine.skill_mastery_data()}
    assert set(rows) == {"b1", "b2", "b3", "m1", "m2", "a1", "a2"}
    assert rows["a1"]["attempts"] == 3
    assert rows["b1"]["mastery"] == 0.0


def test_select_next_skill_and_reviews_delegate_to_scheduler():
    engine = _engine(rng=ScriptedRandom(default_random=0.99))
    assert engine.select_next_skill([]) is None
    decision = engine.select_next_skill(["b1", "b2"])
    assert decision.skill_id in ("b1", "b2")
    assert engine.due_reviews() == []
    assert not engine.should_insert_review()


def test_manual_effectiveness_update_is_persisted():
    store = InMemoryStore()
    engine = _engine(rng=ScriptedRandom(default_random=0.0, default_randrange=1), store=store)
    plan = engine.plan_attempt("b1")
    engine.submit_answer(plan, "q", 50, 40, response_time_sec=3.0)

    assert engine.update_explanation_effectiveness("b1", "pairing_missed", was_effective=True) == "stepwise"
    assert engine.update_explanation_effectiveness("b1", "pairing_missed", was_effective=True) is None
    stored = {(r["error_tag"], r["style"]): r for r in store.load_explanation_arms()}
    assert stored[("pairing_missed", "stepwise")]["alpha"] == 2.0


def test_stats_passthroughs():
    engine = _engine()
    engine.log_attempt("b1", 2, True, 3.0)
    assert engine.scheduler_stats()["total_skills_tracked"] == 1
    assert [s.difficulty for s in engine.difficulty_statistics("b1")] == [2]
    assert engine.error_analytics("b1") == []


def test_reset_progress_wipes_learner():
    store = InMemoryStore()
    engine = _engine(store=store)
    plan = engine.plan_attempt("b1")
    engine.submit_answer(plan, "q", 50, 40, response_time_sec=3.0)

    assert engine.reset_progress()
    assert not engine.question_logs
    assert engine.scheduler.get_mastery("b1") == 0.0
    assert engine.difficulty.arms == {}
    assert engine.explanation.error_patterns == {}
    assert store.load_question_logs() == []
    assert engine.profile.user_id == "learner"
    assert engine.profile.total_questions == 0
