# ABOUTME: Tests the difficulty context builder, contextual bandit selection and hint policy.
# ABOUTME: Midpoint draws remove sampling noise so adjustments decide the argmax.

import pytest

from src.common.bandit import NumpyRandomSource
from src.difficulty import DifficultyBandit, DifficultyContext, build_difficulty_context
from src.common.schemas import create_attempt_event
from tests.fakes import FixedClock, ScriptedRandom


def _attempt(skill_id, correct, difficulty=3, hint_used=False):
    return create_attempt_event(
        "u1",
        "s1",
        skill_id,
        difficulty,
        correct=correct,
        response_time_sec=3.0,
        hint_used=hint_used,
        error_tag=None if correct else "x",
        explanation_style=None if correct else "short",
        clock=FixedClock(),
    )


def _no_noise_bandit():
    # 0.5 never explores and zeroes the sampler noise
    return DifficultyBandit(rng=ScriptedRandom(default_random=0.5), clock=FixedClock())


def test_context_defaults_without_history():
    context = build_difficulty_context("b1", [], [], streak=0, fatigue_score=0.0)
    assert context == DifficultyContext()


def test_context_uses_last_five_attempts_on_the_skill():
    logs = [_attempt("b1", False, 1)] + [_attempt("b1", True, 4) for _ in range(5)] + [_attempt("b2", False, 2)]
    context = build_difficulty_context("b1", logs, [], streak=0, fatigue_score=0.0)
    assert context.recent_accuracy == 1.0
    assert context.current_difficulty == 4


def test_context_session_windows():
    recent = [
        _attempt("b1", True, hint_used=True),
        _attempt("b2", False, hint_used=True),
        _attempt("b1", False),
        _attempt("b2", True, hint_used=True),
        _attempt("b1", False),
    ]
    context = build_difficulty_context("b1", [], recent, streak=2, fatigue_score=0.7)
    assert context.recent_errors == 2  # only the last three count
    assert context.hints_used_recently == 3
    assert context.streak == 2
    assert context.fatigue_high


@pytest.mark.parametrize(
    "context, expected",
    [
        (DifficultyContext(recent_accuracy=0.9), 1),
        (DifficultyContext(recent_accuracy=0.7), 0),
        (DifficultyContext(recent_accuracy=0.5), -1),
        (DifficultyContext(recent_accuracy=0.5, fatigue_high=True, hints_used_recently=3), -3),
        (DifficultyContext(recent_accuracy=0.9, fatigue_high=True), 0),
    ],
)
def test_context_bonus(context, expected):
    assert DifficultyBandit().context_bonus(context) == expected


def test_neutral_context_ties_break_to_lowest_difficulty():
    assert _no_noise_bandit().select_difficulty("b1", DifficultyContext(recent_accuracy=0.7)) == 1


def test_positive_bonus_moves_up_one_step():
    context = DifficultyContext(recent_accuracy=0.9, current_difficulty=3, streak=4)
    assert _no_noise_bandit().select_difficulty("b1", context) == 4


def test_fatigue_penalizes_hard_levels():
    bandit = _no_noise_bandit()
    context = DifficultyContext(recent_accuracy=0.9, current_difficulty=3, fatigue_high=True)
    # bonus is 0, levels 4-5 lose 0.2
    assert bandit.adjustment(4, context, 0) == pytest.approx(-0.2)
    assert bandit.select_difficulty("b1", context) == 1


def test_recent_errors_penalize_increases():
    bandit = _no_noise_bandit()
    context = DifficultyContext(recent_accuracy=0.9, current_difficulty=2, recent_errors=3)
    assert bandit.adjustment(3, context, 1) == pytest.approx(0.0)
    assert bandit.adjustment(2, context, 1) == pytest.approx(0.0)


def test_learned_arm_wins_exploitation():
    bandit = _no_noise_bandit()
    for _ in range(5):
        bandit.update_arm("b1", 2, correct=True, response_time_sec=3.0)
    assert bandit.select_difficulty("b1", DifficultyContext(recent_accuracy=0.7)) == 2


def test_exploration_stays_near_shifted_current():
    rng = ScriptedRandom(randoms=[0.0], randranges=[2])
    bandit = DifficultyBandit(rng=rng)
    context = DifficultyContext(recent_accuracy=0.9, current_difficulty=3)
    # target 4, candidates [3, 4, 5]
    assert bandit.select_difficulty("b1", context) == 5


def test_exploration_clamps_at_the_bottom():
    rng = ScriptedRandom(randoms=[0.0], randranges=[0])
    bandit = DifficultyBandit(rng=rng)
    context = DifficultyContext(recent_accuracy=0.2, current_difficulty=1, fatigue_high=True)
    assert bandit.constrained_random_difficulty(context, -2) in (1, 2)
    assert bandit.select_difficulty("b1", context) == 1


def test_selection_never_leaves_bounds():
    bandit = DifficultyBandit(rng=NumpyRandomSource(seed=5))
    rng = NumpyRandomSource(seed=9)
    for i in range(300):
        context = DifficultyContext(
            recent_accuracy=rng.random(),
            recent_errors=rng.randrange(4),
            hints_used_recently=rng.randrange(6),
            current_difficulty=1 + rng.randrange(5),
            streak=rng.randrange(8),
            fatigue_high=rng.random() < 0.5,
        )
        difficulty = bandit.select_difficulty("b1", context)
        assert 1 <= difficulty <= 5
        bandit.update_arm("b1", difficulty, correct=rng.random() < 0.6, response_time_sec=2.0)


def test_update_arm_tracks_outcomes():
    clock = FixedClock(now=777)
    bandit = DifficultyBandit(clock=clock)
    bandit.update_arm("b1", 3, True, 2.0)
    bandit.update_arm("b1", 3, False, 4.0)
    arm = bandit.get_arm("b1", 3)
    assert (arm.pulls, arm.successes, arm.alpha, arm.beta) == (2, 1, 2.0, 2.0)
    assert arm.avg_time == pytest.approx(3.0)
    assert arm.last_pulled == 777

    stats = bandit.arm_statistics("b1")
    assert [s.difficulty for s in stats] == [3]
    assert stats[0].confidence == 4.0


def test_records_round_trip():
    bandit = DifficultyBandit()
    bandit.update_arm("b1", 2, True, 1.0)
    restored = DifficultyBandit()
    restored.load_records(bandit.to_records())
    assert restored.get_arm("b1", 2) == bandit.get_arm("b1", 2)


class TestHintPolicy:
    def setup_method(self):
        self.rng = ScriptedRandom(default_random=0.9)
        self.bandit = DifficultyBandit(rng=self.rng)

    def test_recent_errors_on_first_attempt(self):
        assert self.bandit.should_show_hint(DifficultyContext(recent_errors=2, recent_accuracy=0.8), 1, 3.0)

    def test_slow_first_attempt(self):
        assert self.bandit.should_show_hint(DifficultyContext(recent_accuracy=0.8), 1, 16.0)

    def test_always_on_retry(self):
        assert self.bandit.should_show_hint(DifficultyContext(recent_accuracy=0.8), 2, 1.0)

    def test_coin_flip_when_struggling(self):
        context = DifficultyContext(recent_accuracy=0.4)
        self.rng.randoms.extend([0.3, 0.7])
        assert self.bandit.should_show_hint(context, 1, 1.0)
        assert not self.bandit.should_show_hint(context, 1, 1.0)

    def test_no_hint_and_no_draw_when_doing_well(self):
        assert not self.bandit.should_show_hint(DifficultyContext(recent_accuracy=0.8), 1, 3.0)
        assert self.rng.random_calls == 0
