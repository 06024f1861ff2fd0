# ABOUTME: Unit tests for the shared Beta arm and moment-matched sampler.
# ABOUTME: Verifies the arm invariants, sampler bounds, and record round-trips.

import unittest

import pytest

from src.common.bandit import BetaArm, NumpyRandomSource, beta_moments, choose, clamp, sample_beta
from tests.fakes import ScriptedRandom


class TestBetaArm(unittest.TestCase):
    def test_fresh_arm_has_uniform_prior(self):
        arm = BetaArm()
        self.assertEqual((arm.alpha, arm.beta, arm.pulls, arm.successes), (1.0, 1.0, 0, 0))
        self.assertAlmostEqual(arm.mean, 0.5)

    def test_invariants_hold_after_mixed_outcomes(self):
        arm = BetaArm()
        outcomes = [True, False, True, True, False, False, True]
        for i, outcome in enumerate(outcomes):
            arm.record(outcome, response_time_sec=2.0 + i, now=100 + i)
            self.assertGreaterEqual(arm.alpha, 1)
            self.assertGreaterEqual(arm.beta, 1)
            self.assertEqual(arm.alpha - 1, arm.successes)
            self.assertEqual(arm.beta - 1, arm.failures)
            self.assertEqual(arm.pulls, arm.successes + arm.failures)
        self.assertEqual(arm.pulls, len(outcomes))
        self.assertEqual(arm.last_pulled, 106)

    def test_avg_time_is_running_mean(self):
        arm = BetaArm()
        for t in (2.0, 4.0, 9.0):
            arm.record(True, response_time_sec=t)
        self.assertAlmostEqual(arm.avg_time, 5.0)

    def test_from_dict_accepts_uses_alias(self):
        arm = BetaArm.from_dict({"alpha": 3, "beta": 2, "uses": 3, "successes": 2})
        self.assertEqual(arm.pulls, 3)
        self.assertEqual(arm.failures, 1)

    def test_round_trip_through_dict(self):
        arm = BetaArm()
        arm.record(True, response_time_sec=3.0, now=5)
        arm.record(False, response_time_sec=1.0, now=6)
        self.assertEqual(BetaArm.from_dict(arm.to_dict()), arm)


def test_beta_moments():
    mean, variance = beta_moments(2.0, 2.0)
    assert mean == pytest.approx(0.5)
    assert variance == pytest.approx(4 / (16 * 5))


def test_sampler_returns_mean_at_midpoint_draw():
    assert sample_beta(3.0, 1.0, ScriptedRandom(default_random=0.5)) == pytest.approx(0.75)


def test_sampler_spread_follows_variance():
    alpha, beta = 1.0, 1.0
    _, variance = beta_moments(alpha, beta)
    high = sample_beta(alpha, beta, ScriptedRandom(default_random=0.9))
    assert high == pytest.approx(0.5 + 0.4 * variance**0.5 * 3)


def test_sampler_stays_in_unit_interval():
    rng = NumpyRandomSource(seed=3)
    for alpha, beta in [(1, 1), (50, 1), (1, 50), (2, 7)]:
        for _ in range(200):
            assert 0.0 <= sample_beta(alpha, beta, rng) <= 1.0


def test_numpy_random_source_is_reproducible():
    a, b = NumpyRandomSource(seed=11), NumpyRandomSource(seed=11)
    assert [a.random() for _ in range(5)] == [b.random() for _ in range(5)]
    assert [a.randrange(7) for _ in range(5)] == [b.randrange(7) for _ in range(5)]


def test_randrange_rejects_empty_range():
    with pytest.raises(ValueError):
        NumpyRandomSource(seed=0).randrange(0)


def test_choose_and_clamp():
    assert choose(ScriptedRandom(randranges=[2]), ["a", "b", "c"]) == "c"
    assert clamp(7, 1, 5) == 5
    assert clamp(-1, 0, 1) == 0
