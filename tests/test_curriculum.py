# ABOUTME: Tests that every skill generator produces self-consistent questions at each difficulty.
# ABOUTME: Also checks the difficulty-progression validator on synthetic generators.

import pytest

from src.common.bandit import NumpyRandomSource
from src.curriculum import SKILLS, GeneratedQuestion, generate, validate_all_generators, validate_generator
from src.curriculum.validator import extract_numbers


def _evaluate(question: str) -> float:
    # questions use only integers, decimals, +, - and ×
    return eval(question.replace("×", "*"), {"__builtins__": {}})


@pytest.mark.parametrize("skill_id", sorted(SKILLS))
def test_answers_match_questions(skill_id):
    rng = NumpyRandomSource(seed=3)
    for difficulty in range(1, 6):
        for _ in range(10):
            question = generate(skill_id, difficulty, rng)
            assert question.difficulty == difficulty
            assert question.hint
            if "..." in question.q:
                continue
            assert _evaluate(question.q) == pytest.approx(question.a, abs=1e-6)


def test_long_sequences_are_abbreviated():
    rng = NumpyRandomSource(seed=1)
    question = generate("a2", 5, rng)
    assert "..." in question.q


def test_making_tens_pairs_sum_to_ten():
    rng = NumpyRandomSource(seed=8)
    question = generate("b1", 1, rng)
    numbers = extract_numbers(question.q)
    assert len(numbers) == 2
    assert sum(numbers) % 10 == 0


def test_unknown_skill():
    with pytest.raises(KeyError):
        generate("z9", 1, NumpyRandomSource(seed=0))


def test_flat_generator_fails_validation():
    def flat(difficulty, rng):
        return GeneratedQuestion("5 + 5", 10, "h", difficulty)

    result = validate_generator("flat", flat, num_samples=3)
    assert not result.passed
    assert any("number range not increasing" in issue for issue in result.issues)


def test_growing_generator_passes_validation():
    def growing(difficulty, rng):
        return GeneratedQuestion(f"{difficulty * 10} + {difficulty * 10}", difficulty * 20, "h", difficulty)

    result = validate_generator("growing", growing, num_samples=3)
    assert result.passed
    assert result.levels[5].avg_max_number == 50


def test_raising_generator_is_reported():
    def broken(difficulty, rng):
        if difficulty == 3:
            raise ValueError("bad range")
        return GeneratedQuestion(f"{difficulty * 10} + 1", difficulty * 10 + 1, "h", difficulty)

    result = validate_generator("broken", broken, num_samples=2)
    assert not result.passed
    assert any("raised" in issue for issue in result.issues)


def test_validate_all_covers_every_skill():
    results = validate_all_generators(rng=NumpyRandomSource(seed=0), num_samples=5)
    assert [r.skill_id for r in results] == list(SKILLS)
    assert all(set(r.levels) == {1, 2, 3, 4, 5} for r in results)
