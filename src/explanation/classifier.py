# ABOUTME: Diagnoses wrong answers into skill-specific error tags using ordered rule tables.
# ABOUTME: Rules inspect the absolute difference and relative error; the first matching rule wins.

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

NO_ERROR = "none"
GENERIC_ERROR = "calculation_error"
ARITHMETIC_SLIP = "arithmetic_mistake"

Predicate = Callable[[float, float], bool]


@dataclass(frozen=True)
class ErrorRule:
    """A diagnostic bucket: ``predicate(diff, ratio)`` selects ``tag``."""

    tag: str
    description: str
    predicate: Optional[Predicate] = None  # None marks the skill's fallback bucket

    def matches(self, diff: float, ratio: float) -> bool:
        return self.predicate is None or self.predicate(diff, ratio)


def _multiple_of(n: int) -> Predicate:
    return lambda diff, ratio: diff % n == 0


ERROR_RULES: Mapping[str, Sequence[ErrorRule]] = {
    # Making 10s (addition grouping)
    "b1": (
        ErrorRule("pairing_missed", "Failed to identify complementary pairs", lambda d, r: d in (10, 20, 30, 40, 50)),
        ErrorRule("complement_error", "Wrong complement calculation", lambda d, r: d % 10 == 0 and d <= 100),
        ErrorRule(ARITHMETIC_SLIP, "Basic addition error", lambda d, r: d < 10),
        ErrorRule("grouping_error", "Incorrect grouping strategy"),
    ),
    # Subtraction grouping
    "b2": (
        ErrorRule("complement_missed", "Missed subtraction complement", lambda d, r: d in (10, 20, 30)),
        ErrorRule("grouping_order_error", "Wrong grouping order", _multiple_of(10)),
        ErrorRule(ARITHMETIC_SLIP, "Basic subtraction error", lambda d, r: d < 10),
        ErrorRule("subtraction_error", "General subtraction mistake"),
    ),
    # Rounding near-numbers
    "b3": (
        ErrorRule("compensation_forgot", "Forgot to compensate after rounding", lambda d, r: d in range(1, 13)),
        ErrorRule("compensation_wrong_sign", "Compensated in wrong direction", lambda d, r: 10 < d < 20),
        ErrorRule("rounding_error", "Incorrect rounding"),
    ),
    # Split and combine factors
    "m1": (
        ErrorRule("factoring_missed", "Did not factor the number", lambda d, r: r > 0.5),
        ErrorRule("magic_pair_missed", "Missed magic pair (2x5, 4x25, 8x125)", _multiple_of(10)),
        ErrorRule("multiplication_error", "Basic multiplication error", lambda d, r: d < 100),
        ErrorRule("factor_combination_error", "Wrong factor combination"),
    ),
    # Distributive law
    "m2": (
        ErrorRule("distributive_not_applied", "Did not use distributive property", lambda d, r: r > 0.3),
        ErrorRule("sum_calculation_error", "Error in calculating sum", _multiple_of(10)),
        ErrorRule("multiplication_error", "Basic multiplication error"),
    ),
    # Same tens, complementary units
    "a1": (
        ErrorRule("units_multiplication_error", "Units digit multiplication wrong", lambda d, r: d < 100),
        ErrorRule("tens_formula_error", "Tens formula not applied correctly", lambda d, r: 100 <= d < 1000),
        ErrorRule("forgot_units_part", "Forgot to add units part", _multiple_of(100)),
        ErrorRule("pattern_not_recognized", "Did not recognize the pattern"),
    ),
    # Sum of sequences
    "a2": (
        ErrorRule("formula_not_used", "Did not use sequence formula", lambda d, r: r > 0.3),
        ErrorRule("division_by_2_error", "Error in dividing by 2", lambda d, r: d % 2 == 1),
        ErrorRule("count_error", "Counted terms incorrectly", lambda d, r: r < 0.2),
        ErrorRule("sequence_formula_error", "Formula application error"),
    ),
}

# Answers can be decimals (distributive law); differences are compared after rounding.
DIFF_PRECISION = 6


def answer_difference(correct_answer: float, user_answer: float) -> Tuple[float, float]:
    """Return (diff, ratio) for a pair of answers."""
    diff = round(abs(correct_answer - user_answer), DIFF_PRECISION)
    ratio = diff / max(correct_answer, 1)
    return diff, ratio


def classify(
    skill_id: str,
    question: str,
    correct_answer: float,
    user_answer: float,
    difficulty: int = 3,
) -> str:
    """
    Map a wrong answer to an error tag.

    Tags are heuristic diagnostic buckets, not ground truth. ``question`` and
    ``difficulty`` are part of the contract but no current rule reads them.
    """

    diff, ratio = answer_difference(correct_answer, user_answer)
    if diff == 0:
        return NO_ERROR

    rules = ERROR_RULES.get(skill_id)
    if not rules:
        return GENERIC_ERROR
    for rule in rules:
        if rule.matches(diff, ratio):
            return rule.tag
    return GENERIC_ERROR


def error_types(skill_id: str) -> List[ErrorRule]:
    return list(ERROR_RULES.get(skill_id, ()))


def describe(skill_id: str, error_tag: str) -> str:
    for rule in ERROR_RULES.get(skill_id, ()):
        if rule.tag == error_tag:
            return rule.description
    return "Unknown error"


def is_recurring_error(
    error_history: Sequence[Mapping],
    skill_id: str,
    error_tag: str,
    window_size: int = 10,
    threshold: int = 3,
) -> bool:
    """True when the (skill, tag) pair shows up ``threshold`` times in the recent history window."""
    recent = list(error_history)[-window_size:]
    hits = [e for e in recent if e.get("skill_id") == skill_id and e.get("error_tag") == error_tag]
    return len(hits) >= threshold


def known_skills() -> Dict[str, List[str]]:
    return {skill_id: [rule.tag for rule in rules] for skill_id, rules in ERROR_RULES.items()}
