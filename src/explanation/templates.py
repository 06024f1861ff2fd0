# ABOUTME: Renders explanation text for a diagnosed error in one of three styles.
# ABOUTME: Short hints per tag, numbered per-skill steps, and per-tag analogies.

from __future__ import annotations

from typing import Callable, Dict, List

SHORT_MESSAGES: Dict[str, str] = {
    "pairing_missed": "Look for pairs that sum to 10, 20, or 100. {hint}",
    "complement_error": "Find complements (numbers that add to 10). {hint}",
    "complement_missed": "Group the subtractions that make 10 or 20. {hint}",
    "grouping_order_error": "Try grouping in a different order. {hint}",
    "compensation_forgot": "After rounding, remember to compensate! {hint}",
    "compensation_wrong_sign": "Check if you added when you should subtract (or vice versa). {hint}",
    "arithmetic_mistake": "Small calculation error. The answer is {answer}.",
    "rounding_error": "Remember to adjust after rounding. {hint}",
    "grouping_error": "Try grouping the numbers differently. {hint}",
    "subtraction_error": "Subtract the grouped amount first, then the rest. {hint}",
    "factoring_missed": "Break down into smaller factors first. {hint}",
    "magic_pair_missed": "Look for magic pairs: 2×5=10, 4×25=100, 8×125=1000. {hint}",
    "factor_combination_error": "Check how you combined the factors. {hint}",
    "distributive_not_applied": "Factor out the common multiplier first! {hint}",
    "sum_calculation_error": "Check your addition inside the parentheses. {hint}",
    "multiplication_error": "Multiplication mistake. {hint}",
    "units_multiplication_error": "Multiply the units digits: they go at the end. {hint}",
    "tens_formula_error": "Front part: Tens × (Tens+1). {hint}",
    "forgot_units_part": "Don't forget to add the units multiplication! {hint}",
    "pattern_not_recognized": "This follows a special pattern. {hint}",
    "formula_not_used": "Use the formula: (First + Last) × Count ÷ 2. {hint}",
    "division_by_2_error": "Remember to divide by 2 at the end! {hint}",
    "count_error": "Check how many numbers are in the sequence. {hint}",
    "sequence_formula_error": "Formula: (First + Last) × Count / 2. {hint}",
    "calculation_error": "Double-check your calculation. {hint}",
}
SHORT_DEFAULT = "The correct answer is {answer}. {hint}"

ANALOGIES: Dict[str, str] = {
    "pairing_missed": (
        "Think of it like finding dance partners at a party - each number wants a partner "
        "to make a round number (10, 20, 100). {hint}"
    ),
    "complement_missed": "Like puzzle pieces that fit together to make 10 - find the matching pieces first! {hint}",
    "compensation_forgot": (
        "Like borrowing money: if you round up, you borrowed extra, so pay it back by subtracting! {hint}"
    ),
    "magic_pair_missed": (
        "These are like best friends: 4 and 25 always team up to make 100, just like 8 and 125 "
        "make 1000. They're magic! {hint}"
    ),
    "distributive_not_applied": (
        "Imagine you're sharing cookies - if everyone gets the same amount, count groups "
        "instead of one by one. {hint}"
    ),
    "tens_formula_error": (
        "Think of it like a two-part code: the tens create the big number, units create the small ending. {hint}"
    ),
    "sequence_formula_error": (
        "Picture a ladder: average rung height × number of rungs = total climb. "
        "Or: (top + bottom) ÷ 2 × rungs. {hint}"
    ),
    "factoring_missed": "Like breaking a big task into smaller steps - split the number into easier pieces first! {hint}",
    "grouping_error": "Like organizing your desk - group similar items together to make counting easier. {hint}",
}

# Middle steps only; the hint opens and the final answer closes every sequence.
SKILL_STEPS: Dict[str, List[str]] = {
    "b1": [
        "Add the paired numbers first to get round numbers",
        "Add the round numbers together",
    ],
    "b2": [
        "Group subtractions that sum to 10 or 20",
        "Subtract the grouped amount first",
        "Then subtract remaining numbers",
    ],
    "b3": [
        "Round to nearest hundred (or ten)",
        "Do the calculation with round number",
        "Adjust by adding/subtracting the difference",
    ],
    "m1": [
        "Look for factors that pair with 5, 25, or 125",
        "Multiply the magic pair first (gives 10, 100, or 1000)",
        "Multiply by the remaining factor",
    ],
    "m2": [
        "Notice the common factor in both terms",
        "Factor it out: a×b + a×c = a×(b+c)",
        "Add the numbers in parentheses",
        "Multiply by the common factor",
    ],
    "a1": [
        "Check: same tens digit? Units add to 10?",
        "Front part: Tens × (Tens+1)",
        "Back part: Units × Units",
        "Combine: put back part after front part",
    ],
    "a2": [
        "Identify: First number, Last number, Count",
        "Add first and last",
        "Multiply by count",
        "Divide by 2",
    ],
}
DEFAULT_STEPS = ["Work through the calculation step by step"]


def format_answer(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def short_explanation(skill_id: str, error_tag: str, correct_answer: float, hint: str) -> str:
    template = SHORT_MESSAGES.get(error_tag, SHORT_DEFAULT)
    return template.format(hint=hint, answer=format_answer(correct_answer)).strip()


def step_sequence(skill_id: str, correct_answer: float, hint: str) -> List[str]:
    middle = SKILL_STEPS.get(skill_id, DEFAULT_STEPS)
    lines = [hint, *middle, f"Final answer: {format_answer(correct_answer)}"]
    return [f"{i}. {line}" for i, line in enumerate(lines, start=1)]


def stepwise_explanation(skill_id: str, error_tag: str, correct_answer: float, hint: str) -> str:
    return "Let's break it down:\n" + "\n".join(step_sequence(skill_id, correct_answer, hint))


def analogy_explanation(skill_id: str, error_tag: str, correct_answer: float, hint: str) -> str:
    template = ANALOGIES.get(error_tag)
    if template is None:
        return short_explanation(skill_id, error_tag, correct_answer, hint)
    return template.format(hint=hint).strip()


RENDERERS: Dict[str, Callable[[str, str, float, str], str]] = {
    "short": short_explanation,
    "stepwise": stepwise_explanation,
    "analogy": analogy_explanation,
}


def render_explanation(style: str, skill_id: str, error_tag: str, correct_answer: float, hint: str) -> str:
    """Render with the requested style; unknown styles fall back to the short template."""
    renderer = RENDERERS.get(style, short_explanation)
    return renderer(skill_id, error_tag, correct_answer, hint)
