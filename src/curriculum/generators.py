# ABOUTME: Question generators for the seven mental-arithmetic skills, scaled by difficulty 1-5.
# ABOUTME: Each generator draws from an injected RandomSource so simulations are reproducible.

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence, TypeVar

from src.common.bandit import RandomSource, choose

T = TypeVar("T")


@dataclass(frozen=True)
class GeneratedQuestion:
    q: str
    a: float
    hint: str
    difficulty: int


@dataclass(frozen=True)
class Skill:
    skill_id: str
    title: str
    level: str
    concept: str
    generator: Callable[[int, RandomSource], GeneratedQuestion]


def _randint(rng: RandomSource, low: int, span: int) -> int:
    """Uniform integer in [low, low + span)."""
    return low + rng.randrange(span)


def _shuffle(rng: RandomSource, items: Sequence[T]) -> List[T]:
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randrange(i + 1)
        out[i], out[j] = out[j], out[i]
    return out


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def _by_level(difficulty: int, values: Sequence[T]) -> T:
    return values[min(max(difficulty, 1), len(values)) - 1]


def making_tens(difficulty: int, rng: RandomSource) -> GeneratedQuestion:
    pairs = [(1, 9), (2, 8), (3, 7), (4, 6), (5, 5)]
    num_pairs = _by_level(difficulty, [1, 2, 2, 3, 3])
    base_range = _by_level(difficulty, [2, 5, 10, 20, 50])

    nums, selected = [], []
    for _ in range(num_pairs):
        low, high = choose(rng, pairs)
        first = rng.randrange(base_range) * 10 + low
        second = rng.randrange(base_range) * 10 + high
        nums.extend([first, second])
        selected.append(f"{first} and {second}")

    nums = _shuffle(rng, nums)
    return GeneratedQuestion(
        q=" + ".join(str(n) for n in nums),
        a=sum(nums),
        hint=f"Look for pairs that make 10: {', '.join(selected)}",
        difficulty=difficulty,
    )


def subtraction_grouping(difficulty: int, rng: RandomSource) -> GeneratedQuestion:
    start = _randint(rng, _by_level(difficulty, [50, 100, 150, 200, 300]), _by_level(difficulty, [50, 50, 100, 200, 300]))
    num_subs = _by_level(difficulty, [2, 3, 3, 4, 4])
    if difficulty <= 2:
        complement = 10
    elif difficulty == 3:
        complement = 20
    else:
        complement = 10 if rng.random() < 0.5 else 20

    first = _randint(rng, 1, complement - 2)
    second = complement - first
    subs = [first, second] + [_randint(rng, 5, 5 + difficulty * 2) for _ in range(num_subs - 2)]
    subs = _shuffle(rng, subs)

    return GeneratedQuestion(
        q=f"{start} - " + " - ".join(str(s) for s in subs),
        a=start - sum(subs),
        hint=f"Try grouping -{first} and -{second} first (they make -{complement}).",
        difficulty=difficulty,
    )


def rounding_near_numbers(difficulty: int, rng: RandomSource) -> GeneratedQuestion:
    base = (rng.randrange(1 + difficulty // 2) + _by_level(difficulty, [1, 2, 3, 5, 10])) * 100
    max_diff = _by_level(difficulty, [2, 3, 5, 8, 12])
    diff = _randint(rng, 1, max_diff - 1)
    near = base - diff
    other = _randint(rng, _by_level(difficulty, [10, 20, 50, 100, 200]), _by_level(difficulty, [20, 30, 50, 100, 300]))
    return GeneratedQuestion(
        q=f"{near} + {other}",
        a=near + other,
        hint=f"Treat {near} as {base} - {diff}, then add {other}",
        difficulty=difficulty,
    )


def split_factors(difficulty: int, rng: RandomSource) -> GeneratedQuestion:
    small, partner = _by_level(difficulty, [(5, 2), (5, 2), (25, 4), (125, 8), (125, 8)])
    multiplier = _randint(rng, _by_level(difficulty, [2, 3, 4, 6, 8]), _by_level(difficulty, [3, 4, 5, 6, 8]))
    large = partner * multiplier
    return GeneratedQuestion(
        q=f"{large} × {small}",
        a=large * small,
        hint=f"Split {large} into {multiplier} × {partner}. Pair {partner} with {small} to get {partner * small}.",
        difficulty=difficulty,
    )


def distributive_law(difficulty: int, rng: RandomSource) -> GeneratedQuestion:
    target = _by_level(difficulty, [10, 100, 100, 1000, 1000])
    places = _by_level(difficulty, [0, 0, 1, 1, 2])
    raw = _randint(rng, _by_level(difficulty, [2, 5, 10, 20, 30]), _by_level(difficulty, [8, 15, 70, 80, 100]))
    common = raw if places == 0 else round(raw / 10**places, places)

    low, high = int(target * 0.2), int(target * 0.8)
    part1 = _randint(rng, low, high - low)
    part2 = target - part1
    return GeneratedQuestion(
        q=f"{_fmt(common)} × {part1} + {_fmt(common)} × {part2}",
        a=round(common * target, 2),
        hint=f"Factor out {_fmt(common)}. What is {part1} + {part2}?",
        difficulty=difficulty,
    )


def complementary_units(difficulty: int, rng: RandomSource) -> GeneratedQuestion:
    ten = _randint(rng, _by_level(difficulty, [1, 2, 3, 5, 7]), _by_level(difficulty, [2, 3, 4, 5, 9]))
    u1 = _randint(rng, 1, 9)
    u2 = 10 - u1
    n1, n2 = ten * 10 + u1, ten * 10 + u2
    return GeneratedQuestion(
        q=f"{n1} × {n2}",
        a=n1 * n2,
        hint=(
            f"Tens part: {ten} × {ten + 1} = {ten * (ten + 1)}. "
            f"Units part: {u1} × {u2} = {u1 * u2}. Combine them."
        ),
        difficulty=difficulty,
    )


def sequence_sum(difficulty: int, rng: RandomSource) -> GeneratedQuestion:
    count = _randint(rng, _by_level(difficulty, [3, 4, 6, 8, 10]), _by_level(difficulty, [2, 3, 3, 5, 7]))
    start = _randint(rng, 1, _by_level(difficulty, [3, 5, 10, 20, 50]))
    step = _randint(rng, 1, _by_level(difficulty, [1, 2, 3, 5, 10]))
    terms = [start + i * step for i in range(count)]
    q = " + ".join(str(t) for t in terms) if len(terms) <= 8 else f"{terms[0]} + {terms[1]} + ... + {terms[-1]}"
    return GeneratedQuestion(
        q=q,
        a=sum(terms),
        hint=f"Formula: (First + Last) × Count / 2 = ({start} + {terms[-1]}) × {count} / 2",
        difficulty=difficulty,
    )


SKILLS: Dict[str, Skill] = {
    s.skill_id: s
    for s in [
        Skill("b1", "Making 10s (Addition)", "beginner",
              "Look for pairs that sum to 10, 20, 100 and group them first.", making_tens),
        Skill("b2", "Subtraction Grouping", "beginner",
              "Check whether the subtracted numbers add up to a round number.", subtraction_grouping),
        Skill("b3", "Rounding Near-Numbers", "beginner",
              "Treat 98 or 199 as the nearest round number, then fix the difference.", rounding_near_numbers),
        Skill("m1", "Split & Combine Factors", "intermediate",
              "Break numbers into factors that pair up: 25 with 4, 125 with 8.", split_factors),
        Skill("m2", "Distributive Law", "intermediate",
              "a×b + a×c = a×(b+c): pull the shared factor out.", distributive_law),
        Skill("a1", "Same Tens, Complementary Units", "advanced",
              "Tens × (tens + 1), then units × units.", complementary_units),
        Skill("a2", "Sum of Sequences", "advanced",
              "(First + Last) × Count / 2 for evenly spaced terms.", sequence_sum),
    ]
}


def generate(skill_id: str, difficulty: int, rng: RandomSource) -> GeneratedQuestion:
    if skill_id not in SKILLS:
        raise KeyError(f"Unknown skill: {skill_id}")
    return SKILLS[skill_id].generator(difficulty, rng)
