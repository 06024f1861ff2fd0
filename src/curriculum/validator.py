# ABOUTME: Checks that question generators get statistically harder as difficulty rises.
# ABOUTME: Compares average largest operand and a complexity score across adjacent levels.

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional

import numpy as np

from src.common.bandit import NumpyRandomSource, RandomSource
from src.common.config import DIFFICULTY_LEVELS

from .generators import SKILLS, GeneratedQuestion

NUMBER_PATTERN = re.compile(r"\d+")
OPERAND_WEIGHT = 10


@dataclass
class LevelProfile:
    difficulty: int
    avg_max_number: float = 0.0
    avg_complexity: float = 0.0
    avg_operands: float = 0.0


@dataclass
class ValidationResult:
    skill_id: str
    passed: bool = True
    issues: List[str] = field(default_factory=list)
    levels: Dict[int, LevelProfile] = field(default_factory=dict)


def extract_numbers(question: str) -> List[int]:
    return [int(m) for m in NUMBER_PATTERN.findall(question)]


def profile_level(questions: List[GeneratedQuestion], difficulty: int) -> LevelProfile:
    if not questions:
        return LevelProfile(difficulty=difficulty)
    numbers = [extract_numbers(q.q) for q in questions]
    max_numbers = np.array([max(n, default=0) for n in numbers], dtype=float)
    operands = np.array([len(n) for n in numbers], dtype=float)
    return LevelProfile(
        difficulty=difficulty,
        avg_max_number=float(max_numbers.mean()),
        avg_complexity=float((max_numbers + operands * OPERAND_WEIGHT).mean()),
        avg_operands=float(operands.mean()),
    )


def validate_generator(
    skill_id: str,
    generator: Callable[[int, RandomSource], GeneratedQuestion],
    rng: Optional[RandomSource] = None,
    num_samples: int = 20,
) -> ValidationResult:
    rng = rng or NumpyRandomSource()
    result = ValidationResult(skill_id=skill_id)

    for difficulty in DIFFICULTY_LEVELS:
        samples = []
        for _ in range(num_samples):
            try:
                samples.append(generator(difficulty, rng))
            except (ValueError, ZeroDivisionError, IndexError) as exc:
                result.passed = False
                result.issues.append(f"Difficulty {difficulty}: generator raised {exc!r}")
        result.levels[difficulty] = profile_level(samples, difficulty)

    for low, high in zip(DIFFICULTY_LEVELS, DIFFICULTY_LEVELS[1:]):
        current, nxt = result.levels[low], result.levels[high]
        if nxt.avg_max_number <= current.avg_max_number:
            result.passed = False
            result.issues.append(
                f"Difficulty {low} -> {high}: number range not increasing "
                f"({current.avg_max_number:.0f} -> {nxt.avg_max_number:.0f})"
            )
        if nxt.avg_complexity <= current.avg_complexity:
            result.passed = False
            result.issues.append(
                f"Difficulty {low} -> {high}: complexity not increasing "
                f"({current.avg_complexity:.2f} -> {nxt.avg_complexity:.2f})"
            )
    return result


def validate_all_generators(
    generators: Optional[Mapping[str, Callable[[int, RandomSource], GeneratedQuestion]]] = None,
    rng: Optional[RandomSource] = None,
    num_samples: int = 20,
) -> List[ValidationResult]:
    if generators is None:
        generators = {skill_id: skill.generator for skill_id, skill in SKILLS.items()}
    rng = rng or NumpyRandomSource()
    return [validate_generator(skill_id, gen, rng, num_samples) for skill_id, gen in generators.items()]
