# ABOUTME: Per-skill mastery estimates updated with an asymmetric difficulty-weighted step.
# ABOUTME: Values stay clamped to [0, 1] and never decay on their own.

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Tuple

from src.common.bandit import clamp
from src.common.config import MASTERY_CORRECT_STEP, MASTERY_INCORRECT_STEP


def mastery_delta(correct: bool, difficulty: int) -> float:
    return MASTERY_CORRECT_STEP * (difficulty / 3) if correct else -MASTERY_INCORRECT_STEP


class MasteryTracker:
    def __init__(self, values: Optional[Mapping[str, float]] = None):
        self.values: Dict[str, float] = {k: float(v) for k, v in (values or {}).items()}

    def get(self, skill_id: str) -> float:
        return self.values.get(skill_id, 0.0)

    def update(self, skill_id: str, correct: bool, difficulty: int) -> float:
        new_value = clamp(self.get(skill_id) + mastery_delta(correct, difficulty), 0.0, 1.0)
        self.values[skill_id] = new_value
        return new_value

    def weakest(self, n: int = 3) -> List[Tuple[str, float]]:
        """Tracked skills ordered by ascending mastery; insertion order breaks ties."""
        return sorted(self.values.items(), key=lambda kv: kv[1])[:n]

    def snapshot(self) -> Dict[str, float]:
        return dict(self.values)

    def summary(self) -> Dict[str, float]:
        values = list(self.values.values())
        return {
            "avg_mastery": sum(values) / len(values) if values else 0.0,
            "min_mastery": min(values) if values else 0.0,
            "max_mastery": max(values) if values else 0.0,
            "skills_above_70": sum(1 for v in values if v >= 0.7),
            "skills_below_40": sum(1 for v in values if v < 0.4),
            "total_skills_tracked": len(values),
        }

    def reset(self) -> None:
        self.values = {}
