# ABOUTME: SM-2 spaced-repetition state per skill and the review queue built on it.
# ABOUTME: Ranks due reviews by overdue days, mastery and ease factor.

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from src.common.config import (
    EASE_FACTOR_GAIN,
    EASE_FACTOR_PENALTY,
    INITIAL_EASE_FACTOR,
    MIN_EASE_FACTOR,
    SECOND_INTERVAL_DAYS,
)

DAY_MS = 24 * 60 * 60 * 1000

# (exclusive lower bound, points); first matching bucket wins
OVERDUE_PRIORITY: Tuple[Tuple[float, int], ...] = ((5, 3), (2, 2), (0, 1))
# (exclusive upper bound, points)
MASTERY_PRIORITY: Tuple[Tuple[float, int], ...] = ((0.4, 3), (0.6, 2), (0.8, 1))
EASE_PRIORITY: Tuple[Tuple[float, int], ...] = ((1.8, 2), (2.0, 1))


@dataclass
class ReviewItem:
    skill_id: str
    interval: int = 1  # days
    ease_factor: float = INITIAL_EASE_FACTOR
    next_review: int = 0  # epoch ms
    repetitions: int = 0

    def overdue_days(self, now: int) -> float:
        return (now - self.next_review) / DAY_MS

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "ReviewItem":
        return cls(
            skill_id=str(data.get("skill_id", data.get("skillId"))),
            interval=int(data.get("interval", 1)),
            ease_factor=float(data.get("ease_factor", data.get("easeFactor", INITIAL_EASE_FACTOR))),
            next_review=int(data.get("next_review", data.get("nextReview", 0))),
            repetitions=int(data.get("repetitions", 0)),
        )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def apply_sm2(item: ReviewItem, correct: bool, now: int) -> ReviewItem:
    """
    Apply one SM-2 transition in place.

    On success the third and later intervals use the ease factor *before*
    it grows, so a fresh item yields intervals 1, 6, 16.
    """

    if correct:
        item.repetitions += 1
        if item.repetitions == 1:
            item.interval = 1
        elif item.repetitions == 2:
            item.interval = SECOND_INTERVAL_DAYS
        else:
            item.interval = round_half_up(item.interval * item.ease_factor)
        item.ease_factor = max(MIN_EASE_FACTOR, round(item.ease_factor + EASE_FACTOR_GAIN, 4))
    else:
        item.repetitions = 0
        item.interval = 1
        item.ease_factor = max(MIN_EASE_FACTOR, round(item.ease_factor - EASE_FACTOR_PENALTY, 4))

    item.next_review = now + item.interval * DAY_MS
    return item


def _bucket_points(value: float, buckets: Sequence[Tuple[float, int]], above: bool) -> int:
    for bound, points in buckets:
        if (value > bound) if above else (value < bound):
            return points
    return 0


def review_priority(item: ReviewItem, mastery: float, now: int) -> int:
    """Urgency plus importance; higher means the review matters more."""
    return (
        _bucket_points(item.overdue_days(now), OVERDUE_PRIORITY, above=True)
        + _bucket_points(mastery, MASTERY_PRIORITY, above=False)
        + _bucket_points(item.ease_factor, EASE_PRIORITY, above=False)
    )


class ReviewQueue:
    """Review items keyed by skill, created lazily on first update."""

    def __init__(self, items: Optional[Sequence[ReviewItem]] = None):
        self.items: Dict[str, ReviewItem] = {item.skill_id: item for item in items or []}

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[ReviewItem]:
        return iter(self.items.values())

    def get(self, skill_id: str) -> Optional[ReviewItem]:
        return self.items.get(skill_id)

    def update(self, skill_id: str, correct: bool, now: int) -> ReviewItem:
        item = self.items.get(skill_id)
        if item is None:
            item = ReviewItem(skill_id=skill_id, next_review=now + DAY_MS)
            self.items[skill_id] = item
        return apply_sm2(item, correct, now)

    def due(self, now: int) -> List[ReviewItem]:
        """Items whose review time has passed, earliest first."""
        return sorted((i for i in self.items.values() if i.next_review <= now), key=lambda i: i.next_review)

    def priority(self, skill_id: str, mastery: float, now: int) -> int:
        item = self.items.get(skill_id)
        if item is None:
            return 0
        return review_priority(item, mastery, now)

    def clear(self) -> None:
        self.items = {}

    def to_records(self) -> List[Dict]:
        return [item.to_dict() for item in self.items.values()]

    @classmethod
    def from_records(cls, records: Sequence[Dict]) -> "ReviewQueue":
        return cls([ReviewItem.from_dict(r) for r in records])
