# ABOUTME: Declares the tunable constants and YAML-backed configuration for the engine.
# ABOUTME: Every probability threshold lives here as a named constant and a config default.

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml
from loguru import logger

DEFAULT_CONFIG_PATH = Path("configs/engine.yaml")

# Layer A: difficulty bandit
DIFFICULTY_LEVELS = (1, 2, 3, 4, 5)
DIFFICULTY_EXPLORATION_RATE = 0.15
HIGH_ACCURACY_THRESHOLD = 0.85
LOW_ACCURACY_THRESHOLD = 0.6
HINT_OVERUSE_THRESHOLD = 2
TOWARD_BONUS_REWARD = 0.3
FATIGUE_HARD_PENALTY = 0.2
FATIGUE_HARD_DIFFICULTY = 4
RECENT_ERRORS_THRESHOLD = 2
RECENT_ERRORS_PENALTY = 0.3
STREAK_THRESHOLD = 3
STREAK_STEP_BONUS = 0.2
HINT_SLOW_SECONDS = 15.0
HINT_RECENT_ERRORS = 2
HINT_LOW_ACCURACY = 0.5
HINT_COIN_FLIP_PROBABILITY = 0.5
SKILL_ACCURACY_WINDOW = 5
RECENT_ERRORS_WINDOW = 3
RECENT_HINTS_WINDOW = 5
DEFAULT_RECENT_ACCURACY = 0.5
DEFAULT_CURRENT_DIFFICULTY = 3

# Layer B: scheduler
BASELINE_POLICY_WEIGHT = 0.85
DUE_REVIEW_PROBABILITY = 0.70
URGENT_REVIEW_PROBABILITY = 0.90
LOW_PRIORITY_REVIEW_PROBABILITY = 0.50
URGENT_PRIORITY_SCORE = 5
STANDARD_PRIORITY_SCORE = 3
WEAK_SKILL_PROBABILITY = 0.60
WEAK_SKILL_THRESHOLD = 0.4
WEAK_SKILL_POOL = 3
DIVERSITY_PROBABILITY = 0.50
DIVERSITY_MAX_SWITCHES = 2
EXPLORATION_PROBABILITY = 0.15
FATIGUE_THRESHOLD = 0.6
FATIGUED_HARD_MASTERY = 0.3
FATIGUED_MAX_TARGET_DIFFICULTY = 3
MASTERY_CORRECT_STEP = 0.05
MASTERY_INCORRECT_STEP = 0.03
INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
EASE_FACTOR_GAIN = 0.1
EASE_FACTOR_PENALTY = 0.2
SECOND_INTERVAL_DAYS = 6
REVIEW_INSERT_CAP = 0.9

# Layer C: explanation bandit
EXPLANATION_STYLES = ("short", "stepwise", "analogy")
EXPLANATION_EXPLORATION_RATE = 0.15
PENDING_REWARD_CAPACITY = 20
ERROR_HISTORY_CAPACITY = 200
RECURRING_ERROR_COUNT = 3

# Session and persistence
QUESTION_LOG_CAPACITY = 500
RECENT_QUESTIONS_CAPACITY = 5
ANSWER_TOLERANCE = 0.01

C = TypeVar("C")


@dataclass(frozen=True)
class DifficultyConfig:
    exploration_rate: float = DIFFICULTY_EXPLORATION_RATE
    high_accuracy: float = HIGH_ACCURACY_THRESHOLD
    low_accuracy: float = LOW_ACCURACY_THRESHOLD
    hint_overuse: int = HINT_OVERUSE_THRESHOLD
    skill_accuracy_window: int = SKILL_ACCURACY_WINDOW
    recent_errors_window: int = RECENT_ERRORS_WINDOW
    recent_hints_window: int = RECENT_HINTS_WINDOW
    hint_slow_seconds: float = HINT_SLOW_SECONDS
    hint_coin_flip: float = HINT_COIN_FLIP_PROBABILITY


@dataclass(frozen=True)
class SchedulerConfig:
    baseline_weight: float = BASELINE_POLICY_WEIGHT
    due_review_probability: float = DUE_REVIEW_PROBABILITY
    urgent_review_probability: float = URGENT_REVIEW_PROBABILITY
    low_priority_review_probability: float = LOW_PRIORITY_REVIEW_PROBABILITY
    weak_skill_probability: float = WEAK_SKILL_PROBABILITY
    weak_skill_threshold: float = WEAK_SKILL_THRESHOLD
    diversity_probability: float = DIVERSITY_PROBABILITY
    exploration_probability: float = EXPLORATION_PROBABILITY
    fatigue_threshold: float = FATIGUE_THRESHOLD
    review_insert_cap: float = REVIEW_INSERT_CAP


@dataclass(frozen=True)
class ExplanationConfig:
    exploration_rate: float = EXPLANATION_EXPLORATION_RATE
    pending_capacity: int = PENDING_REWARD_CAPACITY
    error_history_capacity: int = ERROR_HISTORY_CAPACITY
    recurring_error_count: int = RECURRING_ERROR_COUNT


@dataclass(frozen=True)
class SessionConfig:
    question_log_capacity: int = QUESTION_LOG_CAPACITY
    recent_questions_capacity: int = RECENT_QUESTIONS_CAPACITY
    answer_tolerance: float = ANSWER_TOLERANCE


@dataclass(frozen=True)
class StorageConfig:
    backend: str = "memory"  # "memory" or "json"
    root: str = "data/learners"


@dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration grouping one section per layer."""

    difficulty: DifficultyConfig = field(default_factory=DifficultyConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    explanation: ExplanationConfig = field(default_factory=ExplanationConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    seed: Optional[int] = None


def _build_section(section_cls: Type[C], raw: Optional[Dict[str, Any]]) -> C:
    if not raw:
        return section_cls()
    known = {f.name for f in fields(section_cls)}
    unknown = set(raw) - known
    if unknown:
        logger.warning(f"Ignoring unknown {section_cls.__name__} keys: {sorted(unknown)}")
    return section_cls(**{k: v for k, v in raw.items() if k in known})


def config_from_dict(cfg: Dict[str, Any]) -> EngineConfig:
    return EngineConfig(
        difficulty=_build_section(DifficultyConfig, cfg.get("difficulty")),
        scheduler=_build_section(SchedulerConfig, cfg.get("scheduler")),
        explanation=_build_section(ExplanationConfig, cfg.get("explanation")),
        session=_build_section(SessionConfig, cfg.get("session")),
        storage=_build_section(StorageConfig, cfg.get("storage")),
        seed=cfg.get("seed"),
    )


def load_engine_config(config_path: Optional[Union[str, Path]] = None) -> EngineConfig:
    """
    Load engine settings from YAML.

    A missing file yields the built-in defaults so the engine always starts.
    """

    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    if not path.exists():
        logger.debug(f"No engine config at {path}; using defaults")
        return EngineConfig()

    with open(path) as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Engine config {path} must be a mapping, got {type(cfg).__name__}")
    return config_from_dict(cfg)
