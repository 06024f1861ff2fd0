# ABOUTME: Makes the shared common package importable across the engine layers.
# ABOUTME: Re-exports the attempt schema, Beta arm primitives and configuration entry points.

from .bandit import BetaArm, NumpyRandomSource, RandomSource, sample_beta
from .config import EngineConfig, load_engine_config
from .schemas import AttemptEvent, AttemptEventValidationError, compute_reward, create_attempt_event

__all__ = [
    "BetaArm",
    "NumpyRandomSource",
    "RandomSource",
    "sample_beta",
    "EngineConfig",
    "load_engine_config",
    "AttemptEvent",
    "AttemptEventValidationError",
    "compute_reward",
    "create_attempt_event",
]
