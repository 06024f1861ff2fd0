# ABOUTME: Exposes the skill registry, question generators and generator conformance checks.
# ABOUTME: Used by the practice simulator; the adaptive layers never import it.

from .generators import SKILLS, GeneratedQuestion, Skill, generate
from .validator import ValidationResult, validate_all_generators, validate_generator

__all__ = [
    "SKILLS",
    "GeneratedQuestion",
    "Skill",
    "generate",
    "ValidationResult",
    "validate_all_generators",
    "validate_generator",
]
