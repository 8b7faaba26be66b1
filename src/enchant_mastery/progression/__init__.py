"""Progression: curves, policy, letter decoding and the transaction engine."""

from enchant_mastery.progression.engine import MasteryEngine
from enchant_mastery.progression.policy import (
    DEFAULT_POLICY,
    ProgressionPolicy,
    load_progression_policy,
)

__all__ = [
    "DEFAULT_POLICY",
    "MasteryEngine",
    "ProgressionPolicy",
    "load_progression_policy",
]
