"""Core types and constants for Score Follower."""

from .note import ScoreNote
from .observation import Observation
from .constants import (
    PITCH_NAMES,
    TICKS_PER_QUARTER,
    TICKS_PER_MEASURE,
    DEFAULT_SR,
    DEFAULT_WINDOW_SIZE,
    DEFAULT_HOP_LENGTH,
)
from .errors import (
    ScoreFollowerError,
    CompileError,
    InvalidScore,
    EmptyScore,
    InvalidProbability,
    RuleViolation,
    ProbabilityOverflow,
    ProbabilityUnderflow,
    InvalidRuleProbability,
    DuplicateRegistration,
    CrossGraphReference,
    UnnormalizedState,
    TrackingError,
    StateSpaceCollapse,
)

__all__ = [
    "ScoreNote",
    "Observation",
    "PITCH_NAMES",
    "TICKS_PER_QUARTER",
    "TICKS_PER_MEASURE",
    "DEFAULT_SR",
    "DEFAULT_WINDOW_SIZE",
    "DEFAULT_HOP_LENGTH",
    # Errors
    "ScoreFollowerError",
    "CompileError",
    "InvalidScore",
    "EmptyScore",
    "InvalidProbability",
    "RuleViolation",
    "ProbabilityOverflow",
    "ProbabilityUnderflow",
    "InvalidRuleProbability",
    "DuplicateRegistration",
    "CrossGraphReference",
    "UnnormalizedState",
    "TrackingError",
    "StateSpaceCollapse",
]
