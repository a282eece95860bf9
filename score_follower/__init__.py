"""Score Follower - Online position tracking of a singer in a score.

Architecture Layers:
    1. core/      - Score notes, observations, constants and errors
    2. graph/     - Hidden states, weighted edges and log-space math
    3. compiler/  - Transition rules and score-to-model compilation
    4. tracking/  - Online max-product position tracking
    5. analysis/  - Audio windows to pitch-class observations
    6. input/     - Score and audio file loading
"""

__version__ = "0.1.0"

# Core types
from .core import (
    ScoreNote,
    Observation,
    ScoreFollowerError,
    CompileError,
    InvalidScore,
    EmptyScore,
    InvalidProbability,
    RuleViolation,
    UnnormalizedState,
    TrackingError,
    StateSpaceCollapse,
)

# Graph layer
from .graph import ProbabilisticGraph

# Compiler layer
from .compiler import (
    ScoreCompiler,
    CompiledScore,
    CompilerConfig,
    compile_score,
    STANDARD_RULES,
)

# Tracking layer
from .tracking import PositionTracker, Estimate, create_tracker

# Analysis layer
from .analysis import PitchAnalyzer

# Input layer
from .input import AudioLoader, load_score

__all__ = [
    # Core
    "ScoreNote",
    "Observation",
    "ScoreFollowerError",
    "CompileError",
    "InvalidScore",
    "EmptyScore",
    "InvalidProbability",
    "RuleViolation",
    "UnnormalizedState",
    "TrackingError",
    "StateSpaceCollapse",
    # Graph
    "ProbabilisticGraph",
    # Compiler
    "ScoreCompiler",
    "CompiledScore",
    "CompilerConfig",
    "compile_score",
    "STANDARD_RULES",
    # Tracking
    "PositionTracker",
    "Estimate",
    "create_tracker",
    # Analysis
    "PitchAnalyzer",
    # Input
    "AudioLoader",
    "load_score",
]
