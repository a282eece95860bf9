"""Exception taxonomy.

Compile errors are raised while building a model from a score and are fatal
to that compile attempt. Tracking errors end the tracking session.
"""

from typing import Optional


class ScoreFollowerError(Exception):
    """Base class for all score follower errors."""


class CompileError(ScoreFollowerError):
    """Raised while compiling a score into a model."""


class InvalidScore(CompileError, ValueError):
    """The note sequence cannot be compiled."""


class EmptyScore(InvalidScore):
    """The score has no notes (or no sounding notes)."""


class InvalidProbability(ScoreFollowerError, ValueError):
    """A probability is outside [0, 1] (log-probability above 0, or NaN)."""


class RuleViolation(CompileError):
    """A transition rule broke mass conservation at a note.

    ``note_index`` is None when the offending source is the start state.
    """

    def __init__(self, message: str, note_index: Optional[int] = None):
        super().__init__(message)
        self.note_index = note_index


class ProbabilityOverflow(RuleViolation):
    """Contributed probabilities sum to more than 1."""


class ProbabilityUnderflow(RuleViolation):
    """Contributed probabilities leave mass unassigned."""


class InvalidRuleProbability(RuleViolation, InvalidProbability):
    """A rule contributed a probability outside [0, 1]."""


class DuplicateRegistration(CompileError):
    """A state was added to a graph twice."""


class CrossGraphReference(CompileError):
    """A state handle was used with a graph it does not belong to."""


class UnnormalizedState(CompileError):
    """A state's outgoing edges do not sum to probability 1."""

    def __init__(self, state_index: int, log_mass: float, margin: float):
        super().__init__(
            f"State {state_index} has outgoing log-mass {log_mass:.6f} "
            f"(allowed deviation {margin})"
        )
        self.state_index = state_index
        self.log_mass = log_mass


class TrackingError(ScoreFollowerError):
    """Raised while tracking; the session cannot continue."""


class StateSpaceCollapse(TrackingError):
    """No state can explain the observation."""
