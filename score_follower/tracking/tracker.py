"""Position tracker - online decoding of the singer's position.

Each observation advances a streaming max-product (log-domain max-sum)
recurrence over the compiled graph. Only the best path into each state is
kept and no history is stored, so this is a greedy running estimate rather
than a Viterbi backtrack.

A tracker is a single tracking session: it is not thread-safe, and any error
ends the session. The graph itself is only read and can be shared between
trackers.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional

from ..core import Observation, ScoreNote
from ..core.errors import (
    CrossGraphReference,
    InvalidProbability,
    StateSpaceCollapse,
    TrackingError,
)
from ..graph import NEG_INF, ProbabilisticGraph, StateHandle, StateKind, log_sum_exp

if TYPE_CHECKING:
    from ..compiler import CompiledScore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Estimate:
    """Best guess after an observation."""

    kind: StateKind
    note: Optional[ScoreNote]  # Reporting note, None for the start state
    state_index: int
    log_probability: float = 0.0

    @property
    def is_start(self) -> bool:
        return self.kind is StateKind.START

    @property
    def is_silence(self) -> bool:
        return self.kind is StateKind.SILENCE

    @property
    def is_note(self) -> bool:
        return self.kind is StateKind.NOTE

    @property
    def note_index(self) -> Optional[int]:
        return self.note.index if self.note is not None else None

    def __str__(self) -> str:
        if self.is_start:
            return "start"
        if self.is_silence:
            return f"silence after {self.note}"
        return str(self.note)


class PositionTracker:
    """Track the current note from a stream of observations."""

    def __init__(self, graph: ProbabilisticGraph, start: StateHandle):
        """
        Initialize a tracking session at the start state.

        Args:
            graph: Compiled model (read only)
            start: Handle of the start state in ``graph``

        Raises:
            CrossGraphReference: If ``start`` does not belong to ``graph``
        """
        if not graph.owns(start):
            raise CrossGraphReference(f"Start handle {start} does not belong to the graph")

        self.graph = graph
        self.start = start
        self._states = graph.states
        self.reset()

    def reset(self) -> None:
        """Restart the session from the start state."""
        self._log_probabilities: Dict[int, float] = {self.start.index: 0.0}
        self._estimate = self._estimate_for(self.start.index, 0.0)
        self._closed = False
        self.steps = 0

    @property
    def current_note(self) -> Optional[ScoreNote]:
        """Note currently being performed (or just finished), None before singing."""
        return self._estimate.note

    def current_estimate(self) -> Estimate:
        return self._estimate

    def distribution(self) -> Dict[int, float]:
        """Copy of the live state log-probabilities."""
        return dict(self._log_probabilities)

    def input_observation(self, observation: Observation) -> Estimate:
        """
        Advance the recurrence by one observation.

        Args:
            observation: Pitch class (or silence) of the latest analysis window

        Returns:
            The most likely state after this observation

        Raises:
            InvalidProbability: A candidate exceeded probability 1 (broken model)
            StateSpaceCollapse: No state can explain the observation
            TrackingError: The session already ended with an error
        """
        if self._closed:
            raise TrackingError("Tracking session is closed after an earlier error")

        try:
            best = self._advance(observation)
        except (TrackingError, InvalidProbability):
            self._closed = True
            raise

        self.steps += 1
        return best

    def _advance(self, observation: Observation) -> Estimate:
        emissions: Dict[int, float] = {}
        candidates: Dict[int, float] = {}

        for from_index, log_p in self._log_probabilities.items():
            for to_index, edge_log_p in self.graph.outgoing(from_index).items():
                emission = emissions.get(to_index)
                if emission is None:
                    emission = self._states[to_index].emission_log_probability(observation)
                    emissions[to_index] = emission

                candidate = log_p + edge_log_p + emission
                if not candidate <= 0.0:  # also catches NaN
                    raise InvalidProbability(
                        f"Candidate log-probability {candidate} for state {to_index} "
                        f"at step {self.steps}"
                    )

                if candidate > candidates.get(to_index, NEG_INF):
                    candidates[to_index] = candidate

        live = {index: lp for index, lp in candidates.items() if lp != NEG_INF}
        if not live:
            raise StateSpaceCollapse(
                f"No state explains observation {observation} at step {self.steps}"
            )

        # First seen wins ties
        best_index, best_log_p = None, NEG_INF
        for index, lp in live.items():
            if lp > best_log_p:
                best_index, best_log_p = index, lp

        log_total = log_sum_exp(live.values())
        self._log_probabilities = {index: lp - log_total for index, lp in live.items()}

        previous = self._estimate
        self._estimate = self._estimate_for(best_index, best_log_p - log_total)
        if previous.state_index != best_index:
            logger.debug("Step %d: %s -> %s", self.steps, previous, self._estimate)

        return self._estimate

    def _estimate_for(self, index: int, log_p: float) -> Estimate:
        tag = self._states[index].tag
        return Estimate(kind=tag.kind, note=tag.note, state_index=index, log_probability=log_p)


def create_tracker(compiled: "CompiledScore") -> PositionTracker:
    """Start a tracking session on a compiled score."""
    return PositionTracker(compiled.graph, compiled.start)


def log_probability_mass(distribution: Dict[int, float]) -> float:
    """Log of the total probability of a tracker distribution (0 when normalized)."""
    if not distribution:
        return NEG_INF
    return log_sum_exp(distribution.values())
