"""Probabilistic graph - hidden states and log-probability transitions.

States live in an arena and are addressed by a stable small integer index.
Edges are stored outgoing from their source as ``{to_index: log_probability}``
maps, so the decoder walks source -> edge -> target without any object
references between states.
"""

import itertools
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple, Union

from ..core import ScoreNote, Observation
from ..core.errors import (
    CrossGraphReference,
    DuplicateRegistration,
    InvalidProbability,
    UnnormalizedState,
)
from .logmath import NEG_INF, log_sum_exp

EmissionModel = Callable[[Observation], float]

_graph_ids = itertools.count()


class StateKind(Enum):
    """Semantic role of a hidden state."""

    START = "start"
    NOTE = "note"  # Emitting the note's pitch
    SILENCE = "silence"  # Silence after the note


@dataclass(frozen=True)
class StateTag:
    """What a state stands for; ``note`` is the note it reports."""

    kind: StateKind
    note: Optional[ScoreNote] = None

    @classmethod
    def start(cls) -> "StateTag":
        return cls(StateKind.START)

    @classmethod
    def emitting(cls, note: ScoreNote) -> "StateTag":
        return cls(StateKind.NOTE, note)

    @classmethod
    def silence_after(cls, note: ScoreNote) -> "StateTag":
        return cls(StateKind.SILENCE, note)

    @property
    def label(self) -> str:
        if self.kind is StateKind.START:
            return "start"
        if self.kind is StateKind.SILENCE:
            return f"{self.note.index}/silence"
        return f"{self.note.index}/{self.note.pitch_name}"


class StateHandle(NamedTuple):
    """Reference to a state registered in a particular graph."""

    graph_id: int
    index: int


@dataclass(eq=False)
class HiddenState:
    """A hidden state with its emission model.

    The emission model maps an observation to a log-probability.
    """

    tag: StateTag
    emission: EmissionModel
    index: Optional[int] = field(default=None, init=False)

    @property
    def registered(self) -> bool:
        return self.index is not None

    def emission_log_probability(self, observation: Observation) -> float:
        return self.emission(observation)


class ProbabilisticGraph:
    """Arena of hidden states with outgoing log-probability edges."""

    def __init__(self, error_margin: float = 0.01):
        """
        Initialize an empty graph.

        Args:
            error_margin: Allowed |log-mass| deviation per state in verify()
        """
        self.error_margin = error_margin
        self.graph_id = next(_graph_ids)
        self._states: List[HiddenState] = []
        self._outgoing: List[Dict[int, float]] = []

    def __len__(self) -> int:
        return len(self._states)

    @property
    def states(self) -> Tuple[HiddenState, ...]:
        return tuple(self._states)

    @property
    def edge_count(self) -> int:
        return sum(len(edges) for edges in self._outgoing)

    def add_state(self, state: HiddenState) -> StateHandle:
        """
        Register a state and assign it the next index.

        Raises:
            DuplicateRegistration: If the state already belongs to a graph
        """
        if state.registered:
            raise DuplicateRegistration(
                f"State {state.tag.label} is already registered (index {state.index})"
            )
        state.index = len(self._states)
        self._states.append(state)
        self._outgoing.append({})
        return StateHandle(self.graph_id, state.index)

    def add_edge(
        self,
        from_handle: StateHandle,
        to_handle: StateHandle,
        log_probability: float,
    ) -> None:
        """
        Set the transition log-probability from one state to another.

        A log-probability of -inf removes the edge.

        Raises:
            InvalidProbability: If log_probability is positive or NaN
            CrossGraphReference: If a handle belongs to another graph
        """
        from_index = self._resolve(from_handle)
        to_index = self._resolve(to_handle)

        if math.isnan(log_probability) or log_probability > 0.0:
            raise InvalidProbability(
                f"Edge {from_index}->{to_index} has log-probability {log_probability}"
            )

        if log_probability == NEG_INF:
            self._outgoing[from_index].pop(to_index, None)
        else:
            self._outgoing[from_index][to_index] = log_probability

    def handle(self, index: int) -> StateHandle:
        """Handle for the state at index."""
        if not 0 <= index < len(self._states):
            raise IndexError(f"No state with index {index}")
        return StateHandle(self.graph_id, index)

    def owns(self, handle: StateHandle) -> bool:
        return handle.graph_id == self.graph_id and 0 <= handle.index < len(self._states)

    def state(self, ref: Union[StateHandle, int]) -> HiddenState:
        if isinstance(ref, StateHandle):
            return self._states[self._resolve(ref)]
        return self._states[ref]

    def outgoing(self, index: int) -> Dict[int, float]:
        """Outgoing edges of a state (read-only view by convention)."""
        return self._outgoing[index]

    def incoming_edges(self, index: int) -> Dict[int, float]:
        """Incoming edges of a state, derived by scanning all sources."""
        return {
            source: edges[index]
            for source, edges in enumerate(self._outgoing)
            if index in edges
        }

    def outgoing_mass(self, index: int) -> float:
        """Log of the total outgoing probability of a state."""
        return log_sum_exp(self._outgoing[index].values())

    def verify(self) -> None:
        """
        Check that every state's outgoing probabilities sum to 1.

        Meant to run once after compilation, not while decoding.

        Raises:
            UnnormalizedState: On the first state outside the error margin
        """
        for index in range(len(self._states)):
            log_mass = self.outgoing_mass(index)
            if math.isnan(log_mass) or abs(log_mass) > self.error_margin:
                raise UnnormalizedState(index, log_mass, self.error_margin)

    def _resolve(self, handle: StateHandle) -> int:
        if not self.owns(handle):
            raise CrossGraphReference(
                f"Handle {handle} does not belong to graph {self.graph_id}"
            )
        return handle.index
