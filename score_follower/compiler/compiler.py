"""Score compiler - turn a note sequence into a probabilistic graph.

States are laid out as: the start state (index 0), one emitting state per
sounding note in score order, then one silence state per note that routes any
mass through silence, created while its note is wired.
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..core import ScoreNote
from ..core.errors import (
    EmptyScore,
    InvalidRuleProbability,
    InvalidScore,
    ProbabilityOverflow,
    ProbabilityUnderflow,
    RuleViolation,
)
from ..graph import HiddenState, ProbabilisticGraph, StateHandle, StateTag, safe_log
from ..tracking import PositionTracker
from .config import CompilerConfig
from .emission import SilenceEmission, note_emission
from .rules import (
    STANDARD_RULES,
    Contribution,
    RuleContext,
    TransitionRule,
    last_sounding_offset,
)

logger = logging.getLogger(__name__)


@dataclass
class CompiledScore:
    """A compiled model and the bookkeeping needed to read it.

    ``contributions`` maps a source state index to the rule contributions
    that were wired out of it.
    """

    graph: ProbabilisticGraph
    start: StateHandle
    notes: Tuple[ScoreNote, ...]
    note_states: Dict[int, StateHandle] = field(default_factory=dict)
    silence_states: Dict[int, StateHandle] = field(default_factory=dict)
    contributions: Dict[int, Tuple[Contribution, ...]] = field(default_factory=dict)
    elapsed_ms: float = 0.0

    def create_tracker(self) -> PositionTracker:
        """Start a new tracking session on this model."""
        return PositionTracker(self.graph, self.start)

    def state_for_note(self, note_index: int) -> StateHandle:
        """Emitting state of a sounding note."""
        try:
            return self.note_states[note_index]
        except KeyError:
            raise KeyError(f"Note {note_index} is a rest or not in the score") from None

    def silence_for_note(self, note_index: int) -> Optional[StateHandle]:
        return self.silence_states.get(note_index)

    def summary(self) -> Dict[str, int]:
        return {
            "notes": len(self.notes),
            "sounding_notes": len(self.note_states),
            "states": len(self.graph),
            "silence_states": len(self.silence_states),
            "edges": self.graph.edge_count,
        }


class ScoreCompiler:
    """Compile a score into a ProbabilisticGraph using transition rules."""

    def __init__(
        self,
        rules: Sequence[TransitionRule] = STANDARD_RULES,
        config: Optional[CompilerConfig] = None,
    ):
        """
        Initialize ScoreCompiler.

        Args:
            rules: Transition rules, run in this order for every source
            config: Tuned constants (default: standard preset)
        """
        if not rules:
            raise ValueError("At least one transition rule is required")
        self.rules = tuple(rules)
        self.config = config or CompilerConfig()

    def compile(self, notes: Sequence[ScoreNote]) -> CompiledScore:
        """
        Build the model for a score.

        Args:
            notes: Score notes ordered by position, index == ordinal

        Returns:
            CompiledScore with the graph and its start state

        Raises:
            EmptyScore: If there are no (sounding) notes
            InvalidScore: If notes are out of order or mis-indexed
            RuleViolation: If the rules do not conserve probability at a note
            UnnormalizedState: If verification is enabled and fails
        """
        started = time.perf_counter()
        notes = self._validate(notes)
        config = self.config

        graph = ProbabilisticGraph(error_margin=config.verify_margin)
        silence_emission = SilenceEmission(config.silence_emission_probability)
        start = graph.add_state(HiddenState(StateTag.start(), silence_emission))
        compiled = CompiledScore(graph=graph, start=start, notes=notes)

        for note in notes:
            if note.is_rest:
                continue
            emission = note_emission(note.pitch_class, config.note_pitch_stddev)
            compiled.note_states[note.index] = graph.add_state(
                HiddenState(StateTag.emitting(note), emission)
            )

        terminal = last_sounding_offset(notes)
        self._wire(compiled, start, None, terminal, silence_emission)
        for offset, note in enumerate(notes):
            if not note.is_rest:
                self._wire(
                    compiled, compiled.note_states[note.index], offset, terminal, silence_emission
                )

        if config.verify:
            graph.verify()

        compiled.elapsed_ms = (time.perf_counter() - started) * 1000.0
        summary = compiled.summary()
        logger.info(
            "Compiled %d notes into %d states and %d edges in %.1fms",
            summary["notes"],
            summary["states"],
            summary["edges"],
            compiled.elapsed_ms,
        )
        return compiled

    def _validate(self, notes: Sequence[ScoreNote]) -> Tuple[ScoreNote, ...]:
        notes = tuple(notes)
        if not notes:
            raise EmptyScore("Cannot compile an empty score")

        for ordinal, note in enumerate(notes):
            if note.index != ordinal:
                raise InvalidScore(f"Note at offset {ordinal} has index {note.index}")
            if ordinal > 0 and note.position < notes[ordinal - 1].position:
                raise InvalidScore(
                    f"Notes must be ordered by position: note {note.index} starts at "
                    f"{note.position}, before note {ordinal - 1}"
                )

        if last_sounding_offset(notes) is None:
            raise EmptyScore("Score has only rests")
        return notes

    def _wire(
        self,
        compiled: CompiledScore,
        source: StateHandle,
        position: Optional[int],
        terminal: int,
        silence_emission: SilenceEmission,
    ) -> None:
        """Run the rules for one source and wire the resulting edges."""
        config = self.config
        note = compiled.notes[position] if position is not None else None
        note_index = note.index if note is not None else None
        where = "start state" if note is None else f"note {note_index}"

        direct: Dict[Optional[int], float] = {}
        via_silence: Dict[Optional[int], float] = {}
        accepted: List[Contribution] = []
        remaining = 1.0

        for rule in self.rules:
            context = RuleContext(
                notes=compiled.notes,
                position=position,
                remaining=remaining,
                config=config,
                terminal=terminal,
            )
            contributed = 0.0
            for contribution in rule(context) or ():
                p = contribution.probability
                if math.isnan(p) or p < 0.0 or p > 1.0:
                    raise InvalidRuleProbability(
                        f"Rule {_rule_name(rule)} produced probability {p} at {where}",
                        note_index,
                    )
                if p == 0.0:
                    continue
                if contribution.via_silence and note is None:
                    raise RuleViolation(
                        f"Rule {_rule_name(rule)} routes the start state through silence",
                        note_index,
                    )
                if contribution.target is not None and contribution.target not in compiled.note_states:
                    raise RuleViolation(
                        f"Rule {_rule_name(rule)} targets note {contribution.target}, "
                        f"which has no emitting state",
                        note_index,
                    )

                bucket = via_silence if contribution.via_silence else direct
                bucket[contribution.target] = bucket.get(contribution.target, 0.0) + p
                contributed += p
                accepted.append(contribution)
            remaining -= contributed

        if remaining < -config.mass_tolerance:
            raise ProbabilityOverflow(
                f"Transition probabilities at {where} sum to {1.0 - remaining:.4f}",
                note_index,
            )
        if remaining > config.mass_tolerance:
            raise ProbabilityUnderflow(
                f"Transition probabilities at {where} leave {remaining:.4f} unassigned",
                note_index,
            )

        graph = compiled.graph
        for target, p in direct.items():
            graph.add_edge(source, self._target_handle(compiled, target), min(0.0, math.log(p)))

        if via_silence:
            total = sum(via_silence.values())
            silence = graph.add_state(HiddenState(StateTag.silence_after(note), silence_emission))
            compiled.silence_states[note_index] = silence

            log_total = math.log(total)
            graph.add_edge(source, silence, min(0.0, log_total))
            graph.add_edge(silence, silence, safe_log(config.silence_self_loop))

            # p * (1 - self loop) / total
            adjust = math.log(1.0 - config.silence_self_loop) - log_total
            for target, p in via_silence.items():
                graph.add_edge(
                    silence,
                    self._target_handle(compiled, target),
                    min(0.0, math.log(p) + adjust),
                )

        compiled.contributions[source.index] = tuple(accepted)
        logger.debug(
            "Wired %s: direct=%.4f via_silence=%.4f targets=%d",
            where,
            sum(direct.values()),
            sum(via_silence.values()),
            len(set(direct) | set(via_silence)),
        )

    @staticmethod
    def _target_handle(compiled: CompiledScore, target: Optional[int]) -> StateHandle:
        if target is None:
            return compiled.start
        return compiled.note_states[target]


def _rule_name(rule: TransitionRule) -> str:
    return getattr(rule, "__name__", repr(rule))


def compile_score(
    notes: Sequence[ScoreNote],
    rules: Sequence[TransitionRule] = STANDARD_RULES,
    config: Optional[CompilerConfig] = None,
) -> CompiledScore:
    """Compile a score with the given rules (standard rule set by default)."""
    return ScoreCompiler(rules=rules, config=config).compile(notes)
