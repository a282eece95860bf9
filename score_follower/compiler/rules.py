"""Transition rules - musical heuristics for transition probabilities.

Each rule is a plain function of a ``RuleContext`` returning zero or more
``Contribution``s for one source (a score note, or the start state). The
compiler runs the rules of a rule set in order, so later rules see the mass
left over by earlier ones through ``context.remaining``.

All probabilities are hand-tuned (see ``CompilerConfig``), not learned.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from ..core import ScoreNote, TICKS_PER_MEASURE
from .config import CompilerConfig


class Contribution(NamedTuple):
    """Probability mass sent from the current source to a target.

    ``target`` is a note index, or None for the start state.
    """

    target: Optional[int]
    probability: float
    via_silence: bool = False

    @classmethod
    def to_start(cls, probability: float, via_silence: bool = False) -> "Contribution":
        return cls(None, probability, via_silence)


@dataclass(frozen=True)
class RuleContext:
    """Score context handed to each rule.

    Attributes:
        notes: The whole score, in order
        position: Offset of the current note in ``notes``, None for the start state
        remaining: Probability mass not yet assigned by earlier rules
        config: Tuned constants
        terminal: Offset of the last sounding note
    """

    notes: Sequence[ScoreNote]
    position: Optional[int]
    remaining: float
    config: CompilerConfig
    terminal: int

    @property
    def is_start(self) -> bool:
        return self.position is None

    @property
    def current(self) -> Optional[ScoreNote]:
        if self.position is None:
            return None
        return self.notes[self.position]

    @property
    def is_terminal(self) -> bool:
        return self.position == self.terminal

    @property
    def next_offset(self) -> int:
        """Offset of the first note after the current source."""
        return 0 if self.position is None else self.position + 1


TransitionRule = Callable[[RuleContext], Iterable[Contribution]]


# =============================================================================
# Silence likelihood
# =============================================================================

def silence_after_note(note: ScoreNote, config: CompilerConfig) -> float:
    """
    Probability that the singer goes silent after a note.

    Short notes are rarely followed by a breath; the likelihood grows
    linearly with length up to a whole note.
    """
    if note.length <= config.silence_min_length:
        return config.silence_floor

    slope = (config.silence_ceiling - config.silence_floor) / (
        config.silence_full_length - config.silence_min_length
    )
    return min(
        config.silence_floor + (note.length - config.silence_min_length) * slope,
        config.silence_ceiling,
    )


def silence_after_rest(rest: ScoreNote, config: CompilerConfig) -> float:
    """
    Probability that silence is actually observed while passing a rest.

    Raises:
        ValueError: If ``rest`` is a sounding note
    """
    if not rest.is_rest:
        raise ValueError(f"Expected a rest, got {rest}")

    slope = (config.rest_silence_ceiling - config.rest_silence_floor) / config.rest_silence_full_length
    return min(
        config.rest_silence_floor + slope * rest.length,
        config.rest_silence_ceiling,
    )


# =============================================================================
# Score helpers
# =============================================================================

def first_sounding_offset(notes: Sequence[ScoreNote], start: int = 0) -> Optional[int]:
    """Offset of the first sounding note at or after ``start``."""
    for offset in range(start, len(notes)):
        if not notes[offset].is_rest:
            return offset
    return None


def last_sounding_offset(notes: Sequence[ScoreNote]) -> Optional[int]:
    for offset in range(len(notes) - 1, -1, -1):
        if not notes[offset].is_rest:
            return offset
    return None


def _earliest_sounding_since(
    notes: Sequence[ScoreNote], position: int, tick: int
) -> Optional[ScoreNote]:
    """Earliest sounding note before ``position`` that starts at or after ``tick``."""
    earliest = None
    offset = position - 1
    while offset >= 0 and notes[offset].position >= tick:
        if not notes[offset].is_rest:
            earliest = notes[offset]
        offset -= 1
    return earliest


# =============================================================================
# Rules
# =============================================================================

def self_loop(context: RuleContext) -> Iterator[Contribution]:
    """Stay on the same state.

    From a note: the pitch tracker may report the same note twice. From the
    start state: the singer has not started yet.
    """
    if context.is_start:
        yield Contribution.to_start(context.config.start_self_loop)
    else:
        yield Contribution(context.current.index, context.config.note_self_loop)


def stop_singing(context: RuleContext) -> Iterator[Contribution]:
    """Give up and go back to the start state."""
    if context.is_start or context.is_terminal:
        return
    yield Contribution.to_start(context.config.stop_probability)


def first_note_in_measure(context: RuleContext) -> Iterator[Contribution]:
    """Retry the current measure from its first note."""
    if context.is_start or context.is_terminal:
        return

    note = context.current
    target = _earliest_sounding_since(context.notes, context.position, note.measure_start)
    if target is not None and target.position < note.position:
        yield Contribution(target.index, context.config.measure_reset_probability, True)


def first_note_in_previous_measure(context: RuleContext) -> Iterator[Contribution]:
    """Go back to the first note of the previous measure."""
    if context.is_start or context.is_terminal:
        return

    note = context.current
    previous_start = note.measure_start - TICKS_PER_MEASURE
    if previous_start < 0:
        return

    target = _earliest_sounding_since(context.notes, context.position, previous_start)
    if target is not None and target.position < note.measure_start:
        yield Contribution(
            target.index, context.config.previous_measure_reset_probability, True
        )


def restart_from_first_note(context: RuleContext) -> Iterator[Contribution]:
    """Start over from the first note without passing the start state."""
    if context.is_start or context.is_terminal:
        return

    first = first_sounding_offset(context.notes)
    if first is not None and first != context.position:
        yield Contribution(context.notes[first].index, context.config.restart_probability, True)


def forward_notes(context: RuleContext) -> Iterator[Contribution]:
    """
    Move on to one of the upcoming notes.

    The remaining mass is spread over the sounding notes inside a forward
    window (half a measure past the end of the current note), weighted by
    how long each note sounds inside the window. A note repeating its
    predecessor's pitch is harder to detect and counts shorter; each note of
    distance from the next note halves the weight.
    """
    notes = context.notes
    config = context.config
    start = context.next_offset
    first = first_sounding_offset(notes, start)
    if first is None:
        return

    if context.is_start:
        window_end = notes[start].position + config.max_skip_ticks
    else:
        window_end = context.current.end + config.max_skip_ticks
    # The next sounding note is always reachable
    if notes[first].position >= window_end:
        window_end = notes[first].end

    stop = start + 1
    while stop < len(notes) and notes[stop].position < window_end:
        stop += 1

    weights: List[Tuple[int, float]] = []
    for offset in range(start, stop):
        if not notes[offset].is_rest:
            weights.append((offset, _virtual_length(notes, offset, start, window_end, config)))

    total = sum(weight for _, weight in weights)
    for offset, weight in weights:
        target = notes[offset]
        p = context.remaining * weight / total

        if context.is_start:
            yield Contribution(target.index, p)
            continue

        previous = notes[offset - 1]
        if previous.is_rest:
            silence = silence_after_rest(previous, config)
        else:
            silence = silence_after_note(previous, config)

        yield Contribution(target.index, (1.0 - silence) * p)
        yield Contribution(target.index, silence * p, True)


def _virtual_length(
    notes: Sequence[ScoreNote],
    offset: int,
    start: int,
    window_end: int,
    config: CompilerConfig,
) -> float:
    note = notes[offset]
    length = float(min(note.end, window_end) - note.position)

    if offset > 0 and notes[offset - 1].pitch == note.pitch:
        length *= config.same_pitch_discount

    return length * config.distance_discount ** (offset - start)


def terminal_to_start(context: RuleContext) -> Iterator[Contribution]:
    """The last note hands everything left back to the start state."""
    if context.is_start or not context.is_terminal:
        return
    if context.remaining > 0.0:
        yield Contribution.to_start(context.remaining)


# =============================================================================
# Rule sets
# =============================================================================

STANDARD_RULES: Tuple[TransitionRule, ...] = (
    self_loop,
    stop_singing,
    first_note_in_measure,
    first_note_in_previous_measure,
    forward_notes,
    terminal_to_start,
)

# First revision: no stopping or measure jumps
MINIMAL_RULES: Tuple[TransitionRule, ...] = (
    self_loop,
    forward_notes,
    terminal_to_start,
)

RULES_BY_NAME: Dict[str, TransitionRule] = {
    rule.__name__: rule
    for rule in (
        self_loop,
        stop_singing,
        first_note_in_measure,
        first_note_in_previous_measure,
        restart_from_first_note,
        forward_notes,
        terminal_to_start,
    )
}


def rules_from_names(names: Iterable[str]) -> Tuple[TransitionRule, ...]:
    """
    Resolve rule names, keeping their order.

    Raises:
        ValueError: If a name is unknown
    """
    rules = []
    for name in names:
        name = name.strip()
        if name not in RULES_BY_NAME:
            raise ValueError(f"Unknown rule: {name}. Available: {sorted(RULES_BY_NAME)}")
        rules.append(RULES_BY_NAME[name])
    return tuple(rules)
