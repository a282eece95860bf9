"""ScoreNote data class - one entry of the reference score."""

from dataclasses import dataclass
from typing import Optional

from .constants import PITCH_NAMES, TICKS_PER_MEASURE


@dataclass(frozen=True)
class ScoreNote:
    """A note (or rest) of the reference score.

    Positions and lengths are in ticks (480 per quarter note).
    """

    index: int  # Ordinal in the score
    position: int  # Start tick
    length: int  # Duration in ticks
    pitch: Optional[int] = None  # MIDI note number, None for a rest

    def __post_init__(self):
        if self.position < 0:
            raise ValueError(f"Note position must be non-negative: {self.position}")
        if self.length <= 0:
            raise ValueError(f"Note length must be positive: {self.length}")
        if self.pitch is not None and self.pitch < 0:
            raise ValueError(f"Note pitch must be non-negative: {self.pitch}")

    @classmethod
    def rest(cls, index: int, position: int, length: int) -> "ScoreNote":
        """Create a rest."""
        return cls(index=index, position=position, length=length, pitch=None)

    @property
    def is_rest(self) -> bool:
        return self.pitch is None

    @property
    def end(self) -> int:
        """Tick right after the note."""
        return self.position + self.length

    @property
    def pitch_class(self) -> Optional[int]:
        """Get pitch class (0-11, where 0=C), None for a rest."""
        if self.pitch is None:
            return None
        return self.pitch % 12

    @property
    def measure(self) -> int:
        """Zero-based measure number containing the note start."""
        return self.position // TICKS_PER_MEASURE

    @property
    def measure_start(self) -> int:
        """Tick at which the note's measure begins."""
        return self.position - self.position % TICKS_PER_MEASURE

    @property
    def pitch_name(self) -> str:
        """Get note name (e.g., 'C4', 'A#3'), 'R' for a rest."""
        if self.pitch is None:
            return "R"
        octave = (self.pitch // 12) - 1
        return f"{PITCH_NAMES[self.pitch % 12]}{octave}"

    def __str__(self) -> str:
        return f"#{self.index} {self.pitch_name} @{self.position}+{self.length}"
