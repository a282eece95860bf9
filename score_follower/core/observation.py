"""Observation - one quantized pitch reading per analysis window."""

import math
from dataclasses import dataclass
from typing import Optional

from .constants import A4_FREQ, A4_MIDI, PITCH_CLASS_COUNT, PITCH_NAMES


@dataclass(frozen=True)
class Observation:
    """Pitch class observed in one analysis window.

    ``pitch`` is an octave-invariant pitch in ``[0, 12)`` (0 = C), or None
    when the window was classified as silence.
    """

    pitch: Optional[float] = None

    def __post_init__(self):
        if self.pitch is not None and not (0.0 <= self.pitch < PITCH_CLASS_COUNT):
            raise ValueError(f"Normalized pitch must be in [0, 12): {self.pitch}")

    @classmethod
    def silent(cls) -> "Observation":
        return cls(None)

    @classmethod
    def voiced(cls, pitch: float) -> "Observation":
        return cls(float(pitch))

    @classmethod
    def from_frequency(cls, freq: float) -> "Observation":
        """Fold a frequency in Hz into a pitch-class observation.

        Non-positive or NaN frequencies are treated as silence.
        """
        if freq is None or not math.isfinite(freq) or freq <= 0:
            return cls.silent()
        midi = A4_MIDI + 12 * math.log2(freq / A4_FREQ)
        pitch = midi % PITCH_CLASS_COUNT
        # Float modulo can land exactly on 12.0 for tiny negative inputs
        if pitch >= PITCH_CLASS_COUNT:
            pitch = 0.0
        return cls(pitch)

    @property
    def is_silent(self) -> bool:
        return self.pitch is None

    @property
    def pitch_name(self) -> str:
        """Nearest pitch name, '-' when silent."""
        if self.pitch is None:
            return "-"
        return PITCH_NAMES[int(round(self.pitch)) % PITCH_CLASS_COUNT]
