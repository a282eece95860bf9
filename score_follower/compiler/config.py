"""Compiler configuration - the hand-tuned constants of the model.

Two historical constant sets exist and are kept side by side as presets.
They disagree on the start self-loop, the note emission spread and the
silence emission split; which one is right is a product decision, so neither
is treated as a bug fix of the other.
"""

from dataclasses import dataclass, fields, replace
from typing import Dict


@dataclass(frozen=True)
class CompilerConfig:
    """Configuration for score compilation.

    Attributes:
        start_self_loop: Start state stays put ("not singing yet") (default: 0.6)
        note_self_loop: Note state stays on the same note (default: 0.33)
        stop_probability: Note returns to the start state (default: 0.05)
        measure_reset_probability: Jump back to the first note of the measure (default: 0.05)
        previous_measure_reset_probability: Jump back to the first note of the previous measure (default: 0.05)
        restart_probability: Jump back to the first note of the score (default: 0.003)
        max_skip_ticks: Forward window after the current note, in ticks (default: 960)
        same_pitch_discount: Length factor for a note repeating its predecessor's pitch (default: 0.8)
        distance_discount: Length factor per note of distance from the next note (default: 0.5)
        silence_self_loop: Silence state stays silent (default: 0.3)
        silence_min_length: Note length at or below which silence is least likely (default: 480)
        silence_full_length: Note length at which silence is most likely (default: 1920)
        silence_floor: Silence likelihood after a short note (default: 0.05)
        silence_ceiling: Silence likelihood after a long note (default: 0.2)
        rest_silence_full_length: Rest length at which silence is most likely (default: 720)
        rest_silence_floor: Silence likelihood across a zero-length rest (default: 0.3)
        rest_silence_ceiling: Silence likelihood across a long rest (default: 0.65)
        note_pitch_stddev: Spread of the folded normal note emission, semitones (default: 0.5)
        silence_emission_probability: P(silent observation) in start/silence states (default: 0.7)
        mass_tolerance: Allowed deviation of a source's summed contributions from 1 (default: 0.01)
        verify_margin: Allowed |log-mass| deviation in graph verification (default: 0.02)
        verify: Run graph verification after compiling (default: True)
    """

    start_self_loop: float = 0.6
    note_self_loop: float = 0.33
    stop_probability: float = 0.05
    measure_reset_probability: float = 0.05
    previous_measure_reset_probability: float = 0.05
    restart_probability: float = 0.003
    max_skip_ticks: int = 960
    same_pitch_discount: float = 0.8
    distance_discount: float = 0.5
    silence_self_loop: float = 0.3
    silence_min_length: int = 480
    silence_full_length: int = 1920
    silence_floor: float = 0.05
    silence_ceiling: float = 0.2
    rest_silence_full_length: int = 720
    rest_silence_floor: float = 0.3
    rest_silence_ceiling: float = 0.65
    note_pitch_stddev: float = 0.5
    silence_emission_probability: float = 0.7
    mass_tolerance: float = 0.01
    verify_margin: float = 0.02
    verify: bool = True

    _PROBABILITY_FIELDS = (
        "start_self_loop",
        "note_self_loop",
        "stop_probability",
        "measure_reset_probability",
        "previous_measure_reset_probability",
        "restart_probability",
        "same_pitch_discount",
        "distance_discount",
        "silence_self_loop",
        "silence_floor",
        "silence_ceiling",
        "rest_silence_floor",
        "rest_silence_ceiling",
        "silence_emission_probability",
    )
    _POSITIVE_FIELDS = (
        "max_skip_ticks",
        "silence_full_length",
        "rest_silence_full_length",
        "note_pitch_stddev",
    )

    def __post_init__(self):
        for name in self._PROBABILITY_FIELDS:
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be a probability in [0, 1], got {value}")
        for name in self._POSITIVE_FIELDS:
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        for name in ("same_pitch_discount", "distance_discount"):
            if getattr(self, name) <= 0.0:
                raise ValueError(f"{name} must be in (0, 1], got {getattr(self, name)}")
        if not 0.0 < self.silence_emission_probability < 1.0:
            raise ValueError("silence_emission_probability must be strictly between 0 and 1")
        if self.silence_self_loop >= 1.0:
            raise ValueError("silence_self_loop must leave mass for leaving silence")
        if self.silence_min_length >= self.silence_full_length:
            raise ValueError("silence_min_length must be below silence_full_length")
        if self.silence_floor > self.silence_ceiling:
            raise ValueError("silence_floor must not exceed silence_ceiling")
        if self.rest_silence_floor > self.rest_silence_ceiling:
            raise ValueError("rest_silence_floor must not exceed rest_silence_ceiling")

    @classmethod
    def preset(cls, name: str) -> "CompilerConfig":
        """
        Get a named preset.

        Raises:
            ValueError: If the preset is unknown
        """
        try:
            return PRESETS[name]
        except KeyError:
            raise ValueError(
                f"Unknown preset: {name}. Available: {sorted(PRESETS)}"
            ) from None

    def with_overrides(self, **overrides) -> "CompilerConfig":
        """Copy with some fields replaced."""
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


PRESETS: Dict[str, CompilerConfig] = {
    "standard": CompilerConfig(),
    # First revision of the tuning
    "revision1": CompilerConfig(
        start_self_loop=0.8,
        note_pitch_stddev=0.6,
        silence_emission_probability=0.3,
    ),
}
