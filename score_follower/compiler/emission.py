"""Emission templates - observation log-likelihoods per hidden state."""

import math
from dataclasses import dataclass

from ..core import Observation
from ..core.constants import PITCH_CLASS_COUNT
from ..graph.logmath import NEG_INF

_LOG_SQRT_2PI = 0.5 * math.log(2.0 * math.pi)


@dataclass(frozen=True)
class FoldedNormalEmission:
    """Normal bump around a pitch class, folded over the octave.

    The standard normal density of ``(x - mean) / stddev`` is taken at the
    nearest of ``mean - 12``, ``mean`` and ``mean + 12``, so an observation at
    11.9 is close to a C. Silence is impossible for a sounding note.
    """

    mean: float
    stddev: float

    def __post_init__(self):
        if self.stddev <= 0:
            raise ValueError(f"stddev must be positive: {self.stddev}")

    def __call__(self, observation: Observation) -> float:
        if observation.is_silent:
            return NEG_INF
        x = observation.pitch
        distance = min(abs(x - m) for m in (self.mean - 12, self.mean, self.mean + 12))
        z = distance / self.stddev
        return -0.5 * z * z - _LOG_SQRT_2PI


@dataclass(frozen=True)
class SilenceEmission:
    """Fixed split between silence and a uniform voiced pitch.

    Pitch changes are reported at transitions, so voiced observations remain
    plausible in a silent state.
    """

    silent_probability: float

    def __post_init__(self):
        if not 0.0 < self.silent_probability < 1.0:
            raise ValueError(
                f"silent_probability must be in (0, 1): {self.silent_probability}"
            )

    def __call__(self, observation: Observation) -> float:
        if observation.is_silent:
            return math.log(self.silent_probability)
        return math.log((1.0 - self.silent_probability) / PITCH_CLASS_COUNT)


def note_emission(pitch_class: int, stddev: float) -> FoldedNormalEmission:
    return FoldedNormalEmission(mean=float(pitch_class), stddev=stddev)
