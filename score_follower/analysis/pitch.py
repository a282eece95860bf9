"""Pitch extraction - audio windows to pitch-class observations."""

from typing import Iterator, List, Optional, Protocol, Tuple

import librosa
import numpy as np

from ..core import Observation
from ..core.constants import (
    DEFAULT_FMAX,
    DEFAULT_FMIN,
    DEFAULT_HOP_LENGTH,
    DEFAULT_SILENCE_DB,
    DEFAULT_SR,
    DEFAULT_WINDOW_SIZE,
)
from ..input.loader import iter_windows


class PitchExtractor(Protocol):
    """Anything that turns one mono audio window into an observation."""

    def estimate(self, window: np.ndarray) -> Observation:
        ...


class PitchAnalyzer:
    """Window-level pitch detection for the tracker."""

    def __init__(
        self,
        sr: int = DEFAULT_SR,
        fmin: float = DEFAULT_FMIN,
        fmax: float = DEFAULT_FMAX,
        silence_db: float = DEFAULT_SILENCE_DB,
    ):
        """
        Initialize PitchAnalyzer.

        Args:
            sr: Sample rate of incoming windows
            fmin: Lowest detectable frequency (Hz)
            fmax: Highest detectable frequency (Hz)
            silence_db: RMS level (dBFS) below which a window is silent
        """
        self.sr = sr
        self.fmin = fmin
        self.fmax = fmax
        self.silence_db = silence_db

    def estimate(self, window: np.ndarray) -> Observation:
        """
        Estimate the pitch class of one window.

        Args:
            window: Mono samples, at least two periods of ``fmin`` long

        Returns:
            Voiced observation, or silence if the window is too quiet
        """
        window = np.asarray(window, dtype=float)
        if window.ndim != 1:
            raise ValueError(f"Expected a mono window, got shape {window.shape}")

        if self.level_db(window) < self.silence_db:
            return Observation.silent()

        f0 = librosa.yin(
            window,
            fmin=self.fmin,
            fmax=self.fmax,
            sr=self.sr,
            frame_length=len(window),
            center=False,
        )
        return Observation.from_frequency(float(np.median(f0)))

    def iter_observations(
        self,
        audio: np.ndarray,
        window_size: int = DEFAULT_WINDOW_SIZE,
        hop_length: int = DEFAULT_HOP_LENGTH,
    ) -> Iterator[Tuple[float, Observation]]:
        """
        Yield (time in seconds, observation) for consecutive windows.
        """
        for start, window in iter_windows(audio, window_size, hop_length):
            yield start / self.sr, self.estimate(window)

    def iter_track(
        self,
        audio: np.ndarray,
        hop_length: int = DEFAULT_HOP_LENGTH,
        method: str = "pyin",
    ) -> Iterator[Tuple[float, Observation]]:
        """
        Yield (time in seconds, observation) from a whole-signal f0 track.

        Unlike iter_observations, the signal is analyzed up front, so this
        suits recordings rather than live input. With pYIN, unvoiced frames
        become silence.
        """
        f0, voiced, _ = self.detect_f0(audio, hop_length=hop_length, method=method)
        for frame, observation in enumerate(self.f0_to_observations(f0, voiced)):
            yield frame * hop_length / self.sr, observation

    @staticmethod
    def level_db(window: np.ndarray) -> float:
        """RMS level of a window in dBFS."""
        rms = float(np.sqrt(np.mean(np.square(window)))) if window.size else 0.0
        if rms <= 0.0:
            return float("-inf")
        return float(librosa.amplitude_to_db(np.array([rms]), ref=1.0, top_db=None)[0])

    def detect_f0(
        self,
        audio: np.ndarray,
        hop_length: int = DEFAULT_HOP_LENGTH,
        method: str = "pyin",
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Detect fundamental frequency (f0) over a whole signal.

        Args:
            audio: Audio array
            hop_length: Hop between frames in samples
            method: Detection method ('pyin', 'yin')

        Returns:
            Tuple of (f0 in Hz, voiced_flag, voiced_prob)
        """
        if method == "pyin":
            f0, voiced_flag, voiced_prob = librosa.pyin(
                audio,
                fmin=self.fmin,
                fmax=self.fmax,
                sr=self.sr,
                hop_length=hop_length,
            )
        else:
            # YIN doesn't return voiced probability
            f0 = librosa.yin(
                audio,
                fmin=self.fmin,
                fmax=self.fmax,
                sr=self.sr,
                hop_length=hop_length,
            )
            voiced_flag = ~np.isnan(f0)
            voiced_prob = voiced_flag.astype(float)

        return f0, voiced_flag, voiced_prob

    def f0_to_observations(self, f0: np.ndarray, voiced: Optional[np.ndarray] = None) -> List[Observation]:
        """Convert an f0 track to observations (unvoiced frames become silence)."""
        observations = []
        for i, freq in enumerate(f0):
            if voiced is not None and not voiced[i]:
                observations.append(Observation.silent())
            else:
                observations.append(Observation.from_frequency(float(freq)))
        return observations
