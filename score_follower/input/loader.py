"""Audio loading and windowing utilities."""

from pathlib import Path
from typing import Iterator, Optional, Tuple

import librosa
import numpy as np

from ..core.constants import DEFAULT_HOP_LENGTH, DEFAULT_SR, DEFAULT_WINDOW_SIZE


class AudioLoader:
    """Loads recordings for offline tracking."""

    SUPPORTED_FORMATS = {".wav", ".mp3", ".flac", ".ogg", ".m4a"}

    def __init__(
        self,
        target_sr: int = DEFAULT_SR,
        normalize: bool = True,
    ):
        """
        Initialize AudioLoader.

        Args:
            target_sr: Target sample rate for resampling
            normalize: Normalize audio amplitude if True
        """
        self.target_sr = target_sr
        self.normalize = normalize

    def load(self, path: str) -> Tuple[np.ndarray, int]:
        """
        Load an audio file as mono.

        Args:
            path: Path to audio file

        Returns:
            Tuple of (audio array, sample rate)

        Raises:
            ValueError: If file format not supported
            FileNotFoundError: If file doesn't exist
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Audio file not found: {path}")

        if path.suffix.lower() not in self.SUPPORTED_FORMATS:
            raise ValueError(
                f"Unsupported format: {path.suffix}. "
                f"Supported: {self.SUPPORTED_FORMATS}"
            )

        audio, sr = librosa.load(str(path), sr=self.target_sr, mono=True)

        if self.normalize:
            audio = self._normalize(audio)

        return audio, sr

    def _normalize(self, audio: np.ndarray) -> np.ndarray:
        """Normalize audio to [-1, 1] range using peak normalization."""
        peak = np.abs(audio).max() if audio.size else 0.0
        if peak > 0:
            audio = audio / peak
        return audio

    def get_duration(self, audio: np.ndarray, sr: Optional[int] = None) -> float:
        """Get duration in seconds."""
        sr = sr or self.target_sr
        return len(audio) / sr


def iter_windows(
    audio: np.ndarray,
    window_size: int = DEFAULT_WINDOW_SIZE,
    hop_length: int = DEFAULT_HOP_LENGTH,
) -> Iterator[Tuple[int, np.ndarray]]:
    """
    Yield (start sample, window) over a signal.

    The last partial window is zero-padded so every sample is covered.
    """
    if window_size <= 0 or hop_length <= 0:
        raise ValueError("window_size and hop_length must be positive")

    audio = np.asarray(audio, dtype=float)
    for start in range(0, max(len(audio), 1), hop_length):
        window = audio[start:start + window_size]
        if len(window) < window_size:
            window = np.pad(window, (0, window_size - len(window)))
        yield start, window
        if start + window_size >= len(audio):
            break
