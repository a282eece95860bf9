"""Input layer - recordings and reference scores."""

from .loader import AudioLoader, iter_windows
from .score import ScoreLoader, JsonScoreLoader, MidiScoreLoader, load_score

__all__ = [
    "AudioLoader",
    "iter_windows",
    "ScoreLoader",
    "JsonScoreLoader",
    "MidiScoreLoader",
    "load_score",
]
