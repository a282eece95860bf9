"""Analysis layer - Low-level signal analysis.

This layer turns raw audio windows into tracker observations:
- Pitch detection (YIN / pYIN)
- Silence gating
"""

from .pitch import PitchAnalyzer, PitchExtractor

__all__ = [
    "PitchAnalyzer",
    "PitchExtractor",
]
