"""Tracking layer - online position estimation."""

from .tracker import PositionTracker, Estimate, create_tracker, log_probability_mass

__all__ = [
    "PositionTracker",
    "Estimate",
    "create_tracker",
    "log_probability_mass",
]
