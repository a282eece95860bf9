"""Graph layer - hidden states and weighted transitions."""

from .logmath import NEG_INF, log_sum_exp, log_add, safe_log
from .model import (
    ProbabilisticGraph,
    HiddenState,
    StateHandle,
    StateTag,
    StateKind,
    EmissionModel,
)

__all__ = [
    "NEG_INF",
    "log_sum_exp",
    "log_add",
    "safe_log",
    "ProbabilisticGraph",
    "HiddenState",
    "StateHandle",
    "StateTag",
    "StateKind",
    "EmissionModel",
]
