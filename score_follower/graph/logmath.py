"""Log-domain probability helpers."""

import math
from typing import Iterable

import numpy as np

NEG_INF = float("-inf")


def log_sum_exp(values: Iterable[float]) -> float:
    """
    Numerically stable log(sum(exp(values))).

    Exactly negative-infinite terms are skipped. An empty input (or one made
    only of -inf) has probability 0 and returns -inf.

    Args:
        values: Log-probabilities

    Returns:
        Log of the summed probabilities
    """
    arr = np.fromiter(values, dtype=float)
    arr = arr[arr != NEG_INF]
    if arr.size == 0:
        return NEG_INF
    peak = arr.max()
    if not np.isfinite(peak):
        # +inf or NaN propagates
        return float(peak)
    return float(peak + np.log(np.exp(arr - peak).sum()))


def log_add(a: float, b: float) -> float:
    """Pairwise log(exp(a) + exp(b)) for running accumulators."""
    if a == NEG_INF:
        return b
    if b == NEG_INF:
        return a
    return float(np.logaddexp(a, b))


def safe_log(p: float) -> float:
    """log(p) with log(0) = -inf."""
    if p == 0.0:
        return NEG_INF
    return math.log(p)
