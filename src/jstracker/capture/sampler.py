"""Stateless probabilistic gate applied to every captured record."""

from __future__ import annotations

import math
from numbers import Real
from typing import Any, Optional

import numpy as np


def effective_rate(sampling_rate: Any) -> float:
    """
    Resolve the rate actually used for sampling.

    Missing, non-numeric, NaN or out-of-range rates never suppress: they are
    treated as 1.0.
    """
    if isinstance(sampling_rate, bool) or not isinstance(sampling_rate, Real):
        return 1.0
    rate = float(sampling_rate)
    if math.isnan(rate) or rate < 0.0 or rate > 1.0:
        return 1.0
    return rate


def should_report(sampling_rate: Any, rng: Optional[np.random.Generator] = None) -> bool:
    """
    Return True with probability ``sampling_rate``.

    Each call draws independently; there is no memory across calls.

    Usage example
    -------------
        rng = np.random.default_rng(0)
        admitted = [should_report(0.25, rng) for _ in range(1000)]
    """
    rate = effective_rate(sampling_rate)
    if rate >= 1.0:
        return True
    if rate <= 0.0:
        return False
    generator = rng if rng is not None else np.random.default_rng()
    return bool(generator.random() < rate)
