"""Tolerance-based timestamp deduplication."""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from spikeimport.config import DEDUP_TOLERANCE_S

logger = logging.getLogger("spikeimport")


def tolerance_samples(sampling_rate: float, tolerance_s: float = DEDUP_TOLERANCE_S) -> float:
    """Deduplication tolerance in sample units (0.5 ms by default)."""
    return sampling_rate * tolerance_s


def deduplicate(timestamps: np.ndarray, tolerance: float) -> Tuple[np.ndarray, np.ndarray]:
    """Sort timestamps and collapse every group of near-duplicates onto its first member.

    Walking the sorted sequence, a timestamp is dropped when it lies within
    ``tolerance`` (inclusive) of the last timestamp that was kept. The result
    is strictly increasing with consecutive gaps larger than ``tolerance``, so
    running it again on its own output changes nothing.

    Args:
        timestamps: 1-D timestamps (sample indices or seconds).
        tolerance: merge distance in the same units as ``timestamps``.

    Returns:
        (unique timestamps, index of each kept timestamp in the input array).
    """
    timestamps = np.asarray(timestamps).ravel()
    if timestamps.size == 0:
        return timestamps.copy(), np.empty(0, dtype=np.int64)

    order = np.argsort(timestamps, kind='stable')
    sorted_ts = timestamps[order]

    # Fast path: nothing to merge
    if np.all(np.diff(sorted_ts) > tolerance):
        return sorted_ts, order.astype(np.int64)

    keep = np.zeros(sorted_ts.size, dtype=bool)
    keep[0] = True
    last = sorted_ts[0]
    for i in range(1, sorted_ts.size):
        if sorted_ts[i] - last > tolerance:
            keep[i] = True
            last = sorted_ts[i]

    n_dropped = int(sorted_ts.size - keep.sum())
    if n_dropped:
        logger.debug(f"Deduplication merged {n_dropped} timestamps within tolerance {tolerance}")
    return sorted_ts[keep], order[keep].astype(np.int64)
