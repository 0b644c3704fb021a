"""
Feature Contracts - Distribution Distances

Bounded distances between two observed distributions of the same feature,
used by the skew (serving) and drift (previous span) rules:

- L-infinity distance over normalized value frequencies, for categorical
  features. Range [0, 1].
- Jensen-Shannon divergence (base 2) over numeric histograms, after both
  histograms are re-bucketed onto the union of their boundaries assuming
  values are spread uniformly within each bucket. Range [0, 1].
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import numpy as np
from scipy.spatial.distance import jensenshannon

from feature_contracts.validation.statistics import HistogramBucket, ValueFrequency

logger = logging.getLogger(__name__)


def l_infinity_distance(
    current: Sequence[ValueFrequency],
    other: Sequence[ValueFrequency],
) -> tuple[float, str | None]:
    """
    Largest absolute difference between the normalized frequencies of any value.

    Returns:
        (distance, value) where value is the one with the largest difference,
        or None when neither side has any values
    """
    keys = sorted({v.value for v in current} | {v.value for v in other})
    if not keys:
        return 0.0, None

    p = _normalized(current, keys)
    q = _normalized(other, keys)
    diff = np.abs(p - q)
    index = int(np.argmax(diff))
    return float(diff[index]), keys[index]


def _normalized(frequencies: Sequence[ValueFrequency], keys: list[str]) -> np.ndarray:
    counts: dict[str, float] = {}
    for v in frequencies:
        counts[v.value] = counts.get(v.value, 0.0) + v.frequency
    vector = np.array([counts.get(k, 0.0) for k in keys], dtype=float)
    total = vector.sum()
    return vector / total if total > 0 else vector


def jensen_shannon_divergence(
    current: Sequence[HistogramBucket],
    other: Sequence[HistogramBucket],
) -> float:
    """
    Jensen-Shannon divergence between two histograms.

    Two empty histograms have divergence 0; an empty histogram against a
    non-empty one has divergence 1.
    """
    current_total = sum(b.count for b in current)
    other_total = sum(b.count for b in other)
    if current_total <= 0 and other_total <= 0:
        return 0.0
    if current_total <= 0 or other_total <= 0:
        return 1.0

    edges = _union_edges(list(current) + list(other))
    p = _rebucket(current, edges)
    q = _rebucket(other, edges)

    divergence = jensenshannon(p, q, base=2) ** 2
    if not math.isfinite(divergence):
        logger.debug("Non-finite Jensen-Shannon divergence, treating as 0", extra={"edges": len(edges)})
        return 0.0
    return float(min(max(divergence, 0.0), 1.0))


def _finite_bounds(buckets: Sequence[HistogramBucket]) -> tuple[float, float]:
    finite = [x for b in buckets for x in (b.low, b.high) if math.isfinite(x)]
    if not finite:
        return 0.0, 0.0
    return min(finite), max(finite)


def _clip(bucket: HistogramBucket, low: float, high: float) -> tuple[float, float]:
    # open-ended buckets collapse onto the nearest finite boundary
    return min(max(bucket.low, low), high), min(max(bucket.high, low), high)


def _union_edges(buckets: Sequence[HistogramBucket]) -> np.ndarray:
    low, high = _finite_bounds(buckets)
    edges = set()
    for bucket in buckets:
        edges.update(_clip(bucket, low, high))
    return np.array(sorted(edges), dtype=float)


def _rebucket(buckets: Sequence[HistogramBucket], edges: np.ndarray) -> np.ndarray:
    """Spread bucket counts over the intervals between consecutive edges."""
    low, high = float(edges[0]), float(edges[-1])
    num_bins = max(len(edges) - 1, 1)
    counts = np.zeros(num_bins, dtype=float)

    for bucket in buckets:
        if bucket.count <= 0:
            continue
        b_low, b_high = _clip(bucket, low, high)
        if b_high <= b_low or len(edges) == 1:
            # point mass: lands in the interval that contains it
            index = min(int(np.searchsorted(edges, b_low, side="right")) - 1, num_bins - 1)
            counts[max(index, 0)] += bucket.count
            continue
        overlap = np.clip(np.minimum(edges[1:], b_high) - np.maximum(edges[:-1], b_low), 0.0, None)
        counts += bucket.count * overlap / (b_high - b_low)

    total = counts.sum()
    return counts / total if total > 0 else counts
