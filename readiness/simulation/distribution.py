from __future__ import annotations

"""Histogram and headline statistics over ending wealth across trials."""

from typing import List, Sequence, Tuple

import numpy as np

from readiness.models.domain import DistributionBucket

# Upper edges are inclusive: a value v lands in the first bucket whose edge is >= v.
BUCKET_EDGES = np.array([0, 250_000, 500_000, 1_000_000, 2_000_000, 3_000_000, 5_000_000], dtype=float)
BUCKET_LABELS = ["Failed", "$0-250K", "$250K-500K", "$500K-1M", "$1M-2M", "$2M-3M", "$3M-5M", "$5M+"]


def _apportion_tenths(counts: np.ndarray, total: int) -> List[float]:
    """Percentages at one decimal that sum to exactly 100.0 (largest remainder).

    Tenths of a percent are handed out by floor first, then one at a time to the
    largest fractional remainders; ties favor the lower bucket.
    """
    exact = counts * 1000.0 / total
    tenths = np.floor(exact).astype(int)
    shortfall = 1000 - int(tenths.sum())
    order = sorted(range(len(counts)), key=lambda i: (-(exact[i] - tenths[i]), i))
    for i in order[:shortfall]:
        tenths[i] += 1
    return [t / 10.0 for t in tenths]


def summarize_distribution(ending_wealth: Sequence[float]) -> List[DistributionBucket]:
    """Count ending wealth into the eight fixed ranges, dropping empty buckets."""
    values = np.asarray(ending_wealth, dtype=float)
    if values.size == 0:
        return []
    indexes = np.searchsorted(BUCKET_EDGES, values, side="left")
    counts = np.bincount(indexes, minlength=len(BUCKET_LABELS))
    percentages = _apportion_tenths(counts, int(values.size))
    return [
        DistributionBucket(range=label, count=int(count), percentage=pct)
        for label, count, pct in zip(BUCKET_LABELS, counts, percentages)
        if count > 0
    ]


def headline_wealth(sorted_wealth: Sequence[float]) -> Tuple[float, float]:
    """Median and 5th-percentile ending wealth from an ascending sample.

    Both are direct index lookups (n // 2 and int(n * 0.05)) rather than
    interpolated percentiles.
    """
    n = len(sorted_wealth)
    if n == 0:
        return 0.0, 0.0
    return float(sorted_wealth[n // 2]), float(sorted_wealth[int(n * 0.05)])
