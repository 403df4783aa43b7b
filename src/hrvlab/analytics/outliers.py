"""Moving-MAD outlier filter for RR-interval series.

A single forward pass slides a fixed window (default 5) over the series and
classifies only the window's center sample:

    deviation = |w[center] - mean(w)| * 0.5
    outlier   = deviation >= threshold

The first and last ``window // 2`` samples are never centered, so a series
of N points yields at most ``N - (window - 1)`` filtered points.
"""

from __future__ import annotations

import logging
from typing import Sequence, TypeVar

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 5

T = TypeVar("T")


def _center_deviations(rr_intervals: Sequence[float], window: int) -> np.ndarray:
    """Half absolute deviation of each window's center from the window mean."""
    arr = np.asarray(rr_intervals, dtype=np.float64)
    if window < 1 or len(arr) < window:
        return np.empty(0, dtype=np.float64)
    windows = np.lib.stride_tricks.sliding_window_view(arr, window)
    centers = windows[:, window // 2]
    return np.abs(centers - windows.mean(axis=1)) * 0.5


def moving_mad_outliers(
    rr_intervals: Sequence[float],
    threshold: float,
    window: int = DEFAULT_WINDOW,
) -> np.ndarray:
    """Per-sample outlier flags (True = rejected).

    Edge samples that are never a window center are reported as False; they
    are not *rejected*, merely unclassified.
    """
    flags = np.zeros(len(rr_intervals), dtype=bool)
    deviations = _center_deviations(rr_intervals, window)
    if len(deviations):
        half = window // 2
        flags[half:half + len(deviations)] = deviations >= threshold
    return flags


def moving_mad_filter(
    rr_intervals: Sequence[float],
    rr_time: Sequence[T],
    threshold: float,
    window: int = DEFAULT_WINDOW,
) -> tuple[list[float], list[T]]:
    """Keep the window-center samples that pass the deviation test.

    Args:
        rr_intervals: RR intervals (ms).
        rr_time: Cumulative time of each interval (same length).
        threshold: Rejection threshold; larger keeps more samples.
        window: Window length; the center sample is classified.

    Returns:
        ``(filtered_rr, filtered_time)``; both empty when the series is
        shorter than the window.
    """
    if len(rr_intervals) != len(rr_time):
        raise ValueError("rr_intervals and rr_time must have the same length")

    deviations = _center_deviations(rr_intervals, window)
    half = window // 2
    kept_rr: list[float] = []
    kept_time: list[T] = []
    for i, deviation in enumerate(deviations):
        if deviation < threshold:
            kept_rr.append(float(rr_intervals[i + half]))
            kept_time.append(rr_time[i + half])

    logger.debug(
        "moving-MAD: %d in, %d centered, %d kept (threshold=%s)",
        len(rr_intervals), len(deviations), len(kept_rr), threshold,
    )
    return kept_rr, kept_time
