"""Numeric HRV kernels: RMSSD, SDRR, Poincaré SD1/SD2 and DFA alpha1.

All functions are pure over their input sequence.  Callers check the sample
count first; passing fewer than 2 intervals is a programming error and trips
an assertion rather than returning a sentinel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)


def rmssd(rr_intervals: Sequence[float]) -> float:
    """Root mean square of successive RR-interval differences (ms)."""
    assert len(rr_intervals) > 1, "RMSSD needs at least two RR intervals"
    diffs = np.diff(np.asarray(rr_intervals, dtype=np.float64))
    return float(np.sqrt(np.mean(diffs ** 2)))


def sdrr(rr_intervals: Sequence[float]) -> float:
    """Sample standard deviation of the RR intervals (ms)."""
    assert len(rr_intervals) > 1, "SDRR needs at least two RR intervals"
    variance = np.var(np.asarray(rr_intervals, dtype=np.float64), ddof=1)
    return float(np.sqrt(variance))


@dataclass(frozen=True)
class PoincareResult:
    """Poincaré plot axes: SD1 (minor) and SD2 (major) with unit eigenvectors."""

    sd1: float = 0.0
    sd1_eigenvector: tuple[float, float] = (0.0, 0.0)
    sd2: float = 0.0
    sd2_eigenvector: tuple[float, float] = (0.0, 0.0)


def poincare(rr_intervals: Sequence[float]) -> PoincareResult:
    """SD1/SD2 from the eigendecomposition of the (RR[i], RR[i+1]) covariance.

    The pair matrix is mean-centered per column, its sample covariance
    ``X^T X / (n - 1)`` is decomposed with ``eigh`` (ascending eigenvalues),
    so SD1 is the square root of the smaller eigenvalue and SD2 of the larger.
    At least two pairs (three intervals) are required for the covariance.
    """
    assert len(rr_intervals) > 2, "Poincaré metrics need at least three RR intervals"
    arr = np.asarray(rr_intervals, dtype=np.float64)
    pairs = np.column_stack((arr[:-1], arr[1:]))
    centered = pairs - pairs.mean(axis=0)
    cov = centered.T @ centered / (centered.shape[0] - 1)
    logger.debug("Poincaré covariance:\n%s", cov)

    eigenvalues, eigenvectors = np.linalg.eigh(cov)
    # Rounding can leave a tiny negative eigenvalue for collinear data
    eigenvalues = np.clip(eigenvalues, 0.0, None)

    return PoincareResult(
        sd1=float(np.sqrt(eigenvalues[0])),
        sd1_eigenvector=(float(eigenvectors[0, 0]), float(eigenvectors[1, 0])),
        sd2=float(np.sqrt(eigenvalues[1])),
        sd2_eigenvector=(float(eigenvectors[0, 1]), float(eigenvectors[1, 1])),
    )


def mean_hr_from_rr(rr_intervals: Sequence[float]) -> float:
    """Average heart rate (bpm) implied by a run of RR intervals."""
    total = float(np.sum(np.asarray(rr_intervals, dtype=np.float64)))
    return 60000.0 * len(rr_intervals) / total


# Short-term (alpha1) box sizes, in beats
DFA_SCALES: tuple[int, ...] = tuple(range(4, 17))


def dfa_min_length(scales: Sequence[int] = DFA_SCALES) -> int:
    """Fewest RR intervals for which every scale still fits two boxes."""
    return 2 * max(scales)


def dfa_alpha(rr_intervals: Sequence[float], scales: Sequence[int] = DFA_SCALES) -> float:
    """Detrended fluctuation analysis scaling exponent.

    The mean-removed RR series is integrated into a profile, cut into
    non-overlapping boxes of each scale, and every box has its least-squares
    line removed.  Alpha is the slope of ``log F(n)`` against ``log n``,
    where ``F(n)`` is the RMS of the detrended profile at scale ``n``.

    Uncorrelated RR gives ~0.5, a healthy resting heart ~1.0.  A series
    without any fluctuation returns NaN.
    """
    assert len(rr_intervals) >= dfa_min_length(scales), "DFA needs two boxes at the largest scale"
    arr = np.asarray(rr_intervals, dtype=np.float64)
    profile = np.cumsum(arr - arr.mean())

    fluctuation = np.empty(len(scales))
    for i, n in enumerate(scales):
        n_boxes = len(profile) // n
        boxes = profile[: n_boxes * n].reshape(n_boxes, n)
        x = np.arange(n, dtype=np.float64)
        slope, intercept = np.polyfit(x, boxes.T, 1)
        trend = np.outer(slope, x) + intercept[:, None]
        fluctuation[i] = np.sqrt(np.mean((boxes - trend) ** 2))

    if np.any(fluctuation <= 0.0):
        return float("nan")
    alpha, _ = np.polyfit(np.log(np.asarray(scales, dtype=np.float64)), np.log(fluctuation), 1)
    return float(alpha)
