"""Snapshot of scalar HRV metrics for one RR-interval series."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Sequence

import numpy as np

from hrvlab.analytics.kernels import poincare, rmssd, sdrr
from hrvlab.config import settings


@dataclass(frozen=True)
class HrvStatistics:
    """Immutable HRV metrics; rebuilt wholesale on every recomputation.

    ``sd1_sd2_ratio`` is ``sd1 / sd2`` and may be inf or NaN when SD2 is
    zero; presentation code is expected to guard against that.
    """

    rmssd: float = 0.0
    sdrr: float = 0.0
    sd1: float = 0.0
    sd1_eigenvector: tuple[float, float] = (0.0, 0.0)
    sd2: float = 0.0
    sd2_eigenvector: tuple[float, float] = (0.0, 0.0)
    sd1_sd2_ratio: float = 0.0
    avg_hr: float = 0.0

    @classmethod
    def compute(
        cls,
        rr_intervals: Sequence[float],
        hr_values: Sequence[float] = (),
    ) -> HrvStatistics:
        """Compute all metrics, or the all-zero default for short series.

        Fewer than 4 RR intervals is an expected state early in a recording
        and yields ``HrvStatistics()`` regardless of *hr_values*.
        """
        if len(rr_intervals) < settings.hrv.min_rr_count:
            return cls()

        avg_hr = float(np.mean(hr_values)) if len(hr_values) else 0.0
        axes = poincare(rr_intervals)
        with np.errstate(divide="ignore", invalid="ignore"):
            ratio = float(np.float64(axes.sd1) / np.float64(axes.sd2))

        return cls(
            rmssd=rmssd(rr_intervals),
            sdrr=sdrr(rr_intervals),
            sd1=axes.sd1,
            sd1_eigenvector=axes.sd1_eigenvector,
            sd2=axes.sd2,
            sd2_eigenvector=axes.sd2_eigenvector,
            sd1_sd2_ratio=ratio,
            avg_hr=avg_hr,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def __repr__(self) -> str:
        return (
            f"HrvStatistics(rmssd={self.rmssd:.1f}ms, sdrr={self.sdrr:.1f}ms, "
            f"sd1={self.sd1:.1f}ms, sd2={self.sd2:.1f}ms, hr={self.avg_hr:.0f}bpm)"
        )
