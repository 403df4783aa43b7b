"""HRV analytics: numeric kernels, outlier filtering, statistics and sessions.

Modules:
    kernels    -- RMSSD, SDRR, Poincaré SD1/SD2 and DFA alpha1
    outliers   -- Moving-MAD outlier filter
    statistics -- HrvStatistics snapshot
    session    -- HrvSessionData aggregation engine
"""

from hrvlab.analytics.kernels import (
    DFA_SCALES,
    PoincareResult,
    dfa_alpha,
    dfa_min_length,
    mean_hr_from_rr,
    poincare,
    rmssd,
    sdrr,
)
from hrvlab.analytics.outliers import moving_mad_filter, moving_mad_outliers
from hrvlab.analytics.statistics import HrvStatistics
from hrvlab.analytics.session import HrvSessionData, SessionState

__all__ = [
    # kernels
    "DFA_SCALES",
    "PoincareResult",
    "dfa_alpha",
    "dfa_min_length",
    "mean_hr_from_rr",
    "poincare",
    "rmssd",
    "sdrr",
    # outliers
    "moving_mad_filter",
    "moving_mad_outliers",
    # statistics
    "HrvStatistics",
    # session
    "HrvSessionData",
    "SessionState",
]
