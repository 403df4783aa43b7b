"""HRV session aggregation engine.

:class:`HrvSessionData` owns the derived, rebuildable state of one recording:
the raw RR/HR series grown message by message, the Moving-MAD filtered RR
series, the :class:`HrvStatistics` snapshot and the rolling time-series tracks
used for plotting.

Updating is two-phase:
  - :meth:`HrvSessionData.add_measurement` is a cheap append run on every
    inbound notification; it never filters or recomputes.
  - :meth:`HrvSessionData.update_stats` (and the full rebuild
    :meth:`HrvSessionData.from_acquisition`) filters and recomputes, and
    should be throttled by the caller (~1 Hz or every N messages).

Nothing here raises on sparse input: empty or short logs leave the session in
the EMPTY / ACCUMULATING state.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Sequence

import numpy as np

from hrvlab.analytics import kernels
from hrvlab.analytics.outliers import moving_mad_filter, moving_mad_outliers
from hrvlab.analytics.statistics import HrvStatistics
from hrvlab.config import settings
from hrvlab.decoders.hrs import HeartRateSample

logger = logging.getLogger(__name__)

# One (elapsed since recording start, decoded sample) entry of the raw log
LogEntry = tuple[timedelta, HeartRateSample]

# [elapsed_seconds, value]
TimeSeries = list[list[float]]

PoincarePoints = tuple[list[list[float]], list[list[float]]]


class SessionState(Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    READY = "ready"


@dataclass
class HrvSessionData:
    """Derived HRV state of one recording session."""

    stats_window: timedelta | None = None
    outlier_filter_value: float = field(default_factory=lambda: settings.hrv.outlier_filter)

    # Unfiltered RR series with cumulative beat time (sum of RR durations)
    raw_rr_intervals: list[float] = field(default_factory=list)
    raw_rr_time: list[timedelta] = field(default_factory=list)
    rr_outliers: list[bool] = field(default_factory=list)

    # Moving-MAD filtered RR series
    rr_intervals: list[float] = field(default_factory=list)
    rr_time: list[timedelta] = field(default_factory=list)

    # Per-notification HR and reception time (pre-filter)
    hr_values: list[float] = field(default_factory=list)
    rx_time: list[timedelta] = field(default_factory=list)

    hrv_stats: HrvStatistics | None = None

    rmssd_ts: TimeSeries = field(default_factory=list)
    sdrr_ts: TimeSeries = field(default_factory=list)
    sd1_ts: TimeSeries = field(default_factory=list)
    sd2_ts: TimeSeries = field(default_factory=list)
    hr_ts: TimeSeries = field(default_factory=list)
    dfa_alpha_ts: TimeSeries = field(default_factory=list)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    @classmethod
    def from_acquisition(
        cls,
        log: Sequence[LogEntry],
        window: timedelta | None = None,
        outlier_filter_value: float | None = None,
    ) -> HrvSessionData:
        """Rebuild the session from a raw measurement log.

        Only entries inside the retention window (``last_elapsed - window``
        onwards, or the whole log without a window) feed the filtered series
        and the statistics snapshot.  The time-series tracks are always
        rebuilt from the entire log.
        """
        if outlier_filter_value is None:
            outlier_filter_value = settings.hrv.outlier_filter
        session = cls(stats_window=window, outlier_filter_value=outlier_filter_value)
        if not log:
            return session

        start = log[-1][0] - window if window is not None else log[0][0]
        for elapsed, sample in log:
            if elapsed >= start:
                session.add_measurement(sample, elapsed)

        session.update_stats()
        if session.hrv_stats is not None:
            session.update_time_series(log)

        logger.debug(
            "rebuilt session: %d entries, %d raw RR, %d filtered RR, state=%s",
            len(log), len(session.raw_rr_intervals), len(session.rr_intervals),
            session.state.value,
        )
        return session

    def add_measurement(self, sample: HeartRateSample, elapsed_time: timedelta) -> None:
        """Append one decoded sample without filtering or recomputing.

        RR durations are accumulated onto the previous cumulative beat time.
        Non-positive intervals carry no duration and are skipped.
        """
        cumulative = self.raw_rr_time[-1] if self.raw_rr_time else timedelta(0)
        for rr in sample.rr_intervals:
            if rr <= 0:
                continue
            cumulative += timedelta(milliseconds=rr)
            self.raw_rr_intervals.append(float(rr))
            self.raw_rr_time.append(cumulative)
        self.hr_values.append(float(sample.heart_rate))
        self.rx_time.append(elapsed_time)

    def update_stats(self) -> None:
        """Filter the raw RR series and recompute the statistics snapshot."""
        if not self.has_sufficient_data():
            self.rr_intervals = []
            self.rr_time = []
            self.rr_outliers = [False] * len(self.raw_rr_intervals)
            self.hrv_stats = None
            return

        window = settings.hrv.filter_window
        self.rr_intervals, self.rr_time = moving_mad_filter(
            self.raw_rr_intervals, self.raw_rr_time, self.outlier_filter_value, window
        )
        self.rr_outliers = moving_mad_outliers(
            self.raw_rr_intervals, self.outlier_filter_value, window
        ).tolist()
        self.hrv_stats = HrvStatistics.compute(self.rr_intervals, self.hr_values)

    def update_time_series(self, log: Sequence[LogEntry]) -> None:
        """Recompute the plotting tracks from the whole, unwindowed log.

        The RR series is cut into consecutive blocks of roughly one
        window's worth of beats (``floor(avg_hr * window_s / 60)``, at least
        1).  Each block is Moving-MAD filtered on its own and contributes one
        point keyed by the cumulative time of its last beat.  RMSSD, SDRR and
        HR need 2 filtered values, SD1/SD2 need 3 and DFA alpha1 needs two
        boxes of its largest scale.
        """
        for track in (self.rmssd_ts, self.sdrr_ts, self.sd1_ts, self.sd2_ts, self.hr_ts,
                      self.dfa_alpha_ts):
            track.clear()

        all_rr: list[float] = []
        all_time: list[timedelta] = []
        hr: list[float] = []
        cumulative = timedelta(0)
        for _, sample in log:
            hr.append(float(sample.heart_rate))
            for rr in sample.rr_intervals:
                if rr <= 0:
                    continue
                cumulative += timedelta(milliseconds=rr)
                all_rr.append(float(rr))
                all_time.append(cumulative)
        if not all_rr:
            return

        avg_hr = float(np.mean(hr)) if hr else 0.0
        window_s = (
            self.stats_window.total_seconds()
            if self.stats_window is not None
            else settings.hrv.ts_window_s
        )
        block_size = max(1, math.floor(avg_hr * window_s / 60.0))

        for begin in range(0, len(all_rr), block_size):
            block_rr = all_rr[begin:begin + block_size]
            block_time = all_time[begin:begin + block_size]
            filtered, _ = moving_mad_filter(
                block_rr, block_time, self.outlier_filter_value, settings.hrv.filter_window
            )
            ts = block_time[-1].total_seconds()
            if len(filtered) > 1:
                self.rmssd_ts.append([ts, kernels.rmssd(filtered)])
                self.sdrr_ts.append([ts, kernels.sdrr(filtered)])
                self.hr_ts.append([ts, kernels.mean_hr_from_rr(filtered)])
            if len(filtered) > 2:
                axes = kernels.poincare(filtered)
                self.sd1_ts.append([ts, axes.sd1])
                self.sd2_ts.append([ts, axes.sd2])
            if len(filtered) >= kernels.dfa_min_length():
                self.dfa_alpha_ts.append([ts, kernels.dfa_alpha(filtered)])

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Where the session is in its EMPTY -> ACCUMULATING -> READY life.

        READY means a statistics snapshot exists, which happens once the
        windowed raw series holds at least ``min_rr_count`` intervals.  That
        is counted before filtering, so a READY session can still carry the
        all-zero snapshot when fewer than 4 intervals survive the filter;
        the per-block tracks are what carry values for such short runs.
        """
        if self.hrv_stats is not None:
            return SessionState.READY
        if self.raw_rr_intervals or self.hr_values:
            return SessionState.ACCUMULATING
        return SessionState.EMPTY

    def has_sufficient_data(self) -> bool:
        return len(self.raw_rr_intervals) >= settings.hrv.min_rr_count

    @staticmethod
    def _latest(track: TimeSeries) -> float | None:
        return track[-1][1] if track else None

    @property
    def rmssd(self) -> float | None:
        return self._latest(self.rmssd_ts)

    @property
    def sdrr(self) -> float | None:
        return self._latest(self.sdrr_ts)

    @property
    def sd1(self) -> float | None:
        return self._latest(self.sd1_ts)

    @property
    def sd2(self) -> float | None:
        return self._latest(self.sd2_ts)

    @property
    def hr(self) -> float | None:
        return self._latest(self.hr_ts)

    @property
    def dfa_alpha(self) -> float | None:
        return self._latest(self.dfa_alpha_ts)

    def poincare_points(self) -> PoincarePoints:
        """Successive ``[RR[i], RR[i+1]]`` pairs split into inliers and outliers.

        A pair is an outlier when either of its samples was rejected by the
        Moving-MAD test.
        """
        inliers: list[list[float]] = []
        outliers: list[list[float]] = []
        rr = self.raw_rr_intervals
        flags = self.rr_outliers
        if len(flags) != len(rr):
            flags = [False] * len(rr)
        for i in range(len(rr) - 1):
            point = [rr[i], rr[i + 1]]
            if flags[i] or flags[i + 1]:
                outliers.append(point)
            else:
                inliers.append(point)
        return inliers, outliers
