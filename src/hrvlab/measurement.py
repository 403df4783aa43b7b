"""One recording session: the raw message log plus its derived HRV data.

:class:`MeasurementAggregate` exclusively owns the append-only raw log and
holds the :class:`HrvSessionData` materialized from it.  The rest of the
application talks to it through a :class:`MeasurementHandle`, which guards the
aggregate with an asyncio read/write lock: one writer (the transport
recording samples) and any number of readers (views polling for the latest
snapshot).  Writers hold the lock only across an append or rebuild, never
across BLE I/O.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

from hrvlab.analytics.session import HrvSessionData, LogEntry, PoincarePoints, TimeSeries
from hrvlab.analytics.statistics import HrvStatistics
from hrvlab.config import settings
from hrvlab.decoders.hrs import HeartRateSample

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MeasurementAggregate:
    """Raw log and derived session data for one recording."""

    def __init__(
        self,
        start_time: datetime | None = None,
        window: timedelta | None = None,
        outlier_filter: float | None = None,
    ) -> None:
        self.start_time = start_time or _utcnow()
        self._measurements: list[LogEntry] = []
        self._window = window
        self._outlier_filter = (
            settings.hrv.outlier_filter if outlier_filter is None else outlier_filter
        )
        self._session = HrvSessionData(
            stats_window=window, outlier_filter_value=self._outlier_filter
        )
        self._stale = False
        self.is_recording = False

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def start_recording(self) -> None:
        self.is_recording = True

    def stop_recording(self) -> None:
        self.is_recording = False
        self.refresh()

    def record_message(self, sample: HeartRateSample, elapsed: timedelta | None = None) -> None:
        """Append one decoded sample to the raw log.

        *elapsed* defaults to the time since :attr:`start_time`.  The derived
        session only gets the cheap append here; call :meth:`refresh` to
        filter and recompute statistics.

        Raises:
            RuntimeError: if the aggregate is not recording.
            ValueError: if *elapsed* goes backwards.
        """
        if not self.is_recording:
            raise RuntimeError("record_message called while not recording")
        if elapsed is None:
            elapsed = _utcnow() - self.start_time
        if self._measurements and elapsed < self._measurements[-1][0]:
            raise ValueError(
                f"elapsed time went backwards: {elapsed} < {self._measurements[-1][0]}"
            )
        self._measurements.append((elapsed, sample))
        self._session.add_measurement(sample, elapsed)
        self._stale = True

    def set_stats_window(self, window: timedelta | None) -> None:
        self._window = window
        self._rebuild()

    def set_outlier_filter_value(self, value: float) -> None:
        """Set the Moving-MAD threshold and rebuild.

        Raises:
            ValueError: if *value* is negative; the current value is kept.
        """
        if value < 0:
            raise ValueError(f"outlier filter value must be >= 0, got {value}")
        self._outlier_filter = float(value)
        self._rebuild()

    def refresh(self) -> bool:
        """Rebuild the session if samples were appended since the last rebuild.

        Returns True when a rebuild happened.
        """
        if not self._stale:
            return False
        self._rebuild()
        return True

    def _rebuild(self) -> None:
        self._session = HrvSessionData.from_acquisition(
            self._measurements, self._window, self._outlier_filter
        )
        self._stale = False

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[LogEntry]:
        return list(self._measurements)

    @property
    def last_msg(self) -> HeartRateSample | None:
        return self._measurements[-1][1] if self._measurements else None

    @property
    def elapsed_time(self) -> timedelta:
        return self._measurements[-1][0] if self._measurements else timedelta(0)

    @property
    def session(self) -> HrvSessionData:
        return self._session

    @property
    def hrv_stats(self) -> HrvStatistics | None:
        return self._session.hrv_stats

    @property
    def stats_window(self) -> timedelta | None:
        return self._window

    @property
    def outlier_filter_value(self) -> float:
        return self._outlier_filter

    @property
    def rmssd(self) -> float | None:
        return self._session.rmssd

    @property
    def sdrr(self) -> float | None:
        return self._session.sdrr

    @property
    def sd1(self) -> float | None:
        return self._session.sd1

    @property
    def sd2(self) -> float | None:
        return self._session.sd2

    @property
    def hr(self) -> float | None:
        return self._session.hr

    @property
    def dfa_alpha(self) -> float | None:
        return self._session.dfa_alpha

    @property
    def rmssd_ts(self) -> TimeSeries:
        return [list(p) for p in self._session.rmssd_ts]

    @property
    def sdrr_ts(self) -> TimeSeries:
        return [list(p) for p in self._session.sdrr_ts]

    @property
    def sd1_ts(self) -> TimeSeries:
        return [list(p) for p in self._session.sd1_ts]

    @property
    def sd2_ts(self) -> TimeSeries:
        return [list(p) for p in self._session.sd2_ts]

    @property
    def hr_ts(self) -> TimeSeries:
        return [list(p) for p in self._session.hr_ts]

    @property
    def dfa_alpha_ts(self) -> TimeSeries:
        return [list(p) for p in self._session.dfa_alpha_ts]

    def poincare_points(self) -> PoincarePoints:
        return self._session.poincare_points()

    # ------------------------------------------------------------------
    # Persistence record
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serializable record; the derived session is never stored."""
        return {
            "start_time": self.start_time.isoformat(),
            "measurements": [
                [elapsed.total_seconds(), sample.to_dict()]
                for elapsed, sample in self._measurements
            ],
            "window": self._window.total_seconds() if self._window is not None else None,
            "outlier_filter": self._outlier_filter,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MeasurementAggregate:
        """Restore from :meth:`to_dict` output and rebuild the session eagerly.

        Raises:
            KeyError / ValueError / TypeError: on a malformed record.
        """
        window = data.get("window")
        acq = cls(
            start_time=datetime.fromisoformat(data["start_time"]),
            window=timedelta(seconds=window) if window is not None else None,
            outlier_filter=float(data["outlier_filter"]),
        )
        acq._measurements = [
            (timedelta(seconds=float(elapsed)), HeartRateSample.from_dict(sample))
            for elapsed, sample in data["measurements"]
        ]
        acq._rebuild()
        return acq

    def __repr__(self) -> str:
        return (
            f"MeasurementAggregate(start={self.start_time.isoformat()}, "
            f"messages={len(self._measurements)}, state={self._session.state.value})"
        )


class _AsyncRWLock:
    """Many concurrent readers or one writer; writers are not starved."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and not self._waiting_writers)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            self._waiting_writers += 1
            try:
                await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            finally:
                self._waiting_writers -= 1
                # A cancelled writer must release the readers it was holding back
                self._cond.notify_all()
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class MeasurementHandle:
    """Shared, lock-guarded access to one :class:`MeasurementAggregate`.

    Usage::

        async with handle.write() as acq:
            acq.record_message(sample)

        async with handle.read() as acq:
            print(acq.rmssd)
    """

    def __init__(self, aggregate: MeasurementAggregate | None = None) -> None:
        self._aggregate = aggregate or MeasurementAggregate()
        self._lock = _AsyncRWLock()

    @asynccontextmanager
    async def read(self) -> AsyncIterator[MeasurementAggregate]:
        async with self._lock.read():
            yield self._aggregate

    @asynccontextmanager
    async def write(self) -> AsyncIterator[MeasurementAggregate]:
        async with self._lock.write():
            yield self._aggregate
