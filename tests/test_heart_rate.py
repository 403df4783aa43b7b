"""Tests for heart_rate.py — notification handling of the live recorder."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from hrvlab.decoders.hrs import HeartRateSample
from hrvlab.heart_rate import HeartRateRecorder, format_status
from hrvlab.measurement import MeasurementAggregate, MeasurementHandle

from tests.conftest import CLEAN_RR, make_rr_payload


def _run_recorder(payloads: list[bytes]) -> tuple[HeartRateRecorder, MeasurementAggregate]:
    acq = MeasurementAggregate(outlier_filter=1000.0)
    acq.start_recording()

    async def scenario() -> HeartRateRecorder:
        recorder = HeartRateRecorder(MeasurementHandle(acq), verbose=False)
        for payload in payloads:
            recorder.on_notification(None, bytearray(payload))
        await recorder.drain()
        return recorder

    return asyncio.run(scenario()), acq


class TestOnNotification:
    """bleak callback: decode, count and queue."""

    def test_decoded_samples_are_recorded(self):
        recorder, acq = _run_recorder([make_rr_payload([800, 820]), make_rr_payload([810])])
        assert recorder.received == 2
        assert recorder.dropped == 0
        assert len(acq.messages) == 2
        assert acq.last_msg.rr_intervals == (810,)

    def test_malformed_notification_dropped(self, caplog):
        recorder, acq = _run_recorder([b"\x10", make_rr_payload([800])])
        assert recorder.dropped == 1
        assert recorder.received == 1
        assert len(acq.messages) == 1
        assert "malformed" in caplog.text

    def test_elapsed_is_non_decreasing(self):
        _, acq = _run_recorder([make_rr_payload([800])] * 5)
        elapsed = [e for e, _ in acq.messages]
        assert elapsed == sorted(elapsed)


class TestRefreshLoop:
    """Throttled rebuild task."""

    def test_periodic_rebuild(self):
        acq = MeasurementAggregate(outlier_filter=1000.0)
        acq.start_recording()

        async def scenario() -> None:
            recorder = HeartRateRecorder(MeasurementHandle(acq), refresh_interval=0.01,
                                         verbose=False)
            recorder.on_notification(None, bytearray(make_rr_payload(CLEAN_RR)))
            await recorder.drain()
            task = asyncio.create_task(recorder.refresh_loop())
            await asyncio.sleep(0.05)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        asyncio.run(scenario())
        assert acq.hrv_stats is not None


class TestFormatStatus:
    """Live one-line status."""

    def test_waiting(self):
        assert "waiting" in format_status(MeasurementAggregate())

    def test_with_stats(self):
        acq = MeasurementAggregate(
            start_time=datetime(2024, 1, 1, tzinfo=timezone.utc), outlier_filter=1000.0
        )
        acq.start_recording()
        acq.record_message(HeartRateSample(heart_rate=75.0, rr_intervals=tuple(CLEAN_RR)))
        acq.refresh()
        line = format_status(acq)
        assert "HR: 75 bpm" in line
        assert "RMSSD" in line


class TestAdvertisesHeartRate:
    """Scanner filter on the 0x180D service UUID."""

    def test_matches_service_uuid(self):
        from types import SimpleNamespace

        from hrvlab.scanner import advertises_heart_rate

        hrs = SimpleNamespace(service_uuids=["0000180D-0000-1000-8000-00805F9B34FB"])
        other = SimpleNamespace(service_uuids=["0000180f-0000-1000-8000-00805f9b34fb"])
        assert advertises_heart_rate(hrs)
        assert not advertises_heart_rate(other)
        assert not advertises_heart_rate(SimpleNamespace(service_uuids=None))


class TestClockAndShutdown:
    """Elapsed-time stamping and sample hand-off across cancellation."""

    def test_clock_stepping_back_drops_sample_and_keeps_consuming(self):
        """A backwards timestamp costs one sample, not the consumer task."""
        acq = MeasurementAggregate(outlier_filter=1000.0)
        acq.start_recording()
        stamps = iter([100.0, 102.0, 101.0, 103.0])

        async def scenario() -> tuple[HeartRateRecorder, bool]:
            recorder = HeartRateRecorder(MeasurementHandle(acq), verbose=False,
                                         clock=lambda: next(stamps))
            task = asyncio.create_task(recorder.consume())
            for _ in range(4):
                recorder.on_notification(None, bytearray(make_rr_payload([800])))
            await asyncio.sleep(0.05)
            alive = not task.done()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            return recorder, alive

        recorder, alive = asyncio.run(scenario())
        assert alive
        assert recorder.rejected == 1
        assert len(acq.messages) == 3
        elapsed = [e for e, _ in acq.messages]
        assert elapsed[1] - elapsed[0] == timedelta(seconds=2)
        assert elapsed[2] - elapsed[0] == timedelta(seconds=3)

    def test_elapsed_follows_monotonic_clock(self):
        acq = MeasurementAggregate(outlier_filter=1000.0)
        acq.start_recording()
        stamps = iter([5.0, 5.5, 7.0])

        async def scenario() -> None:
            recorder = HeartRateRecorder(MeasurementHandle(acq), verbose=False,
                                         clock=lambda: next(stamps))
            for _ in range(3):
                recorder.on_notification(None, bytearray(make_rr_payload([800])))
            await recorder.drain()

        asyncio.run(scenario())
        first = acq.messages[0][0]
        assert [e - first for e, _ in acq.messages] == [
            timedelta(0), timedelta(seconds=0.5), timedelta(seconds=2),
        ]

    def test_sample_taken_by_cancelled_consumer_is_drained(self):
        """Cancelling the consumer while it waits for the lock keeps its sample."""
        acq = MeasurementAggregate(outlier_filter=1000.0)
        acq.start_recording()

        async def scenario() -> int:
            handle = MeasurementHandle(acq)
            recorder = HeartRateRecorder(handle, verbose=False)
            async with handle.write():
                recorder.on_notification(None, bytearray(make_rr_payload([800])))
                task = asyncio.create_task(recorder.consume())
                await asyncio.sleep(0.01)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            await recorder.drain()
            return len(acq.messages)

        assert asyncio.run(scenario()) == 1
