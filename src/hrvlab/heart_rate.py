"""Live recording from a standard BLE heart rate sensor (0x2A37).

Notifications are decoded in the bleak callback and queued; a consumer task
appends them to the shared :class:`MeasurementHandle` under its write lock and
a second task rebuilds the HRV statistics on a throttled cadence
(``settings.hrv.refresh_interval_s``).  Malformed notifications are logged and
dropped without touching the connection.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from bleak import BleakClient
from bleak.backends.characteristic import BleakGATTCharacteristic

from hrvlab.config import settings
from hrvlab.decoders.hrs import FormatError, HeartRateMessageCodec, HeartRateSample
from hrvlab.measurement import MeasurementAggregate, MeasurementHandle
from hrvlab.scanner import find_sensor

logger = logging.getLogger(__name__)


def format_status(acq: MeasurementAggregate) -> str:
    """One-line live summary of the latest sample and metrics."""
    now = datetime.now(timezone.utc).strftime("%H:%M:%S")
    msg = acq.last_msg
    if msg is None:
        return f"[{now}] waiting for data..."
    line = f"[{now}] HR: {msg.heart_rate:.0f} bpm"
    if msg.rr_intervals:
        rr_str = ", ".join(str(v) for v in msg.rr_intervals)
        line += f"  RR: [{rr_str}] ms"
    stats = acq.hrv_stats
    if stats is not None:
        line += f"  RMSSD: {stats.rmssd:.1f} ms  SD1/SD2: {stats.sd1:.1f}/{stats.sd2:.1f} ms"
    if msg.sensor_contact.supported and not msg.sensor_contact.has_contact:
        line += "  [NO CONTACT]"
    return line


class HeartRateRecorder:
    """Bridge between bleak notifications and a :class:`MeasurementHandle`.

    Notifications are stamped with a monotonic clock.  The first recorded
    sample anchors that clock to the aggregate's wall-clock elapsed time, so
    later wall-clock steps (NTP corrections) cannot make elapsed time run
    backwards.
    """

    def __init__(
        self,
        handle: MeasurementHandle,
        refresh_interval: float | None = None,
        verbose: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.handle = handle
        self.refresh_interval = (
            settings.hrv.refresh_interval_s if refresh_interval is None else refresh_interval
        )
        self.verbose = verbose
        self.received = 0
        self.dropped = 0
        self.rejected = 0
        self._clock = clock
        self._origin: tuple[float, timedelta] | None = None
        self._queue: asyncio.Queue[tuple[float, HeartRateSample]] = asyncio.Queue()
        # Taken off the queue but not yet recorded
        self._pending: tuple[float, HeartRateSample] | None = None

    def on_notification(self, _char: BleakGATTCharacteristic | None, data: bytearray) -> None:
        received_at = self._clock()
        try:
            sample = HeartRateMessageCodec.decode(data)
        except FormatError as e:
            self.dropped += 1
            logger.warning("dropping malformed HRS notification %s: %s", bytes(data).hex(), e)
            return
        self.received += 1
        self._queue.put_nowait((received_at, sample))

    def _elapsed(self, acq: MeasurementAggregate, received_at: float) -> timedelta:
        if self._origin is None:
            wall = datetime.now(timezone.utc) - acq.start_time
            self._origin = (received_at, max(wall, acq.elapsed_time))
        origin_clock, origin_elapsed = self._origin
        return origin_elapsed + timedelta(seconds=received_at - origin_clock)

    async def _record_one(self) -> None:
        if self._pending is None:
            self._pending = await self._queue.get()
            self._queue.task_done()
        received_at, sample = self._pending
        async with self.handle.write() as acq:
            self._pending = None
            try:
                acq.record_message(sample, self._elapsed(acq, received_at))
            except ValueError as e:
                self.rejected += 1
                logger.warning("dropping out-of-order sample: %s", e)

    async def consume(self) -> None:
        while True:
            await self._record_one()

    async def drain(self) -> None:
        """Record everything still queued, including a sample a cancelled
        consumer had already taken."""
        while self._pending is not None or not self._queue.empty():
            await self._record_one()

    async def refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            async with self.handle.write() as acq:
                rebuilt = acq.refresh()
            if rebuilt and self.verbose:
                async with self.handle.read() as acq:
                    print(format_status(acq), flush=True)


async def stream_heart_rate(
    handle: MeasurementHandle,
    address: str | None = None,
    duration: float | None = None,
) -> None:
    """Connect to a heart rate sensor and record into *handle*.

    Runs for *duration* seconds, or until cancelled.  The aggregate is put in
    recording state for the lifetime of the connection and refreshed one last
    time on exit.
    """
    if address is None:
        device = await find_sensor()
        if device is None:
            print("No heart rate sensor found.")
            return
        address = device.address

    print(f"Connecting to {address}...")

    async with BleakClient(address) as client:
        print(f"Connected. MTU={client.mtu_size}")

        recorder = HeartRateRecorder(handle)
        async with handle.write() as acq:
            acq.start_recording()

        await client.start_notify(settings.ble.hr_measurement_uuid, recorder.on_notification)
        print("\nRecording heart rate (Ctrl+C to stop):\n")

        tasks = [
            asyncio.create_task(recorder.consume()),
            asyncio.create_task(recorder.refresh_loop()),
        ]
        try:
            if duration:
                await asyncio.sleep(duration)
            else:
                while True:
                    await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            try:
                await client.stop_notify(settings.ble.hr_measurement_uuid)
            except Exception as e:
                logger.warning("stop_notify failed: %s", e)
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await recorder.drain()
            async with handle.write() as acq:
                acq.stop_recording()
            print(
                f"\n  Stopped ({recorder.received} notifications, "
                f"{recorder.dropped} dropped, {recorder.rejected} out of order)."
            )
