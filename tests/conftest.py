"""Shared fixtures and helpers for the hrvlab test suite."""

from __future__ import annotations

import struct
from datetime import timedelta

import pytest

from hrvlab.decoders.hrs import HeartRateSample, ms_to_ticks


# ---------------------------------------------------------------------------
# Payload-building helpers
# ---------------------------------------------------------------------------


def make_hrs_payload(
    hr: int = 72,
    rr_ticks: list[int] | None = None,
    energy: int | None = None,
    hr_uint16: bool = False,
    contact_supported: bool = False,
    contact_detected: bool = False,
) -> bytes:
    """Build a raw Heart Rate Measurement (0x2A37) value."""
    flags = 0
    if hr_uint16:
        flags |= 0x01
    if contact_detected:
        flags |= 0x02
    if contact_supported:
        flags |= 0x04
    if energy is not None:
        flags |= 0x08
    if rr_ticks is not None:
        flags |= 0x10

    buf = bytearray([flags])
    buf += struct.pack("<H", hr) if hr_uint16 else bytes([hr])
    if energy is not None:
        buf += struct.pack("<H", energy)
    for tick in rr_ticks or []:
        buf += struct.pack("<H", tick)
    return bytes(buf)


def make_rr_payload(rr_ms: list[int], hr: int = 72) -> bytes:
    """Build a payload whose RR-intervals decode to exactly *rr_ms*."""
    return make_hrs_payload(hr=hr, rr_ticks=[ms_to_ticks(v) for v in rr_ms])


# ---------------------------------------------------------------------------
# Raw log helpers
# ---------------------------------------------------------------------------


def make_log(
    rr_per_message: list[list[int]],
    hr: float = 75.0,
    step_s: float = 1.0,
) -> list[tuple[timedelta, HeartRateSample]]:
    """One log entry per RR list, spaced *step_s* seconds apart."""
    return [
        (
            timedelta(seconds=i * step_s),
            HeartRateSample(heart_rate=hr, rr_intervals=tuple(rr), flags=0x10),
        )
        for i, rr in enumerate(rr_per_message)
    ]


# Alternating RR series, ~75 bpm, mild variability
CLEAN_RR = [800, 820, 810, 830, 805, 825, 815]


@pytest.fixture
def clean_log() -> list[tuple[timedelta, HeartRateSample]]:
    """The seven-beat series delivered in a single notification."""
    return make_log([CLEAN_RR])


@pytest.fixture
def long_log() -> list[tuple[timedelta, HeartRateSample]]:
    """Ten minutes of one-beat-per-second notifications with mild variability."""
    rr = [800 + (15 if i % 2 else -15) + (i % 7) for i in range(600)]
    return make_log([[v] for v in rr])
