"""Decoders for Bluetooth Heart Rate Service payloads."""

from hrvlab.decoders.hrs import (
    FormatError,
    HeartRateMessageCodec,
    HeartRateSample,
    SensorContact,
    TooShortError,
)

__all__ = [
    "FormatError",
    "HeartRateMessageCodec",
    "HeartRateSample",
    "SensorContact",
    "TooShortError",
]
