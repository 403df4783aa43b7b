"""Standard BLE Heart Rate Measurement (0x2A37) codec.

Per Bluetooth SIG Heart Rate Service:
    Byte 0: Flags
      - Bit 0: HR format (0 = uint8, 1 = uint16 LE)
      - Bit 1: Sensor contact detected
      - Bit 2: Sensor contact supported
      - Bit 3: Energy expended present (uint16 LE, kJ)
      - Bit 4: RR-intervals present
    Byte 1(+2): Heart rate value
    Optional:   Energy expended (uint16 LE)
    Optional:   RR-intervals (uint16 LE each, 1/1024 s units), up to 9

RR-intervals are converted to whole milliseconds on decode.  The number of
intervals is taken from the bytes actually present, so a zero-valued chunk
is kept as a genuine (if implausible) interval instead of ending the list.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any

FLAG_HR_UINT16 = 0x01
FLAG_CONTACT_DETECTED = 0x02
FLAG_CONTACT_SUPPORTED = 0x04
FLAG_ENERGY_PRESENT = 0x08
FLAG_RR_PRESENT = 0x10

MIN_PAYLOAD_SIZE = 2
MAX_RR_INTERVALS = 9

# RR-intervals travel in 1/1024 s ticks
RR_TICKS_PER_SECOND = 1024


class FormatError(ValueError):
    """A Heart Rate Measurement payload could not be decoded."""


class TooShortError(FormatError):
    """The payload is shorter than the 2-byte minimum (flags + HR)."""

    def __init__(self, length: int) -> None:
        super().__init__(
            f"HRS payload too short: {length} byte(s), need at least {MIN_PAYLOAD_SIZE}"
        )
        self.length = length


def ticks_to_ms(raw: int) -> int:
    """Convert a 1/1024 s tick count to milliseconds (truncating)."""
    return raw * 1000 // RR_TICKS_PER_SECOND


def ms_to_ticks(rr_ms: int) -> int:
    """Smallest tick count that decodes back to *rr_ms*."""
    return -(-rr_ms * RR_TICKS_PER_SECOND // 1000)


@dataclass(frozen=True)
class SensorContact:
    supported: bool = False
    has_contact: bool = False


@dataclass(frozen=True)
class HeartRateSample:
    """One decoded Heart Rate Measurement notification."""

    heart_rate: float
    rr_intervals: tuple[int, ...] = ()
    energy_expended: int | None = None
    sensor_contact: SensorContact = field(default_factory=SensorContact)
    flags: int = 0

    @property
    def rr_count(self) -> int:
        return len(self.rr_intervals)

    @property
    def has_rr_intervals(self) -> bool:
        return bool(self.flags & FLAG_RR_PRESENT) or bool(self.rr_intervals)

    def to_dict(self) -> dict[str, Any]:
        return {
            "flags": self.flags,
            "heart_rate": self.heart_rate,
            "energy_expended": self.energy_expended,
            "rr_intervals": list(self.rr_intervals),
            "sensor_contact": {
                "supported": self.sensor_contact.supported,
                "has_contact": self.sensor_contact.has_contact,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HeartRateSample:
        contact = data.get("sensor_contact") or {}
        energy = data.get("energy_expended")
        return cls(
            heart_rate=float(data["heart_rate"]),
            rr_intervals=tuple(int(v) for v in data.get("rr_intervals", ())),
            energy_expended=int(energy) if energy is not None else None,
            sensor_contact=SensorContact(
                supported=bool(contact.get("supported", False)),
                has_contact=bool(contact.get("has_contact", False)),
            ),
            flags=int(data.get("flags", 0)),
        )

    def describe(self) -> str:
        """Multi-line human readable dump of the sample."""
        lines = [
            "Heart Rate Service Message:",
            f"  Flags: 0b{self.flags:08b}",
            f"  Heart Rate: {self.heart_rate:.0f} bpm",
        ]
        if self.rr_intervals:
            rr = ", ".join(f"{v} ms" for v in self.rr_intervals)
            lines.append(f"  RR Intervals: [{rr}]")
        else:
            lines.append("  RR Intervals: None")
        if self.energy_expended is not None:
            lines.append(f"  Energy Expended: {self.energy_expended} kJ")
        lines.append(f"  Sensor Contact Supported: {self.sensor_contact.supported}")
        lines.append(f"  Sensor Has Contact: {self.sensor_contact.has_contact}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        rr = f", rr={list(self.rr_intervals)}" if self.rr_intervals else ""
        ee = f", energy={self.energy_expended}kJ" if self.energy_expended is not None else ""
        return f"HeartRateSample(hr={self.heart_rate:.0f}bpm{rr}{ee})"


class HeartRateMessageCodec:
    """Decode / encode standard Heart Rate Measurement payloads."""

    @staticmethod
    def decode(data: bytes | bytearray) -> HeartRateSample:
        """Parse a raw 0x2A37 value.

        Raises:
            TooShortError: if fewer than 2 bytes are given.
            FormatError: if a flagged 16-bit HR or energy field is truncated.
        """
        data = bytes(data)
        if len(data) < MIN_PAYLOAD_SIZE:
            raise TooShortError(len(data))

        flags = data[0]
        offset = 1

        if flags & FLAG_HR_UINT16:
            if len(data) < offset + 2:
                raise FormatError("HRS payload too short for 16-bit heart rate")
            hr_value = struct.unpack_from("<H", data, offset)[0]
            offset += 2
        else:
            hr_value = data[offset]
            offset += 1

        energy_expended = None
        if flags & FLAG_ENERGY_PRESENT:
            if len(data) < offset + 2:
                raise FormatError("HRS payload too short for energy expended")
            energy_expended = struct.unpack_from("<H", data, offset)[0]
            offset += 2

        rr_intervals: list[int] = []
        if flags & FLAG_RR_PRESENT:
            # A trailing odd byte is not a complete interval and is ignored
            while offset + 1 < len(data) and len(rr_intervals) < MAX_RR_INTERVALS:
                rr_raw = struct.unpack_from("<H", data, offset)[0]
                rr_intervals.append(ticks_to_ms(rr_raw))
                offset += 2

        return HeartRateSample(
            heart_rate=float(hr_value),
            rr_intervals=tuple(rr_intervals),
            energy_expended=energy_expended,
            sensor_contact=SensorContact(
                supported=bool(flags & FLAG_CONTACT_SUPPORTED),
                has_contact=bool(flags & FLAG_CONTACT_DETECTED),
            ),
            flags=flags,
        )

    @staticmethod
    def encode(sample: HeartRateSample) -> bytes:
        """Build a 0x2A37 payload carrying the sample's fields.

        RR-intervals are converted back to 1/1024 s ticks; at most 9 are
        written.
        """
        hr_value = int(round(sample.heart_rate))
        flags = 0
        if hr_value > 0xFF or sample.flags & FLAG_HR_UINT16:
            flags |= FLAG_HR_UINT16
        if sample.sensor_contact.has_contact:
            flags |= FLAG_CONTACT_DETECTED
        if sample.sensor_contact.supported:
            flags |= FLAG_CONTACT_SUPPORTED
        if sample.energy_expended is not None:
            flags |= FLAG_ENERGY_PRESENT
        if sample.has_rr_intervals:
            flags |= FLAG_RR_PRESENT

        buf = bytearray([flags])
        if flags & FLAG_HR_UINT16:
            buf += struct.pack("<H", hr_value)
        else:
            buf.append(hr_value)
        if sample.energy_expended is not None:
            buf += struct.pack("<H", sample.energy_expended)
        for rr_ms in sample.rr_intervals[:MAX_RR_INTERVALS]:
            buf += struct.pack("<H", ms_to_ticks(rr_ms))
        return bytes(buf)
