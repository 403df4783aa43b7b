"""Scan for BLE devices advertising the Heart Rate Service."""

import asyncio

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from hrvlab.config import settings


def advertises_heart_rate(adv: AdvertisementData) -> bool:
    return any(
        uuid.lower() == settings.ble.hr_service_uuid for uuid in adv.service_uuids or []
    )


async def scan(timeout: float | None = None) -> list[tuple[BLEDevice, AdvertisementData]]:
    """Scan for nearby heart rate sensors.

    Returns a list of (device, advertisement_data) tuples for devices
    advertising service 0x180D.
    """
    if timeout is None:
        timeout = settings.ble.scan_timeout_s
    results: list[tuple[BLEDevice, AdvertisementData]] = []

    def _callback(device: BLEDevice, adv: AdvertisementData) -> None:
        if not advertises_heart_rate(adv):
            return
        # Avoid duplicates
        if any(d.address == device.address for d, _ in results):
            return
        results.append((device, adv))
        name = adv.local_name or device.name or "?"
        print(f"  Found: {name} [{device.address}] RSSI={adv.rssi} dBm")

    scanner = BleakScanner(detection_callback=_callback)
    print(f"Scanning for heart rate sensors ({timeout}s)...")
    await scanner.start()
    await asyncio.sleep(timeout)
    await scanner.stop()

    if not results:
        print("No heart rate sensors found.")
    else:
        print(f"\n{len(results)} heart rate sensor(s) found.")

    return results


async def find_sensor(timeout: float | None = None) -> BLEDevice | None:
    """Find the first heart rate sensor and return it."""
    results = await scan(timeout)
    if results:
        return results[0][0]
    return None
