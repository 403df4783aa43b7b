"""hrvlab: heart-rate-variability sessions from BLE chest-strap sensors."""

__version__ = "0.5.0"
