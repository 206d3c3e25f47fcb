"""Set a BLE wearable's clock over the Bluetooth Current Time characteristic."""

__version__ = "0.1.0"
