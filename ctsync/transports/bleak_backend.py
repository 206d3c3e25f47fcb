"""BLE backend implementation on top of bleak."""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from uuid import UUID

from ctsync.core.errors import PeripheralConnectError, TransportUnavailableError
from ctsync.core.model import CharacteristicDescriptor, CharProperty

_SYSFS_BLUETOOTH = Path("/sys/class/bluetooth")
_HCI_RE = re.compile(r"^hci\d+$")
DEFAULT_ADAPTER_NAME = "default"
LOGGER = logging.getLogger(__name__)


def _bluez_adapter_names(root: Path = _SYSFS_BLUETOOTH) -> list[str]:
    if not root.exists():
        return []
    try:
        entries = [entry.name for entry in root.iterdir()]
    except OSError as exc:
        raise TransportUnavailableError(f"Could not enumerate Bluetooth adapters in {root}: {exc}") from exc
    return sorted((name for name in entries if _HCI_RE.match(name)), key=lambda n: int(n[3:]))


def characteristic_from_bleak(characteristic: Any, service_uuid: str | None = None) -> CharacteristicDescriptor:
    return CharacteristicDescriptor(
        uuid=UUID(characteristic.uuid),
        properties=CharProperty.from_names(tuple(characteristic.properties)),
        handle=characteristic.handle,
        service_uuid=UUID(service_uuid) if service_uuid else None,
    )


class BleakPeripheral:
    def __init__(self, device: Any, local_name: str | None, *, adapter: str | None, timeout_s: float) -> None:
        self._device = device
        self._adapter = adapter
        self._timeout_s = timeout_s
        self._client: Any = None
        self.address: str = device.address
        self.local_name = local_name

    async def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    async def connect(self) -> None:
        from bleak import BleakClient  # type: ignore

        kwargs: dict[str, Any] = {"timeout": self._timeout_s}
        if self._adapter is not None:
            kwargs["adapter"] = self._adapter
        self._client = BleakClient(self._device, **kwargs)
        await self._client.connect()

    def _require_client(self) -> Any:
        if self._client is None:
            raise PeripheralConnectError(f"Peripheral {self.address} is not connected")
        return self._client

    async def discover_services(self) -> Sequence[CharacteristicDescriptor]:
        # bleak resolves the GATT database as part of connect().
        client = self._require_client()
        return [
            characteristic_from_bleak(characteristic, service.uuid)
            for service in client.services
            for characteristic in service.characteristics
        ]

    async def read(self, characteristic: CharacteristicDescriptor) -> bytes:
        data = await self._require_client().read_gatt_char(characteristic.handle)
        return bytes(data)

    async def write(
        self,
        characteristic: CharacteristicDescriptor,
        data: bytes,
        *,
        response: bool = True,
    ) -> None:
        await self._require_client().write_gatt_char(characteristic.handle, data, response=response)

    async def disconnect(self) -> None:
        if self._client is None:
            return
        await self._client.disconnect()


class BleakAdapter:
    def __init__(self, name: str | None, *, connect_timeout_s: float = 10.0) -> None:
        self._adapter = name
        self._connect_timeout_s = connect_timeout_s
        self._scanner: Any = None
        self.name = name or DEFAULT_ADAPTER_NAME

    async def start_scan(self) -> None:
        from bleak import BleakScanner  # type: ignore

        kwargs: dict[str, Any] = {}
        if self._adapter is not None:
            kwargs["adapter"] = self._adapter
        self._scanner = BleakScanner(**kwargs)
        await self._scanner.start()

    async def stop_scan(self) -> None:
        if self._scanner is None:
            return
        await self._scanner.stop()

    async def peripherals(self) -> Sequence[BleakPeripheral]:
        if self._scanner is None:
            return []
        found: list[BleakPeripheral] = []
        for device, advertisement in self._scanner.discovered_devices_and_advertisement_data.values():
            found.append(
                BleakPeripheral(
                    device,
                    advertisement.local_name,
                    adapter=self._adapter,
                    timeout_s=self._connect_timeout_s,
                )
            )
        return found


class BleakBackend:
    def __init__(self, *, connect_timeout_s: float = 10.0) -> None:
        self.connect_timeout_s = connect_timeout_s

    async def list_adapters(self) -> Sequence[BleakAdapter]:
        try:
            import bleak  # type: ignore  # noqa: F401
        except Exception as exc:  # pragma: no cover - import failure path
            raise TransportUnavailableError(
                "BLE access requires 'bleak'. Install dependency and retry."
            ) from exc

        if sys.platform.startswith("linux"):
            names = _bluez_adapter_names()
            LOGGER.debug("BlueZ adapters: %s", names)
            return [BleakAdapter(name, connect_timeout_s=self.connect_timeout_s) for name in names]

        # CoreBluetooth and WinRT expose a single default radio.
        return [BleakAdapter(None, connect_timeout_s=self.connect_timeout_s)]
