"""BLE platform binding interfaces."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from ctsync.core.model import CharacteristicDescriptor


class PeripheralHandle(Protocol):
    address: str
    local_name: str | None

    async def is_connected(self) -> bool:
        """Report whether a GATT session is currently open."""

    async def connect(self) -> None:
        """Open a GATT session."""

    async def discover_services(self) -> Sequence[CharacteristicDescriptor]:
        """Enumerate services and return their characteristics, flattened."""

    async def read(self, characteristic: CharacteristicDescriptor) -> bytes:
        """Read a characteristic value."""

    async def write(
        self,
        characteristic: CharacteristicDescriptor,
        data: bytes,
        *,
        response: bool = True,
    ) -> None:
        """Write a characteristic value."""

    async def disconnect(self) -> None:
        """Close the GATT session."""


class AdapterHandle(Protocol):
    name: str

    async def start_scan(self) -> None:
        """Start an unfiltered discovery scan."""

    async def stop_scan(self) -> None:
        """Stop a scan started with start_scan."""

    async def peripherals(self) -> Sequence[PeripheralHandle]:
        """Return every peripheral observed since the scan started."""


class BLEBackend(Protocol):
    async def list_adapters(self) -> Sequence[AdapterHandle]:
        """Enumerate host BLE adapters."""
