"""Adapter, scan, connect and time-write sequence.

Everything here runs strictly sequentially on one event loop: one adapter,
one peripheral, one characteristic at a time. Failures skip the narrowest
unit of work they belong to; only transport initialization and service
discovery failures abort a run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from ctsync.core.device_match import display_name, name_matches, select_peripherals
from ctsync.core.errors import (
    CharacteristicReadError,
    CharacteristicWriteError,
    PeripheralConnectError,
    ScanError,
    ScanStartError,
    ServiceDiscoveryError,
    TransportUnavailableError,
)
from ctsync.core.model import (
    AdapterResult,
    CharacteristicDescriptor,
    CharProperty,
    DetectedPeripheral,
    OperationResult,
    PeripheralResult,
    SyncProfile,
    SyncReport,
)
from ctsync.core.time_codec import encode_current_time, utc_now
from ctsync.transports.base import AdapterHandle, BLEBackend, PeripheralHandle

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


async def list_adapters(backend: BLEBackend) -> list[AdapterHandle]:
    try:
        return list(await backend.list_adapters())
    except TransportUnavailableError:
        raise
    except Exception as exc:
        raise TransportUnavailableError(f"Could not initialize the BLE stack: {exc}") from exc


async def scan(adapter: AdapterHandle, settle_s: float) -> list[PeripheralHandle]:
    """Run an unfiltered scan and return every peripheral seen so far."""
    LOGGER.info("Starting scan on adapter %s...", adapter.name)
    try:
        await adapter.start_scan()
    except Exception as exc:
        raise ScanStartError(f"Can't scan BLE adapter {adapter.name}: {exc}") from exc

    try:
        await asyncio.sleep(settle_s)
        try:
            return list(await adapter.peripherals())
        except Exception as exc:
            raise ScanError(f"Could not list peripherals on adapter {adapter.name}: {exc}") from exc
    finally:
        try:
            await adapter.stop_scan()
        except Exception as exc:
            LOGGER.warning("Stopping scan on adapter %s failed: %s", adapter.name, exc)


async def _is_connected(peripheral: PeripheralHandle) -> bool:
    try:
        return await peripheral.is_connected()
    except Exception as exc:
        raise PeripheralConnectError(
            f"Could not read connection state of peripheral {display_name(peripheral)!r}: {exc}"
        ) from exc


async def ensure_connected(peripheral: PeripheralHandle) -> bool:
    """Connect if needed, then report the re-read connection state."""
    if not await _is_connected(peripheral):
        try:
            await peripheral.connect()
        except Exception as exc:
            raise PeripheralConnectError(
                f"Error connecting to peripheral {display_name(peripheral)!r}: {exc}"
            ) from exc
    # A connect acknowledgement does not guarantee the session is usable yet.
    return await _is_connected(peripheral)


async def discover(peripheral: PeripheralHandle) -> tuple[CharacteristicDescriptor, ...]:
    LOGGER.info("Discover peripheral %r services...", display_name(peripheral))
    try:
        return tuple(await peripheral.discover_services())
    except Exception as exc:
        raise ServiceDiscoveryError(
            f"Service discovery failed on peripheral {display_name(peripheral)!r}: {exc}"
        ) from exc


class TimeSyncSession:
    """Reads and writes the time characteristic of one connected peripheral."""

    def __init__(
        self,
        peripheral: PeripheralHandle,
        profile: SyncProfile,
        *,
        clock: Clock = utc_now,
        verify: bool = False,
    ) -> None:
        self.peripheral = peripheral
        self.profile = profile
        self.clock = clock
        self.verify = verify

    async def run(self, characteristics: Sequence[CharacteristicDescriptor]) -> list[OperationResult]:
        results: list[OperationResult] = []
        target = self.profile.time.char_uuid
        for characteristic in characteristics:
            if characteristic.uuid != target:
                continue
            readable = CharProperty.READ in characteristic.properties
            if readable:
                results.append(await self._read(characteristic, "read"))
            results.append(await self._write_time(characteristic))
            if readable and self.verify:
                results.append(await self._read(characteristic, "verify"))
        if not results:
            LOGGER.warning(
                "Peripheral %r has no characteristic %s",
                display_name(self.peripheral),
                target,
            )
        return results

    async def _read_value(self, characteristic: CharacteristicDescriptor) -> bytes:
        try:
            return await self.peripheral.read(characteristic)
        except Exception as exc:
            raise CharacteristicReadError(f"Failed to read {characteristic.uuid}: {exc}") from exc

    async def _write_value(self, characteristic: CharacteristicDescriptor, payload: bytes) -> None:
        try:
            await self.peripheral.write(characteristic, payload, response=True)
        except Exception as exc:
            raise CharacteristicWriteError(f"Failed to write current time: {exc}") from exc

    async def _read(self, characteristic: CharacteristicDescriptor, kind: str) -> OperationResult:
        LOGGER.info("Reading characteristic %s", characteristic.uuid)
        try:
            value = await self._read_value(characteristic)
        except CharacteristicReadError as exc:
            LOGGER.error("%s", exc)
            return OperationResult(kind=kind, uuid=characteristic.uuid, ok=False, error=str(exc))

        LOGGER.info(
            "Read value from %r [%s]: %s",
            display_name(self.peripheral),
            characteristic.uuid,
            value.hex(" "),
        )
        return OperationResult(kind=kind, uuid=characteristic.uuid, ok=True, value_hex=value.hex())

    async def _write_time(self, characteristic: CharacteristicDescriptor) -> OperationResult:
        payload = encode_current_time(
            self.clock(),
            weekday=self.profile.time.weekday,
            adjust_reason=self.profile.time.adjust_reason,
        )
        LOGGER.debug("Current time payload: %s", payload.hex(" ").upper())
        try:
            await self._write_value(characteristic, payload)
        except CharacteristicWriteError as exc:
            LOGGER.error("%s", exc)
            return OperationResult(
                kind="write",
                uuid=characteristic.uuid,
                ok=False,
                value_hex=payload.hex(),
                error=str(exc),
            )

        LOGGER.info("Current time written successfully")
        return OperationResult(kind="write", uuid=characteristic.uuid, ok=True, value_hex=payload.hex())


async def _disconnect(peripheral: PeripheralHandle) -> bool:
    LOGGER.info("Disconnecting from peripheral %r...", display_name(peripheral))
    try:
        await peripheral.disconnect()
    except Exception as exc:
        LOGGER.error("Disconnect from peripheral %r failed: %s", display_name(peripheral), exc)
        return False
    return True


async def sync_peripheral(
    peripheral: PeripheralHandle,
    profile: SyncProfile,
    *,
    clock: Clock = utc_now,
    verify: bool = False,
) -> PeripheralResult:
    name = display_name(peripheral)
    try:
        connected = await ensure_connected(peripheral)
    except PeripheralConnectError as exc:
        LOGGER.error("%s, skipping", exc)
        return PeripheralResult(address=peripheral.address, name=name, connected=False, error=str(exc))

    LOGGER.info("Now connected (%s) to peripheral %r.", connected, name)
    if not connected:
        return PeripheralResult(
            address=peripheral.address,
            name=name,
            connected=False,
            disconnected=await _disconnect(peripheral),
            error="Connection was not confirmed after connect",
        )

    try:
        characteristics = await discover(peripheral)
        operations = await TimeSyncSession(peripheral, profile, clock=clock, verify=verify).run(characteristics)
    finally:
        disconnected = await _disconnect(peripheral)

    return PeripheralResult(
        address=peripheral.address,
        name=name,
        connected=True,
        operations=tuple(operations),
        disconnected=disconnected,
    )


async def sync_devices(
    backend: BLEBackend,
    profile: SyncProfile,
    *,
    clock: Clock = utc_now,
    verify: bool = False,
) -> SyncReport:
    adapters = await list_adapters(backend)
    if not adapters:
        LOGGER.warning("No Bluetooth adapters found")

    adapter_results: list[AdapterResult] = []
    for adapter in adapters:
        try:
            peripherals = await scan(adapter, profile.settle_s)
        except ScanError as exc:
            LOGGER.error("%s", exc)
            adapter_results.append(AdapterResult(adapter=adapter.name, error=str(exc)))
            continue

        if not peripherals:
            LOGGER.warning("BLE peripheral devices were not found on adapter %s", adapter.name)

        results: list[PeripheralResult] = []
        for peripheral in select_peripherals(peripherals, profile.match):
            LOGGER.info("Found matching peripheral %r...", display_name(peripheral))
            results.append(await sync_peripheral(peripheral, profile, clock=clock, verify=verify))

        adapter_results.append(
            AdapterResult(
                adapter=adapter.name,
                peripherals_seen=len(peripherals),
                peripherals=tuple(results),
            )
        )

    return SyncReport(profile_id=profile.id, adapters=tuple(adapter_results))


async def detect_peripherals(backend: BLEBackend, profile: SyncProfile) -> list[DetectedPeripheral]:
    """Scan every adapter without connecting and flag the profile's matches."""
    detected: list[DetectedPeripheral] = []
    for adapter in await list_adapters(backend):
        try:
            peripherals = await scan(adapter, profile.settle_s)
        except ScanError as exc:
            LOGGER.error("%s", exc)
            continue
        for peripheral in peripherals:
            detected.append(
                DetectedPeripheral(
                    adapter=adapter.name,
                    address=peripheral.address,
                    name=peripheral.local_name,
                    matched=name_matches(peripheral.local_name, profile.match),
                )
            )
    return detected
