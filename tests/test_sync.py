from __future__ import annotations

import asyncio
import struct
from datetime import datetime, timezone

import pytest

from ctsync.core import sync as sync_module
from ctsync.core.errors import PeripheralConnectError, ScanStartError, ServiceDiscoveryError, TransportUnavailableError
from ctsync.core.model import CharacteristicDescriptor, CharProperty, MatchFilter, SyncProfile
from ctsync.core.sync import detect_peripherals, ensure_connected, scan, sync_devices

from fakes import BATTERY_CHAR, TIME_CHAR, FakeAdapter, FakeBackend, FakePeripheral

INSTANT = datetime(2024, 3, 17, 12, 34, 56, tzinfo=timezone.utc)
PROFILE = SyncProfile(
    id="amazfit_gts4_mini",
    name="Amazfit GTS 4 Mini",
    match=MatchFilter(name_contains="Amazfit GTS 4 Mini"),
    settle_s=0.0,
)


def _run(backend: FakeBackend, *, verify: bool = False):
    return asyncio.run(sync_devices(backend, PROFILE, clock=lambda: INSTANT, verify=verify))


def test_end_to_end_single_watch() -> None:
    watch = FakePeripheral("C4:7C:8D:00:11:22", "Amazfit GTS 4 Mini Pro")
    adapter = FakeAdapter("hci0", [watch])

    report = _run(FakeBackend([adapter]))

    assert adapter.calls == ["start_scan", "peripherals", "stop_scan"]
    assert watch.calls == ["connect", "discover", "read", "write", "disconnect"]
    assert len(watch.writes) == 1
    characteristic, payload, response = watch.writes[0]
    assert characteristic == TIME_CHAR
    assert response is True
    assert len(payload) == 11
    year, month, day, hour, minute, second = struct.unpack("<HBBBBB", payload[:7])
    assert datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc) == INSTANT

    assert report.synced_count == 1
    result = report.peripherals[0]
    assert result.connected
    assert result.disconnected
    assert [op.kind for op in result.operations] == ["read", "write"]
    assert result.operations[1].value_hex == payload.hex()


def test_no_peripherals_completes_without_connects() -> None:
    adapter = FakeAdapter("hci0", [])
    report = _run(FakeBackend([adapter]))
    assert report.synced_count == 0
    assert report.adapters[0].peripherals_seen == 0
    assert report.peripherals == ()


def test_no_adapters_completes() -> None:
    report = _run(FakeBackend([]))
    assert report.adapters == ()
    assert report.synced_count == 0


def test_backend_failure_is_transport_unavailable() -> None:
    with pytest.raises(TransportUnavailableError):
        _run(FakeBackend(error=RuntimeError("org.bluez not available")))


def test_connect_failure_skips_peripheral_and_continues() -> None:
    broken = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", connect_error=TimeoutError("timed out"))
    healthy = FakePeripheral("C4:7C:8D:00:00:02", "Amazfit GTS 4 Mini Pro")

    report = _run(FakeBackend([FakeAdapter("hci0", [broken, healthy])]))

    assert broken.calls == ["connect"]
    assert broken.writes == []
    first, second = report.peripherals
    assert not first.connected
    assert "timed out" in (first.error or "")
    assert second.synced
    assert report.synced_count == 1


def test_connection_not_confirmed_skips_io_and_disconnects() -> None:
    flaky = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", stays_disconnected=True)
    report = _run(FakeBackend([FakeAdapter("hci0", [flaky])]))
    assert flaky.calls == ["connect", "disconnect"]
    assert not report.peripherals[0].connected
    assert report.peripherals[0].disconnected


def test_already_connected_peripheral_is_not_reconnected() -> None:
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", connected=True)
    _run(FakeBackend([FakeAdapter("hci0", [watch])]))
    assert watch.calls == ["discover", "read", "write", "disconnect"]


def test_missing_time_characteristic_still_disconnects() -> None:
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", characteristics=(BATTERY_CHAR,))
    report = _run(FakeBackend([FakeAdapter("hci0", [watch])]))
    assert watch.calls == ["connect", "discover", "disconnect"]
    assert report.peripherals[0].operations == ()
    assert report.peripherals[0].disconnected


def test_write_failure_is_reported_and_run_continues() -> None:
    failing = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", write_error=OSError("ATT error 0x03"))
    healthy = FakePeripheral("C4:7C:8D:00:00:02", "Amazfit GTS 4 Mini Pro")

    report = _run(FakeBackend([FakeAdapter("hci0", [failing, healthy])]))

    assert failing.calls == ["connect", "discover", "read", "write", "disconnect"]
    write = report.peripherals[0].operations[-1]
    assert write.kind == "write"
    assert not write.ok
    assert "ATT error 0x03" in (write.error or "")
    assert report.synced_count == 1


def test_read_failure_does_not_prevent_write() -> None:
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", read_error=OSError("not permitted"))
    report = _run(FakeBackend([FakeAdapter("hci0", [watch])]))
    read, write = report.peripherals[0].operations
    assert not read.ok
    assert write.ok
    assert len(watch.writes) == 1


def test_write_only_characteristic_is_not_read() -> None:
    write_only = CharacteristicDescriptor(
        uuid=TIME_CHAR.uuid,
        properties=CharProperty.WRITE,
        handle=TIME_CHAR.handle,
    )
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", characteristics=(write_only,))
    _run(FakeBackend([FakeAdapter("hci0", [watch])]), verify=True)
    assert watch.calls == ["connect", "discover", "write", "disconnect"]


def test_verify_reads_back_once_after_write() -> None:
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini")
    report = _run(FakeBackend([FakeAdapter("hci0", [watch])]), verify=True)
    assert watch.calls == ["connect", "discover", "read", "write", "read", "disconnect"]
    assert [op.kind for op in report.peripherals[0].operations] == ["read", "write", "verify"]


def test_discovery_failure_aborts_after_disconnect() -> None:
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", discover_error=RuntimeError("GATT lost"))
    with pytest.raises(ServiceDiscoveryError):
        _run(FakeBackend([FakeAdapter("hci0", [watch])]))
    assert watch.calls == ["connect", "discover", "disconnect"]


def test_unmatched_and_unnamed_peripherals_are_untouched() -> None:
    band = FakePeripheral("C4:7C:8D:00:00:01", "Mi Smart Band 7")
    unnamed = FakePeripheral("C4:7C:8D:00:00:02", None)
    report = _run(FakeBackend([FakeAdapter("hci0", [band, unnamed])]))
    assert band.calls == []
    assert unnamed.calls == []
    assert report.adapters[0].peripherals_seen == 2
    assert report.adapters[0].peripherals == ()


def test_scan_start_failure_skips_only_that_adapter() -> None:
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini")
    dead = FakeAdapter("hci0", start_error=OSError("org.bluez.Error.NotReady"))
    alive = FakeAdapter("hci1", [watch])

    report = _run(FakeBackend([dead, alive]))

    assert dead.calls == ["start_scan"]
    assert "NotReady" in (report.adapters[0].error or "")
    assert report.adapters[1].peripherals[0].synced


def test_scan_raises_scan_start_error() -> None:
    adapter = FakeAdapter("hci0", start_error=OSError("busy"))
    with pytest.raises(ScanStartError):
        asyncio.run(scan(adapter, 0.0))


def test_scan_waits_settle_interval(monkeypatch: pytest.MonkeyPatch) -> None:
    waited: list[float] = []

    async def fake_sleep(delay: float) -> None:
        waited.append(delay)

    monkeypatch.setattr(sync_module.asyncio, "sleep", fake_sleep)
    adapter = FakeAdapter("hci0", [FakePeripheral("C4:7C:8D:00:00:01", "x")])

    found = asyncio.run(scan(adapter, 2.0))

    assert waited == [2.0]
    assert len(found) == 1
    assert adapter.calls == ["start_scan", "peripherals", "stop_scan"]


def test_ensure_connected_reports_state() -> None:
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini")
    assert asyncio.run(ensure_connected(watch)) is True
    assert watch.calls == ["connect"]


def test_detect_peripherals_flags_matches_without_connecting() -> None:
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini Pro")
    band = FakePeripheral("C4:7C:8D:00:00:02", "Mi Smart Band 7")
    detected = asyncio.run(detect_peripherals(FakeBackend([FakeAdapter("hci0", [watch, band])]), PROFILE))
    assert [(d.address, d.matched) for d in detected] == [
        ("C4:7C:8D:00:00:01", True),
        ("C4:7C:8D:00:00:02", False),
    ]
    assert watch.calls == []
    assert band.calls == []


def test_connection_state_failure_skips_peripheral_and_continues() -> None:
    broken = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", state_error=RuntimeError("D-Bus gone"))
    healthy = FakePeripheral("C4:7C:8D:00:00:02", "Amazfit GTS 4 Mini Pro")

    report = _run(FakeBackend([FakeAdapter("hci0", [broken, healthy])]))

    assert broken.calls == []
    first, second = report.peripherals
    assert not first.connected
    assert "D-Bus gone" in (first.error or "")
    assert second.synced


def test_ensure_connected_wraps_state_errors() -> None:
    watch = FakePeripheral("C4:7C:8D:00:00:01", "Amazfit GTS 4 Mini", state_error=OSError("adapter removed"))
    with pytest.raises(PeripheralConnectError):
        asyncio.run(ensure_connected(watch))
