"""Stable public API for building tooling on top of ctsync.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from ctsync.core.errors import (
    CharacteristicReadError,
    CharacteristicWriteError,
    CtsyncError,
    PeripheralConnectError,
    ProfileLoadError,
    ProfileSelectionError,
    ProfileValidationError,
    ScanError,
    ScanStartError,
    ServiceDiscoveryError,
    TransportError,
    TransportUnavailableError,
)
from ctsync.core.model import (
    CURRENT_TIME_CHAR_UUID,
    AdapterResult,
    CharacteristicDescriptor,
    CharProperty,
    DetectedPeripheral,
    MatchFilter,
    OperationResult,
    PeripheralResult,
    SyncProfile,
    SyncReport,
    TimeCharacteristicSpec,
    WeekdayConvention,
)
from ctsync.core.service import TimeSyncService
from ctsync.core.time_codec import encode_current_time
from ctsync.transports.base import BLEBackend
from ctsync.transports.bleak_backend import BleakBackend

__all__ = [
    "CtsyncError",
    "ProfileLoadError",
    "ProfileSelectionError",
    "ProfileValidationError",
    "TransportError",
    "TransportUnavailableError",
    "ScanError",
    "ScanStartError",
    "PeripheralConnectError",
    "ServiceDiscoveryError",
    "CharacteristicReadError",
    "CharacteristicWriteError",
    "CURRENT_TIME_CHAR_UUID",
    "AdapterResult",
    "CharacteristicDescriptor",
    "CharProperty",
    "DetectedPeripheral",
    "MatchFilter",
    "OperationResult",
    "PeripheralResult",
    "SyncProfile",
    "SyncReport",
    "TimeCharacteristicSpec",
    "WeekdayConvention",
    "BleakBackend",
    "encode_current_time",
    "Client",
]


class Client:
    """Public client for setting wearable clocks.

    A `Client` instance wraps profile loading, adapter scanning, peripheral
    matching and the Current Time write behind a stable API intended for
    third-party tools (GUI/TUI/services/scripts).
    """

    def __init__(
        self,
        *,
        backend: BLEBackend | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._service = TimeSyncService(backend=backend, clock=clock)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_profiles(self) -> list[SyncProfile]:
        return self._service.list_profiles()

    def get_profile(
        self,
        profile_id: str | None = None,
        *,
        name_filter: str | None = None,
        settle_s: float | None = None,
    ) -> SyncProfile:
        return self._service.resolve_profile(profile_id, name_filter=name_filter, settle_s=settle_s)

    def list_devices(
        self,
        *,
        profile_id: str | None = None,
        name_filter: str | None = None,
        settle_s: float | None = None,
    ) -> list[DetectedPeripheral]:
        return self._service.list_devices(profile_id, name_filter=name_filter, settle_s=settle_s)

    def sync_time(
        self,
        *,
        profile_id: str | None = None,
        name_filter: str | None = None,
        settle_s: float | None = None,
        verify: bool = False,
    ) -> SyncReport:
        return self._service.sync_time(
            profile_id,
            name_filter=name_filter,
            settle_s=settle_s,
            verify=verify,
        )

    def preview_payload(
        self,
        *,
        profile_id: str | None = None,
        instant: datetime | None = None,
    ) -> bytes:
        _, _, payload = self._service.preview_payload(profile_id, instant=instant)
        return payload
