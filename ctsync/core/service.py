"""Service layer used by CLI and the public client."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from ctsync.core.errors import ProfileSelectionError
from ctsync.core.model import DetectedPeripheral, MatchFilter, SyncProfile, SyncReport
from ctsync.core.profile_loader import DEFAULT_PROFILE_ID, load_profiles
from ctsync.core.sync import detect_peripherals, sync_devices
from ctsync.core.time_codec import encode_current_time, utc_now
from ctsync.transports.base import BLEBackend
from ctsync.transports.bleak_backend import BleakBackend


class TimeSyncService:
    def __init__(
        self,
        *,
        backend: BLEBackend | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self.backend = backend or BleakBackend()
        self.clock = clock or utc_now

    def list_profiles(self) -> list[SyncProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def resolve_profile(
        self,
        profile_id: str | None = None,
        *,
        name_filter: str | None = None,
        settle_s: float | None = None,
    ) -> SyncProfile:
        """Look up a profile and apply per-run overrides on a copy of it."""
        wanted = profile_id or DEFAULT_PROFILE_ID
        profile = self.profiles.get(wanted)
        if profile is None:
            available = ", ".join(sorted(self.profiles)) or "<none>"
            raise ProfileSelectionError(f"Unknown profile '{wanted}'. Available: {available}")

        if name_filter is not None:
            if not name_filter:
                raise ProfileSelectionError("Name filter must not be empty")
            profile = replace(profile, match=MatchFilter(name_contains=name_filter))
        if settle_s is not None:
            if settle_s < 0:
                raise ProfileSelectionError("Scan settle time must not be negative")
            profile = replace(profile, settle_s=settle_s)
        return profile

    def list_devices(
        self,
        profile_id: str | None = None,
        *,
        name_filter: str | None = None,
        settle_s: float | None = None,
    ) -> list[DetectedPeripheral]:
        profile = self.resolve_profile(profile_id, name_filter=name_filter, settle_s=settle_s)
        return asyncio.run(detect_peripherals(self.backend, profile))

    def sync_time(
        self,
        profile_id: str | None = None,
        *,
        name_filter: str | None = None,
        settle_s: float | None = None,
        verify: bool = False,
    ) -> SyncReport:
        profile = self.resolve_profile(profile_id, name_filter=name_filter, settle_s=settle_s)
        return asyncio.run(sync_devices(self.backend, profile, clock=self.clock, verify=verify))

    def preview_payload(
        self,
        profile_id: str | None = None,
        *,
        instant: datetime | None = None,
    ) -> tuple[SyncProfile, datetime, bytes]:
        profile = self.resolve_profile(profile_id)
        when = instant or self.clock()
        payload = encode_current_time(
            when,
            weekday=profile.time.weekday,
            adjust_reason=profile.time.adjust_reason,
        )
        return profile, when, payload
