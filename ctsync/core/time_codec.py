"""Bluetooth Current Time characteristic (0x2A2B) payload encoding."""

from __future__ import annotations

import struct
from datetime import datetime, timezone

from ctsync.core.model import ADJUST_REASON_MANUAL, WeekdayConvention

# year (LE), month, day, hours, minutes, seconds, day of week,
# fractions256, reserved, adjust reason
_CURRENT_TIME_STRUCT = struct.Struct("<HBBBBBBBBB")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def encode_current_time(
    instant: datetime,
    *,
    weekday: WeekdayConvention = WeekdayConvention.DAYS_FROM_SUNDAY,
    adjust_reason: int = ADJUST_REASON_MANUAL,
) -> bytes:
    """Pack ``instant`` into the 11-byte Current Time payload.

    Naive datetimes are taken to already be UTC; aware ones are converted.
    Sub-second resolution is not carried, so fractions256 is always 0.
    """
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    else:
        instant = instant.astimezone(timezone.utc)

    return _CURRENT_TIME_STRUCT.pack(
        instant.year,
        instant.month,
        instant.day,
        instant.hour,
        instant.minute,
        instant.second,
        weekday.day_of_week(instant.date()),
        0,
        0,
        adjust_reason,
    )
