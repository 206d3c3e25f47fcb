"""Core data models used across loader, sync core, service, and CLI."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

CURRENT_TIME_CHAR_UUID = UUID("00002a2b-0000-1000-8000-00805f9b34fb")
# Reserved for notification streaming, which ctsync does not subscribe to.
NOTIFY_CHAR_UUID = UUID("6e400002-b534-f393-67a9-e50e24dcca9e")

CURRENT_TIME_PAYLOAD_LENGTH = 11
ADJUST_REASON_MANUAL = 0x01


class CharProperty(enum.Flag):
    NONE = 0
    BROADCAST = enum.auto()
    READ = enum.auto()
    WRITE_WITHOUT_RESPONSE = enum.auto()
    WRITE = enum.auto()
    NOTIFY = enum.auto()
    INDICATE = enum.auto()
    AUTHENTICATED_SIGNED_WRITES = enum.auto()
    EXTENDED_PROPERTIES = enum.auto()

    @classmethod
    def from_names(cls, names: list[str] | tuple[str, ...]) -> CharProperty:
        """Build flags from GATT property names such as ``"write-without-response"``.

        Unknown names (vendor or platform specific extras) are ignored.
        """
        flags = cls.NONE
        for name in names:
            member = cls.__members__.get(name.strip().upper().replace("-", "_"))
            if member is not None:
                flags |= member
        return flags


class WeekdayConvention(str, enum.Enum):
    """Numbering used for the day-of-week byte of the Current Time payload."""

    DAYS_FROM_SUNDAY = "days_from_sunday"
    SUNDAY_FIRST = "sunday_first"
    BLUETOOTH_SIG = "bluetooth_sig"

    def day_of_week(self, day: date) -> int:
        if self is WeekdayConvention.DAYS_FROM_SUNDAY:
            return day.isoweekday() % 7
        if self is WeekdayConvention.SUNDAY_FIRST:
            return day.isoweekday() % 7 + 1
        return day.isoweekday()


@dataclass(frozen=True)
class MatchFilter:
    name_contains: str


@dataclass(frozen=True)
class TimeCharacteristicSpec:
    char_uuid: UUID = CURRENT_TIME_CHAR_UUID
    weekday: WeekdayConvention = WeekdayConvention.DAYS_FROM_SUNDAY
    adjust_reason: int = ADJUST_REASON_MANUAL


@dataclass(frozen=True)
class SyncProfile:
    id: str
    name: str
    match: MatchFilter
    time: TimeCharacteristicSpec = field(default_factory=TimeCharacteristicSpec)
    settle_s: float = 2.0


@dataclass(frozen=True)
class CharacteristicDescriptor:
    uuid: UUID
    properties: CharProperty
    handle: int
    service_uuid: UUID | None = None


@dataclass(frozen=True)
class DetectedPeripheral:
    adapter: str
    address: str
    name: str | None
    matched: bool


@dataclass(frozen=True)
class OperationResult:
    kind: str
    uuid: UUID
    ok: bool
    value_hex: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class PeripheralResult:
    address: str
    name: str
    connected: bool
    operations: tuple[OperationResult, ...] = ()
    disconnected: bool = False
    error: str | None = None

    @property
    def synced(self) -> bool:
        return any(op.kind == "write" and op.ok for op in self.operations)


@dataclass(frozen=True)
class AdapterResult:
    adapter: str
    peripherals_seen: int = 0
    peripherals: tuple[PeripheralResult, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class SyncReport:
    profile_id: str
    adapters: tuple[AdapterResult, ...]

    @property
    def peripherals(self) -> tuple[PeripheralResult, ...]:
        return tuple(p for a in self.adapters for p in a.peripherals)

    @property
    def synced_count(self) -> int:
        return sum(1 for p in self.peripherals if p.synced)
