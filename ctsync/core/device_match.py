"""Peripheral-to-profile matching logic."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

from ctsync.core.model import MatchFilter
from ctsync.transports.base import PeripheralHandle

UNKNOWN_NAME = "(peripheral name unknown)"

_P = TypeVar("_P", bound=PeripheralHandle)


def name_matches(name: str | None, match_filter: MatchFilter) -> bool:
    if name is None:
        return False
    return match_filter.name_contains in name


def display_name(peripheral: PeripheralHandle) -> str:
    return peripheral.local_name if peripheral.local_name is not None else UNKNOWN_NAME


def select_peripherals(peripherals: Iterable[_P], match_filter: MatchFilter) -> list[_P]:
    return [p for p in peripherals if name_matches(p.local_name, match_filter)]
