"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from datetime import datetime

import typer

from ctsync.core.errors import CtsyncError
from ctsync.core.model import SyncReport
from ctsync.core.service import TimeSyncService

app = typer.Typer(help="Set a BLE wearable's clock through the Current Time characteristic")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )


def _build_service() -> TimeSyncService:
    service = TimeSyncService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


def _print_report(report: SyncReport) -> None:
    if not report.adapters:
        typer.echo("No Bluetooth adapters found")
    for adapter in report.adapters:
        if adapter.error:
            typer.echo(f"{adapter.adapter}: scan failed: {adapter.error}")
            continue
        typer.echo(
            f"{adapter.adapter}: {adapter.peripherals_seen} peripheral(s) seen, "
            f"{len(adapter.peripherals)} matched"
        )
        for peripheral in adapter.peripherals:
            if not peripheral.connected:
                typer.echo(f"  {peripheral.address} {peripheral.name}: skipped ({peripheral.error})")
                continue
            if not peripheral.operations:
                typer.echo(f"  {peripheral.address} {peripheral.name}: no time characteristic")
            for op in peripheral.operations:
                outcome = f"ok {op.value_hex}" if op.ok else f"failed: {op.error}"
                typer.echo(f"  {peripheral.address} {peripheral.name}: {op.kind} {outcome}")
            if not peripheral.disconnected:
                typer.echo(f"  {peripheral.address} {peripheral.name}: disconnect failed")
    typer.echo(f"Synced {report.synced_count} device(s) with profile {report.profile_id}")


@app.command("profiles")
def list_profiles() -> None:
    """List available sync profiles."""
    try:
        service = _build_service()
        profiles = service.list_profiles()
        if not profiles:
            typer.echo("No profiles loaded")
            raise typer.Exit(code=1)

        for profile in profiles:
            typer.echo(f"{profile.id}: {profile.name}")
            typer.echo(f"  name contains: {profile.match.name_contains}")
            typer.echo(f"  characteristic: {profile.time.char_uuid}")
            typer.echo(f"  weekday: {profile.time.weekday.value}")
    except CtsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices(
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    name: str | None = typer.Option(None, "--name", help="Override the name substring filter"),
    settle: float | None = typer.Option(None, "--settle", help="Seconds to scan before listing"),
) -> None:
    """Scan and list visible peripherals without connecting."""
    try:
        service = _build_service()
        devices = service.list_devices(profile, name_filter=name, settle_s=settle)
        if not devices:
            typer.echo("No BLE peripherals found")
            return

        for device in devices:
            marker = "*" if device.matched else " "
            typer.echo(f"{marker} [{device.adapter}] {device.address} {device.name or '<unnamed>'}")
    except CtsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("sync")
def sync_time(
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    name: str | None = typer.Option(None, "--name", help="Override the name substring filter"),
    settle: float | None = typer.Option(None, "--settle", help="Seconds to scan before listing"),
    verify: bool = typer.Option(False, "--verify", help="Read the characteristic back after writing"),
) -> None:
    """Write the current UTC time to every matching peripheral in range."""
    try:
        service = _build_service()
        report = service.sync_time(profile, name_filter=name, settle_s=settle, verify=verify)
        _print_report(report)
    except CtsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("payload")
def show_payload(
    profile: str | None = typer.Option(None, "--profile", help="Profile ID"),
    at: str | None = typer.Option(None, "--at", help="ISO 8601 instant instead of now"),
) -> None:
    """Print the Current Time payload without touching the radio."""
    instant: datetime | None = None
    if at is not None:
        try:
            instant = datetime.fromisoformat(at)
        except ValueError:
            raise typer.BadParameter(f"'{at}' is not an ISO 8601 date/time", param_hint="--at") from None
    try:
        service = _build_service()
        resolved, when, payload = service.preview_payload(profile, instant=instant)
        typer.echo(f"{resolved.id} @ {when.isoformat()}: {payload.hex(' ').upper()}")
    except CtsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
