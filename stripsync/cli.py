"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
import uvicorn

from stripsync.api import Client
from stripsync.core.config import Settings, load_settings
from stripsync.core.errors import StripsyncError
from stripsync.core.model import ColorSample, DispatchResult
from stripsync.core.service import StripService, connect_device
from stripsync.server import create_app
from stripsync.sources.screen import ScreenFrameSource
from stripsync.transports.ble_gatt import BledomDevice

app = typer.Typer(help="Drive a BLE LED strip from screen colors or direct commands")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    config: Path | None = typer.Option(None, "--config", help="Settings YAML file"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config": config}


def _settings(ctx: typer.Context, **overrides: object) -> Settings:
    config = ctx.obj.get("config") if ctx.obj else None
    return load_settings(config, **overrides)


def _report(result: DispatchResult, message: str) -> None:
    if not result.ok:
        typer.echo(f"Error: {result.detail or result.outcome.value}", err=True)
        raise typer.Exit(code=1)
    typer.echo(message)


@app.command("scan")
def scan(
    ctx: typer.Context,
    window: float | None = typer.Option(None, "--window", help="Observation window in seconds"),
) -> None:
    """Look for strips advertising the target service, else rank likely candidates."""
    try:
        settings = _settings(ctx, scan_window_s=window)
        typer.echo(f"Scanning for LED strips (service 0x{settings.service_id.upper()})...")
        report = Client(settings=settings).scan()
        if report.definite is not None:
            typer.echo(f"FOUND MATCH: {report.definite.identifier} ({report.definite.name})")
            typer.echo(f"Run: stripsync serve {report.definite.identifier}")
            return
        if not report.candidates:
            typer.echo(
                "No likely devices found. Ensure the strip is powered and no phone is connected to it."
            )
            return
        typer.echo("Connectable candidates (strongest signal first):")
        for candidate in report.candidates:
            typer.echo(f"  {candidate.identifier} (signal {candidate.rssi}) - {candidate.name}")
        typer.echo("Try the top identifier with: stripsync serve <IDENTIFIER>")
    except StripsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def _parse_color(values: list[str]) -> ColorSample:
    if len(values) == 1:
        return ColorSample.from_hex(values[0])
    if len(values) == 3:
        try:
            r, g, b = (int(value) for value in values)
        except ValueError:
            raise ValueError(f"Color channels must be integers, got {' '.join(values)}") from None
        return ColorSample.clamp(r, g, b)
    raise ValueError("Expected R G B or a single hex color")


@app.command("color")
def set_color(
    ctx: typer.Context,
    identifier: str,
    values: list[str] = typer.Argument(..., help="R G B (0-255 each) or a hex color like #ff8800"),
) -> None:
    """Set a single color. Out-of-range channels are clamped."""
    try:
        color = _parse_color(values)
    except ValueError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None
    try:
        result = Client(settings=_settings(ctx)).set_color(identifier, color.r, color.g, color.b)
        color = result.intent.color
        _report(result, f"Color set to rgb({color.r}, {color.g}, {color.b})")
    except StripsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("power")
def set_power(ctx: typer.Context, identifier: str, state: str = typer.Argument(..., help="on or off")) -> None:
    """Switch the strip on or off."""
    lowered = state.strip().lower()
    if lowered not in ("on", "off"):
        typer.echo(f"Error: power state must be 'on' or 'off', got '{state}'", err=True)
        raise typer.Exit(code=1)
    try:
        result = Client(settings=_settings(ctx)).set_power(identifier, lowered == "on")
        _report(result, f"Power set to {lowered.upper()}")
    except StripsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("brightness")
def set_brightness(ctx: typer.Context, identifier: str, level: int = typer.Argument(..., help="0-100")) -> None:
    """Set brightness in percent. Out-of-range levels are clamped."""
    try:
        result = Client(settings=_settings(ctx)).set_brightness(identifier, level)
        _report(result, f"Brightness set to {result.intent.level}%")
    except StripsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


async def _serve(identifier: str, settings: Settings) -> None:
    device = BledomDevice(identifier, settings)
    await connect_device(device)
    app_ = create_app(StripService(device, settings), ScreenFrameSource)
    server = uvicorn.Server(uvicorn.Config(app_, host=settings.host, port=settings.port))
    try:
        await server.serve()
    finally:
        await device.close()


@app.command("serve")
def serve(
    ctx: typer.Context,
    identifier: str,
    host: str | None = typer.Option(None, "--host"),
    port: int | None = typer.Option(None, "--port"),
) -> None:
    """Run the HTTP/WebSocket controller for one strip."""
    try:
        settings = _settings(ctx, host=host, port=port)
        typer.echo(f"Controller for {identifier} at http://{settings.host}:{settings.port}")
        asyncio.run(_serve(identifier, settings))
    except StripsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


async def _sync(identifier: str, settings: Settings, monitor: int) -> None:
    device = BledomDevice(identifier, settings)
    await connect_device(device)
    async with StripService(device, settings) as service:
        await service.start_sync(ScreenFrameSource(monitor))
        await service.wait_sync()


@app.command("sync")
def sync(
    ctx: typer.Context,
    identifier: str,
    monitor: int = typer.Option(0, "--monitor", help="Monitor index, 0 is the first screen"),
) -> None:
    """Mirror the average screen color onto the strip until interrupted."""
    try:
        settings = _settings(ctx)
        typer.echo(f"Syncing monitor {monitor} to {identifier}. Press Ctrl+C to stop.")
        asyncio.run(_sync(identifier, settings, monitor))
    except KeyboardInterrupt:
        typer.echo("Stopped")
    except StripsyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
