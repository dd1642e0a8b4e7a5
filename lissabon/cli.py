"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import typer

from lissabon.core.config_loader import load_config
from lissabon.core.errors import FeatureResolutionError, LissabonError
from lissabon.core.model import DeviceDescriptor, LissabonConfig
from lissabon.core.service import LissabonService

app = typer.Typer(help="Control Lissabon dimmers and LED strips over BLE or WiFi")

_TRUE_VALUES = {"on", "true", "1", "yes"}
_FALSE_VALUES = {"off", "false", "0", "no"}
_state: dict[str, Path | None] = {"config": None}

T = TypeVar("T")


@app.callback()
def main(
    config: Path | None = typer.Option(None, "--config", help="Path to config YAML"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["config"] = config


def _load_config() -> LissabonConfig:
    loaded = load_config(_state["config"])
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return loaded.config


def _build_service() -> LissabonService:
    service = LissabonService(_load_config())
    service.register_devices()
    return service


def _run(service: LissabonService, action: Callable[[LissabonService], Awaitable[T]]) -> T:
    async def _main() -> T:
        try:
            return await action(service)
        finally:
            await service.stop()

    return asyncio.run(_main())


def _describe(device: DeviceDescriptor) -> str:
    transport = "ble" if device.is_bluetooth else "wifi"
    features = ["on"]
    if device.has_brightness:
        features.append("brightness")
    if device.has_temperature:
        features.append("temperature")
    return f"{device.address} {device.name} [{device.type}, {transport}] {', '.join(features)}"


def _parse_value(feature: str, raw: str) -> bool | int:
    lowered = raw.strip().lower()
    if feature == "on":
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise FeatureResolutionError(f"Value '{raw}' is not valid for 'on'. Use on/off.")
    try:
        return int(lowered)
    except ValueError:
        raise FeatureResolutionError(f"Value '{raw}' is not an integer for '{feature}'") from None


@app.command("devices")
def list_devices() -> None:
    """List configured devices and their features."""
    try:
        config = _load_config()
        if not config.devices:
            typer.echo("No devices configured")
            raise typer.Exit(code=1)
        for device in config.devices:
            typer.echo(_describe(device))
    except LissabonError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("scan")
def scan(
    duration: float = typer.Option(10.0, "--duration", help="Seconds to scan"),
) -> None:
    """Scan for Lissabon BLE devices and probe their capabilities."""
    try:
        service = _build_service()
        devices = _run(service, lambda s: s.scan(duration))
        if not devices:
            typer.echo("No Lissabon devices found")
            return
        for device in devices:
            typer.echo(_describe(device))
    except LissabonError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("get")
def get_feature(device: str, feature: str) -> None:
    """Read FEATURE (on, brightness, temperature) from DEVICE (address or name)."""
    try:
        service = _build_service()
        result = _run(service, lambda s: s.get_feature(device, feature))
        value = ("on" if result.value else "off") if feature == "on" else result.value
        typer.echo(f"{result.light.name} {result.feature}={value}")
    except LissabonError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("set")
def set_feature(device: str, feature: str, value: str) -> None:
    """Write VALUE to FEATURE on DEVICE.

    Brightness and temperature are raw device units on BLE; on WiFi brightness
    is 0-100 and temperature is in mireds.
    """
    try:
        parsed = _parse_value(feature, value)
        service = _build_service()
        result = _run(service, lambda s: s.set_feature(device, feature, parsed))
        typer.echo(f"Set {result.feature}={value} on {result.light.address} ({result.light.name})")
    except LissabonError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
