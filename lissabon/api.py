"""Stable public API for building bridges and tooling on top of lissabon.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import Iterable

from lissabon.core.config_loader import LoadedConfig, load_config
from lissabon.core.errors import (
    SERVICE_COMMUNICATION_FAILURE,
    CharacteristicNotFoundError,
    CommunicationFailureError,
    ConfigLoadError,
    ConfigValidationError,
    DeviceNotDiscoveredError,
    DeviceSelectionError,
    DeviceUnavailableError,
    FeatureResolutionError,
    LissabonError,
)
from lissabon.core.executor import BleLight, CommandExecutor
from lissabon.core.model import (
    BleOptions,
    CharacteristicSet,
    ConnectionState,
    DeviceDescriptor,
    FeatureResult,
    LissabonConfig,
    WiFiOptions,
)
from lissabon.core.service import AccessoryCallback, LissabonService
from lissabon.transports.base import Light
from lissabon.transports.ble_gatt import DeviceSession
from lissabon.transports.ble_scanner import BleScanner, Discovery
from lissabon.transports.wifi_http import WiFiLight

__all__ = [
    "SERVICE_COMMUNICATION_FAILURE",
    "LissabonError",
    "ConfigLoadError",
    "ConfigValidationError",
    "DeviceSelectionError",
    "FeatureResolutionError",
    "DeviceUnavailableError",
    "DeviceNotDiscoveredError",
    "CharacteristicNotFoundError",
    "CommunicationFailureError",
    "BleOptions",
    "CharacteristicSet",
    "ConnectionState",
    "DeviceDescriptor",
    "FeatureResult",
    "LissabonConfig",
    "LoadedConfig",
    "WiFiOptions",
    "Light",
    "BleLight",
    "WiFiLight",
    "DeviceSession",
    "BleScanner",
    "Discovery",
    "CommandExecutor",
    "load_config",
    "Bridge",
]


class Bridge:
    """Public entry point for a home-automation bridge.

    A ``Bridge`` owns the registration path: configured devices and BLE scan
    discoveries become ``Light`` objects exactly once per address, and each
    new or restored light is reported through ``on_accessory``. Every light
    operation either succeeds or raises a ``DeviceUnavailableError`` whose
    ``status`` is ``SERVICE_COMMUNICATION_FAILURE``.
    """

    def __init__(
        self,
        config: LissabonConfig | None = None,
        *,
        known_addresses: Iterable[str] = (),
        on_accessory: AccessoryCallback | None = None,
    ) -> None:
        self._service = LissabonService(
            config,
            known_addresses=known_addresses,
            on_accessory=on_accessory,
        )

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def lights(self) -> dict[str, Light]:
        return dict(self._service.lights)

    async def start(self) -> None:
        await self._service.start()

    async def stop(self) -> None:
        await self._service.stop()

    def register_device(self, descriptor: DeviceDescriptor) -> Light:
        return self._service.register_device(descriptor)

    async def scan(self, duration_s: float) -> list[DeviceDescriptor]:
        return await self._service.scan(duration_s)

    def resolve(self, hint: str) -> Light:
        return self._service.resolve(hint)

    async def get_feature(self, hint: str, feature: str) -> FeatureResult:
        return await self._service.get_feature(hint, feature)

    async def set_feature(self, hint: str, feature: str, value: bool | int) -> FeatureResult:
        return await self._service.set_feature(hint, feature, value)
