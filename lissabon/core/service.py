"""Service layer used by the CLI, the public API, and bridge frontends."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import Any

import httpx
from bleak import BleakScanner

from lissabon.core.config_loader import load_config
from lissabon.core.errors import (
    DeviceNotDiscoveredError,
    DeviceSelectionError,
    FeatureResolutionError,
)
from lissabon.core.executor import BleLight, CommandExecutor
from lissabon.core.model import (
    CharacteristicSet,
    DeviceDescriptor,
    FeatureResult,
    LissabonConfig,
)
from lissabon.transports.base import Light
from lissabon.transports.ble_gatt import ClientFactory
from lissabon.transports.ble_scanner import BleScanner, Discovery
from lissabon.transports.wifi_http import WiFiLight

FEATURES = ("on", "brightness", "temperature")
LOGGER = logging.getLogger(__name__)

AccessoryCallback = Callable[[DeviceDescriptor, Light, bool], None]


class LissabonService:
    """Turns configured and discovered devices into lights, once per address."""

    def __init__(
        self,
        config: LissabonConfig | None = None,
        *,
        executor: CommandExecutor | None = None,
        scanner_factory: Callable[[Callable[[Any, Any], None]], Any] | None = None,
        http_client: httpx.AsyncClient | None = None,
        client_factory: ClientFactory | None = None,
        known_addresses: Iterable[str] = (),
        on_accessory: AccessoryCallback | None = None,
    ) -> None:
        if config is None:
            loaded = load_config()
            config = loaded.config
            self.load_warnings = loaded.warnings
        else:
            self.load_warnings = ()
        self.config = config
        self.executor = executor or CommandExecutor(options=config.ble, client_factory=client_factory)
        self._client_factory = client_factory
        self._scanner_factory = scanner_factory
        self._scanner: BleScanner | None = None
        self._http_client = http_client
        self._known = set(known_addresses)
        self._on_accessory = on_accessory
        self.lights: dict[str, Light] = {}

    def register_devices(self) -> list[Light]:
        if not self.config.devices:
            LOGGER.warning("No devices configured")
            return []
        return [self.register_device(device) for device in self.config.devices]

    def register_device(
        self,
        descriptor: DeviceDescriptor,
        device: Any | None = None,
        characteristics: CharacteristicSet | None = None,
    ) -> Light:
        existing = self.lights.get(descriptor.address)
        if existing is not None:
            if descriptor.is_bluetooth and device is not None:
                self.executor.register(descriptor, device, characteristics)
            return existing

        if descriptor.is_bluetooth:
            self.executor.register(descriptor, device, characteristics)
            light: Light = self.executor.light(descriptor.address)
        else:
            light = WiFiLight(descriptor, self._get_http_client(), timeout_s=self.config.wifi.timeout_s)
        self.lights[descriptor.address] = light

        restored = descriptor.address in self._known
        if restored:
            LOGGER.info("Restoring existing accessory from cache: %s", descriptor.name)
        else:
            LOGGER.info("Adding new accessory: %s", descriptor)
            self._known.add(descriptor.address)
        if self._on_accessory is not None:
            self._on_accessory(descriptor, light, restored)
        return light

    async def start(self) -> None:
        self.register_devices()
        if self.config.discover_wifi:
            LOGGER.warning("WiFi (mDNS) discovery is not supported; register WiFi devices in the config")
        if self.config.discover_ble:
            await self._get_scanner().start()

    async def stop(self) -> None:
        if self._scanner is not None:
            await self._scanner.stop()
        await self.executor.close()
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def scan(self, duration_s: float) -> list[DeviceDescriptor]:
        scanner = self._get_scanner()
        await scanner.start()
        try:
            await asyncio.sleep(duration_s)
        finally:
            await scanner.stop()

        found: dict[str, DeviceDescriptor] = {}
        while not scanner.discoveries.empty():
            discovery = scanner.discoveries.get_nowait()
            found.setdefault(discovery.descriptor.address, discovery.descriptor)
        return list(found.values())

    async def associate(self, address: str) -> None:
        """Find the peripheral for a configured BLE address and attach it."""
        device = await BleakScanner.find_device_by_address(address, timeout=self.config.ble.scan_timeout_s)
        if device is None:
            raise DeviceNotDiscoveredError(f"BLE peripheral {address} not found while scanning")
        self.executor.register(self.executor.descriptor(address), device)

    def resolve(self, hint: str) -> Light:
        if hint in self.lights:
            return self.lights[hint]
        lowered = hint.lower()
        matches = [
            light
            for address, light in self.lights.items()
            if address.lower() == lowered or lowered in light.descriptor.name.lower()
        ]
        if not matches:
            raise DeviceSelectionError(f"No light found matching '{hint}'")
        if len(matches) > 1:
            desc = ", ".join(f"{m.descriptor.address} ({m.descriptor.name})" for m in matches)
            raise DeviceSelectionError(f"Multiple lights match '{hint}': {desc}. Use the address.")
        return matches[0]

    async def get_feature(self, hint: str, feature: str) -> FeatureResult:
        light = await self._prepare(hint, feature)
        if feature == "on":
            value: bool | int = await light.get_on()
        elif feature == "brightness":
            value = await light.get_brightness()
        else:
            value = await light.get_temperature()
        return FeatureResult(light=light.descriptor, feature=feature, value=value)

    async def set_feature(self, hint: str, feature: str, value: bool | int) -> FeatureResult:
        light = await self._prepare(hint, feature)
        if feature == "on":
            await light.set_on(bool(value))
        elif feature == "brightness":
            await light.set_brightness(int(value))
        else:
            await light.set_temperature(int(value))
        return FeatureResult(light=light.descriptor, feature=feature, value=value)

    async def _prepare(self, hint: str, feature: str) -> Light:
        if feature not in FEATURES:
            raise FeatureResolutionError(
                f"Unknown feature '{feature}'. Available: {', '.join(FEATURES)}"
            )
        light = self.resolve(hint)
        descriptor = light.descriptor
        if feature == "brightness" and not descriptor.has_brightness:
            raise FeatureResolutionError(f"Light '{descriptor.name}' has no brightness control")
        if feature == "temperature" and not descriptor.has_temperature:
            raise FeatureResolutionError(f"Light '{descriptor.name}' has no color temperature control")
        if isinstance(light, BleLight) and light.session.device is None:
            await self.associate(descriptor.address)
        return light

    def _on_discovered(self, discovery: Discovery) -> None:
        self.register_device(discovery.descriptor, discovery.device, discovery.characteristics)

    def _get_scanner(self) -> BleScanner:
        if self._scanner is None:
            self._scanner = BleScanner(
                self.executor.radio,
                timeout_s=self.config.ble.timeout_s,
                scan_timeout_s=self.config.ble.scan_timeout_s,
                on_discovered=self._on_discovered,
                client_factory=self._client_factory,
                scanner_factory=self._scanner_factory,
                refresh=self.executor.refresh,
            )
        return self._scanner

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient()
        return self._http_client
