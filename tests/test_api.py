from __future__ import annotations

import asyncio

import pytest

from lissabon import api
from lissabon.api import Bridge, DeviceDescriptor, LissabonConfig

LAMP = DeviceDescriptor(
    address="AA:BB:CC:DD:EE:FF",
    name="Lamp1",
    type="dimmer",
    has_brightness=True,
    has_temperature=False,
    is_bluetooth=True,
)
STRIP = DeviceDescriptor(
    address="192.168.1.40",
    name="Kitchen",
    type="ledstrip",
    has_brightness=True,
    has_temperature=True,
    is_bluetooth=False,
)


def test_public_exports_resolve() -> None:
    for name in api.__all__:
        assert hasattr(api, name), name


def test_unavailable_errors_share_one_status() -> None:
    for error in (api.DeviceNotDiscoveredError, api.CharacteristicNotFoundError, api.CommunicationFailureError):
        assert issubclass(error, api.DeviceUnavailableError)
        assert error("boom").status == api.SERVICE_COMMUNICATION_FAILURE


def test_bridge_start_registers_configured_lights() -> None:
    seen = []
    bridge = Bridge(
        LissabonConfig(devices=(LAMP, STRIP)),
        known_addresses=[STRIP.address],
        on_accessory=lambda descriptor, light, restored: seen.append((descriptor.address, restored)),
    )

    async def scenario():
        await bridge.start()
        try:
            return bridge.lights
        finally:
            await bridge.stop()

    lights = asyncio.run(scenario())

    assert list(lights) == [LAMP.address, STRIP.address]
    assert isinstance(lights[LAMP.address], api.BleLight)
    assert isinstance(lights[STRIP.address], api.WiFiLight)
    assert seen == [(LAMP.address, False), (STRIP.address, True)]
    assert bridge.load_warnings == ()


def test_bridge_rejects_unknown_light() -> None:
    bridge = Bridge(LissabonConfig(devices=(LAMP,)))
    bridge.register_device(LAMP)

    with pytest.raises(api.DeviceSelectionError):
        bridge.resolve("Garage")
    assert bridge.resolve("lamp1").descriptor == LAMP
