from __future__ import annotations

import asyncio
import logging

import pytest

from fakes import FakePeripheral, assert_no_overlap, client_factory, op_sequence
from lissabon.core.errors import DeviceNotDiscoveredError, FeatureResolutionError
from lissabon.core.executor import BleLight, CommandExecutor
from lissabon.core.model import BleOptions, CharacteristicSet, ConnectionState, DeviceDescriptor

ADDRESS = "AA:BB:CC:DD:EE:FF"


def _descriptor(address: str = ADDRESS, name: str = "Lamp1") -> DeviceDescriptor:
    return DeviceDescriptor(
        address=address,
        name=name,
        type="dimmer",
        has_brightness=True,
        has_temperature=False,
        is_bluetooth=True,
    )


def _executor(peripheral: FakePeripheral, **options) -> CommandExecutor:
    executor = CommandExecutor(options=BleOptions(**options), client_factory=client_factory(peripheral))
    executor.register(_descriptor(), device=object())
    return executor


def test_concurrent_calls_on_one_device_never_interleave() -> None:
    peripheral = FakePeripheral(values={"is_on": b"\x01"}, delay=0.01)
    executor = _executor(peripheral)

    async def scenario() -> list:
        return await asyncio.gather(
            executor.set_brightness(ADDRESS, 300),
            executor.get_on(ADDRESS),
        )

    _, is_on = asyncio.run(scenario())

    assert is_on is True
    assert_no_overlap(peripheral.calls)
    assert op_sequence(peripheral.calls) == [
        "connect",
        "write",
        "disconnect",
        "connect",
        "read",
        "disconnect",
    ]
    assert peripheral.writes == [(14, b"\x2c\x01", True)]


def test_connects_to_different_devices_are_bounded_by_the_radio() -> None:
    calls: list[str] = []
    lamp = FakePeripheral(values={"is_on": b"\x01"}, name="lamp.", delay=0.01, calls=calls)
    strip = FakePeripheral(values={"is_on": b"\x00"}, name="strip.", delay=0.01, calls=calls)
    peripherals = {"lamp": lamp, "strip": strip}

    def factory(device, disconnected_callback):
        return client_factory(peripherals[device])(device, disconnected_callback)

    executor = CommandExecutor(options=BleOptions(max_concurrent_connects=1), client_factory=factory)
    executor.register(_descriptor("AA:00:00:00:00:01", "lamp"), device="lamp")
    executor.register(_descriptor("AA:00:00:00:00:02", "strip"), device="strip")

    async def scenario() -> list:
        return await asyncio.gather(
            executor.get_on("AA:00:00:00:00:01"),
            executor.get_on("AA:00:00:00:00:02"),
        )

    assert asyncio.run(scenario()) == [True, False]

    connects = [c for c in calls if ".connect:" in c]
    assert_no_overlap(connects)


def test_register_is_idempotent() -> None:
    executor = CommandExecutor()
    descriptor = _descriptor()

    assert executor.register(descriptor) is True
    session = executor.session(ADDRESS)
    assert executor.register(descriptor) is False
    assert executor.addresses() == [ADDRESS]
    assert executor.session(ADDRESS) is session
    assert session.device is None

    device = object()
    probed = CharacteristicSet(is_on=11, brightness=14)
    assert executor.register(descriptor, device, probed) is False
    assert executor.session(ADDRESS) is session
    assert session.device is device
    assert session.characteristics == probed


def test_seeded_characteristics_skip_discovery() -> None:
    peripheral = FakePeripheral(values={"is_on": b"\x01"})
    executor = CommandExecutor(client_factory=client_factory(peripheral))
    executor.register(_descriptor(), object(), CharacteristicSet(is_on=11, brightness=14))

    assert asyncio.run(executor.get_on(ADDRESS)) is True
    assert peripheral.discoveries == 0


def test_short_brightness_read_warns_and_decodes(caplog: pytest.LogCaptureFixture) -> None:
    peripheral = FakePeripheral(values={"brightness": b"\x05"})
    executor = _executor(peripheral)

    with caplog.at_level(logging.WARNING, logger="lissabon.core.codec"):
        value = asyncio.run(executor.get_brightness(ADDRESS))

    assert value == 5
    assert "Unexpected length 1" in caplog.text


def test_set_on_writes_single_byte() -> None:
    peripheral = FakePeripheral()
    executor = _executor(peripheral)

    async def scenario() -> None:
        await executor.set_on(ADDRESS, True)
        await executor.set_on(ADDRESS, False)

    asyncio.run(scenario())

    assert peripheral.writes == [(11, b"\x01", True), (11, b"\x00", True)]


def test_temperature_is_sent_unscaled() -> None:
    peripheral = FakePeripheral(kinds=("is_on", "temperature"))
    executor = _executor(peripheral)
    light = executor.light(ADDRESS)

    async def scenario() -> int:
        await light.set_temperature(2700)
        return await light.get_temperature()

    assert asyncio.run(scenario()) == 2700
    assert peripheral.writes == [(17, b"\x8c\x0a", True)]


def test_write_without_response_option() -> None:
    peripheral = FakePeripheral()
    executor = _executor(peripheral, write_with_response=False)

    asyncio.run(executor.set_on(ADDRESS, True))

    assert peripheral.writes == [(11, b"\x01", False)]


def test_unregistered_address_is_not_discovered() -> None:
    executor = CommandExecutor()

    with pytest.raises(DeviceNotDiscoveredError):
        asyncio.run(executor.get_on("11:22:33:44:55:66"))
    with pytest.raises(DeviceNotDiscoveredError):
        executor.light("11:22:33:44:55:66")


def test_light_exposes_descriptor() -> None:
    executor = CommandExecutor()
    executor.register(_descriptor())

    light = executor.light(ADDRESS)

    assert isinstance(light, BleLight)
    assert light.descriptor.name == "Lamp1"


def test_cancelled_call_does_not_leak_the_connection() -> None:
    peripheral = FakePeripheral(values={"is_on": b"\x01"})
    peripheral.hang.add("read")
    executor = _executor(peripheral)

    async def scenario() -> bool:
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(executor.get_on(ADDRESS), timeout=0.05)
        peripheral.hang.clear()
        return await executor.get_on(ADDRESS)

    assert asyncio.run(scenario()) is True
    assert executor.session(ADDRESS).state is ConnectionState.DISCONNECTED
    assert [client.is_connected for client in peripheral.clients] == [False, False]


@pytest.mark.parametrize("value", [-1, 65536])
def test_out_of_range_values_are_rejected(value: int) -> None:
    peripheral = FakePeripheral()
    executor = _executor(peripheral)

    with pytest.raises(FeatureResolutionError, match="outside 0-65535"):
        asyncio.run(executor.set_brightness(ADDRESS, value))
    with pytest.raises(FeatureResolutionError):
        asyncio.run(executor.set_temperature(ADDRESS, value))

    assert peripheral.calls == []


def test_refresh_uses_the_cached_handles() -> None:
    peripheral = FakePeripheral(kinds=("is_on", "temperature"), values={"is_on": b"\x01"})
    executor = _executor(peripheral)

    async def scenario():
        first = await executor.refresh(ADDRESS, object())
        second = await executor.refresh(ADDRESS)
        unknown = await executor.refresh("11:22:33:44:55:66")
        return first, second, unknown

    first, second, unknown = asyncio.run(scenario())

    assert first == second == CharacteristicSet(is_on=11, temperature=17)
    assert unknown is None
    assert peripheral.discoveries == 1
    assert op_sequence(peripheral.calls) == ["connect", "disconnect"]
