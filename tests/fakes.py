"""In-memory stand-ins for the bleak client and scanner."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

from bleak.exc import BleakError

from lissabon.transports.ble_gatt import CHARACTERISTIC_UUIDS, LISSABON_SERVICE_UUID

HANDLES = {"is_on": 11, "brightness": 14, "temperature": 17}


class FakeCharacteristic:
    def __init__(self, uuid: str, handle: int) -> None:
        self.uuid = uuid
        self.handle = handle


class FakeGattService:
    def __init__(self, uuid: str, characteristics: list[FakeCharacteristic]) -> None:
        self.uuid = uuid
        self._characteristics = {c.uuid: c for c in characteristics}

    def get_characteristic(self, uuid: str) -> FakeCharacteristic | None:
        return self._characteristics.get(uuid)


class FakeServiceCollection:
    def __init__(self, services: list[FakeGattService]) -> None:
        self._services = {s.uuid: s for s in services}

    def get_service(self, uuid: str) -> FakeGattService | None:
        return self._services.get(uuid)


class FakePeripheral:
    """Scripted peripheral shared by every client connected to it."""

    def __init__(
        self,
        kinds: tuple[str, ...] = ("is_on", "brightness"),
        values: dict[str, bytes] | None = None,
        *,
        name: str = "",
        delay: float = 0.0,
        calls: list[str] | None = None,
    ) -> None:
        self.kinds = kinds
        self.name = name
        self.values = {HANDLES[k]: v for k, v in (values or {}).items()}
        self.delay = delay
        self.calls = calls if calls is not None else []
        self.fail: set[str] = set()
        self.hang: set[str] = set()
        self.writes: list[tuple[int, bytes, bool]] = []
        self.clients: list[FakeClient] = []
        self.discoveries = 0

    def services(self) -> FakeServiceCollection:
        self.discoveries += 1
        characteristics = [FakeCharacteristic(CHARACTERISTIC_UUIDS[k], HANDLES[k]) for k in self.kinds]
        return FakeServiceCollection([FakeGattService(LISSABON_SERVICE_UUID, characteristics)])

    async def step(self, name: str) -> None:
        label = f"{self.name}{name}"
        self.calls.append(f"{label}:start")
        if name in self.hang:
            await asyncio.sleep(3600)
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.fail:
            self.calls.append(f"{label}:error")
            raise BleakError(f"{name} failed")
        self.calls.append(f"{label}:end")


class FakeClient:
    def __init__(self, peripheral: FakePeripheral, disconnected_callback=None) -> None:
        self._peripheral = peripheral
        self._disconnected_callback = disconnected_callback
        self.is_connected = False

    @property
    def services(self) -> FakeServiceCollection:
        return self._peripheral.services()

    async def connect(self) -> bool:
        await self._peripheral.step("connect")
        self.is_connected = True
        return True

    async def disconnect(self) -> bool:
        await self._peripheral.step("disconnect")
        self.is_connected = False
        return True

    async def read_gatt_char(self, handle: int) -> bytearray:
        await self._peripheral.step("read")
        return bytearray(self._peripheral.values.get(handle, b""))

    async def write_gatt_char(self, handle: int, data: bytes, response: bool = False) -> None:
        await self._peripheral.step("write")
        self._peripheral.values[handle] = bytes(data)
        self._peripheral.writes.append((handle, bytes(data), response))

    def drop(self) -> None:
        self.is_connected = False
        if self._disconnected_callback is not None:
            self._disconnected_callback(self)


def client_factory(peripheral: FakePeripheral):
    def _factory(device, disconnected_callback):
        client = FakeClient(peripheral, disconnected_callback)
        peripheral.clients.append(client)
        return client

    return _factory


class FakeBleakScanner:
    def __init__(self, callback) -> None:
        self.callback = callback
        self.starts = 0
        self.stops = 0
        self.fail_starts = 0

    async def start(self) -> None:
        if self.fail_starts:
            self.fail_starts -= 1
            raise BleakError("Bluetooth adapter is powered off")
        self.starts += 1

    async def stop(self) -> None:
        self.stops += 1

    def advertise(self, address: str, local_name: str | None, service_uuids: list[str]) -> None:
        device = SimpleNamespace(address=address, name=local_name)
        data = SimpleNamespace(local_name=local_name, service_uuids=service_uuids)
        self.callback(device, data)


class ScannerFactory:
    """Records the fake scanner each ``BleScanner.start`` creates."""

    def __init__(self) -> None:
        self.scanner: FakeBleakScanner | None = None
        self.fail_starts = 0

    def __call__(self, callback) -> FakeBleakScanner:
        self.scanner = FakeBleakScanner(callback)
        self.scanner.fail_starts = self.fail_starts
        return self.scanner


def op_sequence(calls: list[str]) -> list[str]:
    return [c.split(":")[0] for c in calls if c.endswith(":start")]


def assert_no_overlap(calls: list[str]) -> None:
    open_step: str | None = None
    for call in calls:
        step, phase = call.rsplit(":", 1)
        if phase == "start":
            assert open_step is None, f"{step} started while {open_step} in flight: {calls}"
            open_step = step
        else:
            assert open_step == step, f"{call} does not close {open_step}: {calls}"
            open_step = None
