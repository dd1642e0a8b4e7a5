"""Serialized get/set commands for registered BLE lights."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any

from lissabon.core import codec
from lissabon.core.errors import (
    DeviceNotDiscoveredError,
    DeviceUnavailableError,
    FeatureResolutionError,
)
from lissabon.core.model import (
    KIND_BRIGHTNESS,
    KIND_IS_ON,
    KIND_TEMPERATURE,
    BleOptions,
    CharacteristicSet,
    DeviceDescriptor,
)
from lissabon.transports.ble_gatt import ClientFactory, DeviceSession
from lissabon.transports.radio import Radio

LOGGER = logging.getLogger(__name__)

U16_MAX = 0xFFFF


@dataclass
class _Entry:
    descriptor: DeviceDescriptor
    session: DeviceSession
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class CommandExecutor:
    """One ``DeviceSession`` per BLE address, each guarded by its own lock.

    Calls for the same address run strictly one after another. Calls for
    different addresses may overlap; they only meet at the radio's connect
    slot.
    """

    def __init__(
        self,
        radio: Radio | None = None,
        *,
        options: BleOptions | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.options = options or BleOptions()
        self.radio = radio or Radio(
            max_concurrent_connects=self.options.max_concurrent_connects,
            resume_scan_after_connect=self.options.resume_scan_after_connect,
        )
        self._client_factory = client_factory
        self._entries: dict[str, _Entry] = {}

    def register(
        self,
        descriptor: DeviceDescriptor,
        device: Any | None = None,
        characteristics: CharacteristicSet | None = None,
    ) -> bool:
        """Create a session for ``descriptor`` unless its address already has one.

        Returns ``True`` when a new session was created. For a known address a
        non-empty ``device`` is attached to the existing session instead.
        """
        entry = self._entries.get(descriptor.address)
        if entry is not None:
            if device is not None:
                entry.session.attach(device, characteristics)
            return False

        session = DeviceSession(
            descriptor.address,
            device,
            radio=self.radio,
            timeout_s=self.options.timeout_s,
            write_with_response=self.options.write_with_response,
            client_factory=self._client_factory,
        )
        if characteristics is not None:
            session.attach(device, characteristics)
        self._entries[descriptor.address] = _Entry(descriptor=descriptor, session=session)
        LOGGER.debug("Session created for %s (%s)", descriptor.address, descriptor.name)
        return True

    def __contains__(self, address: str) -> bool:
        return address in self._entries

    def addresses(self) -> list[str]:
        return list(self._entries)

    def session(self, address: str) -> DeviceSession:
        return self._entry(address).session

    def descriptor(self, address: str) -> DeviceDescriptor:
        return self._entry(address).descriptor

    def light(self, address: str) -> BleLight:
        self._entry(address)
        return BleLight(self, address)

    async def set_on(self, address: str, value: bool) -> None:
        await self._write(address, KIND_IS_ON, value)

    async def get_on(self, address: str) -> bool:
        return bool(await self._read(address, KIND_IS_ON))

    async def set_brightness(self, address: str, value: int) -> None:
        await self._write(address, KIND_BRIGHTNESS, value)

    async def get_brightness(self, address: str) -> int:
        return int(await self._read(address, KIND_BRIGHTNESS))

    async def set_temperature(self, address: str, value: int) -> None:
        await self._write(address, KIND_TEMPERATURE, value)

    async def get_temperature(self, address: str) -> int:
        return int(await self._read(address, KIND_TEMPERATURE))

    async def refresh(self, address: str, device: Any | None = None) -> CharacteristicSet | None:
        """Characteristics of a registered address, taken under its lock.

        Returns ``None`` when ``address`` has no session. A cached handle set
        is returned without touching the link; otherwise the session connects
        briefly to discover it.
        """
        entry = self._entries.get(address)
        if entry is None:
            return None
        async with entry.lock:
            if device is not None:
                entry.session.attach(device)
            cached = entry.session.characteristics
            if cached is not None:
                return replace(cached)
            return await entry.session.discover()

    async def close(self) -> None:
        for entry in self._entries.values():
            async with entry.lock:
                await entry.session.close()

    async def _write(self, address: str, kind: str, value: bool | int) -> None:
        entry = self._entry(address)
        if kind != KIND_IS_ON and not 0 <= int(value) <= U16_MAX:
            raise FeatureResolutionError(f"{kind} value {value} is outside 0-{U16_MAX}")
        payload = codec.encode(kind, value)
        LOGGER.debug("[%s] set %s(%s) payload=%s", entry.descriptor.name, kind, value, payload.hex())
        async with entry.lock:
            try:
                await entry.session.write(kind, payload)
            except DeviceUnavailableError as exc:
                LOGGER.error("[%s] BLE error on set %s: %s (state=%s)", entry.descriptor.name, kind, exc, entry.session.state.value)
                raise

    async def _read(self, address: str, kind: str) -> bool | int:
        entry = self._entry(address)
        async with entry.lock:
            try:
                data = await entry.session.read(kind)
            except DeviceUnavailableError as exc:
                LOGGER.error("[%s] BLE error on get %s: %s (state=%s)", entry.descriptor.name, kind, exc, entry.session.state.value)
                raise
        value = codec.decode(kind, data)
        LOGGER.debug("[%s] get %s -> %s", entry.descriptor.name, kind, value)
        return value

    def _entry(self, address: str) -> _Entry:
        entry = self._entries.get(address)
        if entry is None:
            raise DeviceNotDiscoveredError(f"No BLE session registered for {address}")
        return entry


class BleLight:
    """Light capability interface backed by a ``CommandExecutor`` session."""

    def __init__(self, executor: CommandExecutor, address: str) -> None:
        self._executor = executor
        self.address = address

    @property
    def descriptor(self) -> DeviceDescriptor:
        return self._executor.descriptor(self.address)

    @property
    def session(self) -> DeviceSession:
        return self._executor.session(self.address)

    async def set_on(self, value: bool) -> None:
        await self._executor.set_on(self.address, value)

    async def get_on(self) -> bool:
        return await self._executor.get_on(self.address)

    async def set_brightness(self, value: int) -> None:
        await self._executor.set_brightness(self.address, value)

    async def get_brightness(self) -> int:
        return await self._executor.get_brightness(self.address)

    async def set_temperature(self, value: int) -> None:
        await self._executor.set_temperature(self.address, value)

    async def get_temperature(self) -> int:
        return await self._executor.get_temperature(self.address)
