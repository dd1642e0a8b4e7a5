"""BLE GATT session for one Lissabon peripheral."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from bleak import BleakClient

from lissabon.core.errors import (
    CharacteristicNotFoundError,
    CommunicationFailureError,
    DeviceNotDiscoveredError,
    LissabonError,
)
from lissabon.core.model import (
    CHARACTERISTIC_KINDS,
    KIND_BRIGHTNESS,
    KIND_IS_ON,
    KIND_TEMPERATURE,
    CharacteristicSet,
    ConnectionState,
)
from lissabon.transports.radio import Radio

LISSABON_SERVICE_UUID = "6b2f0001-38bc-4204-a506-1d3546ad3688"
CHARACTERISTIC_UUIDS = {
    KIND_IS_ON: "6b2f0002-38bc-4204-a506-1d3546ad3688",
    KIND_BRIGHTNESS: "6b2f0004-38bc-4204-a506-1d3546ad3688",
    KIND_TEMPERATURE: "6b2f0052-38bc-4204-a506-1d3546ad3688",
}
LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[[Any, Callable[[Any], None]], Any]


def normalize_uuid(value: str) -> str:
    return value.strip().lower().replace("-", "")


def bleak_client_factory(timeout_s: float) -> ClientFactory:
    def _factory(device: Any, disconnected_callback: Callable[[Any], None]) -> BleakClient:
        return BleakClient(device, disconnected_callback=disconnected_callback, timeout=timeout_s)

    return _factory


class DeviceSession:
    """Owns the connection and cached characteristic handles of one peripheral.

    The session does not serialize callers itself; ``CommandExecutor`` holds a
    per-device lock around every call. A connection opened by a call is closed
    by the same call, while one opened with ``open()`` stays up until
    ``close()`` or until the peripheral drops it.
    """

    def __init__(
        self,
        address: str,
        device: Any | None = None,
        *,
        radio: Radio | None = None,
        timeout_s: float = 10.0,
        write_with_response: bool = True,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.address = address
        self._device = device
        self._radio = radio or Radio()
        self._timeout_s = timeout_s
        self._write_with_response = write_with_response
        self._client_factory = client_factory or bleak_client_factory(timeout_s)
        self._client: Any | None = None
        self._characteristics: CharacteristicSet | None = None
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def device(self) -> Any | None:
        return self._device

    @property
    def characteristics(self) -> CharacteristicSet | None:
        return self._characteristics

    def attach(self, device: Any, characteristics: CharacteristicSet | None = None) -> None:
        """Associate a freshly discovered peripheral handle with this session."""
        self._device = device
        if characteristics is not None and self._characteristics is None:
            self._characteristics = replace(characteristics)

    def invalidate(self) -> None:
        self._characteristics = None

    async def ensure_ready(self) -> bool:
        """Connect and discover if needed.

        Returns ``True`` when the connection already existed, in which case the
        caller must leave it open. ``False`` means the caller owns the new
        connection and must release it.
        """
        if self._state is ConnectionState.READY and self._is_connected():
            return True
        if self._device is None:
            raise DeviceNotDiscoveredError(
                f"BLE peripheral {self.address} not discovered yet"
            )

        self._set_state(ConnectionState.CONNECTING)
        try:
            try:
                client = self._client_factory(self._device, self._on_disconnected)
            except Exception as exc:
                raise CommunicationFailureError(
                    f"Could not create BLE client for {self.address}: {exc}"
                ) from exc
            async with self._radio.connection_slot():
                self._client = client
                await self._bounded(client.connect(), "connect")
            if self._characteristics is None:
                self._set_state(ConnectionState.DISCOVERING)
                self._characteristics = self._discover_characteristics(client)
        except (CommunicationFailureError, asyncio.CancelledError):
            await self._fail()
            raise
        except Exception as exc:
            # the radio may fail while pausing the scanner
            await self._fail()
            raise CommunicationFailureError(f"BLE connect failed for {self.address}: {exc}") from exc
        self._set_state(ConnectionState.READY)
        return False

    async def read(self, kind: str) -> bytes:
        data = await self._transaction(kind, "read", lambda client, handle: client.read_gatt_char(handle))
        return bytes(data)

    async def write(self, kind: str, data: bytes) -> None:
        await self._transaction(
            kind,
            "write",
            lambda client, handle: client.write_gatt_char(
                handle,
                data,
                response=self._write_with_response,
            ),
        )

    async def discover(self) -> CharacteristicSet:
        """Return the characteristic set, connecting briefly if necessary."""
        already_connected = await self.ensure_ready()
        found = replace(self._characteristics) if self._characteristics else CharacteristicSet()
        if not already_connected:
            await self._release()
        return found

    async def open(self) -> None:
        """Connect and keep the link up across calls."""
        await self.ensure_ready()

    async def close(self) -> None:
        if self._client is None:
            self._set_state(ConnectionState.DISCONNECTED)
            return
        await self._release()

    async def _transaction(
        self,
        kind: str,
        verb: str,
        operation: Callable[[Any, int], Awaitable[Any]],
    ) -> Any:
        if kind not in CHARACTERISTIC_KINDS:
            raise KeyError(kind)
        already_connected = await self.ensure_ready()

        handle = self._characteristics.get(kind) if self._characteristics else None
        if handle is None:
            LOGGER.error("BLE characteristic %s not found for peripheral %s", kind, self.address)
            await self._fail()
            raise CharacteristicNotFoundError(
                f"Peripheral {self.address} has no {kind} characteristic"
            )

        self._set_state(ConnectionState.BUSY)
        try:
            result = await self._bounded(operation(self._client, handle), f"{verb} {kind}")
        except (CommunicationFailureError, asyncio.CancelledError):
            await self._fail()
            raise

        if already_connected:
            self._set_state(ConnectionState.READY)
        else:
            await self._release()
        return result

    def _discover_characteristics(self, client: Any) -> CharacteristicSet:
        try:
            service = client.services.get_service(LISSABON_SERVICE_UUID)
            found = CharacteristicSet()
            if service is None:
                LOGGER.warning("Peripheral %s does not expose the Lissabon service", self.address)
                return found
            for kind, uuid in CHARACTERISTIC_UUIDS.items():
                characteristic = service.get_characteristic(uuid)
                if characteristic is not None:
                    LOGGER.debug("Peripheral %s characteristic %s -> handle %s", self.address, kind, characteristic.handle)
                    setattr(found, kind, characteristic.handle)
            return found
        except Exception as exc:
            raise CommunicationFailureError(
                f"Characteristic discovery failed for {self.address}: {exc}"
            ) from exc

    async def _bounded(self, awaitable: Awaitable[Any], step: str) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            raise CommunicationFailureError(
                f"BLE {step} timed out after {self._timeout_s}s for {self.address}"
            ) from exc
        except LissabonError:
            raise
        except Exception as exc:
            raise CommunicationFailureError(f"BLE {step} failed for {self.address}: {exc}") from exc

    async def _release(self) -> None:
        client = self._client
        self._client = None
        try:
            if client is not None:
                LOGGER.debug("Disconnecting %s", self.address)
                try:
                    await self._bounded(client.disconnect(), "disconnect")
                except CommunicationFailureError as exc:
                    LOGGER.warning("%s", exc)
                    self.invalidate()
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    async def _fail(self) -> None:
        self._set_state(ConnectionState.ERROR)
        self.invalidate()
        client = self._client
        self._client = None
        try:
            if client is not None:
                try:
                    await self._bounded(client.disconnect(), "disconnect")
                except CommunicationFailureError as exc:
                    LOGGER.error("%s", exc)
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    def _is_connected(self) -> bool:
        return self._client is not None and bool(getattr(self._client, "is_connected", False))

    def _on_disconnected(self, client: Any) -> None:
        if client is not self._client:
            return
        if self._state is ConnectionState.READY:
            LOGGER.info("Peripheral %s disconnected", self.address)
            self._client = None
            self._set_state(ConnectionState.DISCONNECTED)

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self._state:
            LOGGER.debug("%s: %s -> %s", self.address, self._state.value, state.value)
            self._state = state
