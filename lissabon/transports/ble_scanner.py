"""BLE advertisement scanning and capability probing for Lissabon lights."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from bleak import BleakScanner
from bleak.exc import BleakError

from lissabon.core.errors import CommunicationFailureError, DeviceUnavailableError
from lissabon.core.model import CharacteristicSet, DeviceDescriptor
from lissabon.transports.ble_gatt import (
    LISSABON_SERVICE_UUID,
    ClientFactory,
    DeviceSession,
    normalize_uuid,
)
from lissabon.transports.radio import Radio

_MAC_RE = re.compile(r"^[0-9A-F]{2}(?::[0-9A-F]{2}){5}$", re.IGNORECASE)
_POWER_ON_POLL_S = 1.0
LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Advertisement:
    """One received advertisement, reduced to what the probe needs."""

    address: str
    identifier: str
    local_name: str
    service_uuids: tuple[str, ...]
    device: Any = None


@dataclass(frozen=True)
class Discovery:
    descriptor: DeviceDescriptor
    device: Any
    characteristics: CharacteristicSet


def advertisement_from_bleak(device: Any, advertisement_data: Any) -> Advertisement:
    """Build an ``Advertisement`` from bleak's callback arguments.

    On macOS bleak reports a CoreBluetooth UUID instead of a hardware address;
    that value is kept as the session-local identifier and the link address is
    left empty.
    """
    reported = device.address or ""
    address = reported if _MAC_RE.match(reported) else ""
    return Advertisement(
        address=address,
        identifier=reported,
        local_name=advertisement_data.local_name or "",
        service_uuids=tuple(advertisement_data.service_uuids or ()),
        device=device,
    )


def matches_service(service_uuids: tuple[str, ...] | list[str] | None) -> bool:
    if not service_uuids:
        return False
    target = normalize_uuid(LISSABON_SERVICE_UUID)
    return any(normalize_uuid(uuid) == target for uuid in service_uuids)


def identity_address(advertisement: Advertisement) -> str:
    return advertisement.address or advertisement.identifier


def descriptor_from_probe(
    advertisement: Advertisement,
    characteristics: CharacteristicSet,
) -> DeviceDescriptor | None:
    if characteristics.is_on is None:
        return None
    address = identity_address(advertisement)
    return DeviceDescriptor(
        address=address,
        name=advertisement.local_name or address,
        type=characteristics.device_type,
        has_brightness=characteristics.brightness is not None,
        has_temperature=characteristics.temperature is not None,
        is_bluetooth=True,
    )


class BleScanner:
    """Scans for Lissabon advertisements and probes each one for capabilities.

    Every accepted advertisement is probed and reported, including repeats of
    the same address; consumers must register idempotently. An address with an
    advertisement still waiting in the queue is not queued twice.

    ``refresh`` lets the owner of long-lived sessions answer the probe for
    addresses it already manages, so a probe never opens a second link to a
    registered peripheral. It returns ``None`` for unknown addresses.
    """

    def __init__(
        self,
        radio: Radio | None = None,
        *,
        timeout_s: float = 10.0,
        scan_timeout_s: float = 10.0,
        on_discovered: Callable[[Discovery], None] | None = None,
        client_factory: ClientFactory | None = None,
        scanner_factory: Callable[[Callable[[Any, Any], None]], Any] | None = None,
        refresh: Callable[[str, Any], Awaitable[CharacteristicSet | None]] | None = None,
    ) -> None:
        self._radio = radio or Radio()
        self._timeout_s = timeout_s
        self._scan_timeout_s = scan_timeout_s
        self._on_discovered = on_discovered
        self._client_factory = client_factory
        self._scanner_factory = scanner_factory or _bleak_scanner
        self._refresh = refresh
        self._scanner: Any | None = None
        self._pending: asyncio.Queue[Advertisement] = asyncio.Queue()
        self._queued: set[str] = set()
        self.discoveries: asyncio.Queue[Discovery] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._active = False
        self._scanning = False

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    async def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._radio.attach_scanner(self)
        self._scanner = self._scanner_factory(self._on_advertisement)
        self._worker = asyncio.create_task(self._probe_loop())
        try:
            await self._start_when_powered_on()
        except CommunicationFailureError:
            await self.stop()
            raise
        LOGGER.info("BLE scan started for service %s", LISSABON_SERVICE_UUID)

    async def stop(self) -> None:
        self._active = False
        if self._scanning and self._scanner is not None:
            self._scanning = False
            await self._scanner.stop()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
        self._radio.attach_scanner(None)
        LOGGER.info("BLE scan stopped")

    async def pause(self) -> None:
        if self._scanning and self._scanner is not None:
            self._scanning = False
            await self._scanner.stop()

    async def resume(self) -> None:
        if self._active and not self._scanning and self._scanner is not None:
            await self._scanner.start()
            self._scanning = True

    async def probe(self, advertisement: Advertisement) -> Discovery | None:
        address = identity_address(advertisement)
        LOGGER.info("Lissabon peripheral discovered: %s name %r", address, advertisement.local_name)
        try:
            characteristics = None
            if self._refresh is not None:
                characteristics = await self._refresh(address, advertisement.device)
            if characteristics is None:
                session = DeviceSession(
                    address,
                    advertisement.device,
                    radio=self._radio,
                    timeout_s=self._timeout_s,
                    client_factory=self._client_factory,
                )
                characteristics = await session.discover()
        except DeviceUnavailableError as exc:
            LOGGER.error("Characteristic probe failed for %s: %s", address, exc)
            return None

        descriptor = descriptor_from_probe(advertisement, characteristics)
        if descriptor is None:
            LOGGER.warning("Lissabon BLE device %s without is_on characteristic ignored", address)
            return None
        return Discovery(descriptor=descriptor, device=advertisement.device, characteristics=characteristics)

    def _on_advertisement(self, device: Any, advertisement_data: Any) -> None:
        if not matches_service(advertisement_data.service_uuids):
            return
        advertisement = advertisement_from_bleak(device, advertisement_data)
        key = identity_address(advertisement)
        if key in self._queued:
            return
        self._queued.add(key)
        self._pending.put_nowait(advertisement)

    async def _probe_loop(self) -> None:
        while True:
            advertisement = await self._pending.get()
            address = identity_address(advertisement)
            self._queued.discard(address)
            try:
                discovery = await self.probe(advertisement)
            except Exception:
                LOGGER.exception("Probe of %s failed", address)
                continue
            if discovery is None:
                continue
            self.discoveries.put_nowait(discovery)
            if self._on_discovered is not None:
                try:
                    self._on_discovered(discovery)
                except Exception:
                    LOGGER.exception("Registering %s failed", discovery.descriptor.address)

    async def _start_when_powered_on(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._scan_timeout_s
        while True:
            try:
                await self._scanner.start()
            except BleakError as exc:
                if loop.time() >= deadline:
                    raise CommunicationFailureError(f"Bluetooth adapter not available: {exc}") from exc
                LOGGER.info("Waiting for Bluetooth adapter to power on: %s", exc)
                await asyncio.sleep(_POWER_ON_POLL_S)
                continue
            self._scanning = True
            return


def _bleak_scanner(callback: Callable[[Any, Any], None]) -> BleakScanner:
    return BleakScanner(detection_callback=callback, service_uuids=[LISSABON_SERVICE_UUID])
