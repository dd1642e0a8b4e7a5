"""WiFi/HTTP light implementation using httpx."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from lissabon.core.errors import CommunicationFailureError
from lissabon.core.model import DeviceDescriptor

MIRED_SCALE = 1_000_000.0
LOGGER = logging.getLogger(__name__)


class WiFiLight:
    """Stateless request/response client for one Lissabon HTTP device.

    The device reports ``level`` as a 0-1 fraction and ``temperature`` in
    kelvin; the light interface uses 0-100 brightness and mireds.
    """

    def __init__(
        self,
        descriptor: DeviceDescriptor,
        client: httpx.AsyncClient,
        *,
        timeout_s: float = 5.0,
    ) -> None:
        self.descriptor = descriptor
        self._client = client
        self._timeout_s = timeout_s

    @property
    def url(self) -> str:
        return f"http://{self.descriptor.address}/api/{self.descriptor.type}"

    async def set_on(self, value: bool) -> None:
        LOGGER.info("Set on -> %s to %s", value, self.descriptor.address)
        await self._put({"isOn": bool(value)})

    async def get_on(self) -> bool:
        is_on = bool(self._field(await self._get(), "isOn"))
        LOGGER.info("Get on -> %s from %s", is_on, self.descriptor.address)
        return is_on

    async def set_brightness(self, value: int) -> None:
        LOGGER.info("Set brightness -> %s to %s", value, self.descriptor.address)
        await self._put({"level": value / 100.0})

    async def get_brightness(self) -> int:
        level = self._field(await self._get(), "level")
        try:
            brightness = round(float(level) * 100)
        except (TypeError, ValueError) as exc:
            raise CommunicationFailureError(f"Invalid level {level!r} from {self.descriptor.address}") from exc
        LOGGER.info("Get brightness -> %s from %s", brightness, self.descriptor.address)
        return brightness

    async def set_temperature(self, value: int) -> None:
        LOGGER.info("Set temperature -> %s to %s", value, self.descriptor.address)
        if not value:
            raise ValueError("Color temperature must be a positive mired value")
        await self._put({"temperature": MIRED_SCALE / value})

    async def get_temperature(self) -> int:
        kelvin = self._field(await self._get(), "temperature")
        try:
            mired = round(MIRED_SCALE / float(kelvin))
        except (TypeError, ValueError, ZeroDivisionError) as exc:
            raise CommunicationFailureError(
                f"Invalid temperature {kelvin!r} from {self.descriptor.address}"
            ) from exc
        LOGGER.info("Get temperature -> %s from %s", mired, self.descriptor.address)
        return mired

    async def _get(self) -> dict[str, Any]:
        try:
            response = await self._client.get(self.url, timeout=self._timeout_s)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.debug("HTTP GET %s failed: %s", self.url, exc)
            raise CommunicationFailureError(f"HTTP GET failed for {self.descriptor.address}: {exc}") from exc
        if not isinstance(data, dict):
            raise CommunicationFailureError(f"Unexpected response from {self.descriptor.address}: {data!r}")
        return data

    async def _put(self, body: dict[str, Any]) -> None:
        try:
            response = await self._client.put(self.url, json=body, timeout=self._timeout_s)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.debug("HTTP PUT %s failed: %s", self.url, exc)
            raise CommunicationFailureError(f"HTTP PUT failed for {self.descriptor.address}: {exc}") from exc

    def _field(self, data: dict[str, Any], name: str) -> Any:
        if name not in data:
            raise CommunicationFailureError(f"Response from {self.descriptor.address} has no '{name}' field")
        return data[name]
