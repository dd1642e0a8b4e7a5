"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

from lissabon.core.model import DeviceDescriptor


class Light(Protocol):
    """Capabilities shared by the BLE and WiFi light variants."""

    @property
    def descriptor(self) -> DeviceDescriptor: ...

    async def set_on(self, value: bool) -> None: ...

    async def get_on(self) -> bool: ...

    async def set_brightness(self, value: int) -> None: ...

    async def get_brightness(self) -> int: ...

    async def set_temperature(self, value: int) -> None: ...

    async def get_temperature(self) -> int:
        """Return the color temperature in mireds."""
