"""Core data models used across config, sessions, service, and CLI."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

DEVICE_TYPE_DIMMER = "dimmer"
DEVICE_TYPE_LEDSTRIP = "ledstrip"
DEVICE_TYPES = (DEVICE_TYPE_DIMMER, DEVICE_TYPE_LEDSTRIP)

KIND_IS_ON = "is_on"
KIND_BRIGHTNESS = "brightness"
KIND_TEMPERATURE = "temperature"
CHARACTERISTIC_KINDS = (KIND_IS_ON, KIND_BRIGHTNESS, KIND_TEMPERATURE)


@dataclass(frozen=True)
class DeviceDescriptor:
    address: str
    name: str
    type: str
    has_brightness: bool
    has_temperature: bool
    is_bluetooth: bool


@dataclass
class CharacteristicSet:
    """GATT handles found on one peripheral; ``None`` means not present."""

    is_on: int | None = None
    brightness: int | None = None
    temperature: int | None = None

    def get(self, kind: str) -> int | None:
        if kind not in CHARACTERISTIC_KINDS:
            raise KeyError(kind)
        return getattr(self, kind)

    @property
    def device_type(self) -> str:
        return DEVICE_TYPE_LEDSTRIP if self.temperature is not None else DEVICE_TYPE_DIMMER


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    DISCOVERING = "discovering_characteristics"
    READY = "ready"
    BUSY = "busy"
    ERROR = "error"


@dataclass(frozen=True)
class BleOptions:
    timeout_s: float = 10.0
    max_concurrent_connects: int = 1
    resume_scan_after_connect: bool = True
    write_with_response: bool = True
    scan_timeout_s: float = 10.0


@dataclass(frozen=True)
class WiFiOptions:
    timeout_s: float = 5.0


@dataclass(frozen=True)
class LissabonConfig:
    discover_wifi: bool = False
    discover_ble: bool = False
    devices: tuple[DeviceDescriptor, ...] = ()
    ble: BleOptions = field(default_factory=BleOptions)
    wifi: WiFiOptions = field(default_factory=WiFiOptions)


@dataclass(frozen=True)
class FeatureResult:
    light: DeviceDescriptor
    feature: str
    value: bool | int
