"""Config loading and validation for the YAML lissabon config file."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from lissabon.core.errors import ConfigLoadError, ConfigValidationError
from lissabon.core.model import (
    DEVICE_TYPE_LEDSTRIP,
    BleOptions,
    DeviceDescriptor,
    LissabonConfig,
    WiFiOptions,
)

CONFIG_ENV = "LISSABON_CONFIG"
_INT_RE = re.compile(r"^[-+]?(?:0|[1-9][0-9_]*)$")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys.

    Booleans are left as strings so ``on``/``yes`` are never coerced, and
    integers are decimal only so MAC addresses such as ``11:22:33:44:55:66``
    are not read as base-60 numbers.
    """


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag not in ("tag:yaml.org,2002:bool", "tag:yaml.org,2002:int")
    ]

UniqueKeyLoader.add_implicit_resolver("tag:yaml.org,2002:int", _INT_RE, list("-+0123456789"))


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedConfig:
    config: LissabonConfig
    warnings: tuple[str, ...]
    source: Path | None = None


def _load_schema_validator() -> Any:
    schema_text = resources.files("lissabon.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV)
    if override:
        return Path(override)
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "lissabon/config.yaml"


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ConfigValidationError(f"{context} must be boolean true/false")


def _build_device(doc: dict[str, Any], index: int) -> DeviceDescriptor:
    context = f"options.devices[{index}]"
    address = doc["address"].strip()
    device_type = doc["type"]
    return DeviceDescriptor(
        address=address,
        name=doc.get("name") or address,
        type=device_type,
        has_brightness=_normalize_bool(
            doc.get("has_brightness", True),
            context=f"{context}.has_brightness",
        ),
        has_temperature=_normalize_bool(
            doc.get("has_temperature", device_type == DEVICE_TYPE_LEDSTRIP),
            context=f"{context}.has_temperature",
        ),
        is_bluetooth=_normalize_bool(
            doc.get("is_bluetooth", False),
            context=f"{context}.is_bluetooth",
        ),
    )


def _build_config(doc: dict[str, Any], source: Path) -> tuple[LissabonConfig, list[str]]:
    if not doc.get("options"):
        raise ConfigValidationError(f"No configuration options found in {source}")

    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    warnings: list[str] = []
    options = doc["options"]
    devices: dict[str, DeviceDescriptor] = {}
    for index, device_doc in enumerate(options.get("devices", [])):
        device = _build_device(device_doc, index)
        if device.address in devices:
            warnings.append(f"Duplicate device address '{device.address}' ignored")
            continue
        devices[device.address] = device
    if not devices:
        warnings.append("No devices configured")

    ble_doc = doc.get("ble", {})
    defaults = BleOptions()
    ble = BleOptions(
        timeout_s=float(ble_doc.get("timeout_s", defaults.timeout_s)),
        max_concurrent_connects=int(ble_doc.get("max_concurrent_connects", defaults.max_concurrent_connects)),
        resume_scan_after_connect=_normalize_bool(
            ble_doc.get("resume_scan_after_connect", defaults.resume_scan_after_connect),
            context="ble.resume_scan_after_connect",
        ),
        write_with_response=_normalize_bool(
            ble_doc.get("write_with_response", defaults.write_with_response),
            context="ble.write_with_response",
        ),
        scan_timeout_s=float(ble_doc.get("scan_timeout_s", defaults.scan_timeout_s)),
    )
    wifi = WiFiOptions(timeout_s=float(doc.get("wifi", {}).get("timeout_s", WiFiOptions().timeout_s)))

    config = LissabonConfig(
        discover_wifi=_normalize_bool(options.get("discover_wifi", False), context="options.discover_wifi"),
        discover_ble=_normalize_bool(options.get("discover_ble", False), context="options.discover_ble"),
        devices=tuple(devices.values()),
        ble=ble,
        wifi=wifi,
    )
    return config, warnings


def load_config(path: Path | str | None = None) -> LoadedConfig:
    source = Path(path) if path is not None else default_config_path()
    if not source.exists():
        if path is not None:
            raise ConfigLoadError(f"Config file {source} does not exist")
        warning = f"No config file at {source}; using defaults"
        LOGGER.warning(warning)
        return LoadedConfig(config=LissabonConfig(), warnings=(warning,))

    config, warnings = _build_config(_read_yaml(source), source)
    for warning in warnings:
        LOGGER.warning(warning)
    return LoadedConfig(config=config, warnings=tuple(warnings), source=source)
