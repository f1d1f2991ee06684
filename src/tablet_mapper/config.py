"""Tablet configuration: device metadata plus byte code mappings.

A ``TabletConfig`` is the artifact produced at the end of a mapping
session and the input of the decoder. It round-trips through JSON without
loss and is never mutated; use ``with_changes`` to derive a new one.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

from PySide6.QtCore import QStandardPaths

from tablet_mapper.errors import ConfigFieldMissingError, ConfigParseError, ConfigTypeError
from tablet_mapper.mappings import (
    BitFlagsMapping,
    CodeMapping,
    DeviceByteCodeMappings,
    MappingSpec,
    mappings_from_dict,
    mappings_to_dict,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[str, ...] = (
    "name",
    "manufacturer",
    "model",
    "description",
    "vendorId",
    "productId",
    "deviceInfo",
    "reportId",
    "digitizerUsagePage",
    "capabilities",
    "byteCodeMappings",
)
"""Top-level keys every config must carry, in the order they are checked."""

# -------------------------------------------------------------------------
# Default values
# -------------------------------------------------------------------------

DIGITIZER_USAGE_PAGE: int = 13
PEN_USAGE: int = 2
DEFAULT_PRESSURE_LEVELS: int = 8192
DEFAULT_RESOLUTION_X: int = 16000
DEFAULT_RESOLUTION_Y: int = 9000


@dataclass(frozen=True)
class DeviceInfo:
    vendor_id: int
    product_id: int
    product_string: str
    usage_page: int = DIGITIZER_USAGE_PAGE
    usage: int = PEN_USAGE
    interfaces: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "interfaces", tuple(self.interfaces))


@dataclass(frozen=True)
class Resolution:
    x: int
    y: int


@dataclass(frozen=True)
class Capabilities:
    has_buttons: bool
    button_count: int
    has_pressure: bool
    pressure_levels: int
    has_tilt: bool
    resolution: Resolution


@dataclass(frozen=True)
class TabletConfig:
    """Full description of how to read one tablet."""

    name: str
    manufacturer: str
    model: str
    description: str
    vendor_id: str
    product_id: str
    device_info: DeviceInfo
    report_id: int
    digitizer_usage_page: int
    capabilities: Capabilities
    byte_code_mappings: DeviceByteCodeMappings = field(default_factory=dict)
    button_interface_report_id: Optional[int] = None
    stylus_mode_status_byte: Optional[int] = None
    excluded_usage_pages: Optional[tuple[int, ...]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "byte_code_mappings", dict(self.byte_code_mappings))
        if self.excluded_usage_pages is not None:
            object.__setattr__(self, "excluded_usage_pages", tuple(self.excluded_usage_pages))

    def with_changes(self, **changes: Any) -> "TabletConfig":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "manufacturer": self.manufacturer,
            "model": self.model,
            "description": self.description,
            "vendorId": self.vendor_id,
            "productId": self.product_id,
            "deviceInfo": {
                "vendor_id": self.device_info.vendor_id,
                "product_id": self.device_info.product_id,
                "product_string": self.device_info.product_string,
                "usage_page": self.device_info.usage_page,
                "usage": self.device_info.usage,
                "interfaces": list(self.device_info.interfaces),
            },
            "reportId": self.report_id,
            "digitizerUsagePage": self.digitizer_usage_page,
        }
        if self.button_interface_report_id is not None:
            data["buttonInterfaceReportId"] = self.button_interface_report_id
        if self.stylus_mode_status_byte is not None:
            data["stylusModeStatusByte"] = self.stylus_mode_status_byte
        if self.excluded_usage_pages is not None:
            data["excludedUsagePages"] = list(self.excluded_usage_pages)
        caps = self.capabilities
        data["capabilities"] = {
            "hasButtons": caps.has_buttons,
            "buttonCount": caps.button_count,
            "hasPressure": caps.has_pressure,
            "pressureLevels": caps.pressure_levels,
            "hasTilt": caps.has_tilt,
            "resolution": {"x": caps.resolution.x, "y": caps.resolution.y},
        }
        data["byteCodeMappings"] = mappings_to_dict(self.byte_code_mappings)
        return data

    def to_json(self, pretty: bool = False) -> str:
        if pretty:
            return json.dumps(self.to_dict(), indent=2)
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Any) -> "TabletConfig":
        if not isinstance(data, dict):
            raise ConfigTypeError("Invalid config: must be an object")
        for name in REQUIRED_FIELDS:
            if name not in data:
                raise ConfigFieldMissingError(name)

        return cls(
            name=_string(data, "name"),
            manufacturer=_string(data, "manufacturer"),
            model=_string(data, "model"),
            description=_string(data, "description"),
            vendor_id=_string(data, "vendorId"),
            product_id=_string(data, "productId"),
            device_info=_device_info(data["deviceInfo"]),
            report_id=_integer(data["reportId"], "reportId"),
            digitizer_usage_page=_integer(data["digitizerUsagePage"], "digitizerUsagePage"),
            capabilities=_capabilities(data["capabilities"]),
            byte_code_mappings=mappings_from_dict(data["byteCodeMappings"]),
            button_interface_report_id=_optional_integer(data, "buttonInterfaceReportId"),
            stylus_mode_status_byte=_optional_integer(data, "stylusModeStatusByte"),
            excluded_usage_pages=_optional_int_tuple(data, "excludedUsagePages"),
        )

    @classmethod
    def from_json(cls, text: str) -> "TabletConfig":
        """Parse and validate a serialized config.

        Raises:
            ConfigParseError: If ``text`` is not valid JSON.
            ConfigTypeError: If the JSON value is not an object or a field has
                the wrong type.
            ConfigFieldMissingError: Naming the first missing required field.
        """
        try:
            parsed = json.loads(text, parse_constant=_reject_constant)
        except json.JSONDecodeError as exc:
            raise ConfigParseError(f"Invalid JSON: {exc}") from exc
        return cls.from_dict(parsed)


# -------------------------------------------------------------------------
# Field parsing
# -------------------------------------------------------------------------

def _reject_constant(name: str) -> Any:
    raise ConfigParseError(f"Invalid JSON: {name} is not a number")


def _type_error(path: str, expected: str) -> ConfigTypeError:
    return ConfigTypeError(f"Invalid config: '{path}' must be {expected}")


def _string(data: Mapping[str, Any], key: str) -> str:
    value = data[key]
    if not isinstance(value, str):
        raise _type_error(key, "a string")
    return value


def _integer(value: Any, path: str) -> int:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or int(value) != value
    ):
        raise _type_error(path, "an integer")
    return int(value)


def _boolean(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise _type_error(path, "a boolean")
    return value


def _object(value: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(value, dict):
        raise _type_error(path, "an object")
    return value


def _field(data: Mapping[str, Any], key: str, path: str) -> Any:
    if key not in data:
        raise ConfigFieldMissingError(f"{path}.{key}")
    return data[key]


def _optional_integer(data: Mapping[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    return None if value is None else _integer(value, key)


def _optional_int_tuple(data: Mapping[str, Any], key: str) -> Optional[tuple[int, ...]]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise _type_error(key, "a list")
    return tuple(_integer(v, key) for v in value)


def _device_info(value: Any) -> DeviceInfo:
    data = _object(value, "deviceInfo")
    interfaces = data.get("interfaces", [])
    if not isinstance(interfaces, list):
        raise _type_error("deviceInfo.interfaces", "a list")
    product_string = _field(data, "product_string", "deviceInfo")
    if not isinstance(product_string, str):
        raise _type_error("deviceInfo.product_string", "a string")
    return DeviceInfo(
        vendor_id=_integer(_field(data, "vendor_id", "deviceInfo"), "deviceInfo.vendor_id"),
        product_id=_integer(_field(data, "product_id", "deviceInfo"), "deviceInfo.product_id"),
        product_string=product_string,
        usage_page=_integer(data.get("usage_page", DIGITIZER_USAGE_PAGE), "deviceInfo.usage_page"),
        usage=_integer(data.get("usage", PEN_USAGE), "deviceInfo.usage"),
        interfaces=tuple(_integer(v, "deviceInfo.interfaces") for v in interfaces),
    )


def _capabilities(value: Any) -> Capabilities:
    path = "capabilities"
    data = _object(value, path)
    resolution = _object(_field(data, "resolution", path), f"{path}.resolution")
    return Capabilities(
        has_buttons=_boolean(_field(data, "hasButtons", path), f"{path}.hasButtons"),
        button_count=_integer(_field(data, "buttonCount", path), f"{path}.buttonCount"),
        has_pressure=_boolean(_field(data, "hasPressure", path), f"{path}.hasPressure"),
        pressure_levels=_integer(_field(data, "pressureLevels", path), f"{path}.pressureLevels"),
        has_tilt=_boolean(_field(data, "hasTilt", path), f"{path}.hasTilt"),
        resolution=Resolution(
            x=_integer(_field(resolution, "x", f"{path}.resolution"), f"{path}.resolution.x"),
            y=_integer(_field(resolution, "y", f"{path}.resolution"), f"{path}.resolution.y"),
        ),
    )


# -------------------------------------------------------------------------
# Building a config from classifier output
# -------------------------------------------------------------------------

@dataclass(frozen=True)
class OperatorMetadata:
    """Details the operator types in at the end of a mapping session."""

    name: str
    manufacturer: str
    model: str
    description: str = ""
    button_count: int = 0


@dataclass(frozen=True)
class HidCollection:
    usage_page: int
    usage: int


@dataclass(frozen=True)
class DeviceMetadata:
    """What the HID layer reported about the connected device."""

    vendor_id: int = 0
    product_id: int = 0
    product_name: str = ""
    collections: tuple[HidCollection, ...] = ()
    interfaces: tuple[int, ...] = ()
    report_id: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "collections", tuple(self.collections))
        object.__setattr__(self, "interfaces", tuple(self.interfaces))


def _max_of(spec: Optional[MappingSpec]) -> Optional[int]:
    return getattr(spec, "max", None) or None


def infer_capabilities(mappings: Mapping[str, MappingSpec]) -> Capabilities:
    """Derive capability flags from the channels that were mapped."""
    pressure_levels = DEFAULT_PRESSURE_LEVELS
    pressure_max = _max_of(mappings.get("pressure"))
    if pressure_max:
        pressure_levels = 2 ** round(math.log2(pressure_max + 1))

    buttons = mappings.get("tabletButtons")
    button_count = buttons.button_count if isinstance(buttons, BitFlagsMapping) else 0
    return Capabilities(
        has_buttons=buttons is not None,
        button_count=button_count,
        has_pressure="pressure" in mappings,
        pressure_levels=pressure_levels,
        has_tilt="tiltX" in mappings or "tiltY" in mappings,
        resolution=Resolution(
            x=_max_of(mappings.get("x")) or DEFAULT_RESOLUTION_X,
            y=_max_of(mappings.get("y")) or DEFAULT_RESOLUTION_Y,
        ),
    )


def detect_digitizer_usage_page(collections: tuple[HidCollection, ...]) -> int:
    """Prefer the pen collection; fall back to the first collection."""
    if not collections:
        return DIGITIZER_USAGE_PAGE
    for collection in collections:
        if collection.usage_page == DIGITIZER_USAGE_PAGE and collection.usage == PEN_USAGE:
            return collection.usage_page
    return collections[0].usage_page


def detect_stylus_mode_status_byte(mappings: Mapping[str, MappingSpec]) -> Optional[int]:
    """Return the status code for plain hover, if one was mapped."""
    status = mappings.get("status")
    if not isinstance(status, CodeMapping):
        return None
    for code, value in sorted(status.values.items()):
        if (
            value.get("state") == "hover"
            and not value.get("primaryButtonPressed")
            and not value.get("secondaryButtonPressed")
        ):
            return code
    return None


def detect_excluded_usage_pages(interfaces: tuple[int, ...], digitizer_usage_page: int) -> tuple[int, ...]:
    return tuple(page for page in interfaces if page != digitizer_usage_page)


def build_config(
    mappings: Mapping[str, MappingSpec],
    metadata: OperatorMetadata,
    device: Optional[DeviceMetadata] = None,
) -> TabletConfig:
    """Merge classifier output, inferred capabilities and operator input."""
    device = device or DeviceMetadata()
    capabilities = infer_capabilities(mappings)
    if metadata.button_count > 0:
        capabilities = replace(capabilities, has_buttons=True, button_count=metadata.button_count)

    digitizer_usage_page = detect_digitizer_usage_page(device.collections)
    excluded = detect_excluded_usage_pages(device.interfaces, digitizer_usage_page)
    first = device.collections[0] if device.collections else None

    config = TabletConfig(
        name=metadata.name,
        manufacturer=metadata.manufacturer,
        model=metadata.model,
        description=metadata.description,
        vendor_id=f"0x{device.vendor_id:04x}",
        product_id=f"0x{device.product_id:04x}",
        device_info=DeviceInfo(
            vendor_id=device.vendor_id,
            product_id=device.product_id,
            product_string=device.product_name,
            usage_page=first.usage_page if first else DIGITIZER_USAGE_PAGE,
            usage=first.usage if first else PEN_USAGE,
            interfaces=tuple(device.interfaces),
        ),
        report_id=device.report_id,
        digitizer_usage_page=digitizer_usage_page,
        capabilities=capabilities,
        byte_code_mappings=dict(mappings),
        stylus_mode_status_byte=detect_stylus_mode_status_byte(mappings),
        excluded_usage_pages=excluded or None,
    )
    logger.info("Built config '%s' with channels %s", config.name, sorted(mappings))
    return config


# -------------------------------------------------------------------------
# Persistence
# -------------------------------------------------------------------------

def config_dir() -> Path:
    # e.g., ~/.config/Tablet Mapper on Linux
    path = Path(QStandardPaths.writableLocation(QStandardPaths.AppConfigLocation))
    path.mkdir(parents=True, exist_ok=True)
    return path


def config_filename(config: TabletConfig) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", config.name.lower()).strip("_") or "tablet"
    return f"{slug}.json"


def save_config(config: TabletConfig, path: Optional[Path] = None) -> Path:
    """Write ``config`` as pretty JSON and return the path written."""
    path = path or config_dir() / config_filename(config)
    with path.open("w", encoding="utf-8") as f:
        f.write(config.to_json(pretty=True))
    logger.info("Saved config to %s", path)
    return path


def load_config(path: Path) -> TabletConfig:
    return TabletConfig.from_json(Path(path).read_text(encoding="utf-8"))


def list_saved_configs() -> list[Path]:
    return sorted(config_dir().glob("*.json"))
