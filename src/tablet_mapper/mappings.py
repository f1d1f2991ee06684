"""Byte code mapping variants and their JSON form.

Each channel of a tablet report (x, y, pressure, tiltX, ...) is described by
exactly one mapping. Internally code values are keyed by the integer byte
value; they only become decimal strings in ``to_dict``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

from tablet_mapper.errors import ConfigFieldMissingError, ConfigTypeError

SemanticScalar = Union[str, int, float, bool]
SemanticValue = Mapping[str, SemanticScalar]


class MappingType:
    """JSON tags for the mapping variants."""

    CODE = "code"
    RANGE = "range"
    MULTI_BYTE_RANGE = "multi-byte-range"
    BIPOLAR_RANGE = "bipolar-range"
    BIT_FLAGS = "bit-flags"

    ALL = (CODE, RANGE, MULTI_BYTE_RANGE, BIPOLAR_RANGE, BIT_FLAGS)


@dataclass(frozen=True, slots=True)
class CodeMapping:
    """Discrete status/mode byte: byte value -> semantic value."""

    byte_index: int
    values: Mapping[int, SemanticValue] = field(default_factory=dict)

    type = MappingType.CODE

    def __post_init__(self) -> None:
        frozen = {code: MappingProxyType(dict(value)) for code, value in self.values.items()}
        object.__setattr__(self, "values", MappingProxyType(frozen))

    @property
    def byte_indices(self) -> tuple[int, ...]:
        return (self.byte_index,)


@dataclass(frozen=True, slots=True)
class RangeMapping:
    """Single byte scaled linearly between ``min`` and ``max``."""

    byte_index: int
    min: int
    max: int

    type = MappingType.RANGE

    @property
    def byte_indices(self) -> tuple[int, ...]:
        return (self.byte_index,)


@dataclass(frozen=True, slots=True)
class MultiByteRangeMapping:
    """Little-endian group of bytes scaled linearly between ``min`` and ``max``."""

    byte_index: tuple[int, ...]
    min: int
    max: int

    type = MappingType.MULTI_BYTE_RANGE

    def __post_init__(self) -> None:
        object.__setattr__(self, "byte_index", tuple(self.byte_index))

    @property
    def byte_indices(self) -> tuple[int, ...]:
        return tuple(self.byte_index)


@dataclass(frozen=True, slots=True)
class BipolarRangeMapping:
    """Signed value split across two disjoint byte-value sub-ranges."""

    byte_index: int
    positive_min: int
    positive_max: int
    negative_min: int
    negative_max: int

    type = MappingType.BIPOLAR_RANGE

    @property
    def byte_indices(self) -> tuple[int, ...]:
        return (self.byte_index,)


@dataclass(frozen=True, slots=True)
class BitFlagsMapping:
    """One boolean per bit, ``button1`` being bit 0.

    More than eight buttons continue into the following byte, little-endian.
    """

    byte_index: int
    button_count: int

    type = MappingType.BIT_FLAGS

    @property
    def byte_indices(self) -> tuple[int, ...]:
        return tuple(range(self.byte_index, self.byte_index + self.byte_width))

    @property
    def byte_width(self) -> int:
        return max(1, (self.button_count + 7) // 8)


MappingSpec = Union[
    CodeMapping, RangeMapping, MultiByteRangeMapping, BipolarRangeMapping, BitFlagsMapping
]
DeviceByteCodeMappings = dict[str, MappingSpec]


# ---------------------------------------------------------------------------
# JSON boundary
# ---------------------------------------------------------------------------

def mapping_to_dict(spec: MappingSpec) -> dict[str, Any]:
    """Serialize a mapping. ``byteIndex`` is always written as a list."""
    if isinstance(spec, CodeMapping):
        return {
            "byteIndex": [spec.byte_index],
            "type": spec.type,
            "values": {str(code): dict(value) for code, value in sorted(spec.values.items())},
        }
    if isinstance(spec, RangeMapping):
        return {"byteIndex": [spec.byte_index], "min": spec.min, "max": spec.max, "type": spec.type}
    if isinstance(spec, MultiByteRangeMapping):
        return {
            "byteIndex": list(spec.byte_index),
            "min": spec.min,
            "max": spec.max,
            "type": spec.type,
        }
    if isinstance(spec, BipolarRangeMapping):
        return {
            "byteIndex": [spec.byte_index],
            "positiveMin": spec.positive_min,
            "positiveMax": spec.positive_max,
            "negativeMin": spec.negative_min,
            "negativeMax": spec.negative_max,
            "type": spec.type,
        }
    if isinstance(spec, BitFlagsMapping):
        return {"byteIndex": [spec.byte_index], "buttonCount": spec.button_count, "type": spec.type}
    raise TypeError(f"not a mapping spec: {spec!r}")


def mappings_to_dict(mappings: Mapping[str, MappingSpec]) -> dict[str, Any]:
    return {channel: mapping_to_dict(spec) for channel, spec in mappings.items()}


def _require(data: Mapping[str, Any], key: str, path: str) -> Any:
    if key not in data:
        raise ConfigFieldMissingError(f"{path}.{key}")
    return data[key]


def _as_int(value: Any, path: str) -> int:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or int(value) != value
    ):
        raise ConfigTypeError(f"Invalid config: '{path}' must be an integer")
    return int(value)


def _index_list(value: Any, path: str) -> list[int]:
    if isinstance(value, list):
        indices = [_as_int(v, path) for v in value]
    else:
        indices = [_as_int(value, path)]
    if not indices:
        raise ConfigTypeError(f"Invalid config: '{path}' must not be empty")
    return indices


def _single_index(value: Any, path: str) -> int:
    indices = _index_list(value, path)
    if len(indices) != 1:
        raise ConfigTypeError(f"Invalid config: '{path}' must reference exactly one byte")
    return indices[0]


def _semantic_value(value: Any, path: str) -> SemanticValue:
    if not isinstance(value, dict):
        raise ConfigTypeError(f"Invalid config: '{path}' must be an object")
    for key, item in value.items():
        if not isinstance(item, (str, int, float, bool)) or (
            isinstance(item, float) and not math.isfinite(item)
        ):
            raise ConfigTypeError(f"Invalid config: '{path}.{key}' must be a scalar")
    return dict(value)


def mapping_from_dict(data: Any, path: str) -> MappingSpec:
    """Parse one mapping object; ``path`` names it in error messages."""
    if not isinstance(data, dict):
        raise ConfigTypeError(f"Invalid config: '{path}' must be an object")
    kind = _require(data, "type", path)
    index_path = f"{path}.byteIndex"

    if kind == MappingType.CODE:
        raw_values = _require(data, "values", path)
        if not isinstance(raw_values, dict):
            raise ConfigTypeError(f"Invalid config: '{path}.values' must be an object")
        values: dict[int, SemanticValue] = {}
        for code, value in raw_values.items():
            try:
                key = int(code, 10)
            except ValueError:
                raise ConfigTypeError(
                    f"Invalid config: '{path}.values' key '{code}' is not a decimal byte value"
                ) from None
            values[key] = _semantic_value(value, f"{path}.values.{code}")
        return CodeMapping(_single_index(_require(data, "byteIndex", path), index_path), values)

    if kind == MappingType.RANGE:
        return RangeMapping(
            byte_index=_single_index(_require(data, "byteIndex", path), index_path),
            min=_as_int(data.get("min", 0), f"{path}.min"),
            max=_as_int(_require(data, "max", path), f"{path}.max"),
        )

    if kind == MappingType.MULTI_BYTE_RANGE:
        return MultiByteRangeMapping(
            byte_index=tuple(_index_list(_require(data, "byteIndex", path), index_path)),
            min=_as_int(data.get("min", 0), f"{path}.min"),
            max=_as_int(_require(data, "max", path), f"{path}.max"),
        )

    if kind == MappingType.BIPOLAR_RANGE:
        return BipolarRangeMapping(
            byte_index=_single_index(_require(data, "byteIndex", path), index_path),
            positive_min=_as_int(data.get("positiveMin", 0), f"{path}.positiveMin"),
            positive_max=_as_int(_require(data, "positiveMax", path), f"{path}.positiveMax"),
            negative_min=_as_int(_require(data, "negativeMin", path), f"{path}.negativeMin"),
            negative_max=_as_int(_require(data, "negativeMax", path), f"{path}.negativeMax"),
        )

    if kind == MappingType.BIT_FLAGS:
        return BitFlagsMapping(
            byte_index=_single_index(_require(data, "byteIndex", path), index_path),
            button_count=_as_int(data.get("buttonCount", 8), f"{path}.buttonCount"),
        )

    raise ConfigTypeError(f"Invalid config: '{path}.type' has unknown mapping type {kind!r}")


def mappings_from_dict(data: Any, path: str = "byteCodeMappings") -> DeviceByteCodeMappings:
    if not isinstance(data, dict):
        raise ConfigTypeError(f"Invalid config: '{path}' must be an object")
    return {channel: mapping_from_dict(item, f"{path}.{channel}") for channel, item in data.items()}
