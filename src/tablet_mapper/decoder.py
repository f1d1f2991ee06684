"""Decode raw tablet reports into named values.

Everything here is a pure function of its arguments. Malformed input never
raises: an index beyond the packet, an unknown status code, or a report with
a foreign report id degrades to the documented default so a live stream is
never interrupted.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tablet_mapper.input.byte_stats import combine_little_endian
from tablet_mapper.mappings import (
    BipolarRangeMapping,
    BitFlagsMapping,
    CodeMapping,
    MappingSpec,
    MultiByteRangeMapping,
    RangeMapping,
    SemanticValue,
)

if TYPE_CHECKING:
    from tablet_mapper.config import TabletConfig

DecodedReport = dict[str, Any]


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def _scale(value: int, minimum: int, maximum: int) -> float:
    if minimum == maximum:
        return 0.0
    return clamp01((value - minimum) / (maximum - minimum))


def decode_range(data: Sequence[int], byte_index: int, minimum: int, maximum: int) -> float:
    """Scale one byte into 0..1."""
    if not 0 <= byte_index < len(data):
        return 0.0
    return _scale(data[byte_index], minimum, maximum)


def decode_multi_byte_range(
    data: Sequence[int], byte_indices: Sequence[int], minimum: int, maximum: int
) -> float:
    """Combine ``byte_indices`` little-endian, then scale into 0..1."""
    if not byte_indices or any(not 0 <= i < len(data) for i in byte_indices):
        return 0.0
    return _scale(combine_little_endian(data, byte_indices), minimum, maximum)


def decode_bipolar_range(
    data: Sequence[int],
    byte_index: int,
    positive_min: int,
    positive_max: int,
    negative_min: int,
    negative_max: int,
) -> float:
    """Decode a signed value into -1..1.

    The positive sub-range is checked first. A value in neither sub-range
    decodes to 0.
    """
    if not 0 <= byte_index < len(data):
        return 0.0
    value = data[byte_index]
    if positive_min <= value <= positive_max:
        if positive_max == positive_min:
            return 0.0
        return (value - positive_min) / (positive_max - positive_min)
    if negative_min <= value <= negative_max:
        if negative_max == negative_min:
            return 0.0
        return -(negative_max - value) / (negative_max - negative_min)
    return 0.0


def decode_bit_flags(data: Sequence[int], byte_index: int, button_count: int) -> dict[str, bool]:
    """Map bit ``i`` to ``button{i+1}``; empty when a byte is missing.

    Counts above eight read the following bytes as higher bits, little-endian.
    """
    indices = range(byte_index, byte_index + max(1, (button_count + 7) // 8))
    if any(not 0 <= i < len(data) for i in indices):
        return {}
    bits = combine_little_endian(data, indices)
    return {f"button{i + 1}": bool(bits & (1 << i)) for i in range(button_count)}


def decode_code(
    data: Sequence[int], byte_index: int, values: Mapping[int, SemanticValue]
) -> SemanticValue | str | None:
    """Look up a discrete code.

    Unknown codes come back as their decimal string so they can still be
    discovered; a missing byte gives ``None``.
    """
    if not 0 <= byte_index < len(data):
        return None
    byte_value = data[byte_index]
    if byte_value in values:
        return dict(values[byte_value])
    return str(byte_value)


def decode_mapping(data: Sequence[int], spec: MappingSpec) -> Any:
    """Decode a single channel."""
    if isinstance(spec, RangeMapping):
        return decode_range(data, spec.byte_index, spec.min, spec.max)
    if isinstance(spec, MultiByteRangeMapping):
        return decode_multi_byte_range(data, spec.byte_index, spec.min, spec.max)
    if isinstance(spec, BipolarRangeMapping):
        return decode_bipolar_range(
            data,
            spec.byte_index,
            spec.positive_min,
            spec.positive_max,
            spec.negative_min,
            spec.negative_max,
        )
    if isinstance(spec, BitFlagsMapping):
        return decode_bit_flags(data, spec.byte_index, spec.button_count)
    if isinstance(spec, CodeMapping):
        return decode_code(data, spec.byte_index, spec.values)
    raise TypeError(f"not a mapping spec: {spec!r}")


def decode_packet(
    mappings: Mapping[str, MappingSpec],
    packet: Sequence[int],
    report_id: int | None = None,
    report_id_index: int = 0,
) -> DecodedReport:
    """Decode every channel of ``mappings`` from one report.

    Reports whose id (at ``report_id_index``) differs from ``report_id``
    decode to an empty dict. Bit flags are merged into the top level as
    ``button1..N``; other channels are keyed by channel name.
    """
    if report_id is not None:
        if not 0 <= report_id_index < len(packet) or packet[report_id_index] != report_id:
            return {}

    result: DecodedReport = {}
    for channel, spec in mappings.items():
        value = decode_mapping(packet, spec)
        if isinstance(spec, BitFlagsMapping):
            result.update(value)
        else:
            result[channel] = value
    return result


BUTTON_STATE = "buttons"
"""Status state in which the pen reports tablet buttons instead of a position."""

POSITION_CHANNELS: frozenset[str] = frozenset({"x", "y", "pressure", "tiltX", "tiltY"})


def device_state(mappings: Mapping[str, MappingSpec], packet: Sequence[int]) -> str | None:
    """The ``state`` of the first code channel, when that channel knows the code."""
    for spec in mappings.values():
        if isinstance(spec, CodeMapping):
            value = decode_code(packet, spec.byte_index, spec.values)
            if isinstance(value, dict) and isinstance(value.get("state"), str):
                return value["state"]
            return None
    return None


def decode_device_report(
    mappings: Mapping[str, MappingSpec],
    packet: Sequence[int],
    report_id: int | None = None,
    button_interface_report_id: int | None = None,
    report_id_index: int = 0,
) -> DecodedReport:
    """Decode a report the way a live device produces them.

    Reports from the button interface only carry bit-flag channels. On the
    pen interface the status state decides what is meaningful: in the
    ``buttons`` state position channels are skipped, in any other known
    state bit flags are skipped. Without a known state every channel is
    decoded as in ``decode_packet``.
    """
    if (
        button_interface_report_id is not None
        and 0 <= report_id_index < len(packet)
        and packet[report_id_index] == button_interface_report_id
    ):
        buttons = {c: s for c, s in mappings.items() if isinstance(s, BitFlagsMapping)}
        return decode_packet(buttons, packet)

    state = device_state(mappings, packet)
    if state == BUTTON_STATE:
        mappings = {c: s for c, s in mappings.items() if c not in POSITION_CHANNELS}
    elif state is not None:
        mappings = {c: s for c, s in mappings.items() if not isinstance(s, BitFlagsMapping)}
    return decode_packet(mappings, packet, report_id, report_id_index)


def decode_with_config(config: "TabletConfig", packet: Sequence[int]) -> DecodedReport:
    return decode_device_report(
        config.byte_code_mappings,
        packet,
        report_id=config.report_id,
        button_interface_report_id=config.button_interface_report_id,
    )


@dataclass(frozen=True)
class PacketDecoder:
    """A mapping set bound to its report ids, callable per packet."""

    mappings: Mapping[str, MappingSpec]
    report_id: int | None = None
    report_id_index: int = 0
    button_interface_report_id: int | None = None
    channels: tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "mappings", dict(self.mappings))
        object.__setattr__(self, "channels", tuple(self.mappings))

    @classmethod
    def from_config(cls, config: "TabletConfig") -> "PacketDecoder":
        return cls(
            mappings=config.byte_code_mappings,
            report_id=config.report_id,
            button_interface_report_id=config.button_interface_report_id,
        )

    def __call__(self, packet: Sequence[int]) -> DecodedReport:
        return decode_device_report(
            self.mappings,
            packet,
            self.report_id,
            self.button_interface_report_id,
            self.report_id_index,
        )
