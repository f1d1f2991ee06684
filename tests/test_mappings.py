"""Tests for mapping serialization at the JSON boundary."""

from __future__ import annotations

import pytest

from tablet_mapper.errors import ConfigFieldMissingError, ConfigTypeError
from tablet_mapper.mappings import (
    BipolarRangeMapping,
    BitFlagsMapping,
    CodeMapping,
    MappingType,
    MultiByteRangeMapping,
    RangeMapping,
    mapping_from_dict,
    mapping_to_dict,
    mappings_from_dict,
)


class TestMappingToDict:
    """Tests for writing mappings."""

    def test_code_keys_are_decimal_strings(self) -> None:
        data = mapping_to_dict(CodeMapping(1, {161: {"state": "contact"}, 160: {"state": "hover"}}))
        assert data == {
            "byteIndex": [1],
            "type": "code",
            "values": {"160": {"state": "hover"}, "161": {"state": "contact"}},
        }

    def test_multi_byte_range(self) -> None:
        data = mapping_to_dict(MultiByteRangeMapping((2, 3), 0, 16000))
        assert data == {"byteIndex": [2, 3], "min": 0, "max": 16000, "type": "multi-byte-range"}

    def test_bipolar_range(self) -> None:
        data = mapping_to_dict(BipolarRangeMapping(8, 0, 60, 196, 255))
        assert data["positiveMax"] == 60
        assert data["negativeMin"] == 196
        assert data["type"] == MappingType.BIPOLAR_RANGE

    def test_bit_flags(self) -> None:
        assert mapping_to_dict(BitFlagsMapping(7, 4)) == {
            "byteIndex": [7],
            "buttonCount": 4,
            "type": "bit-flags",
        }


class TestMappingFromDict:
    """Tests for reading mappings."""

    def test_single_index_accepts_int_or_list(self) -> None:
        a = mapping_from_dict({"type": "range", "byteIndex": 6, "min": 0, "max": 255}, "pressure")
        b = mapping_from_dict({"type": "range", "byteIndex": [6], "min": 0, "max": 255}, "pressure")
        assert a == b == RangeMapping(6, 0, 255)

    def test_min_defaults_to_zero(self) -> None:
        spec = mapping_from_dict({"type": "multi-byte-range", "byteIndex": [2, 3], "max": 100}, "x")
        assert spec == MultiByteRangeMapping((2, 3), 0, 100)

    def test_code_values_become_integer_keys(self) -> None:
        spec = mapping_from_dict(
            {"type": "code", "byteIndex": [1], "values": {"192": {"state": "stylus"}}}, "status"
        )
        assert spec == CodeMapping(1, {192: {"state": "stylus"}})

    def test_missing_type_names_path(self) -> None:
        with pytest.raises(ConfigFieldMissingError) as excinfo:
            mapping_from_dict({"byteIndex": [1]}, "byteCodeMappings.x")
        assert excinfo.value.field == "byteCodeMappings.x.type"

    def test_unknown_type(self) -> None:
        with pytest.raises(ConfigTypeError):
            mapping_from_dict({"type": "keyboard-events", "byteIndex": [1]}, "tabletButtons")

    def test_non_decimal_code_key(self) -> None:
        with pytest.raises(ConfigTypeError):
            mapping_from_dict({"type": "code", "byteIndex": [1], "values": {"0xa0": {}}}, "status")

    def test_single_byte_type_with_two_indices(self) -> None:
        with pytest.raises(ConfigTypeError):
            mapping_from_dict({"type": "range", "byteIndex": [1, 2], "max": 3}, "pressure")

    def test_mapping_set_must_be_object(self) -> None:
        with pytest.raises(ConfigTypeError):
            mappings_from_dict([])



class TestMappingValues:
    """Tests for the values held by finalized mappings."""

    def test_list_byte_index_becomes_tuple(self) -> None:
        spec = MultiByteRangeMapping([1, 2], 0, 65535)
        assert spec.byte_index == (1, 2)
        assert spec == MultiByteRangeMapping((1, 2), 0, 65535)

    def test_code_values_accept_numbers(self) -> None:
        spec = mapping_from_dict(
            {"type": "code", "byteIndex": [1], "values": {"160": {"state": "hover", "gain": 0.5}}},
            "status",
        )
        assert spec.values[160] == {"state": "hover", "gain": 0.5}
        assert mapping_to_dict(spec)["values"]["160"]["gain"] == 0.5

    def test_code_values_are_read_only(self) -> None:
        source = {160: {"state": "hover"}}
        spec = CodeMapping(1, source)
        source[160]["state"] = "changed"
        assert spec.values[160] == {"state": "hover"}
        with pytest.raises(TypeError):
            spec.values[161] = {"state": "contact"}
        with pytest.raises(TypeError):
            spec.values[160]["state"] = "contact"

    def test_wide_bit_flags_span_two_bytes(self) -> None:
        assert BitFlagsMapping(7, 8).byte_indices == (7,)
        assert BitFlagsMapping(7, 12).byte_indices == (7, 8)
