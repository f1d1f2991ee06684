"""Tests for the byte classifier.

Packets follow a typical pen report layout:
[report id, status, x lo, x hi, y lo, y hi, pressure lo, pressure hi, tilt x, tilt y]
"""

from __future__ import annotations

import pytest

from tablet_mapper.errors import (
    CaptureEmptyError,
    ClassificationAmbiguousError,
    MappingConflictError,
)
from tablet_mapper.input.capture import CaptureWindow
from tablet_mapper.input.classifier import (
    ByteClassifier,
    ChannelKind,
    DetectedButtons,
    classify_bipolar,
    classify_bit_flags,
    classify_code,
    classify_multi_byte,
    classify_range,
)
from tablet_mapper.mappings import (
    BipolarRangeMapping,
    BitFlagsMapping,
    CodeMapping,
    MultiByteRangeMapping,
    RangeMapping,
)

REPORT_ID = 2
HOVER, CONTACT, PRIMARY = 0xA0, 0xA1, 0xA3


def pen_packet(
    x: int = 8000,
    y: int = 4500,
    pressure: int = 0,
    tilt_x: int = 0,
    tilt_y: int = 0,
    status: int = CONTACT,
) -> list[int]:
    return [
        REPORT_ID,
        status,
        x & 0xFF,
        x >> 8,
        y & 0xFF,
        y >> 8,
        pressure & 0xFF,
        pressure >> 8,
        tilt_x & 0xFF,
        tilt_y & 0xFF,
    ]


def window_of(label: str, packets: list[list[int]]) -> CaptureWindow:
    window = CaptureWindow(label)
    window.extend(packets)
    return window


def horizontal_sweep() -> CaptureWindow:
    return window_of("x", [pen_packet(x=x) for x in range(0, 16001, 100)])


def vertical_sweep() -> CaptureWindow:
    return window_of("y", [pen_packet(y=y) for y in range(0, 9001, 60)])


def tilt_sweep(axis: str) -> CaptureWindow:
    angles = range(-60, 61, 2)
    if axis == "x":
        return window_of("tiltX", [pen_packet(tilt_x=a) for a in angles])
    return window_of("tiltY", [pen_packet(tilt_y=a) for a in angles])


# ============================================================================
# Range Tests
# ============================================================================


class TestClassifyRange:
    """Tests for single-byte linear channels."""

    def test_picks_highest_variance_byte(self) -> None:
        packets = [tuple(pen_packet(pressure=p)) for p in range(0, 256, 5)]
        spec = classify_range(packets, channel="pressure", exclude={0})
        assert spec == RangeMapping(byte_index=6, min=0, max=255)

    def test_ties_go_to_lowest_index(self) -> None:
        packets = [(2, v, v) for v in (0, 50, 100)]
        assert classify_range(packets, exclude={0}).byte_index == 1

    def test_all_constant_is_ambiguous(self) -> None:
        packets = [tuple(pen_packet())] * 10
        with pytest.raises(ClassificationAmbiguousError) as excinfo:
            classify_range(packets, channel="pressure", exclude={0})
        assert excinfo.value.channel == "pressure"

    def test_empty_window(self) -> None:
        with pytest.raises(CaptureEmptyError):
            classify_range([], channel="pressure")


# ============================================================================
# Multi-byte Tests
# ============================================================================


class TestClassifyMultiByte:
    """Tests for little-endian multi-byte channels."""

    def test_adjacent_bytes_one_and_two(self) -> None:
        """A sweep carried in bytes 1-2 is found as a little-endian pair."""
        packets = [(REPORT_ID, x & 0xFF, x >> 8, 0, 0, 0) for x in range(0, 4001, 50)]
        spec = classify_multi_byte(packets, channel="x", exclude={0})
        assert spec == MultiByteRangeMapping(byte_index=(1, 2), min=0, max=4000)

    def test_horizontal_sweep(self) -> None:
        spec = classify_multi_byte(horizontal_sweep().packets, channel="x", exclude={0})
        assert spec.byte_index == (2, 3)
        assert spec.min == 0
        assert spec.max == 16000

    def test_excluded_bytes_are_skipped(self) -> None:
        spec = classify_multi_byte(vertical_sweep().packets, channel="y", exclude={0, 2, 3})
        assert spec.byte_index == (4, 5)

    def test_three_byte_width(self) -> None:
        values = range(0, 0x30000, 0x7FF)
        packets = [(REPORT_ID, v & 0xFF, (v >> 8) & 0xFF, v >> 16, 0) for v in values]
        spec = classify_multi_byte(packets, channel="x", exclude={0}, width=3)
        assert spec.byte_index == (1, 2, 3)
        assert spec.max == max(values)

    def test_invalid_width(self) -> None:
        with pytest.raises(ValueError):
            classify_multi_byte([(0, 0)], width=5)

    def test_zero_variance_is_ambiguous(self) -> None:
        packets = [tuple(pen_packet())] * 5
        with pytest.raises(ClassificationAmbiguousError):
            classify_multi_byte(packets, channel="x", exclude={0})


# ============================================================================
# Bipolar Tests
# ============================================================================


class TestClassifyBipolar:
    """Tests for signed tilt bytes."""

    def test_two_clusters(self) -> None:
        spec = classify_bipolar(tilt_sweep("x").packets, channel="tiltX", exclude={0})
        assert spec == BipolarRangeMapping(
            byte_index=8, positive_min=196, positive_max=254, negative_min=0, negative_max=60
        )

    def test_continuous_values_are_ambiguous(self) -> None:
        packets = [(REPORT_ID, v) for v in range(256)]
        with pytest.raises(ClassificationAmbiguousError):
            classify_bipolar(packets, channel="tiltX", exclude={0})

    def test_gap_threshold_is_tunable(self) -> None:
        packets = [(REPORT_ID, v) for v in (0, 1, 2, 20, 21, 22)]
        with pytest.raises(ClassificationAmbiguousError):
            classify_bipolar(packets, exclude={0})
        spec = classify_bipolar(packets, exclude={0}, gap_threshold=10)
        assert (spec.negative_min, spec.negative_max) == (0, 2)
        assert (spec.positive_min, spec.positive_max) == (20, 22)


# ============================================================================
# Bit Flags Tests
# ============================================================================


class TestClassifyBitFlags:
    """Tests for tablet button bytes."""

    def button_packets(self, sequence: list[int]) -> list[tuple[int, ...]]:
        return [(REPORT_ID, 0x02, 0, 0, 0, 0, 0, bits) for bits in sequence]

    def test_independent_bits(self) -> None:
        packets = self.button_packets([0, 1, 0, 2, 0, 4, 0, 8, 0])
        spec = classify_bit_flags(packets, channel="tabletButtons", exclude={0})
        assert spec == BitFlagsMapping(byte_index=7, button_count=4)

    def test_bits_that_always_change_together_are_rejected(self) -> None:
        packets = self.button_packets([0, 3, 0, 3, 0])
        with pytest.raises(ClassificationAmbiguousError):
            classify_bit_flags(packets, channel="tabletButtons", exclude={0})

    def test_sixteen_buttons_read_a_little_endian_pair(self) -> None:
        words = [0, 0x001, 0, 0x100, 0, 0x200, 0]
        packets = [(REPORT_ID, 0x02, 0, 0, w & 0xFF, w >> 8) for w in words]

        wide = classify_bit_flags(packets, channel="tabletButtons", exclude={0}, max_buttons=16)
        narrow = classify_bit_flags(packets, channel="tabletButtons", exclude={0})

        assert wide == BitFlagsMapping(byte_index=4, button_count=10)
        assert wide.byte_indices == (4, 5)
        assert narrow == BitFlagsMapping(byte_index=5, button_count=2)

    def test_wide_buttons_claim_both_bytes(self) -> None:
        words = [0, 0x001, 0, 0x100, 0]
        window = window_of(
            "tabletButtons", [[REPORT_ID, 0x02, w & 0xFF, w >> 8] for w in words]
        )
        classifier = ByteClassifier(max_buttons=16)
        classifier.classify_step("tabletButtons", window)
        assert classifier.claimed_bytes == {2: "tabletButtons", 3: "tabletButtons"}

    def test_invalid_max_buttons(self) -> None:
        with pytest.raises(ValueError):
            classify_bit_flags(self.button_packets([0, 1]), max_buttons=12)

    def test_detected_buttons_keep_first_seen_order(self) -> None:
        buttons = DetectedButtons([3, 0, 3, 1, 0])
        assert buttons.as_tuple() == (3, 0, 1)
        assert len(buttons) == 3
        assert 1 in buttons
        assert list(buttons) == [3, 0, 1]


# ============================================================================
# Code Tests
# ============================================================================


class TestClassifyCode:
    """Tests for discrete status bytes."""

    def status_window(self) -> CaptureWindow:
        window = CaptureWindow("status")
        window.set_context("hover")
        window.extend([pen_packet(status=HOVER)] * 5)
        window.set_context("contact")
        window.extend([pen_packet(status=CONTACT, pressure=p) for p in (10, 20, 30, 40, 50)])
        window.set_context("primary-button-pressed")
        window.extend([pen_packet(status=PRIMARY, pressure=40)] * 5)
        return window

    def test_labels_codes_by_context(self) -> None:
        snapshot = self.status_window().snapshot()
        spec = classify_code(snapshot.packets, snapshot.contexts, channel="status", exclude={0})
        assert spec == CodeMapping(
            byte_index=1,
            values={
                HOVER: {"state": "hover"},
                CONTACT: {"state": "contact"},
                PRIMARY: {"state": "contact", "primaryButtonPressed": True},
            },
        )

    def test_custom_context_values(self) -> None:
        snapshot = self.status_window().snapshot()
        spec = classify_code(
            snapshot.packets,
            snapshot.contexts,
            exclude={0},
            context_values={"hover": {"state": "stylus"}},
        )
        assert spec.values[HOVER] == {"state": "stylus"}
        assert spec.values[CONTACT] == {"state": "contact"}

    def test_consecutive_run_is_not_a_code(self) -> None:
        packets = [(REPORT_ID, v) for v in (10, 11, 12, 13)]
        with pytest.raises(ClassificationAmbiguousError):
            classify_code(packets, ["step"] * 4, exclude={0})

    def test_too_many_values_is_not_a_code(self) -> None:
        packets = [(REPORT_ID, v * 3) for v in range(20)]
        with pytest.raises(ClassificationAmbiguousError):
            classify_code(packets, ["step"] * 20, exclude={0})


# ============================================================================
# ByteClassifier Tests
# ============================================================================


class TestByteClassifier:
    """Tests for step-by-step accumulation."""

    def test_full_session(self) -> None:
        """Each step claims its bytes; later steps only see free bytes."""
        classifier = ByteClassifier()

        x = classifier.classify_step("x", horizontal_sweep())
        y = classifier.classify_step("y", vertical_sweep())
        pressure = classifier.classify_step(
            "pressure",
            window_of("pressure", [pen_packet(pressure=p) for p in range(0, 8192, 64)]),
            ChannelKind.MULTI_BYTE,
        )
        tilt_x = classifier.classify_step("tiltX", tilt_sweep("x"))
        tilt_y = classifier.classify_step("tiltY", tilt_sweep("y"))

        assert x.byte_index == (2, 3)
        assert y.byte_index == (4, 5)
        assert pressure.byte_index == (6, 7)
        assert tilt_x.byte_index == 8
        assert tilt_y.byte_index == 9
        assert set(classifier.mappings) == {"x", "y", "pressure", "tiltX", "tiltY"}
        assert classifier.claimed_bytes[2] == "x"
        assert classifier.packet_length == 10

    def test_default_kind_for_x_is_multi_byte(self) -> None:
        """A horizontal sweep classifies x as a little-endian pair."""
        window = window_of("x", [[REPORT_ID, x & 0xFF, x >> 8, 0] for x in range(0, 3000, 25)])
        spec = ByteClassifier().classify_step("x", window)
        assert isinstance(spec, MultiByteRangeMapping)
        assert spec.byte_index == (1, 2)

    def test_report_id_byte_is_never_a_candidate(self) -> None:
        packets = [[rid, 0] for rid in (1, 2, 3, 4)]
        with pytest.raises(ClassificationAmbiguousError):
            ByteClassifier().classify_step("pressure", window_of("pressure", packets))

    def test_zero_variance_window_is_ambiguous(self) -> None:
        classifier = ByteClassifier()
        with pytest.raises(ClassificationAmbiguousError) as excinfo:
            classifier.classify_step("x", window_of("x", [pen_packet()] * 20))
        assert excinfo.value.channel == "x"
        assert classifier.mappings == {}

    def test_empty_window(self) -> None:
        with pytest.raises(CaptureEmptyError):
            ByteClassifier().classify_step("x", CaptureWindow("x"))

    def test_classification_is_idempotent(self) -> None:
        classifier = ByteClassifier()
        window = horizontal_sweep()
        first = classifier.classify_step("x", window)
        again = classifier.classify_step("x", window)
        assert first == again
        assert classifier.classify("y", vertical_sweep()) == classifier.classify("y", vertical_sweep())

    def test_conflicting_commit_is_rejected(self) -> None:
        classifier = ByteClassifier()
        classifier.classify_step("x", horizontal_sweep())

        with pytest.raises(MappingConflictError) as excinfo:
            classifier.commit("pressure", RangeMapping(byte_index=3, min=0, max=255))
        assert excinfo.value.byte_index == 3
        assert excinfo.value.owner == "x"
        assert "pressure" not in classifier.mappings

    def test_remapping_a_channel_differently_is_rejected(self) -> None:
        classifier = ByteClassifier()
        classifier.commit("pressure", RangeMapping(6, 0, 255), packet_length=10)
        with pytest.raises(MappingConflictError):
            classifier.commit("pressure", RangeMapping(7, 0, 255))

    def test_index_beyond_report_is_rejected(self) -> None:
        classifier = ByteClassifier()
        with pytest.raises(MappingConflictError):
            classifier.commit("pressure", RangeMapping(12, 0, 255), packet_length=10)

    def test_unknown_channel_needs_a_kind(self) -> None:
        classifier = ByteClassifier()
        with pytest.raises(ValueError):
            classifier.classify("wheel", horizontal_sweep())
        spec = classifier.classify("wheel", horizontal_sweep(), ChannelKind.MULTI_BYTE)
        assert spec.byte_index == (2, 3)

    def test_status_and_buttons_steps(self) -> None:
        classifier = ByteClassifier()
        classifier.commit("x", MultiByteRangeMapping((2, 3), 0, 16000), packet_length=10)

        status = CaptureWindow("status")
        status.set_context("hover")
        status.extend([pen_packet(status=HOVER)] * 3)
        status.set_context("contact")
        status.extend([pen_packet(status=CONTACT)] * 3)
        spec = classifier.classify_step("status", status)
        assert spec == CodeMapping(1, {HOVER: {"state": "hover"}, CONTACT: {"state": "contact"}})

        buttons = window_of(
            "tabletButtons",
            [pen_packet(status=HOVER, tilt_y=bits) for bits in (0, 1, 0, 2, 0)],
        )
        spec = classifier.classify_step("tabletButtons", buttons)
        assert spec == BitFlagsMapping(byte_index=9, button_count=2)
