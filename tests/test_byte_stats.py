"""Tests for the byte statistics module.

This module tests the per-byte summaries the classifier is built on.
"""

from __future__ import annotations

import pytest

from tablet_mapper.input.byte_stats import (
    ByteStats,
    analyze_bytes,
    combine_little_endian,
    common_length,
    distinct_values,
    variance,
)


# ============================================================================
# Variance Tests
# ============================================================================


class TestVariance:
    """Tests for the variance function."""

    def test_variance_empty_list(self) -> None:
        """Empty list should return 0."""
        assert variance([]) == 0.0

    def test_variance_single_value(self) -> None:
        """Single value should return 0 (needs at least 2)."""
        assert variance([50]) == 0.0

    def test_variance_identical_values(self) -> None:
        """All identical values should have 0 variance."""
        assert variance([50, 50, 50, 50]) == 0.0

    def test_variance_two_values(self) -> None:
        """Mean = 50, variance = ((0-50)^2 + (100-50)^2) / 2 = 2500."""
        assert variance([0, 100]) == pytest.approx(2500.0)

    def test_variance_is_population_variance(self) -> None:
        """Divides by n, not n - 1."""
        # Values: [10, 20, 30, 40, 50], Mean = 30
        # Variance = (400 + 100 + 0 + 100 + 400) / 5 = 200
        assert variance([10, 20, 30, 40, 50]) == pytest.approx(200.0)

    def test_variance_returns_float(self) -> None:
        """Variance should return float even for integer inputs."""
        assert isinstance(variance([1, 2, 3]), float)


# ============================================================================
# Analyze Bytes Tests
# ============================================================================


class TestAnalyzeBytes:
    """Tests for analyze_bytes."""

    def test_empty_window_has_no_stats(self) -> None:
        assert analyze_bytes([]) == []

    def test_min_max_variance_and_count(self) -> None:
        """Each position is summarized independently."""
        packets = [(2, 0, 10), (2, 100, 20), (2, 50, 30)]
        stats = analyze_bytes(packets)

        assert [s.byte_index for s in stats] == [0, 1, 2]
        assert stats[0] == ByteStats(byte_index=0, min=2, max=2, variance=0.0, count=3)
        assert stats[1].min == 0
        assert stats[1].max == 100
        assert stats[1].variance == pytest.approx(variance([0, 100, 50]))
        assert stats[2].count == 3

    def test_constant_byte_flag(self) -> None:
        stats = analyze_bytes([(7, 1), (7, 2)])
        assert stats[0].is_constant
        assert not stats[1].is_constant

    def test_uses_common_length(self) -> None:
        """Positions missing from any packet are not analyzed."""
        stats = analyze_bytes([(1, 2, 3, 4), (1, 2, 3)])
        assert len(stats) == 3
        assert common_length([(1, 2, 3, 4), (1, 2, 3)]) == 3

    def test_identical_windows_give_identical_stats(self) -> None:
        """Statistics are a pure function of the window."""
        packets = [(2, i % 7, (i * 37) % 256) for i in range(50)]
        assert analyze_bytes(packets) == analyze_bytes(list(packets))


# ============================================================================
# Helper Tests
# ============================================================================


class TestHelpers:
    """Tests for little-endian combination and distinct values."""

    def test_combine_little_endian_two_bytes(self) -> None:
        assert combine_little_endian((0, 0x34, 0x12), [1, 2]) == 0x1234

    def test_combine_little_endian_three_bytes(self) -> None:
        assert combine_little_endian((0x01, 0x02, 0x03), [0, 1, 2]) == 0x030201

    def test_distinct_values_sorted(self) -> None:
        assert distinct_values([(0, 5), (0, 1), (0, 5), (0, 3)], 1) == [1, 3, 5]
