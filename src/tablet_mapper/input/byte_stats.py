"""Per-byte statistics over a capture window."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

CONSTANT_EPSILON: float = 1e-9
"""Variance at or below this is treated as a constant byte."""


@dataclass(frozen=True, slots=True)
class ByteStats:
    """Summary of one byte position across a window."""

    byte_index: int
    min: int
    max: int
    variance: float
    count: int

    @property
    def is_constant(self) -> bool:
        return self.variance <= CONSTANT_EPSILON


def variance(values: Sequence[int]) -> float:
    """Compute the population variance of a list of integers.

    Args:
        values: List of integer values.

    Returns:
        The mean of squared deviations, or 0.0 if fewer than 2 values.
    """
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def common_length(packets: Sequence[Sequence[int]]) -> int:
    """Return the number of byte positions present in every packet."""
    if not packets:
        return 0
    return min(len(p) for p in packets)


def analyze_bytes(packets: Sequence[Sequence[int]]) -> list[ByteStats]:
    """Compute min, max, variance and count for each byte position.

    Only positions present in every packet are analyzed.
    """
    stats: list[ByteStats] = []
    for index in range(common_length(packets)):
        values = [p[index] for p in packets]
        stats.append(
            ByteStats(
                byte_index=index,
                min=min(values),
                max=max(values),
                variance=variance(values),
                count=len(values),
            )
        )
    return stats


def combine_little_endian(packet: Sequence[int], indices: Sequence[int]) -> int:
    """Combine bytes at ``indices`` with the first index least significant."""
    value = 0
    for shift, index in enumerate(indices):
        value |= packet[index] << (8 * shift)
    return value


def distinct_values(packets: Sequence[Sequence[int]], index: int) -> list[int]:
    """Sorted distinct values observed at ``index``."""
    return sorted({p[index] for p in packets})
