"""Byte-role classification for tablet reports.

Infers which report bytes carry which channel from the packets captured
during a guided gesture step, and accumulates the results into a mapping
set that the decoder can use.

Each step is classified from exactly one capture window. The selection
rules per channel kind are:

- RANGE: the byte with the largest variance.
- MULTI_BYTE: the run of adjacent bytes whose little-endian value has the
  largest variance.
- BIPOLAR: the byte whose values split into two clusters separated by a gap
  of at least ``bipolar_gap``.
- BIT_FLAGS: the byte whose bits flip independently of one another.
- CODE: a byte with a handful of distinct, non-sequential values; each value
  is labeled with the gesture context it was seen in.

Ties always go to the lowest byte index, so classification is deterministic.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from enum import Enum

from tablet_mapper.errors import (
    CaptureEmptyError,
    ClassificationAmbiguousError,
    MappingConflictError,
)
from tablet_mapper.input.byte_stats import (
    CONSTANT_EPSILON,
    analyze_bytes,
    combine_little_endian,
    common_length,
    distinct_values,
    variance,
)
from tablet_mapper.input.capture import CaptureSnapshot, CaptureWindow, RawPacket, to_packet
from tablet_mapper.mappings import (
    BipolarRangeMapping,
    BitFlagsMapping,
    CodeMapping,
    DeviceByteCodeMappings,
    MappingSpec,
    MultiByteRangeMapping,
    RangeMapping,
    SemanticValue,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_BIPOLAR_GAP: int = 32
"""Smallest gap between two value clusters for a byte to count as bipolar."""

DEFAULT_CODE_MAX_VALUES: int = 10
"""Most distinct values a byte may take and still be a discrete code."""

DEFAULT_MAX_BUTTONS: int = 8
"""Default cap on the number of bit-flag buttons."""

DEFAULT_MULTI_BYTE_WIDTH: int = 2

DEFAULT_REPORT_ID_INDEX: int = 0

DEFAULT_CONTEXT_VALUES: dict[str, SemanticValue] = {
    "hover": {"state": "hover"},
    "contact": {"state": "contact"},
    "primary-button-pressed": {"state": "contact", "primaryButtonPressed": True},
    "secondary-button-pressed": {"state": "contact", "secondaryButtonPressed": True},
    "buttons": {"state": "buttons"},
}
"""Semantic values for the standard status gesture contexts."""


class ChannelKind(Enum):
    RANGE = "range"
    MULTI_BYTE = "multi-byte"
    BIPOLAR = "bipolar"
    BIT_FLAGS = "bit-flags"
    CODE = "code"


DEFAULT_CHANNEL_KINDS: dict[str, ChannelKind] = {
    "x": ChannelKind.MULTI_BYTE,
    "y": ChannelKind.MULTI_BYTE,
    "pressure": ChannelKind.RANGE,
    "tiltX": ChannelKind.BIPOLAR,
    "tiltY": ChannelKind.BIPOLAR,
    "status": ChannelKind.CODE,
    "tabletButtons": ChannelKind.BIT_FLAGS,
}


# ---------------------------------------------------------------------------
# Detected buttons
# ---------------------------------------------------------------------------

class DetectedButtons:
    """Ordered set of button bit positions, in order of first observation."""

    def __init__(self, bits: Iterable[int] = ()) -> None:
        self._bits: dict[int, None] = {}
        for bit in bits:
            self.add(bit)

    def add(self, bit: int) -> None:
        self._bits.setdefault(bit, None)

    def __contains__(self, bit: object) -> bool:
        return bit in self._bits

    def __iter__(self) -> Iterator[int]:
        return iter(tuple(self._bits))

    def __len__(self) -> int:
        return len(self._bits)

    def as_tuple(self) -> tuple[int, ...]:
        return tuple(self._bits)


# ---------------------------------------------------------------------------
# Window helpers
# ---------------------------------------------------------------------------

Window = CaptureWindow | CaptureSnapshot | Sequence[Sequence[int]]


def _unpack(window: Window) -> tuple[tuple[RawPacket, ...], tuple[str, ...]]:
    if isinstance(window, CaptureWindow):
        window = window.snapshot()
    if isinstance(window, CaptureSnapshot):
        return window.packets, window.contexts
    packets = tuple(to_packet(p) for p in window)
    return packets, ("",) * len(packets)


def _require_packets(channel: str, packets: Sequence[RawPacket]) -> None:
    if not packets:
        raise CaptureEmptyError(channel)


# ---------------------------------------------------------------------------
# Classification algorithms
# ---------------------------------------------------------------------------

def classify_range(
    packets: Sequence[RawPacket], *, channel: str = "range", exclude: Iterable[int] = ()
) -> RangeMapping:
    """Pick the highest-variance free byte; its observed bounds become the range."""
    _require_packets(channel, packets)
    excluded = set(exclude)
    best = None
    for stats in analyze_bytes(packets):
        if stats.byte_index in excluded or stats.is_constant:
            continue
        logger.debug("%s: byte %d variance %.2f", channel, stats.byte_index, stats.variance)
        if best is None or stats.variance > best.variance:
            best = stats
    if best is None:
        raise ClassificationAmbiguousError(channel)
    return RangeMapping(byte_index=best.byte_index, min=best.min, max=best.max)


def classify_multi_byte(
    packets: Sequence[RawPacket],
    *,
    channel: str = "multi-byte",
    exclude: Iterable[int] = (),
    width: int = DEFAULT_MULTI_BYTE_WIDTH,
) -> MultiByteRangeMapping:
    """Pick the run of ``width`` adjacent free bytes with the largest combined variance.

    A run whose lowest byte is constant is skipped: it would only be the
    upper part of a neighbouring value shifted into a larger magnitude.
    """
    if not 2 <= width <= 4:
        raise ValueError(f"multi-byte width must be 2..4, got {width}")
    _require_packets(channel, packets)
    excluded = set(exclude)

    best_indices: tuple[int, ...] | None = None
    best_values: list[int] = []
    best_variance = 0.0
    for start in range(common_length(packets) - width + 1):
        indices = tuple(range(start, start + width))
        if any(i in excluded for i in indices):
            continue
        if variance([p[start] for p in packets]) <= CONSTANT_EPSILON:
            continue
        values = [combine_little_endian(p, indices) for p in packets]
        score = variance(values)
        logger.debug("%s: bytes %s combined variance %.2f", channel, list(indices), score)
        if best_indices is None or score > best_variance:
            best_indices, best_values, best_variance = indices, values, score

    if best_indices is None:
        raise ClassificationAmbiguousError(channel)
    return MultiByteRangeMapping(byte_index=best_indices, min=min(best_values), max=max(best_values))


def _largest_gap(values: Sequence[int]) -> tuple[int, int]:
    """Return (gap, split) where ``values[:split]`` and ``values[split:]`` are the clusters."""
    gap, split = 0, 0
    for k in range(1, len(values)):
        step = values[k] - values[k - 1]
        if step > gap:
            gap, split = step, k
    return gap, split


def classify_bipolar(
    packets: Sequence[RawPacket],
    *,
    channel: str = "bipolar",
    exclude: Iterable[int] = (),
    gap_threshold: int = DEFAULT_BIPOLAR_GAP,
) -> BipolarRangeMapping:
    """Pick the free byte whose values form two clusters with the widest gap.

    The upper cluster becomes the positive sub-range and the lower cluster the
    negative sub-range.
    """
    _require_packets(channel, packets)
    excluded = set(exclude)

    best: BipolarRangeMapping | None = None
    best_gap = 0
    for index in range(common_length(packets)):
        if index in excluded:
            continue
        values = distinct_values(packets, index)
        gap, split = _largest_gap(values)
        if gap < gap_threshold:
            continue
        logger.debug("%s: byte %d splits at %d with gap %d", channel, index, values[split], gap)
        if best is None or gap > best_gap:
            lower, upper = values[:split], values[split:]
            best_gap = gap
            best = BipolarRangeMapping(
                byte_index=index,
                positive_min=upper[0],
                positive_max=upper[-1],
                negative_min=lower[0],
                negative_max=lower[-1],
            )

    if best is None:
        raise ClassificationAmbiguousError(channel, f"no byte splits with a gap of {gap_threshold}")
    return best


def _bit_flips(
    values: Sequence[int], bits: int = 8
) -> tuple[dict[int, frozenset[int]], DetectedButtons]:
    flips: dict[int, set[int]] = {}
    detected = DetectedButtons()
    for t in range(1, len(values)):
        diff = values[t] ^ values[t - 1]
        for bit in range(bits):
            if diff & (1 << bit):
                flips.setdefault(bit, set()).add(t)
                detected.add(bit)
    return {bit: frozenset(ts) for bit, ts in flips.items()}, detected


def classify_bit_flags(
    packets: Sequence[RawPacket],
    *,
    channel: str = "bit-flags",
    exclude: Iterable[int] = (),
    max_buttons: int = DEFAULT_MAX_BUTTONS,
) -> BitFlagsMapping:
    """Pick the free byte with the most independently flipping bits.

    Two bits that always flip on exactly the same packets belong to a
    multi-bit code rather than to separate buttons, so such a byte is not a
    candidate.

    With ``max_buttons=16`` a byte is read together with the following free
    byte as a little-endian 16-bit word whenever that byte changes too; the
    resulting mapping then spans both bytes.
    """
    if max_buttons not in (8, 16):
        raise ValueError(f"max_buttons must be 8 or 16, got {max_buttons}")
    _require_packets(channel, packets)
    excluded = set(exclude)
    length = common_length(packets)

    best_index: int | None = None
    best_buttons = DetectedButtons()
    best_count = 0
    for index in range(length):
        if index in excluded:
            continue
        indices: tuple[int, ...] = (index,)
        high = index + 1
        if (
            max_buttons == 16
            and high < length
            and high not in excluded
            and variance([p[high] for p in packets]) > CONSTANT_EPSILON
        ):
            indices = (index, high)
        flips, detected = _bit_flips(
            [combine_little_endian(p, indices) for p in packets], bits=8 * len(indices)
        )
        if not flips or len(set(flips.values())) != len(flips):
            continue
        logger.debug("%s: bytes %s flip bits %s", channel, list(indices), detected.as_tuple())
        if best_index is None or len(detected) > len(best_buttons):
            count = len(detected)
            if max(detected) >= 8:
                # Buttons in the high byte are only decoded when the count reaches them.
                count = max(count, max(detected) + 1)
            best_index, best_buttons, best_count = index, detected, count

    if best_index is None:
        raise ClassificationAmbiguousError(channel, "no byte with independent bit flags")
    return BitFlagsMapping(byte_index=best_index, button_count=min(best_count, max_buttons))


def _is_progression(values: Sequence[int]) -> bool:
    return len(values) >= 3 and all(b - a == 1 for a, b in zip(values, values[1:]))


def classify_code(
    packets: Sequence[RawPacket],
    contexts: Sequence[str],
    *,
    channel: str = "code",
    exclude: Iterable[int] = (),
    max_values: int = DEFAULT_CODE_MAX_VALUES,
    context_values: Mapping[str, SemanticValue] | None = None,
) -> CodeMapping:
    """Pick a free byte that behaves like an enumeration.

    Candidates have between 2 and ``max_values`` distinct values that do not
    form a run of consecutive integers. The candidate that stays constant
    within the most gesture contexts wins. Each value is labeled with the
    context of the first packet it appeared in.
    """
    _require_packets(channel, packets)
    excluded = set(exclude)
    labels = DEFAULT_CONTEXT_VALUES if context_values is None else context_values

    best: CodeMapping | None = None
    best_score = -1
    for stats in analyze_bytes(packets):
        index = stats.byte_index
        if index in excluded or stats.is_constant:
            continue
        values = distinct_values(packets, index)
        if not 2 <= len(values) <= max_values or _is_progression(values):
            continue

        first_context: dict[int, str] = {}
        per_context: dict[str, set[int]] = {}
        for packet, context in zip(packets, contexts):
            first_context.setdefault(packet[index], context)
            per_context.setdefault(context, set()).add(packet[index])
        # A status byte holds one code for the whole of each gesture context.
        score = sum(1 for codes in per_context.values() if len(codes) == 1)
        logger.debug("%s: byte %d codes %s (score %d)", channel, index, values, score)
        if score > best_score:
            best_score = score
            best = CodeMapping(
                byte_index=index,
                values={
                    value: dict(labels.get(context, {"state": context}))
                    for value, context in sorted(first_context.items())
                },
            )

    if best is None:
        raise ClassificationAmbiguousError(channel, "no byte with a small set of discrete codes")
    return best


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

class ByteClassifier:
    """Accumulates channel mappings one gesture step at a time.

    Bytes claimed by a committed channel are never offered to later steps,
    and a mapping that would claim them is rejected.
    """

    def __init__(
        self,
        *,
        report_id_index: int | None = DEFAULT_REPORT_ID_INDEX,
        channel_kinds: Mapping[str, ChannelKind] | None = None,
        multi_byte_width: int = DEFAULT_MULTI_BYTE_WIDTH,
        bipolar_gap: int = DEFAULT_BIPOLAR_GAP,
        code_max_values: int = DEFAULT_CODE_MAX_VALUES,
        max_buttons: int = DEFAULT_MAX_BUTTONS,
        context_values: Mapping[str, SemanticValue] | None = None,
    ) -> None:
        self.report_id_index = report_id_index
        self.channel_kinds = dict(DEFAULT_CHANNEL_KINDS if channel_kinds is None else channel_kinds)
        self.multi_byte_width = multi_byte_width
        self.bipolar_gap = bipolar_gap
        self.code_max_values = code_max_values
        self.max_buttons = max_buttons
        self.context_values = dict(DEFAULT_CONTEXT_VALUES if context_values is None else context_values)

        self._mappings: DeviceByteCodeMappings = {}
        self._claimed: dict[int, str] = {}
        self._packet_length: int | None = None

    @property
    def mappings(self) -> DeviceByteCodeMappings:
        return dict(self._mappings)

    @property
    def claimed_bytes(self) -> dict[int, str]:
        return dict(self._claimed)

    @property
    def packet_length(self) -> int | None:
        return self._packet_length

    def kind_for(self, channel: str) -> ChannelKind:
        try:
            return self.channel_kinds[channel]
        except KeyError:
            raise ValueError(f"no channel kind configured for '{channel}'") from None

    def excluded_bytes(self) -> set[int]:
        excluded = set(self._claimed)
        if self.report_id_index is not None:
            excluded.add(self.report_id_index)
        return excluded

    def classify(
        self, channel: str, window: Window, kind: ChannelKind | None = None
    ) -> MappingSpec:
        """Classify one window without committing the result."""
        kind = kind or self.kind_for(channel)
        packets, contexts = _unpack(window)
        exclude = self.excluded_bytes()

        if kind is ChannelKind.RANGE:
            return classify_range(packets, channel=channel, exclude=exclude)
        if kind is ChannelKind.MULTI_BYTE:
            return classify_multi_byte(
                packets, channel=channel, exclude=exclude, width=self.multi_byte_width
            )
        if kind is ChannelKind.BIPOLAR:
            return classify_bipolar(
                packets, channel=channel, exclude=exclude, gap_threshold=self.bipolar_gap
            )
        if kind is ChannelKind.BIT_FLAGS:
            return classify_bit_flags(
                packets, channel=channel, exclude=exclude, max_buttons=self.max_buttons
            )
        return classify_code(
            packets,
            contexts,
            channel=channel,
            exclude=exclude,
            max_values=self.code_max_values,
            context_values=self.context_values,
        )

    def commit(self, channel: str, spec: MappingSpec, packet_length: int | None = None) -> None:
        """Add a finalized channel mapping.

        Raises:
            MappingConflictError: If the channel is already mapped differently,
                a byte belongs to another channel, or a byte is beyond the
                report length.
        """
        existing = self._mappings.get(channel)
        if existing is not None:
            if existing == spec:
                return
            raise MappingConflictError(channel, "channel is already mapped")

        length = packet_length if packet_length is not None else self._packet_length
        for index in spec.byte_indices:
            owner = self._claimed.get(index)
            if owner is not None:
                logger.warning("%s: byte %d already claimed by %s", channel, index, owner)
                raise MappingConflictError(
                    channel,
                    f"byte {index} is already claimed by '{owner}'",
                    byte_index=index,
                    owner=owner,
                )
            if index < 0 or (length is not None and index >= length):
                raise MappingConflictError(
                    channel, f"byte {index} is outside the report", byte_index=index
                )

        if packet_length is not None and self._packet_length is None:
            self._packet_length = packet_length
        self._mappings[channel] = spec
        for index in spec.byte_indices:
            self._claimed[index] = channel
        logger.info("%s mapped to %s %s", channel, spec.type, list(spec.byte_indices))

    def classify_step(
        self, channel: str, window: Window, kind: ChannelKind | None = None
    ) -> MappingSpec:
        """Classify a completed step and commit the result.

        Re-running a committed channel against the same window returns the
        committed mapping.
        """
        existing = self._mappings.get(channel)
        packets, contexts = _unpack(window)
        snapshot = CaptureSnapshot(label=channel, packets=packets, contexts=contexts)
        if existing is not None:
            # Bytes claimed by this channel must be offered again to reproduce it.
            released = {i: c for i, c in self._claimed.items() if c == channel}
            for index in released:
                del self._claimed[index]
            try:
                spec = self.classify(channel, snapshot, kind)
            finally:
                self._claimed.update(released)
        else:
            spec = self.classify(channel, snapshot, kind)
        self.commit(channel, spec, common_length(packets) or None)
        return spec
