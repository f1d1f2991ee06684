"""Capture windows for guided gesture steps.

A window buffers the raw reports that arrive while the operator performs
one gesture (e.g. a horizontal sweep). Packets are kept exactly as they
arrive: in order, duplicates included.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

RawPacket = tuple[int, ...]
"""One fixed-length HID report; index 0 normally holds the report id."""


def to_packet(data: Iterable[int]) -> RawPacket:
    """Normalize bytes/list/tuple report data into a ``RawPacket``.

    Raises:
        ValueError: If any value is outside 0..255.
    """
    packet = tuple(int(v) for v in data)
    for index, value in enumerate(packet):
        if not 0 <= value <= 255:
            raise ValueError(f"byte {index} out of range: {value}")
    return packet


@dataclass(frozen=True, slots=True)
class CaptureSnapshot:
    """Immutable view of a finished capture window."""

    label: str
    packets: tuple[RawPacket, ...]
    contexts: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.packets)

    def __iter__(self) -> Iterator[RawPacket]:
        return iter(self.packets)

    @property
    def packet_length(self) -> int | None:
        return len(self.packets[0]) if self.packets else None


class CaptureWindow:
    """Ordered packet buffer for the active gesture step.

    Each packet also records the gesture context that was active when it
    arrived. The context starts as the step label and can be switched
    mid-capture (hover -> contact -> button pressed) with ``set_context``.
    """

    def __init__(self, label: str) -> None:
        self._label = label
        self._context = label
        self._packets: list[RawPacket] = []
        self._contexts: list[str] = []
        self._frozen = False

    @property
    def label(self) -> str:
        return self._label

    @property
    def context(self) -> str:
        return self._context

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def packets(self) -> tuple[RawPacket, ...]:
        return tuple(self._packets)

    @property
    def contexts(self) -> tuple[str, ...]:
        return tuple(self._contexts)

    @property
    def packet_length(self) -> int | None:
        return len(self._packets[0]) if self._packets else None

    def __len__(self) -> int:
        return len(self._packets)

    def __iter__(self) -> Iterator[RawPacket]:
        return iter(tuple(self._packets))

    def set_context(self, context: str) -> None:
        self._context = context

    def append(self, packet: Iterable[int], context: str | None = None) -> None:
        if self._frozen:
            raise RuntimeError(f"capture window '{self._label}' is frozen")
        self._packets.append(to_packet(packet))
        self._contexts.append(context if context is not None else self._context)

    def extend(self, packets: Iterable[Iterable[int]]) -> None:
        for packet in packets:
            self.append(packet)

    def reset(self) -> None:
        """Discard buffered packets and reopen the window for capture."""
        self._packets = []
        self._contexts = []
        self._context = self._label
        self._frozen = False

    def freeze(self) -> CaptureSnapshot:
        """Stop accepting packets and return the captured data."""
        self._frozen = True
        return self.snapshot()

    def snapshot(self) -> CaptureSnapshot:
        return CaptureSnapshot(
            label=self._label,
            packets=tuple(self._packets),
            contexts=tuple(self._contexts),
        )
