"""Report capture and byte classification.

Exports:
    CaptureWindow: Packet buffer for one gesture step.
    ByteStats: Per-byte statistics over a window.
    ByteClassifier: Accumulates channel mappings step by step.
    ChannelKind: Encoding families the classifier can detect.
"""

from .byte_stats import ByteStats, analyze_bytes
from .capture import CaptureSnapshot, CaptureWindow, RawPacket, to_packet
from .classifier import ByteClassifier, ChannelKind, DetectedButtons

__all__ = [
    "ByteClassifier",
    "ByteStats",
    "CaptureSnapshot",
    "CaptureWindow",
    "ChannelKind",
    "DetectedButtons",
    "RawPacket",
    "analyze_bytes",
    "to_packet",
]
