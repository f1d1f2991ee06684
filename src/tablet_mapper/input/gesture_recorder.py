"""Capture of guided gesture steps from an open HID session.

Reports are drained into the active capture window on a Qt timer. The
operator decides when a step is complete; there are no internal timeouts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from PySide6.QtCore import QTimer

from tablet_mapper.errors import ClassificationError
from tablet_mapper.input.capture import CaptureWindow, RawPacket, to_packet
from tablet_mapper.input.classifier import ByteClassifier, ChannelKind
from tablet_mapper.input.hid_backend import HidSession
from tablet_mapper.mappings import MappingSpec

logger = logging.getLogger(__name__)

CAPTURE_INTERVAL_MS: int = 20
"""Timer interval (ms) between buffer drains."""

MAX_READS_PER_TICK: int = 50
"""Maximum HID reads per tick to drain the buffer."""


class GestureRecorder:
    """Records one gesture step at a time and classifies it on completion.

    Typical use::

        recorder.start("x")            # operator sweeps horizontally
        recorder.complete()            # -> on_step_classified("x", spec)
        recorder.start("status")
        recorder.set_context("hover")
        recorder.set_context("contact")
        recorder.complete()
    """

    def __init__(
        self,
        *,
        session: HidSession,
        classifier: ByteClassifier,
        get_report_len: Callable[[], int],
        on_status_update: Callable[[str], None] | None = None,
        on_packet_captured: Callable[[RawPacket, int], None] | None = None,
        on_step_classified: Callable[[str, MappingSpec], None] | None = None,
        on_step_failed: Callable[[str, ClassificationError], None] | None = None,
    ) -> None:
        """Initialize the recorder.

        Args:
            session: Open HID session for the tablet.
            classifier: Classifier that accumulates the mapping set.
            get_report_len: Callback returning the current report length.
            on_status_update: Callback for status messages.
            on_packet_captured: Callback per packet (packet, packets in window).
            on_step_classified: Callback when a step produced a mapping.
            on_step_failed: Callback when a step could not be classified.
        """
        self._session = session
        self._classifier = classifier
        self._get_report_len = get_report_len
        self._on_status_update = on_status_update or (lambda _: None)
        self._on_packet_captured = on_packet_captured or (lambda _, __: None)
        self._on_step_classified = on_step_classified or (lambda _, __: None)
        self._on_step_failed = on_step_failed or (lambda _, __: None)

        self._window: CaptureWindow | None = None
        self._kind: ChannelKind | None = None

        self._timer = QTimer()
        self._timer.setInterval(CAPTURE_INTERVAL_MS)
        self._timer.timeout.connect(self._capture_sample)

    @property
    def is_active(self) -> bool:
        """Return True if a step is being recorded."""
        return self._window is not None

    @property
    def window(self) -> CaptureWindow | None:
        return self._window

    @property
    def classifier(self) -> ByteClassifier:
        return self._classifier

    def start(self, channel: str, kind: ChannelKind | None = None) -> bool:
        """Begin recording the gesture step for ``channel``.

        Returns:
            True if recording started, False if no device is open or a step
            is already running.
        """
        if not self._session.is_open:
            self._on_status_update(f"Cannot record {channel}: tablet not connected.")
            return False
        if self._window is not None:
            self._on_status_update("A step is already being recorded.")
            return False

        self._window = CaptureWindow(channel)
        self._kind = kind
        self._on_status_update(f"Recording {channel}...")
        self._timer.start()
        return True

    def set_context(self, context: str) -> None:
        """Label the packets that arrive from now on (e.g. 'hover', 'contact')."""
        if self._window is not None:
            self._window.set_context(context)

    def reset(self) -> None:
        """Drop the packets of the current step and keep recording."""
        if self._window is not None:
            self._window.reset()
            self._on_status_update(f"Restarted {self._window.label}.")

    def cancel(self) -> None:
        """Stop recording and discard the current step."""
        self._timer.stop()
        self._window = None
        self._kind = None

    def complete(self) -> MappingSpec | None:
        """Freeze the current window, classify it and commit the mapping."""
        self._timer.stop()
        window, kind = self._window, self._kind
        self._window, self._kind = None, None
        if window is None:
            return None

        snapshot = window.freeze()
        channel = window.label
        try:
            spec = self._classifier.classify_step(channel, snapshot, kind)
        except ClassificationError as exc:
            logger.warning("Step %s failed: %s", channel, exc)
            self._on_status_update(f"{channel} could not be detected: {exc}")
            self._on_step_failed(channel, exc)
            return None

        self._on_status_update(
            f"{channel} detected at byte(s) {list(spec.byte_indices)} ({len(snapshot)} packets)."
        )
        self._on_step_classified(channel, spec)
        return spec

    def _capture_sample(self) -> None:
        """Move pending reports into the active window."""
        window = self._window
        if window is None or window.is_frozen or not self._session.is_open:
            return

        report_len = self._get_report_len()
        reports = self._session.read_reports(report_len=report_len, max_reads=MAX_READS_PER_TICK)
        if not reports:
            report = self._session.read_report(report_len=report_len, timeout_ms=15)
            reports = [report] if report else []

        for report in reports:
            packet = to_packet(report)
            window.append(packet)
            self._on_packet_captured(packet, len(window))
