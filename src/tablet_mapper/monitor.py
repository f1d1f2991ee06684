"""Live decoding of reports from a mapped tablet."""

from __future__ import annotations

import logging
from collections.abc import Callable

from PySide6.QtCore import QTimer

from tablet_mapper.config import TabletConfig
from tablet_mapper.decoder import DecodedReport, PacketDecoder
from tablet_mapper.input.hid_backend import HidSession

logger = logging.getLogger(__name__)

POLL_INTERVAL_MS: int = 10
MAX_READS_PER_TICK: int = 50
DEFAULT_REPORT_LEN: int = 64


class DecodeMonitor:
    """Polls an open session and decodes every report with a config."""

    def __init__(
        self,
        *,
        session: HidSession,
        config: TabletConfig,
        report_len: int = DEFAULT_REPORT_LEN,
        on_decoded: Callable[[DecodedReport], None] | None = None,
    ) -> None:
        self._session = session
        self._decode = PacketDecoder.from_config(config)
        self._report_len = report_len
        self._on_decoded = on_decoded or self._log_report

        self._timer = QTimer()
        self._timer.setInterval(POLL_INTERVAL_MS)
        self._timer.timeout.connect(self.poll)

    @property
    def is_running(self) -> bool:
        return self._timer.isActive()

    def start(self) -> None:
        self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def poll(self) -> int:
        """Decode all pending reports; returns how many produced values."""
        if not self._session.is_open:
            return 0
        decoded = 0
        for report in self._session.read_reports(
            report_len=self._report_len, max_reads=MAX_READS_PER_TICK
        ):
            values = self._decode(report)
            if values:
                decoded += 1
                self._on_decoded(values)
        return decoded

    @staticmethod
    def _log_report(values: DecodedReport) -> None:
        logger.info("%s", values)
