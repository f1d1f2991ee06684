from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

try:
    import hid
except ImportError:
    hid = None

DIGITIZER_USAGE_PAGE: int = 0x0D

_FILTERED_DEVICE_NAMES: frozenset[str] = frozenset(
    {"usb receiver", "wireless receiver", "nano receiver", "unifying receiver"}
)
"""Receiver dongles that never carry tablet reports (lowercase)."""


@dataclass(frozen=True, slots=True)
class HidDeviceId:
    vendor_id: int
    product_id: int


@dataclass(frozen=True, slots=True)
class HidDeviceInfo:
    """Minimal HID device info needed for selection/opening."""

    device_id: HidDeviceId
    product_string: str
    path: Any  # hidapi uses an opaque bytes-ish path on Windows
    manufacturer_string: str = ""
    usage_page: int = 0
    usage: int = 0
    interface_number: int = -1

    @property
    def is_digitizer(self) -> bool:
        return self.usage_page == DIGITIZER_USAGE_PAGE


def hid_available() -> bool:
    return hid is not None


def enumerate_devices() -> list[HidDeviceInfo]:
    """Return HID interfaces that have a product name and are not receiver dongles."""
    if hid is None:
        return []
    devices = []
    for d in hid.enumerate():
        product = (d.get("product_string") or "").strip()
        if not product or product.lower() in _FILTERED_DEVICE_NAMES:
            continue
        devices.append(
            HidDeviceInfo(
                device_id=HidDeviceId(
                    vendor_id=int(d.get("vendor_id") or 0),
                    product_id=int(d.get("product_id") or 0),
                ),
                product_string=product,
                path=d.get("path"),
                manufacturer_string=(d.get("manufacturer_string") or "").strip(),
                usage_page=int(d.get("usage_page") or 0),
                usage=int(d.get("usage") or 0),
                interface_number=int(d.get("interface_number", -1)),
            )
        )
    return devices


def find_devices(vendor_id: int, product_id: int) -> list[HidDeviceInfo]:
    """Interfaces of one device, digitizer interfaces first."""
    matches = [
        d
        for d in enumerate_devices()
        if d.device_id == HidDeviceId(vendor_id=vendor_id, product_id=product_id)
    ]
    return sorted(matches, key=lambda d: not d.is_digitizer)


class HidSession:
    """Manage a single opened HID device."""

    def __init__(self) -> None:
        self._handle = None

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def open(self, device: HidDeviceInfo) -> None:
        if hid is None:
            raise RuntimeError("hidapi is not installed")
        self.close()
        handle = hid.device()
        if device.path:
            handle.open_path(device.path)
        else:
            handle.open(device.device_id.vendor_id, device.device_id.product_id)
        handle.set_nonblocking(True)
        self._handle = handle

    def close(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.close()
        finally:
            self._handle = None

    def read_reports(self, *, report_len: int, max_reads: int = 50) -> list[list[int]]:
        """Drain the read queue and return every pending report in arrival order."""
        if self._handle is None:
            return []
        reports: list[list[int]] = []
        for _ in range(max_reads):
            data = self._handle.read(int(report_len), timeout_ms=0)
            if not data:
                break
            reports.append(list(data))
        return reports

    def read_report(self, *, report_len: int, timeout_ms: int = 50) -> Optional[list[int]]:
        """Read a single report with optional blocking timeout.

        Args:
            report_len: Expected report length in bytes.
            timeout_ms: Timeout in milliseconds (0 = non-blocking).

        Returns:
            Report data or None if no data available.
        """
        if self._handle is None:
            return None
        data = self._handle.read(int(report_len), timeout_ms=timeout_ms)
        return data if data else None
