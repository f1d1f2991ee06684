"""Tablet Mapper: learn and decode graphics-tablet HID reports."""
