"""Helpers for hexadecimal certificate serial numbers."""
from __future__ import annotations

import re

SERIAL_PATTERN = re.compile(r"^(?:0x)?[A-Fa-f0-9]+$")


def parse_serial(text: str) -> int | None:
    """Return the integer value of a hex serial, or None if *text* is not one.

    A leading ``0x`` is accepted; serials are unbounded integers.
    """
    text = text.strip()
    if not SERIAL_PATTERN.match(text):
        return None
    return int(text, 16)


def format_serial(serial: int) -> str:
    """Render *serial* the way the inventory log does, e.g. ``0x0004``."""
    return f"0x{serial:04x}"
