"""Unit conversion helpers for page geometry measurements."""
from __future__ import annotations

MM_PER_POINT = 0.352778
MM_PER_PIXEL = 0.264583


def pt_to_mm(value: float) -> float:
    """Convert typographic points to millimetres."""
    return value * MM_PER_POINT


def px_to_mm(value: float) -> float:
    """Convert CSS pixels (96 dpi) to millimetres."""
    return value * MM_PER_PIXEL
