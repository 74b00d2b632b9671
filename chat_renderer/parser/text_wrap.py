"""Greedy word wrapping for body text and newline-preserving wrapping for code.

Widths come from the ReportLab base-font metrics and are expressed in
millimetres so that the measurer and the renderer agree on every line break.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

from reportlab.pdfbase.pdfmetrics import stringWidth

from chat_renderer.utils.units import pt_to_mm

BODY_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"
ITALIC_FONT = "Helvetica-Oblique"
BOLD_ITALIC_FONT = "Helvetica-BoldOblique"
CODE_FONT = "Courier"

CODE_BREAK_CHARS = (" ", ",", ";", "(", "{", "[")


@dataclass(frozen=True, slots=True)
class CodeSegment:
    """One wrapped code line and where it starts in the original code text."""

    text: str
    start: int
    ends_line: bool


def font_for(bold: bool = False, italic: bool = False) -> str:
    if bold and italic:
        return BOLD_ITALIC_FONT
    if bold:
        return BOLD_FONT
    if italic:
        return ITALIC_FONT
    return BODY_FONT


def text_width(text: str, font_size: float, font_name: str = BODY_FONT) -> float:
    """Rendered width of ``text`` in millimetres."""
    if not text:
        return 0.0
    return pt_to_mm(stringWidth(text, font_name, font_size))


def _fitting_prefix(text: str, max_width: float, font_size: float, font_name: str) -> int:
    """Length of the longest prefix of ``text`` that fits; always at least one character."""
    width = 0.0
    for index, char in enumerate(text):
        width += text_width(char, font_size, font_name)
        if width > max_width:
            return max(index, 1)
    return len(text)


def wrap_text(text: str, max_width: float, font_size: float, font_name: str = BODY_FONT) -> List[str]:
    """Wrap ``text`` at single spaces.

    Every returned line is an exact slice of ``text``. Consecutive lines are
    separated either by exactly one consumed space (a word break) or by
    nothing (an overlong word broken at the width). Empty text yields ``[""]``.
    """
    if not text:
        return [""]

    lines: List[str] = []
    current = ""
    has_current = False
    for word in text.split(" "):
        candidate = f"{current} {word}" if has_current else word
        if has_current and text_width(candidate, font_size, font_name) > max_width:
            lines.append(current)
            current, has_current = word, True
        else:
            current, has_current = candidate, True

        while text_width(current, font_size, font_name) > max_width and len(current) > 1 and " " not in current:
            cut = _fitting_prefix(current, max_width, font_size, font_name)
            lines.append(current[:cut])
            current = current[cut:]

    lines.append(current)
    return lines


def wrap_code_segments(code: str, max_width: float, font_size: float, font_name: str = CODE_FONT) -> List[CodeSegment]:
    """Wrap code preserving explicit newlines; segments carry original offsets."""
    segments: List[CodeSegment] = []
    offset = 0
    for line in code.split("\n"):
        if not line or text_width(line, font_size, font_name) <= max_width:
            segments.append(CodeSegment(text=line, start=offset, ends_line=True))
            offset += len(line) + 1
            continue

        remaining = line
        position = offset
        while remaining:
            if text_width(remaining, font_size, font_name) <= max_width:
                cut = len(remaining)
            else:
                cut = _fitting_prefix(remaining, max_width, font_size, font_name)
                chunk = remaining[:cut]
                last_break = max(chunk.rfind(char) for char in CODE_BREAK_CHARS)
                if last_break > cut * 0.5:
                    cut = last_break + 1
            piece = remaining[:cut]
            remaining = remaining[cut:]
            segments.append(CodeSegment(text=piece, start=position, ends_line=not remaining))
            position += len(piece)
        offset += len(line) + 1
    return segments