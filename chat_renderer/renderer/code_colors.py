"""Reconcile highlighter color spans with independently wrapped code lines."""
from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup, NavigableString, Tag

from chat_renderer.parser.markup_tree import parse_inline_style
from chat_renderer.parser.text_wrap import CodeSegment
from chat_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

DEFAULT_CODE_COLOR = "#d4d4d4"

ColorChunk = Tuple[str, str]


def extract_color_map(highlighted: str) -> Dict[int, str]:
    """Map character offsets of the highlighted text to their innermost color.

    Malformed markup never raises; it only yields fewer colors.
    """
    colors: Dict[int, str] = {}
    if not highlighted:
        return colors
    try:
        # Whitespace-only text between spans is only kept verbatim inside <pre>.
        soup = BeautifulSoup(f"<pre>{highlighted}</pre>", "html.parser")
        _walk(soup, 0, colors)
    except Exception as exc:
        LOGGER.warning("Could not read highlighter output: %s", exc)
        return {}
    return colors


def _walk(node, position: int, colors: Dict[int, str]) -> int:
    for child in node.children:
        if isinstance(child, NavigableString):
            position += len(str(child))
            continue
        if not isinstance(child, Tag):
            continue
        color = parse_inline_style(child.get("style")).get("color")
        start = position
        position = _walk(child, position, colors)
        if color:
            for offset in range(start, position):
                # Inner spans are visited first and win over their ancestors.
                colors.setdefault(offset, color)
    return position


def split_line_colors(
    segment: CodeSegment,
    colors: Dict[int, str],
    default_color: str = DEFAULT_CODE_COLOR,
) -> List[ColorChunk]:
    """Split one wrapped line into color-contiguous chunks by original offset."""
    chunks: List[ColorChunk] = []
    current_color: Optional[str] = None
    current = ""
    for index, char in enumerate(segment.text):
        color = colors.get(segment.start + index, default_color)
        if current and color != current_color:
            chunks.append((current, current_color))
            current = ""
        current_color = color
        current += char
    if current:
        chunks.append((current, current_color))
    return chunks


def code_line_chunks(
    segments: Sequence[CodeSegment],
    colors: Dict[int, str],
    default_color: str = DEFAULT_CODE_COLOR,
) -> List[List[ColorChunk]]:
    return [split_line_colors(segment, colors, default_color) for segment in segments]


def reassemble(segments: Sequence[CodeSegment], chunks: Sequence[Sequence[ColorChunk]]) -> str:
    """Join rendered chunks back into code text, restoring the original newlines."""
    parts: List[str] = []
    for segment, line_chunks in zip(segments, chunks):
        parts.append("".join(text for text, _ in line_chunks))
        if segment.ends_line:
            parts.append("\n")
    text = "".join(parts)
    return text[:-1] if text.endswith("\n") else text
