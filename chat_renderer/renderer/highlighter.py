"""Syntax highlighter collaborator producing inline-colored HTML spans."""
from __future__ import annotations

import html
from typing import Protocol

from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from chat_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

DEFAULT_STYLE = "monokai"


class Highlighter(Protocol):
    def highlight(self, code: str, language: str) -> str:
        """Return markup whose text equals ``code`` with per-token inline colors."""
        ...


class PygmentsHighlighter:
    """Highlight through Pygments with inline ``style="color: ..."`` spans."""

    def __init__(self, style: str = DEFAULT_STYLE) -> None:
        self._formatter = HtmlFormatter(noclasses=True, nowrap=True, style=style)

    def highlight(self, code: str, language: str) -> str:
        try:
            lexer = get_lexer_by_name(language, stripnl=False, ensurenl=False)
        except ClassNotFound:
            LOGGER.debug("No lexer for language %r; leaving code uncolored", language)
            return html.escape(code)
        return pygments_highlight(code, lexer, self._formatter)


class PlainHighlighter:
    """Pass-through highlighter used when coloring is disabled."""

    def highlight(self, code: str, language: str) -> str:
        return html.escape(code)
