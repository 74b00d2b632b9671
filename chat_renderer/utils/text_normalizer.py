"""
Text normalization utilities for scraped chat markup.

Handles special character folding, whitespace normalization, and the
reduction of text to the character repertoire of the PDF base fonts.
"""

import re
from typing import Optional

# Encoding used by the standard PDF base fonts (WinAnsi is a cp1252 superset
# for printable characters).
BASE_FONT_ENCODING = "cp1252"


class TextNormalizer:
    """Normalizes text extracted from chat markup before layout."""

    # Common web special characters that need normalization
    SPECIAL_CHARS = {
        '\u00a0': ' ',      # Non-breaking space -> regular space
        '\u2009': ' ',      # Thin space -> regular space
        '\u2007': ' ',      # Figure space -> regular space
        '\u2008': ' ',      # Punctuation space -> regular space
        '\u202f': ' ',      # Narrow no-break space -> regular space
        '\u200b': '',       # Zero-width space -> remove
        '\u200c': '',       # Zero-width non-joiner -> remove
        '\u200d': '',       # Zero-width joiner -> remove
        '\ufeff': '',       # Byte order mark -> remove
        '\u00ad': '',       # Soft hyphen -> remove
        '\u2011': '-',      # Non-breaking hyphen -> regular hyphen
        '\u2212': '-',      # Minus sign -> hyphen
        '\u2018': "'",      # Left single quotation mark
        '\u2019': "'",      # Right single quotation mark
        '\u201c': '"',      # Left double quotation mark
        '\u201d': '"',      # Right double quotation mark
        '\u2026': '...',    # Horizontal ellipsis
        '\u2192': '->',     # Rightwards arrow
        '\u2190': '<-',     # Leftwards arrow
        '\u2713': 'v',      # Check mark
        '\u2022': '-',      # Bullet
    }

    # Regex for collapsing multiple whitespace characters
    WHITESPACE_PATTERN = re.compile(r'\s+')

    # Regex for removing control characters (except tabs, newlines, carriage returns)
    CONTROL_CHARS_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')

    def __init__(self, preserve_whitespace: bool = False, fold_to_base_font: bool = True):
        """Initialize text normalizer.

        Args:
            preserve_whitespace: If True, keep whitespace exactly as given.
                                If False, collapse whitespace runs to single spaces.
            fold_to_base_font: Replace characters the PDF base fonts cannot
                               encode with '?'.
        """
        self.preserve_whitespace = preserve_whitespace
        self.fold_to_base_font = fold_to_base_font

    def normalize_text(self, text: Optional[str]) -> str:
        """Normalize a text fragment; never strips, so fragments can be joined."""
        if not text:
            return ""

        normalized = self._replace_special_chars(text)
        normalized = self._remove_control_chars(normalized)

        if not self.preserve_whitespace:
            normalized = self.WHITESPACE_PATTERN.sub(' ', normalized)

        if self.fold_to_base_font:
            normalized = fold_to_base_font(normalized)

        return normalized

    def normalize_code(self, code: Optional[str], tab_size: int = 4) -> str:
        """Normalize code text: unify newlines and expand tabs, keep spacing."""
        if not code:
            return ""
        normalized = code.replace('\r\n', '\n').replace('\r', '\n')
        normalized = normalized.expandtabs(tab_size)
        normalized = self.CONTROL_CHARS_PATTERN.sub('', normalized)
        for original in ('\u00a0', '\u200b', '\ufeff'):
            normalized = normalized.replace(original, self.SPECIAL_CHARS[original])
        if self.fold_to_base_font:
            normalized = fold_to_base_font(normalized)
        return normalized

    def _replace_special_chars(self, text: str) -> str:
        """Replace special Unicode characters with normalized equivalents."""
        for original, replacement in self.SPECIAL_CHARS.items():
            text = text.replace(original, replacement)
        return text

    def _remove_control_chars(self, text: str) -> str:
        """Remove control characters that shouldn't appear in document text."""
        return self.CONTROL_CHARS_PATTERN.sub('', text)


def fold_to_base_font(text: str) -> str:
    """Replace characters outside the base font encoding with '?'."""
    try:
        text.encode(BASE_FONT_ENCODING)
        return text
    except UnicodeEncodeError:
        return text.encode(BASE_FONT_ENCODING, errors="replace").decode(BASE_FONT_ENCODING)


def normalize_chat_text(text: Optional[str], preserve_whitespace: bool = False) -> str:
    """Convenience function to normalize a text fragment.

    Args:
        text: Text string to normalize
        preserve_whitespace: Whether to preserve exact whitespace formatting

    Returns:
        Normalized text string
    """
    return TextNormalizer(preserve_whitespace=preserve_whitespace).normalize_text(text)
