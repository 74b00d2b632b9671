"""Fetch and decode image bytes referenced by content blocks."""
from __future__ import annotations

import base64
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import unquote, unquote_to_bytes, urlparse

import requests
from reportlab.lib.utils import ImageReader

from chat_renderer.model.document_model import ImageLoadError
from chat_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

DEFAULT_IMAGE_TIMEOUT_S = 10.0
HEADERS = {"User-Agent": "chat-renderer/0.1 (+image fetch)"}


@dataclass(slots=True)
class LoadedImage:
    """Decoded image ready for drawing, with its natural size in pixels."""

    reader: ImageReader
    width_px: int
    height_px: int


class ImageLoader(Protocol):
    def load(self, src: str, timeout: float) -> LoadedImage:
        """Return the decoded image or raise ``ImageLoadError``."""
        ...


class DefaultImageLoader:
    """Load ``data:`` URIs and HTTP(S) resources with a timeout.

    Local paths and ``file:`` URIs are read only when ``local_root`` is given,
    and only for files inside that directory.
    """

    def __init__(self, session: Optional[requests.Session] = None, local_root: Optional[Path] = None) -> None:
        self._session = session or requests.Session()
        self._local_root = Path(local_root).resolve() if local_root is not None else None

    def load(self, src: str, timeout: float = DEFAULT_IMAGE_TIMEOUT_S) -> LoadedImage:
        if not src:
            raise ImageLoadError("Image has no source")
        data = self._fetch(src, timeout)
        try:
            reader = ImageReader(io.BytesIO(data))
            width, height = reader.getSize()
        except Exception as exc:
            raise ImageLoadError(f"Could not decode image {src[:80]!r}: {exc}") from exc
        if not width or not height:
            raise ImageLoadError(f"Image {src[:80]!r} has no pixels")
        return LoadedImage(reader=reader, width_px=int(width), height_px=int(height))

    def _fetch(self, src: str, timeout: float) -> bytes:
        if src.startswith("data:"):
            return self._decode_data_uri(src)

        parsed = urlparse(src)
        if parsed.scheme in ("http", "https"):
            try:
                response = self._session.get(src, headers=HEADERS, timeout=timeout)
                response.raise_for_status()
            except requests.RequestException as exc:
                raise ImageLoadError(f"Failed to download image {src}: {exc}") from exc
            return response.content

        if parsed.scheme not in ("", "file"):
            raise ImageLoadError(f"Unsupported image scheme {parsed.scheme!r} in {src[:80]!r}")
        path = self._local_path(unquote(parsed.path) if parsed.scheme == "file" else src)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise ImageLoadError(f"Failed to read image {path}: {exc}") from exc

    def _local_path(self, value: str) -> Path:
        if self._local_root is None:
            raise ImageLoadError(f"Local image {value[:80]!r} refused: no local image directory configured")
        path = (self._local_root / value).resolve()
        if not path.is_relative_to(self._local_root):
            raise ImageLoadError(f"Local image {value[:80]!r} is outside {self._local_root}")
        return path

    def _decode_data_uri(self, src: str) -> bytes:
        try:
            header, payload = src.split(",", 1)
        except ValueError as exc:
            raise ImageLoadError("Malformed data URI") from exc
        if ";base64" in header:
            try:
                return base64.b64decode(payload)
            except ValueError as exc:
                raise ImageLoadError(f"Invalid base64 image payload: {exc}") from exc
        return unquote_to_bytes(payload)
