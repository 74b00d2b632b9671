"""Finished document payload, progress events, and export errors."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List

from chat_renderer.model.elements import LinkAnnotation


class NothingToExportError(ValueError):
    """Raised when the input fragments produce no content blocks at all."""


class ImageLoadError(RuntimeError):
    """Raised by image loaders when bytes cannot be fetched or decoded."""


class ExportStage(str, Enum):
    PARSING = "parsing"
    RENDERING = "rendering"
    ANNOTATING = "annotating"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    """Structured progress notification emitted during an export."""

    stage: ExportStage
    completed: int
    total: int


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass(slots=True)
class RenderedDocument:
    """Immutable result of one conversion: PDF bytes plus resolved links."""

    pdf: bytes
    page_count: int
    links: List[LinkAnnotation] = field(default_factory=list)
