"""Second pass that turns collected link regions into PDF link annotations."""
from __future__ import annotations

import io
from typing import Sequence

from pypdf import PdfReader, PdfWriter
from pypdf.annotations import Link
from reportlab.lib.units import mm

from chat_renderer.model.elements import LinkAnnotation
from chat_renderer.parser.block_measurer import DEFAULT_GEOMETRY, PageGeometry
from chat_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)


class LinkAnnotator:
    """Apply ``LinkAnnotation`` regions once every page of the document exists."""

    def __init__(self, geometry: PageGeometry = DEFAULT_GEOMETRY) -> None:
        self._geometry = geometry

    def apply(self, pdf_bytes: bytes, links: Sequence[LinkAnnotation]) -> bytes:
        if not links:
            return pdf_bytes

        writer = PdfWriter(clone_from=PdfReader(io.BytesIO(pdf_bytes)))
        page_total = len(writer.pages)
        applied = 0
        for link in links:
            page_index = link.page - 1
            if not 0 <= page_index < page_total:
                LOGGER.warning("Dropping link to %s on missing page %d", link.url, link.page)
                continue
            writer.add_annotation(page_number=page_index, annotation=Link(rect=self.to_pdf_rect(link), url=link.url))
            applied += 1

        output = io.BytesIO()
        writer.write(output)
        LOGGER.debug("Applied %d link annotations across %d pages", applied, page_total)
        return output.getvalue()

    def to_pdf_rect(self, link: LinkAnnotation) -> tuple[float, float, float, float]:
        """Convert a top-left millimetre region into a bottom-left point rectangle."""
        page_height = self._geometry.page_height
        left = link.x * mm
        right = (link.x + link.width) * mm
        bottom = (page_height - link.y - link.height) * mm
        top = (page_height - link.y) * mm
        return left, bottom, right, top
