"""Drawing surface in millimetres with a top-left origin, backed by a ReportLab canvas."""
from __future__ import annotations

from typing import BinaryIO, Protocol

from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from chat_renderer.parser.block_measurer import DEFAULT_GEOMETRY, PageGeometry
from chat_renderer.renderer.utils import to_reportlab_color

FALLBACK_COLOR = "#000000"


class Surface(Protocol):
    """Operations the renderer needs from a page-based drawing target."""

    def fill_rect(self, x: float, y: float, width: float, height: float, color: str, radius: float = 0.0) -> None: ...

    def draw_text(self, text: str, x: float, baseline: float, font_name: str, font_size: float, color: str) -> None: ...

    def draw_line(self, x1: float, y1: float, x2: float, y2: float, color: str, width: float) -> None: ...

    def draw_image(self, image, x: float, y: float, width: float, height: float) -> None: ...

    def new_page(self) -> None: ...


class PdfSurface:
    """Translate top-left millimetre coordinates onto a ReportLab canvas."""

    def __init__(self, output: BinaryIO, geometry: PageGeometry = DEFAULT_GEOMETRY, title: str = "") -> None:
        self._geometry = geometry
        self._canvas = canvas.Canvas(output, pagesize=(geometry.page_width * mm, geometry.page_height * mm))
        if title:
            self._canvas.setTitle(title)

    def _y(self, y: float) -> float:
        return (self._geometry.page_height - y) * mm

    def fill_rect(self, x: float, y: float, width: float, height: float, color: str, radius: float = 0.0) -> None:
        if width <= 0 or height <= 0:
            return
        self._canvas.setFillColor(to_reportlab_color(color, FALLBACK_COLOR))
        bottom = self._y(y + height)
        if radius > 0:
            self._canvas.roundRect(x * mm, bottom, width * mm, height * mm, radius * mm, stroke=0, fill=1)
        else:
            self._canvas.rect(x * mm, bottom, width * mm, height * mm, stroke=0, fill=1)

    def draw_text(self, text: str, x: float, baseline: float, font_name: str, font_size: float, color: str) -> None:
        if not text:
            return
        self._canvas.setFont(font_name, font_size)
        self._canvas.setFillColor(to_reportlab_color(color, FALLBACK_COLOR))
        self._canvas.drawString(x * mm, self._y(baseline), text)

    def draw_line(self, x1: float, y1: float, x2: float, y2: float, color: str, width: float) -> None:
        self._canvas.setStrokeColor(to_reportlab_color(color, FALLBACK_COLOR))
        self._canvas.setLineWidth(width * mm)
        self._canvas.line(x1 * mm, self._y(y1), x2 * mm, self._y(y2))

    def draw_image(self, image, x: float, y: float, width: float, height: float) -> None:
        self._canvas.drawImage(
            image,
            x * mm,
            self._y(y + height),
            width=width * mm,
            height=height * mm,
            preserveAspectRatio=True,
            mask="auto",
        )

    def new_page(self) -> None:
        self._canvas.showPage()

    def finish(self) -> None:
        """Close the last page and write the document to the output stream."""
        self._canvas.save()
