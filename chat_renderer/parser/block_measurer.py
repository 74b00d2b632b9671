"""Measure the vertical footprint of content blocks for a given width."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from chat_renderer.model.elements import BlockType, ContentBlock, MeasuredBlock
from chat_renderer.parser.text_wrap import BODY_FONT, BOLD_FONT, wrap_code_segments, wrap_text
from chat_renderer.utils.units import px_to_mm, pt_to_mm

DEFAULT_PAGE_WIDTH_MM = 210.0  # A4
DEFAULT_PAGE_HEIGHT_MM = 297.0
DEFAULT_MARGIN_LEFT_MM = 20.0
DEFAULT_MARGIN_RIGHT_MM = 20.0
DEFAULT_MARGIN_TOP_MM = 25.0
DEFAULT_MARGIN_BOTTOM_MM = 25.0
DEFAULT_FONT_SIZE_BODY_PT = 11.0
DEFAULT_FONT_SIZE_CODE_PT = 9.0
DEFAULT_HEADING_SIZES_PT = (22.0, 18.0, 15.0, 13.0, 12.0, 11.0)
DEFAULT_LINE_HEIGHT_FACTOR = 1.5
DEFAULT_PARAGRAPH_SPACING_MM = 4.0
DEFAULT_HEADING_SPACING_BEFORE_MM = 8.0
DEFAULT_HEADING_SPACING_AFTER_MM = 4.0
DEFAULT_CODE_BLOCK_PADDING_MM = 8.0
DEFAULT_CODE_BLOCK_MARGIN_MM = 6.0
DEFAULT_LIST_INDENT_MM = 8.0
DEFAULT_MESSAGE_PADDING_MM = 10.0
DEFAULT_MESSAGE_MARGIN_MM = 8.0
DEFAULT_QUOTE_INDENT_MM = 6.0
DEFAULT_IMAGE_MAX_HEIGHT_MM = 150.0
DEFAULT_IMAGE_FALLBACK_HEIGHT_MM = 50.0
DEFAULT_HORIZONTAL_RULE_HEIGHT_MM = 8.0


@dataclass(frozen=True, slots=True)
class PageGeometry:
    """Page size, margins, typography and spacing shared by layout and rendering."""

    page_width: float = DEFAULT_PAGE_WIDTH_MM
    page_height: float = DEFAULT_PAGE_HEIGHT_MM
    margin_left: float = DEFAULT_MARGIN_LEFT_MM
    margin_right: float = DEFAULT_MARGIN_RIGHT_MM
    margin_top: float = DEFAULT_MARGIN_TOP_MM
    margin_bottom: float = DEFAULT_MARGIN_BOTTOM_MM
    font_size_body: float = DEFAULT_FONT_SIZE_BODY_PT
    font_size_code: float = DEFAULT_FONT_SIZE_CODE_PT
    heading_sizes: Tuple[float, ...] = DEFAULT_HEADING_SIZES_PT
    line_height_factor: float = DEFAULT_LINE_HEIGHT_FACTOR
    paragraph_spacing: float = DEFAULT_PARAGRAPH_SPACING_MM
    heading_spacing_before: float = DEFAULT_HEADING_SPACING_BEFORE_MM
    heading_spacing_after: float = DEFAULT_HEADING_SPACING_AFTER_MM
    code_block_padding: float = DEFAULT_CODE_BLOCK_PADDING_MM
    code_block_margin: float = DEFAULT_CODE_BLOCK_MARGIN_MM
    list_indent: float = DEFAULT_LIST_INDENT_MM
    message_padding: float = DEFAULT_MESSAGE_PADDING_MM
    message_margin: float = DEFAULT_MESSAGE_MARGIN_MM
    quote_indent: float = DEFAULT_QUOTE_INDENT_MM
    image_max_height: float = DEFAULT_IMAGE_MAX_HEIGHT_MM
    image_fallback_height: float = DEFAULT_IMAGE_FALLBACK_HEIGHT_MM
    horizontal_rule_height: float = DEFAULT_HORIZONTAL_RULE_HEIGHT_MM

    @property
    def content_width(self) -> float:
        return self.page_width - self.margin_left - self.margin_right

    @property
    def content_height(self) -> float:
        return self.page_height - self.margin_top - self.margin_bottom

    @property
    def body_line_height(self) -> float:
        return self.line_height(self.font_size_body)

    @property
    def code_line_height(self) -> float:
        return self.line_height(self.font_size_code)

    def line_height(self, font_size: float) -> float:
        return pt_to_mm(font_size) * self.line_height_factor

    def heading_size(self, level: Optional[int]) -> float:
        if level is None or not 1 <= level <= len(self.heading_sizes):
            return self.font_size_body
        return self.heading_sizes[level - 1]


DEFAULT_GEOMETRY = PageGeometry()


def scale_image_box(
    width_px: Optional[float],
    height_px: Optional[float],
    max_width: float,
    max_height: float = DEFAULT_IMAGE_MAX_HEIGHT_MM,
) -> Optional[Tuple[float, float]]:
    """Display size in millimetres for an image, or ``None`` when dimensions are unknown."""
    if not width_px or not height_px or width_px <= 0 or height_px <= 0:
        return None
    aspect_ratio = height_px / width_px
    width = min(max_width, px_to_mm(width_px))
    height = width * aspect_ratio
    if height > max_height:
        height = max_height
        width = height / aspect_ratio
    return width, height


class BlockMeasurer:
    """Pure height estimation; identical inputs always give identical results."""

    def __init__(self, geometry: PageGeometry = DEFAULT_GEOMETRY) -> None:
        self._geometry = geometry

    @property
    def geometry(self) -> PageGeometry:
        return self._geometry

    # ------------------------------------------------------------------
    # Public API
    def measure(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        handler = {
            BlockType.PARAGRAPH: self._measure_paragraph,
            BlockType.LINK: self._measure_paragraph,
            BlockType.LIST_ITEM: self._measure_list_item,
            BlockType.BLOCKQUOTE: self._measure_blockquote,
            BlockType.HEADING: self._measure_heading,
            BlockType.CODE_BLOCK: self._measure_code_block,
            BlockType.LIST: self._measure_list,
            BlockType.IMAGE: self._measure_image,
            BlockType.HORIZONTAL_RULE: self._measure_rule,
            BlockType.USER_MESSAGE: self._measure_message,
            BlockType.ASSISTANT_MESSAGE: self._measure_message,
        }.get(block.type)
        if handler is None:
            return MeasuredBlock(block=block, height=0.0, can_break=False)
        return handler(block, max(max_width, 0.0))

    def text_height(self, text: str, max_width: float, font_size: float, font_name: str = BODY_FONT) -> float:
        lines = wrap_text(text, max_width, font_size, font_name)
        return len(lines) * self._geometry.line_height(font_size)

    def code_content_height(self, code: str, max_width: float) -> float:
        geometry = self._geometry
        segments = wrap_code_segments(code, max_width - 2 * geometry.code_block_padding, geometry.font_size_code)
        return len(segments) * geometry.code_line_height

    # ------------------------------------------------------------------
    # Per-kind estimates
    def _measure_paragraph(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        geometry = self._geometry
        if not block.runs:
            return MeasuredBlock(block=block, height=0.0, can_break=False)
        height = self.text_height(block.text, max_width, geometry.font_size_body) + geometry.paragraph_spacing
        return MeasuredBlock(block=block, height=height, can_break=True, min_height=geometry.body_line_height)

    def _measure_list_item(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        geometry = self._geometry
        if not block.runs:
            return MeasuredBlock(block=block, height=0.0, can_break=False)
        height = self.text_height(block.text, max_width, geometry.font_size_body) + geometry.paragraph_spacing / 2
        return MeasuredBlock(block=block, height=height, can_break=True, min_height=geometry.body_line_height)

    def _measure_blockquote(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        geometry = self._geometry
        if not block.runs:
            return MeasuredBlock(block=block, height=0.0, can_break=False)
        width = max_width - geometry.quote_indent
        height = self.text_height(block.text, width, geometry.font_size_body) + geometry.paragraph_spacing
        return MeasuredBlock(block=block, height=height, can_break=True, min_height=geometry.body_line_height)

    def _measure_heading(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        geometry = self._geometry
        if not block.runs:
            return MeasuredBlock(block=block, height=0.0, can_break=False)
        font_size = geometry.heading_size(block.level)
        height = self.text_height(block.text, max_width, font_size, BOLD_FONT)
        height += geometry.heading_spacing_before + geometry.heading_spacing_after
        return MeasuredBlock(block=block, height=height, can_break=False)

    def _measure_code_block(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        geometry = self._geometry
        if not block.code:
            return MeasuredBlock(block=block, height=0.0, can_break=False)
        height = self.code_content_height(block.code, max_width) + 2 * geometry.code_block_padding
        # The drawn block also reserves its outer margins above and below.
        height += 2 * geometry.code_block_margin
        return MeasuredBlock(
            block=block,
            height=height,
            can_break=height > geometry.content_height * 0.5,
            min_height=2 * geometry.code_block_padding + 3 * geometry.code_line_height,
        )

    def _measure_list(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        geometry = self._geometry
        width = max_width - geometry.list_indent
        height = 0.0
        for item in block.items:
            if item.type is BlockType.LIST:
                height += self._measure_list(item, width).height
            elif item.runs:
                height += self.text_height(item.text, width, geometry.font_size_body)
                height += geometry.paragraph_spacing / 2
        return MeasuredBlock(block=block, height=height, can_break=True, min_height=geometry.body_line_height * 2)

    def _measure_image(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        geometry = self._geometry
        box = scale_image_box(block.width, block.height, max_width, geometry.image_max_height)
        if box is None:
            height = geometry.image_fallback_height
        else:
            height = box[1] + geometry.paragraph_spacing
        return MeasuredBlock(block=block, height=height, can_break=False)

    def _measure_rule(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        return MeasuredBlock(block=block, height=self._geometry.horizontal_rule_height, can_break=False)

    def _measure_message(self, block: ContentBlock, max_width: float) -> MeasuredBlock:
        geometry = self._geometry
        inner_width = max_width - 2 * geometry.message_padding
        height = 2 * geometry.message_padding + geometry.message_margin
        for item in block.items:
            height += self.measure(item, inner_width).height
        return MeasuredBlock(
            block=block,
            height=height,
            can_break=True,
            min_height=2 * geometry.message_padding + geometry.body_line_height,
        )


def measure_block(block: ContentBlock, max_width: float, geometry: PageGeometry = DEFAULT_GEOMETRY) -> MeasuredBlock:
    """Measure one block at ``max_width`` millimetres."""
    return BlockMeasurer(geometry).measure(block, max_width)
