"""Render content blocks onto PDF pages with mid-block page breaks."""
from __future__ import annotations

import io
from bisect import bisect_right
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from chat_renderer.model.document_model import (
    ExportStage,
    ImageLoadError,
    ProgressCallback,
    ProgressEvent,
    RenderedDocument,
)
from chat_renderer.model.elements import (
    BlockType,
    ContentBlock,
    LayoutState,
    LinkAnnotation,
    MeasuredBlock,
    MessageStyles,
    TextRun,
)
from chat_renderer.parser.block_measurer import DEFAULT_GEOMETRY, BlockMeasurer, PageGeometry, scale_image_box
from chat_renderer.parser.page_layout import PageLayout
from chat_renderer.parser.text_wrap import (
    BODY_FONT,
    CODE_FONT,
    font_for,
    text_width,
    wrap_code_segments,
    wrap_text,
)
from chat_renderer.renderer.code_colors import DEFAULT_CODE_COLOR, code_line_chunks, extract_color_map
from chat_renderer.renderer.highlighter import Highlighter, PygmentsHighlighter
from chat_renderer.renderer.image_loader import DEFAULT_IMAGE_TIMEOUT_S, DefaultImageLoader, ImageLoader
from chat_renderer.renderer.link_annotator import LinkAnnotator
from chat_renderer.renderer.pdf_surface import PdfSurface, Surface
from chat_renderer.renderer.utils import is_light_color
from chat_renderer.utils.logger import get_logger
from chat_renderer.utils.units import pt_to_mm

LOGGER = get_logger(__name__)

DEFAULT_BACKGROUND_COLOR = "#ffffff"
LIGHT_THEME_TEXT_COLOR = "#1f2937"
DARK_THEME_TEXT_COLOR = "#f3f4f6"
MUTED_TEXT_COLOR = "#9ca3af"
BADGE_TEXT_COLOR = "#6b7280"
QUOTE_BORDER_COLOR = "#6b7280"
RULE_COLOR = "#4b5563"
LINK_COLOR = "#3b82f6"
LIGHT_CODE_TEXT_COLOR = "#1f2937"
INLINE_CODE_LIGHT = ("#f0f0f0", "#d63384")
INLINE_CODE_DARK = ("#2d2d2d", "#e879f9")

BASELINE_RATIO = 0.7
CODE_BLOCK_RADIUS_MM = 2.0
BUBBLE_RADIUS_MM = 3.0
BUBBLE_WIDTH_RATIO = 0.7
BADGE_FONT_SIZE_PT = 8.0
BADGE_BASELINE_OFFSET_MM = 5.0
PLACEHOLDER_FONT_SIZE_PT = 10.0
PLACEHOLDER_HEIGHT_MM = 10.0
PLACEHOLDER_BASELINE_OFFSET_MM = 5.0
RULE_OFFSET_MM = 4.0
RULE_WIDTH_MM = 0.3
QUOTE_BORDER_OFFSET_MM = 2.0
QUOTE_BORDER_WIDTH_MM = 0.8
LINK_UNDERLINE_WIDTH_MM = 0.2
LIST_MARKER_GAP_MM = 1.5
LIST_BULLET_OFFSET_MM = 4.0
IMAGE_PLACEHOLDER_TEXT = "[Image could not be loaded]"

LineHook = Callable[[float, float], None]


@dataclass(slots=True)
class RenderContext:
    """Horizontal extent and inherited colors for the block being drawn."""

    x: float
    max_width: float
    text_color: str
    background_color: str
    italic: bool = False


def default_text_color(background_color: str) -> str:
    return LIGHT_THEME_TEXT_COLOR if is_light_color(background_color) else DARK_THEME_TEXT_COLOR


class PdfRenderer:
    """Configured renderer; every ``render`` call runs an independent pass."""

    def __init__(
        self,
        geometry: PageGeometry = DEFAULT_GEOMETRY,
        *,
        highlighter: Optional[Highlighter] = None,
        image_loader: Optional[ImageLoader] = None,
        image_timeout: float = DEFAULT_IMAGE_TIMEOUT_S,
        image_root: Optional[Path] = None,
        background_color: str = DEFAULT_BACKGROUND_COLOR,
        text_color: Optional[str] = None,
        title: str = "",
    ) -> None:
        self._geometry = geometry
        self._highlighter = highlighter or PygmentsHighlighter()
        self._image_loader = image_loader or DefaultImageLoader(local_root=image_root)
        self._image_timeout = image_timeout
        self._background_color = background_color
        self._text_color = text_color or default_text_color(background_color)
        self._title = title

    def render(self, blocks: Sequence[ContentBlock], progress: Optional[ProgressCallback] = None) -> RenderedDocument:
        """Draw every block, then apply link annotations to the finished pages."""
        buffer = io.BytesIO()
        surface = PdfSurface(buffer, self._geometry, title=self._title)
        state = self.render_pages(blocks, surface, progress)
        surface.finish()

        _notify(progress, ExportStage.ANNOTATING, 0, len(state.links))
        pdf_bytes = LinkAnnotator(self._geometry).apply(buffer.getvalue(), state.links)
        LOGGER.info("Rendered %d blocks onto %d pages with %d links", len(blocks), state.page_number, len(state.links))
        return RenderedDocument(
            pdf=pdf_bytes,
            page_count=state.page_number,
            links=list(state.links),
        )

    def render_pages(
        self,
        blocks: Sequence[ContentBlock],
        surface: Surface,
        progress: Optional[ProgressCallback] = None,
    ) -> LayoutState:
        """Run the drawing pass on ``surface`` and return the final layout state."""
        render_pass = _RenderPass(
            surface=surface,
            geometry=self._geometry,
            highlighter=self._highlighter,
            image_loader=self._image_loader,
            image_timeout=self._image_timeout,
            background_color=self._background_color,
            text_color=self._text_color,
        )
        return render_pass.run(blocks, progress)


def _notify(progress: Optional[ProgressCallback], stage: ExportStage, completed: int, total: int) -> None:
    if progress is not None:
        progress(ProgressEvent(stage=stage, completed=completed, total=total))


class _DeferredDrawing:
    """Buffer draw calls so a background can be painted beneath them later."""

    def __init__(self) -> None:
        self._calls: List[Tuple[str, tuple, dict]] = []

    @property
    def is_empty(self) -> bool:
        return not self._calls

    def fill_rect(self, *args, **kwargs) -> None:
        self._calls.append(("fill_rect", args, kwargs))

    def draw_text(self, *args, **kwargs) -> None:
        self._calls.append(("draw_text", args, kwargs))

    def draw_line(self, *args, **kwargs) -> None:
        self._calls.append(("draw_line", args, kwargs))

    def draw_image(self, *args, **kwargs) -> None:
        self._calls.append(("draw_image", args, kwargs))

    def new_page(self) -> None:
        raise RuntimeError("Page transitions must go through the layout engine")

    def replay(self, surface: Surface) -> None:
        for name, args, kwargs in self._calls:
            getattr(surface, name)(*args, **kwargs)
        self._calls.clear()


@dataclass(slots=True)
class _Bubble:
    """Background of a user bubble, painted per page once that page's extent is known."""

    x: float
    width: float
    color: str
    top: float
    drawing: _DeferredDrawing

    def paint(self, surface: Surface, bottom: float) -> None:
        surface.fill_rect(self.x, self.top, self.width, bottom - self.top, self.color, BUBBLE_RADIUS_MM)
        self.drawing.replay(surface)

    def close_page(self, surface: Surface, page_bottom: float) -> None:
        # A page that received no content gets no background piece.
        if not self.drawing.is_empty:
            self.paint(surface, page_bottom)


class _RenderPass:
    """State for one drawing pass: surface, layout engine and the cursor."""

    def __init__(
        self,
        surface: Surface,
        geometry: PageGeometry,
        highlighter: Highlighter,
        image_loader: ImageLoader,
        image_timeout: float,
        background_color: str,
        text_color: str,
    ) -> None:
        self._page_surface = surface
        self._surface: Surface = surface
        self._bubble: Optional[_Bubble] = None
        self._geometry = geometry
        self._highlighter = highlighter
        self._image_loader = image_loader
        self._image_timeout = image_timeout
        self._background_color = background_color
        self._text_color = text_color
        self._measurer = BlockMeasurer(geometry)
        self._layout = PageLayout(geometry, on_new_page=self._start_page)
        self._state = self._layout.new_state()

    # ------------------------------------------------------------------
    # Pass driver
    def run(self, blocks: Sequence[ContentBlock], progress: Optional[ProgressCallback]) -> LayoutState:
        self._paint_page_background()
        context = RenderContext(
            x=self._geometry.margin_left,
            max_width=self._geometry.content_width,
            text_color=self._text_color,
            background_color=self._background_color,
        )
        total = len(blocks)
        self._render_sequence(
            context,
            blocks,
            on_block_done=lambda index: _notify(progress, ExportStage.RENDERING, index + 1, total),
        )
        return self._state

    def _start_page(self) -> None:
        if self._bubble is not None:
            self._bubble.close_page(self._page_surface, self._layout.page_bottom)
        self._page_surface.new_page()
        self._paint_page_background()

    def _paint_page_background(self) -> None:
        geometry = self._geometry
        self._page_surface.fill_rect(0, 0, geometry.page_width, geometry.page_height, self._background_color)

    def _render_sequence(
        self,
        context: RenderContext,
        blocks: Sequence[ContentBlock],
        on_block_done: Optional[Callable[[int], None]] = None,
    ) -> None:
        measured = [self._measurer.measure(block, context.max_width) for block in blocks]
        for index, current in enumerate(measured):
            following = measured[index + 1] if index + 1 < len(measured) else None
            self._layout.place(self._state, current, following)
            self._render_isolated(context, current)
            if on_block_done is not None:
                on_block_done(index)

    def _render_isolated(self, context: RenderContext, measured: MeasuredBlock) -> None:
        block = measured.block
        try:
            self._state.current_y = self._render_block(context, measured)
        except Exception as exc:
            LOGGER.warning("Failed to render %s block: %s", block.type.value, exc, exc_info=True)
            label = block.type.value.replace("-", " ")
            self._state.current_y = self._draw_placeholder(context, f"[{label} could not be rendered]")

    def _render_block(self, context: RenderContext, measured: MeasuredBlock) -> float:
        block = measured.block
        geometry = self._geometry
        if block.type in (BlockType.PARAGRAPH, BlockType.LINK):
            return self._render_paragraph(context, block, geometry.paragraph_spacing)
        if block.type is BlockType.LIST_ITEM:
            return self._render_paragraph(context, block, geometry.paragraph_spacing / 2)
        if block.type is BlockType.HEADING:
            return self._render_heading(context, block)
        if block.type is BlockType.CODE_BLOCK:
            return self._render_code_block(context, block)
        if block.type is BlockType.LIST:
            return self._render_list(context, block)
        if block.type is BlockType.BLOCKQUOTE:
            return self._render_blockquote(context, block)
        if block.type is BlockType.HORIZONTAL_RULE:
            return self._render_rule(context)
        if block.type is BlockType.IMAGE:
            return self._render_image(context, block)
        if block.is_message:
            return self._render_message(context, measured)
        LOGGER.debug("No renderer for block type %s", block.type)
        return self._state.current_y

    # ------------------------------------------------------------------
    # Text
    def _render_paragraph(self, context: RenderContext, block: ContentBlock, spacing: float) -> float:
        if not block.runs:
            return self._state.current_y
        runs = block.runs
        if block.type is BlockType.LINK and block.href:
            runs = [run if run.link else replace(run, link=block.href) for run in runs]
        return self._render_text_runs(context, runs, self._geometry.font_size_body) + spacing

    def _render_heading(self, context: RenderContext, block: ContentBlock) -> float:
        geometry = self._geometry
        font_size = geometry.heading_size(block.level)
        self._state.current_y += geometry.heading_spacing_before
        y = self._state.current_y
        if block.runs:
            y = self._render_text_runs(context, block.runs, font_size, bold=True)
        return y + geometry.heading_spacing_after

    def _render_blockquote(self, context: RenderContext, block: ContentBlock) -> float:
        geometry = self._geometry
        if not block.runs:
            return self._state.current_y
        quote_context = replace(
            context,
            x=context.x + geometry.quote_indent,
            max_width=context.max_width - geometry.quote_indent,
            text_color=MUTED_TEXT_COLOR,
            italic=True,
        )
        border_x = context.x + QUOTE_BORDER_OFFSET_MM

        def draw_border(line_top: float, line_height: float) -> None:
            self._surface.draw_line(
                border_x, line_top, border_x, line_top + line_height, QUOTE_BORDER_COLOR, QUOTE_BORDER_WIDTH_MM
            )

        y = self._render_text_runs(quote_context, block.runs, geometry.font_size_body, line_hook=draw_border)
        return y + geometry.paragraph_spacing

    def _render_text_runs(
        self,
        context: RenderContext,
        runs: Sequence[TextRun],
        font_size: float,
        bold: bool = False,
        line_hook: Optional[LineHook] = None,
    ) -> float:
        """Wrap the joined run text once, then draw each line run by run.

        Wrapped lines are exact slices of the joined text, separated by at
        most one consumed space, so a single offset walks both sequences.
        """
        state = self._state
        runs = [run for run in runs if run.text]
        line_height = self._geometry.line_height(font_size)
        full_text = "".join(run.text for run in runs)
        base_font = font_for(bold, context.italic)
        lines = wrap_text(full_text, context.max_width, font_size, base_font)

        run_starts: List[int] = []
        position = 0
        for run in runs:
            run_starts.append(position)
            position += len(run.text)

        y = state.current_y
        offset = 0
        for line in lines:
            if self._layout.needs_new_page(y, line_height):
                y = self._layout.add_new_page(state)

            if not full_text.startswith(line, offset) and full_text.startswith(" ", offset):
                offset += 1
            end = offset + len(line)

            if line_hook is not None:
                line_hook(y, line_height)

            x = context.x
            while offset < end:
                run_index = bisect_right(run_starts, offset) - 1
                run = runs[run_index]
                chunk_end = min(end, run_starts[run_index] + len(run.text))
                chunk = full_text[offset:chunk_end]
                x += self._draw_chunk(context, run, chunk, x, y, font_size, line_height, bold)
                offset = chunk_end
            y += line_height
        return y

    def _draw_chunk(
        self,
        context: RenderContext,
        run: TextRun,
        chunk: str,
        x: float,
        line_top: float,
        font_size: float,
        line_height: float,
        bold: bool,
    ) -> float:
        surface = self._surface
        state = self._state
        baseline = line_top + line_height * BASELINE_RATIO

        if run.code:
            code_size = font_size - 1
            width = text_width(chunk, code_size, CODE_FONT)
            box_color, text_color = INLINE_CODE_LIGHT if is_light_color(context.background_color) else INLINE_CODE_DARK
            surface.fill_rect(
                x - 0.5, baseline - pt_to_mm(code_size) * 0.8, width + 1, line_height * 0.9, box_color
            )
            surface.draw_text(chunk, x, baseline, CODE_FONT, code_size, text_color)
        else:
            font_name = font_for(bold or run.bold, context.italic or run.italic)
            width = text_width(chunk, font_size, font_name)
            color = run.color or (LINK_COLOR if run.link else context.text_color)
            surface.draw_text(chunk, x, baseline, font_name, font_size, color)

        if run.link and chunk.strip():
            underline_y = baseline + 0.5
            surface.draw_line(x, underline_y, x + width, underline_y, run.color or LINK_COLOR, LINK_UNDERLINE_WIDTH_MM)
            state.links.append(
                LinkAnnotation(page=state.page_number, x=x, y=line_top, width=width, height=line_height, url=run.link)
            )
        return width

    # ------------------------------------------------------------------
    # Code blocks
    def _render_code_block(self, context: RenderContext, block: ContentBlock) -> float:
        geometry = self._geometry
        state = self._state
        code = block.code or ""
        if not code:
            return state.current_y

        language = block.language or ""
        background = block.background_color or "#1e1e1e"
        padding = geometry.code_block_padding
        line_height = geometry.code_line_height
        segments = wrap_code_segments(code, context.max_width - 2 * padding, geometry.font_size_code)

        colors = {}
        if language:
            try:
                colors = extract_color_map(self._highlighter.highlight(code, language))
            except Exception as exc:
                LOGGER.warning("Highlighter failed for %s code: %s", language, exc)
        default_color = DEFAULT_CODE_COLOR if not is_light_color(background) else LIGHT_CODE_TEXT_COLOR
        chunks = code_line_chunks(segments, colors, default_color)

        y = state.current_y + geometry.code_block_margin
        index = 0
        first_piece = True
        while index < len(segments):
            text_top = y + padding
            fitting = 0
            while index + fitting < len(segments) and not self._layout.needs_new_page(
                text_top + fitting * line_height, line_height
            ):
                fitting += 1
            if index + fitting == len(segments):
                # The closing piece also needs room for its bottom padding.
                while fitting and self._layout.needs_new_page(text_top + fitting * line_height, padding):
                    fitting -= 1
            if fitting == 0:
                if y > geometry.margin_top + 1e-6:
                    y = self._layout.add_new_page(state)
                    continue
                fitting = 1

            is_last_piece = index + fitting == len(segments)
            height = padding + fitting * line_height + padding
            if not is_last_piece:
                height = max(min(height, self._layout.page_bottom - y), padding + fitting * line_height)
            self._surface.fill_rect(context.x, y, context.max_width, height, background, CODE_BLOCK_RADIUS_MM)

            if first_piece and language:
                badge_x = context.x + context.max_width - padding - text_width(language, BADGE_FONT_SIZE_PT, BODY_FONT)
                self._surface.draw_text(
                    language, badge_x, y + BADGE_BASELINE_OFFSET_MM, BODY_FONT, BADGE_FONT_SIZE_PT, BADGE_TEXT_COLOR
                )
            first_piece = False

            for line_number in range(index, index + fitting):
                baseline = text_top + (line_number - index) * line_height + line_height * BASELINE_RATIO
                x = context.x + padding
                for text, color in chunks[line_number]:
                    self._surface.draw_text(text, x, baseline, CODE_FONT, geometry.font_size_code, color)
                    x += text_width(text, geometry.font_size_code, CODE_FONT)

            index += fitting
            y = text_top + fitting * line_height
            if not is_last_piece:
                y = self._layout.add_new_page(state)
            else:
                y += padding
        return y + geometry.code_block_margin

    # ------------------------------------------------------------------
    # Lists
    def _render_list(self, context: RenderContext, block: ContentBlock) -> float:
        geometry = self._geometry
        state = self._state
        indent = geometry.list_indent
        text_x = context.x + indent
        item_context = replace(context, x=text_x, max_width=context.max_width - indent)
        line_height = geometry.body_line_height

        y = state.current_y
        number = 1
        for item in block.items:
            if item.type is BlockType.LIST:
                state.current_y = y
                y = self._render_list(item_context, item)
                continue
            if not item.runs:
                continue
            if self._layout.needs_new_page(y, line_height):
                y = self._layout.add_new_page(state)

            baseline = y + line_height * BASELINE_RATIO
            if block.ordered:
                marker = f"{number}."
                number += 1
                marker_x = text_x - LIST_MARKER_GAP_MM - text_width(marker, geometry.font_size_body, BODY_FONT)
            else:
                marker = "-"
                marker_x = context.x + indent - LIST_BULLET_OFFSET_MM
            self._surface.draw_text(marker, marker_x, baseline, BODY_FONT, geometry.font_size_body, context.text_color)

            state.current_y = y
            y = self._render_text_runs(item_context, item.runs, geometry.font_size_body)
            y += geometry.paragraph_spacing / 2
        return y

    # ------------------------------------------------------------------
    # Rules, images and placeholders
    def _render_rule(self, context: RenderContext) -> float:
        y = self._state.current_y + RULE_OFFSET_MM
        if self._layout.needs_new_page(y, RULE_OFFSET_MM):
            y = self._layout.add_new_page(self._state) + RULE_OFFSET_MM
        self._surface.draw_line(context.x, y, context.x + context.max_width, y, RULE_COLOR, RULE_WIDTH_MM)
        return y + RULE_OFFSET_MM

    def _render_image(self, context: RenderContext, block: ContentBlock) -> float:
        geometry = self._geometry
        state = self._state
        if not block.src:
            return state.current_y
        # Sequential fetch between block renders keeps cursor and page order deterministic.
        try:
            image = self._image_loader.load(block.src, self._image_timeout)
        except ImageLoadError as exc:
            LOGGER.warning("Image could not be loaded: %s", exc)
            return self._draw_placeholder(context, IMAGE_PLACEHOLDER_TEXT)

        box = scale_image_box(image.width_px, image.height_px, context.max_width, geometry.image_max_height)
        if box is None:
            return self._draw_placeholder(context, IMAGE_PLACEHOLDER_TEXT)
        width, height = box

        y = state.current_y
        if self._layout.needs_new_page(y, height + geometry.paragraph_spacing) and not self._layout.is_at_page_top(state):
            y = self._layout.add_new_page(state)
        image_x = context.x + (context.max_width - width) / 2
        self._surface.draw_image(image.reader, image_x, y, width, height)
        return y + height + geometry.paragraph_spacing

    def _draw_placeholder(self, context: RenderContext, text: str) -> float:
        state = self._state
        y = state.current_y
        if self._layout.needs_new_page(y, PLACEHOLDER_HEIGHT_MM):
            y = self._layout.add_new_page(state)
        font_name = font_for(italic=True)
        self._surface.draw_text(
            text, context.x, y + PLACEHOLDER_BASELINE_OFFSET_MM, font_name, PLACEHOLDER_FONT_SIZE_PT, MUTED_TEXT_COLOR
        )
        return y + PLACEHOLDER_HEIGHT_MM

    # ------------------------------------------------------------------
    # Messages
    def _render_message(self, context: RenderContext, measured: MeasuredBlock) -> float:
        block = measured.block
        styles = block.styles or MessageStyles()
        if block.type is BlockType.USER_MESSAGE and styles.background_color:
            return self._render_bubble(context, block, styles)

        geometry = self._geometry
        state = self._state
        state.current_y += geometry.message_margin / 2 + geometry.message_padding
        self._render_children(context, block.items)
        return state.current_y + geometry.message_padding + geometry.message_margin / 2

    def _render_children(self, context: RenderContext, items: Sequence[ContentBlock]) -> None:
        # The first child starts on the page the message was placed on.
        self._state.keep_with_previous = True
        self._render_sequence(context, items)
        self._state.keep_with_previous = False

    def _render_bubble(self, context: RenderContext, block: ContentBlock, styles: MessageStyles) -> float:
        geometry = self._geometry
        state = self._state
        padding = geometry.message_padding
        background = styles.background_color
        bubble_width = context.max_width * BUBBLE_WIDTH_RATIO
        inner_width = bubble_width - 2 * padding
        bubble_x = context.x + context.max_width - bubble_width

        content_height = 2 * padding + sum(self._measurer.measure(item, inner_width).height for item in block.items)

        y = state.current_y + geometry.message_margin / 2
        first_page = state.page_number
        bubble = _Bubble(x=bubble_x, width=bubble_width, color=background, top=y, drawing=_DeferredDrawing())

        def continue_bubble(page_state: LayoutState) -> None:
            bubble.top = geometry.margin_top
            page_state.current_y = bubble.top + padding

        inner_context = replace(
            context,
            x=bubble_x + padding,
            max_width=inner_width,
            text_color=styles.color or default_text_color(background),
            background_color=background,
        )
        state.current_y = y + padding
        outer_surface, outer_bubble = self._surface, self._bubble
        self._surface, self._bubble = bubble.drawing, bubble
        self._layout.push_page_start_hook(continue_bubble)
        try:
            self._render_children(inner_context, block.items)
        finally:
            self._layout.pop_page_start_hook()
            self._surface, self._bubble = outer_surface, outer_bubble
            end = state.current_y + padding
            if state.page_number == first_page:
                end = max(end, min(y + content_height, self._layout.page_bottom))
            bubble.paint(self._surface, min(end, self._layout.page_bottom))
        return end + geometry.message_margin / 2
