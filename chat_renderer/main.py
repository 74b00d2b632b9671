"""Entry-point for the chat markup to PDF pipeline."""
from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from chat_renderer.model.document_model import (
    ExportStage,
    NothingToExportError,
    ProgressCallback,
    ProgressEvent,
    RenderedDocument,
)
from chat_renderer.model.elements import ContentBlock
from chat_renderer.parser.block_measurer import DEFAULT_GEOMETRY, PageGeometry
from chat_renderer.parser.content_parser import ContentParser, Fragment, parse_fragments
from chat_renderer.renderer.highlighter import Highlighter
from chat_renderer.renderer.image_loader import DEFAULT_IMAGE_TIMEOUT_S, ImageLoader
from chat_renderer.renderer.pdf_renderer import DEFAULT_BACKGROUND_COLOR, PdfRenderer
from chat_renderer.utils.debug import DebugDumper
from chat_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

EXIT_NOTHING_TO_EXPORT = 2


@dataclass(slots=True)
class RenderOptions:
    """Per-export settings; ``None`` collaborators fall back to the defaults."""

    background_color: str = DEFAULT_BACKGROUND_COLOR
    text_color: Optional[str] = None
    image_timeout: float = DEFAULT_IMAGE_TIMEOUT_S
    image_root: Optional[Path] = None
    base_url: Optional[str] = None
    highlighter: Optional[Highlighter] = None
    image_loader: Optional[ImageLoader] = None
    geometry: PageGeometry = DEFAULT_GEOMETRY
    title: str = ""


def build_blocks(fragments: Iterable[Fragment], options: Optional[RenderOptions] = None) -> List[ContentBlock]:
    """Parse every fragment in order into one block list."""
    options = options or RenderOptions()
    return parse_fragments(fragments, base_url=options.base_url, parser=ContentParser())


def render_blocks(
    blocks: Sequence[ContentBlock],
    options: Optional[RenderOptions] = None,
    progress: Optional[ProgressCallback] = None,
) -> RenderedDocument:
    """Render already-parsed blocks; raises ``NothingToExportError`` when empty."""
    options = options or RenderOptions()
    if not blocks:
        raise NothingToExportError("No content blocks to export")
    renderer = PdfRenderer(
        options.geometry,
        highlighter=options.highlighter,
        image_loader=options.image_loader,
        image_timeout=options.image_timeout,
        image_root=options.image_root,
        background_color=options.background_color,
        text_color=options.text_color,
        title=options.title,
    )
    document = renderer.render(blocks, progress)
    if progress is not None:
        progress(ProgressEvent(stage=ExportStage.DONE, completed=document.page_count, total=document.page_count))
    return document


def export_pdf(
    fragments: Iterable[Fragment],
    options: Optional[RenderOptions] = None,
    progress: Optional[ProgressCallback] = None,
) -> RenderedDocument:
    """Run the markup → blocks → PDF pipeline for one ordered fragment list."""
    options = options or RenderOptions()
    fragments = list(fragments)
    if progress is not None:
        progress(ProgressEvent(stage=ExportStage.PARSING, completed=0, total=len(fragments)))
    blocks = build_blocks(fragments, options)
    LOGGER.info("Parsed %d fragments into %d blocks", len(fragments), len(blocks))
    if progress is not None:
        progress(ProgressEvent(stage=ExportStage.PARSING, completed=len(fragments), total=len(fragments)))
    return render_blocks(blocks, options, progress)


def _log_progress(event: ProgressEvent) -> None:
    LOGGER.debug("%s: %d/%d", event.stage.value, event.completed, event.total)


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry point; returns the process exit status."""
    parser = argparse.ArgumentParser(description="Render scraped chat markup into a paginated PDF")
    parser.add_argument("inputs", nargs="+", help="HTML fragment files, rendered in the given order")
    parser.add_argument("--output", "-o", help="Path of the PDF to write (defaults to the first input with .pdf)")
    parser.add_argument("--base-url", help="Base URL used to resolve relative image and link URLs")
    parser.add_argument("--background", default=DEFAULT_BACKGROUND_COLOR, help="Page background color")
    parser.add_argument("--text-color", help="Body text color (derived from the background by default)")
    parser.add_argument("--image-timeout", type=float, default=DEFAULT_IMAGE_TIMEOUT_S, help="Image fetch timeout in seconds")
    parser.add_argument(
        "--image-root", help="Directory local image paths may be read from (defaults to the first input's directory)"
    )
    parser.add_argument("--title", default="", help="Document title metadata")
    parser.add_argument("--debug", action="store_true", help="Dump the parsed blocks as JSON next to the output")
    args = parser.parse_args(argv)

    input_paths = [Path(value).resolve() for value in args.inputs]
    for path in input_paths:
        if not path.exists():
            raise FileNotFoundError(f"Input file not found: {path}")

    output_path = Path(args.output).resolve() if args.output else input_paths[0].with_suffix(".pdf")
    options = RenderOptions(
        background_color=args.background,
        text_color=args.text_color,
        image_timeout=args.image_timeout,
        image_root=Path(args.image_root) if args.image_root else input_paths[0].parent,
        base_url=args.base_url,
        title=args.title,
    )

    fragments = [path.read_text(encoding="utf-8") for path in input_paths]
    blocks = build_blocks(fragments, options)
    if args.debug:
        dumped = DebugDumper(output_path.parent / "debug").dump(blocks)
        LOGGER.info("Wrote parsed blocks to %s", dumped)

    try:
        document = render_blocks(blocks, options, _log_progress)
    except NothingToExportError as exc:
        LOGGER.error("Nothing to export: %s", exc)
        return EXIT_NOTHING_TO_EXPORT

    output_path.write_bytes(document.pdf)
    LOGGER.info("Wrote %d pages to %s", document.page_count, output_path)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(run())
