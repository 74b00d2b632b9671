"""Convert scraped chat markup into an ordered list of content blocks."""
from __future__ import annotations

import re
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple, Union

from chat_renderer.model.elements import BlockType, ContentBlock, MessageStyles, TextRun
from chat_renderer.parser.language_detection import clean_code_content, detect_language, extract_code_content
from chat_renderer.parser.markup_tree import (
    MarkupNode,
    NodeKind,
    class_list,
    declared_background,
    declared_color,
    find_first,
    has_tag,
    inherited_color,
    is_element,
    is_hidden,
    iter_descendants,
    load_fragment,
    resolve_url,
    text_content,
)
from chat_renderer.parser.message_roles import (
    USER_ROLE,
    detect_message_role,
    find_content_root,
    snapshot_bubble_styles,
)
from chat_renderer.utils.logger import get_logger
from chat_renderer.utils.text_normalizer import TextNormalizer

LOGGER = get_logger(__name__)

DEFAULT_CODE_BACKGROUND = "#1e1e1e"
FALLBACK_TEXT_LIMIT = 10000
CODE_WRAPPER_CLASS = "exported-code-wrapper"

HEADING_TAGS = {f"h{level}": level for level in range(1, 7)}
LIST_TAGS = frozenset({"ol", "ul"})
CONTAINER_TAGS = frozenset({"div", "span", "article", "section", "main", "body", "[document]"})
SKIPPED_TAGS = frozenset({"script", "style", "noscript", "template", "button", "head", "title", "meta", "link"})
DOCUMENT_ROOTS = frozenset({"body", "[document]"})

_INTEGRAL_SIZE = re.compile(r"^\s*(\d+)(?:\.0+)?\s*(?:px)?\s*$")

Fragment = Union[str, MarkupNode]


class ContentParser:
    """Walk a markup tree and emit ``ContentBlock`` objects in document order.

    Parsing never raises: a node that fails to parse degrades to a plain-text
    paragraph, and a fragment that cannot be walked at all yields no blocks.
    """

    def __init__(self, normalizer: Optional[TextNormalizer] = None) -> None:
        self._normalizer = normalizer or TextNormalizer()
        self._code_normalizer = TextNormalizer(preserve_whitespace=True)

    # ------------------------------------------------------------------
    # Public API
    def parse(self, root: MarkupNode) -> List[ContentBlock]:
        """Return the blocks for one fragment root."""
        try:
            if root.kind is NodeKind.ELEMENT and root.tag in DOCUMENT_ROOTS:
                blocks = self._parse_children(root, inside_message=False)
            else:
                blocks = self._parse_node(root, inside_message=False)
        except Exception:  # pragma: no cover - adapters are expected to be well behaved
            LOGGER.exception("Failed to walk markup fragment; skipping it")
            return []
        LOGGER.debug("Parsed %d top-level blocks", len(blocks))
        return blocks

    # ------------------------------------------------------------------
    # Node dispatch
    def _parse_children(self, node: MarkupNode, inside_message: bool) -> List[ContentBlock]:
        blocks: List[ContentBlock] = []
        for child in node.children:
            if child.kind is NodeKind.TEXT:
                text = self._normalizer.normalize_text(child.text).strip()
                if text:
                    blocks.append(
                        ContentBlock(type=BlockType.PARAGRAPH, runs=[TextRun(text=text, color=inherited_color(node))])
                    )
                continue
            blocks.extend(self._parse_node(child, inside_message))
        return blocks

    def _parse_node(self, node: MarkupNode, inside_message: bool) -> List[ContentBlock]:
        if node.kind is NodeKind.TEXT:
            text = self._normalizer.normalize_text(node.text).strip()
            return [ContentBlock(type=BlockType.PARAGRAPH, runs=[TextRun(text=text)])] if text else []
        if is_hidden(node):
            LOGGER.debug("Skipping hidden <%s>", node.tag)
            return []
        if node.tag in SKIPPED_TAGS:
            return []
        try:
            return self._parse_element(node, inside_message)
        except Exception as exc:
            LOGGER.warning("Failed to parse <%s> (%s); falling back to plain text", node.tag, exc)
            return self._plain_text_fallback(node)

    def _parse_element(self, node: MarkupNode, inside_message: bool) -> List[ContentBlock]:
        tag = node.tag

        if tag == "pre" or CODE_WRAPPER_CLASS in class_list(node):
            pre = node if tag == "pre" else find_first(node, has_tag("pre"))
            return [self._parse_code_block(pre)] if pre is not None else []

        if tag in HEADING_TAGS:
            runs = self._extract_runs(node)
            if not runs:
                return []
            return [ContentBlock(type=BlockType.HEADING, level=HEADING_TAGS[tag], runs=runs)]

        if tag == "p":
            return self._parse_paragraph(node)

        if tag in LIST_TAGS:
            return [self._parse_list(node)]

        if tag == "img":
            image = self._parse_image(node)
            return [image] if image is not None else []

        if tag == "a" and node.attr("href"):
            runs = self._extract_runs(node)
            if not runs:
                return []
            return [ContentBlock(type=BlockType.LINK, href=resolve_url(node, node.attr("href")), runs=runs)]

        if tag == "blockquote":
            runs = self._extract_runs(node)
            return [ContentBlock(type=BlockType.BLOCKQUOTE, runs=runs)] if runs else []

        if tag == "hr":
            return [ContentBlock(type=BlockType.HORIZONTAL_RULE)]

        if tag == "br":
            return []

        if tag in CONTAINER_TAGS:
            return self._parse_container(node, inside_message)

        return self._plain_text_fallback(node)

    # ------------------------------------------------------------------
    # Block builders
    def _parse_container(self, node: MarkupNode, inside_message: bool) -> List[ContentBlock]:
        role = None if inside_message else detect_message_role(node)
        if role is None:
            return self._parse_children(node, inside_message)

        content_root = find_content_root(node)
        items = self._parse_children(content_root, inside_message=True)
        if not items:
            return []
        if role == USER_ROLE:
            return [
                ContentBlock(
                    type=BlockType.USER_MESSAGE,
                    role=role,
                    items=items,
                    styles=snapshot_bubble_styles(node),
                )
            ]
        return [ContentBlock(type=BlockType.ASSISTANT_MESSAGE, role=role, items=items, styles=MessageStyles())]

    def _parse_code_block(self, pre: MarkupNode) -> ContentBlock:
        code_node = find_first(pre, has_tag("code"))
        language = detect_language(pre, code_node).lower()
        code = clean_code_content(self._code_normalizer.normalize_code(extract_code_content(pre)))
        return ContentBlock(
            type=BlockType.CODE_BLOCK,
            code=code,
            language=language,
            background_color=declared_background(pre) or DEFAULT_CODE_BACKGROUND,
        )

    def _parse_paragraph(self, node: MarkupNode) -> List[ContentBlock]:
        blocks: List[ContentBlock] = []
        runs = self._extract_runs(node)
        if runs:
            blocks.append(ContentBlock(type=BlockType.PARAGRAPH, runs=runs))
        for candidate in iter_descendants(node):
            if has_tag("img")(candidate) and not is_hidden(candidate):
                image = self._parse_image(candidate)
                if image is not None:
                    blocks.append(image)
        return blocks

    def _parse_list(self, node: MarkupNode) -> ContentBlock:
        items: List[ContentBlock] = []
        for child in node.children:
            if not has_tag("li")(child) or is_hidden(child):
                continue
            runs = self._extract_runs(child, exclude_lists=True)
            if runs:
                items.append(ContentBlock(type=BlockType.LIST_ITEM, runs=runs))
            for nested in self._nested_lists(child):
                items.append(self._parse_list(nested))
        return ContentBlock(type=BlockType.LIST, ordered=node.tag == "ol", items=items)

    def _nested_lists(self, node: MarkupNode) -> Iterable[MarkupNode]:
        """Lists owned by ``node``: nested ``ol``/``ul`` without an intermediate list."""
        for child in node.children:
            if not is_element(child) or is_hidden(child):
                continue
            if child.tag in LIST_TAGS:
                yield child
            elif child.tag != "li":
                yield from self._nested_lists(child)

    def _parse_image(self, node: MarkupNode) -> Optional[ContentBlock]:
        src = (node.attr("src") or "").strip()
        if not src:
            LOGGER.debug("Skipping image without a source")
            return None
        return ContentBlock(
            type=BlockType.IMAGE,
            src=resolve_url(node, src),
            alt=self._normalizer.normalize_text(node.attr("alt") or "").strip(),
            width=_integral_size(node.attr("width")),
            height=_integral_size(node.attr("height")),
        )

    def _plain_text_fallback(self, node: MarkupNode) -> List[ContentBlock]:
        raw = text_content(node).strip()
        if not raw or len(raw) >= FALLBACK_TEXT_LIMIT:
            return []
        try:
            runs = self._extract_runs(node)
        except Exception as exc:
            LOGGER.debug("Styled run extraction failed for <%s>: %s", node.tag, exc)
            runs = [TextRun(text=self._normalizer.normalize_text(raw))]
        return [ContentBlock(type=BlockType.PARAGRAPH, runs=runs)] if runs else []

    # ------------------------------------------------------------------
    # Inline runs
    def _extract_runs(self, node: MarkupNode, exclude_lists: bool = False) -> List[TextRun]:
        """Collect styled runs below ``node`` with whitespace collapsed across runs."""
        pieces: List[Tuple[str, TextRun]] = []
        base = TextRun(text="", color=inherited_color(node.parent) if node.parent is not None else None)
        self._collect_runs(node, base, pieces, exclude_lists, is_root=True)
        return self._join_runs(pieces)

    def _collect_runs(
        self,
        node: MarkupNode,
        style: TextRun,
        pieces: List[Tuple[str, TextRun]],
        exclude_lists: bool,
        is_root: bool = False,
    ) -> None:
        if node.kind is NodeKind.TEXT:
            if node.text:
                pieces.append((node.text, style))
            return

        tag = node.tag
        if is_hidden(node) or tag in SKIPPED_TAGS or tag == "img":
            return
        if exclude_lists and not is_root and tag in LIST_TAGS:
            return
        if tag == "br":
            pieces.append((" ", style))
            return

        if tag in ("b", "strong"):
            style = replace(style, bold=True)
        if tag in ("i", "em"):
            style = replace(style, italic=True)
        if tag == "code" and not _inside_pre(node):
            style = replace(style, code=True)
        if tag == "a":
            href = (node.attr("href") or "").strip()
            if href and not href.startswith(("#", "javascript:")):
                style = replace(style, link=resolve_url(node, href))
        color = declared_color(node)
        if color:
            style = replace(style, color=color)

        for child in node.children:
            self._collect_runs(child, style, pieces, exclude_lists)

    def _join_runs(self, pieces: List[Tuple[str, TextRun]]) -> List[TextRun]:
        runs: List[TextRun] = []
        after_space = True
        for raw, style in pieces:
            text = self._normalizer.normalize_text(raw)
            if after_space:
                text = text.lstrip(" ")
            if not text:
                continue
            after_space = text.endswith(" ")
            if runs and _same_style(runs[-1], style):
                runs[-1] = replace(runs[-1], text=runs[-1].text + text)
            else:
                runs.append(replace(style, text=text))

        while runs and runs[-1].text.endswith(" "):
            trimmed = runs[-1].text.rstrip(" ")
            if trimmed:
                runs[-1] = replace(runs[-1], text=trimmed)
                break
            runs.pop()
        return runs


def _same_style(run: TextRun, style: TextRun) -> bool:
    return (run.bold, run.italic, run.code, run.link, run.color) == (
        style.bold,
        style.italic,
        style.code,
        style.link,
        style.color,
    )


def _inside_pre(node: MarkupNode) -> bool:
    current = node.parent
    while current is not None:
        if current.kind is NodeKind.ELEMENT and current.tag == "pre":
            return True
        current = current.parent
    return False


def _integral_size(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = _INTEGRAL_SIZE.match(value)
    if not match:
        return None
    size = int(match.group(1))
    return size if size > 0 else None


def parse_fragments(
    fragments: Iterable[Fragment],
    base_url: Optional[str] = None,
    parser: Optional[ContentParser] = None,
) -> List[ContentBlock]:
    """Parse raw markup strings or tree roots in order and concatenate their blocks."""
    parser = parser or ContentParser()
    blocks: List[ContentBlock] = []
    for index, fragment in enumerate(fragments):
        root = load_fragment(fragment, base_url) if isinstance(fragment, str) else fragment
        fragment_blocks = parser.parse(root)
        LOGGER.debug("Fragment %d produced %d blocks", index, len(fragment_blocks))
        blocks.extend(fragment_blocks)
    return blocks
