"""Generic markup tree consumed by the content parser, plus an HTML adapter.

The parser only relies on the small ``MarkupNode`` capability below (node
kind, tag, attributes, children, declared style lookup). ``load_fragment``
supplies it for raw markup strings through BeautifulSoup.
"""
from __future__ import annotations

import re
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, NavigableString, ProcessingInstruction, Tag
from reportlab.lib.colors import getAllNamedColors

from chat_renderer.utils.logger import get_logger

LOGGER = get_logger(__name__)

_STYLE_DECLARATION = re.compile(r"\s*([-\w]+)\s*:\s*([^;]+)")
_SKIPPED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)


class NodeKind(str, Enum):
    ELEMENT = "element"
    TEXT = "text"


class MarkupNode(Protocol):
    """Minimal tree capability required by the content parser."""

    @property
    def kind(self) -> NodeKind: ...

    @property
    def tag(self) -> str: ...

    @property
    def text(self) -> str: ...

    @property
    def parent(self) -> Optional["MarkupNode"]: ...

    @property
    def children(self) -> Sequence["MarkupNode"]: ...

    @property
    def base_url(self) -> Optional[str]: ...

    def attr(self, name: str) -> Optional[str]: ...

    def style(self, prop: str) -> Optional[str]: ...


class SoupNode:
    """Adapter exposing a BeautifulSoup node through ``MarkupNode``."""

    __slots__ = ("_node", "_parent", "_children", "_styles", "_base_url")

    def __init__(self, node, parent: Optional["SoupNode"] = None, base_url: Optional[str] = None) -> None:
        self._node = node
        self._parent = parent
        self._children: Optional[List[SoupNode]] = None
        self._styles: Optional[Dict[str, str]] = None
        self._base_url = base_url

    @property
    def kind(self) -> NodeKind:
        return NodeKind.TEXT if isinstance(self._node, NavigableString) else NodeKind.ELEMENT

    @property
    def tag(self) -> str:
        if self.kind is NodeKind.TEXT:
            return "#text"
        return (self._node.name or "").lower()

    @property
    def text(self) -> str:
        if self.kind is NodeKind.TEXT:
            return str(self._node)
        return self._node.get_text()

    @property
    def parent(self) -> Optional["SoupNode"]:
        return self._parent

    @property
    def children(self) -> Sequence["SoupNode"]:
        if self._children is None:
            self._children = []
            if isinstance(self._node, Tag):
                for child in self._node.children:
                    if isinstance(child, _SKIPPED_STRINGS):
                        continue
                    if isinstance(child, (Tag, NavigableString)):
                        self._children.append(SoupNode(child, parent=self, base_url=self._base_url))
        return self._children

    @property
    def base_url(self) -> Optional[str]:
        return self._base_url

    def attr(self, name: str) -> Optional[str]:
        if not isinstance(self._node, Tag):
            return None
        value = self._node.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def style(self, prop: str) -> Optional[str]:
        if self._styles is None:
            self._styles = parse_inline_style(self.attr("style"))
        return self._styles.get(prop.lower())

    def __repr__(self) -> str:
        return f"SoupNode({self.tag!r})"


def parse_inline_style(style: Optional[str]) -> Dict[str, str]:
    """Parse a ``style`` attribute into lower-cased property declarations."""
    declarations: Dict[str, str] = {}
    if not style:
        return declarations
    for chunk in style.split(";"):
        match = _STYLE_DECLARATION.match(chunk)
        if match:
            value = match.group(2).replace("!important", "").strip()
            declarations[match.group(1).lower()] = value
    return declarations


def load_fragment(markup: str, base_url: Optional[str] = None) -> SoupNode:
    """Parse raw markup into the generic tree; full documents yield ``body``."""
    soup = BeautifulSoup(markup or "", "html.parser")
    root = soup.body if soup.body is not None else soup
    LOGGER.debug("Loaded markup fragment of %d characters", len(markup or ""))
    return SoupNode(root, base_url=base_url)


# ----------------------------------------------------------------------
# Traversal helpers over any MarkupNode implementation


def is_element(node: MarkupNode) -> bool:
    return node.kind is NodeKind.ELEMENT


def class_list(node: MarkupNode) -> List[str]:
    value = node.attr("class") if is_element(node) else None
    return value.split() if value else []


def class_string(node: MarkupNode) -> str:
    return " ".join(class_list(node))


def iter_descendants(node: MarkupNode) -> Iterator[MarkupNode]:
    """Depth-first, document-order walk below ``node``."""
    for child in node.children:
        yield child
        yield from iter_descendants(child)


def find_first(node: MarkupNode, predicate: Callable[[MarkupNode], bool]) -> Optional[MarkupNode]:
    for candidate in iter_descendants(node):
        if predicate(candidate):
            return candidate
    return None


def closest(node: MarkupNode, predicate: Callable[[MarkupNode], bool]) -> Optional[MarkupNode]:
    """Return ``node`` or its nearest ancestor matching ``predicate``."""
    current: Optional[MarkupNode] = node
    while current is not None:
        if is_element(current) and predicate(current):
            return current
        current = current.parent
    return None


def has_tag(*tags: str) -> Callable[[MarkupNode], bool]:
    wanted = {tag.lower() for tag in tags}
    return lambda node: is_element(node) and node.tag in wanted


def text_content(node: MarkupNode, exclude: Optional[Callable[[MarkupNode], bool]] = None) -> str:
    """Concatenated text below ``node``, skipping subtrees matched by ``exclude``."""
    if node.kind is NodeKind.TEXT:
        return node.text
    parts: List[str] = []
    for child in node.children:
        if exclude is not None and is_element(child) and exclude(child):
            continue
        parts.append(text_content(child, exclude))
    return "".join(parts)


_UNSET_COLORS = {"", "transparent", "inherit", "initial", "unset", "currentcolor", "none", "rgba(0, 0, 0, 0)"}
_ZERO_ALPHA = re.compile(r"^rgba\(\s*[\d.]+\s*,\s*[\d.]+\s*,\s*[\d.]+\s*,\s*0(?:\.0+)?\s*\)$")
_COLOR_TOKEN = re.compile(r"#[0-9a-fA-F]{3,8}\b|rgba?\([^)]*\)|\b[a-zA-Z]+\b")
_URL_VALUE = re.compile(r"url\([^)]*\)", re.IGNORECASE)


def _usable_color(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if value.lower() in _UNSET_COLORS or _ZERO_ALPHA.match(value.lower()):
        return None
    return value


def declared_color(node: MarkupNode) -> Optional[str]:
    """The node's own text color declaration, ignoring transparent or unset values."""
    if not is_element(node):
        return None
    return _usable_color(node.style("color"))


def inherited_color(node: Optional[MarkupNode]) -> Optional[str]:
    """Nearest declared text color on ``node`` or its ancestors."""
    current = node
    while current is not None:
        color = declared_color(current)
        if color:
            return color
        current = current.parent
    return None


def declared_background(node: MarkupNode) -> Optional[str]:
    """Background color declared on the node via ``background-color`` or ``background``."""
    if not is_element(node):
        return None
    color = _usable_color(node.style("background-color"))
    if color:
        return color
    shorthand = node.style("background")
    if not shorthand:
        return None
    shorthand = _URL_VALUE.sub(" ", shorthand)
    named = getAllNamedColors()
    for match in _COLOR_TOKEN.finditer(shorthand):
        token = match.group(0)
        if token[0].isalpha() and not token.lower().startswith("rgb") and token.lower() not in named:
            continue
        color = _usable_color(token)
        if color:
            return color
    return None


def is_hidden(node: MarkupNode) -> bool:
    if not is_element(node):
        return False
    if node.attr("hidden") is not None:
        return True
    display = (node.style("display") or "").lower()
    visibility = (node.style("visibility") or "").lower()
    return display == "none" or visibility == "hidden"


def resolve_url(node: MarkupNode, url: str) -> str:
    """Resolve a relative URL against the fragment's base URL when known."""
    if not url or url.startswith(("http://", "https://", "data:")):
        return url
    base = node.base_url
    if not base:
        return url
    try:
        return urljoin(base, url)
    except ValueError:
        return url
