"""In-memory representation of parsed chat content and layout state."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class BlockType(str, Enum):
    """Kinds of layout units produced by the content parser."""

    PARAGRAPH = "paragraph"
    HEADING = "heading"
    CODE_BLOCK = "code-block"
    LIST = "list"
    LIST_ITEM = "list-item"
    IMAGE = "image"
    LINK = "link"
    BLOCKQUOTE = "blockquote"
    HORIZONTAL_RULE = "horizontal-rule"
    USER_MESSAGE = "user-message"
    ASSISTANT_MESSAGE = "assistant-message"


MESSAGE_TYPES = frozenset({BlockType.USER_MESSAGE, BlockType.ASSISTANT_MESSAGE})


@dataclass(frozen=True, slots=True)
class TextRun:
    """A contiguous span of text with inline styling fixed at parse time."""

    text: str
    bold: bool = False
    italic: bool = False
    code: bool = False
    link: Optional[str] = None
    color: Optional[str] = None


@dataclass(slots=True)
class MessageStyles:
    """Bubble colors captured from a user message marker."""

    background_color: Optional[str] = None
    color: Optional[str] = None


@dataclass(slots=True)
class ContentBlock:
    """Tagged variant for one layout unit; fields used depend on ``type``."""

    type: BlockType
    runs: List[TextRun] = field(default_factory=list)
    level: Optional[int] = None
    code: Optional[str] = None
    language: str = ""
    background_color: Optional[str] = None
    ordered: bool = False
    items: List["ContentBlock"] = field(default_factory=list)
    src: Optional[str] = None
    alt: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    href: Optional[str] = None
    role: Optional[str] = None
    styles: Optional[MessageStyles] = None

    @property
    def text(self) -> str:
        """Concatenated run text."""
        return "".join(run.text for run in self.runs)

    @property
    def is_message(self) -> bool:
        return self.type in MESSAGE_TYPES


@dataclass(frozen=True, slots=True)
class MeasuredBlock:
    """A block's footprint for one width; recomputed on every pass."""

    block: ContentBlock
    height: float
    can_break: bool
    min_height: Optional[float] = None


@dataclass(frozen=True, slots=True)
class LinkAnnotation:
    """Clickable region in millimetres from the top-left corner of ``page``."""

    page: int
    x: float
    y: float
    width: float
    height: float
    url: str


@dataclass(slots=True)
class LayoutState:
    """Mutable cursor threaded through one conversion pass."""

    current_y: float
    page_number: int = 1
    links: List[LinkAnnotation] = field(default_factory=list)
    keep_with_previous: bool = False
