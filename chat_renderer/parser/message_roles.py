"""Detect user/assistant message containers and their bubble colors."""
from __future__ import annotations

from typing import Optional

from chat_renderer.model.elements import MessageStyles
from chat_renderer.parser.markup_tree import (
    MarkupNode,
    class_list,
    declared_background,
    declared_color,
    find_first,
    is_element,
)

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"

ROLE_ATTRIBUTES = ("data-message-author-role", "role")
USER_CLASSES = frozenset({"user-message"})
ASSISTANT_CLASSES = frozenset({"agent-turn"})
BUBBLE_CLASS = "user-message-bubble-color"
MARKDOWN_CLASS = "markdown"


def detect_message_role(node: MarkupNode) -> Optional[str]:
    """Role declared by the node's own markers; descendants are not inspected."""
    if not is_element(node):
        return None
    for attribute in ROLE_ATTRIBUTES:
        value = (node.attr(attribute) or "").strip().lower()
        if value in (USER_ROLE, ASSISTANT_ROLE):
            return value
    classes = set(class_list(node))
    if classes & USER_CLASSES:
        return USER_ROLE
    if classes & ASSISTANT_CLASSES:
        return ASSISTANT_ROLE
    return None


def _is_bubble_marker(node: MarkupNode) -> bool:
    if not is_element(node):
        return False
    return any(name == BUBBLE_CLASS or "user-message" in name for name in class_list(node))


def find_bubble_marker(node: MarkupNode) -> Optional[MarkupNode]:
    """First descendant carrying the user bubble marker, else the node itself when marked."""
    marker = find_first(node, _is_bubble_marker)
    if marker is not None:
        return marker
    return node if _is_bubble_marker(node) else None


def snapshot_bubble_styles(node: MarkupNode) -> MessageStyles:
    """Capture background and text colors for a user message bubble."""
    marker = find_bubble_marker(node)
    if marker is not None:
        background = declared_background(marker)
        if background:
            return MessageStyles(background_color=background, color=declared_color(marker))
    # Some transcripts style the message container directly.
    return MessageStyles(background_color=declared_background(node), color=declared_color(node))


def find_content_root(node: MarkupNode) -> MarkupNode:
    """Use a nested ``markdown`` container as the message content root when present."""
    markdown = find_first(
        node, lambda candidate: is_element(candidate) and any(MARKDOWN_CLASS in name for name in class_list(candidate))
    )
    return markdown if markdown is not None else node
