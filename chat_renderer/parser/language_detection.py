"""Language detection and toolbar cleanup for scraped code blocks."""
from __future__ import annotations

import re
from typing import Optional

from chat_renderer.parser.markup_tree import (
    MarkupNode,
    class_list,
    class_string,
    closest,
    find_first,
    has_tag,
    is_element,
    text_content,
)

KNOWN_LANGUAGES = frozenset(
    {
        "javascript", "js", "typescript", "ts", "python", "py", "java", "c", "cpp",
        "csharp", "cs", "go", "rust", "ruby", "php", "swift", "kotlin", "scala",
        "html", "css", "scss", "less", "json", "xml", "yaml", "yml", "markdown", "md",
        "sql", "bash", "sh", "shell", "zsh", "powershell", "dockerfile", "makefile",
        "plaintext", "text", "diff", "graphql", "toml", "ini", "env", "jsx", "tsx", "svg",
    }
)

LABEL_MAX_LENGTH = 20

_CLASS_HINT = re.compile(r"(?:^|\s)(?:language|lang)-([\w+#-]+)")
_HLJS_HINT = re.compile(r"(?:^|\s)hljs\s+([\w+#-]+)")
_TOOLBAR_CLASS_MARKERS = ("copy", "toolbar", "header")
_LABEL_LANGUAGES = r"(?:json|javascript|js|python|py|bash|sh|html|css|typescript|ts|java|cpp?|go|rust|sql|yaml|xml|shell|plaintext)"
_LEADING_COPY_CODE = re.compile(r"^\s*Copy code\s*", re.IGNORECASE)
_LEADING_COPY = re.compile(r"^\s*Copy\b\s*", re.IGNORECASE)
_LEADING_LANGUAGE_COPY = re.compile(rf"^{_LABEL_LANGUAGES}\s*Copy code\s*", re.IGNORECASE)
_BARE_LANGUAGE_LINE = re.compile(rf"^{_LABEL_LANGUAGES}[ \t]*(?:\n|$)", re.IGNORECASE)


def is_known_language(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() in KNOWN_LANGUAGES


def language_from_node(node: MarkupNode) -> str:
    """Read a language hint from a node's classes or language attributes."""
    if not is_element(node):
        return ""
    classes = class_string(node)
    match = _CLASS_HINT.search(classes)
    if match:
        return match.group(1)
    match = _HLJS_HINT.search(classes)
    if match and is_known_language(match.group(1)):
        return match.group(1).lower()
    data_language = node.attr("data-language")
    if data_language:
        return data_language.strip()
    lang = node.attr("lang")
    if is_known_language(lang):
        return lang.strip().lower()
    return ""


def _is_code_wrapper(node: MarkupNode) -> bool:
    return "code" in class_string(node) or node.attr("data-language") is not None


def _check_hierarchy(node: MarkupNode) -> str:
    language = language_from_node(node)
    if language:
        return language
    code = find_first(node, has_tag("code"))
    if code is not None:
        language = language_from_node(code)
        if language:
            return language
    wrapper = closest(node.parent, _is_code_wrapper) if node.parent is not None else None
    if wrapper is not None:
        return language_from_node(wrapper)
    return ""


def detect_language(pre: MarkupNode, code: Optional[MarkupNode] = None) -> str:
    """Resolve the language of a code block, or ``""`` when nothing matches."""
    language = _check_hierarchy(pre)
    if language:
        return language
    if code is not None:
        language = _check_hierarchy(code)
        if language:
            return language

    parent = pre.parent
    wrapper = (closest(parent, _is_code_wrapper) if parent is not None else None) or parent
    if wrapper is None:
        return ""
    label = find_first(wrapper, lambda node: has_tag("span")(node) and closest(node, has_tag("pre")) is None)
    if label is not None:
        candidate = text_content(label)
        if len(candidate) < LABEL_MAX_LENGTH and is_known_language(candidate):
            return candidate.strip().lower()
    return ""


def clean_code_content(text: str) -> str:
    """Strip leading copy-button and language-label artifacts from code text."""
    cleaned = _LEADING_COPY_CODE.sub("", text, count=1)
    cleaned = _LEADING_COPY.sub("", cleaned, count=1)
    cleaned = _LEADING_LANGUAGE_COPY.sub("", cleaned, count=1)
    cleaned = _BARE_LANGUAGE_LINE.sub("", cleaned, count=1)
    return cleaned.strip()


def _is_toolbar(node: MarkupNode) -> bool:
    if node.tag == "button":
        return True
    classes = " ".join(class_list(node)).lower()
    return any(marker in classes for marker in _TOOLBAR_CLASS_MARKERS)


def extract_code_content(pre: MarkupNode) -> str:
    """Return the raw code text of a ``pre`` without toolbar descendants."""
    code = find_first(pre, has_tag("code"))
    if code is not None:
        return text_content(code)
    return text_content(pre, exclude=_is_toolbar)
