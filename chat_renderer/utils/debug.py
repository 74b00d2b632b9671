"""Helpers to persist intermediate representations for debugging."""
from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

from chat_renderer.model.elements import ContentBlock


class DebugDumper:
    """Writes intermediate artifacts onto disk for inspection."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def dump(self, blocks: Sequence[ContentBlock]) -> Path:
        """Persist the parsed block list as JSON for offline analysis."""
        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / "content_blocks.json"
        payload = [self._serialize(block) for block in blocks]
        target.write_text(json.dumps(payload, indent=2))
        return target

    def _serialize(self, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        if is_dataclass(value):
            result = {}
            for item in fields(value):
                field_value = getattr(value, item.name)
                if field_value in (None, "", [], False):
                    continue
                result[item.name] = self._serialize(field_value)
            return result
        if isinstance(value, dict):
            return {k: self._serialize(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._serialize(v) for v in value]
        return value
