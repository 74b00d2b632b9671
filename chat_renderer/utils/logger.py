"""Central logging configuration for the library."""
from __future__ import annotations

import logging
import os
from typing import Optional

_DEFAULT_LEVEL = logging.INFO
_LEVEL_ENV_VAR = "CHAT_RENDERER_LOG_LEVEL"


def _resolve_level() -> int:
    value = os.environ.get(_LEVEL_ENV_VAR)
    if not value:
        return _DEFAULT_LEVEL
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else _DEFAULT_LEVEL


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-level logger with default configuration applied."""
    logger = logging.getLogger(name)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=_resolve_level(), format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    return logger
