from __future__ import annotations

import logging

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    resolved_level: int
    if isinstance(level, int):
        resolved_level = level
    else:
        resolved_level = logging.getLevelName(level.strip().upper())
        if not isinstance(resolved_level, int):
            resolved_level = logging.INFO

    logging.basicConfig(level=resolved_level, format=_LOG_FORMAT, force=True)
