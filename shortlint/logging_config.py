from __future__ import annotations

import logging

from shortlint.config import LoggingSettings


def configure_logging(settings: LoggingSettings) -> None:
    """Configure process-wide logging once at startup.

    `settings.levels` overrides the level of individual loggers, e.g.
    `{"shortlint.extract": "DEBUG"}` to trace extractor retries only.
    """

    logging.basicConfig(
        level=_resolve_level(settings.level),
        format=settings.format,
        force=True,
    )
    for name, level in settings.levels.items():
        logging.getLogger(name).setLevel(_resolve_level(level))


def _resolve_level(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)
