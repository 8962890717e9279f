"""Logging helpers shared by all modules.

Structured fields travel as ``extra`` record attributes so handlers and tests
can filter on ``event``, ``component`` or ``outcome`` without parsing messages.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from ..constants import Constants


def configure_logging() -> None:
    """Install a root handler with the project format and env-selected level."""
    level_name = os.environ.get(Constants.ENV_LOG_LEVEL, "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build an ``extra`` mapping, dropping unset fields."""
    return {key: value for key, value in fields.items() if value is not None}


def is_debug_enabled(logger: logging.Logger) -> bool:
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: str) -> str:
    """Strip user credentials from a URL before it is logged."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.netloc or "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self):
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc_info) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000, 2)


class ResolverLogger:
    """Package-manager facing log sink for one resolver.

    Wraps a stdlib logger; ``action`` and ``info`` map to INFO records and
    ``warn`` to WARNING records, each tagged with the event name.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, source: Optional[str] = None):
        self._logger = logger or logging.getLogger("hgresolve.resolver")
        self._source = safe_url(source) if source else None

    def action(self, name: str, target: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._logger.info(
            "%s %s",
            name,
            target,
            extra=extra_context(
                event=name,
                component="resolver",
                action=name,
                target=target,
                source=self._source,
                context=context,
            ),
        )

    def info(self, event: str, message: str) -> None:
        self._logger.info(
            "%s %s",
            event,
            message,
            extra=extra_context(event=event, component="resolver", source=self._source),
        )

    def warn(self, code: str, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self._logger.warning(
            "%s",
            message,
            extra=extra_context(
                event=code,
                code=code,
                component="resolver",
                source=self._source,
                context=context,
            ),
        )

    def debug(self, message: str, **fields: Any) -> None:
        if is_debug_enabled(self._logger):
            self._logger.debug(
                message,
                extra=extra_context(component="resolver", source=self._source, **fields),
            )
