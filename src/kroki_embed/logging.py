"""Structured logging spans backed by loguru.

Each span records its name, elapsed time and any attributes added while the
wrapped block runs, then emits a single loguru record when the block exits.
"""

from __future__ import annotations

import sys
import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from loguru import logger

LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[span]}</cyan> {message}"
)


def configure_logging(level: str = "INFO") -> None:
    """Install a single stderr sink at the given level.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR)
    """
    logger.remove()
    logger.configure(extra={"span": "-"})
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)


class LogSpan:
    """A structured logging span with timing and attributes."""

    def __init__(self, name: str, **attrs: Any) -> None:
        """Initialize a log span.

        Args:
            name: Span name (e.g., "kroki.fetch")
            **attrs: Initial attributes to log
        """
        self.name = name
        self.attrs: dict[str, Any] = dict(attrs)
        self.start_time = time.time()
        self.error: str | None = None

    def add(self, key: str | None = None, value: Any = None, **attrs: Any) -> LogSpan:
        """Add attributes to the span.

        Supports both positional and keyword argument styles.

        Args:
            key: Attribute name (optional if using kwargs)
            value: Attribute value (required if key is provided)
            **attrs: Bulk attribute additions (e.g., status=200, cached=True)

        Returns:
            Self for method chaining
        """
        if key is not None:
            self.attrs[key] = value
        self.attrs.update(attrs)
        return self

    @property
    def elapsed_ms(self) -> float:
        return round((time.time() - self.start_time) * 1000, 2)

    def _emit(self) -> None:
        """Emit the span as one loguru record."""
        entry = {"elapsed_ms": self.elapsed_ms, **self.attrs}
        fields = " ".join(f"{k}={v}" for k, v in entry.items())

        bound = logger.bind(span=self.name, **entry)
        if self.error:
            bound.warning(f"{fields} error={self.error!r}")
        else:
            bound.debug(fields)


@contextmanager
def log(name: str, **attrs: Any) -> Generator[LogSpan, None, None]:
    """Context manager for structured logging.

    Automatically captures timing and errors.

    Args:
        name: Span name (e.g., "kroki.fetch")
        **attrs: Initial attributes to log

    Yields:
        LogSpan object for adding attributes

    Example:
        >>> with log("kroki.fetch", url=url) as span:
        ...     body = fetch(url)
        ...     span.add(size=len(body))
    """
    span = LogSpan(name, **attrs)
    try:
        yield span
    except Exception as e:
        span.error = f"{type(e).__name__}: {e}"
        raise
    finally:
        span._emit()
