"""
Tracing helpers shared by the initialization stages.

Everything logs through the standard `logging` module under the `tamebox`
hierarchy; embedding applications decide where records go.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, TypeVar

F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger("tamebox")


class Trace:
    @staticmethod
    def section(title: str) -> Callable[[F], F]:
        """Log entry, exit and elapsed time of one initialization stage."""

        def decorator(fn: F) -> F:
            @functools.wraps(fn)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                logger.info("== %s ==", title)
                start = time.perf_counter()
                try:
                    return fn(*args, **kwargs)
                except Exception:
                    logger.error("%s failed after %.3fs", title, time.perf_counter() - start)
                    raise
                finally:
                    logger.debug("%s finished in %.3fs", title, time.perf_counter() - start)

            return wrapper  # type: ignore[return-value]

        return decorator

    @staticmethod
    def report(title: str, summary: str, *, level: int = logging.INFO) -> None:
        """Log a multi-line report summary, one record per line."""
        for line in summary.splitlines():
            logger.log(level, "%s: %s", title, line)
