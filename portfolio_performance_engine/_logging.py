"""Logging helpers.

Library code logs through ``engine_logger`` and never installs handlers; the
CLI runner owns ``logging.basicConfig``. The decorators mirror the
instrumentation surface used across the analysis entrypoints.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable


engine_logger = logging.getLogger("portfolio_performance_engine")

_SEVERITY_LEVELS = {
    "low": logging.INFO,
    "medium": logging.WARNING,
    "high": logging.ERROR,
    "critical": logging.CRITICAL,
}


def log_operation(name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Log start/finish of a named operation at DEBUG level."""

    def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            engine_logger.debug("[%s] started", name)
            result = fn(*args, **kwargs)
            engine_logger.debug("[%s] completed", name)
            return result

        return wrapper

    return deco


def log_timing(threshold: float = 0.0) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Warn when the wrapped call takes longer than ``threshold`` seconds."""

    def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - started
                if threshold and elapsed > threshold:
                    engine_logger.warning("slow_call: %s took %.3fs (threshold %.3fs)", fn.__qualname__, elapsed, threshold)
                else:
                    engine_logger.debug("timing: %s %.3fs", fn.__qualname__, elapsed)

        return wrapper

    return deco


def log_errors(severity: str = "medium") -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Log exceptions escaping the wrapped call, then re-raise them."""
    level = _SEVERITY_LEVELS.get(severity, logging.WARNING)

    def deco(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                engine_logger.log(level, "%s failed: %s: %s", fn.__qualname__, type(exc).__name__, exc)
                raise

        return wrapper

    return deco


def log_portfolio_operation(event: str, details: dict[str, Any] | None = None, execution_time: float | None = None) -> dict[str, Any]:
    if details:
        engine_logger.info("[%s] %s", event, details)
    else:
        engine_logger.info("[%s]", event)
    return {"event": event, "details": details or {}, "execution_time": execution_time}
