"""Structured logging helpers.

Events are written as single JSON objects so that log shippers can index the
fields without parsing free text.
"""

from __future__ import annotations

import enum
import json
import logging
import math
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

__all__ = ["log_event", "safe_json", "trace"]


def safe_json(value: Any) -> Any:
    """Return ``value`` converted into something :func:`json.dumps` accepts."""

    if isinstance(value, enum.Enum):
        return safe_json(value.value)

    if value is None or isinstance(value, (str, int, bool)):
        return value

    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return repr(value)
        return value

    if isinstance(value, (list, tuple, set, frozenset)):
        return [safe_json(item) for item in value]

    if isinstance(value, dict):
        return {str(key): safe_json(val) for key, val in value.items()}

    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return safe_json(to_dict())

    return repr(value)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc_info: bool | BaseException | None = None,
    **fields: Any,
) -> None:
    """Emit ``event`` with ``fields`` as one JSON encoded log line.

    Fields whose value is ``None`` are dropped to keep lines short.
    """

    if not logger.isEnabledFor(level):
        return

    payload: Dict[str, Any] = {"event": event}
    payload.update({key: safe_json(val) for key, val in fields.items() if val is not None})
    logger.log(level, json.dumps(payload, ensure_ascii=False, sort_keys=True), exc_info=exc_info)


@contextmanager
def trace(name: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[Dict[str, Any]]:
    """Log ``trace.start``/``trace.end`` around a block, with its duration.

    The yielded dictionary can be filled with result fields that are attached
    to the ``trace.end`` event. Exceptions are logged as ``trace.error`` and
    re-raised.
    """

    logger = logger or logging.getLogger("trace")
    start = time.perf_counter()
    base = {"trace": name, **fields}
    log_event(logger, logging.DEBUG, "trace.start", **base)
    result: Dict[str, Any] = {}
    try:
        yield result
    except Exception as exc:
        log_event(
            logger,
            logging.ERROR,
            "trace.error",
            exc_info=True,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            error=repr(exc),
            **base,
        )
        raise
    log_event(
        logger,
        logging.INFO,
        "trace.end",
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
        **{**base, **result},
    )
