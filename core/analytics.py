# core/analytics.py
"""
Fire-and-forget события (аналитика settlement и т.п.).

Событие уходит в пул потоков; любая ошибка sink'а логируется в
done-callback и никогда не попадает в вызывающий код.
"""
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

import structlog
from django.conf import settings

logger = structlog.get_logger(__name__)

_executor: ThreadPoolExecutor | None = None


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=getattr(settings, "ANALYTICS_MAX_WORKERS", 2),
            thread_name_prefix="analytics",
        )
    return _executor


def log_sink(event: str, payload: dict[str, Any]) -> None:
    structlog.get_logger("analytics").info(event, **payload)


# подменяется в тестах / при подключении внешнего трекера
sink: Callable[[str, dict[str, Any]], None] = log_sink


def _on_done(event: str, future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.warning("analytics_event_failed", analytics_event=event, error=repr(exc))


def emit(event: str, **payload: Any) -> Future | None:
    try:
        future = _get_executor().submit(sink, event, payload)
    except RuntimeError as exc:
        # executor уже остановлен (shutdown интерпретатора)
        logger.warning("analytics_submit_failed", analytics_event=event, error=repr(exc))
        return None

    future.add_done_callback(lambda f: _on_done(event, f))
    return future
