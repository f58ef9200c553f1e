# core/logging.py
"""
Структурные логи через structlog поверх stdlib logging.

Вызывается один раз из settings. Все модули берут логгер так:

    logger = structlog.get_logger(__name__)
    logger.info("deposit_captured", deposit_id=..., auction_id=...)
"""
from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from typing import Any

import structlog
from structlog.typing import EventDict, WrappedLogger

SENSITIVE_KEYS = {
    "password",
    "secret",
    "token",
    "api_key",
    "authorization",
    "payment_method",
    "client_secret",
    "card",
}


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def redact_sensitive(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Маскируем платёжные реквизиты и секреты, даже если их случайно передали в лог."""

    def _clean(obj: Any, depth: int = 0) -> Any:
        if depth > 5:
            return obj
        if isinstance(obj, dict):
            return {
                k: "[REDACTED]" if any(s in str(k).lower() for s in SENSITIVE_KEYS) else _clean(v, depth + 1)
                for k, v in obj.items()
            }
        if isinstance(obj, list):
            return [_clean(v, depth + 1) for v in obj]
        return obj

    return _clean(event_dict)


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_timestamp,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        redact_sensitive,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
