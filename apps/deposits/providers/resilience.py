# apps/deposits/providers/resilience.py
from __future__ import annotations

from typing import Any, Callable, TypeVar

import structlog
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config.app_settings.logic import AuctionSettings
from core.errors import GatewayTransient

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "gateway_call_retry",
        call=getattr(retry_state.fn, "__name__", repr(retry_state.fn)),
        attempt=retry_state.attempt_number,
        error=repr(exc),
    )


def call_gateway(fn: Callable[..., T], /, *, config: AuctionSettings, **kwargs: Any) -> T:
    """
    Вызов шлюза с ретраями только на GatewayTransient.

    Аргументы (включая idempotency_key) одни и те же на каждой попытке,
    поэтому повтор не создаёт второй холд / второй capture.
    Исчерпали попытки => наружу последний GatewayTransient.
    """
    retrying = Retrying(
        stop=stop_after_attempt(config.gateway_max_attempts),
        wait=wait_exponential(
            multiplier=config.gateway_backoff_seconds,
            max=config.gateway_backoff_max_seconds,
        ),
        retry=retry_if_exception_type(GatewayTransient),
        before_sleep=_log_retry,
        reraise=True,
    )
    return retrying(fn, timeout_s=config.gateway_timeout_seconds, **kwargs)
