# apps/deposits/logic/gateway_events.py
"""
События шлюза (Stripe webhook) -> переходы ledger.

Шлюз сообщает о том, что с холдом уже случилось, поэтому guard по
аукциону здесь не нужен. Все переходы ledger идемпотентны: повторная
доставка события ничего не меняет. Если депозит уже ушёл в другой
конечный статус, событие только логируется.
"""
from __future__ import annotations

from typing import Any, Callable

import structlog

from apps.deposits.logic import ledger
from apps.deposits.models import AuctionDeposit
from core.errors import InvalidState, NotFound

logger = structlog.get_logger(__name__)

Status = AuctionDeposit.Status

APPLIED = "applied"
IGNORED = "ignored"
UNHANDLED = "unhandled"

_handlers: dict[str, Callable[[AuctionDeposit, dict[str, Any]], str]] = {}


def handles(event_type: str):
    def decorator(fn):
        _handlers[event_type] = fn
        return fn
    return decorator


def _find_deposit(intent: dict[str, Any]) -> AuctionDeposit | None:
    try:
        return ledger.get_deposit_by_ref(intent["id"])
    except NotFound:
        pass

    deposit_id = (intent.get("metadata") or {}).get("deposit_id")
    if not deposit_id:
        return None
    return AuctionDeposit.objects.filter(public_id=deposit_id).first()


@handles("payment_intent.succeeded")
def _on_succeeded(deposit: AuctionDeposit, intent: dict[str, Any]) -> str:
    if deposit.status not in (Status.AUTHORIZED, Status.CAPTURED):
        return IGNORED
    ledger.mark_captured(deposit.pk, metadata={"source": "webhook", "intent": intent["id"]})
    return APPLIED


@handles("payment_intent.canceled")
def _on_canceled(deposit: AuctionDeposit, intent: dict[str, Any]) -> str:
    reason = f"canceled at gateway: {intent.get('cancellation_reason') or 'unknown'}"
    if deposit.status == Status.PENDING:
        ledger.release_pending(deposit.pk, reason)
    elif deposit.status in (Status.AUTHORIZED, Status.CANCELLED):
        ledger.mark_cancelled(deposit.pk, reason)
    else:
        return IGNORED
    return APPLIED


@handles("payment_intent.payment_failed")
def _on_payment_failed(deposit: AuctionDeposit, intent: dict[str, Any]) -> str:
    if deposit.status in (Status.CAPTURED, Status.CANCELLED):
        return IGNORED
    error = intent.get("last_payment_error") or {}
    ledger.mark_failed(deposit.pk, error.get("message") or "Payment failed")
    return APPLIED


def apply_gateway_event(event: dict[str, Any]) -> str:
    """
    Применить событие шлюза к депозиту.

    applied   -> депозит в состоянии, о котором сообщил шлюз
    ignored   -> депозит не найден или уже в другом конечном статусе
    unhandled -> тип события нас не интересует
    """
    event_type = event["type"]
    handler = _handlers.get(event_type)
    if handler is None:
        logger.debug("gateway_event_unhandled", event_type=event_type)
        return UNHANDLED

    intent = event["data"]["object"]
    deposit = _find_deposit(intent)
    if deposit is None:
        logger.info("gateway_event_without_deposit", event_type=event_type, intent_id=intent["id"])
        return IGNORED

    try:
        result = handler(deposit, intent)
    except InvalidState:
        # параллельный переход успел раньше, его результат и есть правда
        result = IGNORED

    log = logger.info if result == APPLIED else logger.warning
    log(
        "gateway_event_processed",
        event_type=event_type,
        event_id=event.get("id"),
        deposit_id=deposit.pk,
        result=result,
        status=ledger.get_deposit(deposit.pk).status,
    )
    return result
