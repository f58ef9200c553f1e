# apps/deposits/logic/ledger.py
"""
Deposit Ledger: единственный, кто меняет AuctionDeposit.status.

Каждый мутатор:
1) читает строку и классифицирует случай (idempotent / invalid);
2) делает условный UPDATE ... WHERE id=? AND status=<observed> внутри atomic;
3) 0 строк => кто-то успел раньше => InvalidState (никаких "тихих" успехов);
4) пишет DepositEvent.

Row-lock (select_for_update) здесь сознательно не берём: settlement и
пользовательский cancel не должны ждать друг друга, гонку решает сам UPDATE.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.auctions.models import Auction
from apps.deposits.logic.status_fsm import assert_can_transition
from apps.deposits.models import AuctionDeposit, DepositEvent
from core.errors import Conflict, InvalidState, NotFound

logger = structlog.get_logger(__name__)

Status = AuctionDeposit.Status


def get_deposit(deposit_id: int) -> AuctionDeposit:
    try:
        return AuctionDeposit.objects.select_related("auction", "user").get(pk=deposit_id)
    except AuctionDeposit.DoesNotExist:
        raise NotFound(f"Deposit {deposit_id} not found.")


def get_deposit_by_ref(external_ref: str) -> AuctionDeposit:
    try:
        return AuctionDeposit.objects.select_related("auction", "user").get(external_ref=external_ref)
    except AuctionDeposit.DoesNotExist:
        raise NotFound("Deposit not found.")


def list_by_auction(auction_id: int) -> list[AuctionDeposit]:
    """Все депозиты аукциона, детерминированно по id (порядок fan-out)."""
    return list(
        AuctionDeposit.objects.filter(auction_id=auction_id).select_related("user").order_by("id")
    )


def _record_event(
    *,
    deposit: AuctionDeposit,
    from_status: str | None,
    to_status: str,
    action: str,
    actor=None,
    metadata: dict[str, Any] | None = None,
) -> DepositEvent:
    return DepositEvent.objects.create(
        deposit=deposit,
        actor=actor,
        from_status=from_status,
        to_status=to_status,
        action=action,
        metadata=metadata or {},
    )


def _open_auction_filter(*, ending_after: datetime | None = None) -> dict[str, Any]:
    """Аукцион ещё принимает депозиты: active и никем не захвачен на обработку."""
    guard: dict[str, Any] = {
        "auction__status": Auction.Status.ACTIVE,
        "auction__claim_token__isnull": True,
    }
    if ending_after is not None:
        guard["auction__end_at__gt"] = ending_after
    return guard


def _conditional_transition(
    deposit: AuctionDeposit,
    *,
    to_status: str,
    action: str,
    actor=None,
    metadata: dict[str, Any] | None = None,
    guard: dict[str, Any] | None = None,
    **fields: Any,
) -> AuctionDeposit:
    """
    UPDATE по наблюдённому статусу (+ guard по аукциону) и событие,
    одной транзакцией.
    """
    from_status = deposit.status
    assert_can_transition(current=from_status, new=to_status)

    with transaction.atomic():
        rows = AuctionDeposit.objects.filter(pk=deposit.pk, status=from_status, **(guard or {})).update(
            status=to_status,
            updated_at=timezone.now(),
            **fields,
        )
        if rows == 0:
            logger.warning(
                "deposit_transition_lost_race",
                deposit_id=deposit.pk,
                expected_status=from_status,
                to_status=to_status,
                auction_guard=guard is not None,
            )
            if guard is not None:
                raise InvalidState({"auction": ["Auction is not accepting deposit changes."]})
            raise InvalidState({"status": [f"Deposit is no longer {from_status}."]})

        _record_event(
            deposit=deposit,
            from_status=from_status,
            to_status=to_status,
            action=action,
            actor=actor,
            metadata=metadata,
        )

    logger.info(
        f"deposit_{action}",
        deposit_id=deposit.pk,
        auction_id=deposit.auction_id,
        from_status=from_status,
        to_status=to_status,
    )
    return get_deposit(deposit.pk)


def create_deposit(
    *,
    user,
    auction,
    amount: Decimal,
    currency: str = "CAD",
    actor=None,
    metadata: dict[str, Any] | None = None,
) -> AuctionDeposit:
    """
    Новый депозит в pending + DepositEvent(action='create').

    Conflict, если депозит на (user, auction) уже есть: вызывающий должен
    переиспользовать существующий, а не ретраить вслепую. Уникальный
    constraint в БД ловит и параллельную вставку.
    """
    if amount < 0:
        raise InvalidState({"amount": ["Deposit amount must be non-negative."]})

    if AuctionDeposit.objects.filter(user=user, auction=auction).exists():
        raise Conflict("Deposit for this auction already exists.")

    try:
        with transaction.atomic():
            deposit = AuctionDeposit.objects.create(
                user=user,
                auction=auction,
                amount=amount,
                currency=currency,
                status=Status.PENDING,
            )
            _record_event(
                deposit=deposit,
                from_status=None,
                to_status=deposit.status,
                action="create",
                actor=actor if actor is not None else user,
                metadata=metadata,
            )
    except IntegrityError:
        raise Conflict("Deposit for this auction already exists.")

    logger.info(
        "deposit_created",
        deposit_id=deposit.pk,
        auction_id=auction.pk,
        user_id=user.pk,
        amount=str(amount),
    )
    return deposit


def mark_authorized(
    deposit_id: int,
    external_ref: str,
    *,
    raw_payload: dict[str, Any] | None = None,
    actor=None,
    require_open_auction: bool = False,
) -> AuctionDeposit:
    """
    pending -> authorized, фиксируем external_ref.

    - тот же ref повторно => no-op
    - другой ref на уже authorized => Conflict
    - require_open_auction: UPDATE проходит, только пока аукцион active
      и не захвачен settlement/withdraw; иначе InvalidState
    """
    if not external_ref:
        raise InvalidState({"external_ref": ["External reference is required."]})

    deposit = get_deposit(deposit_id)

    if deposit.status == Status.AUTHORIZED:
        if deposit.external_ref == external_ref:
            return deposit
        raise Conflict("Deposit is already authorized with a different reference.")

    try:
        return _conditional_transition(
            deposit,
            to_status=Status.AUTHORIZED,
            action="authorize",
            actor=actor,
            metadata={"external_ref": external_ref},
            guard=_open_auction_filter() if require_open_auction else None,
            external_ref=external_ref,
            raw_provider_payload=raw_payload,
        )
    except IntegrityError:
        # ref уже принадлежит другому депозиту
        raise Conflict("External reference is already used by another deposit.")


def mark_captured(deposit_id: int, *, actor=None, metadata: dict[str, Any] | None = None) -> AuctionDeposit:
    deposit = get_deposit(deposit_id)
    if deposit.status == Status.CAPTURED:
        return deposit

    return _conditional_transition(
        deposit,
        to_status=Status.CAPTURED,
        action="capture",
        actor=actor,
        metadata=metadata,
        captured_at=timezone.now(),
    )


def mark_cancelled(
    deposit_id: int,
    reason: str,
    *,
    actor=None,
    open_at: datetime | None = None,
) -> AuctionDeposit:
    """
    authorized -> cancelled. Из captured нельзя: capture никогда
    не откатывается проигравшей гонкой cancel'а.

    open_at (пользовательская отмена): аукцион в этот момент должен быть
    active, не захвачен и ещё не закончиться, иначе InvalidState.
    """
    deposit = get_deposit(deposit_id)
    if deposit.status == Status.CANCELLED:
        return deposit
    if deposit.status != Status.AUTHORIZED:
        raise InvalidState({"status": [f"Only authorized deposits can be cancelled (got {deposit.status})."]})

    return _conditional_transition(
        deposit,
        to_status=Status.CANCELLED,
        action="cancel",
        actor=actor,
        metadata={"reason": reason},
        guard=_open_auction_filter(ending_after=open_at) if open_at is not None else None,
        cancelled_at=timezone.now(),
        cancel_reason=reason[:255],
    )


def release_pending(deposit_id: int, reason: str, *, actor=None) -> AuctionDeposit:
    """pending -> cancelled без вызова шлюза (холд так и не был поставлен)."""
    deposit = get_deposit(deposit_id)
    if deposit.status == Status.CANCELLED:
        return deposit
    if deposit.status != Status.PENDING:
        raise InvalidState({"status": [f"Only pending deposits can be released (got {deposit.status})."]})

    return _conditional_transition(
        deposit,
        to_status=Status.CANCELLED,
        action="release",
        actor=actor,
        metadata={"reason": reason},
        cancelled_at=timezone.now(),
        cancel_reason=reason[:255],
    )


def mark_failed(deposit_id: int, reason: str, *, actor=None) -> AuctionDeposit:
    deposit = get_deposit(deposit_id)
    if deposit.status == Status.FAILED:
        return deposit

    return _conditional_transition(
        deposit,
        to_status=Status.FAILED,
        action="fail",
        actor=actor,
        metadata={"reason": reason},
        failed_at=timezone.now(),
        failure_reason=reason[:255],
    )
