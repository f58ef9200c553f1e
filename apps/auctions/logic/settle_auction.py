# apps/auctions/logic/settle_auction.py
"""
Settlement закончившегося аукциона.

claim -> победитель -> fan-out по депозитам -> finalize -> отчёт -> analytics.

Ошибка по одному депозиту логируется и попадает в отчёт, но не блокирует
остальные; аукцион всегда доходит до терминального статуса.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

import structlog
from django.db import transaction
from django.utils import timezone

from apps.auctions.logic.claim import claim_auction, finalize_auction
from apps.auctions.logic.winner import Winner, determine_winner
from apps.auctions.models import Auction, AuctionSettlement
from apps.deposits.logic import ledger
from apps.deposits.models import AuctionDeposit
from apps.deposits.providers import registry
from apps.deposits.providers.resilience import call_gateway
from config.app_settings.logic import AuctionSettings
from core import analytics
from core.errors import (
    GatewayAlreadyFinalized,
    GatewayDeclined,
    GatewayTransient,
    InvalidState,
    NotFound,
    ReconciliationRequired,
)

logger = structlog.get_logger(__name__)

DepositStatus = AuctionDeposit.Status
Outcome = AuctionSettlement.Outcome


@dataclass
class SettlementSummary:
    auction_id: str
    skipped: bool = False
    outcome: str | None = None
    final_status: str | None = None
    winner_user_id: int | None = None
    winning_amount: Decimal | None = None
    captured: int = 0
    cancelled: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def needs_reconciliation(self) -> bool:
        return self.failed > 0

    def count(self, status: str) -> None:
        if status == DepositStatus.CAPTURED:
            self.captured += 1
        elif status == DepositStatus.CANCELLED:
            self.cancelled += 1
        elif status == DepositStatus.FAILED:
            self.failed += 1

    def record_error(self, deposit: AuctionDeposit, error: str) -> None:
        self.errors.append({"deposit_id": str(deposit.public_id), "error": error})

    def raise_for_reconciliation(self) -> None:
        if self.needs_reconciliation:
            raise ReconciliationRequired(
                {
                    "auction_id": self.auction_id,
                    "failed_deposits": [e["deposit_id"] for e in self.errors],
                }
            )

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["winning_amount"] = str(self.winning_amount) if self.winning_amount is not None else None
        data["needs_reconciliation"] = self.needs_reconciliation
        return data


def _gateway_step(gateway_call, deposit: AuctionDeposit, *, action: str, config: AuctionSettings) -> None:
    try:
        call_gateway(
            gateway_call,
            config=config,
            external_ref=deposit.external_ref,
            idempotency_key=deposit.idempotency_key(action),
        )
    except GatewayAlreadyFinalized:
        logger.info("deposit_hold_already_finalized", deposit_id=deposit.pk, action=action)


def _settle_deposit(
    deposit: AuctionDeposit,
    *,
    is_winner: bool,
    config: AuctionSettings,
    summary: SettlementSummary,
) -> str:
    """Один депозит: возвращает его статус после обработки."""
    if deposit.is_terminal:
        # повторный прогон после перехвата claim: ничего не трогаем
        summary.count(deposit.status)
        return deposit.status

    if deposit.status == DepositStatus.PENDING:
        ledger.release_pending(deposit.pk, "auction settled; hold was never placed")
        summary.count(DepositStatus.CANCELLED)
        return DepositStatus.CANCELLED

    gateway = registry.get_gateway()
    action = "capture" if is_winner else "cancel"
    gateway_call = gateway.capture if is_winner else gateway.cancel

    try:
        _gateway_step(gateway_call, deposit, action=action, config=config)
    except (GatewayDeclined, GatewayTransient) as exc:
        reason = f"{action} failed: {exc.detail}"
        ledger.mark_failed(deposit.pk, reason)
        summary.count(DepositStatus.FAILED)
        summary.record_error(deposit, reason)
        logger.warning(
            "deposit_settlement_failed",
            deposit_id=deposit.pk,
            auction_id=deposit.auction_id,
            action=action,
            error=str(exc.detail),
        )
        return DepositStatus.FAILED

    if is_winner:
        ledger.mark_captured(deposit.pk, metadata={"reason": "auction won"})
        summary.count(DepositStatus.CAPTURED)
        return DepositStatus.CAPTURED

    ledger.mark_cancelled(deposit.pk, "auction lost")
    summary.count(DepositStatus.CANCELLED)
    return DepositStatus.CANCELLED


def _fail_after_error(deposit: AuctionDeposit, exc: Exception) -> str:
    """
    Неожиданная ошибка по депозиту: нетерминальный депозит уходит в failed,
    чтобы не остаться authorized на закрытом аукционе. Если его уже
    перевели (гонка с пользовательским cancel), считаем фактический статус.
    """
    try:
        return ledger.mark_failed(deposit.pk, f"settlement error: {exc!r}").status
    except InvalidState:
        return ledger.get_deposit(deposit.pk).status


def _fan_out(
    auction: Auction,
    *,
    winner: Winner | None,
    config: AuctionSettings,
    summary: SettlementSummary,
) -> str | None:
    """Возвращает статус депозита победителя (None, если депозита нет)."""
    winner_status = None

    for deposit in ledger.list_by_auction(auction.pk):
        is_winner = winner is not None and deposit.user_id == winner.user_id
        try:
            status = _settle_deposit(deposit, is_winner=is_winner, config=config, summary=summary)
        except Exception as exc:
            logger.exception("deposit_settlement_error", deposit_id=deposit.pk, auction_id=auction.pk)
            summary.record_error(deposit, repr(exc))
            status = _fail_after_error(deposit, exc)
            summary.count(status)

        if is_winner:
            winner_status = status

    return winner_status


def _outcome(winner: Winner | None, winner_status: str | None) -> str:
    if winner is None:
        return Outcome.NO_WINNER
    if winner_status == DepositStatus.CAPTURED:
        return Outcome.WINNER_CAPTURED
    if winner_status == DepositStatus.FAILED:
        return Outcome.WINNER_DECLINED
    return Outcome.WINNER_WITHOUT_DEPOSIT


def _persist_report(auction: Auction, summary: SettlementSummary) -> AuctionSettlement:
    with transaction.atomic():
        report, _ = AuctionSettlement.objects.update_or_create(
            auction=auction,
            defaults={
                "outcome": summary.outcome,
                "winner_id": summary.winner_user_id,
                "winning_amount": summary.winning_amount,
                "captured_count": summary.captured,
                "cancelled_count": summary.cancelled,
                "failed_count": summary.failed,
                "errors": summary.errors,
                "needs_reconciliation": summary.needs_reconciliation,
            },
        )
    return report


def _emit_settled(summary: SettlementSummary) -> None:
    analytics.emit(
        "auction_settled",
        auction_id=summary.auction_id,
        outcome=summary.outcome,
        captured=summary.captured,
        cancelled=summary.cancelled,
        failed=summary.failed,
    )


def settle_auction(auction_id: int, *, config: AuctionSettings, now: datetime | None = None) -> SettlementSummary:
    """
    Use-case: закрыть один закончившийся аукцион.

    - claim не получен (ещё не закончился / уже обработан / в обработке
      у другого воркера) => summary.skipped, ничего не меняем
    - победитель: capture его authorized-депозита; Declined или исчерпанные
      ретраи => failed, исход winner_declined, аукцион всё равно completed
    - остальные authorized => cancel; pending => release без шлюза
    """
    now = now or timezone.now()

    auction = Auction.objects.filter(pk=auction_id).first()
    if auction is None:
        raise NotFound(f"Auction {auction_id} not found.")

    summary = SettlementSummary(auction_id=str(auction.public_id))

    token = claim_auction(auction.pk, now=now, lease_seconds=config.claim_lease_seconds)
    if token is None:
        summary.skipped = True
        summary.final_status = auction.status
        return summary

    structlog.contextvars.bind_contextvars(auction_id=auction.pk)
    try:
        winner = determine_winner(auction)
        if winner is not None:
            summary.winner_user_id = winner.user_id
            summary.winning_amount = winner.amount

        winner_status = _fan_out(auction, winner=winner, config=config, summary=summary)
        summary.outcome = _outcome(winner, winner_status)

        finalize_auction(auction.pk, outcome=Auction.Status.COMPLETED, claim_token=token, now=now)
        summary.final_status = Auction.Status.COMPLETED

        _persist_report(auction, summary)
    finally:
        structlog.contextvars.unbind_contextvars("auction_id")

    logger.info(
        "auction_settled",
        auction_id=auction.pk,
        outcome=summary.outcome,
        captured=summary.captured,
        cancelled=summary.cancelled,
        failed=summary.failed,
    )
    _emit_settled(summary)
    return summary


def withdraw_auction(auction_id: int, *, config: AuctionSettings, now: datetime | None = None) -> SettlementSummary:
    """
    Admin: снять аукцион (в т.ч. до окончания). Победителя нет,
    все депозиты отпускаются, аукцион -> cancelled.
    """
    now = now or timezone.now()

    auction = Auction.objects.filter(pk=auction_id).first()
    if auction is None:
        raise NotFound(f"Auction {auction_id} not found.")

    summary = SettlementSummary(auction_id=str(auction.public_id))

    token = claim_auction(
        auction.pk,
        now=now,
        lease_seconds=config.claim_lease_seconds,
        require_due=False,
    )
    if token is None:
        summary.skipped = True
        summary.final_status = auction.status
        return summary

    _fan_out(auction, winner=None, config=config, summary=summary)
    summary.outcome = Outcome.WITHDRAWN

    finalize_auction(auction.pk, outcome=Auction.Status.CANCELLED, claim_token=token, now=now)
    summary.final_status = Auction.Status.CANCELLED

    _persist_report(auction, summary)

    logger.info("auction_withdrawn", auction_id=auction.pk, cancelled=summary.cancelled, failed=summary.failed)
    analytics.emit("auction_withdrawn", auction_id=summary.auction_id, cancelled=summary.cancelled)
    return summary


def due_auction_ids(*, now: datetime, limit: int | None = None) -> list[int]:
    """Закончившиеся, но не обработанные аукционы (индекс end_at, status)."""
    qs = (
        Auction.objects.filter(status=Auction.Status.ACTIVE, end_at__lte=now)
        .order_by("end_at", "id")
        .values_list("id", flat=True)
    )
    if limit is not None:
        qs = qs[:limit]
    return list(qs)


def settle_due_auctions(
    *,
    config: AuctionSettings,
    now: datetime | None = None,
    limit: int | None = None,
) -> list[SettlementSummary]:
    """
    Trigger: обойти все закончившиеся аукционы. Падение одного аукциона
    логируется и не мешает остальным (его claim истечёт по lease).
    """
    now = now or timezone.now()
    summaries: list[SettlementSummary] = []

    for auction_id in due_auction_ids(now=now, limit=limit):
        try:
            summaries.append(settle_auction(auction_id, config=config, now=now))
        except Exception:
            logger.exception("auction_settlement_error", auction_id=auction_id)

    return summaries


def deposit_processing_status(auction: Auction) -> dict[str, Any]:
    """Сводка по депозитам аукциона для admin/cron проверки."""
    counts = {status: 0 for status in DepositStatus.values}
    for deposit in ledger.list_by_auction(auction.pk):
        counts[deposit.status] += 1

    return {
        "auction_id": str(auction.public_id),
        "status": auction.status,
        "processed_at": auction.processed_at.isoformat() if auction.processed_at else None,
        "in_progress": auction.status == Auction.Status.ACTIVE and auction.is_claimed,
        "deposits": counts,
        "all_processed": counts[DepositStatus.PENDING] == 0 and counts[DepositStatus.AUTHORIZED] == 0,
    }
