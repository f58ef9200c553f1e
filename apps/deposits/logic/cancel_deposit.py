# apps/deposits/logic/cancel_deposit.py
from __future__ import annotations

import structlog
from django.utils import timezone

from apps.auctions.models import Auction
from apps.deposits.logic import ledger
from apps.deposits.models import AuctionDeposit
from apps.deposits.providers import registry
from apps.deposits.providers.resilience import call_gateway
from config.app_settings.logic import AuctionSettings
from config.users.permissions import is_admin, is_owner
from core.errors import GatewayAlreadyFinalized, InvalidState, Unauthorized

logger = structlog.get_logger(__name__)


def _auction_is_open(auction: Auction, now) -> bool:
    return auction.status == Auction.Status.ACTIVE and not auction.is_claimed and auction.end_at > now


def cancel_deposit(*, external_ref: str, user, config: AuctionSettings, now=None) -> AuctionDeposit:
    """
    Use-case: пользователь отпускает свой холд до конца аукциона.

    Порядок проверок: NotFound -> Unauthorized -> InvalidState.
    - аукцион закончился, снят или уже в обработке => InvalidState,
      шлюз не трогаем (холд победителя должен дожить до capture)
    - settlement захватил аукцион между проверкой и UPDATE => условный
      UPDATE не проходит; холд у шлюза к этому моменту уже отпущен,
      поэтому депозит уходит в failed для reconciliation
    - settlement уже списал депозит => InvalidState, capture не откатывается
    """
    now = now or timezone.now()
    deposit = ledger.get_deposit_by_ref(external_ref)

    if not (is_owner(user, deposit) or is_admin(user)):
        raise Unauthorized()

    if not _auction_is_open(deposit.auction, now):
        raise InvalidState({"auction": ["Deposits can only be cancelled before the auction ends."]})

    if deposit.status != AuctionDeposit.Status.AUTHORIZED:
        raise InvalidState({"status": [f"Only authorized deposits can be cancelled (got {deposit.status})."]})

    gateway = registry.get_gateway()
    try:
        call_gateway(
            gateway.cancel,
            config=config,
            external_ref=deposit.external_ref,
            idempotency_key=deposit.idempotency_key("cancel"),
        )
    except GatewayAlreadyFinalized:
        logger.info("deposit_hold_already_released", deposit_id=deposit.pk)

    try:
        return ledger.mark_cancelled(deposit.pk, "cancelled by user", actor=user, open_at=now)
    except InvalidState:
        current = ledger.get_deposit(deposit.pk)
        if current.status == AuctionDeposit.Status.AUTHORIZED:
            logger.warning("deposit_released_while_auction_closed", deposit_id=deposit.pk, auction_id=deposit.auction_id)
            ledger.mark_failed(deposit.pk, "hold released by user while auction was closing", actor=user)
        raise
