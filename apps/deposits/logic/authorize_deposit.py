# apps/deposits/logic/authorize_deposit.py
from __future__ import annotations

import structlog
from django.utils import timezone

from apps.auctions.logic.winner import highest_bid_amount
from apps.auctions.models import Auction
from apps.deposits.logic import ledger
from apps.deposits.logic.amounts import compute_deposit_amount
from apps.deposits.models import AuctionDeposit
from apps.deposits.providers import registry
from apps.deposits.providers.resilience import call_gateway
from config.app_settings.logic import AuctionSettings
from core.errors import Conflict, GatewayAlreadyFinalized, GatewayDeclined, GatewayTransient, InvalidState

logger = structlog.get_logger(__name__)


def authorize_deposit(
    *,
    user,
    auction: Auction,
    payment_method: str,
    config: AuctionSettings,
    actor=None,
    now=None,
) -> AuctionDeposit:
    """
    Use-case: депозит-холд перед ставками.

    - аукцион должен быть active, не в обработке и ещё не закончиться
    - уже есть pending-депозит => переиспользуем (тот же idempotency_key,
      шлюз вернёт тот же холд); любой другой статус => Conflict
    - Declined => mark_failed + GatewayDeclined наружу
    - ретраи transient исчерпаны => депозит остаётся pending, GatewayTransient наружу
    """
    now = now or timezone.now()

    if auction.status != Auction.Status.ACTIVE or auction.is_claimed or auction.end_at <= now:
        raise InvalidState({"auction": ["Auction is not accepting deposits."]})

    existing = AuctionDeposit.objects.filter(user=user, auction=auction).first()
    if existing is not None:
        if existing.status != AuctionDeposit.Status.PENDING:
            raise Conflict("Deposit for this auction already exists.")
        deposit = existing
        logger.info("deposit_authorization_resumed", deposit_id=deposit.pk, auction_id=auction.pk)
    else:
        reference_price = highest_bid_amount(auction) or auction.starting_price
        deposit = ledger.create_deposit(
            user=user,
            auction=auction,
            amount=compute_deposit_amount(reference_price, config),
            currency=auction.currency or config.currency,
            actor=actor,
        )

    gateway = registry.get_gateway()

    try:
        external_ref = call_gateway(
            gateway.authorize,
            config=config,
            amount=deposit.amount,
            currency=deposit.currency,
            payment_method=payment_method,
            idempotency_key=deposit.idempotency_key("authorize"),
            metadata={
                "deposit_id": str(deposit.public_id),
                "auction_id": str(auction.public_id),
                "user_id": str(user.public_id),
            },
        )
    except GatewayDeclined as exc:
        ledger.mark_failed(deposit.pk, f"authorize declined: {exc.detail}", actor=actor)
        raise
    except GatewayTransient:
        logger.warning("deposit_authorization_unavailable", deposit_id=deposit.pk, auction_id=auction.pk)
        raise

    try:
        return ledger.mark_authorized(
            deposit.pk,
            external_ref,
            raw_payload={"gateway": gateway.name},
            actor=actor,
            require_open_auction=True,
        )
    except InvalidState:
        # settlement/withdraw успел захватить аукцион: холд никому не нужен
        _release_orphan_hold(deposit, external_ref, gateway=gateway, config=config, actor=actor)
        raise


def _release_orphan_hold(deposit: AuctionDeposit, external_ref: str, *, gateway, config: AuctionSettings, actor=None) -> None:
    """
    Холд поставлен, но депозит уже не может стать authorized.
    Отпускаем холд у шлюза; pending-депозит закрываем, а если шлюз
    отпустить не смог, оставляем failed для reconciliation.
    """
    logger.warning(
        "deposit_authorized_after_auction_closed",
        deposit_id=deposit.pk,
        auction_id=deposit.auction_id,
        external_ref=external_ref,
    )
    current = ledger.get_deposit(deposit.pk)
    if current.status == AuctionDeposit.Status.AUTHORIZED:
        return

    try:
        call_gateway(
            gateway.cancel,
            config=config,
            external_ref=external_ref,
            idempotency_key=deposit.idempotency_key("cancel"),
        )
    except GatewayAlreadyFinalized:
        pass
    except (GatewayDeclined, GatewayTransient) as exc:
        logger.error("orphan_hold_release_failed", deposit_id=deposit.pk, external_ref=external_ref, error=str(exc.detail))
        if current.status == AuctionDeposit.Status.PENDING:
            ledger.mark_failed(deposit.pk, f"orphan hold {external_ref} not released: {exc.detail}", actor=actor)
        return

    if current.status == AuctionDeposit.Status.PENDING:
        ledger.release_pending(deposit.pk, "auction closed during authorization", actor=actor)
