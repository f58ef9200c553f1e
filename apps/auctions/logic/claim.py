# apps/auctions/logic/claim.py
"""
Claim mutex аукциона: атомарный compare-and-swap одним UPDATE.

Маркер "в обработке" = status=active + claim_token. Проигравший гонку
получает None сразу, никто не блокируется. Claim старше lease можно
перехватить: упавший воркер не оставит аукцион "в обработке" навсегда,
а повторный fan-out безопасен (ledger условный, ключи шлюза детерминированы).
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta

import structlog
from django.db.models import Q

from apps.auctions.models import Auction
from core.errors import InvalidState

logger = structlog.get_logger(__name__)

# Один источник правды: конечные статусы аукциона
FINAL_STATUSES = {Auction.Status.COMPLETED, Auction.Status.CANCELLED}


def claim_auction(
    auction_id: int,
    *,
    now: datetime,
    lease_seconds: int,
    require_due: bool = True,
) -> uuid.UUID | None:
    token = uuid.uuid4()
    stale_before = now - timedelta(seconds=lease_seconds)

    qs = Auction.objects.filter(pk=auction_id, status=Auction.Status.ACTIVE).filter(
        Q(claim_token__isnull=True) | Q(claimed_at__lt=stale_before)
    )
    if require_due:
        qs = qs.filter(end_at__lte=now)

    rows = qs.update(claim_token=token, claimed_at=now, updated_at=now)
    if rows == 0:
        logger.info("auction_claim_skipped", auction_id=auction_id)
        return None

    logger.info("auction_claimed", auction_id=auction_id, claim_token=str(token))
    return token


def finalize_auction(
    auction_id: int,
    *,
    outcome: str,
    claim_token: uuid.UUID,
    now: datetime,
) -> None:
    """
    active (с нашим claim_token) -> completed | cancelled, processed_at=now.
    0 строк => claim у нас перехватили или аукцион уже финализирован.
    """
    if outcome not in FINAL_STATUSES:
        raise InvalidState({"status": [f"Auction cannot be finalized as {outcome}."]})

    rows = Auction.objects.filter(
        pk=auction_id,
        status=Auction.Status.ACTIVE,
        claim_token=claim_token,
    ).update(status=outcome, processed_at=now, updated_at=now)

    if rows == 0:
        logger.warning("auction_finalize_lost_claim", auction_id=auction_id, outcome=outcome)
        raise InvalidState({"status": ["Auction is not claimed by this worker."]})

    logger.info("auction_finalized", auction_id=auction_id, outcome=outcome)
