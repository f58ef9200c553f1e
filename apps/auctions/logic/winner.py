# apps/auctions/logic/winner.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from django.db.models import QuerySet

from apps.auctions.models import Auction, Bid


@dataclass(frozen=True)
class Winner:
    user_id: int
    bid_id: int
    amount: Decimal


def list_valid_bids(auction: Auction) -> QuerySet[Bid]:
    """
    Валидные ставки: положительные и сделанные не позже end_at,
    в порядке выигрыша: сумма desc, затем самая ранняя, затем меньший id.
    """
    return (
        Bid.objects.filter(auction=auction, amount__gt=0, created_at__lte=auction.end_at)
        .order_by("-amount", "created_at", "id")
    )


def determine_winner(auction: Auction) -> Winner | None:
    """Ничья по сумме => выигрывает более ранняя ставка. Нет ставок => None."""
    bid = list_valid_bids(auction).first()
    if bid is None:
        return None
    return Winner(user_id=bid.bidder_id, bid_id=bid.pk, amount=bid.amount)


def highest_bid_amount(auction: Auction) -> Decimal | None:
    bid = list_valid_bids(auction).only("amount").first()
    return bid.amount if bid else None
