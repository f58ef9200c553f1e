# apps/deposits/logic/deposit_status.py
from __future__ import annotations

from typing import Iterable
from uuid import UUID

from apps.deposits.models import AuctionDeposit

NO_DEPOSIT = "no_deposit"


def deposit_statuses(*, user, auction_ids: Iterable[UUID]) -> dict[str, str]:
    """public_id аукциона -> статус депозита пользователя (или "no_deposit")."""
    wanted = [str(a) for a in auction_ids]
    found = dict(
        AuctionDeposit.objects.filter(user=user, auction__public_id__in=wanted).values_list(
            "auction__public_id", "status"
        )
    )
    by_str = {str(k): v for k, v in found.items()}
    return {auction_id: by_str.get(auction_id, NO_DEPOSIT) for auction_id in wanted}
