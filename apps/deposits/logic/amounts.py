# apps/deposits/logic/amounts.py
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from config.app_settings.logic import AuctionSettings

CENT = Decimal("0.01")


def compute_deposit_amount(reference_price: Decimal | None, config: AuctionSettings) -> Decimal:
    """
    max(minimum_deposit, reference_price * deposit_percent), до центов half-up.

    reference_price: текущая максимальная валидная ставка или стартовая цена.
    """
    price = reference_price if reference_price is not None else Decimal("0")
    amount = max(config.minimum_deposit, price * config.deposit_percent)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)
