# apps/deposits/providers/registry.py
from __future__ import annotations

from django.conf import settings

from apps.deposits.providers.manual import ManualGateway
from apps.deposits.providers.port import PaymentGatewayPort
from apps.deposits.providers.stripe_gateway import StripeGateway

# manual хранит холды в памяти процесса => один экземпляр на процесс
_manual_gateway = ManualGateway()


def get_gateway() -> PaymentGatewayPort:
    """
    Выбор шлюза по settings.DEPOSIT_GATEWAY.

    Use-case'ы зовут registry.get_gateway() через модуль, поэтому тесты
    подменяют шлюз одним monkeypatch.
    """
    name = getattr(settings, "DEPOSIT_GATEWAY", "manual")

    if name == "manual":
        return _manual_gateway
    if name == "stripe":
        return StripeGateway(api_key=settings.STRIPE_SECRET_KEY)

    # Без сюрпризов: если шлюз неизвестен, явно падаем
    raise ValueError(f"Unknown deposit gateway: {name}")
