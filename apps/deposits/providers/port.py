# apps/deposits/providers/port.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol


class PaymentGatewayPort(Protocol):
    """
    Порт (интерфейс) платёжного шлюза для холдов депозитов.

    Контракт:
    - authorize: ставит холд; тот же idempotency_key => тот же external_ref,
      второй холд не создаётся.
    - capture / cancel: идемпотентны по ключу.
    - ошибки: GatewayDeclined (фатально), GatewayTransient (можно ретраить,
      таймаут тоже сюда), GatewayAlreadyFinalized (холд уже в нужном
      конечном состоянии => для вызывающего это успех).
    """

    name: str

    def authorize(
        self,
        *,
        amount: Decimal,
        currency: str,
        payment_method: str,
        idempotency_key: str,
        metadata: dict[str, Any] | None = None,
        timeout_s: int,
    ) -> str:
        ...

    def capture(self, *, external_ref: str, idempotency_key: str, timeout_s: int) -> None:
        ...

    def cancel(self, *, external_ref: str, idempotency_key: str, timeout_s: int) -> None:
        ...
