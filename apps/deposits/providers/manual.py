# apps/deposits/providers/manual.py
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from core.errors import GatewayAlreadyFinalized, GatewayDeclined

HELD = "held"
CAPTURED = "captured"
RELEASED = "released"

_REF_NAMESPACE = uuid.UUID("6f1c8f7e-3a52-4c1b-9a5e-2d7b1f0c4e11")


@dataclass
class ManualHold:
    external_ref: str
    amount: Decimal
    currency: str
    payment_method: str
    state: str = HELD
    metadata: dict[str, Any] = field(default_factory=dict)


class ManualGateway:
    """
    In-process шлюз для development / тестов.

    - external_ref детерминирован от idempotency_key (uuid5)
    - повтор того же ключа возвращает закэшированный результат
    - другой ключ по холду, который уже в нужном конечном состоянии,
      => GatewayAlreadyFinalized
    - невозможный переход (capture отпущенного, cancel списанного)
      => GatewayDeclined
    """

    name = "manual"

    def __init__(self):
        self._lock = threading.Lock()
        self.holds: dict[str, ManualHold] = {}
        self._results: dict[str, str] = {}

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
        if not payment_method:
            raise GatewayDeclined("Payment method is required.")

        with self._lock:
            cached = self._results.get(idempotency_key)
            if cached is not None:
                return cached

            external_ref = "manual_" + uuid.uuid5(_REF_NAMESPACE, idempotency_key).hex
            self.holds[external_ref] = ManualHold(
                external_ref=external_ref,
                amount=amount,
                currency=currency,
                payment_method=payment_method,
                metadata=dict(metadata or {}),
            )
            self._results[idempotency_key] = external_ref
            return external_ref

    def capture(self, *, external_ref: str, idempotency_key: str, timeout_s: int) -> None:
        self._finish(external_ref, idempotency_key, target=CAPTURED)

    def cancel(self, *, external_ref: str, idempotency_key: str, timeout_s: int) -> None:
        self._finish(external_ref, idempotency_key, target=RELEASED)

    def _finish(self, external_ref: str, idempotency_key: str, *, target: str) -> None:
        with self._lock:
            if self._results.get(idempotency_key) == external_ref:
                return

            hold = self.holds.get(external_ref)
            if hold is None:
                raise GatewayDeclined(f"Unknown hold {external_ref}.")

            if hold.state == target:
                raise GatewayAlreadyFinalized(f"Hold {external_ref} is already {target}.")
            if hold.state != HELD:
                raise GatewayDeclined(f"Hold {external_ref} is {hold.state}, cannot become {target}.")

            hold.state = target
            self._results[idempotency_key] = external_ref

    def state_of(self, external_ref: str) -> str | None:
        hold = self.holds.get(external_ref)
        return hold.state if hold else None
