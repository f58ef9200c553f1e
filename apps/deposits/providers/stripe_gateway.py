# apps/deposits/providers/stripe_gateway.py
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe
import structlog

from core.errors import GatewayAlreadyFinalized, GatewayDeclined, GatewayTransient

logger = structlog.get_logger(__name__)

# Stripe: PaymentIntent в этих статусах уже "финален" для нашего действия
_CAPTURE_DONE = "succeeded"
_CANCEL_DONE = "canceled"


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripeGateway:
    """
    Холды через PaymentIntent с capture_method="manual".

    Ретраи SDK выключены (max_network_retries=0): ретраит core через
    call_gateway с тем же idempotency_key, иначе ретраи считались бы дважды.
    """

    name = "stripe"

    def __init__(self, *, api_key: str):
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY is not configured")
        self.api_key = api_key

    def _configure(self, timeout_s: int) -> None:
        stripe.api_key = self.api_key
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout_s)

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
        self._configure(timeout_s)
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency.lower(),
                payment_method=payment_method,
                capture_method="manual",
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                metadata={k: str(v) for k, v in (metadata or {}).items()},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise self._map_error(exc, external_ref=None, done_status=None) from exc

        if intent.status != "requires_capture":
            logger.warning("stripe_authorize_unexpected_status", intent_id=intent.id, intent_status=intent.status)
            raise GatewayDeclined(f"Payment intent is {intent.status}, hold was not placed.")

        return intent.id

    def capture(self, *, external_ref: str, idempotency_key: str, timeout_s: int) -> None:
        self._configure(timeout_s)
        try:
            stripe.PaymentIntent.capture(external_ref, idempotency_key=idempotency_key)
        except stripe.StripeError as exc:
            raise self._map_error(exc, external_ref=external_ref, done_status=_CAPTURE_DONE) from exc

    def cancel(self, *, external_ref: str, idempotency_key: str, timeout_s: int) -> None:
        self._configure(timeout_s)
        try:
            stripe.PaymentIntent.cancel(external_ref, idempotency_key=idempotency_key)
        except stripe.StripeError as exc:
            raise self._map_error(exc, external_ref=external_ref, done_status=_CANCEL_DONE) from exc

    def _map_error(self, exc: stripe.StripeError, *, external_ref: str | None, done_status: str | None):
        """
        StripeError -> таксономия core.

        payment_intent_unexpected_state: смотрим на сам intent, если он уже
        в нужном конечном статусе, то это AlreadyFinalized (успех для нас).
        """
        logger.info(
            "stripe_error",
            error_type=type(exc).__name__,
            error_code=getattr(exc, "code", None),
            external_ref=external_ref,
        )

        if isinstance(exc, stripe.CardError):
            return GatewayDeclined(str(exc.user_message or "Card was declined."))

        if isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)):
            return GatewayTransient(type(exc).__name__)

        if isinstance(exc, stripe.InvalidRequestError):
            if exc.code == "payment_intent_unexpected_state" and external_ref and done_status:
                try:
                    intent = stripe.PaymentIntent.retrieve(external_ref)
                except stripe.StripeError as inner:
                    return GatewayTransient(f"Cannot inspect intent: {type(inner).__name__}")
                if intent.status == done_status:
                    return GatewayAlreadyFinalized(f"Payment intent is already {intent.status}.")
                return GatewayDeclined(f"Payment intent is {intent.status}.")
            return GatewayDeclined(str(exc.user_message or "Invalid payment request."))

        # AuthenticationError, PermissionError и прочее: повторять бессмысленно
        return GatewayDeclined(type(exc).__name__)
