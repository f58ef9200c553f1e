import pytest
from decimal import Decimal


class FlakyCall:
    """Падает GatewayTransient первые `failures` раз, потом возвращает значение."""

    def __init__(self, failures, result="ok", error=None):
        self.failures = failures
        self.result = result
        self.error = error
        self.calls = []

    def __call__(self, **kwargs):
        from core.errors import GatewayTransient

        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if len(self.calls) <= self.failures:
            raise GatewayTransient("temporary")
        return self.result


def test_transient_errors_are_retried_with_same_arguments(auction_settings):
    from apps.deposits.providers.resilience import call_gateway

    call = FlakyCall(failures=2)

    assert call_gateway(call, config=auction_settings, idempotency_key="deposit:x:capture") == "ok"

    assert len(call.calls) == 3
    assert {c["idempotency_key"] for c in call.calls} == {"deposit:x:capture"}
    assert all(c["timeout_s"] == auction_settings.gateway_timeout_seconds for c in call.calls)


def test_exhausted_retries_reraise_last_transient(auction_settings):
    from apps.deposits.providers.resilience import call_gateway
    from core.errors import GatewayTransient

    call = FlakyCall(failures=10)

    with pytest.raises(GatewayTransient):
        call_gateway(call, config=auction_settings, idempotency_key="k")

    assert len(call.calls) == auction_settings.gateway_max_attempts


def test_declined_is_not_retried(auction_settings):
    from apps.deposits.providers.resilience import call_gateway
    from core.errors import GatewayDeclined

    call = FlakyCall(failures=0, error=GatewayDeclined("no"))

    with pytest.raises(GatewayDeclined):
        call_gateway(call, config=auction_settings, idempotency_key="k")

    assert len(call.calls) == 1


@pytest.mark.parametrize(
    "price, expected",
    [
        (Decimal("1000.00"), Decimal("100.00")),
        (Decimal("2.00"), Decimal("0.50")),  # минимум
        (Decimal("123.45"), Decimal("12.35")),  # half-up
        (None, Decimal("0.50")),
    ],
)
def test_compute_deposit_amount(price, expected):
    from apps.deposits.logic.amounts import compute_deposit_amount
    from config.app_settings.logic import AuctionSettings

    assert compute_deposit_amount(price, AuctionSettings()) == expected
