import pytest

pytestmark = pytest.mark.django_db


def _event(event_type, intent_id, **intent):
    return {
        "id": "evt_1",
        "type": event_type,
        "data": {"object": {"id": intent_id, "object": "payment_intent", **intent}},
    }


def test_succeeded_captures_authorized_deposit_once(user_factory, auction_factory, deposit_factory):
    """
    GIVEN: authorized депозит с ref pi_1
    WHEN: payment_intent.succeeded приходит дважды
    THEN: депозит captured, событие capture записано один раз
    """
    from apps.deposits.logic.gateway_events import apply_gateway_event
    from apps.deposits.models import DepositEvent

    deposit = deposit_factory(user=user_factory(), auction=auction_factory(), external_ref="pi_1")

    first = apply_gateway_event(_event("payment_intent.succeeded", "pi_1"))
    second = apply_gateway_event(_event("payment_intent.succeeded", "pi_1"))

    deposit.refresh_from_db()
    assert first == second == "applied"
    assert deposit.status == "captured"
    assert DepositEvent.objects.filter(deposit=deposit, action="capture").count() == 1


def test_canceled_releases_authorized_and_pending(user_factory, auction_factory, deposit_factory):
    from apps.deposits.logic.gateway_events import apply_gateway_event

    auction = auction_factory()
    authorized = deposit_factory(user=user_factory(), auction=auction, external_ref="pi_1")
    pending = deposit_factory(user=user_factory(), auction=auction, status="pending")

    apply_gateway_event(_event("payment_intent.canceled", "pi_1", cancellation_reason="abandoned"))
    # ответ authorize потерян: депозит находим по metadata.deposit_id
    apply_gateway_event(
        _event("payment_intent.canceled", "pi_2", metadata={"deposit_id": str(pending.public_id)})
    )

    authorized.refresh_from_db()
    pending.refresh_from_db()
    assert authorized.status == "cancelled"
    assert "abandoned" in authorized.cancel_reason
    assert pending.status == "cancelled"


def test_payment_failed_marks_failed_with_gateway_message(user_factory, auction_factory, deposit_factory):
    from apps.deposits.logic.gateway_events import apply_gateway_event

    deposit = deposit_factory(user=user_factory(), auction=auction_factory(), external_ref="pi_1")

    result = apply_gateway_event(
        _event("payment_intent.payment_failed", "pi_1", last_payment_error={"message": "Your card was declined."})
    )

    deposit.refresh_from_db()
    assert result == "applied"
    assert deposit.status == "failed"
    assert deposit.failure_reason == "Your card was declined."


@pytest.mark.parametrize(
    "status, event_type",
    [
        ("captured", "payment_intent.canceled"),
        ("captured", "payment_intent.payment_failed"),
        ("cancelled", "payment_intent.succeeded"),
        ("failed", "payment_intent.canceled"),
    ],
)
def test_event_never_moves_terminal_deposit_elsewhere(status, event_type, user_factory, auction_factory, deposit_factory):
    from apps.deposits.logic.gateway_events import apply_gateway_event

    deposit = deposit_factory(user=user_factory(), auction=auction_factory(), status=status, external_ref="pi_1")

    result = apply_gateway_event(_event(event_type, "pi_1"))

    deposit.refresh_from_db()
    assert result == "ignored"
    assert deposit.status == status


def test_unknown_intent_and_unrelated_event_type(user_factory, auction_factory, deposit_factory):
    from apps.deposits.logic.gateway_events import apply_gateway_event

    deposit_factory(user=user_factory(), auction=auction_factory(), external_ref="pi_1")

    assert apply_gateway_event(_event("payment_intent.succeeded", "pi_missing")) == "ignored"
    assert apply_gateway_event(_event("charge.refunded", "pi_1")) == "unhandled"
