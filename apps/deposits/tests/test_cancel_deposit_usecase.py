import pytest
from datetime import timedelta

pytestmark = pytest.mark.django_db


OPEN = timedelta(days=1)


def test_owner_cancels_authorized_deposit(user_factory, auction_factory, deposit_factory, gateway, auction_settings):
    from apps.deposits.logic.cancel_deposit import cancel_deposit
    from apps.deposits.models import DepositEvent

    user = user_factory()
    deposit = deposit_factory(user=user, auction=auction_factory(ends_in=OPEN), external_ref="ref-1")
    gateway.hold("ref-1")

    cancelled = cancel_deposit(external_ref="ref-1", user=user, config=auction_settings)

    assert cancelled.status == "cancelled"
    assert gateway.state_of("ref-1") == "released"
    assert gateway.ops("cancel") == [("cancel", "ref-1", deposit.idempotency_key("cancel"))]
    assert DepositEvent.objects.get(deposit=deposit, action="cancel").actor_id == user.id


def test_unknown_ref_is_not_found(user_factory, gateway, auction_settings):
    from apps.deposits.logic.cancel_deposit import cancel_deposit
    from core.errors import NotFound

    with pytest.raises(NotFound):
        cancel_deposit(external_ref="ref-missing", user=user_factory(), config=auction_settings)


def test_other_user_is_unauthorized(user_factory, auction_factory, deposit_factory, gateway, auction_settings):
    from apps.deposits.logic.cancel_deposit import cancel_deposit
    from core.errors import Unauthorized

    deposit_factory(user=user_factory(), auction=auction_factory(ends_in=OPEN), external_ref="ref-1")

    with pytest.raises(Unauthorized):
        cancel_deposit(external_ref="ref-1", user=user_factory(), config=auction_settings)

    assert gateway.calls == []


def test_admin_may_cancel_foreign_deposit(user_factory, auction_factory, deposit_factory, gateway, auction_settings):
    from apps.deposits.logic.cancel_deposit import cancel_deposit

    deposit_factory(user=user_factory(), auction=auction_factory(ends_in=OPEN), external_ref="ref-1")

    cancelled = cancel_deposit(external_ref="ref-1", user=user_factory(role="admin"), config=auction_settings)

    assert cancelled.status == "cancelled"


def test_cancel_after_capture_is_invalid_state_and_keeps_capture(user_factory, auction_factory, deposit_factory, gateway, auction_settings):
    """
    GIVEN: settlement уже списал депозит U1
    WHEN: U1 пытается отменить свой депозит
    THEN: InvalidState, депозит остаётся captured, шлюз не вызывается
    """
    from apps.deposits.logic.cancel_deposit import cancel_deposit
    from core.errors import InvalidState

    user = user_factory()
    deposit = deposit_factory(user=user, auction=auction_factory(ends_in=OPEN), status="captured", external_ref="ref-1")

    with pytest.raises(InvalidState):
        cancel_deposit(external_ref="ref-1", user=user, config=auction_settings)

    deposit.refresh_from_db()
    assert deposit.status == "captured"
    assert gateway.calls == []


def test_already_released_hold_counts_as_success(user_factory, auction_factory, deposit_factory, gateway, auction_settings):
    from apps.deposits.logic.cancel_deposit import cancel_deposit
    from core.errors import GatewayAlreadyFinalized

    user = user_factory()
    deposit_factory(user=user, auction=auction_factory(ends_in=OPEN), external_ref="ref-1")
    gateway.script("cancel", "ref-1", [GatewayAlreadyFinalized("already canceled")])

    cancelled = cancel_deposit(external_ref="ref-1", user=user, config=auction_settings)

    assert cancelled.status == "cancelled"


def test_capture_racing_between_check_and_update_wins(user_factory, auction_factory, deposit_factory, gateway, auction_settings, monkeypatch):
    """
    Settlement списал депозит между проверкой статуса и mark_cancelled:
    условный UPDATE не проходит -> InvalidState, capture не откатывается.
    """
    from apps.deposits.logic import ledger
    from apps.deposits.logic.cancel_deposit import cancel_deposit
    from apps.deposits.models import AuctionDeposit
    from core.errors import GatewayAlreadyFinalized, InvalidState

    user = user_factory()
    deposit = deposit_factory(user=user, auction=auction_factory(ends_in=OPEN), external_ref="ref-1")

    def capture_underneath(**kwargs):
        AuctionDeposit.objects.filter(pk=deposit.pk).update(status="captured")
        raise GatewayAlreadyFinalized("hold state changed")

    monkeypatch.setattr(gateway, "cancel", capture_underneath)

    with pytest.raises(InvalidState):
        cancel_deposit(external_ref="ref-1", user=user, config=auction_settings)

    assert ledger.get_deposit(deposit.pk).status == "captured"


def test_cancel_after_auction_end_keeps_winner_hold(user_factory, auction_factory, bid_factory, deposit_factory, gateway, auction_settings, analytics_events):
    """
    GIVEN: аукцион закончился, но ещё не обработан; U1 лидирует
    WHEN: U1 пытается отпустить свой холд
    THEN: InvalidState, шлюз не вызывается, settlement затем списывает депозит
    """
    from apps.auctions.logic.settle_auction import settle_auction
    from apps.deposits.logic.cancel_deposit import cancel_deposit
    from core.errors import InvalidState

    u1 = user_factory()
    auction = auction_factory()  # уже закончился
    bid_factory(auction=auction, bidder=u1, amount="300.00")
    deposit = deposit_factory(user=u1, auction=auction, external_ref="ref-1")

    with pytest.raises(InvalidState):
        cancel_deposit(external_ref="ref-1", user=u1, config=auction_settings)

    assert gateway.calls == []
    deposit.refresh_from_db()
    assert deposit.status == "authorized"

    summary = settle_auction(auction.pk, config=auction_settings)

    assert summary.outcome == "winner_captured"
    assert summary.captured == 1


@pytest.mark.parametrize("auction_kwargs", [
    {"status": "cancelled"},
    {"claimed": True},
])
def test_cancel_rejected_while_auction_closed_or_claimed(auction_kwargs, user_factory, auction_factory, deposit_factory, gateway, auction_settings):
    import uuid

    from django.utils import timezone

    from apps.auctions.models import Auction
    from apps.deposits.logic.cancel_deposit import cancel_deposit
    from core.errors import InvalidState

    user = user_factory()
    auction = auction_factory(ends_in=OPEN)
    deposit_factory(user=user, auction=auction, external_ref="ref-1")
    now = timezone.now()
    if auction_kwargs.get("claimed"):
        Auction.objects.filter(pk=auction.pk).update(claim_token=uuid.uuid4(), claimed_at=now)
    else:
        Auction.objects.filter(pk=auction.pk).update(status=auction_kwargs["status"], processed_at=now)

    with pytest.raises(InvalidState):
        cancel_deposit(external_ref="ref-1", user=user, config=auction_settings)

    assert gateway.calls == []


def test_settlement_claim_between_release_and_update_marks_failed(user_factory, auction_factory, deposit_factory, gateway, auction_settings, monkeypatch):
    """
    Settlement захватил аукцион, пока шлюз отпускал холд: депозит не
    становится cancelled за спиной settlement, а уходит в failed
    (холд у шлюза уже отпущен) и пользователь получает InvalidState.
    """
    import uuid

    from django.utils import timezone

    from apps.auctions.models import Auction
    from apps.deposits.logic import ledger
    from apps.deposits.logic.cancel_deposit import cancel_deposit
    from core.errors import InvalidState

    user = user_factory()
    auction = auction_factory(ends_in=OPEN)
    deposit = deposit_factory(user=user, auction=auction, external_ref="ref-1")
    gateway.hold("ref-1")
    release = gateway.cancel

    def release_then_claim(**kwargs):
        result = release(**kwargs)
        Auction.objects.filter(pk=auction.pk).update(claim_token=uuid.uuid4(), claimed_at=timezone.now())
        return result

    monkeypatch.setattr(gateway, "cancel", release_then_claim)

    with pytest.raises(InvalidState):
        cancel_deposit(external_ref="ref-1", user=user, config=auction_settings)

    current = ledger.get_deposit(deposit.pk)
    assert current.status == "failed"
    assert "closing" in current.failure_reason
