import pytest
from datetime import timedelta

pytestmark = pytest.mark.django_db


URL = "/api/v1/auctions/process-ended/"


def test_cron_secret_triggers_settlement(api_client, settings, user_factory, auction_factory, deposit_factory, gateway, analytics_events):
    """
    GIVEN: cron без JWT, но с правильным X-Cron-Secret
    WHEN: POST process-ended
    THEN: закончившийся аукцион обработан, идущий — нет
    """
    from apps.auctions.models import Auction

    settings.CRON_SECRET = "s3cret"
    ended = auction_factory()
    running = auction_factory(ends_in=timedelta(hours=1))
    deposit_factory(user=user_factory(), auction=ended)

    resp = api_client.post(URL, HTTP_X_CRON_SECRET="s3cret")

    assert resp.status_code == 200, resp.content
    data = resp.json()
    assert data["processed"] == 1
    assert data["results"][0]["outcome"] == "no_winner"
    assert Auction.objects.get(pk=ended.pk).status == "completed"
    assert Auction.objects.get(pk=running.pk).status == "active"


def test_wrong_or_disabled_cron_secret_is_rejected(api_client, settings):
    settings.CRON_SECRET = "s3cret"
    assert api_client.post(URL, HTTP_X_CRON_SECRET="guess").status_code in (401, 403)

    settings.CRON_SECRET = ""
    assert api_client.post(URL, HTTP_X_CRON_SECRET="").status_code in (401, 403)


def test_bidder_cannot_trigger_settlement(bidder_client):
    client, user = bidder_client

    assert client.post(URL).status_code == 403


def test_admin_settles_single_auction_and_repeat_is_skipped(admin_client, auction_factory, gateway, analytics_events):
    client, admin = admin_client
    auction = auction_factory()

    first = client.post(f"{URL}?auction_id={auction.public_id}")
    second = client.post(f"{URL}?auction_id={auction.public_id}")

    assert first.json()["processed"] == 1
    assert second.json()["processed"] == 0
    assert second.json()["skipped"] == 1
    assert second.json()["results"][0]["final_status"] == "completed"


def test_admin_get_lists_due_auctions_and_one_auction_status(admin_client, user_factory, auction_factory, deposit_factory):
    client, admin = admin_client
    due = auction_factory()
    auction_factory(ends_in=timedelta(hours=1))
    deposit_factory(user=user_factory(), auction=due)

    listing = client.get(URL).json()
    single = client.get(URL, {"auction_id": str(due.public_id)}).json()

    assert listing == {"count": 1, "auction_ids": [str(due.public_id)]}
    assert single["status"] == "active"
    assert single["deposits"]["authorized"] == 1
    assert single["all_processed"] is False


def test_withdraw_and_settlement_report(admin_client, user_factory, auction_factory, deposit_factory, gateway, analytics_events):
    client, admin = admin_client
    auction = auction_factory(ends_in=timedelta(days=1))
    deposit_factory(user=user_factory(), auction=auction)

    no_report = client.get(f"/api/v1/auctions/{auction.public_id}/settlement/")
    withdrawn = client.post(f"/api/v1/auctions/{auction.public_id}/withdraw/")
    again = client.post(f"/api/v1/auctions/{auction.public_id}/withdraw/")
    report = client.get(f"/api/v1/auctions/{auction.public_id}/settlement/")

    assert no_report.status_code == 404
    assert withdrawn.status_code == 200, withdrawn.content
    assert withdrawn.json()["final_status"] == "cancelled"
    assert again.status_code == 409
    assert report.status_code == 200
    data = report.json()
    assert data["outcome"] == "withdrawn"
    assert data["auction_status"] == "cancelled"
    assert data["cancelled_count"] == 1
    assert data["winner_id"] is None
