import pytest


def test_emit_failure_stays_inside_future(monkeypatch):
    from core import analytics

    def broken_sink(event, payload):
        raise RuntimeError("tracker is down")

    monkeypatch.setattr(analytics, "sink", broken_sink)

    # вызывающий код ничего не ловит: исключение живёт только внутри future
    future = analytics.emit("auction_settled", auction_id="a1")

    assert isinstance(future.exception(timeout=5), RuntimeError)


def test_failed_event_is_logged(monkeypatch):
    from concurrent.futures import Future

    from core import analytics

    logged = []
    monkeypatch.setattr(analytics.logger, "warning", lambda event, **kw: logged.append((event, kw)))

    future = Future()
    future.set_exception(RuntimeError("tracker is down"))
    analytics._on_done("auction_settled", future)

    assert logged[0][0] == "analytics_event_failed"
    assert logged[0][1]["analytics_event"] == "auction_settled"


def test_emit_delivers_payload_to_sink(monkeypatch):
    from core import analytics

    received = []
    monkeypatch.setattr(analytics, "sink", lambda event, payload: received.append((event, payload)))

    analytics.emit("auction_withdrawn", auction_id="a1", cancelled=2).result(timeout=5)

    assert received == [("auction_withdrawn", {"auction_id": "a1", "cancelled": 2})]


@pytest.mark.parametrize(
    "error_cls, status_code, code",
    [
        ("Conflict", 409, "conflict"),
        ("InvalidState", 409, "invalid_state"),
        ("NotFound", 404, "not_found"),
        ("Unauthorized", 403, "unauthorized"),
        ("GatewayDeclined", 402, "gateway_declined"),
        ("GatewayTransient", 503, "gateway_unavailable"),
        ("GatewayAlreadyFinalized", 409, "already_finalized"),
        ("ReconciliationRequired", 409, "reconciliation_required"),
    ],
)
def test_error_taxonomy_status_and_code(error_cls, status_code, code):
    from core import errors

    exc = getattr(errors, error_cls)()

    assert exc.status_code == status_code
    assert exc.default_code == code


def test_exception_handler_adds_stable_code():
    from core.errors import InvalidState, api_exception_handler

    resp = api_exception_handler(InvalidState({"status": ["Deposit is no longer authorized."]}), {})

    assert resp.status_code == 409
    assert resp.data["code"] == "invalid_state"
    assert resp.data["status"] == ["Deposit is no longer authorized."]


def test_log_redaction_masks_payment_details():
    from core.logging import redact_sensitive

    event = redact_sensitive(None, "info", {"event": "x", "payment_method": "pm_123", "nested": {"api_key": "sk"}})

    assert event["payment_method"] == "[REDACTED]"
    assert event["nested"]["api_key"] == "[REDACTED]"
    assert event["event"] == "x"
