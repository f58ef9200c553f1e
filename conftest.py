# conftest.py
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone


JWT_LOGIN_URL = "/api/v1/auth/login/"


@pytest.fixture
def user_factory(db):
    """
    Создаёт пользователя с заданным email/паролем.
    Возвращает объект user.
    """
    def _make_user(email: str = None, password: str = "pass12345", **kwargs):
        User = get_user_model()
        email = email or f"u-{uuid.uuid4().hex[:8]}@example.com"
        return User.objects.create_user(email=email, password=password, **kwargs)

    return _make_user


@pytest.fixture
def api_client(client, db):
    """
    Django test client (как обычно), но оставляем именование "api_client",
    чтобы было понятно, что это клиент для HTTP-запросов к API.
    """
    return client


@pytest.fixture
def auth_client(api_client, user_factory):
    """
    Возвращает (client, user) с установленным Authorization: Bearer <access>.
    Аутентификация строго как в проде — через JWT login endpoint.
    """
    def _login(email: str = "a@example.com", password: str = "pass12345", **user_kwargs):
        user = user_factory(email=email, password=password, **user_kwargs)

        resp = api_client.post(
            JWT_LOGIN_URL,
            data={"email": email, "password": password},
            content_type="application/json",
        )
        assert resp.status_code == 200, resp.content

        payload = resp.json()
        access = payload.get("access")
        assert access, f"Login response has no 'access' token. Got: {payload}"

        api_client.defaults["HTTP_AUTHORIZATION"] = f"Bearer {access}"
        return api_client, user

    return _login


@pytest.fixture
def admin_client(auth_client):
    """(client, user) где user — admin маркетплейса."""
    return auth_client(email="admin@example.com", role="admin")


@pytest.fixture
def bidder_client(auth_client):
    return auth_client(email="bidder@example.com", role="bidder")


# === АУКЦИОНЫ / СТАВКИ / ДЕПОЗИТЫ ===

@pytest.fixture
def auction_factory(db):
    """
    По умолчанию аукцион уже закончился (end_at в прошлом),
    удобно для settlement. ends_in=... для ещё идущих.
    """
    from apps.auctions.models import Auction

    def _make_auction(*, ends_in: timedelta = timedelta(minutes=-5), **kwargs):
        now = timezone.now()
        end_at = kwargs.pop("end_at", now + ends_in)
        start_at = kwargs.pop("start_at", end_at - timedelta(days=7))
        kwargs.setdefault("listing_id", uuid.uuid4())
        kwargs.setdefault("starting_price", Decimal("100.00"))
        return Auction.objects.create(start_at=start_at, end_at=end_at, **kwargs)

    return _make_auction


@pytest.fixture
def bid_factory(db):
    from apps.auctions.models import Bid

    def _make_bid(*, auction, bidder, amount, created_at=None):
        if created_at is None:
            created_at = auction.end_at - timedelta(minutes=10)
        return Bid.objects.create(
            auction=auction,
            bidder=bidder,
            amount=Decimal(str(amount)),
            created_at=created_at,
        )

    return _make_bid


@pytest.fixture
def deposit_factory(db):
    """
    Депозит в нужном статусе в обход ledger (status задаём при INSERT,
    это разрешено: save-guard ловит только смену статуса).
    """
    from apps.deposits.models import AuctionDeposit

    def _make_deposit(*, user, auction, status="authorized", amount="50.00", external_ref=None, **kwargs):
        if external_ref is None and status != AuctionDeposit.Status.PENDING:
            external_ref = f"ref-{uuid.uuid4().hex[:12]}"
        return AuctionDeposit.objects.create(
            user=user,
            auction=auction,
            status=status,
            amount=Decimal(str(amount)),
            external_ref=external_ref,
            **kwargs,
        )

    return _make_deposit


@pytest.fixture
def auction_settings():
    """Конфиг запуска без пауз между ретраями."""
    from config.app_settings.logic import AuctionSettings

    return AuctionSettings(gateway_backoff_seconds=0.0, gateway_backoff_max_seconds=0.0)


# === ШЛЮЗ ===

@pytest.fixture
def gateway(monkeypatch):
    """
    ScriptedGateway подменяет registry.get_gateway().

    gateway.script("capture", ref, [GatewayTransient(), None]): очередь исходов
    по (операция, ref): исключение бросается, None = обычное поведение.
    gateway.calls: журнал (операция, ref/None, idempotency_key).
    """
    from apps.deposits.providers import registry
    from apps.deposits.providers.manual import ManualGateway, ManualHold

    class ScriptedGateway(ManualGateway):
        name = "scripted"

        def __init__(self):
            super().__init__()
            self.calls = []
            self._scripts = {}

        def script(self, op, ref, outcomes):
            self._scripts[(op, ref)] = list(outcomes)

        def hold(self, ref, amount=Decimal("50.00")):
            # холд, созданный "раньше" (депозиты из deposit_factory)
            self.holds[ref] = ManualHold(external_ref=ref, amount=amount, currency="CAD", payment_method="pm_x")
            return ref

        def _next(self, op, ref):
            queue = self._scripts.get((op, ref))
            if queue:
                outcome = queue.pop(0)
                if outcome is not None:
                    raise outcome

        def authorize(self, **kwargs):
            self.calls.append(("authorize", None, kwargs["idempotency_key"]))
            self._next("authorize", None)
            return super().authorize(**kwargs)

        def capture(self, *, external_ref, idempotency_key, timeout_s):
            self.calls.append(("capture", external_ref, idempotency_key))
            self._next("capture", external_ref)
            if external_ref not in self.holds:
                self.hold(external_ref)
            return super().capture(external_ref=external_ref, idempotency_key=idempotency_key, timeout_s=timeout_s)

        def cancel(self, *, external_ref, idempotency_key, timeout_s):
            self.calls.append(("cancel", external_ref, idempotency_key))
            self._next("cancel", external_ref)
            if external_ref not in self.holds:
                self.hold(external_ref)
            return super().cancel(external_ref=external_ref, idempotency_key=idempotency_key, timeout_s=timeout_s)

        def ops(self, op):
            return [c for c in self.calls if c[0] == op]

    gw = ScriptedGateway()
    monkeypatch.setattr(registry, "get_gateway", lambda: gw)
    return gw


@pytest.fixture
def analytics_events(monkeypatch):
    """Перехватывает analytics.emit: список (event, payload) без пула потоков."""
    from core import analytics

    events = []
    monkeypatch.setattr(analytics, "emit", lambda event, **payload: events.append((event, payload)))
    return events
