# apps/deposits/models.py
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q


class AuctionDeposit(models.Model):
    """
    Депозит (холд) пользователя под конкретный аукцион.

    Важные инварианты:
    - ровно один депозит на пару (user, auction): settlement трактует
      "все депозиты аукциона" как "все обязательства участников" без дублей.
    - external_ref (id холда у шлюза) уникален по всей системе; NULL до authorize.
    - status меняется ТОЛЬКО через ledger (условный UPDATE по статусу),
      прямой .save() со сменой статуса запрещён.
    - физически не удаляем: captured/cancelled/failed терминальные, храним для аудита.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        AUTHORIZED = "authorized", "Authorized"
        CAPTURED = "captured", "Captured"
        CANCELLED = "cancelled", "Cancelled"
        FAILED = "failed", "Failed"

    TERMINAL_STATUSES = frozenset({Status.CAPTURED, Status.CANCELLED, Status.FAILED})

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="deposits")
    auction = models.ForeignKey("auctions.Auction", on_delete=models.PROTECT, related_name="deposits")

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)

    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=8, default="CAD")

    external_ref = models.CharField(max_length=128, null=True, blank=True, unique=True)

    captured_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    cancel_reason = models.CharField(max_length=255, blank=True, default="")
    failure_reason = models.CharField(max_length=255, blank=True, default="")

    raw_provider_payload = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    _loaded_status: str | None = None

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._loaded_status = self.status

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_status = instance.status
        return instance

    def save(self, *args, **kwargs):
        """
        Инвариант: статус нельзя менять прямым .save().
        Переходы делает ledger условным UPDATE и пишет DepositEvent,
        а "тихое" обновление из кода/админки обошло бы и гонку, и аудит.
        """
        if self.pk is not None:
            status_changed = (self._loaded_status is not None) and (self.status != self._loaded_status)
            if status_changed:
                raise ValidationError("AuctionDeposit.status can only be changed via the deposit ledger")

        super().save(*args, **kwargs)
        self._loaded_status = self.status

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    def idempotency_key(self, action: str) -> str:
        """Детерминированный ключ шлюза: ретраи одного действия переиспользуют его."""
        return f"deposit:{self.public_id}:{action}"

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["user", "auction"], name="uniq_deposit_user_auction"),
            models.CheckConstraint(condition=Q(amount__gte=0), name="deposits_non_negative_amount"),
        ]
        indexes = [
            models.Index(fields=["auction", "status"], name="idx_deposits_auction_status"),
            models.Index(fields=["status", "created_at"], name="idx_deposits_status_created"),
        ]

    def __str__(self) -> str:
        return f"Deposit({self.public_id}) {self.status} {self.amount} {self.currency}"


class DepositEvent(models.Model):
    """
    Аудит жизненного цикла депозита: одна строка на каждый переход ledger'а.
    create: from_status=None -> pending.
    """

    deposit = models.ForeignKey(AuctionDeposit, on_delete=models.CASCADE, related_name="events")
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)

    from_status = models.CharField(max_length=16, null=True, blank=True)
    to_status = models.CharField(max_length=16)
    action = models.CharField(max_length=32)  # create / authorize / capture / cancel / release / fail

    metadata = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return f"DepositEvent({self.deposit_id}) {self.action} {self.from_status}->{self.to_status}"
