# apps/auctions/models.py
from __future__ import annotations

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import models
from django.db.models import F, Q


class Auction(models.Model):
    """
    Аукцион по листингу.

    listing_id: просто идентификатор листинга (CRUD листингов живёт снаружи),
    без FK и без обратных ссылок.

    Статус и processed_at меняет ТОЛЬКО claim-mutex (apps/auctions/logic/claim.py)
    условным UPDATE. Маркер "в обработке" = status=active + claim_token.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    listing_id = models.UUIDField(unique=True)

    start_at = models.DateTimeField()
    end_at = models.DateTimeField()

    starting_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=8, default="CAD")

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    processed_at = models.DateTimeField(null=True, blank=True)

    claimed_at = models.DateTimeField(null=True, blank=True)
    claim_token = models.UUIDField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._loaded_status = self.status

    def save(self, *args, **kwargs):
        """
        Инвариант: статус нельзя менять через .save(), только через
        claim/finalize, которые работают условным UPDATE по статусу.
        """
        if self.pk is not None and self.status != self._loaded_status:
            raise DjangoValidationError(
                {"status": "Auction.status can only be changed via settlement/finalize."}
            )
        super().save(*args, **kwargs)
        self._loaded_status = self.status

    @property
    def is_claimed(self) -> bool:
        return self.claim_token is not None

    class Meta:
        ordering = ["end_at", "id"]
        indexes = [
            models.Index(fields=["end_at", "status"], name="idx_auctions_ended_active"),
            models.Index(fields=["status"], name="idx_auctions_status"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_at__gt=F("start_at")),
                name="auctions_valid_timeframe",
            ),
            models.CheckConstraint(
                condition=Q(starting_price__gte=0),
                name="auctions_non_negative_starting_price",
            ),
            # processed_at выставлен <=> аукцион уже не active
            models.CheckConstraint(
                condition=(
                    Q(status="active", processed_at__isnull=True)
                    | (~Q(status="active") & Q(processed_at__isnull=False))
                ),
                name="auctions_processed_at_iff_terminal",
            ),
        ]

    def __str__(self) -> str:
        return f"Auction {self.public_id} ({self.status})"


class Bid(models.Model):
    """
    История ставок. Размещение ставок: внешний путь; здесь только чтение
    для определения победителя.
    """

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    auction = models.ForeignKey(Auction, on_delete=models.PROTECT, related_name="bids")
    bidder = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="bids")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField()

    class Meta:
        ordering = ["-amount", "created_at", "id"]
        indexes = [
            models.Index(fields=["auction", "-amount"], name="idx_bids_auction_amount"),
            models.Index(fields=["auction", "created_at"], name="idx_bids_auction_created"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="bids_positive_amount"),
        ]

    def __str__(self) -> str:
        return f"Bid {self.amount} on {self.auction_id} by {self.bidder_id}"


class AuctionSettlement(models.Model):
    """
    Отчёт settlement по аукциону: исход + агрегаты по депозитам.
    needs_reconciliation=True => есть failed депозиты, нужен оператор.
    """

    class Outcome(models.TextChoices):
        WINNER_CAPTURED = "winner_captured", "Winner captured"
        NO_WINNER = "no_winner", "No winner"
        WINNER_DECLINED = "winner_declined", "Winner declined"
        WINNER_WITHOUT_DEPOSIT = "winner_without_deposit", "Winner without deposit"
        WITHDRAWN = "withdrawn", "Withdrawn"

    auction = models.OneToOneField(Auction, on_delete=models.PROTECT, related_name="settlement")
    outcome = models.CharField(max_length=32, choices=Outcome.choices)

    winner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="won_settlements",
    )
    winning_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    captured_count = models.PositiveIntegerField(default=0)
    cancelled_count = models.PositiveIntegerField(default=0)
    failed_count = models.PositiveIntegerField(default=0)

    errors = models.JSONField(default=list, blank=True)
    needs_reconciliation = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Settlement({self.auction_id}) {self.outcome}"
