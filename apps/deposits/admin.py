from django.contrib import admin

from .models import AuctionDeposit, DepositEvent


class DepositEventInline(admin.TabularInline):
    model = DepositEvent
    extra = 0
    can_delete = False
    readonly_fields = ("action", "from_status", "to_status", "actor", "metadata", "created_at")


@admin.register(AuctionDeposit)
class AuctionDepositAdmin(admin.ModelAdmin):
    # статус только через ledger => в админке read-only
    list_display = ("public_id", "user", "auction", "status", "amount", "currency", "created_at")
    list_filter = ("status", "currency")
    search_fields = ("public_id", "external_ref", "user__email")
    readonly_fields = (
        "public_id",
        "status",
        "external_ref",
        "captured_at",
        "cancelled_at",
        "failed_at",
        "failure_reason",
        "cancel_reason",
        "raw_provider_payload",
        "created_at",
        "updated_at",
    )
    inlines = [DepositEventInline]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DepositEvent)
class DepositEventAdmin(admin.ModelAdmin):
    list_display = ("deposit", "action", "from_status", "to_status", "actor", "created_at")
    list_filter = ("action",)
