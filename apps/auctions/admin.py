from django.contrib import admin

from .models import Auction, AuctionSettlement, Bid


@admin.register(Auction)
class AuctionAdmin(admin.ModelAdmin):
    # статус / processed_at / claim меняет только settlement
    list_display = ("public_id", "listing_id", "status", "end_at", "processed_at")
    list_filter = ("status",)
    search_fields = ("public_id", "listing_id")
    readonly_fields = ("public_id", "status", "processed_at", "claimed_at", "claim_token", "created_at", "updated_at")


@admin.register(Bid)
class BidAdmin(admin.ModelAdmin):
    list_display = ("auction", "bidder", "amount", "created_at")
    search_fields = ("bidder__email",)


@admin.register(AuctionSettlement)
class AuctionSettlementAdmin(admin.ModelAdmin):
    list_display = ("auction", "outcome", "captured_count", "cancelled_count", "failed_count", "needs_reconciliation")
    list_filter = ("outcome", "needs_reconciliation")
    readonly_fields = [f.name for f in AuctionSettlement._meta.fields]
