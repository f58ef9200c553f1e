# apps/auctions/serializers.py
from rest_framework import serializers

from .models import Auction, AuctionSettlement


class AuctionSettlementSerializer(serializers.ModelSerializer):
    auction_id = serializers.UUIDField(source="auction.public_id", read_only=True)
    auction_status = serializers.CharField(source="auction.status", read_only=True)
    processed_at = serializers.DateTimeField(source="auction.processed_at", read_only=True)
    winner_id = serializers.UUIDField(source="winner.public_id", read_only=True)

    class Meta:
        model = AuctionSettlement
        fields = [
            "auction_id",
            "auction_status",
            "processed_at",
            "outcome",
            "winner_id",
            "winning_amount",
            "captured_count",
            "cancelled_count",
            "failed_count",
            "errors",
            "needs_reconciliation",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ProcessEndedQuerySerializer(serializers.Serializer):
    auction_id = serializers.UUIDField(required=False)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=500)
