# apps/auctions/api_views.py
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from config.app_settings.logic import load_auction_settings
from config.users.permissions import IsCronOrMarketplaceAdmin, IsMarketplaceAdmin

from .logic.settle_auction import (
    deposit_processing_status,
    due_auction_ids,
    settle_auction,
    settle_due_auctions,
    withdraw_auction,
)
from .models import Auction, AuctionSettlement
from .serializers import AuctionSettlementSerializer, ProcessEndedQuerySerializer


class ProcessEndedAuctionsApi(APIView):
    """
    POST: cron (X-Cron-Secret) или admin: settlement всех закончившихся
          аукционов, либо одного через ?auction_id=<uuid>.
    GET:  admin: какие аукционы ждут обработки / статус депозитов одного.
    """

    def get_permissions(self):
        if self.request.method == "POST":
            return [IsCronOrMarketplaceAdmin()]
        return [IsAuthenticated(), IsMarketplaceAdmin()]

    def post(self, request):
        q = ProcessEndedQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)

        config = load_auction_settings()

        if "auction_id" in q.validated_data:
            auction = get_object_or_404(Auction, public_id=q.validated_data["auction_id"])
            summaries = [settle_auction(auction.pk, config=config)]
        else:
            summaries = settle_due_auctions(config=config, limit=q.validated_data.get("limit"))

        processed = [s for s in summaries if not s.skipped]
        return Response(
            {
                "processed": len(processed),
                "skipped": len(summaries) - len(processed),
                "needs_reconciliation": any(s.needs_reconciliation for s in processed),
                "results": [s.as_dict() for s in summaries],
            }
        )

    def get(self, request):
        q = ProcessEndedQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)

        if "auction_id" in q.validated_data:
            auction = get_object_or_404(Auction, public_id=q.validated_data["auction_id"])
            return Response(deposit_processing_status(auction))

        ids = due_auction_ids(now=timezone.now(), limit=q.validated_data.get("limit"))
        public_ids = dict(Auction.objects.filter(pk__in=ids).values_list("pk", "public_id"))
        return Response(
            {
                "count": len(ids),
                "auction_ids": [str(public_ids[pk]) for pk in ids],
            }
        )


class AuctionWithdrawApi(APIView):
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]

    def post(self, request, public_id):
        auction = get_object_or_404(Auction, public_id=public_id)
        summary = withdraw_auction(auction.pk, config=load_auction_settings())

        if summary.skipped:
            return Response(
                {"detail": "Auction is already finalized or being processed.", "code": "invalid_state"},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(summary.as_dict())


class AuctionSettlementApi(APIView):
    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]

    def get(self, request, public_id):
        report = get_object_or_404(
            AuctionSettlement.objects.select_related("auction", "winner"),
            auction__public_id=public_id,
        )
        return Response(AuctionSettlementSerializer(report).data)
