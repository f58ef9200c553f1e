# apps/auctions/urls.py
from django.urls import path

from .api_views import AuctionSettlementApi, AuctionWithdrawApi, ProcessEndedAuctionsApi

urlpatterns = [
    path("auctions/process-ended/", ProcessEndedAuctionsApi.as_view(), name="auctions-process-ended"),
    path("auctions/<uuid:public_id>/withdraw/", AuctionWithdrawApi.as_view(), name="auctions-withdraw"),
    path("auctions/<uuid:public_id>/settlement/", AuctionSettlementApi.as_view(), name="auctions-settlement"),
]
