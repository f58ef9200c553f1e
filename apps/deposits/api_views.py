# apps/deposits/api_views.py
from decimal import Decimal

import stripe
import structlog
from django.conf import settings
from django.db.models import Count, Sum
from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.auctions.models import Auction
from config.app_settings.logic import load_auction_settings
from config.users.permissions import IsMarketplaceAdmin

from .logic.authorize_deposit import authorize_deposit
from .logic.cancel_deposit import cancel_deposit
from .logic.deposit_status import deposit_statuses
from .logic.gateway_events import apply_gateway_event
from .models import AuctionDeposit
from .serializers import (
    AdminDepositFilterSerializer,
    AdminDepositSerializer,
    AuthorizeDepositSerializer,
    DepositSerializer,
    DepositStatusQuerySerializer,
)

logger = structlog.get_logger(__name__)


class DepositAuthorizeApi(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        s = AuthorizeDepositSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        auction = get_object_or_404(Auction, public_id=s.validated_data["auction_id"])

        deposit = authorize_deposit(
            user=request.user,
            auction=auction,
            payment_method=s.validated_data["payment_method_id"],
            config=load_auction_settings(),
            actor=request.user,
        )
        return Response(DepositSerializer(deposit).data, status=status.HTTP_201_CREATED)


class DepositCancelApi(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, external_ref: str):
        deposit = cancel_deposit(
            external_ref=external_ref,
            user=request.user,
            config=load_auction_settings(),
        )
        return Response(DepositSerializer(deposit).data)


class DepositStatusApi(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        s = DepositStatusQuerySerializer(data=request.query_params)
        s.is_valid(raise_exception=True)

        statuses = deposit_statuses(user=request.user, auction_ids=s.validated_data["ids"])

        # одиночный запрос -> плоский ответ, batch -> словарь
        if "auction_ids" not in request.query_params and len(statuses) == 1:
            auction_id, value = next(iter(statuses.items()))
            return Response({"auction_id": auction_id, "status": value})
        return Response({"statuses": statuses})


class AdminDepositPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


class AdminDepositListApi(generics.ListAPIView):
    """
    Admin: все депозиты с фильтрами + сводка по статусам
    (сводка считается по отфильтрованному набору, а не по странице).
    """

    permission_classes = [IsAuthenticated, IsMarketplaceAdmin]
    serializer_class = AdminDepositSerializer
    pagination_class = AdminDepositPagination

    def get_queryset(self):
        f = AdminDepositFilterSerializer(data=self.request.query_params)
        f.is_valid(raise_exception=True)
        params = f.validated_data

        qs = AuctionDeposit.objects.select_related("user", "auction")

        if "status" in params:
            qs = qs.filter(status=params["status"])
        if "user_id" in params:
            qs = qs.filter(user__public_id=params["user_id"])
        if "auction_id" in params:
            qs = qs.filter(auction__public_id=params["auction_id"])
        if "min_amount" in params:
            qs = qs.filter(amount__gte=params["min_amount"])
        if "max_amount" in params:
            qs = qs.filter(amount__lte=params["max_amount"])
        if "date_from" in params:
            qs = qs.filter(created_at__gte=params["date_from"])
        if "date_to" in params:
            qs = qs.filter(created_at__lte=params["date_to"])

        return qs.order_by("-created_at", "-id")

    def list(self, request, *args, **kwargs):
        queryset = self.get_queryset()
        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        response = self.get_paginated_response(serializer.data)
        response.data["summary"] = self._summary(queryset)
        return response

    @staticmethod
    def _summary(queryset):
        rows = queryset.order_by().values("status").annotate(count=Count("id"), total=Sum("amount"))
        by_status = {
            value: {"count": 0, "total_amount": "0.00"} for value in AuctionDeposit.Status.values
        }
        total_count = 0
        total_amount = Decimal("0.00")
        for row in rows:
            amount = row["total"] or Decimal("0.00")
            by_status[row["status"]] = {"count": row["count"], "total_amount": str(amount)}
            total_count += row["count"]
            total_amount += amount

        return {
            "total_count": total_count,
            "total_amount": str(total_amount),
            "by_status": by_status,
        }


class StripeWebhookApi(APIView):
    """
    Stripe webhook: подпись проверяется ДО разбора события,
    дальше событие превращается в переход ledger.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request):
        secret = settings.STRIPE_WEBHOOK_SECRET
        if not secret:
            return Response({"detail": "webhook is not configured"}, status=status.HTTP_400_BAD_REQUEST)

        try:
            event = stripe.Webhook.construct_event(
                request.body,
                request.META.get("HTTP_STRIPE_SIGNATURE", ""),
                secret,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("stripe_webhook_signature_invalid", error=str(exc))
            return Response({"detail": "invalid signature"}, status=status.HTTP_400_BAD_REQUEST)
        except ValueError:
            return Response({"detail": "invalid payload"}, status=status.HTTP_400_BAD_REQUEST)

        result = apply_gateway_event(event)
        return Response({"received": True, "result": result})
