# apps/deposits/urls.py
from django.urls import path

from .api_views import (
    AdminDepositListApi,
    DepositAuthorizeApi,
    DepositCancelApi,
    DepositStatusApi,
    StripeWebhookApi,
)

urlpatterns = [
    path("deposits/authorize/", DepositAuthorizeApi.as_view(), name="deposits-authorize"),
    path("deposits/status/", DepositStatusApi.as_view(), name="deposits-status"),
    path("deposits/<str:external_ref>/cancel/", DepositCancelApi.as_view(), name="deposits-cancel"),
    path("deposits/webhooks/stripe/", StripeWebhookApi.as_view(), name="deposits-stripe-webhook"),
    path("admin/deposits/", AdminDepositListApi.as_view(), name="admin-deposits-list"),
]
