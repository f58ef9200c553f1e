# core/errors.py
"""
Таксономия ошибок депозитов/аукционов.

Все ошибки это DRF APIException, поэтому use-case может просто raise,
а view отдаст корректный 4xx/5xx. Стабильный машинный код (`code`)
добавляет api_exception_handler.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler


class DomainError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request cannot be processed."
    default_code = "domain_error"


class Conflict(DomainError):
    """Дубликат депозита (user, auction) или несовпадение external_ref."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflicting resource state."
    default_code = "conflict"


class InvalidState(DomainError):
    """Переход из статуса, который его не допускает (включая проигранную гонку)."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Invalid status transition."
    default_code = "invalid_state"


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class Unauthorized(DomainError):
    """Вызывающий не владелец депозита (и не admin)."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not own this deposit."
    default_code = "unauthorized"


class GatewayError(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Payment gateway error."
    default_code = "gateway_error"


class GatewayDeclined(GatewayError):
    """Фатально: повторять бессмысленно."""

    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = "Payment was declined."
    default_code = "gateway_declined"


class GatewayTransient(GatewayError):
    """Ретраится внутри core; наружу только если ретраи исчерпаны."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Payment gateway is temporarily unavailable."
    default_code = "gateway_unavailable"


class GatewayAlreadyFinalized(GatewayError):
    """Холд уже в нужном конечном состоянии, для вызывающего это успех."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Hold is already finalized."
    default_code = "already_finalized"


class ReconciliationRequired(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Settlement finished with deposits that need manual reconciliation."
    default_code = "reconciliation_required"


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return None

    code = getattr(exc, "default_code", None)
    if isinstance(exc, APIException):
        codes = exc.get_codes()
        if isinstance(codes, str):
            code = codes

    if isinstance(response.data, dict) and code and "code" not in response.data:
        response.data["code"] = code

    return response
