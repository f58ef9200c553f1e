# config/app_settings/logic.py
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

import structlog

from config.app_settings.models import AppSetting

logger = structlog.get_logger(__name__)

AUCTION_PREFIX = "auction."


@dataclass(frozen=True)
class AuctionSettings:
    """
    Явная конфигурация одного запуска (authorize / cancel / settlement).

    Читается из AppSetting один раз и передаётся в use-case параметром,
    чтобы settlement не перечитывал "глобальные" настройки посреди прогона.
    """

    deposit_required: bool = True
    deposit_percent: Decimal = Decimal("0.10")
    minimum_deposit: Decimal = Decimal("0.50")
    currency: str = "CAD"

    gateway_max_attempts: int = 3
    gateway_backoff_seconds: float = 1.0
    gateway_backoff_max_seconds: float = 10.0
    gateway_timeout_seconds: int = 10

    claim_lease_seconds: int = 900


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "1", "yes"}:
        return True
    if isinstance(value, str) and value.strip().lower() in {"false", "0", "no"}:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"not a number: {value!r}") from exc
    if result < 0:
        raise ValueError("must be >= 0")
    return result


def _to_percent(value: Any) -> Decimal:
    result = _to_decimal(value)
    if result > 1:
        raise ValueError("percent is a fraction in [0, 1]")
    return result


def _to_positive_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    result = int(value)
    if result < 1:
        raise ValueError("must be >= 1")
    return result


def _to_seconds(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    result = float(value)
    if result < 0:
        raise ValueError("must be >= 0")
    return result


def _to_currency(value: Any) -> str:
    if not isinstance(value, str) or len(value.strip()) != 3:
        raise ValueError("ISO 4217 code expected")
    return value.strip().upper()


COERCERS: dict[str, Callable[[Any], Any]] = {
    "deposit_required": _to_bool,
    "deposit_percent": _to_percent,
    "minimum_deposit": _to_decimal,
    "currency": _to_currency,
    "gateway_max_attempts": _to_positive_int,
    "gateway_backoff_seconds": _to_seconds,
    "gateway_backoff_max_seconds": _to_seconds,
    "gateway_timeout_seconds": _to_positive_int,
    "claim_lease_seconds": _to_positive_int,
}


def load_auction_settings() -> AuctionSettings:
    """
    Собирает AuctionSettings из строк AppSetting с префиксом "auction.".

    - неизвестные ключи игнорируем (там живут и UI-настройки)
    - кривое значение -> warning в лог + дефолт, а не падение cron'а
    """
    overrides: dict[str, Any] = {}

    for row in AppSetting.objects.filter(key__startswith=AUCTION_PREFIX):
        name = row.key[len(AUCTION_PREFIX):]
        coerce = COERCERS.get(name)
        if coerce is None:
            continue
        try:
            overrides[name] = coerce(row.value)
        except (TypeError, ValueError) as exc:
            logger.warning("app_setting_invalid", key=row.key, value=row.value, error=str(exc))

    return replace(AuctionSettings(), **overrides)


def default_setting_rows() -> list[dict[str, Any]]:
    """Строки AppSetting для seed-команды (значения в JSON-совместимом виде)."""
    defaults = AuctionSettings()
    rows = []
    for f in fields(AuctionSettings):
        value = getattr(defaults, f.name)
        if isinstance(value, Decimal):
            value = float(value)
        rows.append(
            {
                "key": f"{AUCTION_PREFIX}{f.name}",
                "value": value,
                "category": "auction",
            }
        )
    return rows
