# apps/deposits/logic/status_fsm.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from apps.deposits.models import AuctionDeposit
from core.errors import InvalidState

Status = AuctionDeposit.Status


@dataclass(frozen=True)
class TransitionResult:
    ok: bool
    reason: str | None = None


# Один источник правды: allowed transitions депозита
ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    Status.PENDING: {Status.AUTHORIZED, Status.CANCELLED, Status.FAILED},
    Status.AUTHORIZED: {Status.CAPTURED, Status.CANCELLED, Status.FAILED},
    Status.CAPTURED: set(),
    Status.CANCELLED: set(),
    Status.FAILED: set(),
}


def can_transition(*, current: str, new: str) -> TransitionResult:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if new in allowed:
        return TransitionResult(ok=True)

    return TransitionResult(ok=False, reason=f"Cannot move deposit from {current} to {new}.")


def assert_can_transition(*, current: str, new: str) -> None:
    """
    Бросает InvalidState (409), если переход запрещён.
    Повтор в то же состояние сюда не попадает: идемпотентность решает ledger.
    """
    res = can_transition(current=current, new=new)
    if not res.ok:
        raise InvalidState({"status": [res.reason or "Invalid status transition."]})


def allowed_next_statuses(*, current: str) -> Iterable[str]:
    return sorted(ALLOWED_TRANSITIONS.get(current, set()))
