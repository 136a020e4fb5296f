"""Order and payment state machine.

All status rules live here so handlers never compare status strings ad hoc:
``transition`` validates an order move, ``resolve_payment_status`` maps a
gateway status response onto the local payment vocabulary.
"""
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional


class OrderStatus(str, Enum):
    AWAITING_PAYMENT = "menunggu_pembayaran"
    PROCESSING = "diproses"
    SHIPPED = "dikirim"
    COMPLETED = "selesai"
    CANCELLED = "dibatalkan"
    RETURNED = "dikembalikan"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    QRIS = "qris"
    TRANSFER = "transfer"
    EWALLET = "ewallet"


ONLINE_METHODS = frozenset(m for m in PaymentMethod if m is not PaymentMethod.CASH)

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.AWAITING_PAYMENT: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.COMPLETED, OrderStatus.RETURNED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

BUYER_CANCELLABLE = frozenset({OrderStatus.AWAITING_PAYMENT, OrderStatus.PROCESSING})

UNPAID_ORDER_TIMEOUT = timedelta(hours=24)


@dataclass(frozen=True)
class TransitionResult:
    ok: bool
    current: str
    target: str
    error: Optional[str] = None


def _coerce(value, enum_cls):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def transition(current: str, target: str) -> TransitionResult:
    """Check ``current -> target`` against ``ORDER_TRANSITIONS``."""

    src = _coerce(current, OrderStatus)
    dst = _coerce(target, OrderStatus)
    if dst is None:
        return TransitionResult(False, str(current), str(target), f"Status pesanan {target} tidak valid")
    if src is None or dst not in ORDER_TRANSITIONS[src]:
        return TransitionResult(
            False,
            str(current),
            dst.value,
            f"Tidak bisa mengubah status dari {current} ke {dst.value}",
        )
    return TransitionResult(True, src.value, dst.value)


def payment_expiry_window(method: str) -> timedelta:
    # QRIS codes are short-lived at the gateway
    if method == PaymentMethod.QRIS.value:
        return timedelta(minutes=15)
    return timedelta(hours=24)


def resolve_payment_status(status_response: Mapping) -> Optional[PaymentStatus]:
    """Map a gateway status response to a payment status.

    Returns ``None`` when the gateway status is unrecognised and the payment
    should be left untouched.
    """
    transaction_status = (status_response.get("transaction_status") or "").lower()
    fraud_status = (status_response.get("fraud_status") or "accept").lower()

    if (transaction_status == "capture" and fraud_status == "accept") or transaction_status == "settlement":
        return PaymentStatus.SUCCESS
    if transaction_status in ("pending", "authorize"):
        return PaymentStatus.PENDING
    if transaction_status in ("expire", "expired") or status_response.get("error"):
        return PaymentStatus.EXPIRED
    if transaction_status in ("deny", "cancel", "failure"):
        return PaymentStatus.FAILED
    return None
