from datetime import datetime
from typing import Callable, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from ..db.session import get_session
from ..models.order import Order
from ..models.payment import Payment
from ..models.user import User
from ..utils.dto import to_payment_dto
from ..utils.schemas import ChangePaymentMethodRequest
from .errors import AuthError, NotFoundError, TransitionError, ValidationError
from .inventory import decrement_stock
from .logging import log_event
from .midtrans_gateway import extract_payment_channel
from .order_workflow import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    payment_expiry_window,
    resolve_payment_status,
)


def confirm_order_paid(session: Session, order: Order, now: datetime) -> bool:
    """Move an awaiting order to processing and take its stock once.

    Returns False when the order had already left ``menunggu_pembayaran``.
    """
    if order.status_pesanan != OrderStatus.AWAITING_PAYMENT.value:
        if order.status_pesanan == OrderStatus.CANCELLED.value:
            log_event("warning", "payment.settled_after_cancel", kode_pesanan=order.kode_pesanan)
        return False
    order.status_pesanan = OrderStatus.PROCESSING.value
    order.tanggal_bayar = now
    order.updated_at = now
    decrement_stock(session, order)
    session.flush()
    log_event("info", "order.paid", kode_pesanan=order.kode_pesanan)
    return True


def apply_gateway_status(session: Session, payment: Payment, status_response: Mapping, now: datetime) -> str:
    """Apply a gateway status response to ``payment`` (and its order on success).

    Runs inside the caller's transaction. Returns the resulting payment status.
    """
    new_status = resolve_payment_status(status_response)
    raw = status_response.get("raw_response")

    if new_status is PaymentStatus.SUCCESS:
        payment.paid_at = now
        payment.response_data = raw
        payment.saluran_pembayaran = extract_payment_channel(status_response.get("payment_type"), raw)
        order = (
            session.query(Order)
            .filter(Order.id == payment.id_pesanan)
            .with_for_update()
            .first()
        )
        if order is not None:
            confirm_order_paid(session, order, now)
    elif new_status is PaymentStatus.EXPIRED:
        payment.response_data = raw or {"error": status_response.get("error")}
    elif new_status is not None:
        payment.response_data = raw

    if new_status is not None:
        payment.status_payment = new_status.value
    payment.updated_at = now
    session.flush()
    log_event(
        "info",
        "payment.status_applied",
        payment_id=payment.id,
        gateway_status=status_response.get("transaction_status"),
        status=payment.status_payment,
    )
    return payment.status_payment


class PaymentService:
    """Buyer-facing payment operations and gateway notifications."""

    def __init__(self, gateway, session_factory=get_session, now_fn: Callable[[], datetime] = datetime.utcnow):
        self._gateway = gateway
        self._session_factory = session_factory
        self._now = now_fn

    def check_payment_status(self, payment_id: str, buyer_id: Optional[str] = None) -> Dict:
        """Manual status check; queries the gateway only for live online payments."""
        with self._session_factory() as session:
            payment = self._load_payment(session, payment_id, buyer_id)
            status = PaymentStatus(payment.status_payment)

            if status.is_terminal:
                return self._result(payment, f"Payment sudah {status.value}")
            if payment.metode_pembayaran == PaymentMethod.CASH.value:
                return self._result(payment, "Payment cash sudah success")

            now = self._now()
            if payment.expired_at is not None and now > payment.expired_at:
                payment.status_payment = PaymentStatus.EXPIRED.value
                payment.updated_at = now
                session.flush()
                log_event("info", "payment.expired", payment_id=payment.id)
                return self._result(payment, "Payment sudah expired", success=False)

            if not payment.midtrans_order_id:
                raise ValidationError("Order ID Midtrans tidak ditemukan")

            status_response = self._gateway.check_transaction_status(payment.midtrans_order_id)
            new_status = apply_gateway_status(session, payment, status_response, now)
            result = self._result(
                payment, f"Payment status: {new_status}", success=new_status == PaymentStatus.SUCCESS.value
            )
            result["transaction_status"] = status_response.get("transaction_status")
            return result

    def get_payment_by_order(self, order_id: str, buyer_id: Optional[str] = None) -> Dict:
        with self._session_factory() as session:
            q = session.query(Payment).filter(Payment.id_pesanan == order_id)
            if buyer_id is not None:
                q = q.join(Order, Order.id == Payment.id_pesanan).filter(Order.id_pembeli == buyer_id)
            payment = q.order_by(Payment.created_at.desc()).first()
            if payment is None:
                raise NotFoundError("Payment tidak ditemukan")
            return to_payment_dto(payment)

    def change_payment_method(self, payment_id: str, buyer_id: Optional[str], request: ChangePaymentMethodRequest) -> Dict:
        """Re-issue the checkout for a pending payment with another method."""
        new_method = request.new_payment_method.value
        with self._session_factory() as session:
            payment = self._load_payment(session, payment_id, buyer_id, lock=True)
            if payment.status_payment != PaymentStatus.PENDING.value:
                raise TransitionError(
                    f"Tidak bisa ganti metode pembayaran untuk status {payment.status_payment}"
                )
            order = session.get(Order, payment.id_pesanan)
            buyer = session.get(User, order.id_pembeli)

            attempt = (payment.percobaan or 1) + 1
            gateway_order_id = f"{order.kode_pesanan}-R{attempt}"
            snap = self._gateway.create_checkout_session(order, buyer, new_method, gateway_order_id)
            previous_gateway_order = payment.midtrans_order_id

            now = self._now()
            payment.metode_pembayaran = new_method
            payment.saluran_pembayaran = None
            payment.percobaan = attempt
            payment.midtrans_order_id = snap["order_id"]
            payment.midtrans_snap_token = snap["snap_token"]
            payment.midtrans_payment_url = snap["payment_url"]
            payment.expired_at = now + payment_expiry_window(new_method)
            payment.updated_at = now
            session.flush()
            log_event("info", "payment.method_changed", payment_id=payment.id, method=new_method, attempt=attempt)
            dto = to_payment_dto(payment)

        if previous_gateway_order:
            self._gateway.cancel_transaction(previous_gateway_order)
        return dto

    def handle_notification(self, payload: Mapping) -> Dict:
        """Apply a Midtrans HTTP notification to the matching payment."""
        if not self._gateway.verify_notification_signature(payload):
            raise AuthError("Signature notifikasi tidak valid")
        gateway_order_id = payload.get("order_id")
        with self._session_factory() as session:
            payment = (
                session.query(Payment)
                .filter(Payment.midtrans_order_id == gateway_order_id)
                .with_for_update()
                .first()
            )
            if payment is None:
                raise NotFoundError("Payment tidak ditemukan")
            if PaymentStatus(payment.status_payment).is_terminal:
                log_event("info", "payment.notification_ignored", payment_id=payment.id, status=payment.status_payment)
                return to_payment_dto(payment)
            status_response = {
                "transaction_status": payload.get("transaction_status"),
                "fraud_status": payload.get("fraud_status") or "accept",
                "payment_type": payload.get("payment_type"),
                "raw_response": dict(payload),
            }
            apply_gateway_status(session, payment, status_response, self._now())
            return to_payment_dto(payment)

    @staticmethod
    def _load_payment(session: Session, payment_id: str, buyer_id: Optional[str], lock: bool = False) -> Payment:
        q = session.query(Payment).filter(Payment.id == payment_id)
        if lock:
            q = q.with_for_update()
        payment = q.first()
        if payment is None:
            raise NotFoundError("Payment tidak ditemukan")
        if buyer_id is not None:
            order = session.get(Order, payment.id_pesanan)
            if order is None or order.id_pembeli != buyer_id:
                raise NotFoundError("Payment tidak ditemukan")
        return payment

    @staticmethod
    def _result(payment: Payment, message: str, success: bool = True) -> Dict:
        # success is False only for a fresh expiry or a non-settled gateway answer
        return {"payment": to_payment_dto(payment), "message": message, "success": success}
