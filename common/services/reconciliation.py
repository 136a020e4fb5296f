"""Background reconciliation of payments and orders.

Each job selects its candidates in a short read transaction and then handles
every record in its own transaction, so one bad record never rolls back the
records processed before it.
"""
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..db.session import get_session
from ..models.order import Order
from ..models.payment import Payment
from .logging import log_event
from .order_service import cancel_in_session
from .order_workflow import OrderStatus, PaymentMethod, PaymentStatus, UNPAID_ORDER_TIMEOUT
from .payment_service import apply_gateway_status


AUTO_CANCEL_REASON = "Pesanan dibatalkan otomatis karena tidak ada pembayaran selama 24 jam"


class ReconciliationJobs:
    def __init__(self, gateway, session_factory=get_session, now_fn: Callable[[], datetime] = datetime.utcnow):
        self._gateway = gateway
        self._session_factory = session_factory
        self._now = now_fn

    def expire_overdue_payments(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Flip pending payments past ``expired_at`` to expired; orders are left to the unpaid sweep."""
        now = now or self._now()
        with self._session_factory() as session:
            ids = [
                row.id
                for row in session.query(Payment.id)
                .filter(
                    Payment.status_payment == PaymentStatus.PENDING.value,
                    Payment.expired_at.isnot(None),
                    Payment.expired_at < now,
                )
                .all()
            ]
        log_event("info", "job.expired_payments.start", candidates=len(ids))

        def _expire(session, payment_id: str) -> bool:
            payment = session.query(Payment).filter(Payment.id == payment_id).with_for_update().first()
            if payment is None or payment.status_payment != PaymentStatus.PENDING.value:
                return False
            payment.status_payment = PaymentStatus.EXPIRED.value
            payment.updated_at = now
            log_event("info", "job.expired_payments.expired", payment_id=payment_id)
            return True

        return self._run_each("expired_payments", ids, _expire)

    def cancel_unpaid_orders(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Cancel orders still awaiting payment after the unpaid timeout."""
        now = now or self._now()
        cutoff = now - UNPAID_ORDER_TIMEOUT
        with self._session_factory() as session:
            ids = [
                row.id
                for row in session.query(Order.id)
                .filter(
                    Order.status_pesanan == OrderStatus.AWAITING_PAYMENT.value,
                    Order.created_at < cutoff,
                )
                .all()
            ]
        log_event("info", "job.unpaid_orders.start", candidates=len(ids))

        def _cancel(session, order_id: str) -> bool:
            order = session.query(Order).filter(Order.id == order_id).with_for_update().first()
            if order is None or order.status_pesanan != OrderStatus.AWAITING_PAYMENT.value:
                return False
            cancel_in_session(
                session,
                order,
                reason=AUTO_CANCEL_REASON,
                payment_status=PaymentStatus.EXPIRED,
                only_pending_payments=True,
            )
            order.updated_at = now
            log_event("info", "job.unpaid_orders.cancelled", kode_pesanan=order.kode_pesanan)
            return True

        return self._run_each("unpaid_orders", ids, _cancel)

    def poll_pending_payments(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Ask the gateway about live online payments and apply the answer."""
        now = now or self._now()
        with self._session_factory() as session:
            ids = [
                row.id
                for row in session.query(Payment.id)
                .filter(
                    Payment.status_payment == PaymentStatus.PENDING.value,
                    Payment.metode_pembayaran != PaymentMethod.CASH.value,
                    Payment.expired_at > now,
                    Payment.midtrans_order_id.isnot(None),
                )
                .all()
            ]
        log_event("info", "job.pending_payments.start", candidates=len(ids))

        def _poll(session, payment_id: str) -> bool:
            payment = session.query(Payment).filter(Payment.id == payment_id).with_for_update().first()
            if payment is None or payment.status_payment != PaymentStatus.PENDING.value:
                return False
            status_response = self._gateway.check_transaction_status(payment.midtrans_order_id)
            new_status = apply_gateway_status(session, payment, status_response, now)
            return new_status != PaymentStatus.PENDING.value

        return self._run_each("pending_payments", ids, _poll)

    def run_all(self, now: Optional[datetime] = None) -> Dict[str, Dict[str, int]]:
        return {
            "expired_payments": self.expire_overdue_payments(now),
            "unpaid_orders": self.cancel_unpaid_orders(now),
            "pending_payments": self.poll_pending_payments(now),
        }

    def _run_each(self, job: str, ids: List[str], handler) -> Dict[str, int]:
        summary = {"checked": len(ids), "updated": 0, "failed": 0}
        for record_id in ids:
            try:
                with self._session_factory() as session:
                    if handler(session, record_id):
                        summary["updated"] += 1
            except Exception as exc:
                summary["failed"] += 1
                log_event("error", f"job.{job}.record_failed", record_id=record_id, error=str(exc))
        log_event("info", f"job.{job}.done", **summary)
        return summary
