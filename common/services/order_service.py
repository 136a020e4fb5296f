import secrets
import time
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ..db.session import get_session
from ..models.order import Order
from ..models.payment import Payment
from ..models.product import PRODUCT_ACTIVE, Product
from ..models.seller_profile import SellerProfile
from ..models.user import User
from ..utils.dto import to_order_dto, to_payment_dto
from ..utils.pagination import page_of
from ..utils.schemas import CancelOrderRequest, CreateOrderRequest, UpdateOrderStatusRequest
from .errors import AuthError, NotFoundError, TransitionError, ValidationError
from .inventory import decrement_stock, restore_stock
from .logging import log_event
from .order_workflow import (
    BUYER_CANCELLABLE,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    payment_expiry_window,
    transition,
)


ORDER_CODE_ATTEMPTS = 5
DEFAULT_BUYER_CANCEL_REASON = "Dibatalkan oleh pembeli"
DEFAULT_SELLER_CANCEL_REASON = "Dibatalkan oleh penjual"


def generate_order_code() -> str:
    return f"ORD-{int(time.time() * 1000)}-{secrets.token_hex(3).upper()}"


def generate_cash_reference() -> str:
    return f"CASH-{int(time.time() * 1000)}-{secrets.token_hex(5).upper()}"


def cancel_in_session(
    session: Session,
    order: Order,
    *,
    reason: str,
    payment_status: PaymentStatus,
    only_pending_payments: bool = False,
) -> None:
    """Cancel ``order`` inside the caller's transaction.

    Restores stock when it was taken and moves the order's payments to
    ``payment_status``.
    """
    restore_stock(session, order)
    order.status_pesanan = OrderStatus.CANCELLED.value
    order.alasan_batal = reason
    q = session.query(Payment).filter(Payment.id_pesanan == order.id)
    if only_pending_payments:
        q = q.filter(Payment.status_payment == PaymentStatus.PENDING.value)
    q.update({Payment.status_payment: payment_status.value}, synchronize_session=False)
    session.flush()


class OrderService:
    """Order creation, seller workflow and buyer cancellation backed by DB."""

    def __init__(self, gateway, session_factory=get_session, now_fn: Callable[[], datetime] = datetime.utcnow):
        self._gateway = gateway
        self._session_factory = session_factory
        self._now = now_fn

    def create_order(self, *, buyer_id: str, request: CreateOrderRequest) -> Dict:
        """Create an order and its payment in one transaction."""
        method = request.metode_pembayaran
        is_cash = method is PaymentMethod.CASH
        with self._session_factory() as session:
            buyer = session.get(User, buyer_id)
            if buyer is None:
                raise NotFoundError("Pengguna tidak ditemukan")
            if session.get(SellerProfile, request.id_penjual) is None:
                raise NotFoundError("Penjual tidak ditemukan")

            items = self._snapshot_items(session, request)
            total_produk = sum((Decimal(str(it["subtotal"])) for it in items), Decimal("0"))
            total_bayar = total_produk + request.ongkir + request.biaya_admin - request.diskon
            if total_bayar < 0:
                raise ValidationError("Diskon melebihi total pembayaran")
            if request.total_harga_produk is not None and Decimal(request.total_harga_produk) != total_produk:
                raise ValidationError("Total harga produk tidak sesuai")
            if request.total_bayar is not None and Decimal(request.total_bayar) != total_bayar:
                raise ValidationError("Total bayar tidak sesuai")

            now = self._now()
            order = Order(
                id=str(uuid4()),
                kode_pesanan=self._unique_order_code(session),
                id_pembeli=buyer_id,
                id_penjual=request.id_penjual,
                items=items,
                total_harga_produk=total_produk,
                ongkir=request.ongkir,
                biaya_admin=request.biaya_admin,
                id_promosi=request.id_promosi,
                diskon=request.diskon,
                total_bayar=total_bayar,
                alamat_pengiriman=request.alamat_pengiriman,
                kurir=request.kurir,
                catatan_pembeli=request.catatan_pembeli,
                status_pesanan=(OrderStatus.PROCESSING if is_cash else OrderStatus.AWAITING_PAYMENT).value,
                tanggal_bayar=now if is_cash else None,
                stok_dikurangi=False,
                created_at=now,
                updated_at=now,
            )
            session.add(order)
            session.flush()

            payment = Payment(
                id=str(uuid4()),
                id_pesanan=order.id,
                metode_pembayaran=method.value,
                jumlah=total_bayar,
                percobaan=1,
                created_at=now,
                updated_at=now,
            )
            if is_cash:
                decrement_stock(session, order, require_available=True)
                payment.status_payment = PaymentStatus.SUCCESS.value
                payment.paid_at = now
                payment.reference_number = generate_cash_reference()
                payment.saluran_pembayaran = "Cash"
            else:
                snap = self._gateway.create_checkout_session(order, buyer, method.value)
                payment.status_payment = PaymentStatus.PENDING.value
                payment.midtrans_order_id = snap["order_id"]
                payment.midtrans_snap_token = snap["snap_token"]
                payment.midtrans_payment_url = snap["payment_url"]
                payment.expired_at = now + payment_expiry_window(method.value)
            session.add(payment)
            session.flush()

            log_event(
                "info",
                "order.created",
                kode_pesanan=order.kode_pesanan,
                method=method.value,
                status=order.status_pesanan,
                items=len(items),
                total_bayar=float(total_bayar),
            )
            return {"pesanan": to_order_dto(order), "payment": to_payment_dto(payment)}

    def list_buyer_orders(self, buyer_id: str, *, status: Optional[str] = None, page: int = 1, page_size: int = 20) -> List[Dict]:
        with self._session_factory() as session:
            q = session.query(Order).filter(Order.id_pembeli == buyer_id)
            return self._paged(q, status, page, page_size)

    def get_buyer_order(self, order_id: str, buyer_id: str) -> Dict:
        with self._session_factory() as session:
            order = (
                session.query(Order)
                .filter(Order.id == order_id, Order.id_pembeli == buyer_id)
                .first()
            )
            if order is None:
                raise NotFoundError("Pesanan tidak ditemukan")
            payment = self._latest_payment(session, order.id)
            return {"pesanan": to_order_dto(order), "payment": to_payment_dto(payment)}

    def list_seller_orders(self, user_id: str, *, status: Optional[str] = None, page: int = 1, page_size: int = 20) -> List[Dict]:
        with self._session_factory() as session:
            profile = self._seller_profile(session, user_id)
            q = session.query(Order).filter(Order.id_penjual == profile.id)
            return self._paged(q, status, page, page_size)

    def update_status(self, *, order_id: str, seller_user_id: str, request: UpdateOrderStatusRequest) -> Dict:
        """Seller-driven transition along the order workflow table."""
        open_gateway_order = None
        with self._session_factory() as session:
            profile = self._seller_profile(session, seller_user_id)
            order = session.query(Order).filter(Order.id == order_id).with_for_update().first()
            if order is None:
                raise NotFoundError("Pesanan tidak ditemukan")
            if order.id_penjual != profile.id:
                raise AuthError("Pesanan ini bukan milik toko Anda")

            result = transition(order.status_pesanan, request.status_pesanan.value)
            if not result.ok:
                raise TransitionError(result.error)

            now = self._now()
            target = request.status_pesanan
            if target is OrderStatus.CANCELLED:
                open_gateway_order = self._open_gateway_order(session, order.id)
                cancel_in_session(
                    session,
                    order,
                    reason=DEFAULT_SELLER_CANCEL_REASON,
                    payment_status=PaymentStatus.FAILED,
                )
            else:
                order.status_pesanan = target.value
            if target is OrderStatus.SHIPPED:
                order.kurir = request.kurir.strip()
                order.resi = request.resi.strip()
                order.tanggal_kirim = now
            elif target is OrderStatus.COMPLETED:
                order.tanggal_selesai = now
            order.updated_at = now
            session.flush()
            log_event("info", "order.status_changed", kode_pesanan=order.kode_pesanan, src=result.current, dst=result.target)
            dto = to_order_dto(order)

        if open_gateway_order:
            self._gateway.cancel_transaction(open_gateway_order)
        return dto

    def cancel_order(self, *, order_id: str, buyer_id: str, request: Optional[CancelOrderRequest] = None) -> Dict:
        reason = ((request.alasan_batal if request else None) or "").strip() or DEFAULT_BUYER_CANCEL_REASON
        with self._session_factory() as session:
            order = (
                session.query(Order)
                .filter(Order.id == order_id, Order.id_pembeli == buyer_id)
                .with_for_update()
                .first()
            )
            if order is None:
                raise NotFoundError("Pesanan tidak ditemukan")
            if order.status_pesanan not in {s.value for s in BUYER_CANCELLABLE}:
                raise TransitionError(f"Tidak bisa membatalkan pesanan dengan status {order.status_pesanan}")

            open_gateway_order = self._open_gateway_order(session, order.id)
            cancel_in_session(session, order, reason=reason, payment_status=PaymentStatus.FAILED)
            order.updated_at = self._now()
            session.flush()
            dto = to_order_dto(order)

        log_event("info", "order.cancelled", kode_pesanan=dto["kode_pesanan"], by="buyer")
        if open_gateway_order:
            self._gateway.cancel_transaction(open_gateway_order)
        return dto

    def _snapshot_items(self, session: Session, request: CreateOrderRequest) -> List[Dict]:
        requested: Dict[str, int] = {}
        for item in request.items:
            requested[item.id_produk] = requested.get(item.id_produk, 0) + item.jumlah

        products: Dict[str, Product] = {}
        for product_id, qty in requested.items():
            product = session.get(Product, product_id)
            if product is None:
                raise NotFoundError(f"Produk dengan ID {product_id} tidak ditemukan")
            if product.stok < qty:
                raise ValidationError(
                    f"Stok tidak cukup untuk {product.nama_produk}. Tersedia: {product.stok}, Dipesan: {qty}"
                )
            if product.status != PRODUCT_ACTIVE:
                raise ValidationError(f"Produk {product.nama_produk} tidak aktif")
            if product.id_penjual != request.id_penjual:
                raise ValidationError(f"Produk {product.nama_produk} bukan milik penjual ini")
            products[product_id] = product

        snapshot = []
        for item in request.items:
            product = products[item.id_produk]
            price = Decimal(str(product.harga))
            snapshot.append(
                {
                    "id_produk": product.id,
                    "nama_produk": product.nama_produk,
                    "harga_satuan": str(price),
                    "jumlah": item.jumlah,
                    "subtotal": str(price * item.jumlah),
                }
            )
        return snapshot

    def _unique_order_code(self, session: Session) -> str:
        for _ in range(ORDER_CODE_ATTEMPTS):
            code = generate_order_code()
            exists = session.query(Order.id).filter(Order.kode_pesanan == code).first()
            if not exists:
                return code
        raise ValidationError("Gagal membuat kode pesanan unik, silakan coba lagi")

    @staticmethod
    def _seller_profile(session: Session, user_id: str) -> SellerProfile:
        profile = session.query(SellerProfile).filter(SellerProfile.id_pengguna == user_id).first()
        if profile is None:
            raise NotFoundError(
                "Profile Usaha tidak ditemukan. Anda harus membuat Profile Usaha terlebih dahulu."
            )
        return profile

    @staticmethod
    def _latest_payment(session: Session, order_id: str) -> Optional[Payment]:
        return (
            session.query(Payment)
            .filter(Payment.id_pesanan == order_id)
            .order_by(Payment.created_at.desc())
            .first()
        )

    @classmethod
    def _open_gateway_order(cls, session: Session, order_id: str) -> Optional[str]:
        payment = cls._latest_payment(session, order_id)
        if payment is not None and payment.status_payment == PaymentStatus.PENDING.value:
            return payment.midtrans_order_id
        return None

    @staticmethod
    def _paged(q, status: Optional[str], page: int, page_size: int) -> List[Dict]:
        if status:
            q = q.filter(Order.status_pesanan == status)
        rows = page_of(q.order_by(Order.created_at.desc()), page, page_size)
        return [to_order_dto(o) for o in rows]
