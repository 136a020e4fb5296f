from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, Numeric, String, func
from .base import Base


class Payment(Base):
    """One payment record per order; the method-change flow mutates it in place."""

    __tablename__ = "payment"

    id = Column(String(36), primary_key=True)
    id_pesanan = Column(String(36), ForeignKey("pesanan.id"), nullable=False, index=True)
    metode_pembayaran = Column(String(16), nullable=False)
    saluran_pembayaran = Column(String(64), nullable=True)
    midtrans_order_id = Column(String(80), nullable=True, index=True)
    midtrans_snap_token = Column(String(128), nullable=True)
    midtrans_payment_url = Column(String(512), nullable=True)
    reference_number = Column(String(64), nullable=True)
    jumlah = Column(Numeric(14, 2), nullable=False)
    status_payment = Column(String(16), nullable=False, default="pending", index=True)
    percobaan = Column(Integer, nullable=False, default=1)
    expired_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    response_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
