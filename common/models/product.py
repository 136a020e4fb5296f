from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from .base import Base


PRODUCT_ACTIVE = "aktif"


class Product(Base):
    __tablename__ = "produk"

    id = Column(String(36), primary_key=True)
    id_penjual = Column(String(36), ForeignKey("profile_usaha.id"), nullable=False)
    nama_produk = Column(String(255), nullable=False)
    deskripsi = Column(Text, nullable=True)
    harga = Column(Numeric(14, 2), nullable=False)
    stok = Column(Integer, nullable=False, default=0)
    jumlah_terjual = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default=PRODUCT_ACTIVE)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
