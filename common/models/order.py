from sqlalchemy import Boolean, Column, DateTime, ForeignKey, JSON, Numeric, String, Text, func
from .base import Base


class Order(Base):
    __tablename__ = "pesanan"

    id = Column(String(36), primary_key=True)
    kode_pesanan = Column(String(64), nullable=False, unique=True)
    id_pembeli = Column(String(36), ForeignKey("pengguna.id"), nullable=False, index=True)
    id_penjual = Column(String(36), ForeignKey("profile_usaha.id"), nullable=False, index=True)
    # [{id_produk, nama_produk, harga_satuan, jumlah, subtotal}]; name/price are snapshots
    items = Column(JSON, nullable=False)
    total_harga_produk = Column(Numeric(14, 2), nullable=False)
    ongkir = Column(Numeric(14, 2), nullable=False, default=0)
    biaya_admin = Column(Numeric(14, 2), nullable=False, default=0)
    id_promosi = Column(String(36), nullable=True)
    diskon = Column(Numeric(14, 2), nullable=False, default=0)
    total_bayar = Column(Numeric(14, 2), nullable=False)
    alamat_pengiriman = Column(String(36), nullable=True)
    kurir = Column(String(64), nullable=True)
    resi = Column(String(128), nullable=True)
    status_pesanan = Column(String(32), nullable=False, index=True)
    catatan_pembeli = Column(Text, nullable=True)
    alasan_batal = Column(Text, nullable=True)
    tanggal_bayar = Column(DateTime, nullable=True)
    tanggal_kirim = Column(DateTime, nullable=True)
    tanggal_selesai = Column(DateTime, nullable=True)
    stok_dikurangi = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
