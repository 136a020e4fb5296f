from sqlalchemy import Column, DateTime, String, func
from .base import Base


SELLER_ROLES = ("penjual", "keduanya")


class User(Base):
    """Marketplace account; buyers and sellers share this table."""

    __tablename__ = "pengguna"

    id = Column(String(36), primary_key=True)
    nama_lengkap = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    no_telepon = Column(String(32), nullable=True)
    role = Column(String(16), nullable=False, default="pembeli")
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    @property
    def is_seller(self) -> bool:
        return self.role in SELLER_ROLES
