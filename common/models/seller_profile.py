from sqlalchemy import Column, DateTime, ForeignKey, String, func
from .base import Base


class SellerProfile(Base):
    __tablename__ = "profile_usaha"

    id = Column(String(36), primary_key=True)
    id_pengguna = Column(String(36), ForeignKey("pengguna.id"), nullable=False, unique=True)
    nama_usaha = Column(String(255), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
