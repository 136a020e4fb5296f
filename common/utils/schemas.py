"""Request bodies accepted by the order and payment endpoints."""
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..services.order_workflow import ONLINE_METHODS, OrderStatus, PaymentMethod


class OrderItemRequest(BaseModel):
    id_produk: str
    jumlah: int = Field(gt=0)


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id_penjual: str
    items: List[OrderItemRequest]
    metode_pembayaran: PaymentMethod
    ongkir: Decimal = Field(default=Decimal("0"), ge=0)
    biaya_admin: Decimal = Field(default=Decimal("0"), ge=0)
    diskon: Decimal = Field(default=Decimal("0"), ge=0)
    id_promosi: Optional[str] = None
    total_harga_produk: Optional[Decimal] = None
    total_bayar: Optional[Decimal] = None
    alamat_pengiriman: Optional[str] = None
    kurir: Optional[str] = None
    catatan_pembeli: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _items_first(cls, data):
        if isinstance(data, dict) and not data.get("items"):
            raise ValueError("Items tidak boleh kosong")
        return data

    @field_validator("metode_pembayaran", mode="before")
    @classmethod
    def _known_method(cls, value):
        if not isinstance(value, str) or value not in {m.value for m in PaymentMethod}:
            raise ValueError("Metode pembayaran tidak valid")
        return value


class UpdateOrderStatusRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status_pesanan: OrderStatus
    kurir: Optional[str] = None
    resi: Optional[str] = None

    @field_validator("status_pesanan", mode="before")
    @classmethod
    def _known_status(cls, value):
        if not isinstance(value, str) or value not in {s.value for s in OrderStatus}:
            raise ValueError(f"Status pesanan {value} tidak valid")
        return value

    @model_validator(mode="after")
    def _shipping_details(self):
        if self.status_pesanan is OrderStatus.SHIPPED:
            if not (self.kurir or "").strip() or not (self.resi or "").strip():
                raise ValueError("Kurir dan nomor resi wajib diisi untuk status dikirim")
        return self


class CancelOrderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    alasan_batal: Optional[str] = None


class ChangePaymentMethodRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    new_payment_method: PaymentMethod

    @field_validator("new_payment_method", mode="before")
    @classmethod
    def _online_only(cls, value):
        if not isinstance(value, str) or value not in {m.value for m in ONLINE_METHODS}:
            raise ValueError("Metode pembayaran tidak valid")
        return value
