from typing import Dict, Iterable

from sqlalchemy.orm import Session

from ..models.order import Order
from ..models.product import Product
from .errors import ValidationError
from .logging import log_event


def _quantities(items: Iterable[Dict]) -> Dict[str, int]:
    totals: Dict[str, int] = {}
    for item in items:
        pid = str(item["id_produk"])
        totals[pid] = totals.get(pid, 0) + int(item["jumlah"])
    return totals


def decrement_stock(session: Session, order: Order, *, require_available: bool = False) -> bool:
    """Take stock for every line of ``order`` unless already taken.

    Returns False when ``stok_dikurangi`` was already set. With
    ``require_available`` the update only matches rows that still hold enough
    stock, so a concurrent checkout cannot oversell.
    """
    if order.stok_dikurangi:
        return False
    for product_id, qty in _quantities(order.items).items():
        q = session.query(Product).filter(Product.id == product_id)
        if require_available:
            q = q.filter(Product.stok >= qty)
        updated = q.update(
            {
                Product.stok: Product.stok - qty,
                Product.jumlah_terjual: Product.jumlah_terjual + qty,
            },
            synchronize_session=False,
        )
        if not updated:
            raise ValidationError(f"Stok tidak cukup untuk produk {product_id}")
    order.stok_dikurangi = True
    session.flush()
    log_event("info", "stock.decremented", kode_pesanan=order.kode_pesanan)
    return True


def restore_stock(session: Session, order: Order) -> bool:
    """Give back stock taken by ``order``; clears the flag so it happens once."""
    if not order.stok_dikurangi:
        return False
    for product_id, qty in _quantities(order.items).items():
        session.query(Product).filter(Product.id == product_id).update(
            {
                Product.stok: Product.stok + qty,
                Product.jumlah_terjual: Product.jumlah_terjual - qty,
            },
            synchronize_session=False,
        )
    order.stok_dikurangi = False
    session.flush()
    log_event("info", "stock.restored", kode_pesanan=order.kode_pesanan)
    return True
