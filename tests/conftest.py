from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool

from common.config import AppConfig
from common.db.session import build_engine, build_session_factory, init_db
from common.models.product import Product
from common.models.seller_profile import SellerProfile
from common.models.user import User
from common.services.errors import GatewayError
from common.services.midtrans_gateway import MidtransGateway
from common.services.order_service import OrderService
from common.services.payment_service import PaymentService
from common.services.reconciliation import ReconciliationJobs
from common.utils.schemas import CreateOrderRequest


SERVER_KEY = "SB-Mid-server-test"


def make_app_config(**overrides) -> AppConfig:
    values = dict(
        database_url="sqlite://",
        secret_key="test-secret",
        log_level="ERROR",
        midtrans_server_key=SERVER_KEY,
        midtrans_client_key="SB-Mid-client-test",
        midtrans_is_production=False,
    )
    values.update(overrides)
    return AppConfig(**values)


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = start or datetime(2024, 5, 1, 8, 0, 0)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class FakeGateway(MidtransGateway):
    """MidtransGateway with the network calls replaced by canned answers."""

    def __init__(self) -> None:
        super().__init__(make_app_config())
        self.created: List[Dict] = []
        self.cancelled: List[str] = []
        self.status_checks: List[str] = []
        self.statuses: Dict[str, object] = {}
        self.fail_create = False

    def create_checkout_session(self, order, buyer, method, gateway_order_id=None):
        if self.fail_create:
            raise GatewayError("Failed to create Midtrans transaction: sandbox down")
        order_id = gateway_order_id or order.kode_pesanan
        self.created.append(
            {"order_id": order_id, "method": method, "parameter": self.build_snap_parameter(order, buyer, method, gateway_order_id)}
        )
        return {
            "snap_token": f"snap-{len(self.created)}",
            "payment_url": f"https://app.sandbox.midtrans.com/snap/v2/vtweb/snap-{len(self.created)}",
            "order_id": order_id,
        }

    def check_transaction_status(self, gateway_order_id):
        self.status_checks.append(gateway_order_id)
        answer = self.statuses.get(gateway_order_id, {"transaction_status": "pending"})
        if isinstance(answer, Exception):
            raise answer
        response = dict(answer)
        response.setdefault("fraud_status", "accept")
        response.setdefault("raw_response", dict(answer))
        return response

    def cancel_transaction(self, gateway_order_id):
        self.cancelled.append(gateway_order_id)
        return {"status_code": "200"}

    def set_status(self, gateway_order_id, **response) -> None:
        self.statuses[gateway_order_id] = response


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def seed(session_factory):
    with session_factory() as session:
        session.add_all(
            [
                User(id="buyer-1", nama_lengkap="Sari Pembeli", email="sari@example.com", no_telepon="081200000001", role="pembeli"),
                User(id="buyer-2", nama_lengkap="Budi Pembeli", email="budi@example.com", role="pembeli"),
                User(id="seller-user", nama_lengkap="Tono Tani", email="tono@example.com", role="penjual"),
                User(id="other-seller-user", nama_lengkap="Rina", email="rina@example.com", role="keduanya"),
            ]
        )
        session.flush()
        session.add_all(
            [
                SellerProfile(id="shop-1", id_pengguna="seller-user", nama_usaha="Tani Makmur"),
                SellerProfile(id="shop-2", id_pengguna="other-seller-user", nama_usaha="Batik Rina"),
            ]
        )
        session.flush()
        session.add_all(
            [
                Product(id="prod-beras", id_penjual="shop-1", nama_produk="Beras Pandan Wangi 5kg",
                        harga=Decimal("75000"), stok=5, jumlah_terjual=0, status="aktif"),
                Product(id="prod-kopi", id_penjual="shop-1", nama_produk="Kopi Gayo 250g",
                        harga=Decimal("40000"), stok=10, jumlah_terjual=3, status="aktif"),
                Product(id="prod-off", id_penjual="shop-1", nama_produk="Madu Hutan",
                        harga=Decimal("90000"), stok=4, jumlah_terjual=0, status="nonaktif"),
                Product(id="prod-batik", id_penjual="shop-2", nama_produk="Kain Batik Tulis",
                        harga=Decimal("350000"), stok=2, jumlah_terjual=0, status="aktif"),
            ]
        )
    return {"buyer": "buyer-1", "seller_user": "seller-user", "shop": "shop-1"}


@pytest.fixture
def order_service(gateway, session_factory, clock):
    return OrderService(gateway, session_factory, now_fn=clock)


@pytest.fixture
def payment_service(gateway, session_factory, clock):
    return PaymentService(gateway, session_factory, now_fn=clock)


@pytest.fixture
def jobs(gateway, session_factory, clock):
    return ReconciliationJobs(gateway, session_factory, now_fn=clock)


@pytest.fixture
def stock(session_factory):
    """Return (stok, jumlah_terjual) for a product, read in a fresh transaction."""

    def _read(product_id):
        with session_factory() as session:
            product = session.get(Product, product_id)
            return product.stok, product.jumlah_terjual

    return _read


@pytest.fixture
def place_order(order_service, seed):
    """Create an order for buyer-1 at shop-1 (two bags of rice by default)."""

    def _place(method="transfer", items=None, buyer_id="buyer-1", **extra):
        payload = {
            "id_penjual": "shop-1",
            "items": items or [{"id_produk": "prod-beras", "jumlah": 2}],
            "metode_pembayaran": method,
        }
        payload.update(extra)
        return order_service.create_order(buyer_id=buyer_id, request=CreateOrderRequest.model_validate(payload))

    return _place
