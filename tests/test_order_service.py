from datetime import timedelta

import pytest

from common.models.order import Order
from common.models.payment import Payment
from common.services.errors import AuthError, GatewayError, NotFoundError, TransitionError, ValidationError
from common.utils.schemas import CancelOrderRequest, CreateOrderRequest, UpdateOrderStatusRequest
from common.utils.validators import parse_payload


def _order_row(session_factory, order_id):
    with session_factory() as session:
        return session.get(Order, order_id)


def _payment_rows(session_factory, order_id):
    with session_factory() as session:
        return session.query(Payment).filter(Payment.id_pesanan == order_id).all()


def _status(value, **extra):
    return UpdateOrderStatusRequest.model_validate({"status_pesanan": value, **extra})


class TestCreateOrder:
    def test_cash_order_is_processing_and_takes_stock(self, place_order, stock, gateway):
        result = place_order("cash")

        order, payment = result["pesanan"], result["payment"]
        assert order["status_pesanan"] == "diproses"
        assert order["stok_dikurangi"] is True
        assert order["tanggal_bayar"] is not None
        assert payment["status_payment"] == "success"
        assert payment["reference_number"].startswith("CASH-")
        assert stock("prod-beras") == (3, 2)
        assert gateway.created == []

    def test_online_order_waits_for_payment(self, place_order, stock, gateway, clock):
        result = place_order("transfer")

        order, payment = result["pesanan"], result["payment"]
        assert order["status_pesanan"] == "menunggu_pembayaran"
        assert order["stok_dikurangi"] is False
        assert payment["status_payment"] == "pending"
        assert payment["snap_token"] == "snap-1"
        assert payment["midtrans_order_id"] == order["kode_pesanan"]
        assert payment["expired_at"] == (clock() + timedelta(hours=24)).isoformat()
        assert stock("prod-beras") == (5, 0)
        assert gateway.created[0]["method"] == "transfer"

    def test_qris_expires_after_fifteen_minutes(self, place_order, clock):
        payment = place_order("qris")["payment"]
        assert payment["expired_at"] == (clock() + timedelta(minutes=15)).isoformat()

    def test_totals_are_computed_from_product_prices(self, place_order):
        order = place_order(
            "cash",
            items=[{"id_produk": "prod-beras", "jumlah": 1}, {"id_produk": "prod-kopi", "jumlah": 2}],
            ongkir=15000,
            biaya_admin=2500,
            diskon=5000,
        )["pesanan"]

        assert order["total_harga_produk"] == 155000.0
        assert order["total_bayar"] == 167500.0
        assert [it["subtotal"] for it in order["items"]] == [75000.0, 80000.0]
        assert order["items"][0]["nama_produk"] == "Beras Pandan Wangi 5kg"

    def test_mismatched_client_total_is_rejected(self, place_order):
        with pytest.raises(ValidationError, match="Total bayar tidak sesuai"):
            place_order("cash", total_bayar=1000)

    def test_order_codes_are_unique(self, place_order):
        codes = {place_order("transfer", items=[{"id_produk": "prod-kopi", "jumlah": 1}])["pesanan"]["kode_pesanan"]
                 for _ in range(5)}
        assert len(codes) == 5
        assert all(code.startswith("ORD-") for code in codes)

    def test_insufficient_stock_aborts_everything(self, place_order, stock, session_factory):
        with pytest.raises(ValidationError, match="Stok tidak cukup untuk Beras Pandan Wangi 5kg"):
            place_order(
                "cash",
                items=[{"id_produk": "prod-kopi", "jumlah": 1}, {"id_produk": "prod-beras", "jumlah": 6}],
            )
        assert stock("prod-kopi") == (10, 3)
        with session_factory() as session:
            assert session.query(Order).count() == 0
            assert session.query(Payment).count() == 0

    def test_inactive_product_is_rejected(self, place_order):
        with pytest.raises(ValidationError, match="tidak aktif"):
            place_order("cash", items=[{"id_produk": "prod-off", "jumlah": 1}])

    def test_unknown_product_is_rejected(self, place_order):
        with pytest.raises(NotFoundError, match="prod-nope"):
            place_order("cash", items=[{"id_produk": "prod-nope", "jumlah": 1}])

    def test_product_from_another_seller_is_rejected(self, place_order):
        with pytest.raises(ValidationError, match="bukan milik penjual"):
            place_order("cash", items=[{"id_produk": "prod-batik", "jumlah": 1}])

    def test_gateway_failure_rolls_back(self, place_order, gateway, session_factory):
        gateway.fail_create = True
        with pytest.raises(GatewayError, match="Failed to create Midtrans transaction"):
            place_order("ewallet")
        with session_factory() as session:
            assert session.query(Order).count() == 0

    def test_empty_items_checked_before_method(self):
        with pytest.raises(ValidationError, match="Items tidak boleh kosong"):
            parse_payload(CreateOrderRequest, {"id_penjual": "shop-1", "items": [], "metode_pembayaran": "bitcoin"})

    def test_invalid_method(self):
        with pytest.raises(ValidationError, match="Metode pembayaran tidak valid"):
            parse_payload(
                CreateOrderRequest,
                {"id_penjual": "shop-1", "items": [{"id_produk": "prod-beras", "jumlah": 1}], "metode_pembayaran": "bitcoin"},
            )


class TestSellerStatusUpdate:
    def test_ship_then_complete(self, place_order, order_service, clock):
        order_id = place_order("cash")["pesanan"]["id"]

        clock.advance(hours=2)
        shipped = order_service.update_status(
            order_id=order_id,
            seller_user_id="seller-user",
            request=_status("dikirim", kurir="JNE", resi="JNE123456"),
        )
        assert shipped["status_pesanan"] == "dikirim"
        assert shipped["kurir"] == "JNE"
        assert shipped["resi"] == "JNE123456"
        assert shipped["tanggal_kirim"] == clock().isoformat()

        clock.advance(days=3)
        done = order_service.update_status(order_id=order_id, seller_user_id="seller-user", request=_status("selesai"))
        assert done["status_pesanan"] == "selesai"
        assert done["tanggal_selesai"] == clock().isoformat()

    def test_shipping_requires_courier_and_receipt(self):
        with pytest.raises(ValidationError, match="Kurir dan nomor resi wajib diisi"):
            parse_payload(UpdateOrderStatusRequest, {"status_pesanan": "dikirim", "kurir": "JNE"})

    def test_rejected_transition_leaves_order_untouched(self, place_order, order_service, session_factory):
        order_id = place_order("cash")["pesanan"]["id"]
        order_service.update_status(order_id=order_id, seller_user_id="seller-user",
                                    request=_status("dikirim", kurir="SiCepat", resi="SC1"))
        order_service.update_status(order_id=order_id, seller_user_id="seller-user", request=_status("selesai"))
        before = _order_row(session_factory, order_id)

        with pytest.raises(TransitionError, match="dari selesai ke diproses"):
            order_service.update_status(order_id=order_id, seller_user_id="seller-user", request=_status("diproses"))

        after = _order_row(session_factory, order_id)
        assert after.status_pesanan == "selesai"
        assert after.tanggal_selesai == before.tanggal_selesai
        assert after.resi == "SC1"

    def test_status_update_does_not_move_stock(self, place_order, order_service, stock):
        order_id = place_order("transfer")["pesanan"]["id"]
        order_service.update_status(order_id=order_id, seller_user_id="seller-user", request=_status("diproses"))
        assert stock("prod-beras") == (5, 0)

    def test_seller_cancel_restores_stock(self, place_order, order_service, stock, session_factory):
        order_id = place_order("cash")["pesanan"]["id"]
        cancelled = order_service.update_status(order_id=order_id, seller_user_id="seller-user",
                                                request=_status("dibatalkan"))
        assert cancelled["status_pesanan"] == "dibatalkan"
        assert stock("prod-beras") == (5, 0)
        assert [p.status_payment for p in _payment_rows(session_factory, order_id)] == ["failed"]

    def test_seller_cancel_closes_open_checkout(self, place_order, order_service, gateway, session_factory):
        created = place_order("transfer")

        order_service.update_status(order_id=created["pesanan"]["id"], seller_user_id="seller-user",
                                    request=_status("dibatalkan"))

        assert gateway.cancelled == [created["payment"]["midtrans_order_id"]]
        assert [p.status_payment for p in _payment_rows(session_factory, created["pesanan"]["id"])] == ["failed"]

    def test_seller_cancel_of_paid_order_leaves_gateway_alone(self, place_order, order_service, gateway):
        order_id = place_order("cash")["pesanan"]["id"]
        order_service.update_status(order_id=order_id, seller_user_id="seller-user", request=_status("dibatalkan"))
        assert gateway.cancelled == []

    def test_other_seller_cannot_update(self, place_order, order_service):
        order_id = place_order("cash")["pesanan"]["id"]
        with pytest.raises(AuthError):
            order_service.update_status(order_id=order_id, seller_user_id="other-seller-user",
                                        request=_status("dikirim", kurir="JNE", resi="X"))

    def test_seller_without_profile(self, place_order, order_service):
        order_id = place_order("cash")["pesanan"]["id"]
        with pytest.raises(NotFoundError, match="Profile Usaha tidak ditemukan"):
            order_service.update_status(order_id=order_id, seller_user_id="buyer-2", request=_status("dikirim",
                                        kurir="JNE", resi="X"))


class TestBuyerCancel:
    def test_cancel_processing_order_restores_stock(self, place_order, order_service, stock, session_factory):
        order_id = place_order("cash")["pesanan"]["id"]
        assert stock("prod-beras") == (3, 2)

        cancelled = order_service.cancel_order(order_id=order_id, buyer_id="buyer-1")

        assert cancelled["status_pesanan"] == "dibatalkan"
        assert cancelled["alasan_batal"] == "Dibatalkan oleh pembeli"
        assert cancelled["stok_dikurangi"] is False
        assert stock("prod-beras") == (5, 0)
        assert [p.status_payment for p in _payment_rows(session_factory, order_id)] == ["failed"]

    def test_cancel_awaiting_order_keeps_stock_and_cancels_at_gateway(self, place_order, order_service, stock, gateway):
        created = place_order("transfer")
        order_id = created["pesanan"]["id"]

        cancelled = order_service.cancel_order(
            order_id=order_id, buyer_id="buyer-1", request=CancelOrderRequest(alasan_batal="Salah alamat")
        )

        assert cancelled["alasan_batal"] == "Salah alamat"
        assert stock("prod-beras") == (5, 0)
        assert gateway.cancelled == [created["payment"]["midtrans_order_id"]]

    def test_cannot_cancel_shipped_order(self, place_order, order_service):
        order_id = place_order("cash")["pesanan"]["id"]
        order_service.update_status(order_id=order_id, seller_user_id="seller-user",
                                    request=_status("dikirim", kurir="JNE", resi="R1"))
        with pytest.raises(TransitionError, match="status dikirim"):
            order_service.cancel_order(order_id=order_id, buyer_id="buyer-1")

    def test_cannot_cancel_someone_elses_order(self, place_order, order_service):
        order_id = place_order("cash")["pesanan"]["id"]
        with pytest.raises(NotFoundError):
            order_service.cancel_order(order_id=order_id, buyer_id="buyer-2")


class TestReads:
    def test_buyer_listing_filters_by_status(self, place_order, order_service):
        place_order("cash")
        place_order("transfer", items=[{"id_produk": "prod-kopi", "jumlah": 1}])

        everything = order_service.list_buyer_orders("buyer-1")
        awaiting = order_service.list_buyer_orders("buyer-1", status="menunggu_pembayaran")

        assert len(everything) == 2
        assert [o["status_pesanan"] for o in awaiting] == ["menunggu_pembayaran"]
        assert order_service.list_buyer_orders("buyer-2") == []

    def test_buyer_listing_pages(self, place_order, order_service, clock):
        for _ in range(3):
            place_order("transfer", items=[{"id_produk": "prod-kopi", "jumlah": 1}])
            clock.advance(minutes=1)

        first = order_service.list_buyer_orders("buyer-1", page=1, page_size=2)
        second = order_service.list_buyer_orders("buyer-1", page=2, page_size=2)
        fallback = order_service.list_buyer_orders("buyer-1", page=0, page_size=0)

        assert len(first) == 2 and len(second) == 1
        assert first[0]["created_at"] > first[1]["created_at"] > second[0]["created_at"]
        assert len(fallback) == 3

    def test_buyer_detail_includes_payment(self, place_order, order_service):
        created = place_order("transfer")
        detail = order_service.get_buyer_order(created["pesanan"]["id"], "buyer-1")
        assert detail["payment"]["id"] == created["payment"]["id"]

    def test_seller_listing(self, place_order, order_service):
        place_order("cash")
        assert len(order_service.list_seller_orders("seller-user")) == 1
        assert order_service.list_seller_orders("other-seller-user") == []
