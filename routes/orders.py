"""Order endpoints for buyers and sellers."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, g, request

from common.utils.auth import require_seller, require_user
from common.utils.schemas import CancelOrderRequest, CreateOrderRequest, UpdateOrderStatusRequest
from common.utils.validators import parse_payload

from .responses import ok, service_errors


orders_bp = Blueprint("pesanan", __name__, url_prefix="/api/pesanan")


def _components() -> Dict[str, Any]:
    return current_app.extensions["tanibudaya_components"]


def _paging_args() -> Dict[str, Any]:
    return {
        "status": request.args.get("status") or None,
        "page": request.args.get("page", 1, type=int),
        "page_size": request.args.get("page_size", 20, type=int),
    }


@orders_bp.post("")
@require_user
@service_errors
def create_order():
    payload = parse_payload(CreateOrderRequest, request.get_json(silent=True))
    result = _components()["order_service"].create_order(buyer_id=g.user["id"], request=payload)
    if payload.metode_pembayaran.value == "cash":
        message = "Pesanan berhasil dibuat dan langsung diproses"
    else:
        message = "Pesanan berhasil dibuat, silakan selesaikan pembayaran"
    return ok(result, message, status=201)


@orders_bp.get("")
@require_user
@service_errors
def list_orders():
    data = _components()["order_service"].list_buyer_orders(g.user["id"], **_paging_args())
    return ok(data)


@orders_bp.get("/penjual/orders")
@require_seller
@service_errors
def list_seller_orders():
    data = _components()["order_service"].list_seller_orders(g.user["id"], **_paging_args())
    return ok(data)


@orders_bp.get("/<order_id>")
@require_user
@service_errors
def get_order(order_id: str):
    return ok(_components()["order_service"].get_buyer_order(order_id, g.user["id"]))


@orders_bp.post("/<order_id>/cancel")
@require_user
@service_errors
def cancel_order(order_id: str):
    payload = parse_payload(CancelOrderRequest, request.get_json(silent=True))
    data = _components()["order_service"].cancel_order(order_id=order_id, buyer_id=g.user["id"], request=payload)
    return ok(data, "Pesanan berhasil dibatalkan")


@orders_bp.put("/<order_id>/status")
@require_seller
@service_errors
def update_order_status(order_id: str):
    payload = parse_payload(UpdateOrderStatusRequest, request.get_json(silent=True))
    data = _components()["order_service"].update_status(
        order_id=order_id,
        seller_user_id=g.user["id"],
        request=payload,
    )
    return ok(data, "Status pesanan berhasil diupdate")
