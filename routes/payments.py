"""Payment endpoints: manual status check, method change and gateway notifications."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, g, request

from common.utils.auth import require_user
from common.utils.schemas import ChangePaymentMethodRequest
from common.utils.validators import parse_payload

from .responses import fail, ok, service_errors


payments_bp = Blueprint("payment", __name__, url_prefix="/api/payment")


def _payment_service():
    return current_app.extensions["tanibudaya_components"]["payment_service"]


@payments_bp.get("/<payment_id>/check")
@require_user
@service_errors
def check_payment(payment_id: str):
    result = _payment_service().check_payment_status(payment_id, g.user["id"])
    payment = result["payment"]
    data: Dict[str, Any] = {"payment": payment}
    if "transaction_status" in result:
        data["transaction_status"] = result["transaction_status"]
    return ok(data, result["message"], success=result["success"])


@payments_bp.get("/pesanan/<order_id>")
@require_user
@service_errors
def payment_by_order(order_id: str):
    return ok(_payment_service().get_payment_by_order(order_id, g.user["id"]))


@payments_bp.post("/<payment_id>/change-method")
@require_user
@service_errors
def change_method(payment_id: str):
    payload = parse_payload(ChangePaymentMethodRequest, request.get_json(silent=True))
    payment = _payment_service().change_payment_method(payment_id, g.user["id"], payload)
    data = {
        "payment": payment,
        "snap_token": payment["snap_token"],
        "payment_url": payment["payment_url"],
    }
    return ok(data, "Metode pembayaran berhasil diubah")


@payments_bp.post("/notification")
@service_errors
def gateway_notification():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict) or not payload.get("order_id"):
        return fail("Payload notifikasi tidak valid", 400)
    return ok(_payment_service().handle_notification(payload))
