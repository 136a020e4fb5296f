"""
Midtrans payment gateway adapter.
Snap API creates hosted checkout sessions, Core API answers status queries.
Authentication is HTTP Basic with the server key as username and an empty password.
"""
import hashlib
import hmac
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional

import requests

from ..config import AppConfig
from .errors import GatewayError
from .logging import log_event
from .order_workflow import PaymentMethod


EWALLET_CHANNELS = {
    "gopay": "GoPay",
    "shopeepay": "ShopeePay",
    "dana": "DANA",
    "ovo": "OVO",
    "linkaja": "LinkAja",
}

PAYMENT_TYPE_CHANNELS = {
    "credit_card": "Credit Card",
    "bank_transfer": "Bank Transfer",
    "bca_va": "BCA Virtual Account",
    "bni_va": "BNI Virtual Account",
    "bri_va": "BRI Virtual Account",
    "echannel": "Mandiri Bill Payment",
    "permata_va": "Permata Virtual Account",
    "other_va": "Other Bank VA",
    "qris": "QRIS",
}

VA_BANK_CHANNELS = {
    "bca": "BCA Virtual Account",
    "bni": "BNI Virtual Account",
    "bri": "BRI Virtual Account",
    "mandiri": "Mandiri Bill Payment",
    "permata": "Permata Virtual Account",
}

ITEM_NAME_LIMIT = 50


def _idr(value: Any) -> int:
    return int(Decimal(str(value or 0)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def extract_payment_channel(payment_type: Optional[str], status_response: Optional[Mapping]) -> str:
    """Derive a human readable channel label from a status response."""
    if not payment_type:
        return "unknown"
    status_response = status_response or {}

    acquirer = (status_response.get("acquirer") or "").lower()
    if acquirer in EWALLET_CHANNELS:
        return EWALLET_CHANNELS[acquirer]
    if payment_type in EWALLET_CHANNELS:
        return EWALLET_CHANNELS[payment_type]

    channel = PAYMENT_TYPE_CHANNELS.get(payment_type, payment_type)

    va_numbers = status_response.get("va_numbers") or []
    if payment_type == "bank_transfer" and va_numbers:
        bank_code = (va_numbers[0].get("bank") or "").lower()
        channel = VA_BANK_CHANNELS.get(bank_code, f"{bank_code.upper()} Virtual Account")

    return channel


class MidtransGateway:
    """Thin client over the Midtrans Snap and Core APIs."""

    REQUEST_TIMEOUT = 30

    def __init__(self, config: AppConfig) -> None:
        self.server_key = config.midtrans_server_key
        self.client_key = config.midtrans_client_key
        self.is_production = config.midtrans_is_production
        self.snap_base_url = config.snap_base_url
        self.core_base_url = config.core_base_url
        if not self.server_key:
            log_event("warning", "gateway.server_key_missing")

    def _auth(self):
        return (self.server_key, "")

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "Content-Type": "application/json"}

    def enabled_payments(self, method: str) -> List[str]:
        if method == PaymentMethod.CARD.value:
            return ["credit_card"]
        if method == PaymentMethod.QRIS.value:
            # sandbox has no QRIS, GoPay renders the same QR flow
            return ["qris"] if self.is_production else ["gopay"]
        if method == PaymentMethod.TRANSFER.value:
            return ["bca_va", "bni_va", "bri_va", "echannel", "permata_va", "other_va"]
        if method == PaymentMethod.EWALLET.value:
            wallets = ["gopay", "shopeepay", "dana", "linkaja", "ovo"]
            if self.is_production:
                wallets.insert(2, "qris")
            return wallets
        return []

    def build_item_details(self, order) -> List[Dict[str, Any]]:
        items = [
            {
                "id": str(item["id_produk"]),
                "price": _idr(item["harga_satuan"]),
                "quantity": int(item["jumlah"]),
                "name": str(item["nama_produk"])[:ITEM_NAME_LIMIT],
            }
            for item in order.items
        ]
        if _idr(order.ongkir) > 0:
            items.append({"id": "ONGKIR", "price": _idr(order.ongkir), "quantity": 1, "name": "Ongkos Kirim"})
        if _idr(order.biaya_admin) > 0:
            items.append({"id": "ADMIN_FEE", "price": _idr(order.biaya_admin), "quantity": 1, "name": "Biaya Admin"})
        if _idr(order.diskon) > 0:
            items.append({"id": "DISCOUNT", "price": -_idr(order.diskon), "quantity": 1, "name": "Diskon"})
        return items

    def build_snap_parameter(self, order, buyer, method: str, gateway_order_id: Optional[str] = None) -> Dict[str, Any]:
        is_qris = method == PaymentMethod.QRIS.value
        return {
            "transaction_details": {
                "order_id": gateway_order_id or order.kode_pesanan,
                "gross_amount": _idr(order.total_bayar),
            },
            "item_details": self.build_item_details(order),
            "customer_details": {
                "first_name": getattr(buyer, "nama_lengkap", None) or "Customer",
                "email": getattr(buyer, "email", None) or "customer@tanibudaya.com",
                "phone": getattr(buyer, "no_telepon", None) or "082100000000",
            },
            "enabled_payments": self.enabled_payments(method),
            "expiry": {
                "duration": 15 if is_qris else 24,
                "unit": "minutes" if is_qris else "hours",
            },
        }

    def create_checkout_session(self, order, buyer, method: str, gateway_order_id: Optional[str] = None) -> Dict[str, str]:
        """Create a Snap transaction; returns ``snap_token``, ``payment_url`` and ``order_id``."""
        parameter = self.build_snap_parameter(order, buyer, method, gateway_order_id)
        order_id = parameter["transaction_details"]["order_id"]
        log_event("info", "gateway.snap.create", order_id=order_id, method=method,
                  gross_amount=parameter["transaction_details"]["gross_amount"])
        try:
            response = requests.post(
                f"{self.snap_base_url}/transactions",
                json=parameter,
                headers=self._headers(),
                auth=self._auth(),
                timeout=self.REQUEST_TIMEOUT,
            )
        except requests.exceptions.RequestException as exc:
            log_event("error", "gateway.snap.error", order_id=order_id, error=str(exc))
            raise GatewayError(f"Failed to create Midtrans transaction: {exc}") from exc

        if response.status_code not in (200, 201):
            message = self._error_message(response)
            log_event("error", "gateway.snap.error", order_id=order_id, status=response.status_code, error=message)
            raise GatewayError(f"Failed to create Midtrans transaction: {message}")

        body = response.json()
        log_event("info", "gateway.snap.created", order_id=order_id)
        return {
            "snap_token": body.get("token"),
            "payment_url": body.get("redirect_url"),
            "order_id": order_id,
        }

    def check_transaction_status(self, gateway_order_id: str) -> Dict[str, Any]:
        log_event("debug", "gateway.status.check", order_id=gateway_order_id)
        try:
            response = requests.get(
                f"{self.core_base_url}/{gateway_order_id}/status",
                headers=self._headers(),
                auth=self._auth(),
                timeout=self.REQUEST_TIMEOUT,
            )
        except requests.exceptions.RequestException as exc:
            log_event("error", "gateway.status.error", order_id=gateway_order_id, error=str(exc))
            raise GatewayError(f"Failed to check transaction status: {exc}") from exc

        body: Dict[str, Any] = {}
        try:
            body = response.json() or {}
        except ValueError:
            body = {}

        # Core API reports unknown orders either as HTTP 404 or as status_code "404" in the body
        if response.status_code == 404 or str(body.get("status_code", "")) == "404":
            log_event("info", "gateway.status.not_found", order_id=gateway_order_id)
            return {
                "transaction_status": "expired",
                "error": "Transaction not found or expired",
            }

        # body status_code 407 (expire) and 202 (deny) still carry a usable transaction_status
        if response.status_code >= 400 or not body.get("transaction_status"):
            message = body.get("status_message") or f"HTTP {response.status_code}"
            log_event("error", "gateway.status.error", order_id=gateway_order_id, error=message)
            raise GatewayError(f"Failed to check transaction status: {message}")

        return {
            "transaction_status": body.get("transaction_status"),
            "fraud_status": body.get("fraud_status") or "accept",
            "payment_type": body.get("payment_type"),
            "transaction_id": body.get("transaction_id"),
            "gross_amount": body.get("gross_amount"),
            "settlement_time": body.get("settlement_time"),
            "expiry_time": body.get("expiry_time"),
            "va_numbers": body.get("va_numbers"),
            "acquirer": body.get("acquirer"),
            "raw_response": body,
        }

    def cancel_transaction(self, gateway_order_id: str) -> Optional[Dict[str, Any]]:
        """Cancel at the gateway; failures are logged and swallowed."""
        try:
            response = requests.post(
                f"{self.core_base_url}/{gateway_order_id}/cancel",
                headers=self._headers(),
                auth=self._auth(),
                timeout=self.REQUEST_TIMEOUT,
            )
            body = response.json()
        except (requests.exceptions.RequestException, ValueError) as exc:
            log_event("warning", "gateway.cancel.error", order_id=gateway_order_id, error=str(exc))
            return None
        log_event("info", "gateway.cancel", order_id=gateway_order_id, status_code=body.get("status_code"))
        return body

    def verify_notification_signature(self, payload: Mapping) -> bool:
        # without a server key the signature is computable by anyone
        if not self.server_key:
            log_event("error", "gateway.notification.no_server_key", order_id=payload.get("order_id"))
            return False
        raw ="{}{}{}{}".format(
            payload.get("order_id", ""),
            payload.get("status_code", ""),
            payload.get("gross_amount", ""),
            self.server_key,
        )
        expected = hashlib.sha512(raw.encode("utf-8")).hexdigest()
        return hmac.compare_digest(expected, str(payload.get("signature_key", "")))

    @staticmethod
    def _error_message(response) -> str:
        try:
            data = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"
        messages = data.get("error_messages")
        if messages:
            return "; ".join(str(m) for m in messages)
        return data.get("status_message") or f"HTTP {response.status_code}"
