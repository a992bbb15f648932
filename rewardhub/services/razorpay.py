# rewardhub/services/razorpay.py
import hashlib
import hmac
import logging
from dataclasses import dataclass, field

import requests
from flask import current_app

from rewardhub.errors import GatewayError

log = logging.getLogger(__name__)

GATEWAY_EXTENSION_KEY = "rewardhub.gateway"

# RazorpayX payout states that mean the money is gone or on its way
PAYOUT_ACCEPTED = frozenset({"queued", "pending", "processing", "processed"})
PAYOUT_REJECTED = frozenset({"rejected", "cancelled", "failed", "reversed"})


@dataclass
class PayoutResult:
    payout_id: str
    status: str
    raw: dict = field(default_factory=dict)


@dataclass
class OrderResult:
    order_id: str
    raw: dict = field(default_factory=dict)


def _hmac_sha256(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    if not (order_id and payment_id and signature and secret):
        return False
    computed = _hmac_sha256(secret, f"{order_id}|{payment_id}".encode("utf-8"))
    return hmac.compare_digest(computed, signature)


def verify_webhook_signature(raw_body: bytes, signature: str, secret: str) -> bool:
    if not signature or not secret:
        return False
    return hmac.compare_digest(_hmac_sha256(secret, raw_body), signature)


class RazorpayGateway:
    """Orders (coin purchase) and RazorpayX payouts (withdrawals)."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        account_number: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        currency: str = "INR",
        mode: str = "IMPS",
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.account_number = account_number
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.currency = currency
        self.mode = mode

    @classmethod
    def from_config(cls, config) -> "RazorpayGateway":
        return cls(
            key_id=config.get("RAZORPAY_KEY_ID", ""),
            key_secret=config.get("RAZORPAY_KEY_SECRET", ""),
            account_number=config.get("RAZORPAY_ACCOUNT_NUMBER", ""),
            base_url=config.get("RAZORPAY_BASE_URL", "https://api.razorpay.com/v1"),
            timeout=config.get("GATEWAY_TIMEOUT_SECONDS", 15.0),
            currency=config.get("CURRENCY", "INR"),
            mode=config.get("PAYOUT_MODE", "IMPS"),
        )

    def _request(self, method: str, path: str, *, json=None, params=None, headers=None) -> dict:
        url = f"{self.base_url}{path}"
        try:
            response = requests.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            log.error("Razorpay %s %s timed out after %ss", method, path, self.timeout)
            raise GatewayError(f"Gateway timed out after {self.timeout}s", timed_out=True) from exc
        except requests.RequestException as exc:
            log.error("Razorpay %s %s failed: %s", method, path, exc)
            raise GatewayError(f"Gateway unreachable: {exc}", outcome_unknown=True) from exc

        try:
            data = response.json()
        except ValueError:
            data = {"body": response.text}

        if not response.ok:
            description = (data.get("error") or {}).get("description") or f"HTTP {response.status_code}"
            log.error("Razorpay %s %s -> %s %s", method, path, response.status_code, description)
            # a 5xx says nothing about whether the payout was created
            raise GatewayError(description, response=data, outcome_unknown=response.status_code >= 500)

        log.info("Razorpay %s %s -> %s", method, path, response.status_code)
        return data

    def create_payout(self, bank: dict, amount_minor: int, idempotency_key: str) -> PayoutResult:
        payload = {
            "account_number": self.account_number,
            "amount": amount_minor,
            "currency": self.currency,
            "mode": self.mode,
            "purpose": "payout",
            "queue_if_low_balance": True,
            "reference_id": idempotency_key,
            "narration": "Reward withdrawal payout",
            "fund_account": {
                "account_type": "bank_account",
                "bank_account": {
                    "name": bank["account_holder_name"],
                    "ifsc": bank["ifsc"],
                    "account_number": bank["account_number"],
                },
                "contact": {
                    "name": bank["account_holder_name"],
                    "type": "customer",
                    "reference_id": idempotency_key,
                },
            },
        }
        data = self._request(
            "POST",
            "/payouts",
            json=payload,
            headers={"X-Payout-Idempotency": idempotency_key},
        )

        status = (data.get("status") or "").lower()
        if status in PAYOUT_REJECTED:
            reason = (data.get("status_details") or {}).get("description") or f"Payout {status}"
            raise GatewayError(reason, response=data)
        return PayoutResult(payout_id=data.get("id"), status=status, raw=data)

    def fetch_payout_by_reference(self, reference_id: str) -> dict | None:
        data = self._request(
            "GET",
            "/payouts",
            params={"account_number": self.account_number, "reference_id": reference_id},
        )
        items = data.get("items") or []
        return items[0] if items else None

    def create_order(self, amount_minor: int, receipt: str) -> OrderResult:
        data = self._request(
            "POST",
            "/orders",
            json={"amount": amount_minor, "currency": self.currency, "receipt": receipt},
        )
        return OrderResult(order_id=data["id"], raw=data)


def get_gateway():
    gateway = current_app.extensions.get(GATEWAY_EXTENSION_KEY)
    if gateway is None:
        gateway = RazorpayGateway.from_config(current_app.config)
    return gateway
