"""HTTP client for Razorpay orders and RazorpayX payouts."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from rewardhub.errors import GatewayError
from rewardhub.services.razorpay import (
    RazorpayGateway,
    verify_payment_signature,
    verify_webhook_signature,
)

BANK = {
    "account_holder_name": "Asha Rao",
    "account_number": "501000000001",
    "ifsc": "HDFC0001234",
    "bank_name": "HDFC Bank",
    "upi_id": None,
}


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.json.return_value = payload if payload is not None else {}
    resp.text = ""
    return resp


@pytest.fixture
def gateway():
    return RazorpayGateway(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        account_number="2323230000000000",
        base_url="https://api.razorpay.test/v1/",
        timeout=3.0,
    )


class TestPayouts:
    def test_create_payout_sends_idempotency_header(self, gateway):
        payload = {"id": "pout_123", "status": "processing"}
        with patch("requests.request", return_value=_response(200, payload)) as request:
            result = gateway.create_payout(BANK, 60000, "withdrawal_7")

        assert result.payout_id == "pout_123"
        assert result.status == "processing"
        assert result.raw == payload

        method, url = request.call_args.args
        kwargs = request.call_args.kwargs
        assert (method, url) == ("POST", "https://api.razorpay.test/v1/payouts")
        assert kwargs["headers"] == {"X-Payout-Idempotency": "withdrawal_7"}
        assert kwargs["json"]["reference_id"] == "withdrawal_7"
        assert kwargs["json"]["amount"] == 60000
        assert kwargs["json"]["fund_account"]["bank_account"]["ifsc"] == "HDFC0001234"
        assert kwargs["auth"] == ("rzp_test_key", "rzp_test_secret")
        assert kwargs["timeout"] == 3.0

    def test_rejected_payout_raises(self, gateway):
        payload = {"id": "pout_9", "status": "rejected", "status_details": {"description": "Invalid IFSC"}}
        with patch("requests.request", return_value=_response(200, payload)):
            with pytest.raises(GatewayError) as exc:
                gateway.create_payout(BANK, 60000, "withdrawal_7")

        assert exc.value.message == "Invalid IFSC"
        assert exc.value.response == payload
        assert exc.value.timed_out is False
        assert exc.value.outcome_unknown is False

    def test_http_error_carries_description(self, gateway):
        payload = {"error": {"code": "BAD_REQUEST_ERROR", "description": "Insufficient balance"}}
        with patch("requests.request", return_value=_response(400, payload)):
            with pytest.raises(GatewayError) as exc:
                gateway.create_payout(BANK, 60000, "withdrawal_7")

        assert exc.value.message == "Insufficient balance"
        assert exc.value.status_code == 502
        assert exc.value.outcome_unknown is False

    def test_server_error_leaves_outcome_unknown(self, gateway):
        payload = {"error": {"code": "SERVER_ERROR", "description": "Service unavailable"}}
        with patch("requests.request", return_value=_response(503, payload)):
            with pytest.raises(GatewayError) as exc:
                gateway.create_payout(BANK, 60000, "withdrawal_7")

        assert exc.value.timed_out is False
        assert exc.value.outcome_unknown is True

    def test_timeout_is_flagged(self, gateway):
        with patch("requests.request", side_effect=requests.Timeout("read timed out")):
            with pytest.raises(GatewayError) as exc:
                gateway.create_payout(BANK, 60000, "withdrawal_7")

        assert exc.value.timed_out is True
        assert exc.value.outcome_unknown is True

    def test_connection_error(self, gateway):
        with patch("requests.request", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(GatewayError) as exc:
                gateway.create_payout(BANK, 60000, "withdrawal_7")

        assert exc.value.timed_out is False
        assert exc.value.outcome_unknown is True

    def test_fetch_by_reference(self, gateway):
        payload = {"count": 1, "items": [{"id": "pout_1", "status": "processed"}]}
        with patch("requests.request", return_value=_response(200, payload)) as request:
            payout = gateway.fetch_payout_by_reference("withdrawal_7")

        assert payout["id"] == "pout_1"
        assert request.call_args.kwargs["params"]["reference_id"] == "withdrawal_7"

    def test_fetch_by_reference_not_found(self, gateway):
        with patch("requests.request", return_value=_response(200, {"count": 0, "items": []})):
            assert gateway.fetch_payout_by_reference("withdrawal_7") is None


class TestOrders:
    def test_create_order(self, gateway):
        payload = {"id": "order_ABC", "amount": 100000, "status": "created"}
        with patch("requests.request", return_value=_response(200, payload)) as request:
            result = gateway.create_order(100000, "rcpt_1")

        assert result.order_id == "order_ABC"
        assert request.call_args.kwargs["json"] == {"amount": 100000, "currency": "INR", "receipt": "rcpt_1"}


class TestSignatures:
    def test_payment_signature(self, sign):
        signature = sign("secret", "order_1|pay_1")

        assert verify_payment_signature("order_1", "pay_1", signature, "secret") is True
        assert verify_payment_signature("order_1", "pay_2", signature, "secret") is False
        assert verify_payment_signature("order_1", "pay_1", signature, "") is False

    def test_webhook_signature(self, sign):
        body = '{"event":"payout.processed"}'
        signature = sign("whsec", body)

        assert verify_webhook_signature(body.encode("utf-8"), signature, "whsec") is True
        assert verify_webhook_signature(body.encode("utf-8") + b" ", signature, "whsec") is False
        assert verify_webhook_signature(body.encode("utf-8"), "", "whsec") is False
