"""
Shared fixtures.

- ``app``: application on a temporary SQLite file with all tables created
- ``app_ctx``: pushed application context for service-level tests
- ``gateway``: in-memory payout/order gateway installed on the app
- ``make_account``: creates a committed account and returns its id
- ``login_as``: puts an account id in the test client's session
"""
import hashlib
import hmac
import itertools

import pytest

from rewardhub import create_app
from rewardhub.errors import GatewayError
from rewardhub.extensions import db
from rewardhub.models import Account, LedgerReason
from rewardhub.services import ledger, rewards
from rewardhub.services.razorpay import GATEWAY_EXTENSION_KEY, OrderResult, PayoutResult


class FakeGateway:
    """Stands in for RazorpayGateway.

    ``mode`` drives ``create_payout``: success, failure, timeout or error.
    ``remote`` is the gateway's own view of payouts, keyed by reference id.
    """

    def __init__(self):
        self.mode = "success"
        self.payout_calls = []
        self.remote = {}
        self.orders = []

    def create_payout(self, bank, amount_minor, idempotency_key):
        self.payout_calls.append({"bank": bank, "amount": amount_minor, "key": idempotency_key})

        if self.mode == "timeout":
            raise GatewayError("Gateway timed out after 15.0s", timed_out=True)
        if self.mode == "error":
            raise RuntimeError("connection reset by peer")
        if self.mode == "failure":
            raw = {
                "id": f"pout_{len(self.payout_calls)}",
                "status": "rejected",
                "reference_id": idempotency_key,
                "status_details": {"description": "Beneficiary bank is offline"},
            }
            self.remote[idempotency_key] = raw
            raise GatewayError("Beneficiary bank is offline", response=raw)

        payout = {
            "id": f"pout_{len(self.payout_calls)}",
            "status": "processing",
            "reference_id": idempotency_key,
            "amount": amount_minor,
        }
        self.remote[idempotency_key] = payout
        return PayoutResult(payout_id=payout["id"], status="processing", raw=payout)

    def fetch_payout_by_reference(self, reference_id):
        return self.remote.get(reference_id)

    def create_order(self, amount_minor, receipt):
        order_id = f"order_{len(self.orders) + 1:06d}"
        raw = {"id": order_id, "amount": amount_minor, "currency": "INR", "receipt": receipt}
        self.orders.append(raw)
        return OrderResult(order_id=order_id, raw=raw)


def _hmac_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


@pytest.fixture
def sign():
    """HMAC-SHA256 hex digest, as the gateway signs callbacks and webhooks."""
    return _hmac_hex


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(tmp_path, gateway):
    app = create_app(
        "config.TestingConfig",
        overrides={"SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'rewardhub-test.db'}"},
    )
    app.extensions[GATEWAY_EXTENSION_KEY] = gateway

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture(autouse=True)
def reset_reward_policy():
    yield
    rewards.set_policy(None)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_account(app):
    counter = itertools.count(1)

    def _make(balance=0, bank_details=True, is_admin=False, password="secret123", **fields):
        n = next(counter)
        with app.app_context():
            account = Account(
                name=fields.pop("name", f"User {n}"),
                email=fields.pop("email", f"user{n}@example.com"),
                phone=fields.pop("phone", f"98765{n:05d}"),
                is_admin=is_admin,
                **fields,
            )
            account.set_password(password)
            if bank_details:
                account.account_holder_name = account.name
                account.account_number = f"5010{n:08d}"
                account.ifsc = "HDFC0001234"
                account.bank_name = "HDFC Bank"
            db.session.add(account)
            db.session.commit()
            account_id = account.id

            if balance:
                ledger.apply_delta(account_id, balance, LedgerReason.ACTIVATION, note="test seed")
        return account_id

    return _make


@pytest.fixture
def login_as(client):
    def _login(account_id):
        with client.session_transaction() as sess:
            sess["_user_id"] = str(account_id)
            sess["_fresh"] = True
        return client

    return _login
