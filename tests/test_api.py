"""
HTTP surface tests through the Flask test client.

Covers auth, wallet, referrals, withdrawals, admin and the payment
endpoints, including the Razorpay webhook.
"""
import json
from datetime import datetime

import pytest

from rewardhub.extensions import db
from rewardhub.models import Account, Withdrawal, WithdrawalStatus
from rewardhub.services import ledger, redemption


def _account(app, account_id):
    with app.app_context():
        return db.session.get(Account, account_id).to_dict()


class TestAuth:
    def test_register_and_profile(self, client):
        resp = client.post(
            "/auth/register",
            json={"name": "Asha", "email": "asha@example.com", "phone": "9876500001", "password": "secret123"},
        )

        assert resp.status_code == 201
        assert resp.get_json()["account"]["public_id"].startswith("USR")

        profile = client.get("/auth/profile")
        assert profile.status_code == 200
        assert profile.get_json()["account"]["email"] == "asha@example.com"

    def test_register_validation_errors(self, client):
        resp = client.post("/auth/register", json={"name": "Asha", "email": "not-an-email", "password": "x"})

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["error"] == "ValidationError"
        assert "email" in body["message"]

    def test_duplicate_registration(self, client, make_account):
        make_account(email="asha@example.com")

        resp = client.post(
            "/auth/register",
            json={"name": "Asha", "email": "asha@example.com", "phone": "9876500001", "password": "secret123"},
        )
        assert resp.status_code == 400

    def test_login_grants_daily_reward_once(self, app, client, make_account):
        account_id = make_account(email="ravi@example.com", password="secret123")

        first = client.post("/auth/login", json={"email": "ravi@example.com", "password": "secret123"})
        second = client.post("/auth/login", json={"email": "ravi@example.com", "password": "secret123"})

        assert first.status_code == 200
        reward = first.get_json()["login_reward"]
        assert 1 <= reward <= 10
        assert second.get_json()["login_reward"] == 0

        account = _account(app, account_id)
        assert account["login_count"] == 2
        assert account["balance"] == reward

    def test_login_rejects_bad_password(self, client, make_account):
        make_account(email="ravi@example.com", password="secret123")

        resp = client.post("/auth/login", json={"email": "ravi@example.com", "password": "nope"})
        assert resp.status_code == 401

    def test_blocked_account_cannot_log_in(self, client, make_account):
        make_account(email="ravi@example.com", password="secret123", blocked=True)

        resp = client.post("/auth/login", json={"email": "ravi@example.com", "password": "secret123"})
        assert resp.status_code == 403

    def test_profile_requires_login(self, client):
        resp = client.get("/auth/profile")

        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Unauthorized"

    def test_logout(self, login_as, make_account):
        client = login_as(make_account())

        assert client.post("/auth/logout").status_code == 200
        assert client.get("/auth/profile").status_code == 401


class TestWallet:
    def test_dashboard_history_and_stats(self, login_as, make_account):
        client = login_as(make_account(balance=300))

        dashboard = client.get("/wallet/dashboard").get_json()
        history = client.get("/wallet/history?limit=5").get_json()
        stats = client.get("/wallet/stats").get_json()

        assert dashboard["account"]["balance"] == 300
        assert [e["amount"] for e in history["entries"]] == [300]
        assert stats["net_coins"] == 300

    def test_history_rejects_unknown_reason(self, login_as, make_account):
        client = login_as(make_account())

        assert client.get("/wallet/history?reason=lottery").status_code == 400

    def test_bank_details(self, app, login_as, make_account):
        account_id = make_account(bank_details=False)
        client = login_as(account_id)

        resp = client.put(
            "/wallet/bank-details",
            json={
                "account_holder_name": "Asha Rao",
                "account_number": "501000000001",
                "ifsc": "HDFC0001234",
                "bank_name": "HDFC Bank",
            },
        )

        assert resp.status_code == 200
        assert resp.get_json()["bank_details"]["ifsc"] == "HDFC0001234"

        bad = client.put("/wallet/bank-details", json={"account_holder_name": "Asha", "ifsc": "XYZ"})
        assert bad.status_code == 400

    def test_transfer_by_public_id(self, app, login_as, make_account):
        sender = make_account(balance=500)
        recipient = make_account()
        recipient_public_id = _account(app, recipient)["public_id"]
        client = login_as(sender)

        resp = client.post("/wallet/transfer", json={"recipient": recipient_public_id, "amount": 120})

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["balance"] == 380
        assert body["recipient"] == recipient_public_id
        assert _account(app, recipient)["balance"] == 120

    def test_transfer_insufficient_balance(self, app, login_as, make_account):
        sender = make_account(balance=50)
        recipient_public_id = _account(app, make_account())["public_id"]
        client = login_as(sender)

        resp = client.post("/wallet/transfer", json={"recipient": recipient_public_id, "amount": 51})

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "InsufficientBalance"
        assert _account(app, sender)["balance"] == 50

    def test_pay_unknown_recipient(self, login_as, make_account):
        client = login_as(make_account(balance=50))

        resp = client.post("/wallet/pay", json={"recipient": "USRNOBODY00", "amount": 5})
        assert resp.status_code == 404

    def test_leaderboard(self, login_as, make_account):
        make_account(balance=900, name="Top")
        client = login_as(make_account(balance=10, name="Me"))

        board = client.get("/wallet/leaderboard").get_json()["leaderboard"]
        assert [row["name"] for row in board] == ["Top", "Me"]

    def test_services_and_redeem(self, app, login_as, make_account):
        with app.app_context():
            redemption.seed_services()
        account_id = make_account(balance=150)
        client = login_as(account_id)

        services = client.get("/wallet/services").get_json()["services"]
        resp = client.post(f"/wallet/services/{services[0]['id']}/redeem")

        assert resp.status_code == 201
        assert resp.get_json()["balance"] == 50
        assert client.post("/wallet/services/999/redeem").status_code == 404


class TestReferrals:
    def test_code_and_stats(self, login_as, make_account):
        client = login_as(make_account())

        code = client.post("/referrals/code").get_json()["referral_code"]
        again = client.post("/referrals/code").get_json()["referral_code"]
        stats = client.get("/referrals/stats").get_json()

        assert code == again
        assert stats["referral_code"] == code
        assert stats["total_referrals"] == 0


class TestWithdrawals:
    def test_request_and_list(self, app, login_as, make_account):
        account_id = make_account(balance=1000)
        client = login_as(account_id)

        resp = client.post("/withdrawals", json={"amount": 600})
        listing = client.get("/withdrawals").get_json()["withdrawals"]

        assert resp.status_code == 201
        assert resp.get_json()["withdrawal"]["status"] == "PENDING"
        assert [w["amount"] for w in listing] == [600]
        assert _account(app, account_id)["balance"] == 400

    def test_below_minimum(self, login_as, make_account):
        client = login_as(make_account(balance=1000))

        resp = client.post("/withdrawals", json={"amount": 100})

        assert resp.status_code == 400
        assert "Minimum" in resp.get_json()["message"]


class TestAdmin:
    @pytest.fixture
    def pending(self, app, make_account):
        account_id = make_account(balance=1000)
        with app.app_context():
            from rewardhub.services.withdrawals import request_withdrawal

            withdrawal_id = request_withdrawal(account_id, 600).id
        return account_id, withdrawal_id

    def test_non_admin_is_forbidden(self, login_as, make_account, pending):
        client = login_as(make_account())

        assert client.get("/admin/withdrawals").status_code == 403
        assert client.post(f"/admin/withdrawals/{pending[1]}/approve").status_code == 403

    def test_approve_success(self, app, login_as, make_account, pending, gateway):
        client = login_as(make_account(is_admin=True))

        resp = client.post(f"/admin/withdrawals/{pending[1]}/approve")

        assert resp.status_code == 200
        assert resp.get_json()["withdrawal"]["status"] == "SUCCESS"
        assert len(gateway.payout_calls) == 1
        assert client.post(f"/admin/withdrawals/{pending[1]}/approve").status_code == 409

    def test_approve_with_failing_gateway_refunds(self, app, login_as, make_account, pending, gateway):
        gateway.mode = "failure"
        client = login_as(make_account(is_admin=True))

        resp = client.post(f"/admin/withdrawals/{pending[1]}/approve")

        assert resp.get_json()["withdrawal"]["status"] == "FAILED"
        assert _account(app, pending[0])["balance"] == 1000

        failed = client.get("/admin/transactions?status=failed").get_json()["transactions"]
        assert [t["withdrawal_id"] for t in failed] == [pending[1]]

    def test_reject(self, app, login_as, make_account, pending):
        client = login_as(make_account(is_admin=True))

        resp = client.post(f"/admin/withdrawals/{pending[1]}/reject", json={"note": "Name mismatch"})

        assert resp.status_code == 200
        assert resp.get_json()["withdrawal"]["notes"] == "Name mismatch"
        assert _account(app, pending[0])["balance"] == 1000

    def test_list_and_filter(self, login_as, make_account, pending):
        client = login_as(make_account(is_admin=True))

        pending_rows = client.get("/admin/withdrawals?status=pending").get_json()["withdrawals"]
        success_rows = client.get("/admin/withdrawals?status=success").get_json()["withdrawals"]

        assert [w["id"] for w in pending_rows] == [pending[1]]
        assert success_rows == []
        assert client.get("/admin/withdrawals?status=lost").status_code == 400

    def test_reconcile_endpoint(self, app, login_as, make_account, pending, gateway):
        gateway.mode = "timeout"
        client = login_as(make_account(is_admin=True))
        client.post(f"/admin/withdrawals/{pending[1]}/approve")

        resp = client.post(f"/admin/withdrawals/{pending[1]}/reconcile")

        body = resp.get_json()["withdrawal"]
        assert body["status"] == "FAILED"
        assert body["needs_reconciliation"] is False

    def test_ledger_audit(self, login_as, make_account):
        client = login_as(make_account(is_admin=True))

        assert client.get("/admin/ledger/audit").get_json() == {"ok": True, "drifted": []}

    def test_block_and_unblock_user(self, client, login_as, make_account):
        user_id = make_account(email="ravi@example.com", password="secret123")
        admin_id = make_account(is_admin=True)

        resp = login_as(admin_id).put(f"/admin/users/{user_id}", json={"blocked": True})
        assert resp.status_code == 200
        assert resp.get_json()["user"]["blocked"] is True

        blocked_rows = client.get("/admin/users?blocked=true").get_json()["users"]
        assert [u["id"] for u in blocked_rows] == [user_id]

        login = client.post("/auth/login", json={"email": "ravi@example.com", "password": "secret123"})
        assert login.status_code == 403
        # an existing session stops working as well
        assert login_as(user_id).get("/auth/profile").status_code == 401

        resp = login_as(admin_id).put(f"/admin/users/{user_id}", json={"blocked": False})
        assert resp.get_json()["user"]["blocked"] is False
        login = client.post("/auth/login", json={"email": "ravi@example.com", "password": "secret123"})
        assert login.status_code == 200

    def test_block_rules(self, login_as, make_account):
        admin_id = make_account(is_admin=True)
        other_admin = make_account(is_admin=True)
        user_id = make_account()
        client = login_as(admin_id)

        assert client.put(f"/admin/users/{admin_id}", json={"blocked": True}).status_code == 400
        assert client.put(f"/admin/users/{other_admin}", json={"blocked": True}).status_code == 400
        assert client.put(f"/admin/users/{user_id}", json={"blocked": "yes"}).status_code == 400
        assert client.put("/admin/users/9999", json={"blocked": True}).status_code == 404

        client = login_as(user_id)
        assert client.put(f"/admin/users/{other_admin}", json={"blocked": True}).status_code == 403
        assert client.get("/admin/users").status_code == 403
        assert client.get("/admin/analytics").status_code == 403

    def test_analytics(self, login_as, make_account, pending):
        client = login_as(make_account(is_admin=True))

        body = client.get("/admin/analytics").get_json()

        assert body["total_accounts"] == 2
        assert body["total_coins_earned"] == 1000
        assert body["coins_in_circulation"] == 400
        assert body["total_withdrawals"] == 1
        assert body["pending_withdrawals"] == 1
        assert body["total_coins_withdrawn"] == 0
        assert body["blocked_accounts"] == 0

    def test_daily_report(self, login_as, make_account, pending):
        client = login_as(make_account(is_admin=True))
        today = datetime.utcnow().date().isoformat()

        summary = client.get(f"/admin/reports/daily?date={today}").get_json()["summary"]

        assert summary["date"] == today
        assert summary["new_accounts"] == 2
        assert summary["withdrawals"] == 1
        assert summary["total_coins_withdrawn"] == 600
        assert client.get("/admin/reports/daily?date=02-03-2026").status_code == 400


class TestPayments:
    def test_order_then_verify(self, app, login_as, make_account, sign):
        account_id = make_account()
        client = login_as(account_id)

        order = client.post("/payments/orders", json={"amount": 500}).get_json()
        order_id = order["order"]["order_id"]
        assert order["amount_minor"] == 50000

        resp = client.post(
            "/payments/verify",
            json={
                "razorpay_order_id": order_id,
                "razorpay_payment_id": "pay_42",
                "razorpay_signature": sign("rzp_test_secret", f"{order_id}|pay_42"),
                "amount": 500,
            },
        )

        assert resp.status_code == 200
        assert resp.get_json()["coins_credited"] == 50
        account = _account(app, account_id)
        assert account["service_activated"] is True
        assert account["balance"] == 50

    def test_verify_bad_signature(self, login_as, make_account):
        client = login_as(make_account())
        order_id = client.post("/payments/orders", json={"amount": 500}).get_json()["order"]["order_id"]

        resp = client.post(
            "/payments/verify",
            json={
                "razorpay_order_id": order_id,
                "razorpay_payment_id": "pay_42",
                "razorpay_signature": "forged",
                "amount": 500,
            },
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "SignatureInvalid"


class TestWebhook:
    @staticmethod
    def _post(client, sign, payload, secret="rzp_webhook_secret"):
        body = json.dumps(payload)
        return client.post(
            "/payments/webhook/razorpay",
            data=body,
            content_type="application/json",
            headers={"X-Razorpay-Signature": sign(secret, body)},
        )

    def test_bad_signature(self, client, sign):
        resp = self._post(client, sign, {"event": "payout.processed"}, secret="wrong")
        assert resp.status_code == 400

    def test_payout_processed_settles(self, app, client, sign, make_account):
        account_id = make_account(balance=1000)
        with app.app_context():
            from rewardhub.services.withdrawals import request_withdrawal

            withdrawal_id = request_withdrawal(account_id, 500).id
            withdrawal = db.session.get(Withdrawal, withdrawal_id)
            withdrawal.status = WithdrawalStatus.APPROVED
            db.session.commit()

        payload = {
            "event": "payout.processed",
            "payload": {
                "payout": {
                    "entity": {"id": "pout_hook", "status": "processed", "reference_id": f"withdrawal_{withdrawal_id}"}
                }
            },
        }
        resp = self._post(client, sign, payload)

        assert resp.get_json() == {"status": "ok"}
        with app.app_context():
            assert db.session.get(Withdrawal, withdrawal_id).status == WithdrawalStatus.SUCCESS
            assert ledger.get_balance(account_id) == 500

    def test_unknown_reference_is_acknowledged(self, client, sign):
        payload = {
            "event": "payout.failed",
            "payload": {"payout": {"entity": {"id": "pout_x", "status": "failed", "reference_id": "withdrawal_77"}}},
        }
        resp = self._post(client, sign, payload)

        assert resp.status_code == 200
        assert resp.get_json() == {"status": "ignored", "reason": "unknown_reference"}

    def test_unhandled_event(self, client, sign):
        resp = self._post(client, sign, {"event": "payment.captured"})

        assert resp.get_json() == {"status": "ignored", "reason": "unhandled_event"}


def test_health(client):
    assert client.get("/health").get_json() == {"status": "healthy"}
