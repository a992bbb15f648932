"""Admin analytics, the daily report and account blocking."""
from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select, update

from rewardhub.errors import AccountNotFound, ValidationError
from rewardhub.extensions import db
from rewardhub.models import Account, LedgerEntry, LedgerReason
from rewardhub.services import accounts, ledger, redemption, referral, reports
from rewardhub.services.rewards import UniformRangePolicy, record_login
from rewardhub.services.withdrawals import approve_and_settle, request_withdrawal

pytestmark = pytest.mark.usefixtures("app_ctx")


def _backdate(model, row_id, when):
    db.session.execute(update(model).where(model.id == row_id).values(created_at=when))
    db.session.commit()


class TestAnalytics:
    def test_empty_store(self):
        stats = reports.analytics()

        assert stats["total_accounts"] == 0
        assert stats["total_coins_earned"] == 0
        assert stats["daily_logins"] == 0

    def test_totals_follow_the_ledger(self, make_account, gateway):
        redemption.seed_services()
        rich = make_account(balance=2000)
        make_account(blocked=True)
        approve_and_settle(request_withdrawal(rich, 600).id)
        request_withdrawal(rich, 500)
        record_login(make_account(), policy=UniformRangePolicy(5, 5))

        stats = reports.analytics()

        assert stats["total_accounts"] == 3
        assert stats["blocked_accounts"] == 1
        # seed activation plus one login reward
        assert stats["total_coins_earned"] == 2005
        assert stats["total_coins_withdrawn"] == 600
        assert stats["total_withdrawals"] == 2
        assert stats["pending_withdrawals"] == 1
        assert stats["withdrawals_needing_reconciliation"] == 0
        assert stats["active_services"] == 3
        assert stats["daily_logins"] == 1
        assert stats["coins_in_circulation"] == 905

    def test_daily_logins_window(self, make_account):
        account_id = make_account()
        record_login(account_id, policy=UniformRangePolicy(1, 1))
        entry_id = db.session.execute(
            select(LedgerEntry.id).where(LedgerEntry.reason == LedgerReason.LOGIN)
        ).scalar_one()
        _backdate(LedgerEntry, entry_id, datetime.utcnow() - timedelta(hours=30))

        assert reports.analytics()["daily_logins"] == 0


class TestDailyReport:
    def test_counts_only_that_day(self, app, make_account):
        referrer = make_account()
        code = referral.generate_code(referrer)
        newcomer = make_account()
        referral.redeem_on_signup(code, newcomer)
        referral.complete_on_activation(newcomer)
        old = make_account(balance=70)
        _backdate(Account, old, datetime(2026, 1, 5, 12))

        report = reports.daily_report(datetime.utcnow().date())
        bonus = app.config["REFERRAL_BONUS_COINS"]

        summary = report["summary"]
        assert summary["new_accounts"] == 2
        assert summary["referrals_completed"] == 1
        assert summary["total_referral_bonus"] == bonus
        # the backdated account's seed entry still lands today
        assert summary["total_coins_earned"] == bonus + 70
        assert [a["id"] for a in report["new_accounts"]] == [referrer, newcomer]
        assert [r["referred_id"] for r in report["referrals"]] == [newcomer]

        past = reports.daily_report(date(2026, 1, 5))["summary"]
        assert past["new_accounts"] == 1
        assert past["rewards"] == 0

    def test_withdrawals_and_transactions(self, make_account, gateway):
        account_id = make_account(balance=800)
        approve_and_settle(request_withdrawal(account_id, 500).id)

        summary = reports.daily_report(datetime.utcnow().date())["summary"]

        assert summary["withdrawals"] == 1
        assert summary["total_coins_withdrawn"] == 500
        assert summary["transactions"] == 1


class TestBlocking:
    def test_block_hides_from_leaderboard(self, make_account):
        admin_id = make_account(is_admin=True)
        user_id = make_account(balance=50)

        accounts.set_blocked(user_id, True, acting_admin_id=admin_id)

        assert ledger.get_account(user_id).blocked is True
        assert [a.id for a in accounts.list_accounts(blocked=True)] == [user_id]
        assert all(row["balance"] != 50 for row in accounts.leaderboard())

        accounts.set_blocked(user_id, False, acting_admin_id=admin_id)
        assert accounts.list_accounts(blocked=True) == []

    def test_cannot_block_self_or_admin(self, make_account):
        admin_id = make_account(is_admin=True)
        other_admin = make_account(is_admin=True)

        with pytest.raises(ValidationError):
            accounts.set_blocked(admin_id, True, acting_admin_id=admin_id)
        with pytest.raises(ValidationError):
            accounts.set_blocked(other_admin, True, acting_admin_id=admin_id)
        with pytest.raises(AccountNotFound):
            accounts.set_blocked(9999, True, acting_admin_id=admin_id)
