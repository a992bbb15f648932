# rewardhub/services/reports.py
"""
Admin analytics and the daily activity report.

Coin totals come from the ledger, not from account balances, so they agree
with ``ledger.audit``.
"""
from datetime import date, datetime, time, timedelta

from sqlalchemy import func, select

from rewardhub.extensions import db
from rewardhub.models import (
    Account,
    LedgerEntry,
    LedgerReason,
    Referral,
    ReferralStatus,
    Service,
    Transaction,
    Withdrawal,
    WithdrawalStatus,
)

# ledger reasons that bring new coins into the economy
EARNING_REASONS = (LedgerReason.LOGIN, LedgerReason.REFERRAL_BONUS, LedgerReason.ACTIVATION)


def _scalar(query) -> int:
    return int(db.session.execute(query).scalar() or 0)


def analytics(now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()

    return {
        "total_accounts": _scalar(select(func.count(Account.id))),
        "blocked_accounts": _scalar(select(func.count(Account.id)).where(Account.blocked.is_(True))),
        "coins_in_circulation": _scalar(select(func.sum(Account.balance))),
        "total_coins_earned": _scalar(
            select(func.sum(LedgerEntry.amount)).where(LedgerEntry.reason.in_(EARNING_REASONS))
        ),
        "total_coins_withdrawn": _scalar(
            select(func.sum(Withdrawal.amount)).where(Withdrawal.status == WithdrawalStatus.SUCCESS)
        ),
        "total_withdrawals": _scalar(select(func.count(Withdrawal.id))),
        "pending_withdrawals": _scalar(
            select(func.count(Withdrawal.id)).where(Withdrawal.status == WithdrawalStatus.PENDING)
        ),
        "withdrawals_needing_reconciliation": _scalar(
            select(func.count(Withdrawal.id)).where(Withdrawal.needs_reconciliation.is_(True))
        ),
        "active_services": _scalar(select(func.count(Service.id)).where(Service.status == "active")),
        # rewarded logins in the last 24 hours
        "daily_logins": _scalar(
            select(func.count(LedgerEntry.id)).where(
                LedgerEntry.reason == LedgerReason.LOGIN,
                LedgerEntry.created_at >= now - timedelta(days=1),
            )
        ),
    }


def daily_report(day: date) -> dict:
    """Everything that happened on one UTC calendar day."""
    start = datetime.combine(day, time.min)
    end = start + timedelta(days=1)

    new_accounts = db.session.execute(
        select(Account).where(Account.created_at >= start, Account.created_at < end).order_by(Account.id)
    ).scalars().all()
    transactions = db.session.execute(
        select(Transaction).where(Transaction.created_at >= start, Transaction.created_at < end).order_by(Transaction.id)
    ).scalars().all()
    withdrawals = db.session.execute(
        select(Withdrawal).where(Withdrawal.created_at >= start, Withdrawal.created_at < end).order_by(Withdrawal.id)
    ).scalars().all()
    rewards = db.session.execute(
        select(LedgerEntry)
        .where(
            LedgerEntry.reason.in_(EARNING_REASONS),
            LedgerEntry.created_at >= start,
            LedgerEntry.created_at < end,
        )
        .order_by(LedgerEntry.id)
    ).scalars().all()
    completed_referrals = db.session.execute(
        select(Referral)
        .where(
            Referral.status == ReferralStatus.COMPLETED,
            Referral.completed_at >= start,
            Referral.completed_at < end,
        )
        .order_by(Referral.id)
    ).scalars().all()

    return {
        "summary": {
            "date": day.isoformat(),
            "new_accounts": len(new_accounts),
            "transactions": len(transactions),
            "withdrawals": len(withdrawals),
            "rewards": len(rewards),
            "referrals_completed": len(completed_referrals),
            "total_coins_earned": sum(e.amount for e in rewards),
            "total_coins_withdrawn": sum(w.amount for w in withdrawals),
            "total_referral_bonus": sum(r.coins_earned for r in completed_referrals),
        },
        "new_accounts": [
            {"id": a.id, "public_id": a.public_id, "name": a.name, "email": a.email, "created_at": a.created_at.isoformat()}
            for a in new_accounts
        ],
        "transactions": [t.to_dict() for t in transactions],
        "withdrawals": [w.to_dict() for w in withdrawals],
        "rewards": [e.to_dict() for e in rewards],
        "referrals": [r.to_dict() for r in completed_referrals],
    }
