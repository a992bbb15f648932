# rewardhub/services/ledger.py
"""
Coin ledger.

Every balance change goes through ``post``: one conditional UPDATE moves the
balance and recomputes the tier, and the matching LedgerEntry is inserted in
the same database transaction. ``atomic`` wraps a unit of work with
commit/rollback and retries it when the store reports a lock conflict.
"""
import time
from datetime import datetime

from flask import current_app
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm.util import identity_key

from rewardhub.errors import AccountNotFound, ConcurrencyConflict, InsufficientBalance, ValidationError
from rewardhub.extensions import db
from rewardhub.models import Account, LedgerEntry, LedgerReason
from rewardhub.models.ledger import TIER_THRESHOLDS, Tier, tier_for

__all__ = [
    "atomic",
    "post",
    "apply_delta",
    "tier_for",
    "get_account",
    "get_balance",
    "history",
    "reward_stats",
    "verify_account",
    "audit",
    "compact",
]

# SQLSTATEs: serialization_failure, deadlock_detected, lock_not_available
_PG_CONFLICT_CODES = {"40001", "40P01", "55P03"}


def _is_conflict(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in _PG_CONFLICT_CODES:
        return True
    text = str(orig).lower()
    if isinstance(exc, IntegrityError):
        # two writers raced on the same idempotency key; the rerun sees the winner
        return "idempotency_key" in text
    return "database is locked" in text or "database table is locked" in text


def atomic(work, *args, **kwargs):
    """Run ``work`` as one transaction, committing on success.

    Lock conflicts are retried with a linear backoff. Anything else rolls
    back and propagates unchanged.
    """
    max_retries = current_app.config.get("LEDGER_MAX_RETRIES", 5)
    backoff = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.05)
    attempt = 0

    while True:
        try:
            result = work(*args, **kwargs)
            db.session.commit()
            return result
        except DBAPIError as exc:
            db.session.rollback()
            if not _is_conflict(exc):
                raise
            attempt += 1
            if attempt > max_retries:
                current_app.logger.error(
                    "ledger conflict not resolved after %s retries in %s", max_retries, work.__name__
                )
                raise ConcurrencyConflict() from exc
            current_app.logger.debug("ledger conflict in %s, retry %s", work.__name__, attempt)
            if backoff:
                time.sleep(backoff * attempt)
        except Exception:
            db.session.rollback()
            raise


def _tier_case(balance_expr):
    return case(
        *[(balance_expr >= minimum, tier.value) for minimum, tier in TIER_THRESHOLDS],
        else_=Tier.SILVER.value,
    )


def _expire_cached(account_id: int) -> None:
    cached = db.session.identity_map.get(identity_key(Account, account_id))
    if cached is not None:
        db.session.expire(cached, ["balance", "tier"])


def post(
    account_id: int,
    amount: int,
    reason,
    correlation_id: str | None = None,
    idempotency_key: str | None = None,
    note: str | None = None,
) -> LedgerEntry:
    """Apply a signed delta inside the caller's transaction."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
        raise ValidationError("Amount must be a non-zero whole number of coins")
    reason = LedgerReason(reason)

    if idempotency_key:
        existing = db.session.execute(
            select(LedgerEntry).where(LedgerEntry.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        if existing is not None:
            current_app.logger.info("ledger skip duplicate key=%s entry=%s", idempotency_key, existing.id)
            return existing

    new_balance = Account.balance + amount
    stmt = (
        update(Account)
        .where(Account.id == account_id)
        .values(balance=new_balance, tier=_tier_case(new_balance))
        .returning(Account.balance, Account.tier)
        .execution_options(synchronize_session=False)
    )
    if amount < 0:
        stmt = stmt.where(new_balance >= 0)

    row = db.session.execute(stmt).first()
    if row is None:
        balance = db.session.execute(
            select(Account.balance).where(Account.id == account_id)
        ).scalar_one_or_none()
        if balance is None:
            raise AccountNotFound(f"Account {account_id} not found")
        raise InsufficientBalance(balance, -amount)

    entry = LedgerEntry(
        account_id=account_id,
        amount=amount,
        reason=reason,
        tier_at_time=row.tier,
        balance_after=row.balance,
        correlation_id=correlation_id,
        idempotency_key=idempotency_key,
        note=note,
    )
    db.session.add(entry)
    db.session.flush()
    _expire_cached(account_id)

    current_app.logger.info(
        "ledger %s account=%s amount=%s reason=%s balance=%s tier=%s",
        "credit" if amount > 0 else "debit",
        account_id,
        amount,
        reason.value,
        row.balance,
        row.tier,
    )
    return entry


def apply_delta(
    account_id: int,
    amount: int,
    reason,
    correlation_id: str | None = None,
    idempotency_key: str | None = None,
    note: str | None = None,
) -> LedgerEntry:
    """Apply a signed delta as its own committed unit of work."""
    return atomic(
        post,
        account_id,
        amount,
        reason,
        correlation_id=correlation_id,
        idempotency_key=idempotency_key,
        note=note,
    )


def get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise AccountNotFound(f"Account {account_id} not found")
    return account


def get_balance(account_id: int) -> int:
    balance = db.session.execute(
        select(Account.balance).where(Account.id == account_id)
    ).scalar_one_or_none()
    if balance is None:
        raise AccountNotFound(f"Account {account_id} not found")
    return balance


def history(account_id: int, limit: int = 50, reason=None) -> list[LedgerEntry]:
    query = select(LedgerEntry).where(LedgerEntry.account_id == account_id)
    if reason is not None:
        query = query.where(LedgerEntry.reason == LedgerReason(reason))
    query = query.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc()).limit(limit)
    return list(db.session.execute(query).scalars())


def reward_stats(account_id: int) -> dict:
    rows = db.session.execute(
        select(LedgerEntry.reason, func.sum(LedgerEntry.amount), func.count(LedgerEntry.id))
        .where(LedgerEntry.account_id == account_id)
        .group_by(LedgerEntry.reason)
    ).all()

    stats = [
        {"reason": reason.value, "total_coins": int(total or 0), "count": count}
        for reason, total, count in rows
    ]
    return {
        "stats": stats,
        "total_coins_earned": sum(s["total_coins"] for s in stats if s["total_coins"] > 0),
        "net_coins": sum(s["total_coins"] for s in stats),
    }


def verify_account(account_id: int) -> dict:
    account = get_account(account_id)
    ledger_sum = db.session.execute(
        select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(LedgerEntry.account_id == account_id)
    ).scalar()
    expected_tier = tier_for(account.balance).value
    return {
        "account_id": account.id,
        "balance": account.balance,
        "ledger_sum": int(ledger_sum),
        "tier": account.tier,
        "expected_tier": expected_tier,
        "ok": account.balance == int(ledger_sum) and account.tier == expected_tier,
    }


def audit() -> list[dict]:
    """Accounts whose balance or tier disagrees with their ledger."""
    sums = (
        select(LedgerEntry.account_id, func.sum(LedgerEntry.amount).label("total"))
        .group_by(LedgerEntry.account_id)
        .subquery()
    )
    rows = db.session.execute(
        select(Account.id, Account.balance, Account.tier, func.coalesce(sums.c.total, 0))
        .outerjoin(sums, sums.c.account_id == Account.id)
    ).all()

    drifted = []
    for account_id, balance, tier, total in rows:
        expected_tier = tier_for(balance).value
        if balance != int(total) or tier != expected_tier:
            drifted.append(
                {
                    "account_id": account_id,
                    "balance": balance,
                    "ledger_sum": int(total),
                    "tier": tier,
                    "expected_tier": expected_tier,
                }
            )
    return drifted


def _compact_account(account_id: int, cutoff: datetime) -> int:
    old = select(LedgerEntry).where(
        LedgerEntry.account_id == account_id,
        LedgerEntry.created_at < cutoff,
    )
    entries = list(db.session.execute(old.order_by(LedgerEntry.created_at, LedgerEntry.id)).scalars())
    if len(entries) < 2:
        return 0

    last = entries[-1]
    total = sum(e.amount for e in entries)

    db.session.execute(
        delete(LedgerEntry)
        .where(LedgerEntry.id.in_([e.id for e in entries]))
        .execution_options(synchronize_session=False)
    )
    if total != 0:
        db.session.add(
            LedgerEntry(
                account_id=account_id,
                amount=total,
                reason=LedgerReason.CARRY_FORWARD,
                tier_at_time=last.tier_at_time,
                balance_after=last.balance_after,
                note=f"{len(entries)} entries before {cutoff.date().isoformat()}",
                created_at=last.created_at,
            )
        )
    return len(entries)


def compact(cutoff: datetime) -> int:
    """Fold entries older than ``cutoff`` into one carry-forward entry per account.

    Returns the number of entries removed. Balances are untouched, so
    ``balance == sum(entries)`` still holds afterwards.
    """
    account_ids = db.session.execute(
        select(LedgerEntry.account_id)
        .where(LedgerEntry.created_at < cutoff)
        .group_by(LedgerEntry.account_id)
        .having(func.count(LedgerEntry.id) > 1)
    ).scalars().all()

    removed = 0
    for account_id in account_ids:
        removed += atomic(_compact_account, account_id, cutoff)

    current_app.logger.info("ledger compaction before %s removed %s entries", cutoff.isoformat(), removed)
    return removed
