# rewardhub/services/transfers.py
import uuid

from flask import current_app
from sqlalchemy import select

from rewardhub.errors import AccountNotFound, InsufficientBalance, ValidationError
from rewardhub.extensions import db
from rewardhub.models import Account, LedgerEntry, LedgerReason
from rewardhub.services import ledger


def _validate(from_id: int, to_id: int, amount) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount must be a positive whole number of coins")
    if from_id == to_id:
        raise ValidationError("Cannot transfer to yourself")


def _move(from_id: int, to_id: int, amount: int, reason: LedgerReason, note: str | None):
    balances = dict(
        db.session.execute(select(Account.id, Account.balance).where(Account.id.in_([from_id, to_id]))).all()
    )
    if from_id not in balances:
        raise AccountNotFound(f"Account {from_id} not found")
    if to_id not in balances:
        raise AccountNotFound("Recipient not found")
    if balances[from_id] < amount:
        raise InsufficientBalance(balances[from_id], amount)

    correlation_id = str(uuid.uuid4())
    legs = {
        from_id: -amount,
        to_id: amount,
    }

    # lower account id first so two opposite transfers lock rows in the same order
    entries = {}
    for account_id in sorted(legs):
        entries[account_id] = ledger.post(
            account_id,
            legs[account_id],
            reason,
            correlation_id=correlation_id,
            note=note,
        )
    return entries[from_id], entries[to_id]


def transfer(
    from_id: int,
    to_id: int,
    amount: int,
    reason=LedgerReason.TRANSFER,
    note: str | None = None,
) -> tuple[LedgerEntry, LedgerEntry]:
    """Move coins between two accounts. Returns (debit, credit).

    Both entries share a correlation id and commit together, or neither does.
    """
    _validate(from_id, to_id, amount)
    reason = LedgerReason(reason)
    debit, credit = ledger.atomic(_move, from_id, to_id, amount, reason, note)

    current_app.logger.info(
        "%s %s coins account=%s -> account=%s correlation=%s",
        reason.value,
        amount,
        from_id,
        to_id,
        debit.correlation_id,
    )
    return debit, credit


def pay(from_id: int, to_id: int, amount: int, note: str | None = None) -> tuple[LedgerEntry, LedgerEntry]:
    return transfer(from_id, to_id, amount, reason=LedgerReason.PAYMENT, note=note)


def find_account_by_public_id(public_id: str) -> Account:
    account = db.session.execute(
        select(Account).where(Account.public_id == (public_id or "").strip().upper())
    ).scalar_one_or_none()
    if account is None:
        raise AccountNotFound("Recipient not found")
    return account


def find_transfer(correlation_id: str) -> list[LedgerEntry]:
    return list(
        db.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.correlation_id == correlation_id)
            .order_by(LedgerEntry.amount)
        ).scalars()
    )
