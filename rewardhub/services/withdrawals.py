# rewardhub/services/withdrawals.py
"""
Withdrawal settlement.

Coins are debited when the withdrawal is requested. Approval claims the row
(PENDING -> APPROVED) in its own committed transaction, calls the payout
gateway outside any transaction, then finalizes to SUCCESS, or to FAILED
with a refund. ``reconcile_withdrawal`` resolves rows left APPROVED by a crash
and re-checks rows flagged for an uncertain gateway outcome.
"""
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_, or_, select, update

from rewardhub.errors import AlreadyProcessed, GatewayError, ValidationError, WithdrawalNotFound
from rewardhub.extensions import db
from rewardhub.models import (
    LedgerReason,
    Transaction,
    TransactionKind,
    TransactionStatus,
    Withdrawal,
    WithdrawalStatus,
)
from rewardhub.services import ledger
from rewardhub.services.notifications import notify
from rewardhub.services.razorpay import PAYOUT_ACCEPTED, PAYOUT_REJECTED, get_gateway

PAYOUT_FAILURE_EVENTS = frozenset(f"payout.{status}" for status in PAYOUT_REJECTED)


def _get(withdrawal_id: int) -> Withdrawal:
    withdrawal = db.session.get(Withdrawal, withdrawal_id)
    if withdrawal is None:
        raise WithdrawalNotFound(f"Withdrawal {withdrawal_id} not found")
    return withdrawal


def _transition(withdrawal_id: int, source: WithdrawalStatus, target: WithdrawalStatus, **values) -> bool:
    """Conditional status update; False when the row is no longer in ``source``."""
    if not source.can_transition_to(target):
        raise AlreadyProcessed(f"Invalid withdrawal transition {source.value} -> {target.value}")

    changed = db.session.execute(
        update(Withdrawal)
        .where(Withdrawal.id == withdrawal_id, Withdrawal.status == source)
        .values(status=target, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    ).rowcount
    return changed == 1


# -------------------
# Request
# -------------------
def _reserve(account_id: int, amount: int) -> Withdrawal:
    account = ledger.get_account(account_id)
    if not account.has_bank_details:
        raise ValidationError("Bank details required for withdrawal")

    withdrawal = Withdrawal(
        account_id=account_id,
        amount=amount,
        status=WithdrawalStatus.PENDING,
        account_holder_name=account.account_holder_name,
        account_number=account.account_number,
        ifsc=account.ifsc,
        bank_name=account.bank_name,
        upi_id=account.upi_id,
    )
    db.session.add(withdrawal)
    db.session.flush()

    # Reserve funds immediately
    ledger.post(
        account_id,
        -amount,
        LedgerReason.REDEMPTION,
        correlation_id=withdrawal.idempotency_key,
        note="withdrawal request",
    )
    return withdrawal


def request_withdrawal(account_id: int, amount: int) -> Withdrawal:
    minimum = current_app.config.get("MIN_WITHDRAWAL_COINS", 500)
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Enter a valid withdrawal amount")
    if amount < minimum:
        raise ValidationError(f"Minimum withdrawal amount is {minimum} coins")

    withdrawal = ledger.atomic(_reserve, account_id, amount)
    current_app.logger.info(
        "withdrawal %s requested account=%s amount=%s", withdrawal.id, account_id, amount
    )
    return withdrawal


# -------------------
# Finalization
# -------------------
def _record_attempt(withdrawal: Withdrawal, status: TransactionStatus, raw, payout_id=None, error=None):
    db.session.add(
        Transaction(
            kind=TransactionKind.PAYOUT,
            account_id=withdrawal.account_id,
            withdrawal_id=withdrawal.id,
            amount=withdrawal.amount,
            currency=current_app.config.get("CURRENCY", "INR"),
            status=status,
            raw_response=raw,
            external_id=payout_id,
            error_message=(error or "")[:255] or None,
        )
    )


def _finalize_success(withdrawal_id: int, payout_id: str, raw: dict) -> Withdrawal | None:
    withdrawal = _get(withdrawal_id)
    moved = _transition(
        withdrawal_id,
        WithdrawalStatus.APPROVED,
        WithdrawalStatus.SUCCESS,
        payout_id=payout_id,
        processed_at=datetime.utcnow(),
    )
    if not moved:
        return None
    _record_attempt(withdrawal, TransactionStatus.SUCCESS, raw, payout_id=payout_id)
    return withdrawal


def _finalize_failure(
    withdrawal_id: int,
    source: WithdrawalStatus,
    reason: str,
    raw: dict | None,
    needs_reconciliation: bool,
    record_attempt: bool = True,
) -> Withdrawal | None:
    withdrawal = _get(withdrawal_id)
    moved = _transition(
        withdrawal_id,
        source,
        WithdrawalStatus.FAILED,
        notes=(reason or "")[:255],
        processed_at=datetime.utcnow(),
        needs_reconciliation=needs_reconciliation,
    )
    if not moved:
        return None

    ledger.post(
        withdrawal.account_id,
        withdrawal.amount,
        LedgerReason.REFUND,
        correlation_id=withdrawal.idempotency_key,
        idempotency_key=f"withdrawal-refund:{withdrawal.id}",
        note=f"withdrawal {withdrawal.id} refund",
    )
    if record_attempt:
        _record_attempt(withdrawal, TransactionStatus.FAILED, raw or {"error": reason}, error=reason)
    return withdrawal


def _flag(withdrawal_id: int) -> None:
    db.session.execute(
        update(Withdrawal)
        .where(Withdrawal.id == withdrawal_id)
        .values(needs_reconciliation=True, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )


def _clear_flag(withdrawal_id: int) -> None:
    db.session.execute(
        update(Withdrawal)
        .where(Withdrawal.id == withdrawal_id)
        .values(needs_reconciliation=False, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )


def _settle_success(withdrawal_id: int, payout_id: str, raw: dict) -> Withdrawal:
    finalized = ledger.atomic(_finalize_success, withdrawal_id, payout_id, raw)
    withdrawal = _get(withdrawal_id)

    if finalized is None:
        if withdrawal.status == WithdrawalStatus.FAILED:
            # refunded by reconciliation while the payout went through
            current_app.logger.error(
                "withdrawal %s paid out as %s after being refunded; manual action required",
                withdrawal_id,
                payout_id,
            )
            ledger.atomic(_flag, withdrawal_id)
        return withdrawal

    current_app.logger.info("withdrawal %s settled payout=%s", withdrawal_id, payout_id)
    notify(withdrawal.account, "withdrawal_success", {"withdrawal": withdrawal})
    return withdrawal


def _settle_failure(
    withdrawal_id: int,
    reason: str,
    raw: dict | None,
    needs_reconciliation: bool = False,
    source: WithdrawalStatus = WithdrawalStatus.APPROVED,
    record_attempt: bool = True,
) -> Withdrawal | None:
    finalized = ledger.atomic(
        _finalize_failure, withdrawal_id, source, reason, raw, needs_reconciliation, record_attempt
    )
    if finalized is None:
        return None

    withdrawal = _get(withdrawal_id)
    current_app.logger.warning(
        "withdrawal %s failed and refunded: %s (reconcile=%s)", withdrawal_id, reason, needs_reconciliation
    )
    notify(withdrawal.account, "withdrawal_failed", {"withdrawal": withdrawal, "reason": reason})
    return withdrawal


# -------------------
# Approval
# -------------------
def _claim(withdrawal_id: int) -> Withdrawal:
    withdrawal = _get(withdrawal_id)
    if not _transition(
        withdrawal_id, WithdrawalStatus.PENDING, WithdrawalStatus.APPROVED, approved_at=datetime.utcnow()
    ):
        raise AlreadyProcessed("Withdrawal already processed")
    return withdrawal


def approve_and_settle(withdrawal_id: int, gateway=None) -> Withdrawal:
    """Approve a PENDING withdrawal and pay it out exactly once."""
    ledger.atomic(_claim, withdrawal_id)

    withdrawal = _get(withdrawal_id)
    amount_minor = withdrawal.amount * current_app.config.get("COIN_MINOR_UNITS", 100)
    gateway = gateway or get_gateway()

    current_app.logger.info(
        "withdrawal %s approved, requesting payout of %s minor units", withdrawal_id, amount_minor
    )
    try:
        result = gateway.create_payout(withdrawal.bank_details(), amount_minor, withdrawal.idempotency_key)
    except GatewayError as exc:
        return _settle_failure(
            withdrawal_id, exc.message, exc.response, needs_reconciliation=exc.outcome_unknown
        ) or _get(withdrawal_id)
    except Exception as exc:
        # unknown outcome at the gateway: refund, but keep it for reconciliation
        current_app.logger.exception("withdrawal %s payout raised unexpectedly", withdrawal_id)
        return _settle_failure(
            withdrawal_id, f"Unexpected payout error: {exc}", None, needs_reconciliation=True
        ) or _get(withdrawal_id)

    return _settle_success(withdrawal_id, result.payout_id, result.raw)


def reject_withdrawal(withdrawal_id: int, note: str | None = None) -> Withdrawal:
    """Admin rejection of a PENDING withdrawal; coins are refunded."""
    _get(withdrawal_id)
    withdrawal = _settle_failure(
        withdrawal_id,
        note or "Rejected by admin",
        None,
        source=WithdrawalStatus.PENDING,
        record_attempt=False,
    )
    if withdrawal is None:
        raise AlreadyProcessed("Withdrawal already processed")
    return withdrawal


# -------------------
# Reconciliation
# -------------------
def _apply_gateway_state(withdrawal_id: int, payout: dict | None) -> Withdrawal:
    if payout is None:
        return _settle_failure(withdrawal_id, "Payout not found at gateway", None) or _get(withdrawal_id)

    status = (payout.get("status") or "").lower()
    if status in PAYOUT_ACCEPTED:
        return _settle_success(withdrawal_id, payout.get("id"), payout)
    if status in PAYOUT_REJECTED:
        reason = (payout.get("status_details") or {}).get("description") or f"Payout {status}"
        return _settle_failure(withdrawal_id, reason, payout) or _get(withdrawal_id)

    current_app.logger.warning("withdrawal %s has unknown payout status %r", withdrawal_id, status)
    return _get(withdrawal_id)


def reconcile_withdrawal(withdrawal_id: int, gateway=None) -> Withdrawal:
    """Resolve a withdrawal against the gateway's view of its payout.

    The payout is looked up by the withdrawal's idempotency key, so this is
    safe to run any number of times.
    """
    withdrawal = _get(withdrawal_id)
    gateway = gateway or get_gateway()

    if withdrawal.status == WithdrawalStatus.APPROVED:
        payout = gateway.fetch_payout_by_reference(withdrawal.idempotency_key)
        return _apply_gateway_state(withdrawal_id, payout)

    if withdrawal.status == WithdrawalStatus.FAILED and withdrawal.needs_reconciliation:
        payout = gateway.fetch_payout_by_reference(withdrawal.idempotency_key)
        status = ((payout or {}).get("status") or "").lower()
        if payout is None or status in PAYOUT_REJECTED:
            ledger.atomic(_clear_flag, withdrawal_id)
            current_app.logger.info("withdrawal %s refund confirmed by gateway", withdrawal_id)
        else:
            current_app.logger.error(
                "withdrawal %s was refunded but payout %s is %s; manual action required",
                withdrawal_id,
                payout.get("id"),
                status,
            )
        return _get(withdrawal_id)

    if withdrawal.status == WithdrawalStatus.SUCCESS and withdrawal.needs_reconciliation:
        payout = gateway.fetch_payout_by_reference(withdrawal.idempotency_key)
        status = ((payout or {}).get("status") or "").lower()
        if status == "processed":
            ledger.atomic(_clear_flag, withdrawal_id)
            current_app.logger.info("withdrawal %s payout confirmed by gateway", withdrawal_id)
        else:
            current_app.logger.error(
                "withdrawal %s is SUCCESS but payout is %s; manual refund required",
                withdrawal_id,
                status or "missing",
            )
        return _get(withdrawal_id)

    return withdrawal


def reconcile_stuck(older_than_minutes: int | None = None, gateway=None) -> dict:
    if older_than_minutes is None:
        older_than_minutes = current_app.config.get("RECONCILE_AFTER_MINUTES", 15)
    cutoff = datetime.utcnow() - timedelta(minutes=older_than_minutes)

    ids = db.session.execute(
        select(Withdrawal.id)
        .where(
            or_(
                and_(Withdrawal.status == WithdrawalStatus.APPROVED, Withdrawal.approved_at < cutoff),
                and_(
                    Withdrawal.status.in_([WithdrawalStatus.FAILED, WithdrawalStatus.SUCCESS]),
                    Withdrawal.needs_reconciliation.is_(True),
                ),
            )
        )
        .order_by(Withdrawal.id)
    ).scalars().all()

    summary = {"checked": len(ids), "succeeded": 0, "failed": 0, "flagged": 0, "errors": 0}
    gateway = gateway or get_gateway()
    for withdrawal_id in ids:
        try:
            withdrawal = reconcile_withdrawal(withdrawal_id, gateway=gateway)
        except GatewayError:
            current_app.logger.exception("reconciliation of withdrawal %s failed", withdrawal_id)
            summary["errors"] += 1
            continue

        if withdrawal.needs_reconciliation:
            summary["flagged"] += 1
        elif withdrawal.status == WithdrawalStatus.SUCCESS:
            summary["succeeded"] += 1
        elif withdrawal.status == WithdrawalStatus.FAILED:
            summary["failed"] += 1

    current_app.logger.info("withdrawal reconciliation: %s", summary)
    return summary


def withdrawal_id_from_reference(reference: str | None) -> int | None:
    if not reference or not reference.startswith("withdrawal_"):
        return None
    try:
        return int(reference[len("withdrawal_"):])
    except ValueError:
        return None


def apply_payout_event(event: str, payout: dict) -> str:
    """Feed a RazorpayX payout webhook into settlement. Returns what happened."""
    withdrawal_id = withdrawal_id_from_reference(payout.get("reference_id"))
    withdrawal = db.session.get(Withdrawal, withdrawal_id) if withdrawal_id else None
    if withdrawal is None:
        return "unknown_reference"

    if withdrawal.status == WithdrawalStatus.APPROVED:
        if event == "payout.processed" or event in PAYOUT_FAILURE_EVENTS:
            _apply_gateway_state(withdrawal.id, payout)
            return "settled"
        return "ignored"

    paid_out = event == "payout.processed"
    if withdrawal.status == WithdrawalStatus.FAILED and paid_out:
        current_app.logger.error("withdrawal %s refunded but gateway reports %s", withdrawal.id, event)
        ledger.atomic(_flag, withdrawal.id)
        return "flagged"
    if withdrawal.status == WithdrawalStatus.SUCCESS and event in PAYOUT_FAILURE_EVENTS:
        # settled while the payout was still in flight; the coins are gone but the money is not
        current_app.logger.error(
            "withdrawal %s marked SUCCESS but gateway reports %s; refund required", withdrawal.id, event
        )
        ledger.atomic(_flag, withdrawal.id)
        return "flagged"
    return "already_final"


# -------------------
# Queries
# -------------------
def list_for_account(account_id: int, limit: int = 50) -> list[Withdrawal]:
    return list(
        db.session.execute(
            select(Withdrawal)
            .where(Withdrawal.account_id == account_id)
            .order_by(Withdrawal.created_at.desc(), Withdrawal.id.desc())
            .limit(limit)
        ).scalars()
    )


def list_all(status=None, limit: int = 200) -> list[Withdrawal]:
    query = select(Withdrawal)
    if status:
        query = query.where(Withdrawal.status == WithdrawalStatus(status))
    return list(db.session.execute(query.order_by(Withdrawal.created_at.desc()).limit(limit)).scalars())


def list_transactions(status=None, limit: int = 200) -> list[Transaction]:
    query = select(Transaction)
    if status:
        query = query.where(Transaction.status == TransactionStatus(status))
    return list(db.session.execute(query.order_by(Transaction.created_at.desc()).limit(limit)).scalars())
