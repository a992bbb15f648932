# rewardhub/services/referral.py
import secrets
import string
from datetime import datetime

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from rewardhub.extensions import db
from rewardhub.models import Account, LedgerEntry, LedgerReason, Referral, ReferralStatus
from rewardhub.services import ledger

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 10


def _new_code() -> str:
    return "REF" + "".join(secrets.choice(CODE_ALPHABET) for _ in range(6))


def _ensure_referral_row(account_id: int, code: str) -> None:
    exists = db.session.execute(select(Referral.id).where(Referral.code == code)).scalar_one_or_none()
    if exists is None:
        # legacy accounts got a code before referral rows existed
        db.session.add(Referral(referrer_id=account_id, code=code, status=ReferralStatus.PENDING))
        db.session.flush()
        current_app.logger.info("referral row repaired for account=%s code=%s", account_id, code)


def _assign_code(account_id: int) -> str:
    account = ledger.get_account(account_id)
    if account.referral_code:
        _ensure_referral_row(account_id, account.referral_code)
        return account.referral_code

    code = _new_code()
    claimed = db.session.execute(
        update(Account)
        .where(Account.id == account_id, Account.referral_code.is_(None))
        .values(referral_code=code)
        .execution_options(synchronize_session=False)
    ).rowcount
    db.session.expire(account, ["referral_code"])

    if not claimed:
        # another request assigned one first
        _ensure_referral_row(account_id, account.referral_code)
        return account.referral_code

    db.session.add(Referral(referrer_id=account_id, code=code, status=ReferralStatus.PENDING))
    db.session.flush()
    current_app.logger.info("referral code generated account=%s code=%s", account_id, code)
    return code


def generate_code(account_id: int) -> str:
    """Return the account's referral code, creating it on first use.

    Code collisions and concurrent repairs hit the unique constraints; the
    whole unit is then rolled back and rerun.
    """
    for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
        try:
            return ledger.atomic(_assign_code, account_id)
        except IntegrityError:
            current_app.logger.debug("referral code clash for account=%s, attempt %s", account_id, attempt)
    raise RuntimeError("Could not generate a unique referral code")


def _link_signup(code: str, new_account_id: int) -> bool:
    referral = db.session.execute(select(Referral).where(Referral.code == code)).scalar_one_or_none()
    if referral is None or referral.referrer_id == new_account_id:
        return False

    linked = db.session.execute(
        update(Referral)
        .where(
            Referral.id == referral.id,
            Referral.referred_id.is_(None),
            Referral.status == ReferralStatus.PENDING,
        )
        .values(referred_id=new_account_id)
        .execution_options(synchronize_session=False)
    ).rowcount
    if not linked:
        return False

    db.session.execute(
        update(Account)
        .where(Account.id == new_account_id, Account.referred_by_id.is_(None))
        .values(referred_by_id=referral.referrer_id)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(referral)
    return True


def redeem_on_signup(code: str | None, new_account_id: int) -> bool:
    """Attach a new signup to a referral code.

    Unknown, consumed and self-referral codes are ignored so signup never
    reveals whether a code is valid.
    """
    code = (code or "").strip().upper()
    if not code:
        return False

    linked = ledger.atomic(_link_signup, code, new_account_id)
    if linked:
        current_app.logger.info("referral code=%s linked to account=%s", code, new_account_id)
    else:
        current_app.logger.debug("referral code=%s not applied for account=%s", code, new_account_id)
    return linked


def _complete(account_id: int, bonus: int) -> Referral | None:
    row = db.session.execute(
        update(Referral)
        .where(Referral.referred_id == account_id, Referral.status == ReferralStatus.PENDING)
        .values(status=ReferralStatus.COMPLETED, coins_earned=bonus, completed_at=datetime.utcnow())
        .returning(Referral.id, Referral.referrer_id)
        .execution_options(synchronize_session=False)
    ).first()
    if row is None:
        return None

    if row.referrer_id != account_id:
        ledger.post(
            row.referrer_id,
            bonus,
            LedgerReason.REFERRAL_BONUS,
            idempotency_key=f"referral:{row.id}",
            note=f"referral of account {account_id}",
        )
    return db.session.get(Referral, row.id)


def complete_on_activation(account_id: int) -> Referral | None:
    """Complete the pending referral of ``account_id`` and pay the referrer once."""
    bonus = current_app.config.get("REFERRAL_BONUS_COINS", 50)
    referral = ledger.atomic(_complete, account_id, bonus)
    if referral is not None:
        current_app.logger.info(
            "referral %s completed, referrer=%s credited %s", referral.id, referral.referrer_id, bonus
        )
    return referral


def referral_stats(account_id: int) -> dict:
    account = ledger.get_account(account_id)

    counts = dict(
        db.session.execute(
            select(Referral.status, func.count(Referral.id))
            .where(Referral.referrer_id == account_id, Referral.referred_id.is_not(None))
            .group_by(Referral.status)
        ).all()
    )
    completed = counts.get(ReferralStatus.COMPLETED, 0)
    pending = counts.get(ReferralStatus.PENDING, 0)

    coins_earned = db.session.execute(
        select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
            LedgerEntry.account_id == account_id,
            LedgerEntry.reason == LedgerReason.REFERRAL_BONUS,
        )
    ).scalar()

    referred = db.session.execute(
        select(Account.public_id, Account.name, Account.created_at)
        .where(Account.referred_by_id == account_id)
        .order_by(Account.created_at.desc())
    ).all()

    return {
        "referral_code": account.referral_code,
        "total_referrals": completed + pending,
        "completed_referrals": completed,
        "pending_referrals": pending,
        "total_coins_earned": int(coins_earned),
        "referrals": [
            {"public_id": public_id, "name": name, "joined_at": created_at.isoformat()}
            for public_id, name, created_at in referred
        ],
    }
