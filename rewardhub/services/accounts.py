# rewardhub/services/accounts.py
from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from rewardhub.errors import ValidationError
from rewardhub.extensions import db
from rewardhub.models import Account, Withdrawal, WithdrawalStatus
from rewardhub.services import ledger
from rewardhub.services.notifications import notify
from rewardhub.services.referral import redeem_on_signup

BANK_FIELDS = ("account_holder_name", "account_number", "ifsc", "bank_name", "upi_id")


def _normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def register(
    name: str,
    email: str,
    phone: str,
    password: str,
    referral_code: str | None = None,
) -> Account:
    email = _normalize_email(email)
    if not (name and email and phone and password):
        raise ValidationError("All fields are required")

    # Prevent duplicate email
    if db.session.execute(select(Account.id).where(Account.email == email)).scalar_one_or_none():
        raise ValidationError("User already exists")

    account = Account(name=name.strip(), email=email, phone=phone.strip())
    account.set_password(password)
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("User already exists")

    current_app.logger.info("account %s registered (%s)", account.id, account.public_id)

    if referral_code:
        try:
            redeem_on_signup(referral_code, account.id)
        except Exception:
            current_app.logger.exception("referral redemption failed for account=%s", account.id)

    notify(account, "welcome")
    return account


def authenticate(email: str, password: str) -> Account | None:
    account = db.session.execute(
        select(Account).where(Account.email == _normalize_email(email))
    ).scalar_one_or_none()
    if account is None or not account.check_password(password or ""):
        return None
    return account


def update_bank_details(account_id: int, **details) -> Account:
    account = ledger.get_account(account_id)
    for field in BANK_FIELDS:
        value = details.get(field)
        setattr(account, field, value.strip() if isinstance(value, str) and value.strip() else None)
    if account.ifsc:
        account.ifsc = account.ifsc.upper()
    db.session.commit()
    current_app.logger.info("bank details updated for account=%s", account_id)
    return account


def dashboard(account_id: int) -> dict:
    account = ledger.get_account(account_id)
    pending_withdrawals = db.session.execute(
        select(func.count(Withdrawal.id)).where(
            Withdrawal.account_id == account_id,
            Withdrawal.status.in_([WithdrawalStatus.PENDING, WithdrawalStatus.APPROVED]),
        )
    ).scalar()
    stats = ledger.reward_stats(account_id)

    return {
        "account": account.to_dict(),
        "total_earned": stats["total_coins_earned"],
        "recent_rewards": [e.to_dict() for e in ledger.history(account_id, limit=10)],
        "pending_withdrawals": pending_withdrawals,
    }


def leaderboard(limit: int = 50) -> list[dict]:
    rows = db.session.execute(
        select(Account.public_id, Account.name, Account.balance, Account.tier, Account.login_count)
        .where(Account.blocked.is_(False))
        .order_by(Account.balance.desc(), Account.login_count.desc())
        .limit(limit)
    ).all()
    return [
        {
            "public_id": public_id,
            "name": name,
            "balance": balance,
            "tier": tier,
            "login_count": login_count,
        }
        for public_id, name, balance, tier, login_count in rows
    ]


# -------------------
# Admin
# -------------------
def list_accounts(blocked: bool | None = None, limit: int = 200) -> list[Account]:
    query = select(Account).order_by(Account.created_at.desc(), Account.id.desc()).limit(limit)
    if blocked is not None:
        query = query.where(Account.blocked.is_(blocked))
    return list(db.session.execute(query).scalars())


def set_blocked(account_id: int, blocked: bool, acting_admin_id: int | None = None) -> Account:
    """Block or unblock an account. Blocked accounts cannot log in and drop off the leaderboard."""
    account = ledger.get_account(account_id)
    if blocked and account.id == acting_admin_id:
        raise ValidationError("You cannot block your own account")
    if blocked and account.is_admin:
        raise ValidationError("Admin accounts cannot be blocked")

    account.blocked = bool(blocked)
    db.session.commit()
    current_app.logger.warning(
        "account %s %s by admin %s", account_id, "blocked" if blocked else "unblocked", acting_admin_id
    )
    return account
