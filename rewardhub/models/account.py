import secrets
import string
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from rewardhub.extensions import db
from rewardhub.models.ledger import Tier

PUBLIC_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_public_id() -> str:
    return "USR" + "".join(secrets.choice(PUBLIC_ID_ALPHABET) for _ in range(9))


class Account(UserMixin, db.Model):
    __tablename__ = "accounts"
    __table_args__ = (
        db.CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    id = db.Column(db.Integer, primary_key=True)
    public_id = db.Column(db.String(16), unique=True, nullable=False, default=generate_public_id)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    phone = db.Column(db.String(20), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    blocked = db.Column(db.Boolean, nullable=False, default=False)

    # Balance and tier are only ever written together by services.ledger
    balance = db.Column(db.Integer, nullable=False, default=0)
    tier = db.Column(db.String(10), nullable=False, default=Tier.SILVER.value)

    login_count = db.Column(db.Integer, nullable=False, default=0)
    login_streak = db.Column(db.Integer, nullable=False, default=0)
    last_login_at = db.Column(db.DateTime)

    referral_code = db.Column(db.String(12), unique=True)
    referred_by_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    # Payout details
    account_holder_name = db.Column(db.String(120))
    account_number = db.Column(db.String(20))
    ifsc = db.Column(db.String(11))
    bank_name = db.Column(db.String(120))
    upi_id = db.Column(db.String(120))

    service_activated = db.Column(db.Boolean, nullable=False, default=False)
    payment_status = db.Column(db.String(20), nullable=False, default="pending")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    referred_by = db.relationship("Account", remote_side=[id], foreign_keys=[referred_by_id])

    def __repr__(self) -> str:
        return f"<Account id={self.id} public_id={self.public_id} balance={self.balance} tier={self.tier}>"

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_active(self) -> bool:
        return not self.blocked

    @property
    def has_bank_details(self) -> bool:
        return bool(self.account_number and self.ifsc and self.account_holder_name and self.bank_name)

    def bank_snapshot(self) -> dict:
        return {
            "account_holder_name": self.account_holder_name,
            "account_number": self.account_number,
            "ifsc": self.ifsc,
            "bank_name": self.bank_name,
            "upi_id": self.upi_id,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "public_id": self.public_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "balance": self.balance,
            "tier": self.tier,
            "login_count": self.login_count,
            "login_streak": self.login_streak,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "referral_code": self.referral_code,
            "service_activated": self.service_activated,
            "payment_status": self.payment_status,
            "is_admin": self.is_admin,
            "blocked": self.blocked,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
