import enum
from datetime import datetime

from rewardhub.extensions import db


def enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Tier(str, enum.Enum):
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"


# (minimum balance, tier), highest first
TIER_THRESHOLDS = (
    (5000, Tier.PLATINUM),
    (1000, Tier.GOLD),
)


def tier_for(balance: int) -> Tier:
    for minimum, tier in TIER_THRESHOLDS:
        if balance >= minimum:
            return tier
    return Tier.SILVER


class LedgerReason(str, enum.Enum):
    LOGIN = "login"
    REFERRAL_BONUS = "referral_bonus"
    REDEMPTION = "redemption"
    TRANSFER = "transfer"
    PAYMENT = "payment"
    ACTIVATION = "activation"
    REFUND = "refund"
    CARRY_FORWARD = "carry_forward"


class LedgerEntry(db.Model):
    """One immutable signed balance adjustment."""

    __tablename__ = "ledger_entries"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    reason = db.Column(
        db.Enum(LedgerReason, native_enum=False, values_callable=enum_values, length=20),
        nullable=False,
        index=True,
    )
    tier_at_time = db.Column(db.String(10), nullable=False)
    balance_after = db.Column(db.Integer, nullable=False)

    # pairs the two sides of a transfer
    correlation_id = db.Column(db.String(36), nullable=True, index=True)
    idempotency_key = db.Column(db.String(120), nullable=True, unique=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    account = db.relationship(
        "Account",
        backref=db.backref("ledger_entries", lazy="dynamic"),
        foreign_keys=[account_id],
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry id={self.id} account_id={self.account_id} amount={self.amount} reason={self.reason.value}>"

    @property
    def is_credit(self) -> bool:
        return self.amount > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "amount": self.amount,
            "reason": self.reason.value,
            "tier_at_time": self.tier_at_time,
            "balance_after": self.balance_after,
            "correlation_id": self.correlation_id,
            "note": self.note,
            "created_at": self.created_at.isoformat(),
        }
