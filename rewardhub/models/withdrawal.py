# rewardhub/models/withdrawal.py
import enum
from datetime import datetime

from rewardhub.extensions import db
from rewardhub.models.ledger import enum_values


class WithdrawalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_final(self) -> bool:
        return self in {WithdrawalStatus.SUCCESS, WithdrawalStatus.FAILED}

    def can_transition_to(self, target: "WithdrawalStatus") -> bool:
        return target in WITHDRAWAL_TRANSITIONS.get(self, frozenset())


# PENDING -> FAILED is an admin rejection; funds are refunded either way
WITHDRAWAL_TRANSITIONS = {
    WithdrawalStatus.PENDING: frozenset({WithdrawalStatus.APPROVED, WithdrawalStatus.FAILED}),
    WithdrawalStatus.APPROVED: frozenset({WithdrawalStatus.SUCCESS, WithdrawalStatus.FAILED}),
}


class Withdrawal(db.Model):
    __tablename__ = "withdrawals"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    # coins, already debited from the ledger at request time
    amount = db.Column(db.Integer, nullable=False)

    status = db.Column(
        db.Enum(WithdrawalStatus, native_enum=False, values_callable=enum_values, length=10),
        nullable=False,
        default=WithdrawalStatus.PENDING,
        index=True,
    )

    # Bank details as they were when the request was made
    account_holder_name = db.Column(db.String(120), nullable=False)
    account_number = db.Column(db.String(20), nullable=False)
    ifsc = db.Column(db.String(11), nullable=False)
    bank_name = db.Column(db.String(120), nullable=False)
    upi_id = db.Column(db.String(120), nullable=True)

    payout_id = db.Column(db.String(80), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    needs_reconciliation = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    approved_at = db.Column(db.DateTime, nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)

    account = db.relationship(
        "Account",
        backref=db.backref("withdrawals", lazy="dynamic"),
        foreign_keys=[account_id],
    )

    def __repr__(self) -> str:
        return f"<Withdrawal id={self.id} account_id={self.account_id} amount={self.amount} status={self.status.value}>"

    @property
    def idempotency_key(self) -> str:
        return f"withdrawal_{self.id}"

    @property
    def is_pending(self) -> bool:
        return self.status == WithdrawalStatus.PENDING

    @property
    def is_final(self) -> bool:
        return self.status.is_final

    def bank_details(self) -> dict:
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
            "account_id": self.account_id,
            "amount": self.amount,
            "status": self.status.value,
            "bank_details": self.bank_details(),
            "payout_id": self.payout_id,
            "notes": self.notes,
            "needs_reconciliation": self.needs_reconciliation,
            "created_at": self.created_at.isoformat(),
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }
