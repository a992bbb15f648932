import enum
from datetime import datetime

from rewardhub.extensions import db
from rewardhub.models.ledger import enum_values


class TransactionKind(str, enum.Enum):
    PAYOUT = "payout"
    PAYMENT = "payment"


class TransactionStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Transaction(db.Model):
    """Immutable record of one settlement attempt against the gateway."""

    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(
        db.Enum(TransactionKind, native_enum=False, values_callable=enum_values, length=10),
        nullable=False,
    )
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    withdrawal_id = db.Column(db.Integer, db.ForeignKey("withdrawals.id"), nullable=True, index=True)
    payment_order_id = db.Column(db.Integer, db.ForeignKey("payment_orders.id"), nullable=True, index=True)

    amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="INR")
    status = db.Column(
        db.Enum(TransactionStatus, native_enum=False, values_callable=enum_values, length=10),
        nullable=False,
        index=True,
    )
    raw_response = db.Column(db.JSON, nullable=True)
    external_id = db.Column(db.String(80), nullable=True, index=True)
    error_message = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    withdrawal = db.relationship("Withdrawal", backref=db.backref("transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "account_id": self.account_id,
            "withdrawal_id": self.withdrawal_id,
            "payment_order_id": self.payment_order_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
            "external_id": self.external_id,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat(),
        }
