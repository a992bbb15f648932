from datetime import datetime

from rewardhub.extensions import db


class PaymentOrder(db.Model):
    __tablename__ = "payment_orders"

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    # gateway order id, e.g. "order_ABC123"
    order_id = db.Column(db.String(80), unique=True, nullable=False)
    # major units (rupees)
    amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="INR")

    status = db.Column(db.String(20), nullable=False, default="created", index=True)
    payment_id = db.Column(db.String(80), unique=True, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)

    account = db.relationship("Account", foreign_keys=[account_id])

    @property
    def is_paid(self) -> bool:
        return self.status == "paid"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "payment_id": self.payment_id,
        }
