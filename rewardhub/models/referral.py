import enum
from datetime import datetime

from rewardhub.extensions import db
from rewardhub.models.ledger import enum_values


class ReferralStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"

    def can_transition_to(self, target: "ReferralStatus") -> bool:
        return (self, target) == (ReferralStatus.PENDING, ReferralStatus.COMPLETED)


class Referral(db.Model):
    __tablename__ = "referrals"

    id = db.Column(db.Integer, primary_key=True)

    referrer_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    # One signup per referral row; NULL until the code is used
    referred_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, unique=True)

    code = db.Column(db.String(12), unique=True, nullable=False)
    status = db.Column(
        db.Enum(ReferralStatus, native_enum=False, values_callable=enum_values, length=10),
        nullable=False,
        default=ReferralStatus.PENDING,
        index=True,
    )
    coins_earned = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    referrer = db.relationship("Account", foreign_keys=[referrer_id], backref="referrals_given")
    referred = db.relationship("Account", foreign_keys=[referred_id])

    def __repr__(self) -> str:
        return f"<Referral id={self.id} code={self.code} status={self.status.value}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "referrer_id": self.referrer_id,
            "referred_id": self.referred_id,
            "status": self.status.value,
            "coins_earned": self.coins_earned,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
