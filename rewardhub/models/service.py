from datetime import datetime

from rewardhub.extensions import db


class Service(db.Model):
    __tablename__ = "services"
    __table_args__ = (
        db.CheckConstraint("points_required >= 1", name="ck_services_points_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=False)
    points_required = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(10), nullable=False, default="active", index=True)
    category = db.Column(db.String(60))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "points_required": self.points_required,
            "status": self.status,
            "category": self.category,
        }
