# rewardhub/services/redemption.py
from flask import current_app
from sqlalchemy import func, select

from rewardhub.errors import ServiceNotFound
from rewardhub.extensions import db
from rewardhub.models import LedgerEntry, LedgerReason, Service
from rewardhub.services import ledger

DEFAULT_SERVICES = (
    {
        "name": "Mobile Recharge",
        "description": "Prepaid mobile recharge worth 100 rupees.",
        "points_required": 100,
        "category": "recharge",
    },
    {
        "name": "Shopping Voucher",
        "description": "Gift voucher redeemable at partner stores.",
        "points_required": 500,
        "category": "voucher",
    },
    {
        "name": "Premium Membership",
        "description": "Three months of premium membership.",
        "points_required": 1500,
        "category": "membership",
    },
)


def list_services() -> list[Service]:
    return list(
        db.session.execute(
            select(Service).where(Service.status == "active").order_by(Service.points_required)
        ).scalars()
    )


def redeem_service(account_id: int, service_id: int) -> LedgerEntry:
    service = db.session.get(Service, service_id)
    if service is None or not service.is_active:
        raise ServiceNotFound()

    entry = ledger.apply_delta(
        account_id,
        -service.points_required,
        LedgerReason.REDEMPTION,
        note=f"service {service.id}: {service.name}"[:255],
    )
    current_app.logger.info("account=%s redeemed service=%s for %s", account_id, service.id, service.points_required)
    return entry


def seed_services() -> int:
    if db.session.execute(select(func.count(Service.id))).scalar():
        return 0
    for data in DEFAULT_SERVICES:
        db.session.add(Service(**data))
    db.session.commit()
    return len(DEFAULT_SERVICES)
