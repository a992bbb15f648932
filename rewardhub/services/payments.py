# rewardhub/services/payments.py
import uuid
from datetime import datetime

from flask import current_app
from sqlalchemy import select, update

from rewardhub.errors import AlreadyProcessed, SignatureInvalid, ValidationError
from rewardhub.extensions import db
from rewardhub.models import (
    Account,
    LedgerReason,
    PaymentOrder,
    Transaction,
    TransactionKind,
    TransactionStatus,
)
from rewardhub.services import ledger
from rewardhub.services.razorpay import get_gateway, verify_payment_signature
from rewardhub.services.referral import complete_on_activation


def create_order(account_id: int, amount: int, gateway=None) -> PaymentOrder:
    """Open a gateway order for a coin purchase of ``amount`` rupees."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount must be a positive whole number")
    ledger.get_account(account_id)

    gateway = gateway or get_gateway()
    minor_units = current_app.config.get("COIN_MINOR_UNITS", 100)
    receipt = f"rcpt_{account_id}_{uuid.uuid4().hex[:12]}"
    result = gateway.create_order(amount * minor_units, receipt)

    order = PaymentOrder(
        account_id=account_id,
        order_id=result.order_id,
        amount=amount,
        currency=current_app.config.get("CURRENCY", "INR"),
    )
    db.session.add(order)
    db.session.commit()

    current_app.logger.info("payment order %s created account=%s amount=%s", order.order_id, account_id, amount)
    return order


def coins_for_payment(amount: int) -> int:
    return amount // current_app.config.get("ACTIVATION_COIN_DIVISOR", 10)


def _activate(
    order_id: str, payment_id: str, claimed_amount: int, signature: str, account_id: int | None
) -> tuple[PaymentOrder, int]:
    order = db.session.execute(select(PaymentOrder).where(PaymentOrder.order_id == order_id)).scalar_one_or_none()
    if order is None:
        raise ValidationError("Unknown payment order")
    if account_id is not None and order.account_id != account_id:
        raise ValidationError("Payment order belongs to another account")
    if order.amount != claimed_amount:
        raise ValidationError("Payment amount does not match the order")

    paid = db.session.execute(
        update(PaymentOrder)
        .where(PaymentOrder.id == order.id, PaymentOrder.status == "created")
        .values(status="paid", payment_id=payment_id, paid_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    if not paid:
        raise AlreadyProcessed("Payment already verified")

    db.session.execute(
        update(Account)
        .where(Account.id == order.account_id)
        .values(service_activated=True, payment_status="completed")
        .execution_options(synchronize_session=False)
    )

    coins = coins_for_payment(claimed_amount)
    if coins > 0:
        ledger.post(
            order.account_id,
            coins,
            LedgerReason.ACTIVATION,
            idempotency_key=f"activation:{payment_id}",
            note=f"payment {payment_id}",
        )

    db.session.add(
        Transaction(
            kind=TransactionKind.PAYMENT,
            account_id=order.account_id,
            payment_order_id=order.id,
            amount=claimed_amount,
            currency=order.currency,
            status=TransactionStatus.SUCCESS,
            raw_response={
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            },
            external_id=payment_id,
        )
    )
    return order, coins


def verify_and_activate(
    order_id: str, payment_id: str, signature: str, claimed_amount: int, account_id: int | None = None
) -> dict:
    """Check the gateway's signed confirmation, then credit coins and activate service."""
    secret = current_app.config.get("RAZORPAY_KEY_SECRET") or ""
    if not verify_payment_signature(order_id, payment_id, signature, secret):
        current_app.logger.warning("payment signature mismatch order=%s payment=%s", order_id, payment_id)
        raise SignatureInvalid()

    if isinstance(claimed_amount, bool) or not isinstance(claimed_amount, int) or claimed_amount <= 0:
        raise ValidationError("Amount must be a positive whole number")

    order, coins = ledger.atomic(_activate, order_id, payment_id, claimed_amount, signature, account_id)
    account_id = order.account_id
    current_app.logger.info(
        "payment %s verified account=%s amount=%s coins=%s", payment_id, account_id, claimed_amount, coins
    )

    # 🎁 referral bonus is a side benefit; activation stands regardless
    try:
        complete_on_activation(account_id)
    except Exception:
        current_app.logger.exception("referral completion failed for account=%s", account_id)

    return {"order": order.to_dict(), "coins_credited": coins, "account_id": account_id}
