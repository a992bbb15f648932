from flask import current_app, jsonify
from flask_login import current_user, login_required

from rewardhub.services import payments
from rewardhub.utils import validate_form
from . import payments_bp
from .forms import OrderForm, VerifyPaymentForm


@payments_bp.route("/orders", methods=["POST"])
@login_required
def create_order():
    form = validate_form(OrderForm())
    order = payments.create_order(current_user.id, form.amount.data)
    return jsonify(
        {
            "order": order.to_dict(),
            "key_id": current_app.config.get("RAZORPAY_KEY_ID"),
            "amount_minor": order.amount * current_app.config.get("COIN_MINOR_UNITS", 100),
        }
    ), 201


@payments_bp.route("/verify", methods=["POST"])
@login_required
def verify():
    form = validate_form(VerifyPaymentForm())
    result = payments.verify_and_activate(
        form.razorpay_order_id.data,
        form.razorpay_payment_id.data,
        form.razorpay_signature.data,
        form.amount.data,
        account_id=current_user.id,
    )
    return jsonify(
        {
            "message": "Payment verified. Service activated.",
            "coins_credited": result["coins_credited"],
            "order": result["order"],
        }
    )
