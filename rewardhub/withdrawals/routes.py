# rewardhub/withdrawals/routes.py
from flask import jsonify
from flask_login import current_user, login_required

from rewardhub.services import withdrawals as withdrawal_service
from rewardhub.utils import int_arg, validate_form
from . import withdrawal_bp
from .forms import WithdrawalForm


@withdrawal_bp.route("", methods=["POST"])
@login_required
def request_withdrawal():
    form = validate_form(WithdrawalForm())
    withdrawal = withdrawal_service.request_withdrawal(current_user.id, form.amount.data)
    return jsonify(
        {
            "message": "Withdrawal request submitted. Awaiting admin approval.",
            "withdrawal": withdrawal.to_dict(),
        }
    ), 201


@withdrawal_bp.route("", methods=["GET"])
@login_required
def list_withdrawals():
    items = withdrawal_service.list_for_account(current_user.id, limit=int_arg("limit", 50))
    return jsonify({"withdrawals": [w.to_dict() for w in items]})
