# rewardhub/wallet/routes.py
from flask import jsonify, request
from flask_login import current_user, login_required

from rewardhub.errors import ValidationError
from rewardhub.models import LedgerReason
from rewardhub.services import accounts, ledger, redemption, transfers
from rewardhub.utils import int_arg, validate_form
from . import wallet_bp
from .forms import BankDetailsForm, TransferForm


@wallet_bp.route("/dashboard", methods=["GET"])
@login_required
def dashboard():
    return jsonify(accounts.dashboard(current_user.id))


@wallet_bp.route("/history", methods=["GET"])
@login_required
def history():
    reason = request.args.get("reason") or None
    if reason is not None and reason not in {r.value for r in LedgerReason}:
        raise ValidationError(f"Unknown reason {reason!r}")

    entries = ledger.history(current_user.id, limit=int_arg("limit", 50), reason=reason)
    return jsonify({"entries": [e.to_dict() for e in entries]})


@wallet_bp.route("/stats", methods=["GET"])
@login_required
def stats():
    return jsonify(ledger.reward_stats(current_user.id))


@wallet_bp.route("/bank-details", methods=["PUT"])
@login_required
def bank_details():
    form = validate_form(BankDetailsForm())
    account = accounts.update_bank_details(
        current_user.id,
        account_holder_name=form.account_holder_name.data,
        account_number=form.account_number.data,
        ifsc=form.ifsc.data,
        bank_name=form.bank_name.data,
        upi_id=form.upi_id.data,
    )
    return jsonify({"message": "Bank details updated", "bank_details": account.bank_snapshot()})


def _move_coins(move):
    form = validate_form(TransferForm())
    recipient = transfers.find_account_by_public_id(form.recipient.data)
    debit, credit = move(current_user.id, recipient.id, form.amount.data, note=form.note.data or None)
    return jsonify(
        {
            "message": "Transfer successful",
            "correlation_id": debit.correlation_id,
            "amount": form.amount.data,
            "recipient": recipient.public_id,
            "balance": debit.balance_after,
        }
    ), 201


@wallet_bp.route("/transfer", methods=["POST"])
@login_required
def transfer():
    return _move_coins(transfers.transfer)


@wallet_bp.route("/pay", methods=["POST"])
@login_required
def pay():
    return _move_coins(transfers.pay)


@wallet_bp.route("/leaderboard", methods=["GET"])
@login_required
def leaderboard():
    return jsonify({"leaderboard": accounts.leaderboard(limit=int_arg("limit", 50, maximum=100))})


@wallet_bp.route("/services", methods=["GET"])
@login_required
def services():
    return jsonify({"services": [s.to_dict() for s in redemption.list_services()]})


@wallet_bp.route("/services/<int:service_id>/redeem", methods=["POST"])
@login_required
def redeem(service_id: int):
    entry = redemption.redeem_service(current_user.id, service_id)
    return jsonify({"message": "Service redeemed", "entry": entry.to_dict(), "balance": entry.balance_after}), 201
