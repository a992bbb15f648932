# rewardhub/admin/routes.py
from datetime import date, datetime

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from rewardhub.errors import ValidationError
from rewardhub.models import TransactionStatus, WithdrawalStatus
from rewardhub.services import accounts as account_service
from rewardhub.services import ledger, reports
from rewardhub.services import withdrawals as withdrawal_service
from rewardhub.utils import admin_required, int_arg
from . import admin_bp


def _status_arg(enum_cls):
    status = (request.args.get("status") or "").strip()
    if not status:
        return None
    try:
        return enum_cls(status.upper())
    except ValueError:
        raise ValidationError(f"Unknown status {status!r}") from None


@admin_bp.route("/withdrawals", methods=["GET"])
@login_required
@admin_required
def withdrawals():
    items = withdrawal_service.list_all(status=_status_arg(WithdrawalStatus), limit=int_arg("limit", 200, 500))
    return jsonify({"withdrawals": [w.to_dict() for w in items]})


@admin_bp.route("/withdrawals/<int:withdrawal_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve_withdrawal(withdrawal_id: int):
    current_app.logger.info("admin %s approving withdrawal %s", current_user.id, withdrawal_id)
    withdrawal = withdrawal_service.approve_and_settle(withdrawal_id)
    return jsonify({"withdrawal": withdrawal.to_dict()})


@admin_bp.route("/withdrawals/<int:withdrawal_id>/reject", methods=["POST"])
@login_required
@admin_required
def reject_withdrawal(withdrawal_id: int):
    payload = request.get_json(silent=True) or {}
    note = (payload.get("note") or "").strip() or None

    current_app.logger.info("admin %s rejecting withdrawal %s", current_user.id, withdrawal_id)
    withdrawal = withdrawal_service.reject_withdrawal(withdrawal_id, note=note)
    return jsonify({"withdrawal": withdrawal.to_dict()})


@admin_bp.route("/withdrawals/<int:withdrawal_id>/reconcile", methods=["POST"])
@login_required
@admin_required
def reconcile_withdrawal(withdrawal_id: int):
    withdrawal = withdrawal_service.reconcile_withdrawal(withdrawal_id)
    return jsonify({"withdrawal": withdrawal.to_dict()})


@admin_bp.route("/transactions", methods=["GET"])
@login_required
@admin_required
def transactions():
    items = withdrawal_service.list_transactions(
        status=_status_arg(TransactionStatus), limit=int_arg("limit", 200, 500)
    )
    return jsonify({"transactions": [t.to_dict() for t in items]})


@admin_bp.route("/ledger/audit", methods=["GET"])
@login_required
@admin_required
def ledger_audit():
    drifted = ledger.audit()
    return jsonify({"ok": not drifted, "drifted": drifted})


@admin_bp.route("/users", methods=["GET"])
@login_required
@admin_required
def users():
    blocked = request.args.get("blocked")
    if blocked is not None:
        blocked = blocked.strip().lower() in ("1", "true", "yes")
    items = account_service.list_accounts(blocked=blocked, limit=int_arg("limit", 200, 500))
    return jsonify({"users": [a.to_dict() for a in items]})


@admin_bp.route("/users/<int:account_id>", methods=["PUT"])
@login_required
@admin_required
def update_user(account_id: int):
    payload = request.get_json(silent=True) or {}
    blocked = payload.get("blocked")
    if not isinstance(blocked, bool):
        raise ValidationError("'blocked' must be true or false")

    account = account_service.set_blocked(account_id, blocked, acting_admin_id=current_user.id)
    return jsonify({"user": account.to_dict()})


@admin_bp.route("/analytics", methods=["GET"])
@login_required
@admin_required
def analytics():
    return jsonify(reports.analytics())


@admin_bp.route("/reports/daily", methods=["GET"])
@login_required
@admin_required
def daily_report():
    raw = (request.args.get("date") or "").strip()
    try:
        day = date.fromisoformat(raw) if raw else datetime.utcnow().date()
    except ValueError:
        raise ValidationError(f"Invalid date {raw!r}, expected YYYY-MM-DD") from None
    return jsonify(reports.daily_report(day))
