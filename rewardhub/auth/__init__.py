from flask import Blueprint, jsonify

from rewardhub.extensions import db, login_manager
from rewardhub.models import Account

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

from . import routes  # noqa: E402,F401  (ensures routes are imported)


@login_manager.user_loader
def load_user(user_id):
    account = db.session.get(Account, int(user_id))
    # blocking ends existing sessions too
    if account is None or account.blocked:
        return None
    return account


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"message": "Authentication required", "error": "Unauthorized"}), 401
