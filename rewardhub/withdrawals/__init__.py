from flask import Blueprint

withdrawal_bp = Blueprint("withdrawals", __name__, url_prefix="/withdrawals")

from . import routes  # noqa: E402,F401
