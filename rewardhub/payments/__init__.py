from flask import Blueprint

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")

# ✅ IMPORTANT: import routes and webhooks so decorators register
from . import routes  # noqa: E402,F401
from . import webhooks  # noqa: E402,F401
