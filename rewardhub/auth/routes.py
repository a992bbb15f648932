from flask import current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user

from rewardhub.services import accounts, ledger
from rewardhub.services.rewards import record_login
from rewardhub.utils import validate_form
from . import auth_bp
from .forms import LoginForm, RegisterForm


@auth_bp.route("/register", methods=["POST"])
def register():
    form = validate_form(RegisterForm())

    account = accounts.register(
        name=form.name.data,
        email=form.email.data,
        phone=form.phone.data,
        password=form.password.data,
        referral_code=form.referral_code.data,
    )
    login_user(account)

    return jsonify({"message": "Registration successful", "account": account.to_dict()}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    form = validate_form(LoginForm())

    account = accounts.authenticate(form.email.data, form.password.data)
    if account is None:
        return jsonify({"message": "Invalid email or password", "error": "Unauthorized"}), 401
    if account.blocked:
        current_app.logger.warning("blocked account %s tried to log in", account.id)
        return jsonify({"message": "Account is blocked", "error": "Forbidden"}), 403

    login_user(account)
    # ✅ reward failure never blocks the login
    coins = record_login(account.id)

    return jsonify(
        {
            "message": "Login successful",
            "login_reward": coins,
            "account": ledger.get_account(account.id).to_dict(),
        }
    )


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Logged out"})


@auth_bp.route("/profile", methods=["GET"])
@login_required
def profile():
    return jsonify({"account": current_user.to_dict()})
