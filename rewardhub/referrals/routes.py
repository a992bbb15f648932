from flask import jsonify
from flask_login import current_user, login_required

from rewardhub.services.referral import generate_code, referral_stats
from . import referral_bp


@referral_bp.route("/code", methods=["POST"])
@login_required
def code():
    return jsonify({"referral_code": generate_code(current_user.id)})


@referral_bp.route("/stats", methods=["GET"])
@login_required
def stats():
    return jsonify(referral_stats(current_user.id))
