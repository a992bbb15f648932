from flask import abort, current_app, jsonify, request

from rewardhub.services.razorpay import verify_webhook_signature
from rewardhub.services.withdrawals import apply_payout_event
from . import payments_bp


@payments_bp.route("/webhook/razorpay", methods=["POST"])
def razorpay_webhook():
    secret = current_app.config.get("RAZORPAY_WEBHOOK_SECRET") or ""
    signature = request.headers.get("X-Razorpay-Signature", "")
    raw_body = request.get_data(cache=True, as_text=False)

    if not verify_webhook_signature(raw_body, signature, secret):
        current_app.logger.warning("rejected Razorpay webhook with bad signature")
        abort(400, description="Invalid Razorpay signature")

    payload = request.get_json(silent=True) or {}
    event = (payload.get("event") or "").strip()

    # ---------------------------
    # PAYOUTS (withdrawals)
    # ---------------------------
    if event.startswith("payout."):
        payout = ((payload.get("payload") or {}).get("payout") or {}).get("entity") or {}
        if not payout.get("reference_id"):
            return jsonify({"status": "ignored", "reason": "missing_reference"}), 200

        outcome = apply_payout_event(event, payout)
        current_app.logger.info(
            "Razorpay webhook %s for %s -> %s", event, payout.get("reference_id"), outcome
        )
        if outcome == "settled":
            return jsonify({"status": "ok"}), 200
        return jsonify({"status": "ignored", "reason": outcome}), 200

    # payments are confirmed through the signed checkout callback (/payments/verify)
    return jsonify({"status": "ignored", "reason": "unhandled_event"}), 200
