# rewardhub/services/notifications.py
import logging

from flask import current_app
from markupsafe import escape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

log = logging.getLogger(__name__)


def _welcome(account, context):
    return (
        "Welcome to RewardHub!",
        f"""
        <p>Hello {escape(account.name)},</p>
        <p>Your account is ready. Your member ID is <strong>{escape(account.public_id)}</strong>.</p>
        <p>Log in every day to collect coins: <a href="{escape(context.get("dashboard_url", ""))}">open your dashboard</a>.</p>
        """,
    )


def _withdrawal_success(account, context):
    withdrawal = context["withdrawal"]
    return (
        "Withdrawal Successful",
        f"""
        <p>Hello {escape(account.name)},</p>
        <p>Your withdrawal of <strong>{withdrawal.amount}</strong> coins has been paid out.</p>
        <p>Payout reference: {escape(withdrawal.payout_id or "")}</p>
        """,
    )


def _withdrawal_failed(account, context):
    withdrawal = context["withdrawal"]
    return (
        "Withdrawal Failed",
        f"""
        <p>Hello {escape(account.name)},</p>
        <p>Your withdrawal of <strong>{withdrawal.amount}</strong> coins could not be processed.</p>
        <p>Reason: {escape(context.get("reason") or "unknown")}</p>
        <p>The coins have been returned to your balance.</p>
        """,
    )


TEMPLATES = {
    "welcome": _welcome,
    "withdrawal_success": _withdrawal_success,
    "withdrawal_failed": _withdrawal_failed,
}


def notify(account, template: str, context: dict | None = None) -> bool:
    """Send a templated email. Never raises; returns whether SendGrid accepted it."""
    try:
        context = dict(context or {})
        context.setdefault("dashboard_url", current_app.config.get("FRONTEND_URL", "").rstrip("/") + "/dashboard")
        subject, html = TEMPLATES[template](account, context)

        api_key = current_app.config.get("SENDGRID_API_KEY")
        sender = current_app.config.get("MAIL_DEFAULT_SENDER")
        if not api_key or not sender:
            current_app.logger.info("mail disabled, skipping %s for account=%s", template, account.id)
            return False

        message = Mail(
            from_email=sender,
            to_emails=account.email,
            subject=subject,
            html_content=html,
        )
        resp = SendGridAPIClient(api_key=api_key).send(message)

        # SendGrid typically returns 202 on success
        if resp.status_code not in (200, 202):
            log.error("SendGrid failed. Status=%s Body=%s", resp.status_code, resp.body)
            return False
        return True

    except Exception as e:
        body = getattr(e, "body", None)
        status = getattr(e, "status_code", None)
        log.exception("notification %s failed: status=%s body=%s error=%s", template, status, body, e)
        return False
