# rewardhub/errors.py
from flask import jsonify


class RewardsError(Exception):
    status_code = 400
    message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self) -> dict:
        return {"message": self.message, "error": type(self).__name__}


class ValidationError(RewardsError):
    message = "Invalid input"


class InsufficientBalance(RewardsError):
    message = "Insufficient coins"

    def __init__(self, balance: int | None = None, required: int | None = None):
        if balance is None:
            super().__init__()
        else:
            super().__init__(f"Insufficient coins: have {balance}, need {required}")
        self.balance = balance
        self.required = required


class AccountNotFound(RewardsError):
    status_code = 404
    message = "Account not found"


class WithdrawalNotFound(RewardsError):
    status_code = 404
    message = "Withdrawal not found"


class ServiceNotFound(RewardsError):
    status_code = 404
    message = "Service not found or inactive"


class AlreadyProcessed(RewardsError):
    status_code = 409
    message = "Already processed"


class SignatureInvalid(RewardsError):
    message = "Invalid payment signature"


class GatewayError(RewardsError):
    status_code = 502
    message = "Payment gateway error"

    def __init__(
        self,
        message: str | None = None,
        response=None,
        timed_out: bool = False,
        outcome_unknown: bool | None = None,
    ):
        super().__init__(message)
        self.response = response
        self.timed_out = timed_out
        # the request may have reached the gateway; only a lookup can tell
        self.outcome_unknown = timed_out if outcome_unknown is None else outcome_unknown


class ConcurrencyConflict(RewardsError):
    """Lost-update signal from the store. Retried by ``ledger.atomic``."""

    status_code = 503
    message = "Concurrent update, retry"


def register_error_handlers(app):
    @app.errorhandler(RewardsError)
    def handle_rewards_error(err: RewardsError):
        return jsonify(err.to_dict()), err.status_code
