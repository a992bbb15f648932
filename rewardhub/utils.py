from functools import wraps

from flask import abort, request
from flask_login import current_user

from rewardhub.errors import ValidationError


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401)
        if not getattr(current_user, "is_admin", False):
            abort(403)
        return fn(*args, **kwargs)
    return wrapper


def validate_form(form):
    """Raise ValidationError with the form's messages unless it validates."""
    if form.validate_on_submit():
        return form

    messages = []
    for field, errors in form.errors.items():
        for error in errors:
            messages.append(f"{field}: {error}")
    raise ValidationError("; ".join(messages) or "Invalid input")


def int_arg(name: str, default: int, maximum: int = 200) -> int:
    value = request.args.get(name, type=int)
    if value is None or value <= 0:
        return default
    return min(value, maximum)
