"""
Custom route decorators for access control.

- admin_api_required: JSON API guard. 401 when not logged in, 403 when the
  logged-in user is not an admin. Never redirects to a login page.
"""

from functools import wraps

from flask import jsonify
from flask_login import current_user


def admin_api_required(f):
    """Require login + is_admin flag, answering with JSON errors."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify(ok=False, error="unauthorized", message="Login required."), 401
        if not current_user.is_admin:
            return jsonify(ok=False, error="forbidden", message="Admin access required."), 403
        return f(*args, **kwargs)

    return decorated
