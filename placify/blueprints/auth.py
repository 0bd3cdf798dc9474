"""Auth blueprint — /auth/*

JSON login/logout for the admin dashboard. Sessions are Flask-Login
cookies. Every attempt is written to the audit trail: LOGIN, LOGOUT and
LOGIN_FAILED (actor is null when the email matches no account). After
LOGIN_MAX_ATTEMPTS bad passwords in a row the account is locked for
LOGIN_LOCK_MINUTES and login answers 423.

Route Map:
  POST /auth/login   — { email, password, remember? } -> admin profile
  POST /auth/logout  — end the session
  GET  /auth/me      — current admin profile
  PUT  /auth/profile — { name?, email? } -> updated profile
  PUT  /auth/password — { current_password, new_password, confirm_password }
  GET  /auth/setup   — does the first admin still need creating?
  POST /auth/setup   — create the first admin (ADMIN_SETUP_KEY)
"""

import hmac
import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from placify.decorators import admin_api_required
from placify.extensions import db, get_services, limiter
from placify.models.user import User
from placify.services.audit_service import ActionContext
from placify.services.submission_service import EMAIL_RE

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

logger = logging.getLogger(__name__)


def _login_failed(user_id, email, reason, status=401):
    get_services().audit.append(
        user_id,
        "LOGIN_FAILED",
        "Admin",
        user_id,
        details={"email": email, "reason": reason},
        context=ActionContext.from_request(request),
    )
    logger.warning(f"Failed admin login for {email}: {reason}")
    if reason == "locked":
        return jsonify(
            ok=False,
            error="account_locked",
            message="Too many failed login attempts. Try again later.",
        ), 423
    return jsonify(ok=False, error="unauthorized", message="Invalid email or password."), status


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    """Email + password login for admins."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = request.form.to_dict()
    email = str(data.get("email") or "").lower().strip()
    password = str(data.get("password") or "")

    if not email or not password:
        return jsonify(
            ok=False, error="validation_error", message="Email and password are required."
        ), 400

    user = User.query.filter_by(email=email).first()

    if user is None:
        return _login_failed(None, email, "unknown_email")
    if user.is_locked():
        return _login_failed(user.id, email, "locked")
    if not check_password_hash(user.password_hash, password):
        user.record_failed_login(
            current_app.config["LOGIN_MAX_ATTEMPTS"], current_app.config["LOGIN_LOCK_MINUTES"]
        )
        db.session.commit()
        return _login_failed(user.id, email, "bad_password")
    if not user.is_active:
        return _login_failed(user.id, email, "inactive", status=403)
    if not user.is_admin:
        return _login_failed(user.id, email, "not_admin", status=403)

    login_user(user, remember=bool(data.get("remember")))
    user.record_login()
    db.session.commit()

    get_services().audit.append(
        user.id,
        "LOGIN",
        "Admin",
        user.id,
        context=ActionContext.from_request(request),
    )
    logger.info(f"Admin logged in: {email}")
    return jsonify(ok=True, admin=user.public_dict())


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
@admin_api_required
def logout():
    user_id = current_user.id
    logout_user()
    get_services().audit.append(
        user_id,
        "LOGOUT",
        "Admin",
        user_id,
        context=ActionContext.from_request(request),
    )
    return jsonify(ok=True)


@auth_bp.route("/me")
@admin_api_required
def me():
    return jsonify(ok=True, admin=current_user.public_dict())


# ──────────────────────────────────────────────
# PUT /auth/profile, PUT /auth/password
# ──────────────────────────────────────────────

def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@auth_bp.route("/profile", methods=["PUT"])
@admin_api_required
def update_profile():
    data = _json_body()
    admin = get_services().accounts.update_profile(
        current_user._get_current_object(),
        name=data.get("name"),
        email=data.get("email"),
        context=ActionContext.from_request(request),
    )
    return jsonify(ok=True, message="Profile updated successfully.", admin=admin.public_dict())


@auth_bp.route("/password", methods=["PUT"])
@admin_api_required
@limiter.limit("10 per hour")
def change_password():
    data = _json_body()
    get_services().accounts.change_password(
        current_user._get_current_object(),
        data.get("current_password"),
        data.get("new_password"),
        data.get("confirm_password"),
        context=ActionContext.from_request(request),
    )
    return jsonify(ok=True, message="Password changed successfully.")


# ──────────────────────────────────────────────
# GET/POST /auth/setup: first admin account
# ──────────────────────────────────────────────

@auth_bp.route("/setup", methods=["GET"])
def setup_status():
    admin_count = User.query.filter_by(is_admin=True).count()
    return jsonify(ok=True, needs_setup=admin_count == 0, admin_count=admin_count)


@auth_bp.route("/setup", methods=["POST"])
@limiter.limit("5 per hour")
def setup():
    """Create the first admin. Closed once any admin exists.

    When ADMIN_SETUP_KEY is configured the request must carry it in the
    X-Setup-Key header.
    """
    setup_key = current_app.config.get("ADMIN_SETUP_KEY")
    if setup_key and not hmac.compare_digest(
        request.headers.get("X-Setup-Key", ""), setup_key
    ):
        return jsonify(ok=False, error="forbidden", message="Invalid setup key."), 403

    if User.query.filter_by(is_admin=True).count() > 0:
        return jsonify(
            ok=False, error="setup_complete", message="Initial setup has already been completed."
        ), 400

    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    errors = []
    if not name or not email or not password:
        errors.append("Name, email, and password are required.")
    elif not EMAIL_RE.match(email):
        errors.append("Please provide a valid email address.")
    elif len(password) < 8:
        errors.append("Password must be at least 8 characters.")
    if errors:
        return jsonify(ok=False, error="validation_error", message=" ".join(errors)), 400

    admin = User(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=name[:255],
        is_admin=True,
    )
    db.session.add(admin)
    db.session.commit()

    get_services().audit.append(
        admin.id,
        "INITIAL_SETUP",
        "Admin",
        admin.id,
        details={"email": email},
        context=ActionContext.from_request(request),
    )
    logger.info(f"Initial admin created: {email}")
    login_user(admin)
    return jsonify(ok=True, admin=admin.public_dict()), 201
