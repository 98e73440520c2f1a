"""
Authentication routes.

Provides:
- /auth/login
- /auth/logout
- /auth/signup        (self-service manager accounts, can be disabled)
- /auth/me
- /auth/seed-admin    (first system bootstrap)
- /auth/csrf-token

Rules:
- Only active users may log in.
- Signup always creates a `manager` with no assigned projects; an admin
  grants project access afterwards.
"""

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...audit import log_action, serialize_model
from ...errors import AuthorizationError, ValidationError
from ...extensions import db
from ...logger import get_logger
from ...models import ROLE_ADMIN, ROLE_MANAGER, User
from ...utils import get_payload, require_text

logger = get_logger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

MIN_PASSWORD_LENGTH = 6


def _normalized_email(data: dict) -> str:
    email = require_text(data, "email").lower()
    if "@" not in email:
        raise ValidationError("A valid email address is required.", details={"field": "email"})
    return email


def _valid_password(data: dict) -> str:
    password = str(data.get("password") or "")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters.",
            details={"field": "password"},
        )
    return password


# ============================================================
# LOGIN / LOGOUT
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    data = get_payload()
    email = str(data.get("email") or "").strip().lower()
    password = str(data.get("password") or "")

    user = User.query.filter_by(email=email).first() if email else None

    if not user or not user.check_password(password):
        logger.info("Failed login for %s", email or "<empty>")
        return jsonify({"ok": False, "error": "invalid_credentials", "message": "Invalid email or password."}), 401

    if not user.is_active:
        return jsonify({"ok": False, "error": "inactive", "message": "This account is disabled."}), 403

    login_user(user, remember=bool(data.get("remember")))
    logger.info("User %s logged in", user.id)
    return jsonify({"ok": True, "user": user.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"ok": True})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"ok": True, "user": current_user.to_dict()})


@auth_bp.route("/csrf-token")
def csrf_token():
    """Token for API clients; send it back in the X-CSRFToken header."""
    return jsonify({"ok": True, "csrf_token": generate_csrf()})


# ============================================================
# SIGNUP
# ============================================================

@auth_bp.route("/signup", methods=["POST"])
def signup():
    if not current_app.config.get("ALLOW_SIGNUP", True):
        raise AuthorizationError("Signup is disabled.")

    data = get_payload()
    name = require_text(data, "name")
    email = _normalized_email(data)
    password = _valid_password(data)

    if User.query.filter_by(email=email).first():
        raise ValidationError("An account with this email already exists.", details={"field": "email"})

    user = User(email=email, name=name, role=ROLE_MANAGER, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    log_action(user, "CREATE", after=serialize_model(user), actor=user)
    db.session.commit()

    login_user(user)
    logger.info("Manager account %s created via signup", user.id)
    return jsonify({"ok": True, "user": user.to_dict()}), 201


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    Safety rule: if ANY user already exists, the request is refused.
    """
    if User.query.count() > 0:
        raise AuthorizationError("Users already exist; ask an administrator for access.")

    data = get_payload()
    email = _normalized_email(data)
    password = _valid_password(data)
    name = str(data.get("name") or "").strip() or "Administrator"

    user = User(email=email, name=name, role=ROLE_ADMIN, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    log_action(user, "CREATE", after=serialize_model(user), actor=user)
    db.session.commit()

    logger.info("First admin %s created", user.id)
    return jsonify({"ok": True, "user": user.to_dict()}), 201
