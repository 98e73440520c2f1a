"""
User management (admin only).

Rules enforced:
- An admin cannot demote or deactivate themselves (no lock-out).
- Project assignments are replaced as a whole; unknown project ids are rejected.

Audit:
- UPDATE logged with before/after snapshots
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from ...audit import log_action, serialize_model
from ...errors import ValidationError
from ...extensions import db
from ...models import ROLE_MANAGER, ROLES, Project, User
from ...security import admin_required
from ...utils import get_payload, parse_optional_int, require_bool, require_choice

users_bp = Blueprint("users", __name__, url_prefix="/users")


def _snapshot(user: User) -> dict:
    data = serialize_model(user)
    data["assigned_project_ids"] = user.assigned_project_ids
    return data


# ---------------------------------------------------------------------
# LIST USERS
# ---------------------------------------------------------------------

@users_bp.route("/")
@login_required
@admin_required
def list_users():
    users = User.query.order_by(User.name.asc()).all()
    return jsonify({"ok": True, "users": [u.to_dict() for u in users]})


@users_bp.route("/managers")
@login_required
@admin_required
def list_managers():
    """Active managers, for the project manager picker."""
    managers = (
        User.query.filter_by(role=ROLE_MANAGER, is_active=True)
        .order_by(User.name.asc())
        .all()
    )
    return jsonify({"ok": True, "users": [u.to_dict() for u in managers]})


# ---------------------------------------------------------------------
# UPDATE USER
# ---------------------------------------------------------------------

@users_bp.route("/<int:user_id>", methods=["PATCH"])
@login_required
@admin_required
def update_user(user_id: int):
    user = db.get_or_404(User, user_id)
    data = get_payload()
    before = _snapshot(user)

    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required.", details={"field": "name"})
        user.name = name

    if "role" in data:
        role = require_choice(data, "role", ROLES)
        if user.id == current_user.id and role != user.role:
            raise ValidationError("You cannot change your own role.", details={"field": "role"})
        user.role = role

    if "is_active" in data:
        is_active = require_bool(data, "is_active")
        if user.id == current_user.id and not is_active:
            raise ValidationError("You cannot deactivate your own account.", details={"field": "is_active"})
        user.is_active = is_active

    if data.get("password"):
        password = str(data["password"])
        if len(password) < 6:
            raise ValidationError("Password must be at least 6 characters.", details={"field": "password"})
        user.set_password(password)

    db.session.flush()
    log_action(user, "UPDATE", before=before, after=_snapshot(user))
    db.session.commit()

    return jsonify({"ok": True, "user": user.to_dict()})


@users_bp.route("/<int:user_id>/projects", methods=["PUT"])
@login_required
@admin_required
def set_user_projects(user_id: int):
    """Replace the user's assigned projects."""
    user = db.get_or_404(User, user_id)
    data = get_payload()

    raw_ids = data.get("assigned_project_ids")
    if not isinstance(raw_ids, list):
        raise ValidationError("assigned_project_ids must be a list.", details={"field": "assigned_project_ids"})

    ids = []
    for raw in raw_ids:
        pid = parse_optional_int(raw)
        if pid is None:
            raise ValidationError(f"Invalid project id: {raw}.", details={"field": "assigned_project_ids"})
        ids.append(pid)

    projects = Project.query.filter(Project.id.in_(ids)).all() if ids else []
    missing = sorted(set(ids) - {p.id for p in projects})
    if missing:
        raise ValidationError(
            "Unknown project ids: " + ", ".join(str(i) for i in missing),
            details={"field": "assigned_project_ids"},
        )

    before = _snapshot(user)
    user.assigned_projects = projects
    db.session.flush()
    log_action(user, "UPDATE", before=before, after=_snapshot(user))
    db.session.commit()

    return jsonify({"ok": True, "user": user.to_dict()})
