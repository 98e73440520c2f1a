"""
Project routes.

- Admin: create/update any project, see all projects.
- Manager: read-only access to the projects they manage or are assigned to.

Budget figures in responses are computed from the approved transactions
(sitetrack.ledger.project_financials); the stored running totals are shown
alongside in the project payload.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from ...audit import log_action, serialize_model
from ...errors import ValidationError
from ...extensions import db
from ...insights import BudgetInsightsClient, BudgetInsightsInput
from ...ledger import project_financials
from ...logger import get_logger
from ...models import PROJECT_STATUSES, Project, Transaction, User
from ...security import admin_required, project_access_required, visible_projects_query
from ...utils import (
    get_payload,
    jsonable,
    parse_optional_int,
    query_choice,
    require_choice,
    require_positive_decimal,
    require_text,
)

logger = get_logger(__name__)

projects_bp = Blueprint("projects", __name__, url_prefix="/projects")


def _load_project(project_id, **_):
    return db.get_or_404(Project, project_id)


def _resolve_manager(data: dict) -> User:
    """assigned_manager_id must point to an active manager."""
    manager_id = parse_optional_int(data.get("assigned_manager_id"))
    manager = db.session.get(User, manager_id) if manager_id is not None else None
    if manager is None or not manager.is_manager or not manager.is_active:
        raise ValidationError(
            "assigned_manager_id must be an active manager.",
            details={"field": "assigned_manager_id"},
        )
    return manager


def _assign_manager(project: Project, manager: User) -> None:
    """Hand the project to `manager`; the previous manager loses access."""
    previous = project.assigned_manager
    if previous is not None and previous.id != manager.id and project in previous.assigned_projects:
        previous.assigned_projects.remove(project)

    project.assigned_manager_id = manager.id
    project.assigned_manager = manager
    if project not in manager.assigned_projects:
        manager.assigned_projects.append(project)


# ---------------------------------------------------------------------
# LIST / DETAIL
# ---------------------------------------------------------------------

@projects_bp.route("/")
@login_required
def list_projects():
    """Projects visible to the current user, optionally filtered by status."""
    q = visible_projects_query()
    status = query_choice("status", PROJECT_STATUSES)
    if status:
        q = q.filter(Project.status == status)
    projects = q.order_by(Project.name.asc()).all()
    return jsonify({"ok": True, "projects": [p.to_dict() for p in projects]})


@projects_bp.route("/<int:project_id>")
@login_required
@project_access_required(_load_project)
def get_project(project_id: int):
    project = _load_project(project_id)
    return jsonify(
        {
            "ok": True,
            "project": project.to_dict(),
            "financials": jsonable(project_financials(project)),
            "tasks": [t.to_dict() for t in project.tasks],
        }
    )


@projects_bp.route("/<int:project_id>/financials")
@login_required
@project_access_required(_load_project)
def get_financials(project_id: int):
    project = _load_project(project_id)
    return jsonify({"ok": True, "project_id": project.id, "financials": jsonable(project_financials(project))})


# ---------------------------------------------------------------------
# CREATE / UPDATE (admin)
# ---------------------------------------------------------------------

@projects_bp.route("/", methods=["POST"])
@login_required
@admin_required
def create_project():
    data = get_payload()

    project = Project(
        name=require_text(data, "name"),
        location=require_text(data, "location"),
        budget_limit=require_positive_decimal(data, "budget_limit"),
        order_value=require_positive_decimal(data, "order_value"),
        status=require_choice(data, "status", PROJECT_STATUSES, default="active"),
    )
    manager = _resolve_manager(data)

    db.session.add(project)
    db.session.flush()
    _assign_manager(project, manager)
    db.session.flush()

    log_action(project, "CREATE", after=serialize_model(project))
    db.session.commit()

    logger.info("Project %s created by user %s", project.id, current_user.id)
    return jsonify({"ok": True, "project": project.to_dict()}), 201


@projects_bp.route("/<int:project_id>", methods=["PATCH"])
@login_required
@admin_required
def update_project(project_id: int):
    """
    Update project master data.

    utilised_budget / received_amount are ledger fields and cannot be set here.
    """
    project = _load_project(project_id)
    data = get_payload()
    before = serialize_model(project)

    if "name" in data:
        project.name = require_text(data, "name")
    if "location" in data:
        project.location = require_text(data, "location")
    if "budget_limit" in data:
        project.budget_limit = require_positive_decimal(data, "budget_limit")
    if "order_value" in data:
        project.order_value = require_positive_decimal(data, "order_value")
    if "status" in data:
        project.status = require_choice(data, "status", PROJECT_STATUSES)
    if "assigned_manager_id" in data:
        _assign_manager(project, _resolve_manager(data))

    db.session.flush()
    log_action(project, "UPDATE", before=before, after=serialize_model(project))
    db.session.commit()

    return jsonify({"ok": True, "project": project.to_dict()})


# ---------------------------------------------------------------------
# BUDGET INSIGHTS
# ---------------------------------------------------------------------

@projects_bp.route("/<int:project_id>/insights", methods=["POST"])
@login_required
@project_access_required(_load_project)
def budget_insights(project_id: int):
    """Model-written summary of the project's spending and overrun risks."""
    project = _load_project(project_id)
    transactions = (
        Transaction.query.filter_by(project_id=project.id)
        .order_by(Transaction.timestamp.asc())
        .all()
    )

    client = BudgetInsightsClient.from_config(current_app.config)
    output = client.get_budget_insights(BudgetInsightsInput.from_project(project, transactions))

    return jsonify({"ok": True, "project_id": project.id, "summary": output.summary})
