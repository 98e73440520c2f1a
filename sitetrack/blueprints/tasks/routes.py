"""
Task routes.

- Admin: create, edit and delete tasks on any project.
- Manager: list tasks of their projects and move them between statuses.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ...audit import log_action, serialize_model
from ...errors import ValidationError
from ...extensions import db
from ...models import TASK_STATUSES, Project, Task
from ...security import admin_required, forbidden, project_access_required, visible_project_ids
from ...utils import get_payload, optional_text, parse_date, parse_optional_int, query_choice, require_choice, require_text

tasks_bp = Blueprint("tasks", __name__, url_prefix="/tasks")


def _load_task_project(task_id, **_):
    return db.get_or_404(Task, task_id).project


def _optional_due_date(data: dict):
    raw = data.get("expected_completion_date")
    if raw in (None, ""):
        return None
    value = parse_date(raw)
    if value is None:
        raise ValidationError(
            "expected_completion_date must be a date (YYYY-MM-DD).",
            details={"field": "expected_completion_date"},
        )
    return value


@tasks_bp.route("/")
@login_required
def list_tasks():
    q = Task.query

    ids = visible_project_ids()
    if ids is not None:
        q = q.filter(Task.project_id.in_(ids))

    project_id = parse_optional_int(request.args.get("project_id"))
    if project_id is not None:
        if ids is not None and project_id not in ids:
            return forbidden("This project is not assigned to you.")
        q = q.filter(Task.project_id == project_id)

    status = query_choice("status", TASK_STATUSES)
    if status:
        q = q.filter(Task.status == status)

    tasks = q.order_by(Task.expected_completion_date.is_(None), Task.expected_completion_date.asc(), Task.id.asc()).all()
    return jsonify({"ok": True, "tasks": [t.to_dict() for t in tasks]})


@tasks_bp.route("/", methods=["POST"])
@login_required
@admin_required
def create_task():
    data = get_payload()

    project_id = parse_optional_int(data.get("project_id"))
    project = db.session.get(Project, project_id) if project_id is not None else None
    if project is None:
        raise ValidationError("A valid project_id is required.", details={"field": "project_id"})

    task = Task(
        project_id=project.id,
        title=require_text(data, "title"),
        description=optional_text(data, "description"),
        status="todo",
        expected_completion_date=_optional_due_date(data),
    )
    db.session.add(task)
    db.session.flush()

    log_action(task, "CREATE", after=serialize_model(task))
    db.session.commit()

    return jsonify({"ok": True, "task": task.to_dict()}), 201


@tasks_bp.route("/<int:task_id>", methods=["PATCH"])
@login_required
@admin_required
def update_task(task_id: int):
    task = db.get_or_404(Task, task_id)
    data = get_payload()
    before = serialize_model(task)

    if "title" in data:
        task.title = require_text(data, "title")
    if "description" in data:
        task.description = optional_text(data, "description")
    if "status" in data:
        task.status = require_choice(data, "status", TASK_STATUSES)
    if "expected_completion_date" in data:
        task.expected_completion_date = _optional_due_date(data)

    db.session.flush()
    log_action(task, "UPDATE", before=before, after=serialize_model(task))
    db.session.commit()

    return jsonify({"ok": True, "task": task.to_dict()})


@tasks_bp.route("/<int:task_id>/status", methods=["PATCH"])
@login_required
@project_access_required(_load_task_project)
def update_task_status(task_id: int):
    """Managers move tasks on their own projects."""
    task = db.get_or_404(Task, task_id)
    data = get_payload()
    before = serialize_model(task)

    task.status = require_choice(data, "status", TASK_STATUSES)

    db.session.flush()
    log_action(task, "UPDATE", before=before, after=serialize_model(task))
    db.session.commit()

    return jsonify({"ok": True, "task": task.to_dict()})


@tasks_bp.route("/<int:task_id>", methods=["DELETE"])
@login_required
@admin_required
def delete_task(task_id: int):
    task = db.get_or_404(Task, task_id)
    log_action(task, "DELETE", before=serialize_model(task))
    db.session.delete(task)
    db.session.commit()
    return jsonify({"ok": True})
