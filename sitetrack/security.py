"""
sitetrack/security.py

Access control helpers.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Admin: full access.
- Manager: only projects they manage or are assigned to, and only the
  write operations a site manager performs (expenses, attendance, task status).

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from flask import jsonify
from flask_login import current_user

from .models import Project


def forbidden(message: str = "You do not have permission to perform this action."):
    """Consistent 403 payload."""
    return jsonify({"ok": False, "error": "forbidden", "message": message}), 403


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return forbidden()
        return view_func(*args, **kwargs)

    return wrapper


def can_access_project(project: Project | None) -> bool:
    if not current_user.is_authenticated:
        return False
    return current_user.can_access_project(project)


def project_access_required(get_project_func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Decorator factory: access to a single project.

    Admin: always allowed.
    Manager: only for projects they manage or are assigned to.

    Usage:
        @project_access_required(lambda project_id, **_: Project.query.get_or_404(project_id))
        def view(project_id): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            project = get_project_func(**kwargs)

            if not can_access_project(project):
                return forbidden("This project is not assigned to you.")

            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def visible_project_ids() -> list[int] | None:
    """Project ids the current user may see, or None meaning all (admin)."""
    if is_admin():
        return None
    managed = [p.id for p in Project.query.filter_by(assigned_manager_id=current_user.id).all()]
    return sorted(set(managed) | set(current_user.assigned_project_ids))


def visible_projects_query():
    """Service isolation: managers see only their projects."""
    ids = visible_project_ids()
    if ids is None:
        return Project.query
    return Project.query.filter(Project.id.in_(ids))
