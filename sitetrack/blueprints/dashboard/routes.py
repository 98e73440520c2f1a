"""
Dashboard routes.

- /dashboard/admin : company-wide figures (admin)
- /dashboard/      : the current user's projects with their financials
"""

from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, jsonify
from flask_login import login_required
from sqlalchemy import func

from ...extensions import db
from ...ledger import project_financials
from ...models import (
    STATUS_APPROVED,
    STATUS_UNAPPROVED,
    TXN_EXPENSE,
    TXN_INCOME,
    Project,
    Task,
    Transaction,
    Worker,
    money,
)
from ...security import admin_required, visible_projects_query
from ...utils import jsonable

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


def _sum_transactions(txn_type: str, status: str) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(Transaction.amount), 0))
        .filter(Transaction.type == txn_type, Transaction.status == status)
        .scalar()
    )
    return money(total)


@dashboard_bp.route("/admin")
@login_required
@admin_required
def admin_dashboard():
    outstanding_payroll = (
        db.session.query(func.coalesce(func.sum(Worker.current_balance), 0))
        .filter(Worker.current_balance > 0)
        .scalar()
    )
    pending_count = Transaction.query.filter_by(type=TXN_EXPENSE, status=STATUS_UNAPPROVED).count()

    projects = Project.query.order_by(Project.name.asc()).all()
    over_budget = [p.to_dict() for p in projects if p.is_over_budget]

    stats = {
        "total_income": _sum_transactions(TXN_INCOME, STATUS_APPROVED),
        "total_expenses": _sum_transactions(TXN_EXPENSE, STATUS_APPROVED),
        "pending_expenses": _sum_transactions(TXN_EXPENSE, STATUS_UNAPPROVED),
        "pending_expense_count": pending_count,
        "outstanding_payroll": money(outstanding_payroll),
        "project_count": len(projects),
        "worker_count": Worker.query.count(),
    }

    return jsonify({"ok": True, "stats": jsonable(stats), "over_budget_projects": over_budget})


@dashboard_bp.route("/")
@login_required
def my_dashboard():
    projects = visible_projects_query().order_by(Project.name.asc()).all()

    items = []
    for project in projects:
        open_tasks = Task.query.filter(Task.project_id == project.id, Task.status != "done").count()
        items.append(
            {
                "project": project.to_dict(),
                "financials": jsonable(project_financials(project)),
                "open_task_count": open_tasks,
            }
        )

    return jsonify({"ok": True, "projects": items})
