"""
Transaction routes.

Moderation workflow:
- Managers log expenses on their projects; expenses start `unapproved`.
- Admins approve or reject them. Approval charges the project budget.
- Income is admin-only and pre-approved.
- Deleting an approved transaction reverses its effect first.

All money movements go through sitetrack.ledger.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ... import ledger
from ...errors import ValidationError
from ...extensions import db
from ...models import TRANSACTION_STATUSES, TRANSACTION_TYPES, Project, Transaction
from ...security import admin_required, forbidden, project_access_required, visible_project_ids
from ...utils import (
    get_payload,
    optional_text,
    parse_optional_int,
    query_choice,
    require_positive_decimal,
    require_text,
)

transactions_bp = Blueprint("transactions", __name__, url_prefix="/transactions")


def _project_from_payload(**_):
    data = get_payload()
    project_id = parse_optional_int(data.get("project_id"))
    if project_id is None:
        raise ValidationError("project_id is required.", details={"field": "project_id"})
    return db.get_or_404(Project, project_id)


# ---------------------------------------------------------------------
# LIST
# ---------------------------------------------------------------------

@transactions_bp.route("/")
@login_required
def list_transactions():
    """
    Filters (query string): project_id, type, status, worker_id.

    Managers only see transactions attached to their projects.
    """
    q = Transaction.query

    ids = visible_project_ids()
    if ids is not None:
        q = q.filter(Transaction.project_id.in_(ids))

    project_id = parse_optional_int(request.args.get("project_id"))
    if project_id is not None:
        if ids is not None and project_id not in ids:
            return forbidden("This project is not assigned to you.")
        q = q.filter(Transaction.project_id == project_id)

    worker_id = parse_optional_int(request.args.get("worker_id"))
    if worker_id is not None:
        q = q.filter(Transaction.worker_id == worker_id)

    txn_type = query_choice("type", TRANSACTION_TYPES)
    if txn_type:
        q = q.filter(Transaction.type == txn_type)

    status = query_choice("status", TRANSACTION_STATUSES)
    if status:
        q = q.filter(Transaction.status == status)

    transactions = q.order_by(Transaction.timestamp.desc(), Transaction.id.desc()).all()
    return jsonify({"ok": True, "transactions": [t.to_dict() for t in transactions]})


# ---------------------------------------------------------------------
# CREATE
# ---------------------------------------------------------------------

@transactions_bp.route("/expenses", methods=["POST"])
@login_required
@project_access_required(_project_from_payload)
def create_expense():
    data = get_payload()
    project = _project_from_payload()

    txn = ledger.record_expense(
        project,
        amount=require_positive_decimal(data, "amount"),
        category=require_text(data, "category"),
        description=optional_text(data, "description"),
        created_by=current_user,
    )
    db.session.commit()

    return jsonify({"ok": True, "transaction": txn.to_dict()}), 201


@transactions_bp.route("/income", methods=["POST"])
@login_required
@admin_required
def create_income():
    data = get_payload()
    project = _project_from_payload()

    txn = ledger.record_income(
        project,
        amount=require_positive_decimal(data, "amount"),
        description=optional_text(data, "description"),
        category=optional_text(data, "category") or ledger.INCOME_CATEGORY,
        created_by=current_user,
    )
    db.session.commit()

    return jsonify({"ok": True, "transaction": txn.to_dict(), "project": project.to_dict()}), 201


# ---------------------------------------------------------------------
# MODERATION (admin)
# ---------------------------------------------------------------------

@transactions_bp.route("/<int:txn_id>/approve", methods=["POST"])
@login_required
@admin_required
def approve(txn_id: int):
    txn = db.get_or_404(Transaction, txn_id)
    ledger.approve_transaction(txn, current_user)
    db.session.commit()
    return jsonify({"ok": True, "transaction": txn.to_dict()})


@transactions_bp.route("/<int:txn_id>/reject", methods=["POST"])
@login_required
@admin_required
def reject(txn_id: int):
    txn = db.get_or_404(Transaction, txn_id)
    ledger.reject_transaction(txn, current_user)
    db.session.commit()
    return jsonify({"ok": True, "transaction": txn.to_dict()})


@transactions_bp.route("/<int:txn_id>", methods=["DELETE"])
@login_required
@admin_required
def delete(txn_id: int):
    txn = db.get_or_404(Transaction, txn_id)
    ledger.delete_transaction(txn, current_user)
    db.session.commit()
    return jsonify({"ok": True})
