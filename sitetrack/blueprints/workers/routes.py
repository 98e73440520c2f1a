"""
Worker routes.

- Any logged-in user can list workers (managers need them for attendance).
- Admin: create/update/delete workers, see a worker's ledger history, and
  record payments (settlements) and advances.

current_balance is never written here; payments go through sitetrack.ledger.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from ... import ledger
from ...audit import log_action, serialize_model
from ...errors import ValidationError
from ...extensions import db
from ...models import PAYMENT_TYPES, Attendance, Project, SalaryPayoutLine, Transaction, Worker, money
from ...security import admin_required
from ...utils import (
    get_payload,
    optional_text,
    parse_optional_int,
    query_choice,
    require_choice,
    require_positive_decimal,
    require_text,
)

workers_bp = Blueprint("workers", __name__, url_prefix="/workers")


def _optional_project(data: dict) -> Project | None:
    project_id = parse_optional_int(data.get("project_id"))
    if project_id is None:
        return None
    project = db.session.get(Project, project_id)
    if project is None:
        raise ValidationError("Unknown project.", details={"field": "project_id"})
    return project


# ---------------------------------------------------------------------
# LIST / DETAIL
# ---------------------------------------------------------------------

@workers_bp.route("/")
@login_required
def list_workers():
    q = Worker.query
    payment_type = query_choice("payment_type", PAYMENT_TYPES)
    if payment_type:
        q = q.filter(Worker.payment_type == payment_type)
    workers = q.order_by(Worker.name.asc()).all()
    return jsonify({"ok": True, "workers": [w.to_dict() for w in workers]})


@workers_bp.route("/<int:worker_id>")
@login_required
@admin_required
def get_worker(worker_id: int):
    """Worker profile with payout history and attendance, newest first."""
    worker = db.get_or_404(Worker, worker_id)

    transactions = (
        Transaction.query.filter_by(worker_id=worker.id)
        .order_by(Transaction.timestamp.desc(), Transaction.id.desc())
        .all()
    )
    attendance = (
        Attendance.query.filter_by(worker_id=worker.id)
        .order_by(Attendance.date.desc())
        .all()
    )

    return jsonify(
        {
            "ok": True,
            "worker": worker.to_dict(),
            "transactions": [t.to_dict() for t in transactions],
            "attendance": [a.to_dict() for a in attendance],
        }
    )


# ---------------------------------------------------------------------
# CREATE / UPDATE / DELETE (admin)
# ---------------------------------------------------------------------

@workers_bp.route("/", methods=["POST"])
@login_required
@admin_required
def create_worker():
    data = get_payload()

    worker = Worker(
        name=require_text(data, "name"),
        skill=require_text(data, "skill"),
        phone=require_text(data, "phone"),
        payment_type=require_choice(data, "payment_type", PAYMENT_TYPES),
        base_rate=money(require_positive_decimal(data, "base_rate")),
        current_balance=money(0),
    )
    db.session.add(worker)
    db.session.flush()

    log_action(worker, "CREATE", after=serialize_model(worker))
    db.session.commit()

    return jsonify({"ok": True, "worker": worker.to_dict()}), 201


@workers_bp.route("/<int:worker_id>", methods=["PATCH"])
@login_required
@admin_required
def update_worker(worker_id: int):
    worker = db.get_or_404(Worker, worker_id)
    data = get_payload()
    before = serialize_model(worker)

    for field in ("name", "skill", "phone"):
        if field in data:
            setattr(worker, field, require_text(data, field))
    if "payment_type" in data:
        worker.payment_type = require_choice(data, "payment_type", PAYMENT_TYPES)
    if "base_rate" in data:
        worker.base_rate = money(require_positive_decimal(data, "base_rate"))

    db.session.flush()
    log_action(worker, "UPDATE", before=before, after=serialize_model(worker))
    db.session.commit()

    return jsonify({"ok": True, "worker": worker.to_dict()})


@workers_bp.route("/<int:worker_id>", methods=["DELETE"])
@login_required
@admin_required
def delete_worker(worker_id: int):
    """
    Delete a worker who is fully settled.

    Their transactions stay in the ledger (worker_id cleared); attendance
    records are removed with the worker.
    """
    worker = db.get_or_404(Worker, worker_id)

    if money(worker.current_balance) != 0:
        raise ValidationError(
            "Settle the worker's balance before deleting them.",
            details={"current_balance": float(money(worker.current_balance))},
        )

    log_action(worker, "DELETE", before=serialize_model(worker))
    SalaryPayoutLine.query.filter_by(worker_id=worker.id).update({"worker_id": None})
    db.session.delete(worker)
    db.session.commit()

    return jsonify({"ok": True})


# ---------------------------------------------------------------------
# PAYMENTS
# ---------------------------------------------------------------------

@workers_bp.route("/<int:worker_id>/payments", methods=["POST"])
@login_required
@admin_required
def record_payment(worker_id: int):
    """Pay the worker; amount defaults to the full outstanding balance."""
    worker = db.get_or_404(Worker, worker_id)
    data = get_payload()

    if data.get("amount") in (None, ""):
        data = dict(data, amount=str(money(worker.current_balance)))

    txn = ledger.record_settlement(
        worker,
        amount=require_positive_decimal(data, "amount"),
        description=optional_text(data, "description"),
        project=_optional_project(data),
        created_by=current_user,
    )
    db.session.commit()

    return jsonify({"ok": True, "transaction": txn.to_dict(), "worker": worker.to_dict()}), 201


@workers_bp.route("/<int:worker_id>/advances", methods=["POST"])
@login_required
@admin_required
def record_advance(worker_id: int):
    worker = db.get_or_404(Worker, worker_id)
    data = get_payload()

    txn = ledger.record_advance(
        worker,
        amount=require_positive_decimal(data, "amount"),
        description=optional_text(data, "description"),
        project=_optional_project(data),
        created_by=current_user,
    )
    db.session.commit()

    return jsonify({"ok": True, "transaction": txn.to_dict(), "worker": worker.to_dict()}), 201
