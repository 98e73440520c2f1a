"""
Attendance routes.

A manager records one project's attendance for a date in a single batch:

    POST /attendance/
    {
        "project_id": 1,
        "date": "2024-05-01",
        "entries": [{"worker_id": 3, "status": "present", "units_worked": 1}, ...]
    }

`present_worker_ids: [3, 4]` is accepted as a shorthand for present entries.

Rules:
- Once a project has records for a date, that date is closed (409).
- present defaults to 1 unit worked; absent is always 0 units.
- The worker's name is snapshotted on the record.
"""

from __future__ import annotations

from decimal import Decimal

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError

from ...audit import log_action, serialize_model
from ...errors import DuplicateAttendanceError, ValidationError
from ...extensions import db
from ...logger import get_logger
from ...models import ATTENDANCE_STATUSES, Attendance, Project, Worker
from ...security import forbidden, project_access_required, visible_project_ids
from ...utils import get_payload, parse_date, parse_decimal, parse_optional_int, require_choice, require_date

logger = get_logger(__name__)

attendance_bp = Blueprint("attendance", __name__, url_prefix="/attendance")

MAX_UNITS_PER_DAY = Decimal("24")


def _project_from_payload(**_):
    project_id = parse_optional_int(get_payload().get("project_id"))
    if project_id is None:
        raise ValidationError("project_id is required.", details={"field": "project_id"})
    return db.get_or_404(Project, project_id)


def _normalize_entries(data: dict) -> list[dict]:
    entries = data.get("entries")
    if entries is None and isinstance(data.get("present_worker_ids"), list):
        entries = [{"worker_id": wid, "status": "present"} for wid in data["present_worker_ids"]]

    if not isinstance(entries, list) or not entries:
        raise ValidationError("At least one attendance entry is required.", details={"field": "entries"})

    normalized = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError("Each entry must be an object.", details={"field": "entries"})

        worker_id = parse_optional_int(entry.get("worker_id"))
        if worker_id is None:
            raise ValidationError("Each entry needs a worker_id.", details={"field": "worker_id"})
        if worker_id in seen:
            raise ValidationError(f"Worker {worker_id} is listed twice.", details={"field": "worker_id"})
        seen.add(worker_id)

        status = require_choice(entry, "status", ATTENDANCE_STATUSES, default="present")

        if status == "absent":
            units = Decimal("0")
        elif entry.get("units_worked") in (None, ""):
            units = Decimal("1")
        else:
            units = parse_decimal(entry.get("units_worked"))
            if units is None or units <= 0 or units > MAX_UNITS_PER_DAY:
                raise ValidationError(
                    f"units_worked must be greater than 0 and at most {MAX_UNITS_PER_DAY} for present workers.",
                    details={"field": "units_worked", "worker_id": worker_id},
                )

        normalized.append({"worker_id": worker_id, "status": status, "units_worked": units})
    return normalized


@attendance_bp.route("/")
@login_required
def list_attendance():
    """Filters (query string): project_id, date, worker_id."""
    q = Attendance.query

    ids = visible_project_ids()
    if ids is not None:
        q = q.filter(Attendance.project_id.in_(ids))

    project_id = parse_optional_int(request.args.get("project_id"))
    if project_id is not None:
        if ids is not None and project_id not in ids:
            return forbidden("This project is not assigned to you.")
        q = q.filter(Attendance.project_id == project_id)

    if request.args.get("date"):
        day = parse_date(request.args.get("date"))
        if day is None:
            raise ValidationError("date must be a date (YYYY-MM-DD).", details={"field": "date"})
        q = q.filter(Attendance.date == day)

    worker_id = parse_optional_int(request.args.get("worker_id"))
    if worker_id is not None:
        q = q.filter(Attendance.worker_id == worker_id)

    records = q.order_by(Attendance.date.desc(), Attendance.worker_name.asc()).all()
    return jsonify({"ok": True, "attendance": [a.to_dict() for a in records]})


@attendance_bp.route("/", methods=["POST"])
@login_required
@project_access_required(_project_from_payload)
def record_attendance():
    data = get_payload()
    project = _project_from_payload()
    day = require_date(data, "date")
    entries = _normalize_entries(data)

    if Attendance.query.filter_by(project_id=project.id, date=day).first() is not None:
        raise DuplicateAttendanceError(
            f"Attendance for {day.isoformat()} has already been recorded for this project."
        )

    worker_ids = [e["worker_id"] for e in entries]
    workers = {w.id: w for w in Worker.query.filter(Worker.id.in_(worker_ids)).all()}
    missing = sorted(set(worker_ids) - set(workers))
    if missing:
        raise ValidationError(
            "Unknown worker ids: " + ", ".join(str(i) for i in missing),
            details={"field": "worker_id"},
        )

    records = []
    for entry in entries:
        worker = workers[entry["worker_id"]]
        record = Attendance(
            date=day,
            worker_id=worker.id,
            worker_name=worker.name,
            project_id=project.id,
            status=entry["status"],
            units_worked=entry["units_worked"],
            recorded_by=current_user.id,
        )
        db.session.add(record)
        records.append(record)

    try:
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        raise DuplicateAttendanceError(
            f"Attendance for {day.isoformat()} has already been recorded for this project."
        ) from e

    for record in records:
        log_action(record, "CREATE", after=serialize_model(record))
    db.session.commit()

    logger.info("Attendance for project %s on %s recorded (%d entries)", project.id, day, len(records))
    return jsonify({"ok": True, "attendance": [r.to_dict() for r in records]}), 201
