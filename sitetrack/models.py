"""
SiteTrack – Domain Models

Users (admin / manager), construction projects, workers and their payroll
balances, financial transactions, tasks, attendance and salary payout batches.

IMPORTANT:
- Money columns are Numeric(12, 2). Arithmetic is done with Decimal and
  rounded half-up to cents via money().
- Project.utilised_budget, Project.received_amount and Worker.current_balance
  are only changed by sitetrack.ledger, in the same unit of work as the
  Transaction that justifies the change.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db


# ---------------------------------------------------------------------
# Enumerations (stored as plain strings)
# ---------------------------------------------------------------------
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLES = (ROLE_ADMIN, ROLE_MANAGER)

PROJECT_STATUSES = ("planning", "active", "in_progress", "on_hold", "completed")

PAYMENT_TYPES = ("hourly", "daily", "monthly")

TXN_EXPENSE = "expense"
TXN_INCOME = "income"
TXN_PAYOUT_ADVANCE = "payout_advance"
TXN_PAYOUT_SETTLEMENT = "payout_settlement"
TXN_SALARY_SETTLEMENT = "salary_settlement"
TRANSACTION_TYPES = (
    TXN_EXPENSE,
    TXN_INCOME,
    TXN_PAYOUT_ADVANCE,
    TXN_PAYOUT_SETTLEMENT,
    TXN_SALARY_SETTLEMENT,
)
PAYOUT_TYPES = (TXN_PAYOUT_ADVANCE, TXN_PAYOUT_SETTLEMENT, TXN_SALARY_SETTLEMENT)

STATUS_UNAPPROVED = "unapproved"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
TRANSACTION_STATUSES = (STATUS_UNAPPROVED, STATUS_APPROVED, STATUS_REJECTED)

TASK_STATUSES = ("todo", "inprogress", "done")

ATTENDANCE_STATUSES = ("present", "absent")


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def money(x) -> Decimal:
    return to_decimal(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _money_out(x) -> float:
    """JSON representation of a money value."""
    return float(money(x))


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
project_assignments = db.Table(
    "project_assignments",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("project_id", db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
)


class User(UserMixin, db.Model):
    """System login user (admin or site manager)."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=ROLE_MANAGER, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_projects = db.relationship(
        "Project",
        secondary=project_assignments,
        back_populates="assigned_users",
        lazy="selectin",
    )

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER

    @property
    def assigned_project_ids(self) -> list[int]:
        return sorted(p.id for p in self.assigned_projects)

    def can_access_project(self, project: "Project") -> bool:
        """Admins see everything; managers see projects they manage or are assigned to."""
        if self.is_admin:
            return True
        if project is None:
            return False
        if project.assigned_manager_id == self.id:
            return True
        return project.id in self.assigned_project_ids

    def to_dict(self) -> dict:
        return {
            "uid": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "assigned_project_ids": self.assigned_project_ids,
        }

    def __repr__(self):
        return f"<User {self.email}>"


# ---------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------
class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    location = db.Column(db.String(255), nullable=False)

    budget_limit = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    order_value = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    assigned_manager_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    status = db.Column(db.String(20), nullable=False, default="active", index=True)

    # Maintained by the ledger only
    utilised_budget = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    received_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assigned_manager = db.relationship("User", foreign_keys=[assigned_manager_id])

    assigned_users = db.relationship(
        "User",
        secondary=project_assignments,
        back_populates="assigned_projects",
    )

    transactions = db.relationship("Transaction", back_populates="project")

    tasks = db.relationship(
        "Task",
        back_populates="project",
        cascade="all, delete-orphan",
    )

    @property
    def remaining_budget(self) -> Decimal:
        return money(to_decimal(self.budget_limit) - to_decimal(self.utilised_budget))

    @property
    def utilisation_percent(self) -> Decimal:
        limit = to_decimal(self.budget_limit)
        if limit == 0:
            return Decimal("0.00")
        return money(to_decimal(self.utilised_budget) * Decimal("100") / limit)

    @property
    def is_over_budget(self) -> bool:
        return to_decimal(self.utilised_budget) > to_decimal(self.budget_limit)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "budget_limit": _money_out(self.budget_limit),
            "order_value": _money_out(self.order_value),
            "assigned_manager_id": self.assigned_manager_id,
            "assigned_manager_name": self.assigned_manager.name if self.assigned_manager else None,
            "status": self.status,
            "utilised_budget": _money_out(self.utilised_budget),
            "received_amount": _money_out(self.received_amount),
            "remaining_budget": _money_out(self.remaining_budget),
            "utilisation_percent": float(self.utilisation_percent),
            "is_over_budget": self.is_over_budget,
        }

    def __repr__(self):
        return f"<Project {self.name}>"


# ---------------------------------------------------------------------
# Workers
# ---------------------------------------------------------------------
class Worker(db.Model):
    __tablename__ = "workers"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, index=True)
    skill = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(40), nullable=False)

    payment_type = db.Column(db.String(20), nullable=False, index=True)
    base_rate = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    # Amount owed to the worker. Maintained by the ledger only.
    current_balance = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "skill": self.skill,
            "phone": self.phone,
            "payment_type": self.payment_type,
            "base_rate": _money_out(self.base_rate),
            "current_balance": _money_out(self.current_balance),
        }

    def __repr__(self):
        return f"<Worker {self.name}>"


# ---------------------------------------------------------------------
# Financial transactions
# ---------------------------------------------------------------------
class Transaction(db.Model):
    __tablename__ = "transactions"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    worker_id = db.Column(
        db.Integer,
        db.ForeignKey("workers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    type = db.Column(db.String(30), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    category = db.Column(db.String(120), nullable=False, default="General")
    description = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(20), nullable=False, default=STATUS_UNAPPROVED, index=True)

    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    reviewed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)

    project = db.relationship("Project", back_populates="transactions")
    worker = db.relationship("Worker", backref="transactions")
    creator = db.relationship("User", foreign_keys=[created_by])
    reviewer = db.relationship("User", foreign_keys=[reviewed_by])

    @property
    def is_payout(self) -> bool:
        return self.type in PAYOUT_TYPES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "worker_id": self.worker_id,
            "type": self.type,
            "amount": _money_out(self.amount),
            "category": self.category,
            "description": self.description,
            "status": self.status,
            "timestamp": _iso(self.timestamp),
            "created_by": self.created_by,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
        }


# ---------------------------------------------------------------------
# Tasks & attendance
# ---------------------------------------------------------------------
class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="todo", index=True)
    expected_completion_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="tasks")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "expected_completion_date": _iso(self.expected_completion_date),
        }


class Attendance(db.Model):
    __tablename__ = "attendance"

    id = db.Column(db.Integer, primary_key=True)

    date = db.Column(db.Date, nullable=False, index=True)

    worker_id = db.Column(
        db.Integer,
        db.ForeignKey("workers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # snapshot, survives worker renames
    worker_name = db.Column(db.String(120), nullable=False)

    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status = db.Column(db.String(20), nullable=False, default="present")
    units_worked = db.Column(db.Numeric(6, 2), nullable=False, default=Decimal("1.00"))

    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    worker = db.relationship("Worker", backref=db.backref("attendance_records", cascade="all, delete-orphan"))
    project = db.relationship("Project", backref=db.backref("attendance_records", cascade="all, delete-orphan"))

    __table_args__ = (
        db.UniqueConstraint("project_id", "worker_id", "date", name="uq_attendance_project_worker_date"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": _iso(self.date),
            "worker_id": self.worker_id,
            "worker_name": self.worker_name,
            "project_id": self.project_id,
            "status": self.status,
            "units_worked": float(to_decimal(self.units_worked)),
        }


# ---------------------------------------------------------------------
# Salary payout batches
# ---------------------------------------------------------------------
class SalaryPayout(db.Model):
    """One monthly salary run (history record)."""

    __tablename__ = "salary_payouts"

    id = db.Column(db.Integer, primary_key=True)

    payout_date = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    total_amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    paid_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    payer = db.relationship("User")
    paid_workers = db.relationship(
        "SalaryPayoutLine",
        back_populates="payout",
        cascade="all, delete-orphan",
        order_by="SalaryPayoutLine.worker_name",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "payout_date": _iso(self.payout_date),
            "total_amount_paid": _money_out(self.total_amount_paid),
            "paid_by": self.paid_by,
            "paid_workers": [line.to_dict() for line in self.paid_workers],
        }


class SalaryPayoutLine(db.Model):
    __tablename__ = "salary_payout_lines"

    id = db.Column(db.Integer, primary_key=True)

    payout_id = db.Column(
        db.Integer,
        db.ForeignKey("salary_payouts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id", ondelete="SET NULL"), nullable=True, index=True)
    worker_name = db.Column(db.String(120), nullable=False)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True)

    payout = db.relationship("SalaryPayout", back_populates="paid_workers")

    def to_dict(self) -> dict:
        return {
            "worker_id": self.worker_id,
            "worker_name": self.worker_name,
            "amount_paid": _money_out(self.amount_paid),
            "transaction_id": self.transaction_id,
        }


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Who did what to which entity, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
