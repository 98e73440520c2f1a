"""
sitetrack/seed.py

Bootstrap and demo data.

Rules:
- Safe to run multiple times (idempotent): existing rows are looked up by
  their natural key (email, project name, worker name) and left untouched.
- Demo money movements go through the ledger so that running totals match
  the transactions from the start.
"""

from __future__ import annotations

from decimal import Decimal

from . import ledger
from .extensions import db
from .models import ROLE_ADMIN, ROLE_MANAGER, Project, Task, User, Worker


def create_admin(email: str, password: str, name: str = "Administrator") -> User:
    """Create an admin user, or promote/reset the existing user with that email."""
    email = email.strip().lower()
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, name=name)
        db.session.add(user)

    user.name = name or user.name
    user.role = ROLE_ADMIN
    user.is_active = True
    user.set_password(password)
    db.session.commit()
    return user


def _get_or_create_user(email: str, name: str, role: str, password: str) -> User:
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, name=name, role=role, is_active=True)
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
    return user


DEMO_WORKERS = [
    ("Ravi Kumar", "Mason", "9800000001", "daily", Decimal("900.00")),
    ("Suresh Patel", "Carpenter", "9800000002", "daily", Decimal("850.00")),
    ("Anita Desai", "Site Engineer", "9800000003", "monthly", Decimal("45000.00")),
    ("Mohan Lal", "Electrician", "9800000004", "hourly", Decimal("150.00")),
]


def seed_demo_data() -> dict:
    """Create a demo admin, manager, project, workers, tasks and transactions."""
    admin = _get_or_create_user("admin@sitetrack.local", "Demo Admin", ROLE_ADMIN, "admin123")
    manager = _get_or_create_user("manager@sitetrack.local", "Demo Manager", ROLE_MANAGER, "manager123")

    created = {"projects": 0, "workers": 0, "tasks": 0, "transactions": 0}

    project = Project.query.filter_by(name="Riverside Residency").first()
    if project is None:
        project = Project(
            name="Riverside Residency",
            location="Pune",
            budget_limit=Decimal("2500000.00"),
            order_value=Decimal("3200000.00"),
            assigned_manager_id=manager.id,
            status="active",
        )
        db.session.add(project)
        db.session.flush()
        manager.assigned_projects.append(project)
        created["projects"] += 1

        for title, status in (
            ("Excavate foundation", "done"),
            ("Pour ground floor slab", "inprogress"),
            ("Order first floor steel", "todo"),
        ):
            db.session.add(Task(project_id=project.id, title=title, status=status))
            created["tasks"] += 1

        ledger.record_income(project, amount=Decimal("500000.00"), description="Client mobilisation advance", created_by=admin)
        cement = ledger.record_expense(
            project, amount=Decimal("84000.00"), category="Materials", description="Cement, 200 bags", created_by=manager
        )
        ledger.approve_transaction(cement, admin)
        ledger.record_expense(
            project, amount=Decimal("12500.00"), category="Equipment", description="Mixer rental", created_by=manager
        )
        created["transactions"] += 3

    for name, skill, phone, payment_type, rate in DEMO_WORKERS:
        if Worker.query.filter_by(name=name).first() is None:
            db.session.add(Worker(name=name, skill=skill, phone=phone, payment_type=payment_type, base_rate=rate))
            created["workers"] += 1

    db.session.commit()
    return created
