from __future__ import annotations

from decimal import Decimal

import pytest

from sitetrack import create_app
from sitetrack.extensions import db
from sitetrack.models import ROLE_ADMIN, ROLE_MANAGER, Project, User, Worker

PASSWORD = "secret123"


@pytest.fixture
def app():
    app = create_app("config.TestingConfig")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email: str, password: str = PASSWORD):
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def users(app) -> dict[str, int]:
    with app.app_context():
        created = {}
        for key, email, name, role in (
            ("admin", "admin@example.com", "Admin", ROLE_ADMIN),
            ("manager", "manager@example.com", "Manager One", ROLE_MANAGER),
            ("other_manager", "other@example.com", "Manager Two", ROLE_MANAGER),
        ):
            user = User(email=email, name=name, role=role, is_active=True)
            user.set_password(PASSWORD)
            db.session.add(user)
            db.session.flush()
            created[key] = user.id
        db.session.commit()
        return created


@pytest.fixture
def admin_client(app, users):
    return login(app.test_client(), "admin@example.com")


@pytest.fixture
def manager_client(app, users):
    return login(app.test_client(), "manager@example.com")


@pytest.fixture
def other_client(app, users):
    return login(app.test_client(), "other@example.com")


@pytest.fixture
def project(app, users) -> int:
    """Project managed by manager@example.com, budget 1000."""
    with app.app_context():
        manager = db.session.get(User, users["manager"])
        project = Project(
            name="Tower A",
            location="Pune",
            budget_limit=Decimal("1000.00"),
            order_value=Decimal("1500.00"),
            assigned_manager_id=manager.id,
        )
        db.session.add(project)
        db.session.flush()
        manager.assigned_projects.append(project)
        db.session.commit()
        return project.id


@pytest.fixture
def workers(app) -> dict[str, int]:
    with app.app_context():
        created = {}
        for key, name, payment_type, rate in (
            ("daily", "Ravi", "daily", Decimal("500.00")),
            ("monthly", "Anita", "monthly", Decimal("30000.00")),
            ("hourly", "Mohan", "hourly", Decimal("150.00")),
        ):
            worker = Worker(name=name, skill="Mason", phone="9800000000", payment_type=payment_type, base_rate=rate)
            db.session.add(worker)
            db.session.flush()
            created[key] = worker.id
        db.session.commit()
        return created
