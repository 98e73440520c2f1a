from __future__ import annotations

from decimal import Decimal

from sitetrack.extensions import db
from sitetrack.models import Project, Transaction, User, Worker


def test_create_admin_command(app):
    runner = app.test_cli_runner()
    result = runner.invoke(
        args=["create-admin", "--email", "Root@Example.com", "--password", "longpass", "--name", "Root"]
    )
    assert result.exit_code == 0, result.output
    assert "root@example.com" in result.output

    with app.app_context():
        user = User.query.filter_by(email="root@example.com").one()
        assert user.is_admin
        assert user.check_password("longpass")


def test_seed_demo_is_idempotent(app):
    runner = app.test_cli_runner()
    assert runner.invoke(args=["seed-demo"]).exit_code == 0
    result = runner.invoke(args=["seed-demo"])
    assert result.exit_code == 0
    assert "projects=0" in result.output

    with app.app_context():
        assert Project.query.count() == 1
        assert Worker.query.count() == 4
        assert Transaction.query.count() == 3
        project = Project.query.one()
        assert project.utilised_budget == Decimal("84000.00")
        assert project.received_amount == Decimal("500000.00")


def test_reconcile_budgets_command(app, project):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["reconcile-budgets"])
    assert result.exit_code == 0
    assert "0 project(s) out of sync." in result.output

    with app.app_context():
        db.session.get(Project, project).received_amount = Decimal("10.00")
        db.session.commit()

    result = runner.invoke(args=["reconcile-budgets"])
    assert "1 project(s) out of sync." in result.output

    result = runner.invoke(args=["reconcile-budgets", "--fix"])
    assert "(fixed)" in result.output
    with app.app_context():
        assert db.session.get(Project, project).received_amount == Decimal("0.00")

    assert "0 project(s) out of sync." in runner.invoke(args=["reconcile-budgets"]).output
