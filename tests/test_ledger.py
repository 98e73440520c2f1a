from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest

from config import TestingConfig
from sitetrack import create_app, ledger
from sitetrack.errors import NothingToProcessError, TransactionStateError, ValidationError
from sitetrack.extensions import db
from sitetrack.models import (
    ROLE_ADMIN,
    AuditLog,
    Project,
    SalaryPayout,
    Transaction,
    User,
    Worker,
)


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


def _admin(users):
    return db.session.get(User, users["admin"])


def test_expense_waits_for_approval_before_charging_budget(ctx, users, project):
    admin = _admin(users)
    p = db.session.get(Project, project)

    txn = ledger.record_expense(p, amount="250.50", category="Materials", description="Sand", created_by=admin)
    db.session.commit()

    assert txn.status == "unapproved"
    assert db.session.get(Project, project).utilised_budget == Decimal("0.00")

    ledger.approve_transaction(txn, admin)
    db.session.commit()

    p = db.session.get(Project, project)
    assert txn.status == "approved"
    assert txn.reviewed_by == admin.id
    assert txn.reviewed_at is not None
    assert p.utilised_budget == Decimal("250.50")
    assert p.remaining_budget == Decimal("749.50")


def test_approve_or_reject_twice_is_refused(ctx, users, project):
    admin = _admin(users)
    p = db.session.get(Project, project)
    txn = ledger.record_expense(p, amount=100, category="Labour", description=None, created_by=admin)
    ledger.approve_transaction(txn, admin)

    with pytest.raises(TransactionStateError):
        ledger.approve_transaction(txn, admin)
    with pytest.raises(TransactionStateError):
        ledger.reject_transaction(txn, admin)

    assert db.session.get(Project, project).utilised_budget == Decimal("100.00")


def test_rejected_expense_never_touches_budget(ctx, users, project):
    admin = _admin(users)
    p = db.session.get(Project, project)
    txn = ledger.record_expense(p, amount=100, category="Labour", description=None, created_by=admin)
    ledger.reject_transaction(txn, admin)
    db.session.commit()

    assert txn.status == "rejected"
    assert db.session.get(Project, project).utilised_budget == Decimal("0.00")


def test_non_positive_amount_is_rejected(ctx, users, project):
    p = db.session.get(Project, project)
    with pytest.raises(ValidationError):
        ledger.record_expense(p, amount=0, category="Labour", description=None, created_by=_admin(users))


def test_income_is_approved_and_credited_immediately(ctx, users, project):
    admin = _admin(users)
    p = db.session.get(Project, project)

    txn = ledger.record_income(p, amount=Decimal("400"), description="Milestone 1", created_by=admin)
    db.session.commit()

    assert txn.status == "approved"
    assert txn.category == "Income"
    assert db.session.get(Project, project).received_amount == Decimal("400.00")


def test_deleting_approved_transactions_reverses_their_effect(ctx, users, project, workers):
    admin = _admin(users)
    p = db.session.get(Project, project)
    worker = db.session.get(Worker, workers["daily"])

    expense = ledger.record_expense(p, amount=300, category="Materials", description=None, created_by=admin)
    ledger.approve_transaction(expense, admin)
    income = ledger.record_income(p, amount=500, description=None, created_by=admin)
    advance = ledger.record_advance(worker, amount=200, created_by=admin)
    db.session.commit()

    assert worker.current_balance == Decimal("-200.00")

    for txn in (expense, income, advance):
        ledger.delete_transaction(txn, admin)
    db.session.commit()

    p = db.session.get(Project, project)
    assert p.utilised_budget == Decimal("0.00")
    assert p.received_amount == Decimal("0.00")
    assert db.session.get(Worker, workers["daily"]).current_balance == Decimal("0.00")
    assert Transaction.query.count() == 0


def test_deleting_unapproved_expense_changes_nothing(ctx, users, project):
    admin = _admin(users)
    p = db.session.get(Project, project)
    txn = ledger.record_expense(p, amount=300, category="Materials", description=None, created_by=admin)
    ledger.delete_transaction(txn, admin)
    db.session.commit()

    assert db.session.get(Project, project).utilised_budget == Decimal("0.00")


def test_settlement_reduces_balance_and_allows_overpayment(ctx, users, workers):
    admin = _admin(users)
    ledger.accrue_payroll(admin, payment_type="daily")
    worker = db.session.get(Worker, workers["daily"])
    assert worker.current_balance == Decimal("500.00")

    txn = ledger.record_settlement(worker, amount=Decimal("350"), created_by=admin)
    assert txn.type == "payout_settlement"
    assert txn.status == "approved"
    assert txn.category == "Payroll"
    assert txn.description == "Payment to Ravi"
    assert worker.current_balance == Decimal("150.00")

    ledger.record_settlement(worker, amount=Decimal("200"), created_by=admin)
    db.session.commit()
    assert db.session.get(Worker, workers["daily"]).current_balance == Decimal("-50.00")


def test_accrue_payroll_adds_base_rate(ctx, users, workers):
    admin = _admin(users)

    result = ledger.accrue_payroll(admin)
    db.session.commit()

    assert result["workers_updated"] == 3
    assert result["total_accrued"] == Decimal("30650.00")
    assert db.session.get(Worker, workers["hourly"]).current_balance == Decimal("150.00")

    ledger.accrue_payroll(admin, payment_type="hourly")
    db.session.commit()
    assert db.session.get(Worker, workers["hourly"]).current_balance == Decimal("300.00")
    assert db.session.get(Worker, workers["daily"]).current_balance == Decimal("500.00")


def test_accrue_payroll_without_workers(ctx, users):
    with pytest.raises(NothingToProcessError):
        ledger.accrue_payroll(_admin(users))


def test_pay_monthly_salaries(ctx, users, workers):
    admin = _admin(users)
    ledger.accrue_payroll(admin)

    preview = ledger.salary_preview()
    assert [w.id for w in preview["workers"]] == [workers["monthly"]]
    assert preview["total"] == Decimal("30000.00")

    payout = ledger.pay_monthly_salaries(admin, now=datetime(2024, 5, 31, 18, 0))
    db.session.commit()

    assert payout.total_amount_paid == Decimal("30000.00")
    assert len(payout.paid_workers) == 1
    line = payout.paid_workers[0]
    assert line.worker_name == "Anita"

    txn = db.session.get(Transaction, line.transaction_id)
    assert txn.type == "salary_settlement"
    assert txn.status == "approved"
    assert txn.category == "Payroll"
    assert txn.description == "Monthly salary settlement for May 2024"

    assert db.session.get(Worker, workers["monthly"]).current_balance == Decimal("0.00")
    # daily workers are untouched by the salary run
    assert db.session.get(Worker, workers["daily"]).current_balance == Decimal("500.00")

    with pytest.raises(NothingToProcessError):
        ledger.pay_monthly_salaries(admin)
    assert SalaryPayout.query.count() == 1


def test_project_financials(ctx, users, project):
    admin = _admin(users)
    p = db.session.get(Project, project)

    approved = ledger.record_expense(p, amount=600, category="Materials", description=None, created_by=admin)
    ledger.approve_transaction(approved, admin)
    ledger.record_expense(p, amount=700, category="Materials", description=None, created_by=admin)
    ledger.record_income(p, amount=1000, description=None, created_by=admin)
    db.session.commit()

    fin = ledger.project_financials(db.session.get(Project, project))
    assert fin["utilised_budget"] == Decimal("600.00")
    assert fin["pending_expenses"] == Decimal("700.00")
    assert fin["total_income"] == Decimal("1000.00")
    assert fin["remaining_budget"] == Decimal("400.00")
    assert fin["utilisation_percent"] == Decimal("60.00")
    assert fin["outstanding_order_value"] == Decimal("500.00")
    assert fin["is_over_budget"] is False


def test_reconcile_project_reports_and_fixes_drift(ctx, users, project):
    admin = _admin(users)
    p = db.session.get(Project, project)
    txn = ledger.record_expense(p, amount=200, category="Materials", description=None, created_by=admin)
    ledger.approve_transaction(txn, admin)
    db.session.commit()

    p = db.session.get(Project, project)
    assert ledger.reconcile_project(p)["in_sync"] is True

    p.utilised_budget = Decimal("999.00")
    db.session.commit()

    report = ledger.reconcile_project(p)
    assert report["in_sync"] is False
    assert report["utilised_budget"]["drift"] == Decimal("799.00")
    assert report["fixed"] is False

    report = ledger.reconcile_project(p, fix=True, actor=admin)
    db.session.commit()
    assert report["fixed"] is True
    assert db.session.get(Project, project).utilised_budget == Decimal("200.00")
    assert AuditLog.query.filter_by(entity_type="Project", action="RECONCILE").count() == 1


def test_ledger_changes_are_audited(ctx, users, project):
    admin = _admin(users)
    p = db.session.get(Project, project)
    txn = ledger.record_expense(p, amount=50, category="Materials", description=None, created_by=admin)
    ledger.approve_transaction(txn, admin)
    db.session.commit()

    actions = [a.action for a in AuditLog.query.filter_by(entity_type="Transaction", entity_id=txn.id).all()]
    assert actions == ["CREATE", "APPROVE"]
    entry = AuditLog.query.filter_by(entity_type="Project", entity_id=project).one()
    assert entry.email_snapshot == "admin@example.com"


def test_salary_run_transactions_cannot_be_deleted(ctx, users, workers):
    admin = _admin(users)
    ledger.accrue_payroll(admin, payment_type="monthly")
    payout = ledger.pay_monthly_salaries(admin)
    db.session.commit()

    txn = db.session.get(Transaction, payout.paid_workers[0].transaction_id)
    with pytest.raises(TransactionStateError) as exc:
        ledger.delete_transaction(txn, admin)
    assert exc.value.details == {"payout_id": payout.id}
    db.session.rollback()

    payout = db.session.get(SalaryPayout, payout.id)
    assert payout.total_amount_paid == Decimal("30000.00")
    assert payout.paid_workers[0].transaction_id == txn.id
    assert db.session.get(Worker, workers["monthly"]).current_balance == Decimal("0.00")
    assert db.session.get(Transaction, txn.id) is not None


def test_stale_copy_cannot_approve_twice(tmp_path):
    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'ledger.db'}"

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
        admin = User(email="admin@example.com", name="Admin", role=ROLE_ADMIN, is_active=True)
        admin.set_password("secret123")
        p = Project(
            name="Tower B",
            location="Pune",
            budget_limit=Decimal("1000.00"),
            order_value=Decimal("1500.00"),
        )
        db.session.add_all([admin, p])
        db.session.flush()
        txn = ledger.record_expense(p, amount=100, category="Steel", description=None, created_by=admin)
        db.session.commit()
        admin_id, project_id, txn_id = admin.id, p.id, txn.id

    # each app context gets its own session
    with app.app_context():
        stale = db.session.get(Transaction, txn_id)
        assert stale.status == "unapproved"

        with app.app_context():
            ledger.approve_transaction(db.session.get(Transaction, txn_id), db.session.get(User, admin_id))
            db.session.commit()

        with pytest.raises(TransactionStateError):
            ledger.approve_transaction(stale, db.session.get(User, admin_id))
        with pytest.raises(TransactionStateError):
            ledger.reject_transaction(stale, db.session.get(User, admin_id))
        db.session.rollback()

    with app.app_context():
        assert db.session.get(Project, project_id).utilised_budget == Decimal("100.00")
        db.session.remove()
        db.drop_all()
