"""
sitetrack/ledger.py

Payroll & budget ledger.

The only module that writes the running totals:
- Project.utilised_budget  = sum of approved expense transactions
- Project.received_amount  = sum of approved income transactions
- Worker.current_balance   = accrued pay - approved payouts (advances, settlements, salaries)

Every change to a running total happens in the same unit of work as the
Transaction row that causes it, with the affected Project/Worker row locked
(SELECT ... FOR UPDATE where the database supports it).

IMPORTANT:
- Functions here add to the session and flush; they never commit.
  The caller (route or CLI command) owns the commit/rollback.
- Amounts are Decimals rounded to cents.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from .audit import log_action, serialize_model
from .errors import NothingToProcessError, TransactionStateError, ValidationError
from .extensions import db
from .logger import get_logger
from .models import (
    PAYOUT_TYPES,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_UNAPPROVED,
    TXN_EXPENSE,
    TXN_INCOME,
    TXN_PAYOUT_ADVANCE,
    TXN_PAYOUT_SETTLEMENT,
    TXN_SALARY_SETTLEMENT,
    Project,
    SalaryPayout,
    SalaryPayoutLine,
    Transaction,
    Worker,
    money,
    to_decimal,
)

logger = get_logger(__name__)

PAYROLL_CATEGORY = "Payroll"
INCOME_CATEGORY = "Income"


# ---------------------------------------------------------------------
# Row locking
# ---------------------------------------------------------------------
def _lock_project(project_id: int) -> Project:
    return db.session.get(Project, project_id, with_for_update=True, populate_existing=True)


def _lock_worker(worker_id: int) -> Worker:
    return db.session.get(Worker, worker_id, with_for_update=True, populate_existing=True)


def _lock_transaction(txn: Transaction) -> Transaction:
    """Re-read the row under lock so the status check sees committed state."""
    locked = db.session.get(Transaction, txn.id, with_for_update=True, populate_existing=True)
    if locked is None:
        raise TransactionStateError("Transaction no longer exists.")
    return locked


def _positive_amount(amount) -> Decimal:
    value = money(amount)
    if value <= 0:
        raise ValidationError("Amount must be a positive number.", details={"field": "amount"})
    return value


# ---------------------------------------------------------------------
# Effect of a transaction on the running totals
# ---------------------------------------------------------------------
def _apply_effect(txn: Transaction, sign: int, actor) -> None:
    """
    Apply (sign=+1) or reverse (sign=-1) the effect of an approved transaction.

    expense -> project.utilised_budget
    income  -> project.received_amount
    payouts -> worker.current_balance (a payout reduces what the worker is owed)
    """
    amount = money(txn.amount) * sign

    if txn.type in (TXN_EXPENSE, TXN_INCOME):
        if txn.project_id is None:
            return
        project = _lock_project(txn.project_id)
        if project is None:
            return
        before = serialize_model(project)
        if txn.type == TXN_EXPENSE:
            project.utilised_budget = money(to_decimal(project.utilised_budget) + amount)
        else:
            project.received_amount = money(to_decimal(project.received_amount) + amount)
        db.session.flush()
        log_action(project, "UPDATE", before=before, after=serialize_model(project), actor=actor)
        return

    if txn.type in PAYOUT_TYPES:
        if txn.worker_id is None:
            return
        worker = _lock_worker(txn.worker_id)
        if worker is None:
            return
        before = serialize_model(worker)
        worker.current_balance = money(to_decimal(worker.current_balance) - amount)
        db.session.flush()
        log_action(worker, "UPDATE", before=before, after=serialize_model(worker), actor=actor)
        if worker.current_balance < 0:
            logger.warning("Worker %s balance is negative after %s: %s", worker.id, txn.type, worker.current_balance)


def _new_transaction(**fields) -> Transaction:
    txn = Transaction(**fields)
    db.session.add(txn)
    db.session.flush()
    return txn


# ---------------------------------------------------------------------
# Project transactions
# ---------------------------------------------------------------------
def record_expense(project: Project, *, amount, category: str, description: str, created_by) -> Transaction:
    """Log a site expense. It waits as `unapproved` and does not touch the budget yet."""
    txn = _new_transaction(
        project_id=project.id,
        type=TXN_EXPENSE,
        amount=_positive_amount(amount),
        category=category,
        description=description,
        status=STATUS_UNAPPROVED,
        created_by=created_by.id,
    )
    log_action(txn, "CREATE", after=serialize_model(txn), actor=created_by)
    logger.info("Expense %s recorded on project %s: %s", txn.id, project.id, txn.amount)
    return txn


def record_income(
    project: Project,
    *,
    amount,
    description: str,
    created_by,
    category: str = INCOME_CATEGORY,
    now: datetime | None = None,
) -> Transaction:
    """Record a client payment. Income is pre-approved and credited immediately."""
    now = now or datetime.utcnow()
    txn = _new_transaction(
        project_id=project.id,
        type=TXN_INCOME,
        amount=_positive_amount(amount),
        category=category,
        description=description,
        status=STATUS_APPROVED,
        timestamp=now,
        created_by=created_by.id,
        reviewed_by=created_by.id,
        reviewed_at=now,
    )
    log_action(txn, "CREATE", after=serialize_model(txn), actor=created_by)
    _apply_effect(txn, +1, created_by)
    logger.info("Income %s recorded on project %s: %s", txn.id, project.id, txn.amount)
    return txn


def approve_transaction(txn: Transaction, reviewer, *, now: datetime | None = None) -> Transaction:
    txn = _lock_transaction(txn)
    if txn.status != STATUS_UNAPPROVED:
        raise TransactionStateError(f"Transaction is already {txn.status}.")

    before = serialize_model(txn)
    txn.status = STATUS_APPROVED
    txn.reviewed_by = reviewer.id
    txn.reviewed_at = now or datetime.utcnow()
    db.session.flush()
    log_action(txn, "APPROVE", before=before, after=serialize_model(txn), actor=reviewer)

    _apply_effect(txn, +1, reviewer)
    logger.info("Transaction %s (%s) approved by user %s", txn.id, txn.type, reviewer.id)
    return txn


def reject_transaction(txn: Transaction, reviewer, *, now: datetime | None = None) -> Transaction:
    txn = _lock_transaction(txn)
    if txn.status != STATUS_UNAPPROVED:
        raise TransactionStateError(f"Transaction is already {txn.status}.")

    before = serialize_model(txn)
    txn.status = STATUS_REJECTED
    txn.reviewed_by = reviewer.id
    txn.reviewed_at = now or datetime.utcnow()
    db.session.flush()
    log_action(txn, "REJECT", before=before, after=serialize_model(txn), actor=reviewer)
    logger.info("Transaction %s (%s) rejected by user %s", txn.id, txn.type, reviewer.id)
    return txn


def delete_transaction(txn: Transaction, actor) -> None:
    """
    Delete a transaction, reversing its effect first when it was approved.

    Transactions recorded by a salary run belong to that run's history and
    cannot be deleted on their own.
    """
    txn = _lock_transaction(txn)

    line = SalaryPayoutLine.query.filter_by(transaction_id=txn.id).first()
    if line is not None:
        raise TransactionStateError(
            f"Transaction is part of salary payout {line.payout_id} and cannot be deleted.",
            details={"payout_id": line.payout_id},
        )

    if txn.status == STATUS_APPROVED:
        _apply_effect(txn, -1, actor)

    log_action(txn, "DELETE", before=serialize_model(txn), actor=actor)
    db.session.delete(txn)
    db.session.flush()
    logger.info("Transaction %s (%s, %s) deleted by user %s", txn.id, txn.type, txn.status, actor.id)


# ---------------------------------------------------------------------
# Worker payouts
# ---------------------------------------------------------------------
def _record_payout(
    worker: Worker,
    txn_type: str,
    *,
    amount,
    description: str,
    created_by,
    project: Project | None = None,
    now: datetime | None = None,
) -> Transaction:
    now = now or datetime.utcnow()
    txn = _new_transaction(
        project_id=project.id if project else None,
        worker_id=worker.id,
        type=txn_type,
        amount=_positive_amount(amount),
        category=PAYROLL_CATEGORY,
        description=description,
        status=STATUS_APPROVED,
        timestamp=now,
        created_by=created_by.id,
        reviewed_by=created_by.id,
        reviewed_at=now,
    )
    log_action(txn, "CREATE", after=serialize_model(txn), actor=created_by)
    _apply_effect(txn, +1, created_by)
    return txn


def record_settlement(
    worker: Worker,
    *,
    amount,
    created_by,
    description: str | None = None,
    project: Project | None = None,
) -> Transaction:
    """Pay a worker (part of) their outstanding balance."""
    txn = _record_payout(
        worker,
        TXN_PAYOUT_SETTLEMENT,
        amount=amount,
        description=description or f"Payment to {worker.name}",
        created_by=created_by,
        project=project,
    )
    logger.info("Settlement %s paid to worker %s: %s", txn.id, worker.id, txn.amount)
    return txn


def record_advance(
    worker: Worker,
    *,
    amount,
    created_by,
    description: str | None = None,
    project: Project | None = None,
) -> Transaction:
    """Pay a worker ahead of earnings; the balance may go negative."""
    txn = _record_payout(
        worker,
        TXN_PAYOUT_ADVANCE,
        amount=amount,
        description=description or f"Advance to {worker.name}",
        created_by=created_by,
        project=project,
    )
    logger.info("Advance %s paid to worker %s: %s", txn.id, worker.id, txn.amount)
    return txn


# ---------------------------------------------------------------------
# Payroll cycles
# ---------------------------------------------------------------------
def accrue_payroll(actor, *, payment_type: str | None = None) -> dict:
    """
    Start a new payment cycle: add each worker's base rate to their balance.

    When payment_type is given, only workers paid that way are accrued.
    """
    q = Worker.query
    if payment_type:
        q = q.filter(Worker.payment_type == payment_type)
    workers = q.order_by(Worker.id.asc()).with_for_update().all()

    if not workers:
        raise NothingToProcessError("There are no workers in the system to update.")

    total = Decimal("0.00")
    for worker in workers:
        before = serialize_model(worker)
        rate = money(worker.base_rate)
        worker.current_balance = money(to_decimal(worker.current_balance) + rate)
        total += rate
        db.session.flush()
        log_action(worker, "ACCRUE", before=before, after=serialize_model(worker), actor=actor)

    logger.info("Payroll accrued for %d workers (%s), total %s", len(workers), payment_type or "all", total)
    return {"workers_updated": len(workers), "total_accrued": money(total)}


def _workers_due_salary():
    return (
        Worker.query.filter(Worker.payment_type == "monthly", Worker.current_balance > 0)
        .order_by(Worker.name.asc(), Worker.id.asc())
    )


def salary_preview() -> dict:
    """Monthly workers with a pending balance and the total a salary run would pay."""
    workers = _workers_due_salary().all()
    total = sum((money(w.current_balance) for w in workers), Decimal("0.00"))
    return {"workers": workers, "total": money(total)}


def pay_monthly_salaries(paid_by, *, now: datetime | None = None) -> SalaryPayout:
    """
    Settle every monthly worker's balance in one batch.

    Creates the SalaryPayout history record, one approved salary_settlement
    transaction per worker, and zeroes the balances.
    """
    workers = _workers_due_salary().with_for_update().all()
    if not workers:
        raise NothingToProcessError("There are no workers with pending monthly balances.")

    now = now or datetime.utcnow()
    period = now.strftime("%B %Y")

    payout = SalaryPayout(payout_date=now, paid_by=paid_by.id, total_amount_paid=Decimal("0.00"))
    db.session.add(payout)

    total = Decimal("0.00")
    for worker in workers:
        amount = money(worker.current_balance)
        txn = _new_transaction(
            worker_id=worker.id,
            type=TXN_SALARY_SETTLEMENT,
            amount=amount,
            category=PAYROLL_CATEGORY,
            description=f"Monthly salary settlement for {period}",
            status=STATUS_APPROVED,
            timestamp=now,
            created_by=paid_by.id,
            reviewed_by=paid_by.id,
            reviewed_at=now,
        )
        log_action(txn, "CREATE", after=serialize_model(txn), actor=paid_by)
        _apply_effect(txn, +1, paid_by)

        payout.paid_workers.append(
            SalaryPayoutLine(
                worker_id=worker.id,
                worker_name=worker.name,
                amount_paid=amount,
                transaction_id=txn.id,
            )
        )
        total += amount

    payout.total_amount_paid = money(total)
    db.session.flush()
    log_action(payout, "CREATE", after=serialize_model(payout), actor=paid_by)

    logger.info("Salary run %s paid %d workers, total %s", payout.id, len(workers), payout.total_amount_paid)
    return payout


# ---------------------------------------------------------------------
# Financials & reconciliation
# ---------------------------------------------------------------------
def _project_sums(project_id: int) -> dict[tuple[str, str], Decimal]:
    rows = (
        db.session.query(
            Transaction.type,
            Transaction.status,
            func.coalesce(func.sum(Transaction.amount), 0),
        )
        .filter(Transaction.project_id == project_id)
        .group_by(Transaction.type, Transaction.status)
        .all()
    )
    return {(t, s): money(total) for t, s, total in rows}


def project_financials(project: Project) -> dict:
    """Budget figures computed from the project's transactions."""
    sums = _project_sums(project.id)
    zero = Decimal("0.00")

    utilised = sums.get((TXN_EXPENSE, STATUS_APPROVED), zero)
    income = sums.get((TXN_INCOME, STATUS_APPROVED), zero)
    pending = sums.get((TXN_EXPENSE, STATUS_UNAPPROVED), zero)
    advances = sums.get((TXN_PAYOUT_ADVANCE, STATUS_APPROVED), zero) + sums.get(
        (TXN_PAYOUT_SETTLEMENT, STATUS_APPROVED), zero
    )

    limit = money(project.budget_limit)
    percent = money(utilised * Decimal("100") / limit) if limit else zero

    return {
        "budget_limit": limit,
        "utilised_budget": utilised,
        "remaining_budget": money(limit - utilised),
        "utilisation_percent": percent,
        "is_over_budget": utilised > limit,
        "pending_expenses": pending,
        "total_income": income,
        "order_value": money(project.order_value),
        "outstanding_order_value": money(to_decimal(project.order_value) - income),
        "worker_payouts": money(advances),
    }


def reconcile_project(project: Project, *, fix: bool = False, actor=None) -> dict:
    """
    Compare stored running totals with the totals computed from transactions.

    With fix=True the stored totals are overwritten by the computed ones.
    """
    sums = _project_sums(project.id)
    zero = Decimal("0.00")
    computed = {
        "utilised_budget": sums.get((TXN_EXPENSE, STATUS_APPROVED), zero),
        "received_amount": sums.get((TXN_INCOME, STATUS_APPROVED), zero),
    }

    report = {"project_id": project.id, "name": project.name, "fixed": False}
    drifted = False
    for field, value in computed.items():
        stored = money(getattr(project, field))
        drift = money(stored - value)
        report[field] = {"stored": stored, "computed": value, "drift": drift}
        drifted = drifted or drift != 0

    report["in_sync"] = not drifted

    if fix and drifted:
        locked = _lock_project(project.id)
        before = serialize_model(locked)
        locked.utilised_budget = computed["utilised_budget"]
        locked.received_amount = computed["received_amount"]
        db.session.flush()
        log_action(locked, "RECONCILE", before=before, after=serialize_model(locked), actor=actor)
        report["fixed"] = True
        logger.warning("Project %s totals repaired: %s", project.id, report)

    return report
