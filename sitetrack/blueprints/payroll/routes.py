"""
Payroll routes (admin only).

- /payroll/accrue            start a new payment cycle (balance += base rate)
- /payroll/salaries/preview  monthly workers due and the total
- /payroll/salaries/pay      settle all monthly balances in one batch
- /payroll/salaries/history  past salary runs
"""

from flask import Blueprint, jsonify
from flask_login import current_user, login_required

from ... import ledger
from ...extensions import db
from ...models import PAYMENT_TYPES, SalaryPayout
from ...security import admin_required
from ...utils import get_payload, jsonable, require_choice

payroll_bp = Blueprint("payroll", __name__, url_prefix="/payroll")


@payroll_bp.route("/accrue", methods=["POST"])
@login_required
@admin_required
def accrue():
    """Optional body: {"payment_type": "daily"} to accrue only one kind of worker."""
    data = get_payload()
    payment_type = None
    if data.get("payment_type") not in (None, "", "all"):
        payment_type = require_choice(data, "payment_type", PAYMENT_TYPES)

    result = ledger.accrue_payroll(current_user, payment_type=payment_type)
    db.session.commit()

    return jsonify({"ok": True, **jsonable(result)})


@payroll_bp.route("/salaries/preview")
@login_required
@admin_required
def salaries_preview():
    preview = ledger.salary_preview()
    return jsonify(
        {
            "ok": True,
            "workers": [w.to_dict() for w in preview["workers"]],
            "total": float(preview["total"]),
        }
    )


@payroll_bp.route("/salaries/pay", methods=["POST"])
@login_required
@admin_required
def pay_salaries():
    payout = ledger.pay_monthly_salaries(current_user)
    db.session.commit()
    return jsonify({"ok": True, "payout": payout.to_dict()}), 201


@payroll_bp.route("/salaries/history")
@login_required
@admin_required
def salaries_history():
    payouts = SalaryPayout.query.order_by(SalaryPayout.payout_date.desc(), SalaryPayout.id.desc()).all()
    return jsonify({"ok": True, "payouts": [p.to_dict() for p in payouts]})


@payroll_bp.route("/salaries/<int:payout_id>")
@login_required
@admin_required
def salary_payout_detail(payout_id: int):
    payout = db.get_or_404(SalaryPayout, payout_id)
    data = payout.to_dict()
    data["paid_by_name"] = payout.payer.name if payout.payer else None
    return jsonify({"ok": True, "payout": data})
