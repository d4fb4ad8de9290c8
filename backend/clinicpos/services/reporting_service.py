# Overview: Read-only report projections over shifts, the bank ledger, sales and commissions.

from __future__ import annotations

from datetime import datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import func

from ..extensions import db
from ..models import CommissionPayment, Doctor, Expense, Sale, SaleLine, Shift
from ..models.reports import CONCEPT_OPERATING_COST, CONCEPT_OPERATING_EXPENSE, CONCEPT_OTHER_EXPENSE, CONCEPT_TYPES
from ..models.sales import PRODUCT_TYPES, SALE_COMPLETED
from ..validation import parse_date_range
from . import concept_service, ledger_service, shift_service


def _day_bounds(start_date, end_date) -> tuple[datetime, datetime]:
    """[start 00:00, day after end 00:00) for filtering timestamp columns by calendar day."""
    return datetime.combine(start_date, time.min), datetime.combine(end_date + timedelta(days=1), time.min)


def cuadre_preview(shift_id: int, bills=None, coins=None) -> dict:
    return shift_service.preview_close(shift_id, bills, coins)


def shift_dashboard() -> dict | None:
    """Live summary of the open shift; None when no shift is open."""
    shift = shift_service.get_open_shift()
    if shift is None:
        return None
    return shift_service.shift_summary(shift.id)


def ledger_report(start, end) -> dict:
    start_date, end_date = parse_date_range(start, end)
    entries = ledger_service.list_by_date_range(start_date, end_date)
    initial = ledger_service.get_active_initial_balance()

    return {
        "initial_balance": initial.to_dict() if initial else None,
        "summary": ledger_service.summarize(start_date, end_date),
        "daily": ledger_service.daily_totals(start_date, end_date),
        "entries": [entry.to_dict() for entry in entries],
    }


def income_statement(start, end) -> dict:
    """
    Income statement for [start, end].

    Income comes from completed sale lines (by product type and by doctor).
    Operating costs are commissions paid in the window plus operating_cost
    concepts; operating expenses are shift expenses plus operating_expense
    concepts; other_expense concepts come last. A concept counts when its
    period overlaps the window.
    """
    start_date, end_date = parse_date_range(start, end)
    window_start, window_end = _day_bounds(start_date, end_date)

    sale_window = (
        Sale.status == SALE_COMPLETED,
        Sale.sale_date >= start_date,
        Sale.sale_date <= end_date,
    )

    by_type_rows = (
        db.session.query(SaleLine.product_type, func.coalesce(func.sum(SaleLine.line_total_cents), 0))
        .join(Sale, SaleLine.sale_id == Sale.id)
        .filter(*sale_window)
        .group_by(SaleLine.product_type)
        .all()
    )
    by_type = {product_type: 0 for product_type in PRODUCT_TYPES}
    for product_type, total in by_type_rows:
        by_type[product_type] = int(total)

    by_doctor_rows = (
        db.session.query(
            SaleLine.doctor_id,
            Doctor.name,
            func.coalesce(func.sum(SaleLine.line_total_cents), 0),
            func.coalesce(func.sum(SaleLine.commission_cents), 0),
        )
        .join(Sale, SaleLine.sale_id == Sale.id)
        .outerjoin(Doctor, SaleLine.doctor_id == Doctor.id)
        .filter(*sale_window)
        .group_by(SaleLine.doctor_id, Doctor.name)
        .order_by(Doctor.name)
        .all()
    )
    by_doctor = [
        {
            "doctor_id": doctor_id,
            "doctor_name": name,
            "income_cents": int(income),
            "commission_accrued_cents": int(commission),
        }
        for doctor_id, name, income, commission in by_doctor_rows
    ]

    commission_cost = int(
        db.session.query(func.coalesce(func.sum(CommissionPayment.total_cents), 0))
        .filter(
            CommissionPayment.voided_at.is_(None),
            CommissionPayment.paid_at >= window_start,
            CommissionPayment.paid_at < window_end,
        )
        .scalar()
    )

    expense_rows = (
        db.session.query(Expense.category, func.coalesce(func.sum(Expense.amount_cents), 0))
        .filter(Expense.created_at >= window_start, Expense.created_at < window_end)
        .group_by(Expense.category)
        .order_by(Expense.category)
        .all()
    )
    expenses = [{"category": category, "amount_cents": int(total)} for category, total in expense_rows]
    shift_expense_total = sum(row["amount_cents"] for row in expenses)

    concepts = {concept_type: [] for concept_type in CONCEPT_TYPES}
    for concept in concept_service.list_concepts(start=start_date, end=end_date):
        concepts[concept.concept_type].append(concept.to_dict())

    def _total(rows) -> int:
        return sum(row["amount_cents"] for row in rows)

    income_total = sum(by_type.values())
    cost_total = commission_cost + _total(concepts[CONCEPT_OPERATING_COST])
    gross_profit = income_total - cost_total
    expense_total = shift_expense_total + _total(concepts[CONCEPT_OPERATING_EXPENSE])
    operating_result = gross_profit - expense_total
    other_total = _total(concepts[CONCEPT_OTHER_EXPENSE])

    return {
        "start": start_date.isoformat(),
        "end": end_date.isoformat(),
        "income": {
            "by_product_type": by_type,
            "by_doctor": by_doctor,
            "total_cents": income_total,
        },
        "commission_cost_cents": commission_cost,
        "operating_costs": {
            "commission_cents": commission_cost,
            "concepts": concepts[CONCEPT_OPERATING_COST],
            "total_cents": cost_total,
        },
        "gross_profit_cents": gross_profit,
        "operating_expenses": {
            "by_category": expenses,
            "shift_expenses_cents": shift_expense_total,
            "concepts": concepts[CONCEPT_OPERATING_EXPENSE],
            "total_cents": expense_total,
        },
        "operating_result_cents": operating_result,
        "other_expenses": {
            "concepts": concepts[CONCEPT_OTHER_EXPENSE],
            "total_cents": other_total,
        },
        "net_result_cents": operating_result - other_total,
    }


def shift_statistics(start=None, end=None) -> dict:
    """
    Counts and money totals over the shifts opened in [start, end].

    Closed shifts report the totals persisted at close; open shifts are
    computed live. Both bounds are optional.
    """
    start_date, end_date = parse_date_range(start, end, required=False)

    query = db.session.query(Shift)
    if start_date:
        query = query.filter(func.date(Shift.opened_at) >= start_date.isoformat())
    if end_date:
        query = query.filter(func.date(Shift.opened_at) <= end_date.isoformat())

    stats = {
        "start": start_date.isoformat() if start_date else None,
        "end": end_date.isoformat() if end_date else None,
        "shift_count": 0,
        "open_count": 0,
        "closed_count": 0,
        "total_sales_cents": 0,
        "expense_total_cents": 0,
        "amount_to_deposit_cents": 0,
        "cash_discrepancy_cents": 0,
    }
    for shift in query.all():
        stats["shift_count"] += 1
        if shift.is_open:
            stats["open_count"] += 1
            totals = shift_service.compute_totals(shift)
            totals.update(shift_service.compute_taxes(totals))
        else:
            stats["closed_count"] += 1
            totals = {column: getattr(shift, column) or 0 for column in shift_service.CLOSING_COLUMNS}
            stats["cash_discrepancy_cents"] += totals["cash_discrepancy_cents"]

        stats["total_sales_cents"] += totals["total_sales_cents"]
        stats["expense_total_cents"] += totals["expense_total_cents"]
        stats["amount_to_deposit_cents"] += totals["amount_to_deposit_cents"]

    count = stats["shift_count"]
    stats["average_sales_cents"] = (
        int((Decimal(stats["total_sales_cents"]) / count).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if count else 0
    )
    return stats
