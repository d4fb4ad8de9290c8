# Overview: Shift (turno) engine; open/close with cash counts, accruals, totals, taxes and cuadre.

"""
Shift Management Service

WHY: Cashier accountability. A shift is one operator's continuous session at
the register; everything paid in or out while it is open belongs to it, and
closing it compares the counted drawer against what should be there.

DESIGN PRINCIPLES:
- At most one OPEN shift system-wide (partial unique index + pre-check)
- Closed shifts are terminal; their child records become history
- Child records can be patched or removed only while their shift is open
- Every accrual (expense, voucher, transfer, deposit) writes the child row and
  its mirrored ledger entry in one transaction
- Cuadre is computed by the same function for preview and close

CUADRE:
    expected_cash        = opening + cash_sales - expenses - commission payouts
    cash_discrepancy     = closing - expected_cash
    voucher_discrepancy  = sum(vouchers)  - card_sales
    transfer_discrepancy = sum(transfers) - transfer_sales
    requires_authorization = any(|d| > tolerance)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app, has_app_context
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    AuthorizationRequired,
    DuplicateReference,
    NoActiveShift,
    NotFound,
    ShiftAlreadyOpen,
    ShiftClosed,
    ValidationError,
)
from ..extensions import db
from ..models import (
    BankTransfer,
    CardVoucher,
    CommissionPayment,
    Deposit,
    Expense,
    Sale,
    Shift,
    User,
)
from ..models.sales import SALE_COMPLETED
from ..models.shifts import SHIFT_CLOSED, SHIFT_OPEN
from ..time_utils import parse_iso_date, utcnow
from ..validation import optional_text, parse_cents, parse_int, require_text
from . import cash_counter, ledger_service
from .concurrency import lock_for_update, run_with_retry, transaction


logger = logging.getLogger(__name__)


DEFAULT_TAX_RATE_BPS = 1600
DEFAULT_CARD_FEE_BPS = 600
DEFAULT_TOLERANCE_CENTS = 1


def _config(key: str, default: int) -> int:
    if has_app_context():
        return int(current_app.config.get(key, default))
    return default


def apply_rate(amount_cents: int, rate_bps: int) -> int:
    """amount x rate, rounded half-up to the cent."""
    value = Decimal(amount_cents) * Decimal(rate_bps) / Decimal(10000)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# LOOKUPS
# =============================================================================

def get_open_shift(*, lock: bool = False) -> Shift | None:
    """The currently open shift, if any."""
    query = db.session.query(Shift).filter_by(status=SHIFT_OPEN)
    if lock:
        query = lock_for_update(query)
    return query.first()


def require_open_shift(*, lock: bool = False) -> Shift:
    shift = get_open_shift(lock=lock)
    if shift is None:
        raise NoActiveShift("No shift is open. Open a shift first.")
    return shift


def get_shift(shift_id: int, *, lock: bool = False) -> Shift:
    query = db.session.query(Shift).filter_by(id=shift_id)
    if lock:
        query = lock_for_update(query)
    shift = query.first()
    if shift is None:
        raise NotFound(f"Shift {shift_id} not found")
    return shift


def list_shifts(
    status: str | None = None,
    start=None,
    end=None,
    operator_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Shift]:
    """Most recent first. start/end filter on the calendar day the shift opened."""
    query = db.session.query(Shift)
    if status:
        status = status.upper()
        if status not in (SHIFT_OPEN, SHIFT_CLOSED):
            raise ValidationError("status must be OPEN or CLOSED")
        query = query.filter(Shift.status == status)
    if operator_id is not None:
        query = query.filter(Shift.operator_user_id == operator_id)

    start_date = parse_iso_date(start)
    end_date = parse_iso_date(end)
    if start_date:
        query = query.filter(func.date(Shift.opened_at) >= start_date.isoformat())
    if end_date:
        query = query.filter(func.date(Shift.opened_at) <= end_date.isoformat())

    return query.order_by(Shift.opened_at.desc(), Shift.id.desc()).offset(offset).limit(limit).all()


# =============================================================================
# OPEN
# =============================================================================

def open_shift(operator_id: int, bills=None, coins=None, notes: str | None = None) -> Shift:
    """
    Open a new shift with a counted drawer.

    Raises:
        ShiftAlreadyOpen: another shift is open (details carry its id)
        InvalidBreakdown / InvalidDenomination / InvalidCount: bad counts
    """
    opening_total = cash_counter.compute_total(bills, coins)
    opening_bills = cash_counter.normalize_counts(bills, cash_counter.KIND_BILL)
    opening_coins = cash_counter.normalize_counts(coins, cash_counter.KIND_COIN)

    existing = get_open_shift()
    if existing is not None:
        raise ShiftAlreadyOpen(
            f"Shift {existing.id} is already open",
            details={"shift_id": existing.id, "operator_user_id": existing.operator_user_id},
        )

    shift = Shift(
        operator_user_id=operator_id,
        status=SHIFT_OPEN,
        opened_at=utcnow(),
        opening_bills=opening_bills,
        opening_coins=opening_coins,
        opening_cash_cents=opening_total,
        notes=optional_text(notes, "notes", max_length=2000),
    )
    db.session.add(shift)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost the race on uq_shifts_single_open
        db.session.rollback()
        winner = get_open_shift()
        raise ShiftAlreadyOpen(
            "Another shift was opened concurrently",
            details={"shift_id": winner.id if winner else None},
        )

    logger.info("Shift %s opened by user %s with %s cents", shift.id, operator_id, opening_total)
    return shift


# =============================================================================
# ACCRUALS
# =============================================================================

def _check_unique_identifier(model, column, shift_id: int, value: str, label: str) -> None:
    exists = db.session.query(model.id).filter(model.shift_id == shift_id, column == value).first()
    if exists:
        raise DuplicateReference(
            f"{label} '{value}' already recorded in this shift",
            details={"shift_id": shift_id, label.lower().replace(" ", "_"): value},
        )


def record_expense(
    user_id: int,
    amount_cents: int,
    category: str,
    description: str,
    payee: str | None = None,
) -> Expense:
    """Cash paid out of the drawer; mirrored as a ledger EXPENSE."""
    amount = parse_cents(amount_cents, "amount_cents")
    category = require_text(category, "category", max_length=64)
    description = require_text(description, "description")
    payee = optional_text(payee, "payee", max_length=128)

    with transaction():
        shift = require_open_shift(lock=True)
        expense = Expense(
            shift_id=shift.id,
            amount_cents=amount,
            category=category,
            description=description,
            payee=payee,
            recorded_by_user_id=user_id,
        )
        db.session.add(expense)
        db.session.flush()

        ledger_service.append_entry(
            payee=payee or category,
            description=description,
            expense_cents=amount,
            classification=ledger_service.CLASS_OPERATING_EXPENSES,
            source_key=f"expense:{expense.id}",
            shift_id=shift.id,
            recorded_by_user_id=user_id,
            commit=False,
        )

    logger.info("Expense %s of %s cents recorded on shift %s", expense.id, amount, expense.shift_id)
    return expense


def _record_slip(
    model,
    number_field: str,
    label: str,
    classification: str,
    source_prefix: str,
    user_id: int,
    amount_cents: int,
    number: str,
    payer_name: str,
    sale_id: int | None,
):
    amount = parse_cents(amount_cents, "amount_cents")
    number = require_text(number, number_field, max_length=64)
    payer_name = require_text(payer_name, "payer_name", max_length=128)
    if sale_id is not None:
        sale_id = parse_int(sale_id, "sale_id")
        if db.session.query(Sale.id).filter_by(id=sale_id).first() is None:
            raise NotFound(f"Sale {sale_id} not found")

    with transaction():
        shift = require_open_shift(lock=True)
        _check_unique_identifier(model, getattr(model, number_field), shift.id, number, label)

        record = model(
            shift_id=shift.id,
            amount_cents=amount,
            payer_name=payer_name,
            sale_id=sale_id,
            recorded_by_user_id=user_id,
        )
        setattr(record, number_field, number)
        db.session.add(record)
        db.session.flush()

        ledger_service.append_entry(
            payee=payer_name,
            description=f"{label} {number}",
            income_cents=amount,
            classification=classification,
            deposit_number=number if model is Deposit else None,
            source_key=f"{source_prefix}:{record.id}",
            shift_id=shift.id,
            recorded_by_user_id=user_id,
            commit=False,
        )

    logger.info("%s %s of %s cents recorded on shift %s", label, number, amount, record.shift_id)
    return record


def record_voucher(user_id: int, amount_cents: int, voucher_number: str, payer_name: str, sale_id: int | None = None) -> CardVoucher:
    return _record_slip(
        CardVoucher, "voucher_number", "Card voucher", ledger_service.CLASS_CARD_VOUCHERS, "voucher",
        user_id, amount_cents, voucher_number, payer_name, sale_id,
    )


def record_transfer(user_id: int, amount_cents: int, slip_number: str, payer_name: str, sale_id: int | None = None) -> BankTransfer:
    return _record_slip(
        BankTransfer, "slip_number", "Bank transfer", ledger_service.CLASS_BANK_TRANSFERS, "transfer",
        user_id, amount_cents, slip_number, payer_name, sale_id,
    )


def record_deposit(user_id: int, amount_cents: int, slip_number: str, payer_name: str, sale_id: int | None = None) -> Deposit:
    return _record_slip(
        Deposit, "slip_number", "Bank deposit", ledger_service.CLASS_BANK_DEPOSITS, "deposit",
        user_id, amount_cents, slip_number, payer_name, sale_id,
    )


def find_vouchers_by_number(voucher_number: str) -> list[CardVoucher]:
    """Every voucher with this number, across shifts, oldest first."""
    number = require_text(voucher_number, "voucher_number", max_length=64)
    vouchers = (
        db.session.query(CardVoucher)
        .filter(CardVoucher.voucher_number == number)
        .order_by(CardVoucher.id)
        .all()
    )
    if not vouchers:
        raise NotFound(f"No card voucher numbered '{number}'")
    return vouchers


# =============================================================================
# EDIT / REMOVE ACCRUALS
# =============================================================================
#
# Child records can only change while their shift is open. The mirrored
# ledger entry is patched or removed in the same transaction.

EXPENSE_FIELDS = frozenset({"amount_cents", "category", "description", "payee"})


def _check_patch(patch: Mapping, allowed: frozenset) -> None:
    unknown = set(patch) - allowed
    if unknown:
        raise ValidationError(
            "Unknown fields: " + ", ".join(sorted(unknown)),
            details={"allowed": sorted(allowed)},
        )
    if not patch:
        raise ValidationError("Nothing to update", details={"allowed": sorted(allowed)})


def _editable_record(model, record_id: int, label: str):
    record = lock_for_update(db.session.query(model).filter_by(id=record_id)).first()
    if record is None:
        raise NotFound(f"{label} {record_id} not found")

    shift = get_shift(record.shift_id, lock=True)
    if not shift.is_open:
        raise ShiftClosed(
            f"{label} {record_id} belongs to closed shift {shift.id}",
            details={"shift_id": shift.id, "record_id": record_id},
        )
    return record


def _sync_ledger(source_key: str, **fields) -> None:
    entry = ledger_service.find_by_source(source_key)
    if entry is not None:
        ledger_service.update_entry(entry.id, commit=False, **fields)


def _remove_record(model, label: str, source_prefix: str, record_id: int) -> None:
    with transaction():
        record = _editable_record(model, record_id, label)
        shift_id = record.shift_id
        ledger_service.remove_entry_by_source(f"{source_prefix}:{record.id}", missing_ok=True, commit=False)
        db.session.delete(record)

    logger.info("%s %s removed from shift %s", label, record_id, shift_id)


def update_expense(expense_id: int, **patch) -> Expense:
    """
    Patch amount_cents, category, description or payee of an expense.

    Raises:
        ValidationError: unknown or invalid fields (nothing is written)
        NotFound: no such expense
        ShiftClosed: the expense belongs to a closed shift
    """
    _check_patch(patch, EXPENSE_FIELDS)
    values = {}
    if "amount_cents" in patch:
        values["amount_cents"] = parse_cents(patch["amount_cents"], "amount_cents")
    if "category" in patch:
        values["category"] = require_text(patch["category"], "category", max_length=64)
    if "description" in patch:
        values["description"] = require_text(patch["description"], "description")
    if "payee" in patch:
        values["payee"] = optional_text(patch["payee"], "payee", max_length=128)

    with transaction():
        expense = _editable_record(Expense, expense_id, "Expense")
        for field, value in values.items():
            setattr(expense, field, value)
        db.session.flush()

        _sync_ledger(
            f"expense:{expense.id}",
            expense_cents=expense.amount_cents,
            payee=expense.payee or expense.category,
            description=expense.description,
        )

    logger.info("Expense %s updated (%s)", expense.id, ", ".join(sorted(values)))
    return expense


def remove_expense(expense_id: int) -> None:
    _remove_record(Expense, "Expense", "expense", expense_id)


def _update_slip(model, number_field: str, label: str, source_prefix: str, record_id: int, patch: Mapping):
    _check_patch(patch, frozenset({"amount_cents", number_field, "payer_name", "sale_id"}))
    values = {}
    if "amount_cents" in patch:
        values["amount_cents"] = parse_cents(patch["amount_cents"], "amount_cents")
    if number_field in patch:
        values[number_field] = require_text(patch[number_field], number_field, max_length=64)
    if "payer_name" in patch:
        values["payer_name"] = require_text(patch["payer_name"], "payer_name", max_length=128)
    if "sale_id" in patch:
        sale_id = patch["sale_id"]
        if sale_id is not None:
            sale_id = parse_int(sale_id, "sale_id")
            if db.session.query(Sale.id).filter_by(id=sale_id).first() is None:
                raise NotFound(f"Sale {sale_id} not found")
        values["sale_id"] = sale_id

    with transaction():
        record = _editable_record(model, record_id, label)
        number = values.get(number_field)
        if number is not None and number != getattr(record, number_field):
            _check_unique_identifier(model, getattr(model, number_field), record.shift_id, number, label)

        for field, value in values.items():
            setattr(record, field, value)
        db.session.flush()

        ledger_fields = {
            "income_cents": record.amount_cents,
            "payee": record.payer_name,
            "description": f"{label} {getattr(record, number_field)}",
        }
        if model is Deposit:
            ledger_fields["deposit_number"] = record.slip_number
        _sync_ledger(f"{source_prefix}:{record.id}", **ledger_fields)

    logger.info("%s %s updated (%s)", label, record.id, ", ".join(sorted(values)))
    return record


def update_voucher(voucher_id: int, **patch) -> CardVoucher:
    return _update_slip(CardVoucher, "voucher_number", "Card voucher", "voucher", voucher_id, patch)


def remove_voucher(voucher_id: int) -> None:
    _remove_record(CardVoucher, "Card voucher", "voucher", voucher_id)


def update_transfer(transfer_id: int, **patch) -> BankTransfer:
    return _update_slip(BankTransfer, "slip_number", "Bank transfer", "transfer", transfer_id, patch)


def remove_transfer(transfer_id: int) -> None:
    _remove_record(BankTransfer, "Bank transfer", "transfer", transfer_id)


def update_deposit(deposit_id: int, **patch) -> Deposit:
    return _update_slip(Deposit, "slip_number", "Bank deposit", "deposit", deposit_id, patch)


def remove_deposit(deposit_id: int) -> None:
    _remove_record(Deposit, "Bank deposit", "deposit", deposit_id)


# =============================================================================
# TOTALS / TAXES / CUADRE
# =============================================================================

def _child_sum(model, shift_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(model.amount_cents), 0))
        .filter(model.shift_id == shift_id)
        .scalar()
    )


def compute_totals(shift: Shift) -> dict:
    """
    Aggregate everything accrued against the shift.

    Mixed sales contribute each channel amount to its own channel; voided
    sales and voided commission payments are excluded.
    """
    sales_count, total, cash, card, transfer, deposit = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.coalesce(func.sum(Sale.cash_cents), 0),
        func.coalesce(func.sum(Sale.card_cents), 0),
        func.coalesce(func.sum(Sale.transfer_cents), 0),
        func.coalesce(func.sum(Sale.deposit_cents), 0),
    ).filter(Sale.shift_id == shift.id, Sale.status == SALE_COMPLETED).one()

    commission_payouts = db.session.query(
        func.coalesce(func.sum(CommissionPayment.total_cents), 0)
    ).filter(
        CommissionPayment.shift_id == shift.id,
        CommissionPayment.voided_at.is_(None),
    ).scalar()

    return {
        "sales_count": int(sales_count),
        "total_sales_cents": int(total),
        "cash_sales_cents": int(cash),
        "card_sales_cents": int(card),
        "transfer_sales_cents": int(transfer),
        "deposit_sales_cents": int(deposit),
        "expense_total_cents": _child_sum(Expense, shift.id),
        "commission_payout_cents": int(commission_payouts),
        "voucher_total_cents": _child_sum(CardVoucher, shift.id),
        "transfer_total_cents": _child_sum(BankTransfer, shift.id),
        "deposit_total_cents": _child_sum(Deposit, shift.id),
    }


def compute_taxes(totals: Mapping, *, tax_rate_bps: int | None = None, card_fee_bps: int | None = None) -> dict:
    """
    Tax withheld per payment channel.

    cash / transfer / deposit: channel x standard rate
    card: processing fee + (card - fee) x standard rate
    """
    if tax_rate_bps is None:
        tax_rate_bps = _config("SALES_TAX_RATE_BPS", DEFAULT_TAX_RATE_BPS)
    if card_fee_bps is None:
        card_fee_bps = _config("CARD_PROCESSING_FEE_BPS", DEFAULT_CARD_FEE_BPS)

    card_sales = totals.get("card_sales_cents", 0)
    card_fee = apply_rate(card_sales, card_fee_bps)

    taxes = {
        "tax_cash_cents": apply_rate(totals.get("cash_sales_cents", 0), tax_rate_bps),
        "tax_card_cents": card_fee + apply_rate(card_sales - card_fee, tax_rate_bps),
        "tax_transfer_cents": apply_rate(totals.get("transfer_sales_cents", 0), tax_rate_bps),
        "tax_deposit_cents": apply_rate(totals.get("deposit_sales_cents", 0), tax_rate_bps),
    }
    total_tax = sum(taxes.values())
    net_sales = totals.get("total_sales_cents", 0) - total_tax

    taxes["total_tax_cents"] = total_tax
    taxes["net_sales_cents"] = net_sales
    taxes["amount_to_deposit_cents"] = (
        net_sales - totals.get("expense_total_cents", 0) - totals.get("commission_payout_cents", 0)
    )
    return taxes


def _cuadre(shift: Shift, bills, coins) -> dict:
    closing_total = cash_counter.compute_total(bills, coins)
    totals = compute_totals(shift)
    taxes = compute_taxes(totals)
    tolerance = _config("CASH_DISCREPANCY_TOLERANCE_CENTS", DEFAULT_TOLERANCE_CENTS)

    expected_cash = (
        shift.opening_cash_cents
        + totals["cash_sales_cents"]
        - totals["expense_total_cents"]
        - totals["commission_payout_cents"]
    )
    discrepancies = {
        "cash_discrepancy_cents": closing_total - expected_cash,
        "voucher_discrepancy_cents": totals["voucher_total_cents"] - totals["card_sales_cents"],
        "transfer_discrepancy_cents": totals["transfer_total_cents"] - totals["transfer_sales_cents"],
    }

    result = {
        "shift_id": shift.id,
        "opening_cash_cents": shift.opening_cash_cents,
        "closing_cash_cents": closing_total,
        "expected_cash_cents": expected_cash,
        "tolerance_cents": tolerance,
        "requires_authorization": any(abs(d) > tolerance for d in discrepancies.values()),
    }
    result.update(discrepancies)
    result.update(totals)
    result.update(taxes)
    return result


CLOSING_COLUMNS = (
    "closing_cash_cents",
    "expected_cash_cents",
    "cash_discrepancy_cents",
    "voucher_discrepancy_cents",
    "transfer_discrepancy_cents",
    "requires_authorization",
    "sales_count",
    "total_sales_cents",
    "cash_sales_cents",
    "card_sales_cents",
    "transfer_sales_cents",
    "deposit_sales_cents",
    "expense_total_cents",
    "commission_payout_cents",
    "voucher_total_cents",
    "transfer_total_cents",
    "deposit_total_cents",
    "tax_cash_cents",
    "tax_card_cents",
    "tax_transfer_cents",
    "tax_deposit_cents",
    "net_sales_cents",
    "amount_to_deposit_cents",
)


def _closed_cuadre(shift: Shift) -> dict:
    """The cuadre persisted when the shift was closed."""
    result = {
        "shift_id": shift.id,
        "status": shift.status,
        "opening_cash_cents": shift.opening_cash_cents,
        "tolerance_cents": _config("CASH_DISCREPANCY_TOLERANCE_CENTS", DEFAULT_TOLERANCE_CENTS),
    }
    result.update({column: getattr(shift, column) for column in CLOSING_COLUMNS})
    result["total_tax_cents"] = sum(
        getattr(shift, column) or 0
        for column in ("tax_cash_cents", "tax_card_cents", "tax_transfer_cents", "tax_deposit_cents")
    )
    result["authorized_by_user_id"] = shift.authorized_by_user_id
    result["authorization_note"] = shift.authorization_note
    return result


def preview_close(shift_id: int, bills=None, coins=None) -> dict:
    """
    Cuadre for a prospective close. Writes nothing.

    A closed shift returns the cuadre persisted at close; the counts passed
    in are ignored since the drawer was already counted.
    """
    shift = get_shift(shift_id)
    if not shift.is_open:
        return _closed_cuadre(shift)
    result = _cuadre(shift, bills, coins)
    result["status"] = shift.status
    return result


def _resolve_authorizer(authorization, cuadre: dict) -> tuple[User, str]:
    details = {
        "cash_discrepancy_cents": cuadre["cash_discrepancy_cents"],
        "voucher_discrepancy_cents": cuadre["voucher_discrepancy_cents"],
        "transfer_discrepancy_cents": cuadre["transfer_discrepancy_cents"],
        "tolerance_cents": cuadre["tolerance_cents"],
    }
    if not isinstance(authorization, Mapping):
        raise AuthorizationRequired(
            "Discrepancy exceeds tolerance; an administrator must authorize this close",
            details=details,
        )

    raw_user = authorization.get("authorized_by")
    note = authorization.get("note")
    if raw_user is None or not isinstance(note, str) or not note.strip():
        raise AuthorizationRequired("Authorization requires an authorizer and a note", details=details)

    try:
        authorizer_id = parse_int(raw_user, "authorized_by")
    except ValidationError:
        raise AuthorizationRequired("authorized_by must be a user id", details=details)

    authorizer = db.session.query(User).filter_by(id=authorizer_id).first()
    if authorizer is None or not authorizer.is_active or not authorizer.is_admin:
        raise AuthorizationRequired("Authorizer must be an active administrator", details=details)

    return authorizer, note.strip()


def close_shift(
    shift_id: int,
    bills=None,
    coins=None,
    closed_by_id: int | None = None,
    authorization=None,
    notes: str | None = None,
) -> Shift:
    """
    Close a shift with the final drawer count.

    IMMUTABLE: once closed the shift cannot be reopened.

    Raises:
        NotFound, ShiftClosed
        AuthorizationRequired: discrepancy above tolerance without a valid
            {"authorized_by": admin_user_id, "note": "..."}
    """
    closing_bills = cash_counter.normalize_counts(bills, cash_counter.KIND_BILL)
    closing_coins = cash_counter.normalize_counts(coins, cash_counter.KIND_COIN)
    notes = optional_text(notes, "notes", max_length=2000)

    def _op():
        shift = get_shift(shift_id, lock=True)
        if not shift.is_open:
            raise ShiftClosed(
                f"Shift {shift_id} is already closed",
                details={"shift_id": shift_id, "closed_at": shift.closed_at.isoformat() if shift.closed_at else None},
            )

        cuadre = _cuadre(shift, bills, coins)

        if cuadre["requires_authorization"]:
            authorizer, note = _resolve_authorizer(authorization, cuadre)
            shift.authorized_by_user_id = authorizer.id
            shift.authorization_note = note
            shift.authorized_at = utcnow()

        for column in CLOSING_COLUMNS:
            setattr(shift, column, cuadre[column])

        shift.closing_bills = closing_bills
        shift.closing_coins = closing_coins
        shift.status = SHIFT_CLOSED
        shift.closed_at = utcnow()
        shift.closed_by_user_id = closed_by_id if closed_by_id is not None else shift.operator_user_id
        if notes:
            shift.notes = notes

        db.session.commit()
        return shift

    try:
        shift = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Shift %s closed: expected %s, counted %s, discrepancy %s (authorized_by=%s)",
        shift.id, shift.expected_cash_cents, shift.closing_cash_cents,
        shift.cash_discrepancy_cents, shift.authorized_by_user_id,
    )
    return shift


# =============================================================================
# DASHBOARD
# =============================================================================

def shift_summary(shift_id: int) -> dict:
    """
    Live view of a shift: totals, taxes, cash that should be in the drawer
    right now, and every child record.
    """
    shift = get_shift(shift_id)
    totals = compute_totals(shift)
    taxes = compute_taxes(totals)

    def _children(model):
        rows = db.session.query(model).filter_by(shift_id=shift.id).order_by(model.id).all()
        return [row.to_dict() for row in rows]

    sales = (
        db.session.query(Sale)
        .filter_by(shift_id=shift.id)
        .order_by(Sale.id)
        .all()
    )

    return {
        "shift": shift.to_dict(),
        "totals": totals,
        "taxes": taxes,
        "current_cash_cents": (
            shift.opening_cash_cents
            + totals["cash_sales_cents"]
            - totals["expense_total_cents"]
            - totals["commission_payout_cents"]
        ),
        "sales": [sale.to_dict() for sale in sales],
        "expenses": _children(Expense),
        "vouchers": _children(CardVoucher),
        "transfers": _children(BankTransfer),
        "deposits": _children(Deposit),
    }
