# Overview: Bank ledger store; append/update/remove entries and keep the running balance consistent.

"""
Bank Ledger Invariants (authoritative)

- Entries are ordered by (entry_date, id). id breaks ties between entries of
  the same day in insertion order.
- running_balance_cents is derived: for every entry it equals the active
  initial balance plus all income minus all expense up to and including that
  entry. Every mutation ends with recompute_all() in the same transaction.
- Exactly one of income_cents / expense_cents is positive.
- No active initial balance -> every mutation raises MissingInitialBalance.
- source_key links an entry to the accrual event that produced it; the same
  event can never be mirrored twice.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateReference, MissingInitialBalance, NotFound, ValidationError
from ..extensions import db
from ..models import InitialBalance, LedgerEntry
from ..models.ledger import DIRECTION_EXPENSE, DIRECTION_INCOME, DIRECTIONS
from ..time_utils import today, utcnow
from ..validation import (
    optional_text,
    parse_cents,
    parse_date,
    parse_date_range,
    require_text,
)
from .concurrency import lock_for_update


logger = logging.getLogger(__name__)


# Classifications written by accrual events
CLASS_SALES = "Sales"
CLASS_OPERATING_EXPENSES = "Operating expenses"
CLASS_BANK_DEPOSITS = "Bank deposits"
CLASS_BANK_TRANSFERS = "Bank transfers"
CLASS_CARD_VOUCHERS = "Card vouchers"
CLASS_COMMISSION_PAYMENTS = "Commission payments"

UPDATABLE_FIELDS = frozenset({
    "entry_date",
    "payee",
    "description",
    "classification",
    "income_cents",
    "expense_cents",
    "check_number",
    "deposit_number",
})


# =============================================================================
# INITIAL BALANCE
# =============================================================================

def get_active_initial_balance(*, lock: bool = False) -> InitialBalance | None:
    query = db.session.query(InitialBalance).filter_by(is_active=True)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _require_initial_balance(*, lock: bool = False) -> InitialBalance:
    initial = get_active_initial_balance(lock=lock)
    if initial is None:
        raise MissingInitialBalance("Register an initial balance before recording ledger entries")
    return initial


def register_initial_balance(
    amount_cents: int,
    user_id: int,
    notes: str | None = None,
    *,
    commit: bool = True,
) -> InitialBalance:
    """
    Replace the active initial balance and rebalance the whole ledger.

    The previous row is deactivated (kept for audit), a new active row is
    inserted and every running balance is recomputed from it.
    """
    amount = parse_cents(amount_cents, "amount_cents", allow_zero=True, allow_negative=True)
    notes = optional_text(notes, "notes", max_length=2000)

    current = get_active_initial_balance(lock=True)
    if current is not None:
        current.is_active = False
        current.deactivated_at = utcnow()
        # Deactivate before inserting so the single-active index never sees two rows
        db.session.flush()

    initial = InitialBalance(
        amount_cents=amount,
        registered_by_user_id=user_id,
        notes=notes,
        is_active=True,
    )
    db.session.add(initial)
    db.session.flush()

    recompute_all(commit=False)

    if commit:
        db.session.commit()

    logger.info(
        "Initial balance registered: %s cents by user %s (replaced=%s)",
        amount, user_id, current.id if current else None,
    )
    return initial


# =============================================================================
# MUTATIONS
# =============================================================================

def _split_amounts(income_cents, expense_cents) -> tuple[int, int, str]:
    income = parse_cents(income_cents or 0, "income_cents", allow_zero=True)
    expense = parse_cents(expense_cents or 0, "expense_cents", allow_zero=True)
    if (income > 0) == (expense > 0):
        raise ValidationError(
            "Exactly one of income_cents or expense_cents must be greater than zero",
            details={"income_cents": income, "expense_cents": expense},
        )
    return income, expense, DIRECTION_INCOME if income > 0 else DIRECTION_EXPENSE


def append_entry(
    *,
    payee: str,
    description: str,
    recorded_by_user_id: int,
    income_cents: int = 0,
    expense_cents: int = 0,
    entry_date: date | str | None = None,
    classification: str | None = None,
    check_number: str | None = None,
    deposit_number: str | None = None,
    source_key: str | None = None,
    shift_id: int | None = None,
    commit: bool = True,
) -> LedgerEntry:
    """
    Insert one ledger entry and rebalance.

    The row is inserted with a provisional balance; recompute_all() then
    writes the real one for it and for every later entry.

    Raises:
        MissingInitialBalance: no active initial balance
        DuplicateReference: source_key already mirrored
        ValidationError: bad amounts or text
    """
    _require_initial_balance()

    income, expense, direction = _split_amounts(income_cents, expense_cents)
    entry_day = parse_date(entry_date, "entry_date", required=False) or today()

    if source_key is not None and find_by_source(source_key) is not None:
        raise DuplicateReference(
            f"Ledger entry for '{source_key}' already exists",
            details={"source_key": source_key},
        )

    entry = LedgerEntry(
        entry_date=entry_day,
        payee=require_text(payee, "payee", max_length=128),
        description=require_text(description, "description"),
        classification=optional_text(classification, "classification", max_length=64),
        direction=direction,
        income_cents=income,
        expense_cents=expense,
        running_balance_cents=0,
        check_number=optional_text(check_number, "check_number", max_length=64),
        deposit_number=optional_text(deposit_number, "deposit_number", max_length=64),
        source_key=source_key,
        shift_id=shift_id,
        recorded_by_user_id=recorded_by_user_id,
    )
    db.session.add(entry)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateReference(
            f"Ledger entry for '{source_key}' already exists",
            details={"source_key": source_key},
        )

    recompute_all(commit=False)

    if commit:
        db.session.commit()

    return entry


def update_entry(entry_id: int, *, commit: bool = True, **patch) -> LedgerEntry:
    """
    Patch the editable fields of an entry and rebalance.

    Moving an entry to another date changes its position in the sequence, so
    balances are always recomputed over the full ledger.
    """
    _require_initial_balance()

    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            "Unknown ledger fields: " + ", ".join(sorted(unknown)),
            details={"allowed": sorted(UPDATABLE_FIELDS)},
        )

    entry = lock_for_update(db.session.query(LedgerEntry).filter_by(id=entry_id)).first()
    if entry is None:
        raise NotFound(f"Ledger entry {entry_id} not found")

    if "income_cents" in patch or "expense_cents" in patch:
        income, expense, direction = _split_amounts(
            patch.get("income_cents", entry.income_cents),
            patch.get("expense_cents", entry.expense_cents),
        )
        entry.income_cents = income
        entry.expense_cents = expense
        entry.direction = direction

    if "entry_date" in patch:
        entry.entry_date = parse_date(patch["entry_date"], "entry_date")
    if "payee" in patch:
        entry.payee = require_text(patch["payee"], "payee", max_length=128)
    if "description" in patch:
        entry.description = require_text(patch["description"], "description")
    if "classification" in patch:
        entry.classification = optional_text(patch["classification"], "classification", max_length=64)
    if "check_number" in patch:
        entry.check_number = optional_text(patch["check_number"], "check_number", max_length=64)
    if "deposit_number" in patch:
        entry.deposit_number = optional_text(patch["deposit_number"], "deposit_number", max_length=64)

    db.session.flush()
    recompute_all(commit=False)

    if commit:
        db.session.commit()

    return entry


def remove_entry(entry_id: int, *, commit: bool = True) -> None:
    _require_initial_balance()

    entry = lock_for_update(db.session.query(LedgerEntry).filter_by(id=entry_id)).first()
    if entry is None:
        raise NotFound(f"Ledger entry {entry_id} not found")

    db.session.delete(entry)
    db.session.flush()
    recompute_all(commit=False)

    if commit:
        db.session.commit()


def remove_entry_by_source(source_key: str, *, missing_ok: bool = False, commit: bool = True) -> bool:
    """
    Delete the entry mirrored from an accrual event (used by voids).

    Returns False when nothing was mirrored and missing_ok is set.
    """
    _require_initial_balance()

    entry = lock_for_update(db.session.query(LedgerEntry).filter_by(source_key=source_key)).first()
    if entry is None:
        if missing_ok:
            return False
        raise NotFound(f"Ledger entry for '{source_key}' not found")

    db.session.delete(entry)
    db.session.flush()
    recompute_all(commit=False)

    if commit:
        db.session.commit()
    return True


def recompute_all(*, commit: bool = True) -> dict:
    """
    Rewrite every running balance from the active initial balance.

    Locks the initial balance and all entries, walks them once in
    (entry_date, id) order and only touches rows whose stored balance
    differs. Running it twice in a row changes nothing the second time.
    """
    initial = _require_initial_balance(lock=True)

    entries = lock_for_update(
        db.session.query(LedgerEntry).order_by(LedgerEntry.entry_date.asc(), LedgerEntry.id.asc())
    ).all()

    balance = initial.amount_cents
    updated = 0
    for entry in entries:
        balance += entry.income_cents - entry.expense_cents
        if entry.running_balance_cents != balance:
            entry.running_balance_cents = balance
            updated += 1

    db.session.flush()

    if commit:
        db.session.commit()

    logger.debug("Ledger recomputed: %s entries, %s updated, final balance %s", len(entries), updated, balance)
    return {
        "entry_count": len(entries),
        "updated_count": updated,
        "initial_balance_cents": initial.amount_cents,
        "final_balance_cents": balance,
    }


# =============================================================================
# QUERIES (read-only)
# =============================================================================

def _ordered(query):
    return query.order_by(LedgerEntry.entry_date.asc(), LedgerEntry.id.asc())


def find_by_source(source_key: str) -> LedgerEntry | None:
    return db.session.query(LedgerEntry).filter_by(source_key=source_key).first()


def get_entry(entry_id: int) -> LedgerEntry:
    entry = db.session.query(LedgerEntry).filter_by(id=entry_id).first()
    if entry is None:
        raise NotFound(f"Ledger entry {entry_id} not found")
    return entry


def list_by_date_range(start, end) -> list[LedgerEntry]:
    start_date, end_date = parse_date_range(start, end)
    return _ordered(
        db.session.query(LedgerEntry).filter(
            LedgerEntry.entry_date >= start_date,
            LedgerEntry.entry_date <= end_date,
        )
    ).all()


def list_by_classification(classification: str) -> list[LedgerEntry]:
    tag = require_text(classification, "classification", max_length=64)
    return _ordered(db.session.query(LedgerEntry).filter(LedgerEntry.classification == tag)).all()


def list_entries(
    start=None,
    end=None,
    classification: str | None = None,
    direction: str | None = None,
    *,
    limit: int | None = None,
    offset: int = 0,
) -> list[LedgerEntry]:
    start_date, end_date = parse_date_range(start, end, required=False)

    query = db.session.query(LedgerEntry)
    if start_date:
        query = query.filter(LedgerEntry.entry_date >= start_date)
    if end_date:
        query = query.filter(LedgerEntry.entry_date <= end_date)
    if classification:
        query = query.filter(LedgerEntry.classification == classification)
    if direction:
        direction = direction.upper()
        if direction not in DIRECTIONS:
            raise ValidationError(f"direction must be one of {', '.join(DIRECTIONS)}")
        query = query.filter(LedgerEntry.direction == direction)

    query = _ordered(query)
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query.all()


def _sums(*filters) -> tuple[int, int, int]:
    income, expense, count = db.session.query(
        func.coalesce(func.sum(LedgerEntry.income_cents), 0),
        func.coalesce(func.sum(LedgerEntry.expense_cents), 0),
        func.count(LedgerEntry.id),
    ).filter(*filters).one()
    return int(income), int(expense), int(count)


def current_balance(as_of=None) -> int:
    """
    Initial balance plus income minus expense, up to and including as_of.

    Without as_of the whole ledger is used. With no initial balance registered
    the ledger is necessarily empty, so the balance is 0.
    """
    initial = get_active_initial_balance()
    base = initial.amount_cents if initial else 0

    filters = []
    as_of_date = parse_date(as_of, "as_of", required=False)
    if as_of_date is not None:
        filters.append(LedgerEntry.entry_date <= as_of_date)

    income, expense, _ = _sums(*filters)
    return base + income - expense


def summarize(start, end) -> dict:
    """Totals for [start, end] plus the balance before and after the window."""
    start_date, end_date = parse_date_range(start, end)

    window = (LedgerEntry.entry_date >= start_date, LedgerEntry.entry_date <= end_date)
    income, expense, count = _sums(*window)
    opening = current_balance(as_of=start_date - timedelta(days=1))

    rows = db.session.query(
        LedgerEntry.classification,
        func.coalesce(func.sum(LedgerEntry.income_cents), 0),
        func.coalesce(func.sum(LedgerEntry.expense_cents), 0),
        func.count(LedgerEntry.id),
    ).filter(*window).group_by(LedgerEntry.classification).order_by(LedgerEntry.classification).all()

    return {
        "start": start_date.isoformat(),
        "end": end_date.isoformat(),
        "entry_count": count,
        "income_cents": income,
        "expense_cents": expense,
        "net_cents": income - expense,
        "opening_balance_cents": opening,
        "closing_balance_cents": opening + income - expense,
        "by_classification": [
            {
                "classification": classification,
                "income_cents": int(row_income),
                "expense_cents": int(row_expense),
                "entry_count": int(row_count),
            }
            for classification, row_income, row_expense, row_count in rows
        ],
    }


def daily_totals(start, end) -> list[dict]:
    """
    Day-consolidated view: one row per day with entries, carrying the
    end-of-day balance.
    """
    start_date, end_date = parse_date_range(start, end)

    rows = db.session.query(
        LedgerEntry.entry_date,
        func.coalesce(func.sum(LedgerEntry.income_cents), 0),
        func.coalesce(func.sum(LedgerEntry.expense_cents), 0),
        func.count(LedgerEntry.id),
    ).filter(
        LedgerEntry.entry_date >= start_date,
        LedgerEntry.entry_date <= end_date,
    ).group_by(LedgerEntry.entry_date).order_by(LedgerEntry.entry_date).all()

    balance = current_balance(as_of=start_date - timedelta(days=1))
    days = []
    for entry_day, income, expense, count in rows:
        balance += int(income) - int(expense)
        days.append({
            "date": parse_date(entry_day, "date").isoformat(),
            "income_cents": int(income),
            "expense_cents": int(expense),
            "entry_count": int(count),
            "closing_balance_cents": balance,
        })
    return days
