"""
Bank ledger tests.

Verifies:
- Running balance equals initial balance + income - expense in (date, id) order
  after any sequence of inserts, updates and deletes
- recompute_all() is idempotent
- Mutations are refused without an initial balance
- A source_key can be mirrored only once
"""

from datetime import date

import pytest

from clinicpos.errors import (
    DuplicateReference,
    InvalidDateRange,
    MissingInitialBalance,
    NotFound,
    ValidationError,
)
from clinicpos.extensions import db
from clinicpos.models import InitialBalance, LedgerEntry
from clinicpos.services import ledger_service


def _entry(user, day, *, income=0, expense=0, payee="Banco Industrial", **kwargs):
    return ledger_service.append_entry(
        entry_date=day,
        payee=payee,
        description=kwargs.pop("description", "Movement"),
        income_cents=income,
        expense_cents=expense,
        recorded_by_user_id=user.id,
        **kwargs,
    )


def assert_running_balances(initial_cents: int):
    entries = (
        db.session.query(LedgerEntry)
        .order_by(LedgerEntry.entry_date.asc(), LedgerEntry.id.asc())
        .all()
    )
    balance = initial_cents
    for entry in entries:
        balance += entry.income_cents - entry.expense_cents
        assert entry.running_balance_cents == balance, f"entry {entry.id} on {entry.entry_date}"
    return balance


# =============================================================================
# INITIAL BALANCE
# =============================================================================


class TestInitialBalance:

    def test_mutations_require_initial_balance(self, db_session, admin_user):
        with pytest.raises(MissingInitialBalance):
            _entry(admin_user, "2025-03-01", income=1000)
        with pytest.raises(MissingInitialBalance):
            ledger_service.recompute_all()
        assert db_session.query(LedgerEntry).count() == 0

    def test_balance_without_initial_is_zero(self, db_session):
        assert ledger_service.current_balance() == 0

    def test_replacing_initial_balance_rebalances_everything(self, db_session, admin_user, initial_balance):
        _entry(admin_user, "2025-03-01", income=5000)
        _entry(admin_user, "2025-03-02", expense=2000)

        replacement = ledger_service.register_initial_balance(250_000, admin_user.id)

        active = db_session.query(InitialBalance).filter_by(is_active=True).all()
        assert [row.id for row in active] == [replacement.id]

        previous = db_session.get(InitialBalance, initial_balance.id)
        assert previous.is_active is False
        assert previous.deactivated_at is not None

        assert assert_running_balances(250_000) == 253_000

    def test_negative_initial_balance_is_allowed(self, db_session, admin_user):
        initial = ledger_service.register_initial_balance(-10_000, admin_user.id)
        assert initial.amount_cents == -10_000
        assert ledger_service.current_balance() == -10_000


# =============================================================================
# RUNNING BALANCE
# =============================================================================


class TestRunningBalance:

    def test_out_of_order_inserts(self, db_session, admin_user, initial_balance):
        _entry(admin_user, "2025-03-05", income=10_000)
        _entry(admin_user, "2025-03-01", expense=2_500)
        _entry(admin_user, "2025-03-03", income=700)
        _entry(admin_user, "2025-03-01", income=100)

        final = assert_running_balances(1_000_000)
        assert final == 1_000_000 + 10_000 - 2_500 + 700 + 100
        assert ledger_service.current_balance() == final

    def test_same_day_entries_follow_insertion_order(self, db_session, admin_user, initial_balance):
        first = _entry(admin_user, "2025-03-01", income=1_000)
        second = _entry(admin_user, "2025-03-01", expense=300)

        assert first.running_balance_cents == 1_001_000
        assert second.running_balance_cents == 1_000_700

    def test_update_and_delete_keep_invariant(self, db_session, admin_user, initial_balance):
        a = _entry(admin_user, "2025-03-01", income=5_000)
        b = _entry(admin_user, "2025-03-02", expense=1_000)
        c = _entry(admin_user, "2025-03-03", income=2_000)

        # Moving an entry to another date changes its position in the sequence
        ledger_service.update_entry(c.id, entry_date="2025-02-28")
        assert_running_balances(1_000_000)

        # Flipping direction
        ledger_service.update_entry(b.id, income_cents=1_500, expense_cents=0)
        assert db_session.get(LedgerEntry, b.id).direction == "INCOME"
        assert_running_balances(1_000_000)

        ledger_service.remove_entry(a.id)
        final = assert_running_balances(1_000_000)
        assert final == 1_000_000 + 2_000 + 1_500

    def test_recompute_is_idempotent(self, db_session, admin_user, initial_balance):
        for day, income, expense in [
            ("2025-03-02", 4_000, 0),
            ("2025-03-01", 0, 1_500),
            ("2025-03-04", 12_000, 0),
            ("2025-03-03", 0, 600),
        ]:
            _entry(admin_user, day, income=income, expense=expense)

        first = ledger_service.recompute_all()
        snapshot = {e.id: e.running_balance_cents for e in db_session.query(LedgerEntry).all()}

        second = ledger_service.recompute_all()
        again = {e.id: e.running_balance_cents for e in db_session.query(LedgerEntry).all()}

        assert snapshot == again
        assert second["updated_count"] == 0
        assert first["final_balance_cents"] == second["final_balance_cents"] == 1_013_900
        assert second["entry_count"] == 4

    def test_recompute_repairs_corrupted_balances(self, db_session, admin_user, initial_balance):
        entry = _entry(admin_user, "2025-03-01", income=1_000)
        db_session.query(LedgerEntry).filter_by(id=entry.id).update({"running_balance_cents": 42})
        db_session.commit()

        result = ledger_service.recompute_all()
        assert result["updated_count"] == 1
        assert_running_balances(1_000_000)


# =============================================================================
# VALIDATION / REFERENCES
# =============================================================================


class TestEntryValidation:

    @pytest.mark.parametrize("income,expense", [(0, 0), (100, 100), (None, None)])
    def test_exactly_one_side(self, db_session, admin_user, initial_balance, income, expense):
        with pytest.raises(ValidationError):
            _entry(admin_user, "2025-03-01", income=income, expense=expense)

    def test_negative_amount(self, db_session, admin_user, initial_balance):
        with pytest.raises(ValidationError):
            _entry(admin_user, "2025-03-01", income=-500)

    def test_payee_required(self, db_session, admin_user, initial_balance):
        with pytest.raises(ValidationError):
            _entry(admin_user, "2025-03-01", income=500, payee="  ")

    def test_unknown_update_field(self, db_session, admin_user, initial_balance):
        entry = _entry(admin_user, "2025-03-01", income=500)
        with pytest.raises(ValidationError):
            ledger_service.update_entry(entry.id, running_balance_cents=1)

    def test_missing_entry(self, db_session, admin_user, initial_balance):
        with pytest.raises(NotFound):
            ledger_service.remove_entry(999_999)

    def test_duplicate_source_key(self, db_session, admin_user, initial_balance):
        _entry(admin_user, "2025-03-01", income=500, source_key="sale:1")
        with pytest.raises(DuplicateReference) as exc:
            _entry(admin_user, "2025-03-01", income=500, source_key="sale:1")
        assert exc.value.details == {"source_key": "sale:1"}
        assert db_session.query(LedgerEntry).count() == 1

    def test_remove_by_source(self, db_session, admin_user, initial_balance):
        _entry(admin_user, "2025-03-01", income=500, source_key="expense:7")
        assert ledger_service.remove_entry_by_source("expense:7") is True
        assert ledger_service.find_by_source("expense:7") is None
        assert ledger_service.remove_entry_by_source("expense:7", missing_ok=True) is False
        with pytest.raises(NotFound):
            ledger_service.remove_entry_by_source("expense:7")


# =============================================================================
# QUERIES
# =============================================================================


class TestLedgerQueries:

    @pytest.fixture
    def march(self, db_session, admin_user, initial_balance):
        _entry(admin_user, "2025-02-27", income=3_000, classification="Sales")
        _entry(admin_user, "2025-03-01", income=10_000, classification="Sales")
        _entry(admin_user, "2025-03-01", expense=2_000, classification="Operating expenses")
        _entry(admin_user, "2025-03-04", expense=500, classification="Bank charges")
        _entry(admin_user, "2025-03-10", income=800, classification="Sales")

    def test_current_balance_as_of(self, march):
        assert ledger_service.current_balance(as_of="2025-02-28") == 1_003_000
        assert ledger_service.current_balance(as_of=date(2025, 3, 1)) == 1_011_000
        assert ledger_service.current_balance() == 1_011_300

    def test_list_by_date_range_is_inclusive(self, march):
        entries = ledger_service.list_by_date_range("2025-03-01", "2025-03-04")
        assert [e.entry_date.isoformat() for e in entries] == ["2025-03-01", "2025-03-01", "2025-03-04"]

    def test_list_by_classification(self, march):
        entries = ledger_service.list_by_classification("Sales")
        assert [e.income_cents for e in entries] == [3_000, 10_000, 800]

    def test_list_entries_filters(self, march):
        expenses = ledger_service.list_entries(direction="expense")
        assert [e.expense_cents for e in expenses] == [2_000, 500]

        page = ledger_service.list_entries(start="2025-03-01", limit=2, offset=1)
        assert [e.entry_date.isoformat() for e in page] == ["2025-03-01", "2025-03-04"]

        with pytest.raises(ValidationError):
            ledger_service.list_entries(direction="sideways")

    def test_summarize(self, march):
        summary = ledger_service.summarize("2025-03-01", "2025-03-31")
        assert summary["opening_balance_cents"] == 1_003_000
        assert summary["income_cents"] == 10_800
        assert summary["expense_cents"] == 2_500
        assert summary["closing_balance_cents"] == 1_011_300
        by_class = {row["classification"]: row for row in summary["by_classification"]}
        assert by_class["Sales"]["income_cents"] == 10_800
        assert by_class["Bank charges"]["expense_cents"] == 500

    def test_daily_totals(self, march):
        days = ledger_service.daily_totals("2025-03-01", "2025-03-31")
        assert [d["date"] for d in days] == ["2025-03-01", "2025-03-04", "2025-03-10"]
        assert days[0]["closing_balance_cents"] == 1_011_000
        assert days[0]["entry_count"] == 2
        assert days[-1]["closing_balance_cents"] == 1_011_300

    def test_inverted_range(self, march):
        with pytest.raises(InvalidDateRange):
            ledger_service.summarize("2025-03-31", "2025-03-01")
