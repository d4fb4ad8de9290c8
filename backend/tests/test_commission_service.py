"""
Commission settlement tests.

Verifies:
- Preview groups unsettled lines by product and by day, in (date, line id) order
- Overlapping windows need override and never pay a line twice
- A line claimed concurrently aborts the whole settlement
- Voiding a payment releases every line and cannot be repeated
"""

import pytest

from clinicpos.errors import (
    AlreadyVoided,
    DuplicateSettlementWindow,
    InvalidDateRange,
    NotFound,
    NothingToSettle,
    SettledLinesLocked,
    ShiftClosed,
    ValidationError,
)
from clinicpos.extensions import db
from clinicpos.models import CommissionPayment, SaleLine
from clinicpos.models.sales import SETTLEMENT_SETTLED
from clinicpos.services import commission_service, ledger_service, sales_service, shift_service


def _commission_sale(user, doctor, day, *, product="Consulta", quantity=1, price=10_000, rate=1_000):
    return sales_service.record_sale(
        user.id,
        [{
            "product_name": product,
            "product_type": "service",
            "quantity": quantity,
            "unit_price_cents": price,
            "doctor_id": doctor.id,
            "commission_rate_bps": rate,
        }],
        "CASH",
        sale_date=day,
    )


@pytest.fixture
def ten_days(db_session, cashier_user, doctor, open_shift):
    """One 100.00 commission-bearing sale per day, 2025-03-01 .. 2025-03-10 (10.00 commission each)."""
    return [_commission_sale(cashier_user, doctor, f"2025-03-{day:02d}") for day in range(1, 11)]


def _lines_of(doctor):
    return db.session.query(SaleLine).filter_by(doctor_id=doctor.id).order_by(SaleLine.id).all()


# =============================================================================
# PREVIEW
# =============================================================================


class TestGroupForPeriod:

    def test_groups_and_order(self, db_session, cashier_user, doctor, open_shift):
        _commission_sale(cashier_user, doctor, "2025-03-02", product="Consulta", quantity=2)
        _commission_sale(cashier_user, doctor, "2025-03-01", product="Ultrasonido", price=30_000)
        _commission_sale(cashier_user, doctor, "2025-03-02", product="Consulta")

        preview = commission_service.group_for_period(doctor.id, "2025-03-01", "2025-03-31")

        assert [line["sale_date"] for line in preview["lines"]] == ["2025-03-01", "2025-03-02", "2025-03-02"]
        assert preview["line_count"] == 3
        assert preview["sale_count"] == 3
        assert preview["total_cents"] == 3_000 + 2_000 + 1_000
        assert preview["already_settled_warning"] is False

        groups = {g["product_name"]: g for g in preview["groups"]}
        assert groups["Consulta"]["quantity"] == 3
        assert groups["Consulta"]["quantities_by_day"] == {"2025-03-02": 3}
        assert groups["Ultrasonido"]["commission_cents"] == 3_000

        assert [(d["date"], d["line_count"]) for d in preview["by_day"]] == [("2025-03-01", 1), ("2025-03-02", 2)]

    def test_excludes_other_doctors_voided_sales_and_outside_window(
        self, db_session, cashier_user, doctor, other_doctor, open_shift
    ):
        _commission_sale(cashier_user, doctor, "2025-03-05")
        _commission_sale(cashier_user, other_doctor, "2025-03-05")
        voided = _commission_sale(cashier_user, doctor, "2025-03-06")
        sales_service.void_sale(voided.id, "Duplicate", cashier_user.id)
        _commission_sale(cashier_user, doctor, "2025-04-01")
        _commission_sale(cashier_user, doctor, "2025-03-07", rate=0)

        preview = commission_service.group_for_period(doctor.id, "2025-03-01", "2025-03-31")
        assert preview["line_count"] == 1
        assert preview["total_cents"] == 1_000

    def test_invalid_window(self, db_session, doctor):
        with pytest.raises(InvalidDateRange):
            commission_service.group_for_period(doctor.id, "2025-03-10", "2025-03-01")
        with pytest.raises(InvalidDateRange):
            commission_service.group_for_period(doctor.id, None, "2025-03-01")

    def test_unknown_doctor(self, db_session):
        with pytest.raises(NotFound):
            commission_service.group_for_period(999_999, "2025-03-01", "2025-03-31")


# =============================================================================
# SETTLE
# =============================================================================


class TestSettle:

    def test_settle_claims_lines_and_mirrors_expense(self, db_session, admin_user, doctor, ten_days):
        payment = commission_service.settle(doctor.id, "2025-03-01", "2025-03-05", admin_user.id, note="First half")

        assert payment.total_cents == 5_000
        assert payment.line_count == 5
        assert payment.sale_count == 5
        assert payment.overrode_existing is False

        lines = _lines_of(doctor)
        assert [line.settlement_state for line in lines] == ["SETTLED"] * 5 + ["UNSETTLED"] * 5
        assert {line.commission_payment_id for line in lines[:5]} == {payment.id}

        entry = ledger_service.find_by_source(f"commission_payment:{payment.id}")
        assert entry.expense_cents == 5_000
        assert entry.classification == ledger_service.CLASS_COMMISSION_PAYMENTS
        assert entry.payee == doctor.name

    def test_no_double_settlement(self, db_session, admin_user, doctor, ten_days):
        first = commission_service.settle(doctor.id, "2025-03-01", "2025-03-05", admin_user.id)

        with pytest.raises(DuplicateSettlementWindow) as exc:
            commission_service.settle(doctor.id, "2025-03-01", "2025-03-10", admin_user.id)
        assert exc.value.details["payment_ids"] == [first.id]

        preview = commission_service.group_for_period(doctor.id, "2025-03-01", "2025-03-10")
        assert preview["already_settled_warning"] is True
        assert [p["id"] for p in preview["overlapping_payments"]] == [first.id]
        assert preview["line_count"] == 5

        second = commission_service.settle(doctor.id, "2025-03-01", "2025-03-10", admin_user.id, override=True)
        assert second.overrode_existing is True
        assert second.line_count == 5
        assert second.total_cents == 5_000

        lines = _lines_of(doctor)
        first_ids = {line.id for line in lines if line.commission_payment_id == first.id}
        second_ids = {line.id for line in lines if line.commission_payment_id == second.id}
        assert len(first_ids) == len(second_ids) == 5
        assert first_ids.isdisjoint(second_ids)

        with pytest.raises(NothingToSettle):
            commission_service.settle(doctor.id, "2025-03-01", "2025-03-10", admin_user.id, override=True)

    def test_adjacent_windows_do_not_overlap(self, db_session, admin_user, doctor, ten_days):
        commission_service.settle(doctor.id, "2025-03-01", "2025-03-05", admin_user.id)
        payment = commission_service.settle(doctor.id, "2025-03-06", "2025-03-10", admin_user.id)
        assert payment.overrode_existing is False
        assert payment.line_count == 5

    def test_nothing_to_settle(self, db_session, admin_user, doctor):
        with pytest.raises(NothingToSettle):
            commission_service.settle(doctor.id, "2025-03-01", "2025-03-31", admin_user.id)
        assert db_session.query(CommissionPayment).count() == 0

    def test_concurrent_claim_aborts_settlement(self, db_session, admin_user, doctor, ten_days, monkeypatch):
        class _Prefetched:
            def __init__(self, rows):
                self._rows = rows

            def all(self):
                return self._rows

        def racing_lock(query):
            rows = query.all()
            # Another settlement claims the first line between select and update
            db.session.query(SaleLine).filter_by(id=rows[0][0].id).update(
                {SaleLine.settlement_state: SETTLEMENT_SETTLED},
                synchronize_session=False,
            )
            return _Prefetched(rows)

        monkeypatch.setattr(commission_service, "lock_for_update", racing_lock)

        with pytest.raises(SettledLinesLocked) as exc:
            commission_service.settle(doctor.id, "2025-03-01", "2025-03-10", admin_user.id)
        assert exc.value.details == {"expected": 10, "claimed": 9}

        # Whole transaction rolled back
        assert db_session.query(CommissionPayment).count() == 0
        assert all(line.commission_payment_id is None for line in _lines_of(doctor))
        assert all(line.settlement_state == "UNSETTLED" for line in _lines_of(doctor))
        assert ledger_service.list_by_classification(ledger_service.CLASS_COMMISSION_PAYMENTS) == []

    def test_paid_from_closed_shift(self, db_session, admin_user, doctor, ten_days, open_shift):
        # 500.00 opening + ten 100.00 cash sales
        shift_service.close_shift(open_shift.id, {"100": 15}, {})
        with pytest.raises(ShiftClosed):
            commission_service.settle(doctor.id, "2025-03-01", "2025-03-10", admin_user.id, shift_id=open_shift.id)


# =============================================================================
# VOID
# =============================================================================


class TestVoidPayment:

    def test_void_is_reversible_once(self, db_session, admin_user, doctor, ten_days):
        before = ledger_service.current_balance()
        payment = commission_service.settle(doctor.id, "2025-03-01", "2025-03-10", admin_user.id)
        assert ledger_service.current_balance() == before - 10_000

        voided = commission_service.void_payment(payment.id, "Paid twice by mistake", admin_user.id)

        assert voided.is_voided
        assert voided.void_reason == "Paid twice by mistake"
        assert voided.voided_by_user_id == admin_user.id
        lines = _lines_of(doctor)
        assert all(line.settlement_state == "UNSETTLED" for line in lines)
        assert all(line.commission_payment_id is None for line in lines)
        assert ledger_service.find_by_source(f"commission_payment:{payment.id}") is None
        assert ledger_service.current_balance() == before

        with pytest.raises(AlreadyVoided):
            commission_service.void_payment(payment.id, "Again", admin_user.id)

        # A voided payment no longer blocks the window
        again = commission_service.settle(doctor.id, "2025-03-01", "2025-03-10", admin_user.id)
        assert again.overrode_existing is False
        assert again.line_count == 10

    def test_reason_required(self, db_session, admin_user, doctor, ten_days):
        payment = commission_service.settle(doctor.id, "2025-03-01", "2025-03-10", admin_user.id)
        with pytest.raises(ValidationError):
            commission_service.void_payment(payment.id, "", admin_user.id)
        assert not commission_service.get_payment(payment.id).is_voided

    def test_unknown_payment(self, db_session, admin_user):
        with pytest.raises(NotFound):
            commission_service.void_payment(999_999, "Typo", admin_user.id)


# =============================================================================
# QUERIES
# =============================================================================


class TestCommissionQueries:

    def test_pending_by_doctor(self, db_session, admin_user, doctor, other_doctor, ten_days):
        commission_service.settle(doctor.id, "2025-03-01", "2025-03-04", admin_user.id)

        pending = {row["doctor_id"]: row for row in commission_service.pending_by_doctor(cutoff="2025-03-08")}
        assert pending[doctor.id]["pending_cents"] == 4_000
        assert pending[doctor.id]["line_count"] == 4
        assert pending[doctor.id]["oldest_sale_date"] == "2025-03-05"
        assert pending[other_doctor.id]["pending_cents"] == 0
        assert pending[other_doctor.id]["oldest_sale_date"] is None

    def test_list_payments_and_detail(self, db_session, admin_user, doctor, ten_days):
        first = commission_service.settle(doctor.id, "2025-03-01", "2025-03-03", admin_user.id)
        second = commission_service.settle(doctor.id, "2025-03-04", "2025-03-10", admin_user.id)
        commission_service.void_payment(first.id, "Wrong amount", admin_user.id)

        assert [p.id for p in commission_service.list_payments(status="paid")] == [second.id]
        assert [p.id for p in commission_service.list_payments(status="voided")] == [first.id]
        assert [p.id for p in commission_service.list_payments(start="2025-03-08", end="2025-03-31")] == [second.id]
        with pytest.raises(ValidationError):
            commission_service.list_payments(status="PENDING")

        detail = commission_service.payment_detail(second.id)
        assert detail["doctor"]["id"] == doctor.id
        assert len(detail["lines"]) == 7
        assert detail["groups"][0]["quantity"] == 7
        assert len(detail["payment"]["line_item_ids"]) == 7

    def test_doctors(self, db_session):
        ana = commission_service.create_doctor("  Dra. Ana Ruiz ")
        assert ana.name == "Dra. Ana Ruiz"
        with pytest.raises(ValidationError):
            commission_service.create_doctor("")

        ana.is_active = False
        db_session.commit()
        assert commission_service.list_doctors() == []
        assert [d.id for d in commission_service.list_doctors(include_inactive=True)] == [ana.id]
