# Overview: Doctor commission settlement; groups unsettled lines, settles a window, voids payments.

"""
Commission Settlement Engine

WHY: Doctors are paid a commission on the sale lines assigned to them.
Paying is done per caller-chosen date window and must never pay the same line
twice.

GUARANTEES:
- group_for_period() is read-only and never raises a state conflict; it
  flags overlapping active payments instead
- settle() refuses an overlapping window unless override is set
- Lines are claimed with a conditional UPDATE (commission_payment_id IS NULL);
  if fewer rows than selected were claimed, another settlement got there
  first and the whole transaction is rolled back
- void_payment() is permanent and releases every claimed line

ORDERING: lines are listed by (sale_date, line id). Ordering is for display;
it plays no part in the settlement guarantee.
"""

from __future__ import annotations

import logging
from collections import OrderedDict

from sqlalchemy import func

from ..errors import (
    AlreadyVoided,
    DuplicateSettlementWindow,
    NotFound,
    NothingToSettle,
    SettledLinesLocked,
    ShiftClosed,
    ValidationError,
)
from ..extensions import db
from ..models import CommissionPayment, Doctor, Sale, SaleLine
from ..models.sales import SALE_COMPLETED, SETTLEMENT_SETTLED, SETTLEMENT_UNSETTLED
from ..time_utils import today, utcnow
from ..validation import optional_text, parse_date, parse_date_range, require_text
from . import ledger_service
from .concurrency import lock_for_update, transaction
from .shift_service import get_shift


logger = logging.getLogger(__name__)

STATUS_PAID = "PAID"
STATUS_VOIDED = "VOIDED"


def _get_doctor(doctor_id: int) -> Doctor:
    doctor = db.session.query(Doctor).filter_by(id=doctor_id).first()
    if doctor is None:
        raise NotFound(f"Doctor {doctor_id} not found")
    return doctor


def _unsettled_lines_query(doctor_id: int, start, end):
    return (
        db.session.query(SaleLine, Sale.sale_date)
        .join(Sale, SaleLine.sale_id == Sale.id)
        .filter(
            SaleLine.doctor_id == doctor_id,
            SaleLine.settlement_state == SETTLEMENT_UNSETTLED,
            SaleLine.commission_payment_id.is_(None),
            SaleLine.commission_cents > 0,
            Sale.status == SALE_COMPLETED,
            Sale.sale_date >= start,
            Sale.sale_date <= end,
        )
        .order_by(Sale.sale_date.asc(), SaleLine.id.asc())
    )


def _overlapping_payments(doctor_id: int, start, end) -> list[CommissionPayment]:
    return (
        db.session.query(CommissionPayment)
        .filter(
            CommissionPayment.doctor_id == doctor_id,
            CommissionPayment.voided_at.is_(None),
            CommissionPayment.period_start <= end,
            CommissionPayment.period_end >= start,
        )
        .order_by(CommissionPayment.id)
        .all()
    )


def _group_lines(rows) -> tuple[list[dict], list[dict]]:
    """
    rows: iterable of (SaleLine, sale_date).

    Returns (by product with per-day quantities, by day).
    """
    products: OrderedDict = OrderedDict()
    days: OrderedDict = OrderedDict()

    for line, sale_date in rows:
        day = sale_date.isoformat()
        key = (line.product_name, line.product_type)
        group = products.setdefault(key, {
            "product_name": line.product_name,
            "product_type": line.product_type,
            "quantity": 0,
            "line_total_cents": 0,
            "commission_cents": 0,
            "quantities_by_day": OrderedDict(),
        })
        group["quantity"] += line.quantity
        group["line_total_cents"] += line.line_total_cents
        group["commission_cents"] += line.commission_cents
        group["quantities_by_day"][day] = group["quantities_by_day"].get(day, 0) + line.quantity

        bucket = days.setdefault(day, {"date": day, "line_count": 0, "quantity": 0, "commission_cents": 0})
        bucket["line_count"] += 1
        bucket["quantity"] += line.quantity
        bucket["commission_cents"] += line.commission_cents

    groups = []
    for group in products.values():
        group["quantities_by_day"] = dict(group["quantities_by_day"])
        groups.append(group)
    return groups, list(days.values())


def _line_dict(line: SaleLine, sale_date) -> dict:
    d = line.to_dict()
    d["sale_date"] = sale_date.isoformat()
    return d


# =============================================================================
# DOCTORS
# =============================================================================

def create_doctor(name: str) -> Doctor:
    doctor = Doctor(name=require_text(name, "name", max_length=128), is_active=True)
    db.session.add(doctor)
    db.session.commit()
    logger.info("Doctor %s created: %s", doctor.id, doctor.name)
    return doctor


def list_doctors(include_inactive: bool = False) -> list[Doctor]:
    query = db.session.query(Doctor)
    if not include_inactive:
        query = query.filter(Doctor.is_active.is_(True))
    return query.order_by(Doctor.name).all()


# =============================================================================
# PREVIEW
# =============================================================================

def group_for_period(doctor_id: int, start, end) -> dict:
    """
    Unsettled commission lines of a doctor in [start, end], ready for review.

    already_settled_warning is True when an active payment of the same doctor
    covers part of the window; settling it then requires override.
    """
    start_date, end_date = parse_date_range(start, end)
    doctor = _get_doctor(doctor_id)

    rows = _unsettled_lines_query(doctor.id, start_date, end_date).all()
    groups, by_day = _group_lines(rows)
    overlapping = _overlapping_payments(doctor.id, start_date, end_date)

    return {
        "doctor": doctor.to_dict(),
        "period_start": start_date.isoformat(),
        "period_end": end_date.isoformat(),
        "lines": [_line_dict(line, sale_date) for line, sale_date in rows],
        "groups": groups,
        "by_day": by_day,
        "total_cents": sum(line.commission_cents for line, _ in rows),
        "line_count": len(rows),
        "sale_count": len({line.sale_id for line, _ in rows}),
        "already_settled_warning": bool(overlapping),
        "overlapping_payments": [p.to_dict() for p in overlapping],
    }


# =============================================================================
# SETTLE / VOID
# =============================================================================

def settle(
    doctor_id: int,
    start,
    end,
    paid_by_id: int,
    note: str | None = None,
    override: bool = False,
    shift_id: int | None = None,
) -> CommissionPayment:
    """
    Pay every unsettled commission line of the doctor in [start, end].

    With shift_id the payout is taken from that (open) shift's drawer and
    lowers its expected cash.

    Raises:
        DuplicateSettlementWindow: overlapping active payment and no override
        NothingToSettle: no qualifying lines
        SettledLinesLocked: lines were claimed concurrently
        ShiftClosed / NotFound
        MissingInitialBalance: ledger not initialized
    """
    start_date, end_date = parse_date_range(start, end)
    note = optional_text(note, "note", max_length=2000)

    with transaction():
        doctor = _get_doctor(doctor_id)

        overlapping = _overlapping_payments(doctor.id, start_date, end_date)
        if overlapping and not override:
            raise DuplicateSettlementWindow(
                "An active commission payment already covers part of this period",
                details={
                    "payment_ids": [p.id for p in overlapping],
                    "periods": [
                        {"id": p.id, "period_start": p.period_start.isoformat(), "period_end": p.period_end.isoformat()}
                        for p in overlapping
                    ],
                },
            )

        if shift_id is not None:
            shift = get_shift(shift_id, lock=True)
            if not shift.is_open:
                raise ShiftClosed(
                    f"Shift {shift_id} is closed; commission cannot be paid from its drawer",
                    details={"shift_id": shift_id},
                )

        rows = lock_for_update(_unsettled_lines_query(doctor.id, start_date, end_date)).all()
        if not rows:
            raise NothingToSettle(
                "No unsettled commissions in this period",
                details={"doctor_id": doctor.id, "start": start_date.isoformat(), "end": end_date.isoformat()},
            )

        lines = [line for line, _ in rows]
        line_ids = [line.id for line in lines]
        total = sum(line.commission_cents for line in lines)

        payment = CommissionPayment(
            doctor_id=doctor.id,
            period_start=start_date,
            period_end=end_date,
            total_cents=total,
            line_count=len(lines),
            sale_count=len({line.sale_id for line in lines}),
            shift_id=shift_id,
            note=note,
            overrode_existing=bool(overlapping),
            paid_at=utcnow(),
            paid_by_user_id=paid_by_id,
        )
        db.session.add(payment)
        db.session.flush()

        claimed = (
            db.session.query(SaleLine)
            .filter(
                SaleLine.id.in_(line_ids),
                SaleLine.commission_payment_id.is_(None),
                SaleLine.settlement_state == SETTLEMENT_UNSETTLED,
            )
            .update(
                {
                    SaleLine.commission_payment_id: payment.id,
                    SaleLine.settlement_state: SETTLEMENT_SETTLED,
                },
                synchronize_session=False,
            )
        )
        if claimed != len(line_ids):
            raise SettledLinesLocked(
                "Some commission lines were settled by another payment; review the period again",
                details={"expected": len(line_ids), "claimed": claimed},
            )
        for line in lines:
            db.session.expire(line)

        ledger_service.append_entry(
            entry_date=today(),
            payee=doctor.name,
            description=f"Commission payment {start_date.isoformat()} to {end_date.isoformat()}",
            expense_cents=total,
            classification=ledger_service.CLASS_COMMISSION_PAYMENTS,
            source_key=f"commission_payment:{payment.id}",
            shift_id=shift_id,
            recorded_by_user_id=paid_by_id,
            commit=False,
        )

    logger.info(
        "Commission payment %s: doctor %s, %s lines, %s cents (override=%s)",
        payment.id, doctor_id, payment.line_count, payment.total_cents, payment.overrode_existing,
    )
    return payment


def void_payment(payment_id: int, reason: str, voided_by_id: int) -> CommissionPayment:
    """
    Void a commission payment. Permanent.

    Linked lines go back to UNSETTLED and the mirrored ledger expense is
    removed, so the period can be settled again.
    """
    reason = require_text(reason, "reason")

    with transaction():
        payment = lock_for_update(db.session.query(CommissionPayment).filter_by(id=payment_id)).first()
        if payment is None:
            raise NotFound(f"Commission payment {payment_id} not found")
        if payment.is_voided:
            raise AlreadyVoided(
                f"Commission payment {payment_id} is already voided",
                details={"payment_id": payment_id, "voided_at": payment.voided_at.isoformat()},
            )

        released = (
            db.session.query(SaleLine)
            .filter(
                SaleLine.commission_payment_id == payment.id,
                SaleLine.settlement_state == SETTLEMENT_SETTLED,
            )
            .update(
                {
                    SaleLine.commission_payment_id: None,
                    SaleLine.settlement_state: SETTLEMENT_UNSETTLED,
                },
                synchronize_session=False,
            )
        )

        payment.voided_at = utcnow()
        payment.void_reason = reason
        payment.voided_by_user_id = voided_by_id
        db.session.flush()

        ledger_service.remove_entry_by_source(f"commission_payment:{payment.id}", missing_ok=True, commit=False)

    logger.info("Commission payment %s voided by user %s; %s lines released", payment_id, voided_by_id, released)
    return payment


# =============================================================================
# QUERIES (read-only)
# =============================================================================

def get_payment(payment_id: int) -> CommissionPayment:
    payment = db.session.query(CommissionPayment).filter_by(id=payment_id).first()
    if payment is None:
        raise NotFound(f"Commission payment {payment_id} not found")
    return payment


def list_payments(
    doctor_id: int | None = None,
    status: str | None = None,
    start=None,
    end=None,
) -> list[CommissionPayment]:
    """Most recent first. start/end keep payments whose period intersects the window."""
    start_date, end_date = parse_date_range(start, end, required=False)

    query = db.session.query(CommissionPayment)
    if doctor_id is not None:
        query = query.filter(CommissionPayment.doctor_id == doctor_id)
    if status:
        status = status.upper()
        if status == STATUS_PAID:
            query = query.filter(CommissionPayment.voided_at.is_(None))
        elif status == STATUS_VOIDED:
            query = query.filter(CommissionPayment.voided_at.isnot(None))
        else:
            raise ValidationError("status must be PAID or VOIDED")
    if start_date:
        query = query.filter(CommissionPayment.period_end >= start_date)
    if end_date:
        query = query.filter(CommissionPayment.period_start <= end_date)

    return query.order_by(CommissionPayment.paid_at.desc(), CommissionPayment.id.desc()).all()


def payment_detail(payment_id: int) -> dict:
    """Payment with its lines grouped by product, as printed on the receipt."""
    payment = get_payment(payment_id)

    rows = (
        db.session.query(SaleLine, Sale.sale_date)
        .join(Sale, SaleLine.sale_id == Sale.id)
        .filter(SaleLine.commission_payment_id == payment.id)
        .order_by(Sale.sale_date.asc(), SaleLine.id.asc())
        .all()
    )
    groups, by_day = _group_lines(rows)

    return {
        "payment": payment.to_dict(include_lines=True),
        "doctor": payment.doctor.to_dict(),
        "lines": [_line_dict(line, sale_date) for line, sale_date in rows],
        "groups": groups,
        "by_day": by_day,
    }


def pending_by_doctor(cutoff=None) -> list[dict]:
    """
    Unsettled commission per active doctor, up to and including cutoff
    (default: today).
    """
    cutoff_date = parse_date(cutoff, "cutoff", required=False) or today()

    rows = (
        db.session.query(
            SaleLine.doctor_id,
            func.coalesce(func.sum(SaleLine.commission_cents), 0),
            func.count(SaleLine.id),
            func.count(func.distinct(SaleLine.sale_id)),
            func.min(Sale.sale_date),
        )
        .join(Sale, SaleLine.sale_id == Sale.id)
        .filter(
            SaleLine.doctor_id.isnot(None),
            SaleLine.settlement_state == SETTLEMENT_UNSETTLED,
            SaleLine.commission_cents > 0,
            Sale.status == SALE_COMPLETED,
            Sale.sale_date <= cutoff_date,
        )
        .group_by(SaleLine.doctor_id)
        .all()
    )
    pending = {
        doctor_id: (int(total), int(line_count), int(sale_count), oldest)
        for doctor_id, total, line_count, sale_count, oldest in rows
    }

    result = []
    doctors = db.session.query(Doctor).filter_by(is_active=True).order_by(Doctor.name).all()
    for doctor in doctors:
        total, line_count, sale_count, oldest = pending.get(doctor.id, (0, 0, 0, None))
        oldest_date = parse_date(oldest, "oldest_sale_date", required=False)
        result.append({
            "doctor_id": doctor.id,
            "doctor_name": doctor.name,
            "pending_cents": total,
            "line_count": line_count,
            "sale_count": sale_count,
            "oldest_sale_date": oldest_date.isoformat() if oldest_date else None,
            "cutoff": cutoff_date.isoformat(),
        })
    return result
