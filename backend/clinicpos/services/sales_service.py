# Overview: Sales boundary; records completed sales (lines, commissions, payment split) and voids them.

"""
Sales Service

WHY: Sales feed both the open shift's totals and the bank ledger, and their
doctor-assigned lines are what the commission engine settles.

DESIGN:
- A sale is recorded complete in one transaction: sale row, its lines and
  the ledger INCOME entry keyed "sale:<id>"
- commission_cents = round(line_total x commission_rate_bps / 10000)
- Payment is split per channel; the channel amounts must add up to the total
- Voiding is refused while any of the sale's commission lines is SETTLED;
  void the commission payment first
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from ..errors import AlreadyVoided, NotFound, SettledLinesLocked, ShiftClosed, ValidationError
from ..extensions import db
from ..models import Doctor, Sale, SaleLine
from ..models.sales import (
    PAYMENT_CARD,
    PAYMENT_CASH,
    PAYMENT_DEPOSIT,
    PAYMENT_METHODS,
    PAYMENT_MIXED,
    PAYMENT_TRANSFER,
    PRODUCT_TYPES,
    SALE_COMPLETED,
    SALE_VOIDED,
    SETTLEMENT_SETTLED,
    SETTLEMENT_UNSETTLED,
    SETTLEMENT_VOIDED,
)
from ..time_utils import today, utcnow
from ..validation import (
    optional_text,
    parse_cents,
    parse_date,
    parse_date_range,
    parse_int,
    parse_optional_int,
    require_text,
)
from . import ledger_service
from .concurrency import lock_for_update, transaction
from .shift_service import apply_rate, require_open_shift


logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_NAME = "Cliente general"

CHANNEL_FIELDS = {
    PAYMENT_CASH: "cash_cents",
    PAYMENT_CARD: "card_cents",
    PAYMENT_TRANSFER: "transfer_cents",
    PAYMENT_DEPOSIT: "deposit_cents",
}


def _build_line(raw, index: int) -> SaleLine:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"lines[{index}] must be an object")

    product_name = require_text(raw.get("product_name"), f"lines[{index}].product_name")
    product_type = raw.get("product_type") or "medication"
    if product_type not in PRODUCT_TYPES:
        raise ValidationError(f"lines[{index}].product_type must be one of {', '.join(PRODUCT_TYPES)}")

    quantity = parse_int(raw.get("quantity"), f"lines[{index}].quantity")
    if quantity <= 0:
        raise ValidationError(f"lines[{index}].quantity must be greater than zero")
    unit_price = parse_cents(raw.get("unit_price_cents"), f"lines[{index}].unit_price_cents")
    line_total = quantity * unit_price

    doctor_id = parse_optional_int(raw.get("doctor_id"), f"lines[{index}].doctor_id")
    rate_bps = parse_optional_int(raw.get("commission_rate_bps"), f"lines[{index}].commission_rate_bps") or 0
    if rate_bps < 0 or rate_bps > 10000:
        raise ValidationError(f"lines[{index}].commission_rate_bps must be between 0 and 10000")

    if doctor_id is not None:
        doctor = db.session.query(Doctor).filter_by(id=doctor_id).first()
        if doctor is None:
            raise NotFound(f"Doctor {doctor_id} not found")
        if not doctor.is_active:
            raise ValidationError(f"Doctor {doctor_id} is inactive")
    elif rate_bps:
        raise ValidationError(f"lines[{index}] has a commission rate but no doctor")

    return SaleLine(
        product_name=product_name,
        product_type=product_type,
        quantity=quantity,
        unit_price_cents=unit_price,
        line_total_cents=line_total,
        doctor_id=doctor_id,
        commission_rate_bps=rate_bps,
        commission_cents=apply_rate(line_total, rate_bps) if doctor_id is not None else 0,
        settlement_state=SETTLEMENT_UNSETTLED,
    )


def _split_payment(payment, total_cents: int) -> tuple[str, dict]:
    """
    Resolve {"method": ..., "<channel>_cents": ...} into per-channel amounts.

    A single-channel method without amounts pays the whole total on that
    channel. MIXED requires explicit amounts.
    """
    if isinstance(payment, str):
        payment = {"method": payment}
    if not isinstance(payment, Mapping):
        raise ValidationError("payment must be an object with a method")

    method = str(payment.get("method") or "").upper()
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment.method must be one of {', '.join(PAYMENT_METHODS)}")

    amounts = {}
    for field in CHANNEL_FIELDS.values():
        raw = payment.get(field)
        amounts[field] = 0 if raw is None else parse_cents(raw, f"payment.{field}", allow_zero=True)

    if method != PAYMENT_MIXED:
        field = CHANNEL_FIELDS[method]
        others = {k: v for k, v in amounts.items() if k != field and v}
        if others:
            raise ValidationError(f"{method} payment cannot carry amounts on other channels", details=others)
        if not amounts[field]:
            amounts[field] = total_cents

    paid = sum(amounts.values())
    if paid != total_cents:
        raise ValidationError(
            "Payment split does not match the sale total",
            details={"total_cents": total_cents, "paid_cents": paid},
        )
    return method, amounts


def record_sale(
    user_id: int,
    lines,
    payment,
    customer_name: str | None = None,
    invoice_number: str | None = None,
    sale_date=None,
) -> Sale:
    """
    Record a completed sale on the open shift and mirror it to the ledger.

    Raises:
        NoActiveShift: no shift open
        MissingInitialBalance: ledger has no initial balance
        ValidationError / NotFound: bad lines, payment or doctor
    """
    if not isinstance(lines, list) or not lines:
        raise ValidationError("A sale needs at least one line")

    customer_name = optional_text(customer_name, "customer_name", max_length=128) or DEFAULT_CUSTOMER_NAME
    invoice_number = optional_text(invoice_number, "invoice_number", max_length=64)
    sale_day = parse_date(sale_date, "sale_date", required=False) or today()

    with transaction():
        shift = require_open_shift(lock=True)

        sale_lines = [_build_line(raw, i) for i, raw in enumerate(lines)]
        total = sum(line.line_total_cents for line in sale_lines)
        method, amounts = _split_payment(payment, total)

        sale = Sale(
            shift_id=shift.id,
            invoice_number=invoice_number,
            customer_name=customer_name,
            sale_date=sale_day,
            payment_method=method,
            total_cents=total,
            status=SALE_COMPLETED,
            created_by_user_id=user_id,
            **amounts,
        )
        db.session.add(sale)
        db.session.flush()

        for line in sale_lines:
            line.sale_id = sale.id
            db.session.add(line)
        db.session.flush()

        ledger_service.append_entry(
            entry_date=sale_day,
            payee=customer_name,
            description=f"Sale {invoice_number or sale.id} ({method.lower()})",
            income_cents=total,
            classification=ledger_service.CLASS_SALES,
            source_key=f"sale:{sale.id}",
            shift_id=shift.id,
            recorded_by_user_id=user_id,
            commit=False,
        )

    logger.info("Sale %s recorded on shift %s: %s cents via %s", sale.id, sale.shift_id, total, method)
    return sale


def void_sale(sale_id: int, reason: str, user_id: int) -> Sale:
    """
    Void a completed sale: lines become VOIDED and the ledger entry is removed.

    Raises:
        NotFound, AlreadyVoided
        ShiftClosed: the sale belongs to a closed shift
        SettledLinesLocked: a commission on this sale was already paid
    """
    reason = require_text(reason, "reason")

    with transaction():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFound(f"Sale {sale_id} not found")
        if sale.status == SALE_VOIDED:
            raise AlreadyVoided(f"Sale {sale_id} is already voided", details={"sale_id": sale_id})
        if not sale.shift.is_open:
            raise ShiftClosed(
                f"Sale {sale_id} belongs to closed shift {sale.shift_id}",
                details={"sale_id": sale_id, "shift_id": sale.shift_id},
            )

        settled = [line for line in sale.lines if line.settlement_state == SETTLEMENT_SETTLED]
        if settled:
            raise SettledLinesLocked(
                "Sale has commission lines that were already paid; void the commission payment first",
                details={
                    "line_ids": [line.id for line in settled],
                    "commission_payment_ids": sorted({line.commission_payment_id for line in settled}),
                },
            )

        sale.status = SALE_VOIDED
        sale.void_reason = reason
        sale.voided_at = utcnow()
        sale.voided_by_user_id = user_id
        for line in sale.lines:
            line.settlement_state = SETTLEMENT_VOIDED
        db.session.flush()

        ledger_service.remove_entry_by_source(f"sale:{sale.id}", missing_ok=True, commit=False)

    logger.info("Sale %s voided by user %s", sale_id, user_id)
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found")
    return sale


def list_sales(shift_id: int | None = None, status: str | None = None, start=None, end=None) -> list[Sale]:
    start_date, end_date = parse_date_range(start, end, required=False)
    query = db.session.query(Sale)
    if shift_id is not None:
        query = query.filter(Sale.shift_id == shift_id)
    if status:
        query = query.filter(Sale.status == status.upper())
    if start_date:
        query = query.filter(Sale.sale_date >= start_date)
    if end_date:
        query = query.filter(Sale.sale_date <= end_date)
    return query.order_by(Sale.sale_date.asc(), Sale.id.asc()).all()
