from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


SALE_COMPLETED = "COMPLETED"
SALE_VOIDED = "VOIDED"

PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_TRANSFER = "TRANSFER"
PAYMENT_DEPOSIT = "DEPOSIT"
PAYMENT_MIXED = "MIXED"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_TRANSFER, PAYMENT_DEPOSIT, PAYMENT_MIXED)

PRODUCT_TYPES = ("medication", "service", "extra")

SETTLEMENT_UNSETTLED = "UNSETTLED"
SETTLEMENT_SETTLED = "SETTLED"
SETTLEMENT_VOIDED = "VOIDED"


class Doctor(db.Model):
    """Doctor who earns commission on the sale lines assigned to them."""
    __tablename__ = "doctors"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Sale(db.Model):
    """
    Completed sale recorded against the open shift.

    Payment is split by channel; a single-channel sale has one non-zero
    channel amount, a MIXED sale has several. The channel amounts always add
    up to total_cents.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_shift_status", "shift_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    invoice_number = db.Column(db.String(64), nullable=True, index=True)
    customer_name = db.Column(db.String(128), nullable=False, default="Cliente general")

    # Calendar date used for commission windows and reports
    sale_date = db.Column(db.Date, nullable=False, index=True)

    payment_method = db.Column(db.String(16), nullable=False)
    cash_cents = db.Column(db.Integer, nullable=False, default=0)
    card_cents = db.Column(db.Integer, nullable=False, default=0)
    transfer_cents = db.Column(db.Integer, nullable=False, default=0)
    deposit_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)
    void_reason = db.Column(db.String(255), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shift = db.relationship("Shift", backref=db.backref("sales", lazy=True))
    lines = db.relationship("SaleLine", backref="sale", lazy=True, order_by="SaleLine.id")

    def to_dict(self, include_lines: bool = False) -> dict:
        d = {
            "id": self.id,
            "shift_id": self.shift_id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "sale_date": to_iso_date(self.sale_date),
            "payment_method": self.payment_method,
            "cash_cents": self.cash_cents,
            "card_cents": self.card_cents,
            "transfer_cents": self.transfer_cents,
            "deposit_cents": self.deposit_cents,
            "total_cents": self.total_cents,
            "status": self.status,
            "void_reason": self.void_reason,
            "voided_at": to_utc_z(self.voided_at),
            "voided_by_user_id": self.voided_by_user_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            d["lines"] = [line.to_dict() for line in self.lines]
        return d


class SaleLine(db.Model):
    """
    Sale line item. Commission-bearing when doctor_id is set and
    commission_cents > 0.

    SETTLEMENT:
    - UNSETTLED: eligible for the next commission payment
    - SETTLED: linked to exactly one active CommissionPayment
    - VOIDED: parent sale was voided, never payable

    commission_payment_id is only ever set from NULL (conditional update), so
    two payments can never claim the same line.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.Index("ix_sale_lines_doctor_state", "doctor_id", "settlement_state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_type = db.Column(db.String(16), nullable=False, default="medication")
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=True, index=True)
    commission_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)
    settlement_state = db.Column(db.String(16), nullable=False, default=SETTLEMENT_UNSETTLED, index=True)
    commission_payment_id = db.Column(db.Integer, db.ForeignKey("commission_payments.id"), nullable=True, index=True)

    doctor = db.relationship("Doctor", backref=db.backref("sale_lines", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_name": self.product_name,
            "product_type": self.product_type,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "doctor_id": self.doctor_id,
            "commission_rate_bps": self.commission_rate_bps,
            "commission_cents": self.commission_cents,
            "settlement_state": self.settlement_state,
            "commission_payment_id": self.commission_payment_id,
        }


class CommissionPayment(db.Model):
    """
    Settlement of a doctor's commissions over [period_start, period_end].

    LIFECYCLE: active until voided. Voiding is permanent and releases every
    linked line back to UNSETTLED; paying again requires a new payment.
    """
    __tablename__ = "commission_payments"
    __table_args__ = (
        db.Index("ix_commission_payments_doctor_period", "doctor_id", "period_start", "period_end"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=False, index=True)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    total_cents = db.Column(db.Integer, nullable=False)
    line_count = db.Column(db.Integer, nullable=False, default=0)
    sale_count = db.Column(db.Integer, nullable=False, default=0)

    # Paid from this shift's drawer (reduces its expected cash)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)

    note = db.Column(db.Text, nullable=True)
    overrode_existing = db.Column(db.Boolean, nullable=False, default=False)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    paid_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    voided_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    void_reason = db.Column(db.String(255), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    doctor = db.relationship("Doctor", backref=db.backref("commission_payments", lazy=True))
    lines = db.relationship("SaleLine", backref="commission_payment", lazy=True, order_by="SaleLine.id")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_voided(self) -> bool:
        return self.voided_at is not None

    def to_dict(self, include_lines: bool = False) -> dict:
        d = {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "total_cents": self.total_cents,
            "line_count": self.line_count,
            "sale_count": self.sale_count,
            "shift_id": self.shift_id,
            "note": self.note,
            "overrode_existing": self.overrode_existing,
            "status": "VOIDED" if self.is_voided else "PAID",
            "paid_at": to_utc_z(self.paid_at),
            "paid_by_user_id": self.paid_by_user_id,
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
            "voided_by_user_id": self.voided_by_user_id,
            "version_id": self.version_id,
        }
        if include_lines:
            d["line_item_ids"] = [line.id for line in self.lines]
        return d
