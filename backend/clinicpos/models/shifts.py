from __future__ import annotations

from sqlalchemy.orm import declared_attr

from ..extensions import db
from ..time_utils import to_utc_z


SHIFT_OPEN = "OPEN"
SHIFT_CLOSED = "CLOSED"


class Shift(db.Model):
    """
    Cash register shift (turno).

    WHY: Cashier accountability. Each shift has opening/closing denomination
    counts, owns every expense, voucher, transfer, deposit and sale recorded
    while it is open, and stores the cuadre computed at close.

    LIFECYCLE:
    - OPEN: Shift is active, accruals are accepted
    - CLOSED: Cash counted, discrepancies persisted (terminal)

    INVARIANT: at most one OPEN shift system-wide, enforced by the partial
    unique index below rather than by a check-then-insert.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_single_open",
            "status",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    operator_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=SHIFT_OPEN, index=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Denomination -> count maps, string keys ("200", "0.25")
    opening_bills = db.Column(db.JSON, nullable=False, default=dict)
    opening_coins = db.Column(db.JSON, nullable=False, default=dict)
    opening_cash_cents = db.Column(db.Integer, nullable=False, default=0)

    closing_bills = db.Column(db.JSON, nullable=True)
    closing_coins = db.Column(db.JSON, nullable=True)
    closing_cash_cents = db.Column(db.Integer, nullable=True)

    # Totals snapshot (all amounts in cents, persisted at close)
    sales_count = db.Column(db.Integer, nullable=True)
    total_sales_cents = db.Column(db.Integer, nullable=True)
    cash_sales_cents = db.Column(db.Integer, nullable=True)
    card_sales_cents = db.Column(db.Integer, nullable=True)
    transfer_sales_cents = db.Column(db.Integer, nullable=True)
    deposit_sales_cents = db.Column(db.Integer, nullable=True)
    expense_total_cents = db.Column(db.Integer, nullable=True)
    commission_payout_cents = db.Column(db.Integer, nullable=True)
    voucher_total_cents = db.Column(db.Integer, nullable=True)
    transfer_total_cents = db.Column(db.Integer, nullable=True)
    deposit_total_cents = db.Column(db.Integer, nullable=True)

    tax_cash_cents = db.Column(db.Integer, nullable=True)
    tax_card_cents = db.Column(db.Integer, nullable=True)
    tax_transfer_cents = db.Column(db.Integer, nullable=True)
    tax_deposit_cents = db.Column(db.Integer, nullable=True)
    net_sales_cents = db.Column(db.Integer, nullable=True)
    amount_to_deposit_cents = db.Column(db.Integer, nullable=True)

    # Cuadre
    expected_cash_cents = db.Column(db.Integer, nullable=True)
    cash_discrepancy_cents = db.Column(db.Integer, nullable=True)
    voucher_discrepancy_cents = db.Column(db.Integer, nullable=True)
    transfer_discrepancy_cents = db.Column(db.Integer, nullable=True)
    requires_authorization = db.Column(db.Boolean, nullable=False, default=False)
    authorized_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    authorization_note = db.Column(db.Text, nullable=True)
    authorized_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    operator = db.relationship("User", foreign_keys=[operator_user_id], backref=db.backref("shifts", lazy=True))
    authorized_by = db.relationship("User", foreign_keys=[authorized_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SHIFT_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operator_user_id": self.operator_user_id,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "closed_by_user_id": self.closed_by_user_id,
            "opening_bills": self.opening_bills or {},
            "opening_coins": self.opening_coins or {},
            "opening_cash_cents": self.opening_cash_cents,
            "closing_bills": self.closing_bills,
            "closing_coins": self.closing_coins,
            "closing_cash_cents": self.closing_cash_cents,
            "sales_count": self.sales_count,
            "total_sales_cents": self.total_sales_cents,
            "cash_sales_cents": self.cash_sales_cents,
            "card_sales_cents": self.card_sales_cents,
            "transfer_sales_cents": self.transfer_sales_cents,
            "deposit_sales_cents": self.deposit_sales_cents,
            "expense_total_cents": self.expense_total_cents,
            "commission_payout_cents": self.commission_payout_cents,
            "voucher_total_cents": self.voucher_total_cents,
            "transfer_total_cents": self.transfer_total_cents,
            "deposit_total_cents": self.deposit_total_cents,
            "tax_cash_cents": self.tax_cash_cents,
            "tax_card_cents": self.tax_card_cents,
            "tax_transfer_cents": self.tax_transfer_cents,
            "tax_deposit_cents": self.tax_deposit_cents,
            "net_sales_cents": self.net_sales_cents,
            "amount_to_deposit_cents": self.amount_to_deposit_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "cash_discrepancy_cents": self.cash_discrepancy_cents,
            "voucher_discrepancy_cents": self.voucher_discrepancy_cents,
            "transfer_discrepancy_cents": self.transfer_discrepancy_cents,
            "requires_authorization": self.requires_authorization,
            "authorized_by_user_id": self.authorized_by_user_id,
            "authorization_note": self.authorization_note,
            "authorized_at": to_utc_z(self.authorized_at),
            "notes": self.notes,
            "version_id": self.version_id,
        }


class _ShiftChildMixin:
    """Columns shared by every record a shift owns."""
    id = db.Column(db.Integer, primary_key=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @declared_attr
    def shift_id(cls):
        return db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    @declared_attr
    def recorded_by_user_id(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    def _base_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "amount_cents": self.amount_cents,
            "recorded_by_user_id": self.recorded_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class Expense(_ShiftChildMixin, db.Model):
    """Cash paid out of the drawer during a shift (gasto)."""
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    payee = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update({"category": self.category, "description": self.description, "payee": self.payee})
        return d


class CardVoucher(_ShiftChildMixin, db.Model):
    """Card terminal voucher backing card sales."""
    __tablename__ = "card_vouchers"
    __table_args__ = (
        db.UniqueConstraint("shift_id", "voucher_number", name="uq_card_vouchers_shift_number"),
        {"sqlite_autoincrement": True},
    )

    voucher_number = db.Column(db.String(64), nullable=False)
    payer_name = db.Column(db.String(128), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update({"voucher_number": self.voucher_number, "payer_name": self.payer_name, "sale_id": self.sale_id})
        return d


class BankTransfer(_ShiftChildMixin, db.Model):
    """Bank transfer slip backing transfer sales."""
    __tablename__ = "bank_transfers"
    __table_args__ = (
        db.UniqueConstraint("shift_id", "slip_number", name="uq_bank_transfers_shift_slip"),
        {"sqlite_autoincrement": True},
    )

    slip_number = db.Column(db.String(64), nullable=False)
    payer_name = db.Column(db.String(128), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update({"slip_number": self.slip_number, "payer_name": self.payer_name, "sale_id": self.sale_id})
        return d


class Deposit(_ShiftChildMixin, db.Model):
    """Bank deposit slip backing deposit sales."""
    __tablename__ = "deposits"
    __table_args__ = (
        db.UniqueConstraint("shift_id", "slip_number", name="uq_deposits_shift_slip"),
        {"sqlite_autoincrement": True},
    )

    slip_number = db.Column(db.String(64), nullable=False)
    payer_name = db.Column(db.String(128), nullable=False)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)

    def to_dict(self) -> dict:
        d = self._base_dict()
        d.update({"slip_number": self.slip_number, "payer_name": self.payer_name, "sale_id": self.sale_id})
        return d
