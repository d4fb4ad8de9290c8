from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


DIRECTION_INCOME = "INCOME"
DIRECTION_EXPENSE = "EXPENSE"
DIRECTIONS = (DIRECTION_INCOME, DIRECTION_EXPENSE)


class InitialBalance(db.Model):
    """
    Seed of the bank ledger running balance.

    DESIGN: Rows are never overwritten. Registering a new balance deactivates
    the current row and inserts a new one, so the history stays auditable.
    The partial unique index allows at most one active row.
    """
    __tablename__ = "initial_balances"
    __table_args__ = (
        db.Index(
            "uq_initial_balances_single_active",
            "is_active",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    registered_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "registered_by_user_id": self.registered_by_user_id,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "deactivated_at": to_utc_z(self.deactivated_at),
        }


class LedgerEntry(db.Model):
    """
    One row of the bank ledger (libro de bancos).

    INVARIANT: ordered by (entry_date, id), every running_balance_cents equals
    the active initial balance plus all income minus all expense up to and
    including that row. The column is derived; recompute_all() rewrites it
    after every mutation.

    source_key identifies the accrual event that produced the row (for example
    "sale:12" or "expense:3"). It is unique, so mirroring the same event twice
    is rejected by the database.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_entries_date_id", "entry_date", "id"),
        db.CheckConstraint(
            "(income_cents > 0 AND expense_cents = 0) OR (expense_cents > 0 AND income_cents = 0)",
            name="ck_ledger_entries_single_side",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Calendar date, no time of day and no timezone
    entry_date = db.Column(db.Date, nullable=False, index=True)

    payee = db.Column(db.String(128), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    classification = db.Column(db.String(64), nullable=True, index=True)
    direction = db.Column(db.String(16), nullable=False)

    income_cents = db.Column(db.Integer, nullable=False, default=0)
    expense_cents = db.Column(db.Integer, nullable=False, default=0)
    running_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    check_number = db.Column(db.String(64), nullable=True)
    deposit_number = db.Column(db.String(64), nullable=True)

    source_key = db.Column(db.String(64), nullable=True, unique=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)

    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_date": to_iso_date(self.entry_date),
            "payee": self.payee,
            "description": self.description,
            "classification": self.classification,
            "direction": self.direction,
            "income_cents": self.income_cents,
            "expense_cents": self.expense_cents,
            "running_balance_cents": self.running_balance_cents,
            "check_number": self.check_number,
            "deposit_number": self.deposit_number,
            "source_key": self.source_key,
            "shift_id": self.shift_id,
            "recorded_by_user_id": self.recorded_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
