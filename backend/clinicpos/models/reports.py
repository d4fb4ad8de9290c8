from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


CONCEPT_OPERATING_COST = "operating_cost"
CONCEPT_OPERATING_EXPENSE = "operating_expense"
CONCEPT_OTHER_EXPENSE = "other_expense"
CONCEPT_TYPES = (CONCEPT_OPERATING_COST, CONCEPT_OPERATING_EXPENSE, CONCEPT_OTHER_EXPENSE)


class IncomeStatementConcept(db.Model):
    """
    Manually entered line of the income statement (rent, payroll, ...).

    A concept applies to every statement whose window overlaps
    [period_start, period_end]. concept_type picks the section it lands in:
    operating_cost (before gross profit), operating_expense, other_expense.
    """
    __tablename__ = "income_statement_concepts"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_income_statement_concepts_amount"),
        db.CheckConstraint("period_start <= period_end", name="ck_income_statement_concepts_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    concept_type = db.Column(db.String(32), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)
    description = db.Column(db.Text, nullable=True)
    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "concept_type": self.concept_type,
            "name": self.name,
            "amount_cents": self.amount_cents,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "description": self.description,
            "recorded_by_user_id": self.recorded_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
