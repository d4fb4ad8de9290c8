# Overview: Manual income statement concepts (rent, payroll, other costs) entered by administrators.

"""
Income Statement Concepts

Costs the register never sees (rent, payroll, utilities, bank fees) are
entered by hand with the period they cover. A concept is folded into every
income statement whose window overlaps its period:

    operating_cost    -> subtracted before gross profit
    operating_expense -> subtracted before operating result
    other_expense     -> subtracted before net result
"""

from __future__ import annotations

import logging

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import IncomeStatementConcept
from ..models.reports import CONCEPT_TYPES
from ..validation import optional_text, parse_cents, parse_date_range, require_text
from .concurrency import transaction


logger = logging.getLogger(__name__)


UPDATABLE_FIELDS = frozenset({
    "concept_type",
    "name",
    "amount_cents",
    "period_start",
    "period_end",
    "description",
})


def _parse_type(value) -> str:
    concept_type = require_text(value, "concept_type", max_length=32).lower()
    if concept_type not in CONCEPT_TYPES:
        raise ValidationError(
            f"concept_type must be one of {', '.join(CONCEPT_TYPES)}",
            details={"allowed": list(CONCEPT_TYPES)},
        )
    return concept_type


def create_concept(
    user_id: int,
    concept_type: str,
    name: str,
    amount_cents: int,
    period_start,
    period_end,
    description: str | None = None,
) -> IncomeStatementConcept:
    """
    Raises:
        ValidationError: bad type, name or amount (zero is allowed)
        InvalidDateRange: missing or inverted period
    """
    concept = IncomeStatementConcept(
        concept_type=_parse_type(concept_type),
        name=require_text(name, "name", max_length=128),
        amount_cents=parse_cents(amount_cents, "amount_cents", allow_zero=True),
        description=optional_text(description, "description", max_length=2000),
        recorded_by_user_id=user_id,
    )
    concept.period_start, concept.period_end = parse_date_range(period_start, period_end)

    with transaction():
        db.session.add(concept)

    logger.info("Concept %s (%s, %s cents) recorded by user %s", concept.id, concept.concept_type, concept.amount_cents, user_id)
    return concept


def get_concept(concept_id: int) -> IncomeStatementConcept:
    concept = db.session.query(IncomeStatementConcept).filter_by(id=concept_id).first()
    if concept is None:
        raise NotFound(f"Concept {concept_id} not found")
    return concept


def list_concepts(concept_type: str | None = None, start=None, end=None) -> list[IncomeStatementConcept]:
    """Ordered by type then name. start/end keep concepts whose period overlaps the window."""
    start_date, end_date = parse_date_range(start, end, required=False)

    query = db.session.query(IncomeStatementConcept)
    if concept_type:
        query = query.filter(IncomeStatementConcept.concept_type == _parse_type(concept_type))
    if end_date:
        query = query.filter(IncomeStatementConcept.period_start <= end_date)
    if start_date:
        query = query.filter(IncomeStatementConcept.period_end >= start_date)

    return query.order_by(
        IncomeStatementConcept.concept_type,
        IncomeStatementConcept.name,
        IncomeStatementConcept.id,
    ).all()


def update_concept(concept_id: int, **patch) -> IncomeStatementConcept:
    unknown = set(patch) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            "Unknown concept fields: " + ", ".join(sorted(unknown)),
            details={"allowed": sorted(UPDATABLE_FIELDS)},
        )

    concept = get_concept(concept_id)

    values = {}
    if "concept_type" in patch:
        values["concept_type"] = _parse_type(patch["concept_type"])
    if "name" in patch:
        values["name"] = require_text(patch["name"], "name", max_length=128)
    if "amount_cents" in patch:
        values["amount_cents"] = parse_cents(patch["amount_cents"], "amount_cents", allow_zero=True)
    if "description" in patch:
        values["description"] = optional_text(patch["description"], "description", max_length=2000)
    if "period_start" in patch or "period_end" in patch:
        values["period_start"], values["period_end"] = parse_date_range(
            patch.get("period_start", concept.period_start),
            patch.get("period_end", concept.period_end),
        )

    with transaction():
        for field, value in values.items():
            setattr(concept, field, value)

    logger.info("Concept %s updated (%s)", concept.id, ", ".join(sorted(values)))
    return concept


def delete_concept(concept_id: int) -> None:
    with transaction():
        db.session.delete(get_concept(concept_id))
    logger.info("Concept %s deleted", concept_id)
