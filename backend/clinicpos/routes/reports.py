# Overview: Flask API routes for reports and manual income statement concepts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import concept_service, reporting_service
from ..decorators import require_auth, require_role


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/shift-dashboard")
@require_auth
def shift_dashboard_route():
    try:
        return jsonify({"dashboard": reporting_service.shift_dashboard()}), 200
    except Exception:
        current_app.logger.exception("Failed to build shift dashboard")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@reports_bp.post("/cuadre/<int:shift_id>")
@require_auth
def cuadre_route(shift_id: int):
    """Request body: {"bills": {...}, "coins": {...}}"""
    try:
        data = request.get_json(silent=True) or {}
        cuadre = reporting_service.cuadre_preview(shift_id, data.get("bills"), data.get("coins"))
        return jsonify({"cuadre": cuadre}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build cuadre report")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@reports_bp.get("/ledger")
@require_auth
def ledger_report_route():
    try:
        report = reporting_service.ledger_report(request.args.get("start"), request.args.get("end"))
        return jsonify(report), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build ledger report")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@reports_bp.get("/income-statement")
@require_auth
def income_statement_route():
    try:
        report = reporting_service.income_statement(request.args.get("start"), request.args.get("end"))
        return jsonify(report), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build income statement")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@reports_bp.get("/shift-statistics")
@require_auth
def shift_statistics_route():
    """Query: ?start=YYYY-MM-DD&end=YYYY-MM-DD (both optional, on the day each shift opened)"""
    try:
        stats = reporting_service.shift_statistics(request.args.get("start"), request.args.get("end"))
        return jsonify({"statistics": stats}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build shift statistics")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


# =============================================================================
# INCOME STATEMENT CONCEPTS
# =============================================================================

@reports_bp.get("/concepts")
@require_auth
def list_concepts_route():
    """Query: ?type=operating_cost&start=...&end=... (all optional)"""
    try:
        concepts = concept_service.list_concepts(
            request.args.get("type"), request.args.get("start"), request.args.get("end"),
        )
        return jsonify({"concepts": [c.to_dict() for c in concepts]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list concepts")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@reports_bp.get("/concepts/<int:concept_id>")
@require_auth
def get_concept_route(concept_id: int):
    try:
        return jsonify({"concept": concept_service.get_concept(concept_id).to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to fetch concept")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@reports_bp.post("/concepts")
@require_auth
@require_role(ROLE_ADMIN)
def create_concept_route():
    """
    Request body:
    {
        "concept_type": "operating_expense",
        "name": "Rent",
        "amount_cents": 800000,
        "period_start": "2025-03-01",
        "period_end": "2025-03-31",
        "description": "..."        (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        concept = concept_service.create_concept(
            g.current_user.id,
            data.get("concept_type"),
            data.get("name"),
            data.get("amount_cents"),
            data.get("period_start"),
            data.get("period_end"),
            description=data.get("description"),
        )
        return jsonify({"concept": concept.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create concept")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@reports_bp.patch("/concepts/<int:concept_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_concept_route(concept_id: int):
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        concept = concept_service.update_concept(concept_id, **data)
        return jsonify({"concept": concept.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update concept")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@reports_bp.delete("/concepts/<int:concept_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_concept_route(concept_id: int):
    try:
        concept_service.delete_concept(concept_id)
        return jsonify({"deleted": concept_id}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete concept")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
