# Overview: Flask API routes for the bank ledger; parses input and returns JSON responses.

"""
Bank Ledger API Routes

Reads are open to any authenticated user. Manual entries, edits, deletes,
the initial balance and a forced recompute are administrator operations.
Entries produced by shift accruals carry a source_key and are created by
those operations, never through this blueprint.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..models.auth import ROLE_ADMIN
from ..services import ledger_service
from ..services.ledger_service import UPDATABLE_FIELDS
from ..decorators import require_auth, require_role


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


# =============================================================================
# ENTRIES
# =============================================================================

@ledger_bp.get("/entries")
@require_auth
def list_entries_route():
    """Query params: start, end, classification, direction, limit, offset."""
    try:
        entries = ledger_service.list_entries(
            start=request.args.get("start"),
            end=request.args.get("end"),
            classification=request.args.get("classification"),
            direction=request.args.get("direction"),
            limit=request.args.get("limit", type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list ledger entries")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@ledger_bp.get("/entries/<int:entry_id>")
@require_auth
def get_entry_route(entry_id: int):
    try:
        return jsonify({"entry": ledger_service.get_entry(entry_id).to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load ledger entry")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@ledger_bp.post("/entries")
@require_auth
@require_role(ROLE_ADMIN)
def create_entry_route():
    """
    Manual ledger entry.

    Request body:
    {
        "entry_date": "2025-03-01",
        "payee": "Banco Industrial",
        "description": "Bank charges",
        "classification": "Bank charges",
        "expense_cents": 2500,            (exactly one of income_cents / expense_cents)
        "check_number": "0001",           (optional)
        "deposit_number": null            (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        entry = ledger_service.append_entry(
            entry_date=data.get("entry_date"),
            payee=data.get("payee"),
            description=data.get("description"),
            classification=data.get("classification"),
            income_cents=data.get("income_cents"),
            expense_cents=data.get("expense_cents"),
            check_number=data.get("check_number"),
            deposit_number=data.get("deposit_number"),
            recorded_by_user_id=g.current_user.id,
        )
        return jsonify({"entry": entry.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create ledger entry")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@ledger_bp.patch("/entries/<int:entry_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_entry_route(entry_id: int):
    try:
        data = request.get_json(silent=True) or {}
        patch = {key: data[key] for key in data if key in UPDATABLE_FIELDS}
        unknown = sorted(set(data) - UPDATABLE_FIELDS)
        if unknown:
            return jsonify({
                "error": "Unknown ledger fields: " + ", ".join(unknown),
                "code": "VALIDATION_ERROR",
            }), 400

        entry = ledger_service.update_entry(entry_id, **patch)
        return jsonify({"entry": entry.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update ledger entry")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@ledger_bp.delete("/entries/<int:entry_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_entry_route(entry_id: int):
    try:
        ledger_service.remove_entry(entry_id)
        return jsonify({"deleted": entry_id}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete ledger entry")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


# =============================================================================
# BALANCES
# =============================================================================

@ledger_bp.get("/balance")
@require_auth
def balance_route():
    try:
        as_of = request.args.get("as_of")
        return jsonify({
            "as_of": as_of,
            "balance_cents": ledger_service.current_balance(as_of=as_of),
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to compute ledger balance")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@ledger_bp.get("/initial-balance")
@require_auth
def get_initial_balance_route():
    initial = ledger_service.get_active_initial_balance()
    return jsonify({"initial_balance": initial.to_dict() if initial else None}), 200


@ledger_bp.post("/initial-balance")
@require_auth
@require_role(ROLE_ADMIN)
def register_initial_balance_route():
    """Request body: {"amount_cents": 1000000, "notes": "Opening bank balance"}"""
    try:
        data = request.get_json(silent=True) or {}
        initial = ledger_service.register_initial_balance(
            data.get("amount_cents"),
            g.current_user.id,
            notes=data.get("notes"),
        )
        return jsonify({"initial_balance": initial.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to register initial balance")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@ledger_bp.post("/recompute")
@require_auth
@require_role(ROLE_ADMIN)
def recompute_route():
    try:
        return jsonify({"recompute": ledger_service.recompute_all()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to recompute ledger")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@ledger_bp.get("/summary")
@require_auth
def summary_route():
    try:
        start, end = request.args.get("start"), request.args.get("end")
        return jsonify({
            "summary": ledger_service.summarize(start, end),
            "daily": ledger_service.daily_totals(start, end),
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to summarize ledger")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
