# Overview: Flask API routes for shift operations; parses input and returns JSON responses.

"""
Shift (turno) API Routes

DESIGN:
- Shift lifecycle: open -> close (terminal)
- Accruals (expenses, vouchers, transfers, deposits) always go to the open
  shift, under /api/shifts/current/...
- Expenses, vouchers, transfers and deposits can be patched or deleted
  while their shift is open (409 SHIFT_CLOSED afterwards)
- preview-close computes the cuadre without writing anything; for a closed
  shift it returns the cuadre persisted at close
- close requires {"authorization": {"authorized_by": <admin id>, "note": "..."}}
  when any discrepancy exceeds the tolerance (403 AUTHORIZATION_REQUIRED otherwise)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError, ValidationError
from ..services import cash_counter, shift_service
from ..decorators import require_auth


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


# =============================================================================
# LIFECYCLE
# =============================================================================

@shifts_bp.post("/")
@shifts_bp.post("")
@require_auth
def open_shift_route():
    """
    Open a shift for the current user.

    Request body:
    {
        "bills": {"100": 5, "20": 2},
        "coins": {"0.25": 4},
        "notes": "..."   (optional)
    }
    """
    try:
        data = _json_body()
        bills, coins = cash_counter.parse_breakdown(data)

        shift = shift_service.open_shift(g.current_user.id, bills, coins, notes=data.get("notes"))
        return jsonify({"shift": shift.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.get("/")
@shifts_bp.get("")
@require_auth
def list_shifts_route():
    try:
        shifts = shift_service.list_shifts(
            status=request.args.get("status"),
            start=request.args.get("start"),
            end=request.args.get("end"),
            operator_id=request.args.get("operator_id", type=int),
            limit=min(request.args.get("limit", 50, type=int), 500),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list shifts")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.get("/current")
@require_auth
def current_shift_route():
    """Open shift with its live summary; {"shift": null} when none is open."""
    try:
        shift = shift_service.get_open_shift()
        if shift is None:
            return jsonify({"shift": None}), 200
        return jsonify(shift_service.shift_summary(shift.id)), 200

    except Exception:
        current_app.logger.exception("Failed to load current shift")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.get("/<int:shift_id>")
@require_auth
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(shift_id)
        return jsonify({"shift": shift.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load shift")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.get("/<int:shift_id>/summary")
@require_auth
def shift_summary_route(shift_id: int):
    try:
        return jsonify(shift_service.shift_summary(shift_id)), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build shift summary")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.post("/<int:shift_id>/preview-close")
@require_auth
def preview_close_route(shift_id: int):
    """Cuadre for the given closing count. Writes nothing."""
    try:
        bills, coins = cash_counter.parse_breakdown(_json_body())
        return jsonify({"cuadre": shift_service.preview_close(shift_id, bills, coins)}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to preview shift close")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.post("/<int:shift_id>/close")
@require_auth
def close_shift_route(shift_id: int):
    """
    Close a shift.

    Request body:
    {
        "bills": {"100": 6, "20": 3},
        "coins": {},
        "notes": "...",                                       (optional)
        "authorization": {"authorized_by": 1, "note": "..."}  (when required)
    }
    """
    try:
        data = _json_body()
        bills, coins = cash_counter.parse_breakdown(data)

        shift = shift_service.close_shift(
            shift_id,
            bills,
            coins,
            closed_by_id=g.current_user.id,
            authorization=data.get("authorization"),
            notes=data.get("notes"),
        )
        return jsonify({"shift": shift.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


# =============================================================================
# ACCRUALS (open shift)
# =============================================================================

@shifts_bp.post("/current/expenses")
@require_auth
def record_expense_route():
    """
    Request body:
    {"amount_cents": 5000, "category": "Supplies", "description": "Gauze", "payee": "..."}
    """
    try:
        data = _json_body()
        expense = shift_service.record_expense(
            g.current_user.id,
            data.get("amount_cents"),
            data.get("category"),
            data.get("description"),
            payee=data.get("payee"),
        )
        return jsonify({"expense": expense.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.post("/current/vouchers")
@require_auth
def record_voucher_route():
    """
    Request body:
    {"amount_cents": 12000, "voucher_number": "000123", "payer_name": "...", "sale_id": 4}
    """
    try:
        data = _json_body()
        voucher = shift_service.record_voucher(
            g.current_user.id,
            data.get("amount_cents"),
            data.get("voucher_number"),
            data.get("payer_name"),
            sale_id=data.get("sale_id"),
        )
        return jsonify({"voucher": voucher.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record voucher")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.post("/current/transfers")
@require_auth
def record_transfer_route():
    try:
        data = _json_body()
        transfer = shift_service.record_transfer(
            g.current_user.id,
            data.get("amount_cents"),
            data.get("slip_number"),
            data.get("payer_name"),
            sale_id=data.get("sale_id"),
        )
        return jsonify({"transfer": transfer.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record transfer")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.post("/current/deposits")
@require_auth
def record_deposit_route():
    try:
        data = _json_body()
        deposit = shift_service.record_deposit(
            g.current_user.id,
            data.get("amount_cents"),
            data.get("slip_number"),
            data.get("payer_name"),
            sale_id=data.get("sale_id"),
        )
        return jsonify({"deposit": deposit.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record deposit")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


# =============================================================================
# EDIT / REMOVE ACCRUALS (open shift only)
# =============================================================================

def _patch_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@shifts_bp.patch("/expenses/<int:expense_id>")
@require_auth
def update_expense_route(expense_id: int):
    """Request body: any of {"amount_cents", "category", "description", "payee"}"""
    try:
        expense = shift_service.update_expense(expense_id, **_patch_body())
        return jsonify({"expense": expense.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.delete("/expenses/<int:expense_id>")
@require_auth
def remove_expense_route(expense_id: int):
    try:
        shift_service.remove_expense(expense_id)
        return jsonify({"deleted": expense_id}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove expense")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.get("/vouchers/search")
@require_auth
def find_vouchers_route():
    """Query: ?number=000123. Searches every shift."""
    try:
        vouchers = shift_service.find_vouchers_by_number(request.args.get("number"))
        return jsonify({"vouchers": [v.to_dict() for v in vouchers]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to search vouchers")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.patch("/vouchers/<int:voucher_id>")
@require_auth
def update_voucher_route(voucher_id: int):
    """Request body: any of {"amount_cents", "voucher_number", "payer_name", "sale_id"}"""
    try:
        voucher = shift_service.update_voucher(voucher_id, **_patch_body())
        return jsonify({"voucher": voucher.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update voucher")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.delete("/vouchers/<int:voucher_id>")
@require_auth
def remove_voucher_route(voucher_id: int):
    try:
        shift_service.remove_voucher(voucher_id)
        return jsonify({"deleted": voucher_id}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove voucher")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.patch("/transfers/<int:transfer_id>")
@require_auth
def update_transfer_route(transfer_id: int):
    try:
        transfer = shift_service.update_transfer(transfer_id, **_patch_body())
        return jsonify({"transfer": transfer.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update transfer")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.delete("/transfers/<int:transfer_id>")
@require_auth
def remove_transfer_route(transfer_id: int):
    try:
        shift_service.remove_transfer(transfer_id)
        return jsonify({"deleted": transfer_id}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove transfer")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.patch("/deposits/<int:deposit_id>")
@require_auth
def update_deposit_route(deposit_id: int):
    try:
        deposit = shift_service.update_deposit(deposit_id, **_patch_body())
        return jsonify({"deposit": deposit.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update deposit")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@shifts_bp.delete("/deposits/<int:deposit_id>")
@require_auth
def remove_deposit_route(deposit_id: int):
    try:
        shift_service.remove_deposit(deposit_id)
        return jsonify({"deleted": deposit_id}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove deposit")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
