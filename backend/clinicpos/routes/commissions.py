# Overview: Flask API routes for doctors and commission settlement; parses input and returns JSON responses.

"""
Commission API Routes

Workflow:
1. GET  /api/commissions/preview?doctor_id=&start=&end=   review unsettled lines
2. POST /api/commissions/payments                        settle the window
   409 DUPLICATE_SETTLEMENT_WINDOW when an active payment overlaps; resend
   with "override": true to pay anyway
3. POST /api/commissions/payments/<id>/void              release the lines
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import commission_service
from ..decorators import require_auth, require_role
from ..validation import parse_bool, parse_int


commissions_bp = Blueprint("commissions", __name__, url_prefix="/api/commissions")


# =============================================================================
# DOCTORS
# =============================================================================

@commissions_bp.get("/doctors")
@require_auth
def list_doctors_route():
    include_inactive = parse_bool(request.args.get("include_inactive"))
    doctors = commission_service.list_doctors(include_inactive=include_inactive)
    return jsonify({"doctors": [d.to_dict() for d in doctors]}), 200


@commissions_bp.post("/doctors")
@require_auth
@require_role(ROLE_ADMIN)
def create_doctor_route():
    try:
        data = request.get_json(silent=True) or {}
        doctor = commission_service.create_doctor(data.get("name"))
        return jsonify({"doctor": doctor.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create doctor")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


# =============================================================================
# SETTLEMENT
# =============================================================================

@commissions_bp.get("/pending")
@require_auth
def pending_route():
    """Unsettled totals per active doctor. Query param: cutoff (default today)."""
    try:
        pending = commission_service.pending_by_doctor(cutoff=request.args.get("cutoff"))
        return jsonify({"pending": pending}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load pending commissions")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@commissions_bp.get("/preview")
@require_auth
def preview_route():
    try:
        doctor_id = request.args.get("doctor_id")
        if doctor_id is None:
            raise ValidationError("doctor_id is required")

        preview = commission_service.group_for_period(
            parse_int(doctor_id, "doctor_id"),
            request.args.get("start"),
            request.args.get("end"),
        )
        return jsonify(preview), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to preview commissions")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@commissions_bp.post("/payments")
@require_auth
@require_role(ROLE_ADMIN)
def settle_route():
    """
    Request body:
    {
        "doctor_id": 2,
        "start": "2025-03-01",
        "end": "2025-03-15",
        "note": "...",          (optional)
        "override": false,      (optional)
        "shift_id": 7           (optional: paid from that open shift's drawer)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("doctor_id") is None:
            raise ValidationError("doctor_id is required")

        shift_id = data.get("shift_id")
        payment = commission_service.settle(
            parse_int(data.get("doctor_id"), "doctor_id"),
            data.get("start"),
            data.get("end"),
            g.current_user.id,
            note=data.get("note"),
            override=parse_bool(data.get("override")),
            shift_id=parse_int(shift_id, "shift_id") if shift_id is not None else None,
        )
        return jsonify({"payment": payment.to_dict(include_lines=True)}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to settle commissions")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@commissions_bp.get("/payments")
@require_auth
def list_payments_route():
    try:
        payments = commission_service.list_payments(
            doctor_id=request.args.get("doctor_id", type=int),
            status=request.args.get("status"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list commission payments")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@commissions_bp.get("/payments/<int:payment_id>")
@require_auth
def payment_detail_route(payment_id: int):
    try:
        return jsonify(commission_service.payment_detail(payment_id)), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load commission payment")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@commissions_bp.post("/payments/<int:payment_id>/void")
@require_auth
@require_role(ROLE_ADMIN)
def void_payment_route(payment_id: int):
    """Request body: {"reason": "Paid twice by mistake"}"""
    try:
        data = request.get_json(silent=True) or {}
        payment = commission_service.void_payment(payment_id, data.get("reason"), g.current_user.id)
        return jsonify({"payment": payment.to_dict()}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to void commission payment")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
