# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..services import sales_service
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
@sales_bp.post("")
@require_auth
def record_sale_route():
    """
    Record a completed sale on the open shift.

    Request body:
    {
        "customer_name": "Ana Perez",          (optional)
        "invoice_number": "F-1001",            (optional)
        "sale_date": "2025-03-01",             (optional, default today)
        "lines": [
            {"product_name": "Consulta", "product_type": "service", "quantity": 1,
             "unit_price_cents": 15000, "doctor_id": 2, "commission_rate_bps": 1000}
        ],
        "payment": {"method": "MIXED", "cash_cents": 10000, "card_cents": 5000}
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.record_sale(
            g.current_user.id,
            data.get("lines"),
            data.get("payment"),
            customer_name=data.get("customer_name"),
            invoice_number=data.get("invoice_number"),
            sale_date=data.get("sale_date"),
        )
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@sales_bp.get("/")
@sales_bp.get("")
@require_auth
def list_sales_route():
    try:
        sales = sales_service.list_sales(
            shift_id=request.args.get("shift_id", type=int),
            status=request.args.get("status"),
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify({"sales": [s.to_dict() for s in sales]}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@sales_bp.post("/<int:sale_id>/void")
@require_auth
def void_sale_route(sale_id: int):
    """
    Request body: {"reason": "Wrong patient"}

    409 SETTLED_LINES_LOCKED when a commission on this sale was already paid.
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.void_sale(sale_id, data.get("reason"), g.current_user.id)
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
