# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/login   -> bearer token
- POST /api/auth/logout  -> revoke the current token
- GET  /api/auth/me
- POST /api/auth/users   -> create user (admin only)

Self-registration is not offered; accounts are created by an administrator
or with the CLI (flask users create).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import DomainError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER
from ..services import auth_service, session_service
from ..decorators import require_auth, require_role
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be sent as "Authorization: Bearer <token>" on protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username and password required", "code": "VALIDATION_ERROR"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            return jsonify({"error": "Invalid credentials", "code": "INVALID_CREDENTIALS"}), 401

        session, token = session_service.create_session(user.id)
        current_app.logger.info("User %s logged in", user.id)

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": to_utc_z(session.expires_at),
        }), 200

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to log in")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token)
        return jsonify({"message": "Logged out"}), 200
    except Exception:
        current_app.logger.exception("Failed to log out")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.post("/users")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    """
    Request body:
    {
        "username": "maria",
        "password": "Str0ng!pass",
        "full_name": "Maria Lopez",
        "role": "cashier"   (optional: admin | cashier)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            username=data.get("username"),
            password=data.get("password"),
            full_name=data.get("full_name"),
            role=data.get("role") or ROLE_CASHIER,
        )
        return jsonify({"user": user.to_dict()}), 201

    except DomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500
