# Overview: User accounts and password verification (bcrypt).

"""
Authentication Service

WHY: Every mutation is attributed to a user, and discrepancy authorizations
must name an administrator. Uses bcrypt for password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, with upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app, has_app_context

from ..errors import ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_CASHIER, ROLES
from ..validation import require_text


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    code = "WEAK_PASSWORD"


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check; malformed hashes simply fail."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    full_name: str,
    role: str = ROLE_CASHIER,
    *,
    bcrypt_rounds: int | None = None,
) -> User:
    """
    Create a user. Username must be unique.

    Raises:
        ValidationError: duplicate username, unknown role
        PasswordValidationError: weak password
    """
    username = require_text(username, "username", max_length=64).lower()
    full_name = require_text(full_name, "full_name", max_length=128)
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")

    if db.session.query(User).filter_by(username=username).first():
        raise ValidationError(f"Username '{username}' already exists")

    user = User(
        username=username,
        full_name=full_name,
        password_hash=hash_password(password, rounds=bcrypt_rounds or _bcrypt_rounds()),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """Returns the active user if the credentials match, None otherwise."""
    if not username or not password:
        return None

    user = db.session.query(User).filter(
        User.username == username.strip().lower(),
        User.is_active.is_(True),
    ).first()
    if user is None:
        return None

    if verify_password(password, user.password_hash):
        return user
    return None

