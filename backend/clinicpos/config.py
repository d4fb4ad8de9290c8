# backend/clinicpos/config.py
from __future__ import annotations
import os


def _csv(name: str, default: str) -> tuple[str, ...]:
    raw = os.environ.get(name, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/clinicpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///clinicpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Cash counting (face values in currency units, parsed to cents)
    BILL_DENOMINATIONS = _csv("BILL_DENOMINATIONS", "200,100,50,20,10,5,1")
    COIN_DENOMINATIONS = _csv("COIN_DENOMINATIONS", "1,0.50,0.25,0.10,0.05")

    # Cuadre: |discrepancy| <= tolerance closes without authorization
    CASH_DISCREPANCY_TOLERANCE_CENTS = int(os.environ.get("CASH_DISCREPANCY_TOLERANCE_CENTS", "1"))

    # Basis points (1600 = 16%)
    SALES_TAX_RATE_BPS = int(os.environ.get("SALES_TAX_RATE_BPS", "1600"))
    CARD_PROCESSING_FEE_BPS = int(os.environ.get("CARD_PROCESSING_FEE_BPS", "600"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    # bcrypt cost factor (tests lower it)
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
