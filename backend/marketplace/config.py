# backend/marketplace/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/marketplace.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///marketplace.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Escrow fee schedule (percent of total booking price)
    PLATFORM_FEE_PERCENT = int(os.environ.get("PLATFORM_FEE_PERCENT", "15"))
    DEPOSIT_PERCENT = int(os.environ.get("DEPOSIT_PERCENT", "50"))

    # Booking delivery review
    MAX_REVISIONS = int(os.environ.get("MAX_REVISIONS", "2"))

    # Disputes
    DISPUTE_MIN_TEXT_LENGTH = int(os.environ.get("DISPUTE_MIN_TEXT_LENGTH", "50"))
    DISPUTE_RESPONSE_DAYS = int(os.environ.get("DISPUTE_RESPONSE_DAYS", "3"))
    DISPUTE_RESOLUTION_DAYS = int(os.environ.get("DISPUTE_RESOLUTION_DAYS", "7"))

    # The free "none" tier row inserted on signup/downgrade
    FREE_TIER_PERIOD_DAYS = int(os.environ.get("FREE_TIER_PERIOD_DAYS", "365"))

    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if origin.strip()
    ]

    # Mass messaging: recipients per request
    MASS_MESSAGE_MAX_BATCH = int(os.environ.get("MASS_MESSAGE_MAX_BATCH", "25"))
