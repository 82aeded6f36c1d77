from __future__ import annotations

import os
from decimal import Decimal


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///motorent.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    RECONCILIATION_DATE_WINDOW_DAYS = int(os.getenv("RECONCILIATION_DATE_WINDOW_DAYS", "5"))
    RECONCILIATION_AMOUNT_TOLERANCE = Decimal(os.getenv("RECONCILIATION_AMOUNT_TOLERANCE", "0.01"))
    RECONCILIATION_MIN_CONFIDENCE = int(os.getenv("RECONCILIATION_MIN_CONFIDENCE", "50"))
    RECONCILIATION_AUTO_APPROVE_CONFIDENCE = int(os.getenv("RECONCILIATION_AUTO_APPROVE_CONFIDENCE", "90"))

    EVENT_RETENTION_DAYS = int(os.getenv("EVENT_RETENTION_DAYS", "90"))
