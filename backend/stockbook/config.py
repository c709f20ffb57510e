# backend/stockbook/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockbook.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockbook.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Financial years and challan dates are computed in business-local time
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Asia/Kolkata")

    # Challan numbering: PREFIX/YY-YY/NNN (inward receipts use their own series)
    CHALLAN_PREFIX_GST = os.environ.get("CHALLAN_PREFIX_GST", "VPP")
    CHALLAN_PREFIX_NON_GST = os.environ.get("CHALLAN_PREFIX_NON_GST", "VPP-NG")
    CHALLAN_PREFIX_RECEIPT = os.environ.get("CHALLAN_PREFIX_RECEIPT", "SR")
    CHALLAN_SEQUENCE_PAD = int(os.environ.get("CHALLAN_SEQUENCE_PAD", "3"))

    # Fixed HSN code for paper products, printed on every challan
    CHALLAN_HSN_CODE = os.environ.get("CHALLAN_HSN_CODE", "481920")

    # Concurrency retry policy (see services/concurrency.py)
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "5"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.05"))
