# backend/fuelsync/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/fuelsync.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///fuelsync.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # "warn": post the sale and report the excess; "reject": refuse the sale
    CREDIT_LIMIT_POLICY = os.environ.get("CREDIT_LIMIT_POLICY", "warn")

    # "allow": balance may go negative; "clamp": floor at zero; "reject": refuse
    CREDITOR_OVERPAYMENT_POLICY = os.environ.get("CREDITOR_OVERPAYMENT_POLICY", "allow")

    # Tenant schema used when the caller does not send one (None = default search path)
    DEFAULT_TENANT_SCHEMA = os.environ.get("DEFAULT_TENANT_SCHEMA") or None
