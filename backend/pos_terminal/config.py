# Overview: Application configuration with environment variable overrides.

from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Durable cart storage (one row per operator); SQLite in the instance folder by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pos_terminal.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Remote shop API (auth, products, categories, sales, dashboard stats)
    POS_API_BASE_URL = os.environ.get("POS_API_BASE_URL", "http://localhost:8000")
    POS_API_TIMEOUT = float(os.environ.get("POS_API_TIMEOUT", "15"))
    # Tests mount an httpx.MockTransport here
    POS_API_TRANSPORT = None

    # Payment rails accepted by the remote sales service, cash first
    PAYMENT_METHODS = ("efectivo", "nequi", "daviplata")
    CASH_PAYMENT_METHOD = "efectivo"

    CART_KEY_PREFIX = "cart_"

    CORS_ALLOWED_ORIGINS = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }
