"""
Application configuration.

Settings for the Flask application: database connection, secret key, logging
and the budget-insights LLM endpoint. Every value can be overridden through an
environment variable; the defaults are meant for local development only.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'sitetrack.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection (API clients send the token in the X-CSRFToken header)
    WTF_CSRF_ENABLED = True

    APP_NAME = "SiteTrack"
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "₹")

    # Self-service signup creates managers without project access
    ALLOW_SIGNUP = os.environ.get("ALLOW_SIGNUP", "1") == "1"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")

    # Budget insights (OpenAI-compatible chat completions endpoint)
    LLM_API_URL = os.environ.get("LLM_API_URL", "https://openrouter.ai/api/v1/chat/completions")
    LLM_API_KEY = os.environ.get("LLM_API_KEY")
    LLM_MODEL = os.environ.get("LLM_MODEL", "google/gemini-2.0-flash-001")
    LLM_TIMEOUT = int(os.environ.get("LLM_TIMEOUT", "30"))
    LLM_MAX_RETRIES = int(os.environ.get("LLM_MAX_RETRIES", "3"))
    LLM_BASE_DELAY = float(os.environ.get("LLM_BASE_DELAY", "1"))


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_FILE = None
    LLM_API_KEY = "test-key"
    LLM_MAX_RETRIES = 2
    LLM_BASE_DELAY = 0
