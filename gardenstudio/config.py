"""
Centralized configuration for all environments.

Select a config by setting:
  APP_CONFIG=gardenstudio.config.DevConfig      # local dev
  APP_CONFIG=gardenstudio.config.ProdConfig     # production (default if unset)
  APP_CONFIG=gardenstudio.config.TestConfig     # pytest

Notes:
- SECRET_KEY is read from FLASK_SECRET_KEY
- Rate limiting uses Flask-Limiter v3 keys (RATELIMIT_*).
- Stripe price ids map to plans: STRIPE_BASIC_PRICE_ID -> basic,
  STRIPE_PRICE_ID -> pro, STRIPE_MAX_PRICE_ID -> max.
"""

from __future__ import annotations
import os
import secrets
from datetime import timedelta


class BaseConfig:
    # Random fallback so dev/test never run with an empty key; production validates a real one
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    # Session configuration
    PERMANENT_SESSION_LIFETIME = timedelta(days=7)
    SESSION_COOKIE_SECURE = True  # overridden in dev
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"

    # Supabase (Auth + subscriptions + saved designs)
    SUPABASE_URL = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
    SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_BASIC_PRICE_ID = os.getenv("STRIPE_BASIC_PRICE_ID", "")
    STRIPE_PRICE_ID = os.getenv("STRIPE_PRICE_ID", "")
    STRIPE_MAX_PRICE_ID = os.getenv("STRIPE_MAX_PRICE_ID", "")

    # Checkout / portal redirect base (the studio front end)
    SITE_URL = os.getenv("SITE_URL", "http://localhost:5173")

    # Comma-separated emails that always get admin (and full) access
    ADMIN_EMAILS = os.getenv("ADMIN_EMAILS", "")

    # Vision rendering (LiteLLM image generation)
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    VISION_MODEL = os.getenv("VISION_MODEL", "dall-e-2")
    VISION_IMAGE_SIZE = os.getenv("VISION_IMAGE_SIZE", "1024x1024")
    VISION_TIMEOUT_SECONDS = int(os.getenv("VISION_TIMEOUT_SECONDS", "55"))
    IMAGE_JOB_TTL_SECONDS = int(os.getenv("IMAGE_JOB_TTL_SECONDS", "900"))
    IMAGE_JOB_WORKERS = int(os.getenv("IMAGE_JOB_WORKERS", "2"))

    # Background jobs
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"

    # Flask-Limiter v3
    RATELIMIT_ENABLED = os.getenv("RATELIMIT_ENABLED", "true").lower() == "true"
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_DEFAULT = os.getenv("RATELIMIT_DEFAULT", "60 per minute; 3000 per day")

    # Design payloads with long custom bed paths stay well under this
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    # Misc
    PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")
    JSON_SORT_KEYS = False


class ProdConfig(BaseConfig):
    """Production settings (selected by default if APP_CONFIG is unset)."""
    pass


class DevConfig(BaseConfig):
    """Developer-friendly settings."""
    ENV = "development"
    DEBUG = True
    PREFERRED_URL_SCHEME = "http"
    # Allow cookies over HTTP in dev
    SESSION_COOKIE_SECURE = False


class TestConfig(BaseConfig):
    """CI/pytest settings."""
    TESTING = True
    DEBUG = True
    RATELIMIT_ENABLED = False
    SCHEDULER_ENABLED = False
    # Never talk to real third parties from tests
    SUPABASE_URL = ""
    SUPABASE_ANON_KEY = ""
    SUPABASE_SERVICE_ROLE_KEY = ""
    STRIPE_SECRET_KEY = ""
    STRIPE_WEBHOOK_SECRET = ""
    STRIPE_BASIC_PRICE_ID = "price_basic_test"
    STRIPE_PRICE_ID = "price_pro_test"
    STRIPE_MAX_PRICE_ID = "price_max_test"
    OPENAI_API_KEY = ""
    ADMIN_EMAILS = ""
    IMAGE_JOB_WORKERS = 1
