"""
Application factory and global configuration.

Creates the Flask app, applies security headers (CSP), configures rate
limiting and CSRF, registers the JSON blueprints, starts the background
scheduler and registers CLI commands. Startup/config concerns stay here;
domain logic lives in services/.
"""

from __future__ import annotations
import os
from flask import Flask, Response, jsonify
from flask_wtf.csrf import CSRFError
from dotenv import load_dotenv
from .extensions import limiter, csrf
from .routes.api import api_bp
from .routes.billing import billing_bp
from .routes.pricing import pricing_bp
from .routes.vision import vision_bp
from .services import supabase_client, image_jobs


def _validate_production_security(app: Flask, cfg_path: str) -> None:
    """
    Validate critical security settings in production environments.

    Raises RuntimeError if production security requirements are not met,
    so the app never starts with an insecure configuration.

    Checks:
    - SESSION_COOKIE_SECURE must be True (cookies only over HTTPS)
    - SECRET_KEY must be set and strong (>= 32 characters)
    - DEBUG must be False
    - PREFERRED_URL_SCHEME should be "https"
    - STRIPE_WEBHOOK_SECRET must accompany STRIPE_SECRET_KEY
    """
    is_production = "ProdConfig" in cfg_path
    if not is_production or app.config.get("TESTING", False):
        return

    errors = []

    if not app.config.get("SESSION_COOKIE_SECURE", False):
        errors.append(
            "SESSION_COOKIE_SECURE must be True in production. "
            "Cookies must only be sent over HTTPS to prevent session hijacking."
        )

    secret_key = app.config.get("SECRET_KEY", "")
    if not os.getenv("FLASK_SECRET_KEY"):
        errors.append(
            "FLASK_SECRET_KEY is not set. A random per-process key breaks sessions "
            "across workers. Generate with: python -c 'import secrets; print(secrets.token_hex(32))'"
        )
    elif len(secret_key) < 32:
        errors.append(
            f"SECRET_KEY is too weak ({len(secret_key)} chars). "
            "Must be at least 32 characters for production security."
        )

    if app.config.get("DEBUG", False):
        errors.append("DEBUG must be False in production.")

    if app.config.get("PREFERRED_URL_SCHEME", "http") != "https":
        errors.append(
            "PREFERRED_URL_SCHEME should be 'https' in production. "
            "Set PREFERRED_URL_SCHEME=https environment variable."
        )

    if app.config.get("STRIPE_SECRET_KEY") and not app.config.get("STRIPE_WEBHOOK_SECRET"):
        errors.append(
            "STRIPE_WEBHOOK_SECRET is required when STRIPE_SECRET_KEY is set. "
            "Unverified webhooks would let anyone change subscription state."
        )

    if errors:
        error_msg = "\n\n[ERROR] PRODUCTION SECURITY VALIDATION FAILED:\n\n" + "\n\n".join(f"  * {err}" for err in errors)
        error_msg += "\n\n[WARNING] The application will not start until these security issues are resolved.\n"
        raise RuntimeError(error_msg)

    app.logger.info("[OK] Production security validation passed")


def _register_error_handlers(app: Flask) -> None:
    """Every error leaves as {"success": false, "error": ...} JSON."""

    @app.errorhandler(CSRFError)
    def csrf_error(e):
        return jsonify({"success": False, "error": "Invalid request. Please refresh the page and try again."}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "error": "Not found."}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "error": "Method not allowed."}), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"success": False, "error": "Request body too large."}), 413

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify({"success": False, "error": "Too many requests. Please slow down."}), 429

    @app.errorhandler(500)
    def internal_error(e):
        app.logger.error(f"Unhandled error: {e}")
        return jsonify({"success": False, "error": "Something went wrong. Please try again."}), 500


def _start_scheduler(app: Flask) -> None:
    """Daily monthly-usage reset and the image job purge, off the request path."""
    try:
        from apscheduler.schedulers.background import BackgroundScheduler
        from .services.entitlements import reset_due_subscriptions

        scheduler = BackgroundScheduler(timezone="UTC")

        # APScheduler runs jobs in background threads without app context
        def run_monthly_reset():
            with app.app_context():
                reset_due_subscriptions()

        def run_image_job_purge():
            with app.app_context():
                image_jobs.purge()

        scheduler.add_job(
            func=run_monthly_reset,
            trigger="cron",
            hour=0,
            minute=10,
            id="monthly_usage_reset",
            name="Monthly Usage Counter Reset",
            replace_existing=True
        )
        scheduler.add_job(
            func=run_image_job_purge,
            trigger="interval",
            minutes=5,
            id="image_job_purge",
            name="Purge Expired Image Jobs",
            replace_existing=True
        )

        scheduler.start()
        app.logger.info("[Scheduler] Monthly usage reset scheduled daily at 00:10 UTC; image job purge every 5 minutes")

        import atexit
        atexit.register(lambda: scheduler.shutdown(wait=False))

    except Exception as e:
        app.logger.warning(f"[Scheduler] Failed to initialize scheduler: {e}")


def create_app() -> Flask:
    # override=False so production env vars are not overwritten by a stale .env file
    load_dotenv(override=False)

    app = Flask(__name__)

    # Allow APP_CONFIG to override (e.g., gardenstudio.config.DevConfig)
    cfg_path = os.getenv("APP_CONFIG", "gardenstudio.config.ProdConfig")
    try:
        app.config.from_object(cfg_path)
    except (ImportError, AttributeError) as e:
        app.logger.warning(f"Could not load config object {cfg_path}: {e}")

    _validate_production_security(app, cfg_path)

    limiter.init_app(app)
    if not app.config.get("RATELIMIT_ENABLED", True):
        limiter.enabled = False

    if not app.secret_key:
        app.secret_key = app.config.get("SECRET_KEY", "")

    # JSON blueprints rely on the X-Requested-With check instead of form tokens
    csrf.init_app(app)
    csrf.exempt(api_bp)
    csrf.exempt(billing_bp)
    csrf.exempt(vision_bp)
    csrf.exempt(pricing_bp)

    supabase_client.init_supabase(app)
    image_jobs.init_image_jobs(app)

    # ---- Content Security Policy ----
    supabase_domain = app.config.get("SUPABASE_URL", "").replace("https://", "").replace("http://", "")
    supabase_src = f" https://{supabase_domain}" if supabase_domain else ""

    csp = (
        "default-src 'self'; "
        "script-src 'self' https://js.stripe.com; "
        "style-src 'self' 'unsafe-inline'; "
        f"img-src 'self' data: blob: https://*.blob.core.windows.net https://oaidalleapiprodscus.blob.core.windows.net{supabase_src}; "
        f"connect-src 'self' https://api.openai.com https://api.stripe.com{supabase_src}; "
        "frame-src https://js.stripe.com https://checkout.stripe.com https://billing.stripe.com; "
        "object-src 'none'; "
        "base-uri 'self'; "
        "frame-ancestors 'none'; "
        "form-action 'self' https://checkout.stripe.com https://billing.stripe.com; "
        "upgrade-insecure-requests"
    )

    @app.after_request
    def apply_security_headers(resp: Response) -> Response:
        resp.headers["Content-Security-Policy"] = csp
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["X-XSS-Protection"] = "0"  # CSP supersedes legacy XSS filter

        # HSTS only where cookies are HTTPS-only (production)
        if app.config.get("SESSION_COOKIE_SECURE", False):
            resp.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"

        resp.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), gyroscope=(), "
            "magnetometer=(), microphone=(), usb=()"
        )
        return resp

    # Blueprints
    app.register_blueprint(api_bp, url_prefix="/api/v1")
    app.register_blueprint(pricing_bp, url_prefix="/api/v1")
    app.register_blueprint(billing_bp, url_prefix="/api/v1/billing")
    app.register_blueprint(vision_bp, url_prefix="/api/v1/vision")

    @app.route("/health")
    @limiter.exempt
    def health():
        return jsonify({"status": "ok"})

    _register_error_handlers(app)

    if app.config.get("SCHEDULER_ENABLED", True) and not app.config.get("TESTING", False):
        _start_scheduler(app)

    from .cli import reset_monthly_usage_command, validate_bundles_command
    app.cli.add_command(reset_monthly_usage_command)
    app.cli.add_command(validate_bundles_command)

    return app
