"""
Supabase client initialization and helper functions.

Provides centralized access to Supabase for:
- Authentication (access token verification)
- Profiles (admin flag, email)
- Subscriptions (Stripe ids, plan, status, monthly usage counters)
- Saved designs (cloud save for paid tiers)

Subscription rows are written from Stripe webhooks, which carry no user
session, so subscription and design queries go through the service-role
client when it is configured and are always scoped by user id explicitly.
"""

from __future__ import annotations
from typing import Optional, Dict, Any, List, Tuple
from datetime import datetime, timezone
from flask import current_app, has_app_context
from supabase import create_client, Client
from gardenstudio.utils.cache import (
    cache_subscription,
    clear_all_subscription_cache,
    invalidate_subscription_cache,
)
from gardenstudio.utils.validation import is_valid_uuid

# Monthly counters kept on the subscriptions row
USAGE_COUNTERS = ("projects_this_month", "vision_renders_this_month", "exports_this_month")


def _safe_log_error(message: str) -> None:
    """
    Log error message only if Flask app context is available.

    This allows functions to be called from tests and scheduler threads
    without app context.
    """
    try:
        if has_app_context():
            current_app.logger.error(message)
    except (ImportError, RuntimeError):
        pass


def _safe_log_info(message: str) -> None:
    """Log info message only if Flask app context is available."""
    try:
        if has_app_context():
            current_app.logger.info(message)
    except (ImportError, RuntimeError):
        pass


# Global client instances (initialized once per app)
_supabase_client: Optional[Client] = None  # User client (anon key)
_supabase_admin: Optional[Client] = None   # Admin client (service role key)


def init_supabase(app) -> None:
    """
    Initialize Supabase clients with app config.
    Creates two clients:
    - Regular client with anon key (token verification)
    - Admin client with service role key (subscriptions, webhooks, designs)

    Call this from the Flask app factory.
    """
    global _supabase_client, _supabase_admin

    url = app.config.get("SUPABASE_URL", "")
    anon_key = app.config.get("SUPABASE_ANON_KEY", "")
    service_key = app.config.get("SUPABASE_SERVICE_ROLE_KEY", "")

    if not url or not anon_key:
        app.logger.warning("Supabase URL or ANON_KEY not configured. Accounts and entitlements will be disabled.")
        _supabase_client = None
        _supabase_admin = None
        return

    try:
        _supabase_client = create_client(url, anon_key)
        app.logger.info("Supabase client initialized successfully")

        if service_key:
            _supabase_admin = create_client(url, service_key)
            app.logger.info("Supabase admin client initialized successfully")
        else:
            app.logger.warning("SUPABASE_SERVICE_ROLE_KEY not configured. Webhook updates will fail.")

    except Exception as e:
        app.logger.error(f"Failed to initialize Supabase client: {e}")
        _supabase_client = None
        _supabase_admin = None


def get_admin_client() -> Optional[Client]:
    """Get the admin Supabase client instance (admin client with service role key)."""
    return _supabase_admin


def _db() -> Optional[Client]:
    """Client used for table access: service role when available."""
    return _supabase_admin or _supabase_client


# ============================================================================
# Authentication
# ============================================================================

def verify_access_token(access_token: str) -> Optional[Dict[str, Any]]:
    """
    Verify a Supabase JWT (from an Authorization: Bearer header).

    Returns:
        User dict with id, email, etc. or None if invalid
    """
    if not _supabase_client or not access_token:
        return None

    try:
        response = _supabase_client.auth.get_user(access_token)
        if response and response.user:
            return response.user.model_dump()
        return None
    except Exception as e:
        _safe_log_error(f"Error verifying access token: {e}")
        return None


def verify_session(access_token: str, refresh_token: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Verify a cookie session's token pair and return user data.

    Args:
        access_token: JWT access token from Supabase Auth
        refresh_token: Optional refresh token

    Returns:
        User dict with id, email, etc. or None if invalid
    """
    if not _supabase_client:
        return None

    try:
        session_response = _supabase_client.auth.set_session(
            access_token=access_token,
            refresh_token=refresh_token or ""
        )
        if session_response and session_response.user:
            return session_response.user.model_dump()
        return None
    except Exception as e:
        _safe_log_error(f"Error verifying session: {e}")
        return None


# ============================================================================
# Profiles
# ============================================================================

def get_user_profile(user_id: str) -> Optional[Dict[str, Any]]:
    """
    Get user profile by user ID.

    Returns:
        Profile dict (id, email, is_admin, ...) or None if not found
    """
    client = _db()
    if not client:
        return None

    if not is_valid_uuid(user_id):
        _safe_log_error(f"Invalid UUID passed to get_user_profile: {user_id!r}")
        return None

    try:
        response = client.table("profiles").select("*").eq("id", user_id).maybe_single().execute()
        return response.data if response else None
    except Exception as e:
        _safe_log_error(f"Error fetching user profile: {e}")
        return None


# ============================================================================
# Subscriptions
# ============================================================================

@cache_subscription
def get_subscription(user_id: str) -> Optional[Dict[str, Any]]:
    """
    Get the subscription row for a user (cached for 60 seconds).

    Returns:
        Row with plan, status, stripe ids, period dates and usage counters,
        or None when the user has never subscribed.
    """
    client = _db()
    if not client or not is_valid_uuid(user_id):
        return None

    try:
        response = client.table("subscriptions").select("*").eq("user_id", user_id).maybe_single().execute()
        return response.data if response else None
    except Exception as e:
        _safe_log_error(f"Error fetching subscription: {e}")
        return None


def get_stripe_customer_id(user_id: str) -> Optional[str]:
    """Return the stored Stripe customer id for a user, bypassing the cache."""
    client = _db()
    if not client or not is_valid_uuid(user_id):
        return None

    try:
        response = (
            client.table("subscriptions")
            .select("stripe_customer_id")
            .eq("user_id", user_id)
            .maybe_single()
            .execute()
        )
        row = response.data if response else None
        return (row or {}).get("stripe_customer_id") or None
    except Exception as e:
        _safe_log_error(f"Error fetching Stripe customer id: {e}")
        return None


def save_stripe_customer_id(user_id: str, customer_id: str) -> Tuple[bool, Optional[str]]:
    """
    Store a newly created Stripe customer id on the user's subscription row.

    Upserts on user_id so first-time buyers get a row.

    Returns:
        Tuple of (success, error_message)
    """
    if not _supabase_admin:
        return False, "Supabase admin client not configured"

    try:
        _supabase_admin.table("subscriptions").upsert(
            {
                "user_id": user_id,
                "stripe_customer_id": customer_id,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            on_conflict="user_id",
        ).execute()
        invalidate_subscription_cache(user_id)
        return True, None
    except Exception as e:
        _safe_log_error(f"Error saving Stripe customer id: {e}")
        return False, str(e)


def update_subscription_for_user(user_id: str, fields: Dict[str, Any]) -> bool:
    """Update the subscription row matched by user id."""
    if not _supabase_admin:
        _safe_log_error("update_subscription_for_user called without admin client")
        return False

    try:
        payload = dict(fields, updated_at=datetime.now(timezone.utc).isoformat())
        _supabase_admin.table("subscriptions").update(payload).eq("user_id", user_id).execute()
        invalidate_subscription_cache(user_id)
        return True
    except Exception as e:
        _safe_log_error(f"Error updating subscription for user: {e}")
        return False


def update_subscription_for_customer(
    customer_id: str,
    fields: Dict[str, Any],
    only_if_status: Optional[str] = None,
) -> bool:
    """
    Update subscription rows matched by Stripe customer id.

    Args:
        customer_id: Stripe customer id (cus_...)
        fields: Columns to set
        only_if_status: When given, only rows currently in this status change
            (used to move past_due back to active after a paid invoice)
    """
    if not _supabase_admin:
        _safe_log_error("update_subscription_for_customer called without admin client")
        return False

    try:
        payload = dict(fields, updated_at=datetime.now(timezone.utc).isoformat())
        query = _supabase_admin.table("subscriptions").update(payload).eq("stripe_customer_id", customer_id)
        if only_if_status:
            query = query.eq("status", only_if_status)
        response = query.execute()

        # Webhook rows are keyed by customer; drop the cached copies we know about
        rows = (response.data or []) if response else []
        for row in rows:
            invalidate_subscription_cache(row.get("user_id"))
        if not rows:
            clear_all_subscription_cache()
        return True
    except Exception as e:
        _safe_log_error(f"Error updating subscription for customer: {e}")
        return False


def increment_usage_counter(user_id: str, counter: str) -> Tuple[Optional[int], Optional[str]]:
    """
    Increment one of the monthly usage counters.

    Args:
        user_id: Supabase user UUID
        counter: One of USAGE_COUNTERS

    Returns:
        Tuple of (new_value, error_message)
    """
    if counter not in USAGE_COUNTERS:
        return None, f"Unknown usage counter: {counter}"

    client = _db()
    if not client:
        return None, "Supabase not configured"

    try:
        response = client.table("subscriptions").select(counter).eq("user_id", user_id).maybe_single().execute()
        row = response.data if response else None
        if not row:
            return None, "No subscription row for user"

        new_value = int(row.get(counter) or 0) + 1
        client.table("subscriptions").update({counter: new_value}).eq("user_id", user_id).execute()
        invalidate_subscription_cache(user_id)
        return new_value, None
    except Exception as e:
        _safe_log_error(f"Error incrementing {counter}: {e}")
        return None, str(e)


def reset_monthly_usage(user_id: str, next_reset: datetime) -> bool:
    """Zero the monthly counters and set the next reset date."""
    client = _db()
    if not client:
        return False

    try:
        fields: Dict[str, Any] = {c: 0 for c in USAGE_COUNTERS}
        fields["month_reset_date"] = next_reset.isoformat()
        client.table("subscriptions").update(fields).eq("user_id", user_id).execute()
        invalidate_subscription_cache(user_id)
        return True
    except Exception as e:
        _safe_log_error(f"Error resetting monthly usage: {e}")
        return False


def list_subscriptions_due_for_reset(now: datetime, plans: Tuple[str, ...]) -> List[Dict[str, Any]]:
    """Rows on a monthly-limited plan whose month_reset_date has passed."""
    if not _supabase_admin:
        return []

    try:
        response = (
            _supabase_admin.table("subscriptions")
            .select("user_id,plan,status,month_reset_date")
            .in_("plan", list(plans))
            .lte("month_reset_date", now.isoformat())
            .execute()
        )
        return response.data or []
    except Exception as e:
        _safe_log_error(f"Error listing subscriptions due for reset: {e}")
        return []


# ============================================================================
# Saved designs
# ============================================================================

def save_design(user_id: str, design: Dict[str, Any], design_id: Optional[str] = None) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Insert a new design or overwrite an existing one owned by the user.

    Returns:
        Tuple of (row, error_message)
    """
    client = _db()
    if not client:
        return None, "Supabase not configured"

    record = {
        "user_id": user_id,
        "name": design.get("name"),
        "data": design,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }

    try:
        if design_id:
            if not is_valid_uuid(design_id):
                return None, "Invalid design id"
            response = (
                client.table("designs")
                .update(record)
                .eq("id", design_id)
                .eq("user_id", user_id)
                .execute()
            )
        else:
            response = client.table("designs").insert(record).execute()

        if response.data:
            _safe_log_info(f"Design saved for user {user_id}")
            return response.data[0], None
        return None, "Design not found"
    except Exception as e:
        _safe_log_error(f"Error saving design: {e}")
        return None, str(e)


def list_designs(user_id: str, limit: int = 50) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """List a user's saved designs, newest first (metadata only)."""
    client = _db()
    if not client:
        return [], "Supabase not configured"

    try:
        response = (
            client.table("designs")
            .select("id,name,created_at,updated_at")
            .eq("user_id", user_id)
            .order("updated_at", desc=True)
            .limit(limit)
            .execute()
        )
        return response.data or [], None
    except Exception as e:
        _safe_log_error(f"Error listing designs: {e}")
        return [], str(e)


def get_design(design_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    """Fetch one saved design owned by the user."""
    client = _db()
    if not client or not is_valid_uuid(design_id):
        return None

    try:
        response = (
            client.table("designs")
            .select("*")
            .eq("id", design_id)
            .eq("user_id", user_id)
            .maybe_single()
            .execute()
        )
        return response.data if response else None
    except Exception as e:
        _safe_log_error(f"Error fetching design: {e}")
        return None


def delete_design(design_id: str, user_id: str) -> bool:
    """Delete a saved design owned by the user."""
    client = _db()
    if not client or not is_valid_uuid(design_id):
        return False

    try:
        response = (
            client.table("designs")
            .delete()
            .eq("id", design_id)
            .eq("user_id", user_id)
            .execute()
        )
        return bool(response.data)
    except Exception as e:
        _safe_log_error(f"Error deleting design: {e}")
        return False
