"""
Authentication utilities and decorators for API route protection.

Requests authenticate with a Supabase access token, either as an
`Authorization: Bearer <jwt>` header (the studio front end) or from the
Flask session set by set_session().

Provides:
- @require_auth: 401 JSON unless a user is signed in
- @require_admin: 403 JSON unless the user is an admin
- @optional_auth: loads the user if present
- Session management helpers
"""

from __future__ import annotations
from functools import wraps
from typing import Optional, Dict, Any
from flask import session, request, g
from gardenstudio.services import supabase_client
from gardenstudio.services.entitlements import is_admin_user
from gardenstudio.utils.errors import json_error


# ============================================================================
# Session Management
# ============================================================================

SESSION_USER_KEY = "user"
SESSION_ACCESS_TOKEN_KEY = "access_token"
SESSION_REFRESH_TOKEN_KEY = "refresh_token"


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        return token or None
    return None


def get_current_user() -> Optional[Dict[str, Any]]:
    """
    Get the user for this request.

    Returns:
        User dict with id, email, etc. or None if not signed in
    """
    # Check if user already loaded in request context
    if hasattr(g, "user"):
        return g.user

    token = _bearer_token()
    if token:
        g.user = supabase_client.verify_access_token(token)
        return g.user

    access_token = session.get(SESSION_ACCESS_TOKEN_KEY)
    if not access_token:
        g.user = None
        return None

    user = supabase_client.verify_session(access_token, session.get(SESSION_REFRESH_TOKEN_KEY))
    if not user:
        # Token invalid/expired, clear session
        clear_session()
    g.user = user
    return user


def get_current_user_id() -> Optional[str]:
    user = get_current_user()
    return user.get("id") if user else None


def get_current_user_email() -> Optional[str]:
    user = get_current_user()
    return user.get("email") if user else None


def set_session(user: Dict[str, Any], access_token: str, refresh_token: Optional[str] = None) -> None:
    """
    Store user session data.

    Security: Regenerates session ID to prevent session fixation attacks.
    """
    session.clear()
    session.modified = True

    session[SESSION_USER_KEY] = {
        "id": user.get("id"),
        "email": user.get("email"),
    }
    session[SESSION_ACCESS_TOKEN_KEY] = access_token
    if refresh_token:
        session[SESSION_REFRESH_TOKEN_KEY] = refresh_token
    session.permanent = True


def clear_session() -> None:
    """Clear user session data."""
    session.pop(SESSION_USER_KEY, None)
    session.pop(SESSION_ACCESS_TOKEN_KEY, None)
    session.pop(SESSION_REFRESH_TOKEN_KEY, None)


def is_authenticated() -> bool:
    return get_current_user() is not None


# ============================================================================
# Decorators
# ============================================================================

def require_auth(f):
    """
    Decorator to require authentication for an API route.

    Usage:
        @api_bp.route('/designs')
        @require_auth
        def list_designs():
            user_id = get_current_user_id()
            ...
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_authenticated():
            return json_error("Please sign in to continue.", 401)
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Decorator to require admin privileges (profile flag or ADMIN_EMAILS)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not is_authenticated():
            return json_error("Please sign in to continue.", 401)
        if not is_admin_user(get_current_user_id(), get_current_user_email()):
            return json_error("Access denied. Admin privileges required.", 403)
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """
    Decorator for routes that work for guests and signed-in users alike.

    Guests get free-tier entitlements; the user is loaded when present.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        get_current_user()
        return f(*args, **kwargs)

    return decorated_function
