"""
Tier entitlements: what each plan may do and how much of it is left.

The subscription row (kept in sync by Stripe webhooks) decides the plan:
a plan only counts while its status is "active"; anything else is treated
as the free (demo) tier. Admins always get Max limits. Basic and Pro carry
monthly counters for projects, vision renders and exports that reset on
the first day of each month.

Unlimited values are represented as ``None`` so entitlements serialize to
plain JSON.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import current_app, has_app_context

from gardenstudio.services import supabase_client

logger = logging.getLogger(__name__)

PLANS = ("free", "basic", "pro", "max")
MONTHLY_LIMIT_PLANS = ("basic", "pro")

PLAN_LABELS = {"free": "Free", "basic": "Basic", "pro": "Pro", "max": "Max"}

PLAN_LIMITS: Dict[str, Dict[str, Any]] = {
    "free": {
        "max_plants": 5,
        "max_projects": 1,
        "max_vision_renders": 0,
        "max_exports_per_month": 0,
        "can_use_bundles": False,
        "can_preview_bundle_plants": False,
        "bundle_swaps_per_project": 0,
        "can_save_to_cloud": False,
        "has_watermark": True,
        "can_view_design_score": False,
        "can_view_analysis_diagnosis": False,
        "can_view_analysis_howtos": False,
    },
    "basic": {
        "max_plants": 45,
        "max_projects": 3,
        "max_vision_renders": 10,
        "max_exports_per_month": 1,
        "can_use_bundles": True,
        "can_preview_bundle_plants": False,
        "bundle_swaps_per_project": 1,
        "can_save_to_cloud": False,
        "has_watermark": True,
        "can_view_design_score": True,
        "can_view_analysis_diagnosis": False,
        "can_view_analysis_howtos": False,
    },
    "pro": {
        "max_plants": 100,
        "max_projects": 15,
        "max_vision_renders": 30,
        "max_exports_per_month": 100,
        "can_use_bundles": True,
        "can_preview_bundle_plants": False,
        "bundle_swaps_per_project": 5,
        "can_save_to_cloud": True,
        "has_watermark": True,
        "can_view_design_score": True,
        "can_view_analysis_diagnosis": False,
        "can_view_analysis_howtos": False,
    },
    "max": {
        "max_plants": None,
        "max_projects": None,
        "max_vision_renders": None,
        "max_exports_per_month": None,
        "can_use_bundles": True,
        "can_preview_bundle_plants": True,
        "bundle_swaps_per_project": None,
        "can_save_to_cloud": True,
        "has_watermark": False,
        "can_view_design_score": True,
        "can_view_analysis_diagnosis": True,
        "can_view_analysis_howtos": True,
    },
}

# Basic only allows its single re-bundle once the design is this large
BASIC_SWAP_MIN_PLANTS = 12

# usage counter column -> limit key
_COUNTER_LIMITS = {
    "projects_this_month": "max_projects",
    "vision_renders_this_month": "max_vision_renders",
    "exports_this_month": "max_exports_per_month",
}

BLOCKED_FEATURE_MESSAGES = {
    "bundles": "Theme bundles require a paid plan. Upgrade to unlock all bundles.",
    "save": "Save to cloud requires a Pro subscription. Upgrade to save your designs.",
    "export": "Export requires a paid plan. Upgrade to export your designs.",
    "vision": "AI Vision rendering requires a paid plan. Upgrade for HD renders.",
    "analysis": "Advanced analysis requires a Max subscription. Upgrade for full insights.",
    "projects": "You've used all of this month's projects. Upgrade for more.",
}

UPGRADE_PROMPTS = {
    "plant_limit": {
        "title": "Plant Limit Reached",
        "message": "You've placed the maximum number of plants for your plan.",
        "cta": "Upgrade for more plants",
    },
    "bundles": {
        "title": "Bundles Locked",
        "message": "Pre-designed theme bundles are a paid feature.",
        "cta": "Upgrade to unlock all bundles",
    },
    "bundle_swaps": {
        "title": "No Bundle Swaps Left",
        "message": "You've used every bundle swap for this project.",
        "cta": "Upgrade for more swaps",
    },
    "save": {
        "title": "Save to Cloud",
        "message": "Save your designs to the cloud and access them anywhere.",
        "cta": "Upgrade to save designs",
    },
    "export": {
        "title": "Export Design",
        "message": "Export your landscape design as a blueprint.",
        "cta": "Upgrade to export",
    },
    "vision": {
        "title": "AI Vision Rendering",
        "message": "Generate photorealistic renders of your landscape.",
        "cta": "Upgrade for HD renders",
    },
    "projects": {
        "title": "Project Limit Reached",
        "message": "You've started every project included in your plan this month.",
        "cta": "Upgrade for more projects",
    },
}

_DEFAULT_UPGRADE_PROMPT = {
    "title": "Pro Feature",
    "message": "This feature requires a paid subscription.",
    "cta": "Upgrade to Pro",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def next_month_reset(now: Optional[datetime] = None) -> datetime:
    """First instant of next month (UTC)."""
    now = now or _utcnow()
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


def needs_monthly_reset(subscription: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> bool:
    """Basic/Pro rows whose reset date has passed (or was never set)."""
    if not subscription or subscription.get("plan") not in MONTHLY_LIMIT_PLANS:
        return False
    reset_at = _parse_datetime(subscription.get("month_reset_date"))
    if reset_at is None:
        return True
    return (now or _utcnow()) >= reset_at


def current_plan(subscription: Optional[Dict[str, Any]]) -> str:
    """The plan in force: the row's plan only while status is active."""
    if not subscription or subscription.get("status") != "active":
        return "free"
    plan = subscription.get("plan")
    return plan if plan in PLANS else "free"


def _remaining(limit: Optional[int], used: int, monthly: bool) -> Optional[int]:
    if limit is None:
        return None
    if monthly:
        return max(0, limit - used)
    return limit


def status_message(subscription: Optional[Dict[str, Any]], is_admin: bool = False) -> str:
    """Human readable account status shown on the account page."""
    if is_admin:
        return "Admin Access"

    plan = current_plan(subscription)
    status = (subscription or {}).get("status")
    if plan != "free":
        end = _parse_datetime((subscription or {}).get("current_period_end"))
        end_text = end.date().isoformat() if end else "unknown"
        verb = "cancels" if (subscription or {}).get("cancel_at_period_end") else "renews"
        return f"{PLAN_LABELS[plan]} ({verb} {end_text})"
    if status == "trialing":
        return "Trial"
    if status == "past_due":
        return "Payment Past Due"
    if status == "canceled":
        return "Canceled"
    return "Free"


def build_entitlements(subscription: Optional[Dict[str, Any]], is_admin: bool = False) -> Dict[str, Any]:
    """
    Derive everything the client and the API gates need from one row.

    Args:
        subscription: Row from the subscriptions table (or None)
        is_admin: Whether the profile carries the admin flag

    Returns:
        Dict with plan, flags, limits, usage, remaining counts and status message
    """
    row = subscription or {}
    plan = current_plan(subscription)
    status = row.get("status") or "inactive"
    is_trialing = status == "trialing"

    limits = dict(PLAN_LIMITS["max"] if is_admin else PLAN_LIMITS[plan])
    has_full_access = is_admin or plan == "max" or is_trialing
    has_monthly_limits = plan in MONTHLY_LIMIT_PLANS

    usage = {counter: int(row.get(counter) or 0) for counter in _COUNTER_LIMITS}

    return {
        "plan": plan,
        "status": status,
        "is_admin": is_admin,
        "is_trialing": is_trialing,
        "has_full_access": has_full_access,
        "has_monthly_limits": has_monthly_limits,
        "cancel_at_period_end": bool(row.get("cancel_at_period_end")),
        "current_period_end": row.get("current_period_end"),
        "limits": limits,
        "usage": usage,
        "remaining": {
            "projects": _remaining(limits["max_projects"], usage["projects_this_month"], has_monthly_limits),
            "vision_renders": _remaining(limits["max_vision_renders"], usage["vision_renders_this_month"], has_monthly_limits),
            "exports": _remaining(limits["max_exports_per_month"], usage["exports_this_month"], has_monthly_limits),
        },
        "status_message": status_message(subscription, is_admin),
    }


def can_create_project(ent: Dict[str, Any]) -> bool:
    if ent["has_full_access"]:
        return True
    if ent["has_monthly_limits"]:
        return (ent["remaining"]["projects"] or 0) > 0
    # Free users get a single unsaved project
    return True


def can_use_vision(ent: Dict[str, Any]) -> bool:
    if ent["has_full_access"]:
        return True
    if ent["has_monthly_limits"]:
        return (ent["remaining"]["vision_renders"] or 0) > 0
    return False


def can_export(ent: Dict[str, Any]) -> bool:
    if ent["has_full_access"]:
        return True
    if ent["has_monthly_limits"]:
        return (ent["remaining"]["exports"] or 0) > 0
    return False


def can_save(ent: Dict[str, Any]) -> bool:
    return ent["has_full_access"] or bool(ent["limits"]["can_save_to_cloud"])


def remaining_plants(ent: Dict[str, Any], plant_count: int) -> Optional[int]:
    """Plant slots left in the current design; None means unlimited."""
    limit = None if ent["has_full_access"] else ent["limits"]["max_plants"]
    if limit is None:
        return None
    return max(0, limit - plant_count)


def can_place_plant(ent: Dict[str, Any], plant_count: int) -> bool:
    remaining = remaining_plants(ent, plant_count)
    return remaining is None or remaining > 0


def can_apply_bundle(ent: Dict[str, Any], bundles_applied: int, plant_count: int) -> bool:
    """
    Whether another bundle may be dropped into the current project.

    The first bundle is always allowed on tiers with bundles; every later one
    is a "swap" counted against bundle_swaps_per_project. Basic's single swap
    is only available once the design has more than 12 plants.
    """
    if ent["has_full_access"]:
        return True
    limits = ent["limits"]
    if not limits["can_use_bundles"]:
        return False
    if bundles_applied <= 0:
        return True

    swaps_allowed = limits["bundle_swaps_per_project"]
    if swaps_allowed is not None and bundles_applied - 1 >= swaps_allowed:
        return False
    if ent["plan"] == "basic" and plant_count <= BASIC_SWAP_MIN_PLANTS:
        return False
    return True


def design_over_limit(ent: Dict[str, Any], design: Dict[str, Any]) -> Optional[str]:
    """
    Check a posted design against the tier before it is saved or exported.

    Returns "plants" when it holds more plants than the tier allows,
    "bundles" when it records more bundle drops than the tier's swaps
    permit, else None.
    """
    if ent["has_full_access"]:
        return None
    limits = ent["limits"]

    max_plants = limits["max_plants"]
    if max_plants is not None and len(design.get("placements") or []) > max_plants:
        return "plants"

    applied = int(design.get("bundles_applied") or 0)
    if applied and not limits["can_use_bundles"]:
        return "bundles"
    swaps_allowed = limits["bundle_swaps_per_project"]
    if swaps_allowed is not None and applied - 1 > swaps_allowed:
        return "bundles"
    return None


def blocked_feature_message(feature: str, ent: Optional[Dict[str, Any]] = None) -> str:
    if feature == "plants":
        limit = (ent or {}).get("limits", {}).get("max_plants", PLAN_LIMITS["free"]["max_plants"])
        return f"Plan limit reached ({limit} plants max). Upgrade for more plants."
    return BLOCKED_FEATURE_MESSAGES.get(feature, "This feature requires a paid subscription.")


def upgrade_prompt(context: str) -> Dict[str, str]:
    return dict(UPGRADE_PROMPTS.get(context, _DEFAULT_UPGRADE_PROMPT))


def _admin_emails() -> set:
    if not has_app_context():
        return set()
    raw = current_app.config.get("ADMIN_EMAILS", "") or ""
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def is_admin_user(user_id: Optional[str], email: Optional[str] = None) -> bool:
    """Admin via profile flag or the ADMIN_EMAILS allowlist."""
    if not user_id:
        return False
    if email and email.lower() in _admin_emails():
        return True
    profile = supabase_client.get_user_profile(user_id)
    return bool(profile and profile.get("is_admin", False))


def load_entitlements(user_id: Optional[str], email: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Entitlements for a (possibly anonymous) user.

    Applies the monthly counter reset when it is due so a stale row never
    blocks a user at the start of a new month.
    """
    if not user_id:
        return build_entitlements(None, False)

    subscription = supabase_client.get_subscription(user_id)

    if needs_monthly_reset(subscription, now):
        next_reset = next_month_reset(now)
        if supabase_client.reset_monthly_usage(user_id, next_reset):
            subscription = dict(subscription)
            for counter in _COUNTER_LIMITS:
                subscription[counter] = 0
            subscription["month_reset_date"] = next_reset.isoformat()
            logger.info("Monthly usage reset on read for user %s", user_id)

    return build_entitlements(subscription, is_admin_user(user_id, email))


def record_usage(ent: Dict[str, Any], user_id: str, counter: str) -> Optional[int]:
    """
    Count one use of a monthly-limited feature.

    Only Basic and Pro track usage; other tiers return None without a write.
    """
    if not ent["has_monthly_limits"] or not user_id:
        return None
    value, error = supabase_client.increment_usage_counter(user_id, counter)
    if error:
        logger.warning("Failed to record %s for user %s: %s", counter, user_id, error)
        return None
    return value


def reset_due_subscriptions(now: Optional[datetime] = None, dry_run: bool = False) -> Dict[str, int]:
    """
    Reset monthly counters for every row past its reset date.

    Used by the daily scheduler job and the reset-monthly-usage CLI command.

    Returns:
        {"due": n, "reset": m, "failed": k}
    """
    now = now or _utcnow()
    due = supabase_client.list_subscriptions_due_for_reset(now, MONTHLY_LIMIT_PLANS)
    summary = {"due": len(due), "reset": 0, "failed": 0}
    if dry_run:
        return summary

    next_reset = next_month_reset(now)
    for row in due:
        if supabase_client.reset_monthly_usage(row["user_id"], next_reset):
            summary["reset"] += 1
        else:
            summary["failed"] += 1

    logger.info("Monthly usage reset: %s", summary)
    return summary
