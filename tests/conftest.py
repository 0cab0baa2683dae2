"""
Shared pytest fixtures.

The app is built with TestConfig: no Supabase, Stripe or OpenAI keys, the
rate limiter and scheduler off. Signed-in users are simulated by patching
the Supabase helpers the auth and entitlements layers call.
"""

from unittest.mock import patch

import pytest

from gardenstudio import create_app
from gardenstudio.services import image_jobs
from gardenstudio.utils.cache import clear_all_subscription_cache

USER_ID = "550e8400-e29b-41d4-a716-446655440000"
USER_EMAIL = "gardener@example.com"

AJAX = {"X-Requested-With": "XMLHttpRequest"}


@pytest.fixture
def app(monkeypatch):
    monkeypatch.setenv("APP_CONFIG", "gardenstudio.config.TestConfig")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    app = create_app()
    image_jobs.clear()
    clear_all_subscription_cache()
    yield app
    image_jobs.clear()
    clear_all_subscription_cache()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ajax():
    return dict(AJAX)


def subscription_row(plan="pro", status="active", **overrides):
    row = {
        "user_id": USER_ID,
        "plan": plan,
        "status": status,
        "stripe_customer_id": "cus_test1234",
        "current_period_end": "2026-11-01T00:00:00+00:00",
        "cancel_at_period_end": False,
        "projects_this_month": 0,
        "vision_renders_this_month": 0,
        "exports_this_month": 0,
        "month_reset_date": "2999-01-01T00:00:00+00:00",
    }
    row.update(overrides)
    return row


@pytest.fixture
def sign_in():
    """
    Sign a user in for the rest of the test.

    Usage:
        headers = sign_in("basic", exports_this_month=1)
        client.post(url, json=..., headers=headers)

    Returns headers carrying a Bearer token and the AJAX marker. Pass
    plan=None for a signed-in user with no subscription row.
    """
    patchers = []

    def _sign_in(plan="pro", status="active", is_admin=False, **usage):
        user = {"id": USER_ID, "email": USER_EMAIL}
        row = subscription_row(plan, status, **usage) if plan else None
        targets = {
            "gardenstudio.services.supabase_client.verify_access_token": user,
            "gardenstudio.services.supabase_client.get_subscription": row,
            "gardenstudio.services.supabase_client.get_user_profile": {"id": USER_ID, "is_admin": is_admin},
        }
        for target, value in targets.items():
            p = patch(target, return_value=value)
            p.start()
            patchers.append(p)
        counter = patch("gardenstudio.services.supabase_client.increment_usage_counter", return_value=(1, None))
        patchers.append(counter)
        _sign_in.increment = counter.start()
        return dict(AJAX, Authorization="Bearer test-token")

    yield _sign_in

    for p in reversed(patchers):
        p.stop()


def rect_design(width_ft=10, height_ft=5, placements=None, **extra):
    design = {
        "name": "Front Yard",
        "bed": {"type": "rectangle", "width_ft": width_ft, "height_ft": height_ft},
        "placements": placements or [],
    }
    design.update(extra)
    return design


def placement(plant_id, x, y, **extra):
    item = {"id": f"p-{plant_id}-{x}-{y}", "plant_id": plant_id, "x": x, "y": y}
    item.update(extra)
    return item
