"""Tests for Stripe checkout, the customer portal and webhook syncing."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from gardenstudio.services import billing

from conftest import USER_EMAIL, USER_ID

SUPABASE = "gardenstudio.services.supabase_client"


@pytest.fixture
def stripe_app(app):
    app.config.update(STRIPE_SECRET_KEY="sk_test_123", STRIPE_WEBHOOK_SECRET="whsec_test")
    with app.app_context():
        yield app


def _event(event_type, obj):
    return {"type": event_type, "data": {"object": obj}}


def _subscription(**overrides):
    sub = {
        "id": "sub_123",
        "customer": "cus_test1234",
        "status": "active",
        "cancel_at_period_end": False,
        "metadata": {},
        "items": {"data": [{
            "price": {"id": "price_pro_test"},
            "current_period_start": 1788220800,
            "current_period_end": 1790812800,
        }]},
    }
    sub.update(overrides)
    return sub


class TestPrices:
    def test_plan_from_price_id(self, stripe_app):
        assert billing.plan_from_price_id("price_basic_test") == "basic"
        assert billing.plan_from_price_id("price_max_test") == "max"
        assert billing.plan_from_price_id("price_unknown") == "pro"
        assert billing.plan_from_price_id(None) == "pro"

    def test_price_id_for_plan(self, stripe_app):
        assert billing.price_id_for_plan("pro") == "price_pro_test"
        assert billing.price_id_for_plan("free") is None


class TestCheckout:
    def test_not_configured(self, app):
        with app.app_context():
            assert billing.create_checkout_session(USER_ID, USER_EMAIL) == (None, "Billing is not configured.", 503)

    def test_requires_user_and_email(self, stripe_app):
        assert billing.create_checkout_session(USER_ID, None)[2] == 400

    def test_unknown_plan(self, stripe_app):
        assert billing.create_checkout_session(USER_ID, USER_EMAIL, "gold") == (None, "Unknown plan.", 400)

    def test_missing_price(self, stripe_app):
        stripe_app.config["STRIPE_MAX_PRICE_ID"] = ""
        assert billing.create_checkout_session(USER_ID, USER_EMAIL, "max") == (
            None, "Price ID not configured for max plan", 500,
        )

    @patch(f"{SUPABASE}.get_user_profile", return_value=None)
    def test_unknown_user(self, _profile, stripe_app):
        assert billing.create_checkout_session(USER_ID, USER_EMAIL) == (None, "User not found", 401)

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    @patch(f"{SUPABASE}.save_stripe_customer_id", return_value=(True, None))
    @patch(f"{SUPABASE}.get_stripe_customer_id", return_value=None)
    @patch(f"{SUPABASE}.get_user_profile", return_value={"id": USER_ID})
    def test_creates_customer_then_session(self, _profile, _get_cus, save_cus, create_customer, create_session, stripe_app):
        create_customer.return_value = SimpleNamespace(id="cus_new9999")
        create_session.return_value = SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")

        data, error, status = billing.create_checkout_session(USER_ID, USER_EMAIL, "basic")

        assert (error, status) == (None, 200)
        assert data == {"sessionId": "cs_test_1", "url": "https://checkout.stripe.com/c/cs_test_1"}
        create_customer.assert_called_once_with(email=USER_EMAIL, metadata={"supabase_user_id": USER_ID})
        save_cus.assert_called_once_with(USER_ID, "cus_new9999")
        kwargs = create_session.call_args.kwargs
        assert kwargs["customer"] == "cus_new9999"
        assert kwargs["line_items"] == [{"price": "price_basic_test", "quantity": 1}]
        assert kwargs["metadata"] == {"userId": USER_ID, "plan": "basic"}
        assert kwargs["success_url"].startswith("http://localhost:5173/studio?checkout=success")

    @patch("stripe.checkout.Session.create")
    @patch("stripe.Customer.create")
    @patch(f"{SUPABASE}.get_stripe_customer_id", return_value="cus_existing")
    @patch(f"{SUPABASE}.get_user_profile", return_value={"id": USER_ID})
    def test_reuses_customer(self, _profile, _get_cus, create_customer, create_session, stripe_app):
        create_session.return_value = SimpleNamespace(id="cs_test_2", url="https://checkout.stripe.com/c/cs_test_2")
        assert billing.create_checkout_session(USER_ID, USER_EMAIL)[2] == 200
        create_customer.assert_not_called()
        assert create_session.call_args.kwargs["customer"] == "cus_existing"

    @patch("stripe.checkout.Session.create", side_effect=stripe.StripeError("card network down"))
    @patch(f"{SUPABASE}.get_stripe_customer_id", return_value="cus_existing")
    @patch(f"{SUPABASE}.get_user_profile", return_value={"id": USER_ID})
    def test_stripe_error(self, _profile, _get_cus, _create, stripe_app):
        assert billing.create_checkout_session(USER_ID, USER_EMAIL) == (None, "Failed to create checkout session", 500)


class TestPortal:
    def test_requires_user(self, stripe_app):
        assert billing.create_portal_session(None)[2] == 400

    @patch(f"{SUPABASE}.get_stripe_customer_id", return_value=None)
    def test_no_customer(self, _get_cus, stripe_app):
        assert billing.create_portal_session(USER_ID) == (None, "No subscription found for this user", 400)

    @patch("stripe.billing_portal.Session.create")
    @patch(f"{SUPABASE}.get_stripe_customer_id", return_value="cus_existing")
    def test_portal(self, _get_cus, create_portal, stripe_app):
        create_portal.return_value = SimpleNamespace(url="https://billing.stripe.com/p/session")
        assert billing.create_portal_session(USER_ID) == ({"url": "https://billing.stripe.com/p/session"}, None, 200)
        create_portal.assert_called_once_with(customer="cus_existing", return_url="http://localhost:5173/account")

    @patch("stripe.billing_portal.Session.create", side_effect=stripe.StripeError("nope"))
    @patch(f"{SUPABASE}.get_stripe_customer_id", return_value="cus_existing")
    def test_portal_error(self, _get_cus, _create, stripe_app):
        assert billing.create_portal_session(USER_ID)[2] == 500


class TestWebhook:
    def test_not_configured(self, app):
        with app.app_context():
            assert billing.handle_webhook(b"{}", "sig")[2] == 503

    @patch("stripe.Webhook.construct_event", side_effect=ValueError("bad payload"))
    def test_bad_payload(self, _construct, stripe_app):
        assert billing.handle_webhook(b"nope", "sig") == (None, "Webhook signature verification failed", 400)

    @patch("stripe.Webhook.construct_event", side_effect=stripe.SignatureVerificationError("bad sig", "sig"))
    def test_bad_signature(self, _construct, stripe_app):
        assert billing.handle_webhook(b"{}", "sig")[2] == 400

    @patch(f"{SUPABASE}.update_subscription_for_user")
    @patch("stripe.Subscription.retrieve")
    @patch("stripe.Webhook.construct_event")
    def test_checkout_completed_for_basic_resets_counters(self, construct, retrieve, update_user, stripe_app):
        construct.return_value = _event("checkout.session.completed", {
            "customer": "cus_test1234",
            "subscription": "sub_123",
            "metadata": {"userId": USER_ID, "plan": "basic"},
        })
        retrieve.return_value = _subscription()

        assert billing.handle_webhook(b"{}", "sig") == ({"received": True}, None, 200)

        user_id, fields = update_user.call_args.args
        assert user_id == USER_ID
        assert fields["plan"] == "basic"
        assert fields["status"] == "active"
        assert fields["stripe_customer_id"] == "cus_test1234"
        assert fields["exports_this_month"] == 0
        assert fields["current_period_end"].startswith("2026-10-01")

    @patch(f"{SUPABASE}.update_subscription_for_customer")
    @patch("stripe.Subscription.retrieve")
    @patch("stripe.Webhook.construct_event")
    def test_checkout_completed_without_user_uses_customer(self, construct, retrieve, update_customer, stripe_app):
        construct.return_value = _event("checkout.session.completed", {
            "customer": "cus_test1234", "subscription": "sub_123", "metadata": {},
        })
        retrieve.return_value = _subscription(items={"data": [{"price": {"id": "price_max_test"}}]})

        billing.handle_webhook(b"{}", "sig")

        customer_id, fields = update_customer.call_args.args
        assert customer_id == "cus_test1234"
        assert fields["plan"] == "max"
        assert "exports_this_month" not in fields

    @patch("stripe.Subscription.retrieve")
    @patch("stripe.Webhook.construct_event")
    def test_checkout_without_subscription_is_ignored(self, construct, retrieve, stripe_app):
        construct.return_value = _event("checkout.session.completed", {"customer": "cus_test1234"})
        assert billing.handle_webhook(b"{}", "sig")[2] == 200
        retrieve.assert_not_called()

    @patch(f"{SUPABASE}.update_subscription_for_customer")
    @patch("stripe.Webhook.construct_event")
    def test_subscription_updated(self, construct, update_customer, stripe_app):
        construct.return_value = _event("customer.subscription.updated", _subscription(cancel_at_period_end=True))
        billing.handle_webhook(b"{}", "sig")
        _, fields = update_customer.call_args.args
        assert fields["plan"] == "pro"
        assert fields["cancel_at_period_end"] is True
        assert fields["stripe_subscription_id"] == "sub_123"

    @patch(f"{SUPABASE}.update_subscription_for_customer")
    @patch("stripe.Webhook.construct_event")
    def test_subscription_past_due_drops_to_free(self, construct, update_customer, stripe_app):
        construct.return_value = _event("customer.subscription.updated", _subscription(status="past_due"))
        billing.handle_webhook(b"{}", "sig")
        _, fields = update_customer.call_args.args
        assert (fields["status"], fields["plan"]) == ("past_due", "free")

    @patch(f"{SUPABASE}.update_subscription_for_customer")
    @patch("stripe.Webhook.construct_event")
    def test_unknown_status_is_inactive(self, construct, update_customer, stripe_app):
        construct.return_value = _event("customer.subscription.created", _subscription(status="incomplete"))
        billing.handle_webhook(b"{}", "sig")
        assert update_customer.call_args.args[1]["status"] == "inactive"

    @patch(f"{SUPABASE}.update_subscription_for_customer")
    @patch("stripe.Webhook.construct_event")
    def test_basic_created_resets_counters(self, construct, update_customer, stripe_app):
        construct.return_value = _event("customer.subscription.created", _subscription(metadata={"plan": "basic"}))
        billing.handle_webhook(b"{}", "sig")
        assert update_customer.call_args.args[1]["projects_this_month"] == 0

    @pytest.mark.parametrize("event_type,fields,kwargs", [
        ("customer.subscription.deleted", {"status": "canceled", "plan": "free", "cancel_at_period_end": False}, {}),
        ("invoice.payment_failed", {"status": "past_due"}, {}),
        ("invoice.payment_succeeded", {"status": "active"}, {"only_if_status": "past_due"}),
    ])
    def test_status_events(self, event_type, fields, kwargs, stripe_app):
        with patch("stripe.Webhook.construct_event", return_value=_event(event_type, {"customer": "cus_test1234"})), \
                patch(f"{SUPABASE}.update_subscription_for_customer") as update_customer:
            assert billing.handle_webhook(b"{}", "sig")[2] == 200
        update_customer.assert_called_once_with("cus_test1234", fields, **kwargs)

    @patch(f"{SUPABASE}.update_subscription_for_customer")
    @patch("stripe.Webhook.construct_event")
    def test_unhandled_event(self, construct, update_customer, stripe_app):
        construct.return_value = _event("charge.refunded", {"customer": "cus_test1234"})
        assert billing.handle_webhook(b"{}", "sig")[2] == 200
        update_customer.assert_not_called()

    @patch(f"{SUPABASE}.update_subscription_for_customer", side_effect=RuntimeError("db down"))
    @patch("stripe.Webhook.construct_event")
    def test_handler_failure(self, construct, _update, stripe_app):
        construct.return_value = _event("invoice.payment_failed", {"customer": "cus_test1234"})
        assert billing.handle_webhook(b"{}", "sig") == (None, "Webhook handler failed", 500)

    @pytest.mark.parametrize("event_type,obj", [
        ("customer.subscription.deleted", {"customer": "cus_test1234"}),
        ("customer.subscription.updated", _subscription()),
        ("invoice.payment_succeeded", {"customer": "cus_test1234"}),
    ])
    def test_failed_database_write_asks_stripe_to_retry(self, event_type, obj, stripe_app, monkeypatch):
        admin = MagicMock(name="supabase-admin")
        admin.table.return_value.update.return_value.eq.return_value.execute.side_effect = RuntimeError("db down")
        admin.table.return_value.update.return_value.eq.return_value.eq.return_value.execute.side_effect = (
            RuntimeError("db down")
        )
        monkeypatch.setattr(f"{SUPABASE}._supabase_admin", admin)

        with patch("stripe.Webhook.construct_event", return_value=_event(event_type, obj)):
            assert billing.handle_webhook(b"{}", "sig") == (None, "Webhook handler failed", 500)

    @patch(f"{SUPABASE}.update_subscription_for_user", return_value=False)
    @patch("stripe.Subscription.retrieve")
    @patch("stripe.Webhook.construct_event")
    def test_failed_checkout_write_is_500(self, construct, retrieve, _update, stripe_app):
        construct.return_value = _event("checkout.session.completed", {
            "customer": "cus_test1234", "subscription": "sub_123", "metadata": {"userId": USER_ID},
        })
        retrieve.return_value = _subscription()
        assert billing.handle_webhook(b"{}", "sig")[2] == 500
