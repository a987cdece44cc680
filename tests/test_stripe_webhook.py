import dataclasses
import json
from datetime import datetime, timedelta, timezone

from guerreiro_concursos.repositories import stripe_logs_repo

from tests.fakes import DAY, NOW_TS, WEBHOOK_SECRET, build_event, sign_payload

NOW = datetime.fromtimestamp(NOW_TS, tz=timezone.utc)
PERIOD_END = NOW_TS + 30 * DAY


def _post_event(client, payload, secret=WEBHOOK_SECRET):
    return client.post(
        "/api/stripe-webhook",
        data=payload.encode("utf-8"),
        headers={"Content-Type": "application/json", "Stripe-Signature": sign_payload(payload, secret)},
    )


def _free_user(fake_db, uid="user-1", **extra):
    record = {"plan": "free", "pontos": 0, "medalhas": [], "stripeCustomerId": "cus_1", "premiumUntil": None}
    record.update(extra)
    fake_db.data.setdefault("users", {})[uid] = record


def _active_subscription(fake_stripe, subscription_id="sub_1"):
    fake_stripe.subscriptions[subscription_id] = {
        "id": subscription_id,
        "customer": "cus_1",
        "status": "active",
        "current_period_end": PERIOD_END,
        "items": {"data": [{"price": {"recurring": {"interval": "month", "interval_count": 1}}}]},
    }


def _checkout_payload(event_id="evt_checkout", metadata=None):
    return build_event("checkout.session.completed", {
        "id": "cs_1",
        "object": "checkout.session",
        "mode": "subscription",
        "subscription": "sub_1",
        "customer": "cus_1",
        "metadata": {"uid": "user-1", "userId": "user-1"} if metadata is None else metadata,
    }, event_id=event_id)


def _deleted_payload(event_id="evt_deleted"):
    return build_event("customer.subscription.deleted", {
        "id": "sub_1",
        "object": "subscription",
        "customer": "cus_1",
        "status": "canceled",
    }, event_id=event_id)


def _updated_payload(status, event_id="evt_updated"):
    return build_event("customer.subscription.updated", {
        "id": "sub_1",
        "object": "subscription",
        "customer": "cus_1",
        "status": status,
        "current_period_end": PERIOD_END,
    }, event_id=event_id)


def test_missing_signature_returns_400_without_writes(client, fake_db):
    _free_user(fake_db)

    response = client.post("/api/stripe-webhook", data=_checkout_payload().encode("utf-8"), headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert fake_db.writes == []


def test_invalid_signature_returns_400_without_writes(client, fake_db):
    _free_user(fake_db)

    response = _post_event(client, _checkout_payload(), secret="whsec_wrong")

    assert response.status_code == 400
    assert "Webhook Error" in response.get_data(as_text=True)
    assert fake_db.writes == []


def test_signed_body_with_malformed_data_returns_400_without_writes(client, fake_db):
    payload = json.dumps({"id": "evt_bad", "type": "customer.created", "data": "oops"})

    response = _post_event(client, payload)

    assert response.status_code == 400
    assert "Webhook Error" in response.get_data(as_text=True)
    assert fake_db.writes == []


def test_webhook_requires_secret(client, app, monkeypatch):
    ctx = app.extensions["guerreiro_concursos"]["ctx"]
    monkeypatch.setattr(ctx, "config", dataclasses.replace(ctx.config, stripe_webhook_secret=""))

    response = _post_event(client, _deleted_payload())

    assert response.status_code == 500
    assert response.get_json().get("error") == "Webhook not configured"


def test_checkout_completed_upgrades_free_user_and_rewards(client, fake_db, fake_stripe):
    _free_user(fake_db)
    _active_subscription(fake_stripe)

    response = _post_event(client, _checkout_payload())

    assert response.status_code == 200
    assert response.get_json() == {"received": True}
    user = fake_db.user("user-1")
    assert user["plan"] == "premium"
    assert user["subscriptionStatus"] == "active"
    assert user["premiumUntil"] == NOW + timedelta(days=30)
    assert user["stripeCustomerId"] == "cus_1"
    assert user["stripeSubscriptionId"] == "sub_1"
    assert user["pontos"] == 50
    assert "premium_primeira_vez" in user["medalhas"]

    logs = fake_db.stripe_logs()
    assert len(logs) == 1
    assert logs[0]["eventId"] == "evt_checkout"
    assert logs[0]["status"] == "success"
    assert logs[0]["details"]["resolvedBy"] == "metadata"
    assert logs[0]["details"]["rewards"] == {"pointsAdded": True, "badgeAdded": True}


def test_subscription_deleted_after_checkout_downgrades_and_keeps_badges(client, fake_db, fake_stripe):
    _free_user(fake_db)
    _active_subscription(fake_stripe)
    _post_event(client, _checkout_payload())

    response = _post_event(client, _deleted_payload())

    assert response.status_code == 200
    user = fake_db.user("user-1")
    assert user["plan"] == "free"
    assert user["subscriptionStatus"] == "canceled"
    assert user["premiumUntil"] is None
    assert user["medalhas"] == ["premium_primeira_vez"]
    assert user["pontos"] == 50
    assert [log["eventId"] for log in fake_db.stripe_logs()] == ["evt_checkout", "evt_deleted"]


def test_subscription_deleted_for_unknown_customer_is_acknowledged(client, fake_db):
    response = _post_event(client, _deleted_payload())

    assert response.status_code == 200
    assert fake_db.user_writes() == []
    logs = fake_db.stripe_logs()
    assert len(logs) == 1
    assert logs[0]["status"] == "error"
    assert logs[0]["details"]["error"] == "Usuário não encontrado"
    assert logs[0]["details"]["customerId"] == "cus_1"


def test_checkout_without_metadata_falls_back_to_customer_lookup(client, fake_db, fake_stripe):
    _free_user(fake_db, uid="user-by-customer")
    _active_subscription(fake_stripe)

    response = _post_event(client, _checkout_payload(metadata={}))

    assert response.status_code == 200
    assert fake_db.user("user-by-customer")["plan"] == "premium"
    assert fake_db.stripe_logs()[0]["details"]["resolvedBy"] == "customer"


def test_badge_awarded_once_across_repeated_activation(client, fake_db):
    _free_user(fake_db)

    _post_event(client, _updated_payload("active", event_id="evt_1"))
    _post_event(client, _deleted_payload(event_id="evt_2"))
    _post_event(client, _updated_payload("active", event_id="evt_3"))

    user = fake_db.user("user-1")
    assert user["plan"] == "premium"
    assert user["medalhas"].count("premium_primeira_vez") == 1
    assert user["pontos"] == 100
    assert len(fake_db.stripe_logs()) == 3


def test_update_on_premium_user_does_not_reward_again(client, fake_db):
    _free_user(fake_db, plan="premium", subscriptionStatus="active")

    _post_event(client, _updated_payload("active"))

    user = fake_db.user("user-1")
    assert user["pontos"] == 0
    assert "rewards" not in fake_db.stripe_logs()[0]["details"]


def test_subscription_updated_past_due_clears_premium(client, fake_db):
    _free_user(fake_db, plan="premium", subscriptionStatus="active", premiumUntil=NOW)

    response = _post_event(client, _updated_payload("past_due"))

    assert response.status_code == 200
    user = fake_db.user("user-1")
    assert user["plan"] == "free"
    assert user["subscriptionStatus"] == "past_due"
    assert user["premiumUntil"] is None


def test_invoice_payment_failed_only_changes_status(client, fake_db):
    premium_until = NOW + timedelta(days=12)
    _free_user(fake_db, plan="premium", subscriptionStatus="active", premiumUntil=premium_until)
    payload = build_event("invoice.payment_failed", {
        "id": "in_1",
        "object": "invoice",
        "customer": "cus_1",
        "subscription": "sub_1",
    }, event_id="evt_invoice_failed")

    response = _post_event(client, payload)

    assert response.status_code == 200
    user = fake_db.user("user-1")
    assert user["subscriptionStatus"] == "past_due"
    assert user["plan"] == "premium"
    assert user["premiumUntil"] == premium_until


def test_invoice_payment_succeeded_refreshes_period_end(client, fake_db, fake_stripe):
    _free_user(fake_db, plan="premium", subscriptionStatus="past_due")
    _active_subscription(fake_stripe)
    payload = build_event("invoice.payment_succeeded", {
        "id": "in_2",
        "object": "invoice",
        "customer": "cus_1",
        "parent": {"subscription_details": {"subscription": "sub_1", "metadata": {}}},
    }, event_id="evt_invoice_paid")

    response = _post_event(client, payload)

    assert response.status_code == 200
    user = fake_db.user("user-1")
    assert user["subscriptionStatus"] == "active"
    assert user["premiumUntil"] == NOW + timedelta(days=30)
    assert fake_db.stripe_logs()[0]["details"]["invoiceId"] == "in_2"


def test_invoice_without_subscription_is_logged_as_error(client, fake_db):
    _free_user(fake_db)
    payload = build_event("invoice.payment_succeeded", {"id": "in_3", "object": "invoice", "customer": "cus_1"})

    response = _post_event(client, payload)

    assert response.status_code == 200
    assert fake_db.user_writes() == []
    log = fake_db.stripe_logs()[0]
    assert log["status"] == "error"
    assert log["details"]["error"] == "Invoice sem subscription ID"


def test_unhandled_event_is_acknowledged_and_logged(client, fake_db):
    payload = build_event("customer.created", {"id": "cus_1", "object": "customer"}, event_id="evt_other")

    response = _post_event(client, payload)

    assert response.status_code == 200
    assert fake_db.user_writes() == []
    log = fake_db.stripe_logs()[0]
    assert log["eventType"] == "customer.created"
    assert log["status"] == "success"


def test_processing_error_returns_500_and_is_logged(client, fake_db, fake_stripe):
    _free_user(fake_db)
    fake_stripe.retrieve_error = RuntimeError("stripe is down")

    response = _post_event(client, _checkout_payload())

    assert response.status_code == 500
    assert "stripe is down" in response.get_json()["error"]
    log = fake_db.stripe_logs()[0]
    assert log["status"] == "error"
    assert log["details"]["error"] == "stripe is down"
    assert fake_db.user("user-1")["plan"] == "free"


def test_duplicate_delivery_is_logged_each_time(client, fake_db):
    _free_user(fake_db)

    _post_event(client, _deleted_payload(event_id="evt_dup"))
    _post_event(client, _deleted_payload(event_id="evt_dup"))

    assert [log["eventId"] for log in fake_db.stripe_logs()] == ["evt_dup", "evt_dup"]
    assert fake_db.user("user-1")["plan"] == "free"


def test_audit_write_failure_does_not_fail_the_webhook(client, fake_db, monkeypatch):
    _free_user(fake_db, plan="premium", subscriptionStatus="active")

    def _broken_add_entry(db, payload):
        raise RuntimeError("firestore unavailable")

    monkeypatch.setattr(stripe_logs_repo, "add_entry", _broken_add_entry)

    response = _post_event(client, _deleted_payload())

    assert response.status_code == 200
    assert response.get_json() == {"received": True}
    user = fake_db.user("user-1")
    assert user["plan"] == "free"
    assert user["subscriptionStatus"] == "canceled"
    assert fake_db.stripe_logs() == []


def test_stale_metadata_uid_falls_back_to_customer_lookup(client, fake_db):
    _free_user(fake_db, plan="premium", subscriptionStatus="active")
    payload = build_event("customer.subscription.deleted", {
        "id": "sub_1",
        "object": "subscription",
        "customer": "cus_1",
        "status": "canceled",
        "metadata": {"uid": "ghost"},
    }, event_id="evt_stale_uid")

    response = _post_event(client, payload)

    assert response.status_code == 200
    user = fake_db.user("user-1")
    assert user["plan"] == "free"
    assert user["premiumUntil"] is None
    assert fake_db.user("ghost") is None
    log = fake_db.stripe_logs()[0]
    assert log["status"] == "success"
    assert log["details"]["resolvedBy"] == "customer"
    assert log["details"]["userId"] == "user-1"
