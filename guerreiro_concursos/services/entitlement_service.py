"""Subscription state reconciliation.

Each handled event type maps to a merge patch over the user record. Fields
outside the patch are left as they are; the patch always carries
``updatedAt``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from guerreiro_concursos.errors import ValidationFailure
from guerreiro_concursos.repositories import users_repo
from guerreiro_concursos.services.stripe_events import (
    CheckoutSessionCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionDeleted,
    SubscriptionUpdated,
    as_plain_dict,
    id_of,
    subscription_period_end,
)

PLAN_FREE = 'free'
PLAN_PREMIUM = 'premium'
DEFAULT_PERIOD_DAYS = 30
SUBSCRIPTION_STATUSES = ('active', 'canceled', 'past_due', 'incomplete', 'trialing', 'unpaid')


@dataclass
class ReconcileResult:
    user_id: str
    previous_plan: str = PLAN_FREE
    previous_status: str = 'unknown'
    patch: Optional[dict] = None
    details: dict = field(default_factory=dict)

    @property
    def activated_premium(self):
        patch = self.patch or {}
        return (
            self.previous_plan != PLAN_PREMIUM
            and patch.get('plan') == PLAN_PREMIUM
            and patch.get('subscriptionStatus') == 'active'
        )


def utc_now(time_module):
    return datetime.fromtimestamp(time_module.time(), tz=timezone.utc)


def map_subscription_status(provider_status):
    status = str(provider_status or '').strip().lower()
    return status if status in SUBSCRIPTION_STATUSES else 'unknown'


def period_end_or_default(period_end_ts, now):
    if period_end_ts:
        return datetime.fromtimestamp(int(period_end_ts), tz=timezone.utc)
    return now + timedelta(days=DEFAULT_PERIOD_DAYS)


def billing_interval(subscription):
    """Return (interval, interval_count, days) of the first subscription price."""
    items = ((subscription or {}).get('items') or {}).get('data') or []
    recurring = {}
    if items:
        recurring = (items[0].get('price') or {}).get('recurring') or {}
    interval = recurring.get('interval') or 'month'
    interval_count = int(recurring.get('interval_count') or 1)
    days = 365 * interval_count if interval == 'year' else 30 * interval_count
    return interval, interval_count, days


def skip_reason(event):
    """Return a note when the event is valid but needs no user write.

    Raises ValidationFailure for events that cannot be reconciled at all.
    """
    if isinstance(event, CheckoutSessionCompleted):
        if event.mode != 'subscription' or not event.subscription_id:
            return 'checkout.session.completed sem modo subscription ou sem subscription ID'
    if isinstance(event, InvoicePaymentSucceeded) and not event.subscription_id:
        raise ValidationFailure(
            'Invoice sem subscription ID',
            invoiceId=event.invoice_id,
            customerId=event.customer_id,
        )
    return ''


def _checkout_patch(event, subscription, now):
    provider_status = str(subscription.get('status') or '')
    return {
        'stripeCustomerId': id_of(subscription.get('customer')) or event.customer_id,
        'stripeSubscriptionId': str(subscription.get('id') or event.subscription_id),
        'subscriptionStatus': 'active' if provider_status == 'active' else 'incomplete',
        'premiumUntil': period_end_or_default(subscription_period_end(subscription), now),
        'plan': PLAN_PREMIUM,
    }


def _subscription_updated_patch(event, subscription, now):
    status = map_subscription_status(event.status)
    active = status == 'active'
    return {
        'stripeSubscriptionId': event.subscription_id,
        'subscriptionStatus': status,
        'premiumUntil': period_end_or_default(event.current_period_end, now) if active else None,
        'plan': PLAN_PREMIUM if active else PLAN_FREE,
    }


def _subscription_deleted_patch(event, subscription, now):
    return {
        'subscriptionStatus': 'canceled',
        'premiumUntil': None,
        'plan': PLAN_FREE,
    }


def _invoice_succeeded_patch(event, subscription, now):
    active = str(subscription.get('status') or '') == 'active'
    return {
        'subscriptionStatus': 'active' if active else 'incomplete',
        'premiumUntil': period_end_or_default(subscription_period_end(subscription), now) if active else None,
        'plan': PLAN_PREMIUM if active else PLAN_FREE,
    }


def _invoice_failed_patch(event, subscription, now):
    return {'subscriptionStatus': 'past_due'}


PATCH_BUILDERS = {
    CheckoutSessionCompleted: _checkout_patch,
    SubscriptionUpdated: _subscription_updated_patch,
    SubscriptionDeleted: _subscription_deleted_patch,
    InvoicePaymentSucceeded: _invoice_succeeded_patch,
    InvoicePaymentFailed: _invoice_failed_patch,
}

# Events whose patch depends on the live subscription, not the event body.
RETRIEVES_SUBSCRIPTION = (CheckoutSessionCompleted, InvoicePaymentSucceeded)


def compute_patch(event, subscription, now):
    """Return the merge patch for ``event``, or None for unmapped types."""
    builder = PATCH_BUILDERS.get(type(event))
    if builder is None:
        return None
    patch = builder(event, subscription or {}, now)
    patch['updatedAt'] = now
    return patch


def retrieve_subscription(stripe_module, subscription_id):
    return as_plain_dict(stripe_module.Subscription.retrieve(subscription_id))


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def reconcile(event, user_id, *, db, stripe_module, time_module, logger):
    """Merge the state implied by ``event`` into the user record."""
    now = utc_now(time_module)
    before = users_repo.get_data(db, user_id) or {}
    result = ReconcileResult(
        user_id=user_id,
        previous_plan=before.get('plan') or PLAN_FREE,
        previous_status=before.get('subscriptionStatus') or 'unknown',
    )

    subscription = {}
    if isinstance(event, RETRIEVES_SUBSCRIPTION):
        subscription = retrieve_subscription(stripe_module, event.subscription_id)

    patch = compute_patch(event, subscription, now)
    if patch is None:
        return result

    users_repo.merge_doc(db, user_id, patch)
    result.patch = patch
    result.details = {
        'userId': user_id,
        'customerId': patch.get('stripeCustomerId') or event.customer_id,
        'subscriptionId': patch.get('stripeSubscriptionId') or event.subscription_id,
        'previousPlan': result.previous_plan,
        'newPlan': patch.get('plan', result.previous_plan),
        'previousStatus': result.previous_status,
        'newStatus': patch.get('subscriptionStatus'),
    }
    if 'premiumUntil' in patch:
        result.details['premiumUntil'] = _iso(patch['premiumUntil'])
    if isinstance(event, (InvoicePaymentSucceeded, InvoicePaymentFailed)):
        result.details['invoiceId'] = event.invoice_id
    if subscription:
        interval, interval_count, days = billing_interval(subscription)
        result.details.update({
            'providerStatus': subscription.get('status'),
            'interval': interval,
            'intervalCount': interval_count,
            'daysToAdd': days,
        })

    logger.info(
        f"[Stripe] {event.type} reconciled for user {user_id}: "
        f"plan {result.previous_plan} -> {result.details['newPlan']}, "
        f"status {result.previous_status} -> {result.details['newStatus']}"
    )
    return result
