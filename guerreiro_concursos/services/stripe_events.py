"""Signature verification and typed parsing of Stripe webhook events.

Every verified payload becomes one of the ``StripeEvent`` subclasses below.
Types the billing flow does not act on map to ``UnhandledEvent`` so callers
can dispatch on the class and still have an explicit default arm.
"""

import json
from dataclasses import dataclass, field
from typing import Optional

from guerreiro_concursos.errors import AuthenticationFailure, ValidationFailure


def as_plain_dict(obj):
    """Return a plain ``dict`` for a StripeObject, a dict or None."""
    if obj is None:
        return {}
    for attr in ('to_dict_recursive', 'to_dict'):
        converter = getattr(obj, attr, None)
        if callable(converter):
            return converter()
    return dict(obj)


def id_of(value):
    """Expandable Stripe fields are either an id string or an object."""
    if isinstance(value, dict):
        return str(value.get('id') or '')
    return str(value or '')


def subscription_period_end(subscription) -> Optional[int]:
    """current_period_end lives on the items in newer API versions."""
    subscription = subscription or {}
    period_end = subscription.get('current_period_end')
    if period_end:
        return int(period_end)
    items = (subscription.get('items') or {}).get('data') or []
    if items and items[0].get('current_period_end'):
        return int(items[0]['current_period_end'])
    return None


def _invoice_subscription_details(invoice):
    parent = invoice.get('parent') or {}
    return parent.get('subscription_details') or invoice.get('subscription_details') or {}


@dataclass(frozen=True)
class StripeEvent:
    id: str
    type: str
    data_object: dict = field(default_factory=dict)
    created: int = 0
    customer_id: str = ''
    subscription_id: str = ''
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_object(cls, base, obj):
        return cls(**base)


@dataclass(frozen=True)
class CheckoutSessionCompleted(StripeEvent):
    session_id: str = ''
    mode: str = ''
    client_reference_id: str = ''

    @classmethod
    def from_object(cls, base, obj):
        return cls(
            **base,
            customer_id=id_of(obj.get('customer')),
            subscription_id=id_of(obj.get('subscription')),
            metadata=dict(obj.get('metadata') or {}),
            session_id=str(obj.get('id') or ''),
            mode=str(obj.get('mode') or ''),
            client_reference_id=str(obj.get('client_reference_id') or ''),
        )


@dataclass(frozen=True)
class SubscriptionUpdated(StripeEvent):
    status: str = ''
    current_period_end: Optional[int] = None

    @classmethod
    def from_object(cls, base, obj):
        return cls(
            **base,
            customer_id=id_of(obj.get('customer')),
            subscription_id=str(obj.get('id') or ''),
            metadata=dict(obj.get('metadata') or {}),
            status=str(obj.get('status') or ''),
            current_period_end=subscription_period_end(obj),
        )


@dataclass(frozen=True)
class SubscriptionDeleted(StripeEvent):

    @classmethod
    def from_object(cls, base, obj):
        return cls(
            **base,
            customer_id=id_of(obj.get('customer')),
            subscription_id=str(obj.get('id') or ''),
            metadata=dict(obj.get('metadata') or {}),
        )


@dataclass(frozen=True)
class _InvoiceEvent(StripeEvent):
    invoice_id: str = ''

    @classmethod
    def from_object(cls, base, obj):
        details = _invoice_subscription_details(obj)
        return cls(
            **base,
            customer_id=id_of(obj.get('customer')),
            subscription_id=id_of(obj.get('subscription')) or id_of(details.get('subscription')),
            metadata=dict(obj.get('metadata') or details.get('metadata') or {}),
            invoice_id=str(obj.get('id') or ''),
        )


@dataclass(frozen=True)
class InvoicePaymentSucceeded(_InvoiceEvent):
    pass


@dataclass(frozen=True)
class InvoicePaymentFailed(_InvoiceEvent):
    pass


@dataclass(frozen=True)
class UnhandledEvent(StripeEvent):
    pass


EVENT_TYPES = {
    'checkout.session.completed': CheckoutSessionCompleted,
    'customer.subscription.updated': SubscriptionUpdated,
    'customer.subscription.deleted': SubscriptionDeleted,
    'invoice.payment_succeeded': InvoicePaymentSucceeded,
    'invoice.payment_failed': InvoicePaymentFailed,
}


def parse_event(raw_event):
    if not isinstance(raw_event, dict):
        raise ValidationFailure('Invalid payload')
    event_id = str(raw_event.get('id') or '').strip()
    event_type = str(raw_event.get('type') or '').strip()
    if not event_id or not event_type:
        raise ValidationFailure('Invalid payload: missing event id or type')
    data = raw_event.get('data') or {}
    if not isinstance(data, dict):
        raise ValidationFailure('Invalid payload: data must be an object')
    obj = data.get('object') or {}
    if not isinstance(obj, dict):
        raise ValidationFailure('Invalid payload: data.object must be an object')
    try:
        created = int(raw_event.get('created') or 0)
    except (TypeError, ValueError):
        raise ValidationFailure('Invalid payload: created must be a timestamp')
    base = {
        'id': event_id,
        'type': event_type,
        'data_object': obj,
        'created': created,
    }
    event_cls = EVENT_TYPES.get(event_type, UnhandledEvent)
    return event_cls.from_object(base, obj)


def construct_event(payload, sig_header, secret, *, stripe_module):
    """Verify the Stripe-Signature header and return a typed event.

    Raises AuthenticationFailure for a missing or bad signature and
    ValidationFailure for a body that is not a Stripe event.
    """
    if not sig_header:
        raise AuthenticationFailure('Webhook sem assinatura')
    if isinstance(payload, bytes):
        try:
            payload = payload.decode('utf-8')
        except UnicodeDecodeError:
            raise ValidationFailure('Invalid payload')
    try:
        stripe_module.WebhookSignature.verify_header(
            payload, sig_header, secret, stripe_module.Webhook.DEFAULT_TOLERANCE
        )
    except stripe_module.SignatureVerificationError as exc:
        raise AuthenticationFailure(str(exc) or 'Invalid signature')
    try:
        raw_event = json.loads(payload)
    except ValueError:
        raise ValidationFailure('Invalid payload')
    return parse_event(raw_event)
