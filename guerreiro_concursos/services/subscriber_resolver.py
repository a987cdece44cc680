"""Map a Stripe event to the internal user id."""

from guerreiro_concursos.errors import LookupFailure
from guerreiro_concursos.repositories import users_repo
from guerreiro_concursos.services.stripe_events import CheckoutSessionCompleted

METADATA_USER_KEYS = ('uid', 'userId')


def metadata_user_id(event):
    metadata = event.metadata or {}
    for key in METADATA_USER_KEYS:
        value = str(metadata.get(key) or '').strip()
        if value:
            return value
    if isinstance(event, CheckoutSessionCompleted):
        return event.client_reference_id.strip()
    return ''


def resolve_user_id(event, *, db, logger=None):
    """Return ``(user_id, resolved_by)``.

    The metadata id wins. A checkout may attach billing to a user document
    that does not exist yet; every other event needs an existing record,
    otherwise the customer id lookup is used.
    """
    user_id = metadata_user_id(event)
    if user_id:
        if isinstance(event, CheckoutSessionCompleted) or users_repo.get_doc(db, user_id).exists:
            return user_id, 'metadata'
        if logger is not None:
            logger.warning(f"[Stripe] metadata uid {user_id} has no user record, falling back to customer {event.customer_id}")

    snapshot = users_repo.find_by_stripe_customer_id(db, event.customer_id)
    if snapshot is None:
        raise LookupFailure(
            'Usuário não encontrado',
            customerId=event.customer_id,
            subscriptionId=event.subscription_id,
        )
    return snapshot.id, 'customer'
