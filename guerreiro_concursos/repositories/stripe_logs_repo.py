"""Firestore accessors for the append-only Stripe webhook log."""

STRIPE_LOGS_COLLECTION = 'logs_stripe'


def add_entry(db, payload):
    return db.collection(STRIPE_LOGS_COLLECTION).add(payload)
