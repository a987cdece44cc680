"""Firestore accessors for users collection."""

from .query_utils import apply_where

USERS_COLLECTION = 'users'


def doc_ref(db, uid):
    return db.collection(USERS_COLLECTION).document(uid)


def get_doc(db, uid):
    return doc_ref(db, uid).get()


def get_data(db, uid):
    """Return the user dict, or None when the record does not exist."""
    snapshot = get_doc(db, uid)
    if not snapshot.exists:
        return None
    return snapshot.to_dict() or {}


def merge_doc(db, uid, patch):
    return doc_ref(db, uid).set(patch, merge=True)


def find_by_stripe_customer_id(db, customer_id):
    if not customer_id:
        return None
    query = apply_where(db.collection(USERS_COLLECTION), 'stripeCustomerId', '==', customer_id).limit(1)
    for snapshot in query.stream():
        return snapshot
    return None
