"""Shared Firestore query helpers.

Filters are passed as ``FieldFilter`` keywords, which newer Firestore SDKs
require to avoid positional-argument warnings. In-memory fakes that only
accept ``where(field, op, value)`` get the positional form.
"""

from google.cloud.firestore_v1.base_query import FieldFilter


def apply_where(query, field_path, op_string, value):
    try:
        return query.where(filter=FieldFilter(field_path, op_string, value))
    except TypeError:
        return query.where(field_path, op_string, value)
