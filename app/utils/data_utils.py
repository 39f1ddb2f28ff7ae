"""
Data utilities
Request payload helpers for the record endpoints
"""
from flask import request

from core.storage.errors import InvalidRecordError, UnknownTableError
from core.storage.filters import Table


def get_request_data():
    """JSON body of the current request; anything else is an empty payload."""
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def require_table(payload):
    """Resolve the "table" field, raising UnknownTableError outside the known set."""
    name = payload.get('table')
    if not name:
        raise UnknownTableError(name)
    return Table.parse(name)


def require_data(payload):
    """Records of an insert: one object or a list of objects under "data"."""
    data = payload.get('data')
    if isinstance(data, dict):
        return data
    if isinstance(data, list) and all(isinstance(item, dict) for item in data):
        return data
    raise InvalidRecordError("'data' must be an object or a list of objects")


def require_updates(payload):
    """Field changes of an update, sent as an object under "updates"."""
    updates = payload.get('updates')
    if not isinstance(updates, dict):
        raise InvalidRecordError("'updates' must be an object of field -> value")
    return updates
