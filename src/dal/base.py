"""Helpers shared by the repositories."""

import uuid


def is_uuid(value: object) -> bool:
    """True if ``value`` parses as a UUID.

    Primary keys are PostgreSQL ``uuid`` columns; comparing one against a
    malformed string is a database error rather than an empty result.
    """
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True
