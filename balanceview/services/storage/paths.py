"""
Store path helpers.

All per-user data lives under users/{uid}; the uid comes from the
authentication provider and is the partition key for everything below.
"""

from balanceview.models.month_key import parse_month_key

USERS = "users"


def user_doc(uid: str) -> str:
    """Flat user document (legacy income, migration marker)."""
    return f"{USERS}/{_check_uid(uid)}"


def legacy_bills(uid: str) -> str:
    """Pre-monthly flat bill collection."""
    return f"{user_doc(uid)}/bills"


def months(uid: str) -> str:
    return f"{user_doc(uid)}/months"


def month_doc(uid: str, month_key: str) -> str:
    parse_month_key(month_key)
    return f"{months(uid)}/{month_key}"


def month_bills(uid: str, month_key: str) -> str:
    return f"{month_doc(uid, month_key)}/bills"


def month_bill(uid: str, month_key: str, bill_id: str) -> str:
    if not bill_id or "/" in bill_id:
        raise ValueError(f"Invalid bill id: {bill_id!r}")
    return f"{month_bills(uid, month_key)}/{bill_id}"


def profile_doc(uid: str) -> str:
    return f"{user_doc(uid)}/profile/data"


def audit_events(uid: str) -> str:
    return f"{user_doc(uid)}/audit"


def _check_uid(uid: str) -> str:
    if not uid or "/" in uid:
        raise ValueError(f"Invalid user id: {uid!r}")
    return uid
