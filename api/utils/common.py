"""
Common utility functions used across services and routes.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso_format(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO string with Z suffix."""
    if dt is None:
        return None
    return dt.isoformat() + "Z"


def new_message_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:16]}"


def display_name(user) -> str:
    """First/last name when set, else username, else email prefix."""
    full = f"{user.firstname or ''} {user.lastname or ''}".strip()
    if full:
        return full
    if user.username:
        return user.username
    return (user.email or "").split("@", 1)[0]


def dedupe(values) -> list:
    """Drop falsy and repeated values, keeping first-seen order."""
    seen = set()
    out = []
    for v in values:
        if not v or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out
