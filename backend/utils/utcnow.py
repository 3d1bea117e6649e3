"""UTC clock helpers.

``datetime.utcnow()`` is deprecated since Python 3.12.  ``utcnow`` produces
the naive UTC datetimes the ORM columns store; ``unix_now`` and
``unix_hours_ago`` give the integer epoch seconds the Data API speaks.
"""

import time
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def unix_now() -> int:
    """Current POSIX time in whole seconds."""
    return int(time.time())


def unix_hours_ago(hours: float, now: int | None = None) -> int:
    """POSIX seconds ``hours`` before ``now`` (defaults to the current time)."""
    reference = unix_now() if now is None else now
    return int(reference - hours * 3600)
