"""UTC timestamps.

All persisted timestamps are timezone-aware UTC and stored in
``TIMESTAMP WITH TIME ZONE`` columns.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
