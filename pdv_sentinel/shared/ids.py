"""Human-readable identifiers for alerts and runs."""

import uuid
from datetime import UTC, datetime


def dated_id(prefix: str, now: datetime | None = None) -> str:
    """Return ``PREFIX-YYYY-MM-DD-XXXXXXXX`` with 8 upper-case hex chars."""
    day = (now or datetime.now(UTC)).date().isoformat()
    return f"{prefix}-{day}-{uuid.uuid4().hex[:8].upper()}"
