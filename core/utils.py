"""Small shared helpers: ids, dates, rounding and pagination."""

import hashlib
import math
import re
import secrets
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

from core.exceptions import ValidationError

_WHITESPACE = re.compile(r"\s+")


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching what the ORM stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def slugify(value: str) -> str:
    """Lowercase a name and join its words with underscores."""
    return _WHITESPACE.sub("_", value.strip().lower())


def generate_mess_id(facility_name: str, mess_name: str) -> str:
    """Build a globally unique mess id ``<facility>_<mess>_<suffix>``."""
    return f"{slugify(facility_name)}_{slugify(mess_name)}_{uuid.uuid4().hex[:12]}"


def generate_token() -> Tuple[str, str]:
    """Return a random token and its sha256 digest (the value to store)."""
    raw = secrets.token_hex(32)
    return raw, hash_token(raw)


def hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def round_half_up(value: float) -> int:
    """Round halves away from zero for positive values (2.5 -> 3).

    Python's built-in round() uses banker's rounding, which would turn a
    2.5 category mean into 2.
    """
    return int(math.floor(value + 0.5))


def parse_date_range(raw: Optional[str], default_days: int = 30, today: Optional[date] = None) -> Tuple[date, date]:
    """Parse a ``start,end`` query value into dates.

    When ``raw`` is empty the range ends today and starts ``default_days``
    earlier.

    Raises:
        ValidationError: If the value is malformed or start is after end.
    """
    today = today or date.today()
    if not raw:
        return today - timedelta(days=default_days), today

    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 2:
        raise ValidationError("Date range must be formatted as 'start,end'", field="dateRange")
    try:
        start = date.fromisoformat(parts[0][:10])
        end = date.fromisoformat(parts[1][:10])
    except ValueError:
        raise ValidationError("Date range contains an invalid date", field="dateRange")
    if start > end:
        raise ValidationError("Date range start must not be after its end", field="dateRange")
    return start, end


def pagination_info(page: int, limit: int, total: int) -> dict:
    """Pagination block returned alongside list responses."""
    pages = math.ceil(total / limit) if limit else 0
    return {"page": page, "limit": limit, "total": total, "pages": pages}
