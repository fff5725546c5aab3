"""Utility / helper functions used across the application."""

from __future__ import annotations

import datetime
import logging
from datetime import timezone
from typing import Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Datetime helpers
# ---------------------------------------------------------------------------

def utc_now() -> datetime.datetime:
    """Return current UTC datetime.  Used as SQLAlchemy column default."""
    return datetime.datetime.now(timezone.utc)


def to_utc(value: datetime.datetime) -> datetime.datetime:
    """Normalise *value* to an aware UTC datetime.

    Naive values are taken to be UTC already (that is how they come back
    from SQLite).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def business_day_bounds(
    now: datetime.datetime, utc_offset_hours: int
) -> tuple[datetime.datetime, datetime.datetime]:
    """Return the UTC ``[start, end)`` of the calendar day containing *now*.

    The day is measured in the business timezone (a fixed UTC offset;
    Indonesia observes no daylight saving).
    """
    tz = timezone(datetime.timedelta(hours=utc_offset_hours))
    local = to_utc(now).astimezone(tz)
    start_local = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end_local = start_local + datetime.timedelta(days=1)
    return start_local.astimezone(timezone.utc), end_local.astimezone(timezone.utc)


def business_today(utc_offset_hours: int, now: Optional[datetime.datetime] = None) -> datetime.date:
    tz = timezone(datetime.timedelta(hours=utc_offset_hours))
    return to_utc(now or utc_now()).astimezone(tz).date()


def parse_date(raw: Optional[str]) -> Optional[datetime.date]:
    if not raw:
        return None
    try:
        return datetime.datetime.strptime(raw, "%Y-%m-%d").date()
    except (ValueError, TypeError):
        logger.warning("Could not parse date: %r", raw)
        return None


def parse_datetime(raw: Optional[str]) -> Optional[datetime.datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z``; naive input is read as UTC.
    """
    if not raw:
        return None
    try:
        value = datetime.datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except (ValueError, TypeError, AttributeError):
        logger.warning("Could not parse datetime: %r", raw)
        return None
    return to_utc(value)


def isoformat(value) -> Optional[str]:
    """Serialise a date/datetime for JSON, or ``None``."""
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return to_utc(value).isoformat()
    return value.isoformat()


# ---------------------------------------------------------------------------
# JSON API helpers
# ---------------------------------------------------------------------------

def api_response(data=None, status: int = 200):
    """Wrap *data* in the ``{"success": true, "data": ...}`` envelope."""
    from flask import jsonify

    return jsonify({"success": True, "data": data}), status


def json_body() -> dict:
    """Return the request JSON object, or an empty dict when absent."""
    from flask import request

    payload = request.get_json(silent=True)
    return payload if payload is not None else {}


def query_flag(name: str) -> bool:
    from flask import request

    return request.args.get(name, "").lower() in ("true", "1", "yes")
