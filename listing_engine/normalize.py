"""Normalization helpers.

This module contains the deterministic parsing applied once at ingestion:
- requirements coercion (list, JSON text or comma separated text)
- company relation resolution
- compensation display strings and the number parsed back out of them
- location, posting date and internship duration coercion

None of these raise on malformed input. Each degrades to a documented default
so a bad field never hides a whole listing.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple, Union

from .models import StructuredLocation

logger = logging.getLogger(__name__)

UNKNOWN_COMPANY = "Unknown Company"
SALARY_NOT_SPECIFIED = "Salary not specified"
CURRENCY_SYMBOL = "₹"

_SPLIT_RE = re.compile(r"[,\n]")
_DIGITS_RE = re.compile(r"\d+")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


def normalize_requirements(value: Any) -> List[str]:
    """Coerce a requirements field into an ordered list of skill strings.

    Accepts a list, a JSON-encoded list, or comma/newline separated text.
    Anything else, or JSON-looking text that fails to parse, yields `[]`.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
    if not isinstance(value, str):
        logger.debug("Ignoring requirements of type %s", type(value).__name__)
        return []

    text = value.strip()
    if not text:
        return []
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            logger.debug("Unparseable requirements JSON: %r", text[:80])
            return []
        return normalize_requirements(parsed) if isinstance(parsed, list) else []
    return [part.strip() for part in _SPLIT_RE.split(text) if part.strip()]


def resolve_company(relation: Any) -> Tuple[str, str]:
    """Return `(name, logo_url)` from an embedded company relation.

    PostgREST embeds a to-one relation as an object, but older views return a
    one-element list; both are accepted.
    """
    if isinstance(relation, list):
        relation = relation[0] if relation else None
    if not isinstance(relation, dict):
        return UNKNOWN_COMPANY, ""
    name = (relation.get("name") or "").strip() or UNKNOWN_COMPANY
    logo = (relation.get("logo_url") or "").strip()
    return name, logo


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0
    return 0


def format_amount(value: float) -> str:
    """Render an amount with the currency symbol and thousands separators."""
    if float(value).is_integer():
        return f"{CURRENCY_SYMBOL}{int(value):,}"
    return f"{CURRENCY_SYMBOL}{value:,.2f}"


def format_compensation(
    amount: Any = None,
    min_amount: Any = None,
    max_amount: Any = None,
    pay_rate: Any = None,
) -> str:
    """Build the compensation display string.

    A range wins when both ends are set and differ; otherwise the single
    amount is used. With no usable number the result is `SALARY_NOT_SPECIFIED`.
    """
    low, high, single = _as_number(min_amount), _as_number(max_amount), _as_number(amount)
    rate = pay_rate.strip() if isinstance(pay_rate, str) else ""
    suffix = f" / {rate}" if rate else ""

    if low and high and low != high:
        return f"{format_amount(low)} - {format_amount(high)}{suffix}"
    if single:
        return f"{format_amount(single)}{suffix}"
    return SALARY_NOT_SPECIFIED


def parse_compensation_amount(text: Optional[str]) -> Optional[int]:
    """Parse the first number out of a compensation display string.

    Thousands separators are stripped first so "₹15,000 / month" reads as
    15000. Returns `None` when the string carries no digits at all.
    """
    if not text:
        return None
    match = _DIGITS_RE.search(text.replace(",", ""))
    return int(match.group(0)) if match else None


def normalize_location(value: Any) -> Union[StructuredLocation, str]:
    if isinstance(value, dict):
        return StructuredLocation(
            city=str(value.get("city") or "").strip(),
            area=str(value.get("area") or "").strip(),
            pincode=str(value["pincode"]).strip() if value.get("pincode") else None,
            street_address=str(value["street_address"]).strip() if value.get("street_address") else None,
        )
    if isinstance(value, str):
        return value.strip()
    return ""


def format_location(location: Union[StructuredLocation, str]) -> str:
    """Render a location as display text ("City, Area, Pincode")."""
    if isinstance(location, StructuredLocation):
        return ", ".join(location.parts())
    return location or ""


def parse_posted_at(value: Any) -> Optional[datetime]:
    """Normalize ISO strings, datetimes and epoch timestamps to aware UTC datetimes."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        ts = float(value)
        # Epoch may be in milliseconds.
        if ts > 1e12:
            ts /= 1000.0
        try:
            parsed = datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Unparseable posting date: %r", text)
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_duration_months(value: Any) -> Optional[float]:
    """Read a duration in months from a number or text such as "3 months"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None
    if isinstance(value, str):
        match = _NUMBER_RE.search(value)
        if match:
            months = float(match.group(0))
            return months if months > 0 else None
    return None
