"""Listing aggregation.

Fetches active jobs and internships concurrently, maps each raw row onto the
normalized `Opportunity` schema and returns one list ordered newest first.
Either fetch failing fails the whole aggregation: callers never see a list
holding only one kind.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .errors import AggregationError, AggregationTimeoutError, GatewayTimeoutError
from .gateway.base import RemoteGateway
from .models import Opportunity, OpportunityKind
from .normalize import (
    format_compensation,
    normalize_location,
    normalize_requirements,
    parse_duration_months,
    parse_posted_at,
    resolve_company,
)

logger = logging.getLogger(__name__)

_CATEGORY_FIELDS: Dict[OpportunityKind, Tuple[str, ...]] = {
    OpportunityKind.JOB: ("job_type",),
    OpportunityKind.INTERNSHIP: ("internship_type", "type"),
}

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def to_opportunity(raw: Dict[str, Any], kind: OpportunityKind) -> Optional[Opportunity]:
    """Map one raw backend row to an `Opportunity`.

    Returns None for rows that cannot be displayed (no id, or not active).
    """
    if raw.get("id") is None:
        logger.warning("Dropping %s row without an id", kind.value)
        return None
    status = raw.get("status") or "active"
    if status != "active":
        logger.debug("Dropping %s %s with status %r", kind.value, raw["id"], status)
        return None

    company, logo = resolve_company(raw.get("company", raw.get("companies")))
    category = next((raw[f] for f in _CATEGORY_FIELDS[kind] if isinstance(raw.get(f), str) and raw[f]), "")

    return Opportunity(
        id=str(raw["id"]),
        kind=kind,
        title=_text(raw.get("title")),
        description=_text(raw.get("description")),
        company=company,
        company_logo_url=logo,
        location=normalize_location(raw.get("location")),
        category=category.strip(),
        compensation=format_compensation(
            amount=raw.get("amount"),
            min_amount=raw.get("min_amount"),
            max_amount=raw.get("max_amount"),
            pay_rate=raw.get("pay_rate"),
        ),
        posted_at=parse_posted_at(raw.get("created_at")),
        requirements=normalize_requirements(raw.get("requirements")),
        experience_level=_text(raw.get("experience_level")),
        status="active",
        duration_months=parse_duration_months(raw.get("duration")),
        raw=raw,
    )


def sort_newest_first(items: List[Opportunity]) -> List[Opportunity]:
    """Stable sort by posting date, newest first; undated records go last."""
    return sorted(items, key=lambda o: o.posted_at or _OLDEST, reverse=True)


class ListingAggregator:
    """Merge active jobs and internships into one normalized list."""

    def __init__(self, gateway: RemoteGateway, timeout_s: float = 10.0) -> None:
        self._gateway = gateway
        self._timeout = timeout_s

    async def _fetch(self, kind: OpportunityKind) -> List[Opportunity]:
        rows = await asyncio.wait_for(self._gateway.fetch_active(kind), timeout=self._timeout)
        out: List[Opportunity] = []
        for row in rows:
            opp = to_opportunity(row, kind)
            if opp is not None:
                out.append(opp)
        return out

    async def aggregate(self) -> List[Opportunity]:
        """Fetch both kinds and return them newest first.

        Raises:
            AggregationTimeoutError: a fetch exceeded the timeout.
            AggregationError: a fetch failed for any other reason.
        """
        tasks = [asyncio.ensure_future(self._fetch(kind)) for kind in (OpportunityKind.JOB, OpportunityKind.INTERNSHIP)]
        try:
            jobs, internships = await asyncio.gather(*tasks)
        except (asyncio.TimeoutError, GatewayTimeoutError) as exc:
            raise AggregationTimeoutError("Timed out fetching listings") from exc
        except Exception as exc:
            raise AggregationError(f"Failed to fetch listings: {exc}") from exc
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        logger.info("Aggregated %d jobs and %d internships", len(jobs), len(internships))
        # Jobs precede internships so equal timestamps keep fetch order.
        return sort_newest_first(jobs + internships)
