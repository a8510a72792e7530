"""Client-side filtering and sorting of an aggregated listing.

`filter_and_sort` is a pure function: it re-evaluates the full collection on
every call, keeps no state between calls and never mutates its input. All
string comparisons are case-insensitive.

Bucketed filters (salary, duration, posted date, remote mode, industry) are
total over their enums: a value that names no bucket excludes every record
instead of being silently ignored.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from .models import FilterState, Opportunity, OpportunityKind, StructuredLocation
from .normalize import format_location, parse_compensation_amount
from .utils import contains_ci, equals_ci, fold, uniq_preserve_order

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


class SalaryBucket(str, Enum):
    UNDER_20K = "<20k"
    FROM_20K = "20k-40k"
    FROM_40K = "40k-60k"
    OVER_60K = "60k+"


# Half-open [low, high); None means unbounded.
SALARY_BOUNDS: Dict[SalaryBucket, Tuple[int, Optional[int]]] = {
    SalaryBucket.UNDER_20K: (0, 20000),
    SalaryBucket.FROM_20K: (20000, 40000),
    SalaryBucket.FROM_40K: (40000, 60000),
    SalaryBucket.OVER_60K: (60000, None),
}


class DurationBucket(str, Enum):
    SHORT = "<3"
    MEDIUM = "3-6"
    LONG = "6+"


class PostedWithin(str, Enum):
    DAY = "Last 24 hours"
    THREE_DAYS = "Last 3 days"
    WEEK = "Last 7 days"
    MONTH = "Last 30 days"


POSTED_WINDOW_DAYS: Dict[PostedWithin, int] = {
    PostedWithin.DAY: 1,
    PostedWithin.THREE_DAYS: 3,
    PostedWithin.WEEK: 7,
    PostedWithin.MONTH: 30,
}


class RemoteMode(str, Enum):
    REMOTE = "remote"
    HYBRID = "hybrid"
    ONSITE = "onsite"


class SortMode(str, Enum):
    NEWEST = "newest"
    SALARY = "salary"
    RELEVANCE = "relevance"


INDUSTRY_KEYWORDS: Dict[str, List[str]] = {
    "it": ["software", "technology", "it", "tech"],
    "finance": ["finance", "banking", "accounting"],
    "healthcare": ["health", "medical", "care"],
    "education": ["education", "teaching", "school"],
    "marketing": ["marketing", "advertising", "brand"],
}
OTHER_INDUSTRY = "other"

_ALIASES: Dict[str, str] = {"on-site": "onsite", "on site": "onsite"}


def _compile_keyword(keyword: str) -> "re.Pattern[str]":
    escaped = re.escape(keyword)
    if keyword.isalnum() and len(keyword) <= 3:
        return re.compile(rf"\b{escaped}\b", re.IGNORECASE)
    return re.compile(escaped, re.IGNORECASE)


_INDUSTRY_PATTERNS: Dict[str, List["re.Pattern[str]"]] = {
    industry: [_compile_keyword(kw) for kw in keywords] for industry, keywords in INDUSTRY_KEYWORDS.items()
}


def _lookup(enum_cls: Type[E], value: str) -> Optional[E]:
    """Resolve a selected value to a bucket, or None when it names no bucket."""
    key = fold(value)
    key = _ALIASES.get(key, key)
    for member in enum_cls:
        if fold(member.value) == key:
            return member
    return None


def salary_amount(opp: Opportunity) -> Optional[int]:
    return parse_compensation_amount(opp.compensation)


def location_text(opp: Opportunity) -> str:
    return format_location(opp.location)


def _match_type(opp: Opportunity, value: str, now: datetime) -> bool:
    kind_labels = (opp.kind.value, f"{opp.kind.value}s")
    return equals_ci(opp.category, value) or any(equals_ci(label, value) for label in kind_labels)


def _match_location(opp: Opportunity, value: str, now: datetime) -> bool:
    if isinstance(opp.location, StructuredLocation):
        return equals_ci(opp.location.city, value)
    return equals_ci(opp.location, value)


def _match_company(opp: Opportunity, value: str, now: datetime) -> bool:
    return equals_ci(opp.company, value)


def _match_skill(opp: Opportunity, value: str, now: datetime) -> bool:
    return any(equals_ci(req, value) for req in opp.requirements)


def _match_experience(opp: Opportunity, value: str, now: datetime) -> bool:
    return contains_ci(opp.experience_level, value)


def _match_salary(opp: Opportunity, value: str, now: datetime) -> bool:
    bucket = _lookup(SalaryBucket, value)
    amount = salary_amount(opp)
    if bucket is None or amount is None:
        return False
    low, high = SALARY_BOUNDS[bucket]
    return amount >= low and (high is None or amount < high)


def _match_remote(opp: Opportunity, value: str, now: datetime) -> bool:
    mode = _lookup(RemoteMode, value)
    if mode is None:
        return contains_ci(opp.category, value)
    where = f"{opp.category} {location_text(opp)}"
    if mode is RemoteMode.ONSITE:
        return not (contains_ci(where, "remote") or contains_ci(where, "hybrid"))
    return contains_ci(where, mode.value)


def _match_duration(opp: Opportunity, value: str, now: datetime) -> bool:
    bucket = _lookup(DurationBucket, value)
    if bucket is None:
        return False
    months = opp.duration_months
    if months is None:
        # Only internships are expected to carry a duration.
        return opp.kind is OpportunityKind.JOB
    if bucket is DurationBucket.SHORT:
        return months < 3
    if bucket is DurationBucket.MEDIUM:
        return 3 <= months <= 6
    return months > 6


def _match_posted(opp: Opportunity, value: str, now: datetime) -> bool:
    window = _lookup(PostedWithin, value)
    if window is None or opp.posted_at is None:
        return False
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    days_ago = math.floor((now - opp.posted_at).total_seconds() / 86400)
    return days_ago <= POSTED_WINDOW_DAYS[window]


def _industries_of(opp: Opportunity) -> List[str]:
    text = f"{opp.description}\n{opp.company}"
    return [industry for industry, patterns in _INDUSTRY_PATTERNS.items() if any(p.search(text) for p in patterns)]


def _match_industry(opp: Opportunity, value: str, now: datetime) -> bool:
    key = fold(value)
    if key == OTHER_INDUSTRY:
        return not _industries_of(opp)
    if key not in INDUSTRY_KEYWORDS:
        return False
    return key in _industries_of(opp)


def matches_search(opp: Opportunity, term: str) -> bool:
    """Free-text match against title, company and description."""
    return any(contains_ci(field, term) for field in (opp.title, opp.company, opp.description))


def matches_location_term(opp: Opportunity, term: str) -> bool:
    if isinstance(opp.location, StructuredLocation):
        return any(contains_ci(part, term) for part in opp.location.parts())
    return contains_ci(opp.location, term)


def _match_search(opp: Opportunity, value: str, now: datetime) -> bool:
    return matches_search(opp, value)


Matcher = Callable[[Opportunity, str, datetime], bool]

MATCHERS: Dict[str, Matcher] = {
    "type": _match_type,
    "location": _match_location,
    "company": _match_company,
    "skill": _match_skill,
    "experience": _match_experience,
    "salary": _match_salary,
    "remote": _match_remote,
    "duration": _match_duration,
    "posted": _match_posted,
    "industry": _match_industry,
    "search": _match_search,
}


def _coerce_filters(filters: Union[FilterState, Mapping[str, str], None]) -> FilterState:
    if filters is None:
        return FilterState()
    if isinstance(filters, FilterState):
        return filters
    return FilterState.model_validate(dict(filters))


def matches(
    opp: Opportunity,
    filters: Union[FilterState, Mapping[str, str], None] = None,
    search_term: str = "",
    location_term: str = "",
    now: Optional[datetime] = None,
) -> bool:
    """True when `opp` satisfies every active constraint (AND-combined)."""
    state = _coerce_filters(filters)
    return _passes(opp, state.active(), search_term.strip(), location_term.strip(), now or datetime.now(timezone.utc))


def _passes(opp: Opportunity, active: Dict[str, str], search_term: str, location_term: str, now: datetime) -> bool:
    if search_term and not matches_search(opp, search_term):
        return False
    if location_term and not matches_location_term(opp, location_term):
        return False
    return all(MATCHERS[key](opp, value, now) for key, value in active.items())


def sort_opportunities(items: List[Opportunity], mode: str) -> List[Opportunity]:
    """Return `items` ordered by `mode`; unknown or empty modes keep input order."""
    sort_mode = _lookup(SortMode, mode) if mode else None
    if sort_mode is SortMode.NEWEST:
        dated = [o for o in items if o.posted_at is not None]
        undated = [o for o in items if o.posted_at is None]
        return sorted(dated, key=lambda o: o.posted_at, reverse=True) + undated
    if sort_mode is SortMode.SALARY:
        return sorted(items, key=lambda o: salary_amount(o) or 0, reverse=True)
    if mode and sort_mode is None:
        logger.debug("Unknown sort mode %r; keeping input order", mode)
    return list(items)


def filter_and_sort(
    items: Iterable[Opportunity],
    filters: Union[FilterState, Mapping[str, str], None] = None,
    search_term: str = "",
    location_term: str = "",
    now: Optional[datetime] = None,
) -> List[Opportunity]:
    """Return the visible subset of `items` in the order selected by `filters.sort`.

    Args:
        items: Aggregated opportunities, usually newest first.
        filters: A `FilterState` or a dict using its field names or aliases.
        search_term: Free text matched against title, company and description.
        location_term: Free text matched against the location.
        now: Reference time for posted-date windows; defaults to the current time.
    """
    state = _coerce_filters(filters)
    if state.is_empty() and not search_term.strip() and not location_term.strip():
        return list(items)
    now = now or datetime.now(timezone.utc)
    active = state.active()
    kept = [o for o in items if _passes(o, active, search_term.strip(), location_term.strip(), now)]
    return sort_opportunities(kept, state.sort.strip())


def filter_options(items: Iterable[Opportunity]) -> Dict[str, List[str]]:
    """Distinct values present in `items`, for populating filter pickers."""
    items = list(items)
    return {
        "type": uniq_preserve_order(o.category for o in items),
        "company": uniq_preserve_order(o.company for o in items),
        "experience": uniq_preserve_order(o.experience_level for o in items),
        "location": uniq_preserve_order(
            o.location.city if isinstance(o.location, StructuredLocation) else o.location for o in items
        ),
    }
