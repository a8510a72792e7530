"""Listing engine package.

The package is structured so that presentation code only ever talks to three
small surfaces:
- `aggregator.py` merges active jobs and internships into one `Opportunity` list.
- `filters.py` narrows and orders that list from a `FilterState`.
- `favorites.py` keeps the current user's saved items with optimistic updates.

Everything persistent lives behind `gateway/`, so the core can be exercised
without a backend.
"""

from .aggregator import ListingAggregator
from .favorites import FavoritesStore
from .filters import filter_and_sort, filter_options
from .models import FilterState, Opportunity, OpportunityKind

__all__ = [
    "FavoritesStore",
    "FilterState",
    "ListingAggregator",
    "Opportunity",
    "OpportunityKind",
    "filter_and_sort",
    "filter_options",
]
