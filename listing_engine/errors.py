"""Exception hierarchy for the listing engine.

Parsing problems never show up here: malformed payload fields degrade to
defaults in `normalize.py`. Only backend, auth and configuration failures are
raised to callers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .favorites import ToggleOperation


class ListingEngineError(Exception):
    """Base class for every error raised by the package."""


class ConfigError(ListingEngineError):
    """Required settings are missing or invalid."""


class GatewayError(ListingEngineError):
    """The remote backend rejected a request or could not be reached."""


class GatewayTimeoutError(GatewayError):
    """A backend call did not finish within the configured timeout."""


class AggregationError(ListingEngineError):
    """Fetching the combined listing failed; no partial result is available."""


class AggregationTimeoutError(AggregationError):
    """One of the listing fetches timed out."""


class AuthenticationRequiredError(ListingEngineError):
    """A favorites mutation was attempted without a resolved user profile."""


class FavoriteMutationError(ListingEngineError):
    """The backend rejected a favorites change and local state was rolled back.

    Attributes:
        saved: The saved state after rollback (the pre-toggle value).
        operation: The rolled back toggle operation.
    """

    def __init__(self, message: str, saved: bool, operation: Optional["ToggleOperation"] = None) -> None:
        super().__init__(message)
        self.saved = saved
        self.operation = operation


class FavoriteTimeoutError(FavoriteMutationError):
    """A favorites mutation timed out and was rolled back."""
