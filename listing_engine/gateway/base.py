"""Base class for backend gateways."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import OpportunityKind


class RemoteGateway(ABC):
    """Abstract async interface to the hosted backend.

    Implementations raise `GatewayError` (or `GatewayTimeoutError`) for any
    failed request; they never return partial data.
    """

    name: str

    @abstractmethod
    async def fetch_active(self, kind: OpportunityKind) -> List[Dict[str, Any]]:
        """Return raw active records of `kind`, newest first, with the company embedded."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_favorite_relations(self, user_id: str, kind: OpportunityKind) -> List[str]:
        """Return the ids of `kind` records saved by `user_id`."""
        raise NotImplementedError

    @abstractmethod
    async def insert_favorite_relation(self, user_id: str, opportunity_id: str, kind: OpportunityKind) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete_favorite_relation(self, user_id: str, opportunity_id: str, kind: OpportunityKind) -> None:
        raise NotImplementedError

    @abstractmethod
    async def exists_favorite_relation(self, user_id: str, opportunity_id: str, kind: OpportunityKind) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def resolve_profile_id(self, auth_id: str) -> Optional[str]:
        """Map an auth user id to the profile id favorites are keyed by."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources. No-op by default."""

    async def __aenter__(self) -> "RemoteGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
