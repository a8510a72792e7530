"""Favorites store.

Keeps the current user's saved jobs and internships in memory, mirrored from
the backend. Toggles are applied locally before the backend round trip and
rolled back if the backend rejects them.

Each toggle is tracked by a `ToggleOperation` moving through
Idle -> Optimistic -> Committed | RolledBack. Toggles on the same item are
serialized by a per-item lock, so a second rapid toggle starts from the first
one's final state instead of racing it. Toggles on different items run
concurrently.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, TypeVar

from .errors import (
    AuthenticationRequiredError,
    FavoriteMutationError,
    FavoriteTimeoutError,
    GatewayError,
    GatewayTimeoutError,
)
from .gateway.base import RemoteGateway
from .models import FavoriteRelation, Opportunity, OpportunityKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ToggleState(str, Enum):
    IDLE = "idle"
    OPTIMISTIC = "optimistic"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


_TRANSITIONS: Dict[ToggleState, Tuple[ToggleState, ...]] = {
    ToggleState.IDLE: (ToggleState.OPTIMISTIC,),
    ToggleState.OPTIMISTIC: (ToggleState.COMMITTED, ToggleState.ROLLED_BACK),
    ToggleState.COMMITTED: (),
    ToggleState.ROLLED_BACK: (),
}


@dataclass
class ToggleOperation:
    """One save/unsave attempt for a single item."""

    kind: OpportunityKind
    opportunity_id: str
    was_saved: bool
    state: ToggleState = ToggleState.IDLE
    error: Optional[BaseException] = None

    @property
    def target(self) -> bool:
        return not self.was_saved

    @property
    def saved(self) -> bool:
        """Saved state as seen by the client at this point of the operation."""
        if self.state in (ToggleState.OPTIMISTIC, ToggleState.COMMITTED):
            return self.target
        return self.was_saved

    def _advance(self, new_state: ToggleState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal toggle transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def begin(self) -> None:
        self._advance(ToggleState.OPTIMISTIC)

    def commit(self) -> None:
        self._advance(ToggleState.COMMITTED)

    def roll_back(self, error: BaseException) -> None:
        self._advance(ToggleState.ROLLED_BACK)
        self.error = error


class FavoritesStore:
    """In-memory authority on what the current user has saved.

    The backend stays the durable source of truth; this store may run ahead of
    it while a toggle is in flight. Presentation code should treat the sets as
    read-only and change them only through `toggle`.
    """

    def __init__(self, gateway: RemoteGateway, user_id: Optional[str] = None, timeout_s: float = 10.0) -> None:
        self._gateway = gateway
        self._user_id = user_id or None
        self._timeout = timeout_s
        self._saved: Dict[OpportunityKind, Set[str]] = {kind: set() for kind in OpportunityKind}
        self._locks: Dict[Tuple[OpportunityKind, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[OpportunityKind, str], int] = {}

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._timeout)

    async def load(self) -> None:
        """Replace local state with the backend's relations for the current user.

        With no user both sets are cleared without touching the backend. On
        failure the previous state is kept and the gateway error propagates.
        """
        user_id = self._user_id
        if not user_id:
            for ids in self._saved.values():
                ids.clear()
            return

        kinds = list(OpportunityKind)
        tasks = [asyncio.ensure_future(self._call(self._gateway.fetch_favorite_relations(user_id, kind))) for kind in kinds]
        try:
            results = await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
        if user_id != self._user_id:
            logger.debug("User changed while loading favorites; discarding stale result")
            return
        for kind, ids in zip(kinds, results):
            self._saved[kind] = set(ids)
        logger.info(
            "Loaded %d saved jobs and %d saved internships",
            len(self._saved[OpportunityKind.JOB]),
            len(self._saved[OpportunityKind.INTERNSHIP]),
        )

    async def set_user(self, user_id: Optional[str]) -> None:
        """Switch identity and reload; `None` signs out and clears state."""
        self._user_id = user_id or None
        await self.load()

    def is_saved(self, kind: OpportunityKind, opportunity_id: str) -> bool:
        return opportunity_id in self._saved[kind]

    def saved_ids(self, kind: OpportunityKind) -> FrozenSet[str]:
        return frozenset(self._saved[kind])

    def relations(self) -> List[FavoriteRelation]:
        """Snapshot of the current user's saved items as relation records."""
        if not self._user_id:
            return []
        return [
            FavoriteRelation(user_id=self._user_id, opportunity_id=opp_id, kind=kind)
            for kind, ids in self._saved.items()
            for opp_id in sorted(ids)
        ]

    def saved_opportunities(self, items: Iterable[Opportunity]) -> List[Opportunity]:
        """The saved subset of `items`, in their original order."""
        return [o for o in items if self.is_saved(o.kind, o.id)]

    def _apply(self, kind: OpportunityKind, opportunity_id: str, saved: bool) -> None:
        if saved:
            self._saved[kind].add(opportunity_id)
        else:
            self._saved[kind].discard(opportunity_id)

    async def toggle(self, kind: OpportunityKind, opportunity_id: str) -> bool:
        """Flip the saved state of one item and return the new state.

        Raises:
            AuthenticationRequiredError: no user is set; nothing is changed.
            FavoriteTimeoutError: the backend call timed out; state rolled back.
            FavoriteMutationError: the backend rejected the change; state rolled back.
        """
        user_id = self._user_id
        if not user_id:
            raise AuthenticationRequiredError("Sign in to save listings")

        key = (kind, opportunity_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                return await self._toggle_locked(user_id, kind, opportunity_id)
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def _toggle_locked(self, user_id: str, kind: OpportunityKind, opportunity_id: str) -> bool:
        op = ToggleOperation(kind=kind, opportunity_id=opportunity_id, was_saved=self.is_saved(kind, opportunity_id))
        op.begin()
        self._apply(kind, opportunity_id, op.target)

        try:
            if op.was_saved:
                await self._call(self._gateway.delete_favorite_relation(user_id, opportunity_id, kind))
            elif await self._call(self._gateway.exists_favorite_relation(user_id, opportunity_id, kind)):
                logger.debug("%s %s already saved remotely", kind.value, opportunity_id)
            else:
                await self._call(self._gateway.insert_favorite_relation(user_id, opportunity_id, kind))
        except asyncio.CancelledError as exc:
            self._roll_back(op, user_id, exc)
            raise
        except Exception as exc:
            self._roll_back(op, user_id, exc)
            if isinstance(exc, (asyncio.TimeoutError, GatewayTimeoutError)):
                raise FavoriteTimeoutError("Timed out updating favorites", saved=op.saved, operation=op) from exc
            if isinstance(exc, GatewayError):
                raise FavoriteMutationError("Failed to update favorites", saved=op.saved, operation=op) from exc
            raise

        op.commit()
        return op.saved

    def _roll_back(self, op: ToggleOperation, user_id: str, error: BaseException) -> None:
        op.roll_back(error)
        if self._user_id == user_id:
            self._apply(op.kind, op.opportunity_id, op.was_saved)
        logger.warning("Rolled back favorite toggle for %s %s: %s", op.kind.value, op.opportunity_id, error)
