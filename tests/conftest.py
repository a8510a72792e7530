"""
Shared fixtures for listing engine tests.

`FakeGateway` is an in-memory stand-in for the hosted backend. Individual
methods can be made to fail or stall so error paths are testable without a
network.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

import pytest

from listing_engine.errors import GatewayError
from listing_engine.gateway.base import RemoteGateway
from listing_engine.models import Opportunity, OpportunityKind

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class FakeGateway(RemoteGateway):
    name = "fake"

    def __init__(
        self,
        jobs: Optional[List[Dict[str, Any]]] = None,
        internships: Optional[List[Dict[str, Any]]] = None,
        relations: Optional[Set[Tuple[str, str, OpportunityKind]]] = None,
        profiles: Optional[Dict[str, str]] = None,
    ) -> None:
        self.rows = {OpportunityKind.JOB: jobs or [], OpportunityKind.INTERNSHIP: internships or []}
        self.relations = set(relations or ())
        self.profiles = profiles or {}
        self.failures: Dict[str, BaseException] = {}
        self.delays: Dict[str, float] = {}
        self.calls: List[Tuple[str, tuple]] = []

    async def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        if method in self.delays:
            await asyncio.sleep(self.delays[method])
        if method in self.failures:
            raise self.failures[method]

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    async def fetch_active(self, kind):
        await self._enter(f"fetch_active:{kind.value}", kind)
        return list(self.rows[kind])

    async def fetch_favorite_relations(self, user_id, kind):
        await self._enter("fetch_favorite_relations", user_id, kind)
        return [opp_id for uid, opp_id, k in self.relations if uid == user_id and k == kind]

    async def insert_favorite_relation(self, user_id, opportunity_id, kind):
        await self._enter("insert_favorite_relation", user_id, opportunity_id, kind)
        if (user_id, opportunity_id, kind) in self.relations:
            raise GatewayError("duplicate key value violates unique constraint")
        self.relations.add((user_id, opportunity_id, kind))

    async def delete_favorite_relation(self, user_id, opportunity_id, kind):
        await self._enter("delete_favorite_relation", user_id, opportunity_id, kind)
        self.relations.discard((user_id, opportunity_id, kind))

    async def exists_favorite_relation(self, user_id, opportunity_id, kind):
        await self._enter("exists_favorite_relation", user_id, opportunity_id, kind)
        return (user_id, opportunity_id, kind) in self.relations

    async def resolve_profile_id(self, auth_id):
        await self._enter("resolve_profile_id", auth_id)
        return self.profiles.get(auth_id)


@pytest.fixture
def gateway():
    return FakeGateway()


def make_opportunity(
    id: str,
    kind: OpportunityKind = OpportunityKind.JOB,
    days_ago: Optional[float] = 0,
    **fields: Any,
) -> Opportunity:
    """Build an Opportunity posted `days_ago` days before NOW."""
    posted_at = None if days_ago is None else NOW - timedelta(days=days_ago)
    defaults: Dict[str, Any] = {
        "title": f"Listing {id}",
        "company": "Acme",
        "category": "Full-time" if kind is OpportunityKind.JOB else "Summer",
    }
    defaults.update(fields)
    return Opportunity(id=id, kind=kind, posted_at=posted_at, **defaults)


def raw_job(id: str, created_at: str = "2024-06-10T09:00:00+00:00", **fields: Any) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "id": id,
        "title": f"Job {id}",
        "description": "Build things",
        "company": {"name": "Acme", "logo_url": "https://cdn.example.com/acme.png"},
        "location": {"city": "Pune", "area": "Kharadi", "pincode": "411014"},
        "job_type": "Full-time",
        "amount": 30000,
        "pay_rate": "per month",
        "created_at": created_at,
        "requirements": ["Python"],
        "experience_level": "1-3 years",
        "status": "active",
    }
    row.update(fields)
    return row


def raw_internship(id: str, created_at: str = "2024-06-11T09:00:00+00:00", **fields: Any) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "id": id,
        "title": f"Internship {id}",
        "description": "Learn things",
        "company": {"name": "Globex", "logo_url": ""},
        "location": "Remote",
        "internship_type": "Remote",
        "amount": 10000,
        "pay_rate": "per month",
        "created_at": created_at,
        "requirements": "React, Node",
        "duration": "3 months",
        "status": "active",
    }
    row.update(fields)
    return row
