"""Supabase gateway.

Talks to a Supabase project through its PostgREST endpoint
(`{project_url}/rest/v1`). Docs: https://postgrest.org/en/stable/references/api.html

Listings are read from `jobs` and `internships` with the owning company
embedded; favorites live in one relation table per kind.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, NamedTuple, Optional

import httpx

from ..errors import GatewayError, GatewayTimeoutError
from ..models import OpportunityKind
from .base import RemoteGateway

logger = logging.getLogger(__name__)


class _KindTables(NamedTuple):
    listings: str
    favorites: str
    id_column: str


TABLES: Dict[OpportunityKind, _KindTables] = {
    OpportunityKind.JOB: _KindTables("jobs", "job_favorites", "job_id"),
    OpportunityKind.INTERNSHIP: _KindTables("internships", "internship_favorites", "internship_id"),
}

LISTING_SELECT = "*,company:companies(name,logo_url)"


class SupabaseGateway(RemoteGateway):
    """`RemoteGateway` over the Supabase REST API."""

    name = "supabase"

    def __init__(
        self,
        project_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout_s: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Accept": "application/json",
        }
        self._client = httpx.AsyncClient(
            base_url=f"{project_url.rstrip('/')}/rest/v1",
            headers=headers,
            timeout=timeout_s,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, f"/{table}", params=params, json=json, headers=headers)
            resp.raise_for_status()
        except httpx.TimeoutException as exc:
            raise GatewayTimeoutError(f"{method} {table} timed out") from exc
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:200]
            raise GatewayError(f"{method} {table} failed with {exc.response.status_code}: {detail}") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {table} failed: {exc}") from exc
        return resp

    async def _rows(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        resp = await self._request("GET", table, params=params)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise GatewayError(f"GET {table} returned invalid JSON") from exc
        if not isinstance(payload, list):
            raise GatewayError(f"GET {table} returned {type(payload).__name__}, expected a list")
        return payload

    @staticmethod
    def _relation_filter(user_id: str, opportunity_id: str, tables: _KindTables) -> Dict[str, str]:
        return {tables.id_column: f"eq.{opportunity_id}", "user_id": f"eq.{user_id}"}

    async def fetch_active(self, kind: OpportunityKind) -> List[Dict[str, Any]]:
        tables = TABLES[kind]
        rows = await self._rows(
            tables.listings,
            {"select": LISTING_SELECT, "status": "eq.active", "order": "created_at.desc"},
        )
        logger.debug("Fetched %d active %s rows", len(rows), tables.listings)
        return rows

    async def fetch_favorite_relations(self, user_id: str, kind: OpportunityKind) -> List[str]:
        tables = TABLES[kind]
        rows = await self._rows(
            tables.favorites,
            {"select": tables.id_column, "user_id": f"eq.{user_id}"},
        )
        return [str(r[tables.id_column]) for r in rows if r.get(tables.id_column) is not None]

    async def insert_favorite_relation(self, user_id: str, opportunity_id: str, kind: OpportunityKind) -> None:
        tables = TABLES[kind]
        await self._request(
            "POST",
            tables.favorites,
            json={tables.id_column: opportunity_id, "user_id": user_id},
            headers={"Prefer": "return=minimal"},
        )

    async def delete_favorite_relation(self, user_id: str, opportunity_id: str, kind: OpportunityKind) -> None:
        tables = TABLES[kind]
        await self._request("DELETE", tables.favorites, params=self._relation_filter(user_id, opportunity_id, tables))

    async def exists_favorite_relation(self, user_id: str, opportunity_id: str, kind: OpportunityKind) -> bool:
        tables = TABLES[kind]
        params = self._relation_filter(user_id, opportunity_id, tables)
        params.update({"select": "id", "limit": "1"})
        return bool(await self._rows(tables.favorites, params))

    async def resolve_profile_id(self, auth_id: str) -> Optional[str]:
        rows = await self._rows("profiles", {"select": "id", "auth_id": f"eq.{auth_id}", "limit": "1"})
        if not rows:
            return None
        return str(rows[0]["id"])

    async def aclose(self) -> None:
        await self._client.aclose()
