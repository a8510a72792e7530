"""CLI entry point.

This script fetches active jobs and internships, applies the same filters the
web front end offers, and writes a JSON list to disk.

Examples:
    python run_fetch.py --out listings.json
    python run_fetch.py --out listings.json --search react --location pune --sort newest
    python run_fetch.py --filter salaryRange=20k-40k --filter type=Internship
    python run_fetch.py --auth-id <auth uuid> --saved-only

Backend credentials come from SUPABASE_URL / SUPABASE_ANON_KEY (a `.env` file
is read if present). The output is a list of dicts (serialized Pydantic models).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from listing_engine.aggregator import ListingAggregator
from listing_engine.config import Settings
from listing_engine.errors import ListingEngineError
from listing_engine.favorites import FavoritesStore
from listing_engine.filters import filter_and_sort
from listing_engine.gateway.supabase import SupabaseGateway
from listing_engine.models import FilterState

logger = logging.getLogger("run_fetch")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Fetch, filter and sort job and internship listings.")
    p.add_argument("--out", type=str, default="listings.json", help="Output JSON file path.")
    p.add_argument("--search", type=str, default="", help="Free text matched against title, company, description.")
    p.add_argument("--location", type=str, default="", help="Free text matched against the location.")
    p.add_argument(
        "--filter",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Filter constraint, e.g. salaryRange=60k+ or type=Internship. Repeatable.",
    )
    p.add_argument("--sort", type=str, default="", help="newest, salary or relevance.")
    p.add_argument("--user-id", type=str, default=None, help="Profile id whose favorites to load.")
    p.add_argument("--auth-id", type=str, default=None, help="Auth user id, resolved to a profile id.")
    p.add_argument("--saved-only", action="store_true", help="Keep only listings saved by the user.")
    p.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds.")
    p.add_argument("--log-level", type=str, default=None, help="Logging level (default from LISTING_LOG_LEVEL).")
    return p.parse_args(argv)


def parse_filters(pairs: List[str], sort: str = "") -> FilterState:
    """Turn repeated KEY=VALUE arguments into a `FilterState`."""
    values: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        values[key.strip()] = value.strip()
    if sort:
        values["sort"] = sort
    return FilterState.model_validate(values)


async def run(args: argparse.Namespace, settings: Settings) -> List[dict]:
    timeout = args.timeout or settings.gateway_timeout_s
    filters = parse_filters(args.filter, args.sort)

    async with SupabaseGateway(
        settings.supabase_url,
        settings.supabase_anon_key,
        access_token=settings.supabase_access_token,
        timeout_s=timeout,
    ) as gateway:
        listings = await ListingAggregator(gateway, timeout_s=timeout).aggregate()
        visible = filter_and_sort(listings, filters, args.search, args.location)

        user_id = args.user_id
        if args.auth_id and not user_id:
            user_id = await gateway.resolve_profile_id(args.auth_id)
            if user_id is None:
                logger.warning("No profile found for auth id %s", args.auth_id)

        if args.saved_only:
            store = FavoritesStore(gateway, user_id=user_id, timeout_s=timeout)
            await store.load()
            visible = store.saved_opportunities(visible)

    logger.info("%d of %d listings match", len(visible), len(listings))
    return [o.model_dump(mode="json", exclude={"raw"}) for o in visible]


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = Settings.from_env()
    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings.require_backend()
        data = asyncio.run(run(args, settings))
    except (ListingEngineError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    out_path = Path(args.out).expanduser().resolve()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    print(f"Wrote {len(data)} listings to: {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
