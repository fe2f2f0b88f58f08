"""Page-view logging and the admin analytics counters."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from httpx import HTTPError as HttpxError
from postgrest import APIError as PostgrestAPIError
from postgrest.types import CountMethod

from app.services.postgrest_client import (
    create_postgrest_client,
    postgrest_status,
    public_access_token,
    run_postgrest,
)

logger = logging.getLogger(__name__)

PAGE_VIEWS_TABLE = "page_views"
MAX_PATH_LENGTH = 512
MAX_USER_AGENT_LENGTH = 512


def start_of_day(now: datetime) -> datetime:
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def compute_today_share(total_views: int, today_views: int) -> float:
    if total_views <= 0:
        return 0.0
    return round(today_views / total_views * 100, 1)


async def record_page_view(page_path: str, user_agent: Optional[str]) -> bool:
    """Log one visit. Failures are logged and reported as ``False``, never raised to the visitor."""

    payload = {
        "page_path": (page_path or "/")[:MAX_PATH_LENGTH],
        "user_agent": (user_agent or "")[:MAX_USER_AGENT_LENGTH] or None,
    }
    token = public_access_token()

    def _request() -> None:
        with create_postgrest_client(token, prefer="return=minimal") as client:
            client.table(PAGE_VIEWS_TABLE).insert(payload).execute()

    try:
        await asyncio.to_thread(_request)
    except PostgrestAPIError as exc:
        logger.warning("Page view insert failed (%s): %s", postgrest_status(exc), exc.message)
        return False
    except HttpxError as exc:
        logger.warning("Page view insert unreachable: %s", exc)
        return False
    return True


async def build_analytics_summary(access_token: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Return all-time views, views since midnight UTC, and today's share of the total."""

    since = start_of_day(now or datetime.now(timezone.utc))

    def _count(client, *, since_iso: Optional[str] = None) -> int:
        query = client.table(PAGE_VIEWS_TABLE).select("id", count=CountMethod.exact)
        if since_iso:
            query = query.gte("viewed_at", since_iso)
        response = query.limit(1).execute()
        return response.count or 0

    def _request() -> Dict[str, int]:
        with create_postgrest_client(access_token) as client:
            return {
                "total_views": _count(client),
                "today_views": _count(client, since_iso=since.isoformat()),
            }

    counts = await run_postgrest(_request, context="analytics lookup")

    return {
        **counts,
        "today_share": compute_today_share(counts["total_views"], counts["today_views"]),
        "since": since.isoformat(),
    }


__all__ = ["build_analytics_summary", "compute_today_share", "record_page_view", "start_of_day"]
