"""Per-request PostgREST access for the menu API: tokens, clients and error mapping."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable, Dict, NoReturn, Optional, TypeVar

from fastapi import HTTPException
from httpx import HTTPError as HttpxError
from postgrest import APIError as PostgrestAPIError
from postgrest import SyncPostgrestClient

from app.config.supabase_client import SUPABASE_ANON_KEY, SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)
T = TypeVar("T")

POSTGREST_TIMEOUT_SECONDS = float(os.getenv("POSTGREST_TIMEOUT_SECONDS", "10"))
UNREACHABLE_DETAIL = "Supabase is temporarily unreachable."

# Statuses passed through to the caller; anything else becomes a 502.
FORWARDED_STATUS_DETAILS: Dict[int, str] = {
    401: "Please sign in again.",
    403: "You don't have access to this menu data.",
    404: "Menu data not found.",
    409: "This change conflicts with existing menu data.",
}


def extract_bearer_token(header_value: Optional[str]) -> str:
    scheme, _, token = (header_value or "").strip().partition(" ")
    if not scheme:
        raise HTTPException(status_code=401, detail="Authentication required.")
    if scheme.lower() != "bearer" or not token.strip() or " " in token.strip():
        raise HTTPException(status_code=401, detail="Invalid bearer token.")
    return token.strip()


def public_access_token() -> str:
    """Token used for anonymous reads (menu browsing, page-view logging)."""

    token = SUPABASE_ANON_KEY or SUPABASE_SERVICE_ROLE_KEY
    if not token:
        raise HTTPException(status_code=503, detail="Menu is temporarily unavailable.")
    return token


def create_postgrest_client(access_token: str, *, prefer: Optional[str] = None) -> SyncPostgrestClient:
    """Client acting with the row-level permissions of ``access_token``."""

    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise HTTPException(status_code=500, detail="Supabase is not configured.")
    headers = {"apikey": SUPABASE_ANON_KEY, "Accept": "application/json"}
    if prefer:
        headers["Prefer"] = prefer
    client = SyncPostgrestClient(
        f"{SUPABASE_URL.rstrip('/')}/rest/v1",
        headers=headers,
        timeout=POSTGREST_TIMEOUT_SECONDS,
    )
    client.auth(access_token)
    return client


async def run_postgrest(request: Callable[[], T], *, context: str) -> T:
    """Run a blocking PostgREST ``request`` off the event loop, mapping its failures to HTTP errors."""

    try:
        return await asyncio.to_thread(request)
    except PostgrestAPIError as exc:
        raise_postgrest_error(exc, context=context)
    except HttpxError as exc:
        logger.error("Supabase unreachable during %s: %s", context, exc)
        raise HTTPException(status_code=503, detail=UNREACHABLE_DETAIL) from exc


def raise_postgrest_error(exc: PostgrestAPIError, *, context: str) -> NoReturn:
    status_code = postgrest_status(exc)
    logger.error("%s rejected by PostgREST (%s, code=%s): %s", context, status_code, exc.code, exc.message)
    detail = FORWARDED_STATUS_DETAILS.get(status_code)
    if detail is None:
        raise HTTPException(status_code=502, detail="The menu database rejected the request.") from exc
    raise HTTPException(status_code=status_code, detail=detail) from exc


def postgrest_status(exc: PostgrestAPIError) -> int:
    """HTTP status carried by ``exc``; 502 for PostgREST/SQLSTATE codes such as ``PGRST116`` or ``23505``.

    Unique violations (``23505``) are the one SQLSTATE surfaced as a 409.
    """

    code = str(exc.code or "")
    if code == "23505":
        return 409
    if code.isdigit() and 400 <= int(code) < 600:
        return int(code)
    return 502


__all__ = [
    "FORWARDED_STATUS_DETAILS",
    "create_postgrest_client",
    "extract_bearer_token",
    "postgrest_status",
    "public_access_token",
    "raise_postgrest_error",
    "run_postgrest",
]
