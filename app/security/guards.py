"""Reusable security helpers: admin access, same-origin checks, per-IP rate limits."""

from __future__ import annotations

import os
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, DefaultDict, Optional

from fastapi import Header, HTTPException, Request

from app.services.auth_service import AuthenticationError, has_admin_role
from app.services.auth_utils import decode_access_token
from app.services.postgrest_client import extract_bearer_token


def _normalize_origin(value: str) -> str:
    return value.rstrip("/").lower()


TRUSTED_ORIGINS = tuple(
    _normalize_origin(entry)
    for entry in os.getenv("TRUSTED_ORIGINS", "").split(",")
    if entry.strip()
)

_RATE_LOCK = threading.Lock()
_RATE_BUCKETS: DefaultDict[str, Deque[float]] = defaultdict(deque)


@dataclass(frozen=True)
class AdminContext:
    user_id: str
    access_token: str


async def require_admin(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> AdminContext:
    """FastAPI dependency: a signed-in user holding the ``admin`` role."""

    token = extract_bearer_token(authorization)
    user_id = decode_access_token(token).get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid Supabase user.")
    try:
        is_admin = await has_admin_role(token, str(user_id))
    except AuthenticationError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not is_admin:
        raise HTTPException(status_code=403, detail="You don't have admin privileges.")
    return AdminContext(user_id=str(user_id), access_token=token)


def get_client_ip(request: Request) -> str:
    """Best effort extraction of the requester IP address."""

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        candidate = forwarded.split(",")[0].strip()
        if candidate:
            return candidate
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_same_origin(request: Request) -> None:
    """Block cross-site form posts unless the origin is explicitly trusted."""

    origin = request.headers.get("origin")
    if not origin:
        return
    normalized_origin = _normalize_origin(origin)
    if normalized_origin in TRUSTED_ORIGINS:
        return
    host = request.headers.get("host")
    if host and normalized_origin == _normalize_origin(f"{request.url.scheme or 'http'}://{host}"):
        return
    raise HTTPException(status_code=403, detail="Request origin not allowed.")


def rate_limit_request(
    request: Request,
    *,
    scope: str,
    limit: int,
    window_seconds: int,
) -> None:
    """Sliding-window limit per client IP and scope, kept in process memory."""

    identifier = f"{scope}:{get_client_ip(request)}"
    now = time.monotonic()
    with _RATE_LOCK:
        bucket = _RATE_BUCKETS[identifier]
        while bucket and now - bucket[0] > window_seconds:
            bucket.popleft()
        if len(bucket) >= limit:
            raise HTTPException(status_code=429, detail="Too many requests. Please try again later.")
        bucket.append(now)


def reset_rate_limits() -> None:
    with _RATE_LOCK:
        _RATE_BUCKETS.clear()


__all__ = [
    "AdminContext",
    "enforce_same_origin",
    "get_client_ip",
    "rate_limit_request",
    "require_admin",
    "reset_rate_limits",
]
