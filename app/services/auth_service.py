"""Admin sign-in against Supabase auth and the admin role lookup."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List

import httpx
from postgrest import APIError as PostgrestAPIError

from app.config.supabase_client import SUPABASE_ANON_KEY, SUPABASE_URL
from app.services.postgrest_client import create_postgrest_client, raise_postgrest_error

logger = logging.getLogger(__name__)

USER_ROLES_TABLE = "user_roles"
ADMIN_ROLE = "admin"


class AuthenticationError(RuntimeError):
    """Base error raised when the sign-in flow cannot be completed."""


class InvalidCredentials(AuthenticationError):
    """Raised when Supabase explicitly rejects the credentials."""


@dataclass(frozen=True)
class AuthSession:
    access_token: str
    refresh_token: str
    token_type: str
    expires_in: int
    expires_at: int


async def login_with_password(email: str, password: str) -> AuthSession:
    """Perform a password grant request against Supabase."""

    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise AuthenticationError("Supabase is not configured on the server.")

    headers = {"apikey": SUPABASE_ANON_KEY, "Content-Type": "application/json"}
    url = f"{SUPABASE_URL.rstrip('/')}/auth/v1/token?grant_type=password"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(url, json={"email": email, "password": password}, headers=headers)
    except httpx.HTTPError as exc:  # pragma: no cover - network layer
        logger.error("Supabase login unreachable: %s", exc)
        raise AuthenticationError("Unable to reach the authentication service.") from exc

    try:
        data = response.json()
    except ValueError:
        data = None

    if response.status_code in (400, 401):
        message = (data or {}).get("error_description") or "Invalid email or password."
        raise InvalidCredentials(message)

    if not response.is_success or not isinstance(data, dict):
        logger.error("Supabase login failed (%s): %s", response.status_code, data)
        raise AuthenticationError("The authentication service is temporarily unavailable.")

    missing = [name for name in ("access_token", "refresh_token", "expires_in") if name not in data]
    if missing:
        logger.error("Supabase login response missing fields: %s", missing)
        raise AuthenticationError("Unexpected response from the authentication service.")

    try:
        expires_in = int(data.get("expires_in") or 0)
    except (TypeError, ValueError) as exc:
        raise AuthenticationError("Invalid session lifetime returned by Supabase.") from exc

    try:
        expires_at = int(data["expires_at"])
    except (KeyError, TypeError, ValueError):
        expires_at = int(time.time()) + expires_in

    return AuthSession(
        access_token=str(data["access_token"]),
        refresh_token=str(data["refresh_token"]),
        token_type=str(data.get("token_type") or "bearer"),
        expires_in=expires_in,
        expires_at=expires_at,
    )


async def has_admin_role(access_token: str, user_id: str) -> bool:
    """Return True when ``user_roles`` grants the admin role to ``user_id``."""

    def _request() -> List[Dict[str, Any]]:
        with create_postgrest_client(access_token) as client:
            response = (
                client.table(USER_ROLES_TABLE)
                .select("role")
                .eq("user_id", user_id)
                .eq("role", ADMIN_ROLE)
                .limit(1)
                .execute()
            )
            return response.data or []

    try:
        rows = await asyncio.to_thread(_request)
    except PostgrestAPIError as exc:
        raise_postgrest_error(exc, context="admin role lookup")
    except httpx.HTTPError as exc:
        logger.error("Supabase unreachable during admin role lookup: %s", exc)
        raise AuthenticationError("Unable to verify admin privileges.") from exc
    return bool(rows)


__all__ = [
    "AuthSession",
    "AuthenticationError",
    "InvalidCredentials",
    "has_admin_role",
    "login_with_password",
]
