"""Helpers for working with Supabase access tokens."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict

from fastapi import HTTPException


def decode_access_token(access_token: str) -> Dict[str, Any]:
    """Return the JWT payload of a Supabase access token.

    The signature is not checked here; PostgREST verifies it on every request
    made with the token.
    """

    if not access_token:
        raise HTTPException(status_code=401, detail="Authentication required.")

    try:
        payload_segment = access_token.split(".")[1]
        padding = "=" * (-len(payload_segment) % 4)
        decoded = base64.urlsafe_b64decode((payload_segment + padding).encode("ascii"))
        claims = json.loads(decoded.decode("utf-8"))
    except (IndexError, ValueError, binascii.Error) as exc:
        raise HTTPException(status_code=401, detail="Invalid access token.") from exc
    if not isinstance(claims, dict):
        raise HTTPException(status_code=401, detail="Invalid access token.")
    return claims


__all__ = ["decode_access_token"]
