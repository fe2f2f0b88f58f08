"""Short retry/backoff wrapper for service-role Supabase calls."""

from __future__ import annotations

import logging
import time
from typing import Callable, Sequence, TypeVar

from httpx import HTTPError as HttpxError

from app.config.supabase_client import SUPABASE_URL

logger = logging.getLogger(__name__)
T = TypeVar("T")


class SupabaseUnavailable(RuntimeError):
    """Raised once every attempt to reach Supabase has failed at the transport level."""


def retry_supabase_call(
    operation: Callable[[], T],
    *,
    label: str,
    retries: int = 2,
    backoff_seconds: Sequence[float] = (0.2, 0.5, 1.0),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation``, retrying transport errors only.

    PostgREST API errors (bad filter, RLS denial, constraint violation) are
    raised immediately since repeating the request cannot fix them.
    """

    attempts = retries + 1
    for attempt in range(1, attempts + 1):
        start = time.monotonic()
        try:
            result = operation()
        except HttpxError as exc:
            duration_ms = (time.monotonic() - start) * 1000
            logger.warning(
                "Supabase call failed",
                extra={
                    "label": label,
                    "attempt": attempt,
                    "duration_ms": round(duration_ms, 2),
                    "supabase_url": SUPABASE_URL,
                    "error": str(exc),
                },
            )
            if attempt >= attempts:
                raise SupabaseUnavailable(f"Supabase unreachable ({label}).") from exc
            sleep(backoff_seconds[min(attempt - 1, len(backoff_seconds) - 1)])
            continue
        logger.debug(
            "Supabase call succeeded",
            extra={"label": label, "duration_ms": round((time.monotonic() - start) * 1000, 2)},
        )
        return result
    raise SupabaseUnavailable(f"Supabase unreachable ({label}).")


__all__ = ["retry_supabase_call", "SupabaseUnavailable"]
