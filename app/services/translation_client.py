"""HTTP client for a deployed translation endpoint (``POST {"description": ...}``)."""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

from app.services.translation_service import (
    MalformedResponse,
    RATE_LIMITED_MESSAGE,
    RateLimited,
    TranslationResult,
    UpstreamError,
    parse_translation_payload,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class HttpTranslationClient:
    """Translator that forwards text to the translation proxy over HTTP."""

    def __init__(
        self,
        endpoint_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._timeout = timeout
        self._transport = transport
        self._headers: Dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
            self._headers["apikey"] = api_key

    def translate(self, text: str) -> TranslationResult:
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self._endpoint_url, json={"description": text}, headers=self._headers)
        except httpx.TimeoutException as exc:
            logger.error("Translation endpoint timed out: %s", exc)
            raise UpstreamError("Translation request timed out.") from exc
        except httpx.HTTPError as exc:
            logger.error("Translation endpoint unreachable: %s", exc)
            raise UpstreamError("Translation service unreachable.") from exc

        if response.status_code == 429:
            raise RateLimited(_error_message(response) or RATE_LIMITED_MESSAGE)
        if not response.is_success:
            detail = _error_message(response)
            logger.error("Translation endpoint failed (%s): %s", response.status_code, detail)
            raise UpstreamError(
                detail or f"Translation endpoint error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse("Translation endpoint returned invalid JSON.") from exc
        return parse_translation_payload(payload)


def _error_message(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return None


__all__ = ["HttpTranslationClient", "DEFAULT_TIMEOUT_SECONDS"]
