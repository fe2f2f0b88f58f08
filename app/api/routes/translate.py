"""Translation proxy: one dish description in, nine translations out."""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.api.deps import get_translator
from app.config.errors import ConfigurationError
from app.schemas import ErrorResponse, TranslationRequest, TranslationResponse
from app.services.translation_service import RateLimited, TranslationError, Translator

router = APIRouter()
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}
DESCRIPTION_REQUIRED = "Description is required"
INVALID_BODY = "Request body must be valid JSON."


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=CORS_HEADERS)


@router.options("/translate", include_in_schema=False)
def translate_preflight() -> Response:
    return Response(status_code=200, headers=CORS_HEADERS)


# Malformed bodies answer with {"error": ...} and the CORS headers, never FastAPI's 422.
@router.post(
    "/translate",
    response_model=TranslationResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": TranslationRequest.model_json_schema()}},
        }
    },
)
async def translate_endpoint(
    request: Request,
    translator: Translator = Depends(get_translator),
) -> JSONResponse:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Translation request with an unreadable body")
        return _error(500, INVALID_BODY)

    description = payload.get("description") if isinstance(payload, dict) else None
    if not isinstance(description, str) or not description.strip():
        return _error(400, DESCRIPTION_REQUIRED)

    try:
        result = await asyncio.to_thread(translator.translate, description.strip())
    except RateLimited as exc:
        return _error(429, str(exc))
    except (TranslationError, ConfigurationError) as exc:
        logger.error("Translation error: %s", exc)
        return _error(500, str(exc) or "Translation failed")

    return JSONResponse(content=result.as_fields(), headers=CORS_HEADERS)
