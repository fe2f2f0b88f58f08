"""Public menu browsing and visit logging."""

import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Query, Request

from app.schemas import PageViewPayload
from app.security.guards import rate_limit_request
from app.services import analytics_service, menu_service
from app.services.languages import LANGUAGE_LABELS

router = APIRouter()
logger = logging.getLogger(__name__)

SortOption = Literal["name-asc", "name-desc", "price-asc", "price-desc"]


@router.get("/menu")
async def public_menu(
    search: Optional[str] = Query(default=None, max_length=120),
    category: Optional[str] = Query(default=None, description="Category id, or 'all'"),
    sort: SortOption = "name-asc",
    language: Optional[str] = Query(default=None, description="ko, ja, cn, vi, ru, kz, es, fr or it"),
) -> Dict[str, List[Dict[str, Any]]]:
    items = await menu_service.fetch_public_menu(search=search, category=category, sort=sort, language=language)
    return {"items": items}


@router.get("/menu/items/{item_id}")
async def public_menu_item(item_id: str, language: Optional[str] = None) -> Dict[str, Any]:
    return await menu_service.fetch_public_menu_item(item_id, language)


@router.get("/languages")
def public_languages() -> Dict[str, List[Dict[str, str]]]:
    languages = [{"code": "en", "label": "English"}]
    languages.extend({"code": code.value, "label": label} for code, label in LANGUAGE_LABELS.items())
    return {"languages": languages}


@router.get("/categories")
async def public_categories() -> Dict[str, List[Dict[str, Any]]]:
    return {"categories": await menu_service.fetch_active_categories()}


@router.post("/page-views", status_code=202)
async def track_page_view(payload: PageViewPayload, request: Request) -> Dict[str, bool]:
    rate_limit_request(request, scope="page-view", limit=30, window_seconds=60)
    recorded = await analytics_service.record_page_view(payload.page_path, request.headers.get("user-agent"))
    return {"recorded": recorded}
