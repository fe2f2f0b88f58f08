"""Menu items and categories: public browsing and admin maintenance."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from fastapi import HTTPException
from postgrest.types import CountMethod

from app.config.errors import ConfigurationError
from app.services.catalog_store import MENU_ITEMS_TABLE
from app.services.languages import TRANSLATION_FIELDS, field_name, parse_language
from app.services.postgrest_client import create_postgrest_client, public_access_token, run_postgrest
from app.services.translation_service import TranslationError, Translator

logger = logging.getLogger(__name__)

CATEGORIES_TABLE = "categories"
ADMIN_PAGE_SIZE = 20
DEFAULT_SORT = "name-asc"
TRANSLATION_WARNING = "Auto-translation failed. The item was saved with its previous translations."

# Characters with a meaning in PostgREST's or=(...) filter syntax.
SEARCH_RESERVED_PATTERN = re.compile(r"[,()%*\\]")
WHITESPACE_PATTERN = re.compile(r"\s+")


def filter_and_sort_items(
    items: Iterable[Dict[str, Any]],
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort: str = DEFAULT_SORT,
) -> List[Dict[str, Any]]:
    """Apply the public menu search box, category chip and sort selector."""

    query = (search or "").strip().casefold()
    filtered = []
    for item in items:
        if query:
            name = str(item.get("name") or "").casefold()
            description = str(item.get("description") or "").casefold()
            if query not in name and query not in description:
                continue
        if category and category != "all" and str(item.get("category_id") or "") != category:
            continue
        filtered.append(item)

    if sort == "name-asc":
        filtered.sort(key=lambda item: str(item.get("name") or "").casefold())
    elif sort == "name-desc":
        filtered.sort(key=lambda item: str(item.get("name") or "").casefold(), reverse=True)
    elif sort == "price-asc":
        filtered.sort(key=_price)
    elif sort == "price-desc":
        filtered.sort(key=_price, reverse=True)
    return filtered


def _price(item: Dict[str, Any]) -> float:
    try:
        return float(item.get("price") or 0)
    except (TypeError, ValueError):
        return 0.0


def localize_item(item: Dict[str, Any], language: Optional[str]) -> Dict[str, Any]:
    """Add ``display_description`` in the requested language, falling back to the source text."""

    localized = dict(item)
    code = parse_language(language)
    translated = item.get(field_name(code)) if code else None
    localized["display_description"] = translated or item.get("description") or ""
    return localized


def normalize_category_name(name: str) -> str:
    return WHITESPACE_PATTERN.sub("_", name.strip().lower())


def sanitize_search(search: Optional[str]) -> str:
    return SEARCH_RESERVED_PATTERN.sub(" ", search or "").strip()


async def fetch_public_menu(
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    sort: str = DEFAULT_SORT,
    language: Optional[str] = None,
) -> List[Dict[str, Any]]:
    token = public_access_token()

    def _request() -> List[Dict[str, Any]]:
        with create_postgrest_client(token) as client:
            response = client.table(MENU_ITEMS_TABLE).select("*").order("name").execute()
            return response.data or []

    rows = await run_postgrest(_request, context="public menu lookup")
    items = filter_and_sort_items(rows, search=search, category=category, sort=sort)
    return [localize_item(item, language) for item in items]


async def fetch_public_menu_item(item_id: str, language: Optional[str] = None) -> Dict[str, Any]:
    token = public_access_token()

    def _request() -> List[Dict[str, Any]]:
        with create_postgrest_client(token) as client:
            response = client.table(MENU_ITEMS_TABLE).select("*").eq("id", item_id).limit(1).execute()
            return response.data or []

    rows = await run_postgrest(_request, context="menu item lookup")
    if not rows:
        raise HTTPException(status_code=404, detail="Menu item not found.")
    return localize_item(rows[0], language)


async def fetch_active_categories() -> List[Dict[str, Any]]:
    token = public_access_token()

    def _request() -> List[Dict[str, Any]]:
        with create_postgrest_client(token) as client:
            response = (
                client.table(CATEGORIES_TABLE)
                .select("*")
                .eq("is_active", True)
                .order("display_order")
                .execute()
            )
            return response.data or []

    return await run_postgrest(_request, context="category lookup")


async def list_menu_items_page(
    access_token: str,
    *,
    page: int = 1,
    search: Optional[str] = None,
    category: Optional[str] = None,
) -> Dict[str, Any]:
    """Return one admin page of menu items along with the total match count."""

    page = max(page, 1)
    start = (page - 1) * ADMIN_PAGE_SIZE
    cleaned_search = sanitize_search(search)

    def _request() -> Tuple[List[Dict[str, Any]], int]:
        with create_postgrest_client(access_token) as client:
            query = client.table(MENU_ITEMS_TABLE).select("*", count=CountMethod.exact)
            if category and category != "all":
                query = query.eq("category_id", category)
            if cleaned_search:
                query = query.or_(f"name.ilike.%{cleaned_search}%,description.ilike.%{cleaned_search}%")
            response = query.order("name").range(start, start + ADMIN_PAGE_SIZE - 1).execute()
            return response.data or [], response.count or 0

    items, total = await run_postgrest(_request, context="admin menu listing")
    return {"items": items, "total": total, "page": page, "page_size": ADMIN_PAGE_SIZE}


async def _translations_for(
    description: str,
    previous: Optional[Dict[str, Any]],
    translator: Translator,
) -> Tuple[Dict[str, Optional[str]], List[str]]:
    """Translate on creation or when the description changed; otherwise keep what is stored."""

    previous_fields = {name: (previous or {}).get(name) or None for name in TRANSLATION_FIELDS}
    if previous is not None and (previous.get("description") or "") == description:
        return previous_fields, []
    if not description.strip():
        return previous_fields, []
    try:
        result = await asyncio.to_thread(translator.translate, description)
    except (TranslationError, ConfigurationError) as exc:
        logger.warning("Auto-translation failed while saving a menu item: %s", exc)
        return previous_fields, [TRANSLATION_WARNING]
    return dict(result.as_fields()), []


def _item_body(payload: Dict[str, Any]) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "name": payload["name"].strip(),
        "description": payload.get("description") or "",
        "price": payload["price"],
        "category_id": payload.get("category_id") or None,
    }
    if payload.get("vat") is not None:
        body["vat"] = payload["vat"]
    if payload.get("image_url"):
        body["image_url"] = payload["image_url"]
    return body


async def create_menu_item(access_token: str, payload: Dict[str, Any], translator: Translator) -> Dict[str, Any]:
    body = _item_body(payload)
    translations, warnings = await _translations_for(body["description"], None, translator)
    body.update(translations)

    def _request() -> Dict[str, Any]:
        with create_postgrest_client(access_token, prefer="return=representation") as client:
            response = client.table(MENU_ITEMS_TABLE).insert(body).execute()
            if not response.data:
                raise HTTPException(status_code=502, detail="Menu item could not be created.")
            return response.data[0]

    record = await run_postgrest(_request, context="menu item creation")
    return {"item": record, "warnings": warnings}


async def _fetch_menu_item(access_token: str, item_id: str) -> Dict[str, Any]:
    def _request() -> List[Dict[str, Any]]:
        with create_postgrest_client(access_token) as client:
            response = client.table(MENU_ITEMS_TABLE).select("*").eq("id", item_id).limit(1).execute()
            return response.data or []

    rows = await run_postgrest(_request, context="menu item lookup")
    if not rows:
        raise HTTPException(status_code=404, detail="Menu item not found.")
    return rows[0]


async def update_menu_item(
    access_token: str,
    item_id: str,
    payload: Dict[str, Any],
    translator: Translator,
) -> Dict[str, Any]:
    existing = await _fetch_menu_item(access_token, item_id)
    body = _item_body(payload)
    translations, warnings = await _translations_for(body["description"], existing, translator)
    body.update(translations)
    record = await _update_menu_item_fields(access_token, item_id, body, context="menu item update")
    return {"item": record, "warnings": warnings}


async def _update_menu_item_fields(
    access_token: str,
    item_id: str,
    fields: Dict[str, Any],
    *,
    context: str,
) -> Dict[str, Any]:
    def _request() -> Dict[str, Any]:
        with create_postgrest_client(access_token, prefer="return=representation") as client:
            response = client.table(MENU_ITEMS_TABLE).update(fields).eq("id", item_id).execute()
            if not response.data:
                raise HTTPException(status_code=404, detail="Menu item not found.")
            return response.data[0]

    return await run_postgrest(_request, context=context)


async def set_menu_item_image(access_token: str, item_id: str, image_url: str) -> Dict[str, Any]:
    return await _update_menu_item_fields(
        access_token, item_id, {"image_url": image_url}, context="menu item image update"
    )


async def delete_menu_item(access_token: str, item_id: str) -> None:
    def _request() -> None:
        with create_postgrest_client(access_token, prefer="return=minimal") as client:
            client.table(MENU_ITEMS_TABLE).delete().eq("id", item_id).execute()

    await run_postgrest(_request, context="menu item deletion")


async def update_vat(access_token: str, item_ids: Sequence[str], vat: float) -> int:
    """Apply one VAT rate to every selected item in a single bulk update."""

    ids = list(dict.fromkeys(str(item_id) for item_id in item_ids if item_id))
    if not ids:
        return 0

    def _request() -> int:
        with create_postgrest_client(access_token, prefer="return=representation") as client:
            response = client.table(MENU_ITEMS_TABLE).update({"vat": vat}).in_("id", ids).execute()
            return len(response.data or [])

    updated = await run_postgrest(_request, context="VAT update")
    logger.info("VAT set to %s%% on %d menu items", vat, updated)
    return updated


async def list_categories(access_token: str) -> List[Dict[str, Any]]:
    def _request() -> List[Dict[str, Any]]:
        with create_postgrest_client(access_token) as client:
            response = client.table(CATEGORIES_TABLE).select("*").order("display_order").execute()
            return response.data or []

    return await run_postgrest(_request, context="category listing")


def _category_body(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": normalize_category_name(payload["name"]),
        "display_name": payload["display_name"].strip(),
        "display_order": int(payload.get("display_order") or 0),
        "is_active": bool(payload.get("is_active", True)),
    }


async def create_category(access_token: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    body = _category_body(payload)

    def _request() -> Dict[str, Any]:
        with create_postgrest_client(access_token, prefer="return=representation") as client:
            response = client.table(CATEGORIES_TABLE).insert(body).execute()
            if not response.data:
                raise HTTPException(status_code=502, detail="Category could not be created.")
            return response.data[0]

    return await run_postgrest(_request, context="category creation")


async def update_category(access_token: str, category_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    body = _category_body(payload)

    def _request() -> Dict[str, Any]:
        with create_postgrest_client(access_token, prefer="return=representation") as client:
            response = client.table(CATEGORIES_TABLE).update(body).eq("id", category_id).execute()
            if not response.data:
                raise HTTPException(status_code=404, detail="Category not found.")
            return response.data[0]

    return await run_postgrest(_request, context="category update")


async def delete_category(access_token: str, category_id: str) -> None:
    def _request() -> None:
        with create_postgrest_client(access_token, prefer="return=minimal") as client:
            client.table(CATEGORIES_TABLE).delete().eq("id", category_id).execute()

    await run_postgrest(_request, context="category deletion")


__all__ = [
    "ADMIN_PAGE_SIZE",
    "TRANSLATION_WARNING",
    "create_category",
    "create_menu_item",
    "delete_category",
    "delete_menu_item",
    "fetch_active_categories",
    "fetch_public_menu",
    "fetch_public_menu_item",
    "filter_and_sort_items",
    "list_categories",
    "list_menu_items_page",
    "localize_item",
    "normalize_category_name",
    "sanitize_search",
    "set_menu_item_image",
    "update_category",
    "update_menu_item",
    "update_vat",
]
