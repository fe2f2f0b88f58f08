"""Admin dashboard API: menu items, categories, VAT, analytics and the auto-fix job."""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from app.api.deps import get_auto_fix_dependencies, get_media_store, get_translator
from app.config.errors import ConfigurationError
from app.schemas import (
    AnalyticsSummaryResponse,
    AutoFixResponse,
    CategoryPayload,
    MenuItemPage,
    MenuItemPayload,
    MenuItemSaveResponse,
    VATUpdatePayload,
    VATUpdateResponse,
)
from app.security.guards import AdminContext, require_admin
from app.services import analytics_service, menu_service
from app.services.auto_fix_service import run_auto_fix
from app.services.catalog_store import CatalogError, CatalogStore
from app.services.media_service import (
    ConversionFailed,
    MediaStore,
    UnsupportedUpload,
    UploadFailed,
    store_uploaded_image,
)
from app.services.translation_service import Translator

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/menu-items", response_model=MenuItemPage)
async def admin_menu_items(
    page: int = Query(default=1, ge=1),
    search: Optional[str] = Query(default=None, max_length=120),
    category: Optional[str] = None,
    admin: AdminContext = Depends(require_admin),
) -> Dict[str, Any]:
    return await menu_service.list_menu_items_page(admin.access_token, page=page, search=search, category=category)


@router.post("/menu-items", response_model=MenuItemSaveResponse, status_code=201)
async def admin_create_menu_item(
    payload: MenuItemPayload,
    admin: AdminContext = Depends(require_admin),
    translator: Translator = Depends(get_translator),
) -> Dict[str, Any]:
    return await menu_service.create_menu_item(admin.access_token, payload.model_dump(), translator)


@router.post("/menu-items/vat", response_model=VATUpdateResponse)
async def admin_update_vat(
    payload: VATUpdatePayload,
    admin: AdminContext = Depends(require_admin),
) -> VATUpdateResponse:
    updated = await menu_service.update_vat(admin.access_token, payload.item_ids, payload.vat)
    return VATUpdateResponse(updated=updated, vat=payload.vat)


@router.put("/menu-items/{item_id}", response_model=MenuItemSaveResponse)
async def admin_update_menu_item(
    item_id: str,
    payload: MenuItemPayload,
    admin: AdminContext = Depends(require_admin),
    translator: Translator = Depends(get_translator),
) -> Dict[str, Any]:
    return await menu_service.update_menu_item(admin.access_token, item_id, payload.model_dump(), translator)


@router.delete("/menu-items/{item_id}")
async def admin_delete_menu_item(item_id: str, admin: AdminContext = Depends(require_admin)) -> Dict[str, str]:
    await menu_service.delete_menu_item(admin.access_token, item_id)
    return {"status": "deleted"}


@router.post("/menu-items/{item_id}/image")
async def admin_upload_menu_item_image(
    item_id: str,
    file: UploadFile = File(...),
    admin: AdminContext = Depends(require_admin),
    media_store: MediaStore = Depends(get_media_store),
) -> Dict[str, Any]:
    data = await file.read()
    try:
        image_url = await asyncio.to_thread(
            store_uploaded_image,
            file.filename or "upload",
            file.content_type,
            data,
            media_store,
        )
    except (UnsupportedUpload, ConversionFailed) as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except UploadFailed as exc:
        raise HTTPException(status_code=502, detail="Image upload failed.") from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    item = await menu_service.set_menu_item_image(admin.access_token, item_id, image_url)
    return {"item": item, "image_url": image_url}


@router.get("/categories")
async def admin_categories(admin: AdminContext = Depends(require_admin)) -> Dict[str, List[Dict[str, Any]]]:
    return {"categories": await menu_service.list_categories(admin.access_token)}


@router.post("/categories", status_code=201)
async def admin_create_category(
    payload: CategoryPayload,
    admin: AdminContext = Depends(require_admin),
) -> Dict[str, Any]:
    return await menu_service.create_category(admin.access_token, payload.model_dump())


@router.put("/categories/{category_id}")
async def admin_update_category(
    category_id: str,
    payload: CategoryPayload,
    admin: AdminContext = Depends(require_admin),
) -> Dict[str, Any]:
    return await menu_service.update_category(admin.access_token, category_id, payload.model_dump())


@router.delete("/categories/{category_id}")
async def admin_delete_category(category_id: str, admin: AdminContext = Depends(require_admin)) -> Dict[str, str]:
    await menu_service.delete_category(admin.access_token, category_id)
    return {"status": "deleted"}


@router.get("/analytics", response_model=AnalyticsSummaryResponse)
async def admin_analytics(admin: AdminContext = Depends(require_admin)) -> Dict[str, Any]:
    return await analytics_service.build_analytics_summary(admin.access_token)


@router.post("/auto-fix", response_model=AutoFixResponse)
async def admin_auto_fix(
    admin: AdminContext = Depends(require_admin),
    dependencies: Tuple[CatalogStore, Translator, MediaStore] = Depends(get_auto_fix_dependencies),
) -> AutoFixResponse:
    catalog, translator, media_store = dependencies
    logger.info("Auto-fix started by %s", admin.user_id)
    try:
        summary = await asyncio.to_thread(run_auto_fix, catalog, translator, media_store)
    except CatalogError as exc:
        raise HTTPException(status_code=502, detail="Failed to load menu items.") from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return AutoFixResponse(
        fixed_count=summary.fixed_count,
        error_count=summary.error_count,
        total=summary.total,
        rate_limited=summary.rate_limited,
        warnings=list(summary.warnings),
    )
