"""Dependency providers shared by the routers; overridden in tests."""

from typing import Tuple

from app.services.auto_fix_service import build_default_job_dependencies
from app.services.catalog_store import CatalogStore
from app.services.media_service import MediaStore, SupabaseMediaStore
from app.services.translation_service import OpenAITranslator, Translator


def get_translator() -> Translator:
    return OpenAITranslator()


def get_media_store() -> MediaStore:
    return SupabaseMediaStore()


def get_auto_fix_dependencies() -> Tuple[CatalogStore, Translator, MediaStore]:
    return build_default_job_dependencies()


__all__ = ["get_auto_fix_dependencies", "get_media_store", "get_translator"]
