"""Menu items as seen by maintenance jobs, and the Supabase table behind them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from postgrest import APIError as PostgrestAPIError

from app.config.errors import ConfigurationError
from app.config.supabase_client import get_supabase_client
from app.services.languages import (
    TRANSLATION_FIELDS,
    LanguageCode,
    empty_translations,
    missing_languages,
    translations_from_row,
)
from app.services.supabase_retry import SupabaseUnavailable, retry_supabase_call

logger = logging.getLogger(__name__)

MENU_ITEMS_TABLE = "menu_items"
CATALOG_COLUMNS = ",".join(("id", "description", "image_url", *TRANSLATION_FIELDS))


class CatalogError(RuntimeError):
    """Raised when the catalog cannot be read."""


class StoreWriteError(CatalogError):
    """Raised when an update to one menu item is rejected or unreachable."""


@dataclass
class CatalogEntry:
    """One menu item subject to normalization.

    ``translations`` always carries exactly the nine language codes; a missing
    translation is ``None`` rather than an absent key.
    """

    id: str
    description: str = ""
    translations: Dict[LanguageCode, Optional[str]] = field(default_factory=empty_translations)
    image_ref: Optional[str] = None

    def __post_init__(self) -> None:
        unknown = [key for key in self.translations if not isinstance(key, LanguageCode)]
        if unknown:
            raise ValueError(f"Unsupported translation keys: {unknown}")
        self.translations = {code: self.translations.get(code) for code in LanguageCode}
        self.description = self.description or ""

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CatalogEntry":
        return cls(
            id=str(row["id"]),
            description=str(row.get("description") or ""),
            translations=translations_from_row(row),
            image_ref=row.get("image_url") or None,
        )

    def missing_languages(self) -> List[LanguageCode]:
        return missing_languages(self.translations)


class CatalogStore(Protocol):
    def list_all(self) -> Sequence[CatalogEntry]:
        ...

    def update(self, entry_id: str, fields: Mapping[str, Any]) -> None:
        ...


class SupabaseCatalogStore:
    """:class:`CatalogStore` over the ``menu_items`` table using the service-role client."""

    def __init__(self, client=None) -> None:
        self._client = client

    def _table(self):
        client = self._client or get_supabase_client()
        if client is None:
            raise ConfigurationError("Supabase client is not configured.")
        return client.table(MENU_ITEMS_TABLE)

    def list_all(self) -> List[CatalogEntry]:
        table = self._table()
        try:
            response = retry_supabase_call(
                lambda: table.select(CATALOG_COLUMNS).order("name").execute(),
                label="catalog:list_all",
            )
        except (PostgrestAPIError, SupabaseUnavailable) as exc:
            logger.error("Menu item listing failed: %s", exc)
            raise CatalogError("Unable to load menu items.") from exc
        return [CatalogEntry.from_row(row) for row in response.data or [] if row.get("id")]

    def update(self, entry_id: str, fields: Mapping[str, Any]) -> None:
        table = self._table()
        try:
            retry_supabase_call(
                lambda: table.update(dict(fields)).eq("id", entry_id).execute(),
                label="catalog:update",
            )
        except (PostgrestAPIError, SupabaseUnavailable) as exc:
            logger.error("Menu item %s update failed: %s", entry_id, exc)
            raise StoreWriteError(f"Unable to update menu item {entry_id}") from exc


__all__ = [
    "CatalogEntry",
    "CatalogError",
    "CatalogStore",
    "MENU_ITEMS_TABLE",
    "StoreWriteError",
    "SupabaseCatalogStore",
]
