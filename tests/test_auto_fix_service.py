import io
from typing import Any, Dict, List, Mapping, Optional

import pytest
from PIL import Image

from app.config.errors import ConfigurationError
from app.services.auto_fix_service import (
    RATE_LIMIT_WARNING,
    PacingPolicy,
    needs_image_fix,
    needs_translation,
    run_auto_fix,
)
from app.services.catalog_store import CatalogEntry, CatalogError, StoreWriteError
from app.services.languages import TRANSLATION_FIELDS, LanguageCode
from app.services.media_service import FetchFailed
from app.services.translation_service import RateLimited, TranslationResult, UpstreamError

STORAGE_PREFIX = "https://demo.supabase.co/storage/v1/object/public/menu-images/"


def _jpeg_bytes(size=(64, 48)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, (200, 80, 40)).save(buffer, format="JPEG")
    return buffer.getvalue()


def _full_result(prefix: str = "tr") -> TranslationResult:
    return TranslationResult({code: f"{prefix}-{code.value}" for code in LanguageCode})


def _all_translated() -> Dict[LanguageCode, Optional[str]]:
    return {code: f"existing-{code.value}" for code in LanguageCode}


class FakeCatalog:
    def __init__(self, entries: List[CatalogEntry], failing_updates=()):
        self.entries = entries
        self.failing_updates = set(failing_updates)
        self.updates: List[tuple] = []

    def list_all(self):
        return list(self.entries)

    def update(self, entry_id: str, fields: Mapping[str, Any]) -> None:
        if entry_id in self.failing_updates:
            raise StoreWriteError(f"write rejected for {entry_id}")
        self.updates.append((entry_id, dict(fields)))


class FakeTranslator:
    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls: List[str] = []

    def translate(self, text: str) -> TranslationResult:
        self.calls.append(text)
        outcome = self.outcomes.pop(0) if self.outcomes else _full_result()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeMediaStore:
    def __init__(self, objects: Optional[Dict[str, bytes]] = None):
        self.objects = dict(objects or {})
        self.downloads: List[str] = []
        self.uploads: Dict[str, bytes] = {}

    def path_for(self, ref: str) -> Optional[str]:
        if not ref.startswith(STORAGE_PREFIX):
            return None
        return ref[len(STORAGE_PREFIX):].split("?", 1)[0]

    def download(self, path: str) -> bytes:
        self.downloads.append(path)
        if path not in self.objects:
            raise FetchFailed(f"missing {path}")
        return self.objects[path]

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        assert content_type == "image/webp"
        self.uploads[path] = data

    def get_public_url(self, path: str) -> str:
        return STORAGE_PREFIX + path


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(name="sleep")
def sleep_fixture():
    return RecordingSleep()


@pytest.fixture(name="pacing")
def pacing_fixture(sleep):
    return PacingPolicy(delay_seconds=1.5, sleep=sleep)


def test_grilled_salmon_is_translated_and_converted(pacing) -> None:
    entry = CatalogEntry(id="salmon", description="Grilled salmon", image_ref=STORAGE_PREFIX + "salmon.jpg")
    catalog = FakeCatalog([entry])
    translator = FakeTranslator()
    store = FakeMediaStore({"salmon.jpg": _jpeg_bytes()})

    summary = run_auto_fix(catalog, translator, store, pacing=pacing)

    assert (summary.fixed_count, summary.error_count) == (1, 0)
    assert translator.calls == ["Grilled salmon"]
    entry_id, fields = catalog.updates[0]
    assert entry_id == "salmon"
    for name in TRANSLATION_FIELDS:
        assert fields[name]
    assert fields["image_url"].endswith(".webp")
    assert fields["image_url"] != entry.image_ref
    assert len(store.uploads) == 1


def test_already_normalized_entry_is_left_alone(pacing) -> None:
    entry = CatalogEntry(
        id="done",
        description="Tiramisu",
        translations=_all_translated(),
        image_ref=STORAGE_PREFIX + "tiramisu.webp",
    )
    catalog = FakeCatalog([entry])
    translator = FakeTranslator()
    store = FakeMediaStore()

    summary = run_auto_fix(catalog, translator, store, pacing=pacing)

    assert (summary.fixed_count, summary.error_count) == (0, 0)
    assert catalog.updates == []
    assert translator.calls == []
    assert store.downloads == [] and store.uploads == {}


def test_rate_limit_stops_translations_but_not_image_fixes(pacing) -> None:
    entries = [
        CatalogEntry(id=f"dish-{index}", description=f"Dish {index}", image_ref=STORAGE_PREFIX + f"dish-{index}.png")
        for index in range(1, 4)
    ]
    catalog = FakeCatalog(entries)
    translator = FakeTranslator([RateLimited()])
    store = FakeMediaStore({f"dish-{index}.png": _jpeg_bytes() for index in range(1, 4)})

    summary = run_auto_fix(catalog, translator, store, pacing=pacing)

    assert translator.calls == ["Dish 1"]
    assert summary.error_count == 1
    assert summary.rate_limited is True
    assert summary.warnings == (RATE_LIMIT_WARNING,)
    assert summary.fixed_count == 3
    assert len(store.uploads) == 3
    for _, fields in catalog.updates:
        assert set(fields) == {"image_url"}


def test_existing_translations_are_never_overwritten(pacing) -> None:
    translations: Dict[LanguageCode, Optional[str]] = {code: None for code in LanguageCode}
    translations[LanguageCode.FR] = "Saumon grillé (fait maison)"
    entry = CatalogEntry(id="salmon", description="Grilled salmon", translations=translations)
    catalog = FakeCatalog([entry])

    run_auto_fix(catalog, FakeTranslator([_full_result("auto")]), FakeMediaStore(), pacing=pacing)

    _, fields = catalog.updates[0]
    assert "description_fr" not in fields
    assert fields["description_es"] == "auto-es"
    assert len(fields) == 8


def test_fully_translated_entries_skip_the_translator(pacing) -> None:
    entries = [CatalogEntry(id="a", description="Soup", translations=_all_translated())]
    translator = FakeTranslator()

    run_auto_fix(FakeCatalog(entries), translator, FakeMediaStore(), pacing=pacing)

    assert translator.calls == []


def test_empty_description_is_not_sent_for_translation() -> None:
    entry = CatalogEntry(id="blank", description="   ")
    assert needs_translation(entry) is False


def test_needs_image_fix_ignores_query_string() -> None:
    assert needs_image_fix(CatalogEntry(id="a", image_ref=STORAGE_PREFIX + "a.webp?v=2")) is False
    assert needs_image_fix(CatalogEntry(id="b", image_ref=STORAGE_PREFIX + "b.jpeg?v=2")) is True
    assert needs_image_fix(CatalogEntry(id="c")) is False


def test_pacing_waits_before_each_translation_after_the_first(pacing, sleep) -> None:
    entries = [CatalogEntry(id=str(index), description=f"Dish {index}") for index in range(3)]

    run_auto_fix(FakeCatalog(entries), FakeTranslator(), FakeMediaStore(), pacing=pacing)

    assert sleep.calls == [1.5, 1.5]


def test_pacing_does_not_apply_to_image_only_entries(pacing, sleep) -> None:
    entries = [
        CatalogEntry(id=str(index), translations=_all_translated(), image_ref=STORAGE_PREFIX + f"{index}.jpg")
        for index in range(3)
    ]
    store = FakeMediaStore({f"{index}.jpg": _jpeg_bytes() for index in range(3)})

    run_auto_fix(FakeCatalog(entries), FakeTranslator(), store, pacing=pacing)

    assert sleep.calls == []


def test_progress_is_reported_after_each_entry(pacing) -> None:
    entries = [CatalogEntry(id=str(index), translations=_all_translated()) for index in range(3)]
    progress = []

    run_auto_fix(FakeCatalog(entries), FakeTranslator(), FakeMediaStore(), lambda done, total: progress.append((done, total)), pacing=pacing)

    assert progress == [(1, 3), (2, 3), (3, 3)]


def test_upstream_translation_error_still_fixes_the_image(pacing) -> None:
    entry = CatalogEntry(id="pho", description="Beef pho", image_ref=STORAGE_PREFIX + "pho.jpg")
    catalog = FakeCatalog([entry])
    translator = FakeTranslator([UpstreamError("boom", status_code=500)])
    store = FakeMediaStore({"pho.jpg": _jpeg_bytes()})

    summary = run_auto_fix(catalog, translator, store, pacing=pacing)

    assert (summary.fixed_count, summary.error_count) == (1, 1)
    assert summary.rate_limited is False
    assert set(catalog.updates[0][1]) == {"image_url"}


def test_image_failure_is_counted_and_no_update_is_staged(pacing) -> None:
    entry = CatalogEntry(id="ghost", translations=_all_translated(), image_ref=STORAGE_PREFIX + "missing.jpg")
    catalog = FakeCatalog([entry])

    summary = run_auto_fix(catalog, FakeTranslator(), FakeMediaStore(), pacing=pacing)

    assert (summary.fixed_count, summary.error_count) == (0, 1)
    assert catalog.updates == []


def test_store_write_failure_counts_as_error(pacing) -> None:
    entries = [CatalogEntry(id="a", description="Soup"), CatalogEntry(id="b", description="Salad")]
    catalog = FakeCatalog(entries, failing_updates={"a"})

    summary = run_auto_fix(catalog, FakeTranslator(), FakeMediaStore(), pacing=pacing)

    assert (summary.fixed_count, summary.error_count) == (1, 1)
    assert [entry_id for entry_id, _ in catalog.updates] == ["b"]


def test_empty_catalog_reports_zero(pacing) -> None:
    progress = []
    summary = run_auto_fix(FakeCatalog([]), FakeTranslator(), FakeMediaStore(), progress.append, pacing=pacing)

    assert (summary.fixed_count, summary.error_count, summary.total) == (0, 0, 0)
    assert progress == []


def test_catalog_listing_failure_aborts_the_run(pacing) -> None:
    class BrokenCatalog(FakeCatalog):
        def list_all(self):
            raise CatalogError("Unable to load menu items.")

    with pytest.raises(CatalogError):
        run_auto_fix(BrokenCatalog([]), FakeTranslator(), FakeMediaStore(), pacing=pacing)


def test_missing_credentials_abort_the_run(pacing) -> None:
    entries = [CatalogEntry(id="a", description="Soup"), CatalogEntry(id="b", description="Salad")]
    translator = FakeTranslator([ConfigurationError("OPENAI_API_KEY is not configured")])
    catalog = FakeCatalog(entries)

    with pytest.raises(ConfigurationError):
        run_auto_fix(catalog, translator, FakeMediaStore(), pacing=pacing)
    assert catalog.updates == []


def test_catalog_entry_always_carries_nine_languages() -> None:
    entry = CatalogEntry.from_row({"id": 7, "description": None, "description_fr": "Soupe", "description_ja": ""})

    assert set(entry.translations) == set(LanguageCode)
    assert entry.translations[LanguageCode.FR] == "Soupe"
    assert entry.translations[LanguageCode.JA] is None
    assert entry.id == "7"
    assert entry.description == ""


def test_unexpected_image_failure_keeps_staged_translations(pacing) -> None:
    class BrokenUrlStore(FakeMediaStore):
        def get_public_url(self, path: str) -> str:
            raise RuntimeError("storage gateway returned garbage")

    entry = CatalogEntry(id="salmon", description="Grilled salmon", image_ref=STORAGE_PREFIX + "salmon.jpg")
    catalog = FakeCatalog([entry])
    store = BrokenUrlStore({"salmon.jpg": _jpeg_bytes()})

    summary = run_auto_fix(catalog, FakeTranslator(), store, pacing=pacing)

    assert (summary.fixed_count, summary.error_count) == (1, 1)
    entry_id, fields = catalog.updates[0]
    assert entry_id == "salmon"
    assert set(fields) == set(TRANSLATION_FIELDS)
