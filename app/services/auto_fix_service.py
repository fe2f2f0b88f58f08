"""Backfill missing translations and convert menu images to WebP, one item at a time.

Run from the command line with ``python -m app.services.auto_fix_service`` or
through ``POST /api/admin/auto-fix``.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from app.config.errors import ConfigurationError
from app.services.catalog_store import CatalogEntry, CatalogError, CatalogStore, SupabaseCatalogStore
from app.services.languages import field_name
from app.services.media_service import MediaError, MediaStore, SupabaseMediaStore, is_canonical_image, normalize_image
from app.services.translation_client import HttpTranslationClient
from app.services.translation_service import (
    OpenAITranslator,
    RateLimited,
    TranslationError,
    Translator,
)

logger = logging.getLogger(__name__)

DEFAULT_TRANSLATION_DELAY_SECONDS = float(os.getenv("AUTO_FIX_TRANSLATION_DELAY_SECONDS", "1.5"))
TRANSLATE_ENDPOINT_URL = os.getenv("TRANSLATE_ENDPOINT_URL")
TRANSLATE_ENDPOINT_KEY = os.getenv("TRANSLATE_ENDPOINT_KEY")
RATE_LIMIT_WARNING = "Translation service is busy. Some items were skipped. Try again later."

ProgressCallback = Callable[[int, int], None]


class PacingPolicy:
    """Fixed pause before every translation call after the first one of a run."""

    def __init__(
        self,
        delay_seconds: float = DEFAULT_TRANSLATION_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._calls = 0

    def reset(self) -> None:
        self._calls = 0

    def before_call(self) -> None:
        if self._calls and self.delay_seconds > 0:
            self._sleep(self.delay_seconds)
        self._calls += 1


class TranslationCircuitBreaker:
    """Opens on the first rate-limit of a run; stays open until the run ends."""

    def __init__(self) -> None:
        self.is_open = False
        self.opened_by: Optional[str] = None

    def allows_call(self) -> bool:
        return not self.is_open

    def trip(self, entry_id: str) -> None:
        self.is_open = True
        self.opened_by = entry_id


@dataclass(frozen=True)
class AutoFixSummary:
    fixed_count: int
    error_count: int
    total: int = 0
    rate_limited: bool = False
    warnings: Tuple[str, ...] = ()


@dataclass
class NormalizationRun:
    """Counters and flags for a single sweep; never shared between runs."""

    total: int
    processed: int = 0
    fixed_count: int = 0
    error_count: int = 0
    breaker: TranslationCircuitBreaker = field(default_factory=TranslationCircuitBreaker)
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> AutoFixSummary:
        return AutoFixSummary(
            fixed_count=self.fixed_count,
            error_count=self.error_count,
            total=self.total,
            rate_limited=self.breaker.is_open,
            warnings=tuple(self.warnings),
        )


def needs_translation(entry: CatalogEntry) -> bool:
    return bool(entry.description.strip()) and bool(entry.missing_languages())


def needs_image_fix(entry: CatalogEntry) -> bool:
    return bool(entry.image_ref) and not is_canonical_image(entry.image_ref)


def run_auto_fix(
    catalog: CatalogStore,
    translator: Translator,
    media_store: MediaStore,
    on_progress: Optional[ProgressCallback] = None,
    *,
    pacing: Optional[PacingPolicy] = None,
) -> AutoFixSummary:
    """Sweep every menu item once and return the fixed/error tallies.

    Only a failure to list the catalog or a missing credential aborts the run;
    every other failure is counted against the entry and the sweep continues.
    """

    pacing = pacing or PacingPolicy()
    pacing.reset()

    entries = list(catalog.list_all())
    run = NormalizationRun(total=len(entries))
    if not entries:
        logger.info("Auto-fix: no menu items to process.")
        return run.summary()

    for index, entry in enumerate(entries):
        try:
            _process_entry(entry, run, catalog=catalog, translator=translator, media_store=media_store, pacing=pacing)
        except ConfigurationError:
            raise
        except Exception:
            logger.exception("Unexpected auto-fix failure for menu item %s", entry.id)
            run.error_count += 1
        run.processed = index + 1
        if on_progress is not None:
            on_progress(run.processed, run.total)

    logger.info(
        "Auto-fix complete: %d fixed, %d errors, %d items",
        run.fixed_count,
        run.error_count,
        run.total,
    )
    return run.summary()


def _process_entry(
    entry: CatalogEntry,
    run: NormalizationRun,
    *,
    catalog: CatalogStore,
    translator: Translator,
    media_store: MediaStore,
    pacing: PacingPolicy,
) -> None:
    updates: Dict[str, Any] = {}

    if needs_translation(entry) and run.breaker.allows_call():
        updates.update(_translate_missing(entry, run, translator, pacing))

    if needs_image_fix(entry):
        try:
            outcome = normalize_image(entry.image_ref, media_store)
        except MediaError as exc:
            logger.error("Image normalization failed for menu item %s: %s", entry.id, exc)
            run.error_count += 1
        except ConfigurationError:
            raise
        except Exception:
            logger.exception("Unexpected image failure for menu item %s", entry.id)
            run.error_count += 1
        else:
            if outcome.converted and outcome.new_url:
                updates["image_url"] = outcome.new_url

    if not updates:
        return
    try:
        catalog.update(entry.id, updates)
    except CatalogError as exc:
        logger.error("Auto-fix update failed for menu item %s: %s", entry.id, exc)
        run.error_count += 1
    else:
        run.fixed_count += 1


def _translate_missing(
    entry: CatalogEntry,
    run: NormalizationRun,
    translator: Translator,
    pacing: PacingPolicy,
) -> Dict[str, str]:
    pacing.before_call()
    try:
        result = translator.translate(entry.description)
    except RateLimited:
        logger.warning("Translation rate limited at menu item %s; skipping remaining translations.", entry.id)
        run.breaker.trip(entry.id)
        run.warnings.append(RATE_LIMIT_WARNING)
        run.error_count += 1
        return {}
    except TranslationError as exc:
        logger.error("Translation failed for menu item %s: %s", entry.id, exc)
        run.error_count += 1
        return {}

    # Existing translations are manual edits; only empty slots are filled.
    fills: Dict[str, str] = {}
    for code in entry.missing_languages():
        value = result.translations.get(code)
        if value and value.strip():
            fills[field_name(code)] = value
    return fills


def build_default_translator() -> Translator:
    if TRANSLATE_ENDPOINT_URL:
        return HttpTranslationClient(TRANSLATE_ENDPOINT_URL, api_key=TRANSLATE_ENDPOINT_KEY)
    return OpenAITranslator()


def build_default_job_dependencies() -> Tuple[CatalogStore, Translator, MediaStore]:
    return SupabaseCatalogStore(), build_default_translator(), SupabaseMediaStore()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Backfill translations and convert menu images to WebP.")
    parser.add_argument(
        "--delay",
        type=float,
        default=DEFAULT_TRANSLATION_DELAY_SECONDS,
        help=f"Seconds to wait between translation calls (default: {DEFAULT_TRANSLATION_DELAY_SECONDS})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    def _print_progress(processed: int, total: int) -> None:
        print(f"Fixing... {processed}/{total}", file=sys.stderr)

    catalog, translator, media_store = build_default_job_dependencies()
    try:
        summary = run_auto_fix(
            catalog,
            translator,
            media_store,
            _print_progress,
            pacing=PacingPolicy(delay_seconds=args.delay),
        )
    except (CatalogError, ConfigurationError) as exc:
        logger.error("Auto-fix aborted: %s", exc)
        return 1

    for warning in summary.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    print(f"Auto Fix Complete: fixed {summary.fixed_count} items, {summary.error_count} errors.")
    return 0


__all__ = [
    "AutoFixSummary",
    "NormalizationRun",
    "PacingPolicy",
    "RATE_LIMIT_WARNING",
    "TranslationCircuitBreaker",
    "build_default_job_dependencies",
    "build_default_translator",
    "needs_image_fix",
    "needs_translation",
    "run_auto_fix",
]


if __name__ == "__main__":
    sys.exit(main())
