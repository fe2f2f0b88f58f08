"""Supported menu languages and the column names that hold them."""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Mapping, Optional


class LanguageCode(str, Enum):
    """Target languages for dish descriptions (the source text is English)."""

    KO = "ko"
    JA = "ja"
    CN = "cn"
    VI = "vi"
    RU = "ru"
    KZ = "kz"
    ES = "es"
    FR = "fr"
    IT = "it"


LANGUAGE_LABELS: Dict[LanguageCode, str] = {
    LanguageCode.KO: "한국어",
    LanguageCode.JA: "日本語",
    LanguageCode.CN: "中文",
    LanguageCode.VI: "Tiếng Việt",
    LanguageCode.RU: "Русский",
    LanguageCode.KZ: "Қазақша",
    LanguageCode.ES: "Español",
    LanguageCode.FR: "Français",
    LanguageCode.IT: "Italiano",
}


def field_name(code: LanguageCode) -> str:
    return f"description_{code.value}"


TRANSLATION_FIELDS = tuple(field_name(code) for code in LanguageCode)


def parse_language(value: Optional[str]) -> Optional[LanguageCode]:
    """Return the language for a code such as ``"fr"``; ``None`` for English or unknown codes."""

    if not value:
        return None
    try:
        return LanguageCode(value.strip().lower())
    except ValueError:
        return None


def empty_translations() -> Dict[LanguageCode, Optional[str]]:
    return {code: None for code in LanguageCode}


def translations_from_row(row: Mapping[str, object]) -> Dict[LanguageCode, Optional[str]]:
    """Read the nine ``description_<code>`` columns, mapping blanks and non-strings to ``None``."""

    translations = empty_translations()
    for code in LanguageCode:
        value = row.get(field_name(code))
        if isinstance(value, str) and value.strip():
            translations[code] = value
    return translations


def missing_languages(translations: Mapping[LanguageCode, Optional[str]]) -> List[LanguageCode]:
    return [code for code in LanguageCode if not (translations.get(code) or "").strip()]


__all__ = [
    "LanguageCode",
    "LANGUAGE_LABELS",
    "TRANSLATION_FIELDS",
    "empty_translations",
    "field_name",
    "missing_languages",
    "parse_language",
    "translations_from_row",
]
