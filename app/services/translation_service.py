"""Translate dish descriptions into the nine menu languages with OpenAI."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol

from openai import APIConnectionError, APIStatusError, APITimeoutError, RateLimitError

from app.config.errors import ConfigurationError
from app.config.openai_client import TRANSLATION_MODEL, get_openai_client
from app.services.languages import LanguageCode, field_name

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "Translation service is temporarily busy. Please try again in a few moments."

SYSTEM_INSTRUCTIONS = (
    "You translate restaurant dish descriptions. "
    "Return ONLY a valid JSON object with no markdown formatting, no code blocks, just the raw JSON."
)

LANGUAGE_HINTS: Dict[LanguageCode, str] = {
    LanguageCode.KO: "Korean",
    LanguageCode.JA: "Japanese",
    LanguageCode.CN: "Chinese (Simplified)",
    LanguageCode.VI: "Vietnamese",
    LanguageCode.RU: "Russian",
    LanguageCode.KZ: "Kazakh",
    LanguageCode.ES: "Spanish",
    LanguageCode.FR: "French",
    LanguageCode.IT: "Italian",
}

LEADING_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
TRAILING_FENCE_PATTERN = re.compile(r"\s*```$")


class TranslationError(RuntimeError):
    """Base error for a translation that could not be produced."""


class RateLimited(TranslationError):
    """Raised when the remote service throttles us (HTTP 429)."""

    def __init__(self, message: str = RATE_LIMITED_MESSAGE) -> None:
        super().__init__(message)


class UpstreamError(TranslationError):
    """Raised for any other non-success answer, timeout, or transport failure."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(TranslationError):
    """Raised when the completion is missing, not JSON, or lacks a language."""


@dataclass(frozen=True)
class TranslationResult:
    """A complete set of translations: one string for every supported language."""

    translations: Mapping[LanguageCode, str]

    def __post_init__(self) -> None:
        missing = [code.value for code in LanguageCode if not isinstance(self.translations.get(code), str)]
        if missing:
            raise MalformedResponse(f"Translation missing for: {', '.join(missing)}")

    def __getitem__(self, code: LanguageCode) -> str:
        return self.translations[code]

    def as_fields(self) -> Dict[str, str]:
        return {field_name(code): self.translations[code] for code in LanguageCode}


class Translator(Protocol):
    def translate(self, text: str) -> TranslationResult:
        ...


def build_translation_prompt(text: str) -> str:
    structure = ",\n".join(
        f'  "{field_name(code)}": "{LANGUAGE_HINTS[code]} translation here"' for code in LanguageCode
    )
    return (
        "Translate the following food/dish description into these languages.\n\n"
        f'Description to translate: "{text}"\n\n'
        "Return exactly this JSON structure with translations:\n"
        f"{{\n{structure}\n}}"
    )


def strip_code_fences(raw_text: str) -> str:
    text = raw_text.strip()
    text = LEADING_FENCE_PATTERN.sub("", text)
    text = TRAILING_FENCE_PATTERN.sub("", text)
    return text.strip()


def parse_translation_payload(payload: Any) -> TranslationResult:
    """Coerce a decoded JSON payload into a :class:`TranslationResult`.

    Partial payloads are rejected: a response that omits a language is a
    parse failure, not a partial success.
    """

    if not isinstance(payload, dict):
        raise MalformedResponse("Translation response is not a JSON object.")
    translations: Dict[LanguageCode, str] = {}
    for code in LanguageCode:
        value = payload.get(field_name(code))
        if isinstance(value, str):
            translations[code] = value
    return TranslationResult(translations)


def parse_completion_text(raw_text: Optional[str]) -> TranslationResult:
    if not raw_text or not raw_text.strip():
        raise MalformedResponse("No translation generated")
    cleaned = strip_code_fences(raw_text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning("Translation JSON parsing failed. preview=%s", cleaned[:200])
        raise MalformedResponse("Translation response is not valid JSON.") from exc
    return parse_translation_payload(payload)


def translate_description(text: str) -> TranslationResult:
    """Request the nine translations of ``text`` in a single completion.

    No retry is attempted here; :class:`RateLimited` tells the caller to back
    off. :class:`ConfigurationError` is raised before any network call when the
    API key is missing.
    """

    client = get_openai_client()
    try:
        completion = client.chat.completions.create(
            model=TRANSLATION_MODEL,
            temperature=0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": SYSTEM_INSTRUCTIONS},
                {"role": "user", "content": build_translation_prompt(text)},
            ],
        )
    except RateLimitError as exc:
        logger.warning("Translation rate limited: %s", exc)
        raise RateLimited() from exc
    except APITimeoutError as exc:
        logger.error("Translation request timed out: %s", exc)
        raise UpstreamError("Translation request timed out.") from exc
    except APIConnectionError as exc:
        logger.error("Translation service unreachable: %s", exc)
        raise UpstreamError("Translation service unreachable.") from exc
    except APIStatusError as exc:
        logger.error("Translation API error (%s): %s", exc.status_code, exc)
        raise UpstreamError(f"Translation API error: {exc.status_code}", status_code=exc.status_code) from exc

    choices = completion.choices or []
    content = choices[0].message.content if choices else None
    return parse_completion_text(content)


class OpenAITranslator:
    """:class:`Translator` calling the model directly from this process."""

    def translate(self, text: str) -> TranslationResult:
        return translate_description(text)


__all__ = [
    "ConfigurationError",
    "MalformedResponse",
    "OpenAITranslator",
    "RateLimited",
    "RATE_LIMITED_MESSAGE",
    "TranslationError",
    "TranslationResult",
    "Translator",
    "UpstreamError",
    "parse_completion_text",
    "parse_translation_payload",
    "strip_code_fences",
    "translate_description",
]
