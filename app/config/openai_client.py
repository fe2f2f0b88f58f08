"""OpenAI client configuration for dish description translations."""

import os
from functools import lru_cache

from dotenv import load_dotenv
from openai import OpenAI

from app.config.errors import ConfigurationError

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
TRANSLATION_MODEL = os.getenv("TRANSLATION_MODEL", "gpt-4o-mini")
OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "30"))


@lru_cache(maxsize=1)
def get_openai_client() -> OpenAI:
    """Return the shared OpenAI client, failing before any call if the key is missing."""

    if not OPENAI_API_KEY:
        raise ConfigurationError("OPENAI_API_KEY is not configured")
    # Retries are the caller's decision (see the auto-fix pacing policy).
    return OpenAI(api_key=OPENAI_API_KEY, timeout=OPENAI_TIMEOUT_SECONDS, max_retries=0)


__all__ = ["get_openai_client", "TRANSLATION_MODEL", "OPENAI_TIMEOUT_SECONDS"]
