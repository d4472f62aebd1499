"""
Factory functions for OCR collaborators.

The Gemini client is configured once per process; without GEMINI_API_KEY the raw
text extractor degrades to the unavailable fallback instead of failing at startup.
"""
import logging
from functools import lru_cache
from typing import Optional

import google.generativeai as genai

from bonscan.config import settings
from bonscan.common.exceptions import ConfigurationError
from bonscan.ocr.services import (
    GeminiDraftGenerator,
    GeminiRawTextExtractor,
    RawTextExtractor,
    UnavailableRawTextExtractor,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_gemini_model() -> Optional[genai.GenerativeModel]:
    if not settings.GEMINI_API_KEY:
        return None
    # Konfiguracja Gemini API (globalna dla biblioteki)
    genai.configure(api_key=settings.GEMINI_API_KEY)
    return genai.GenerativeModel(settings.GEMINI_MODEL)


@lru_cache(maxsize=1)
def get_raw_text_extractor() -> RawTextExtractor:
    model = get_gemini_model()
    if model is None:
        logger.warning("GEMINI_API_KEY not set, raw text extraction disabled (degraded mode)")
        return UnavailableRawTextExtractor("GEMINI_API_KEY is not configured")
    return GeminiRawTextExtractor(model=model)


def get_draft_generator() -> GeminiDraftGenerator:
    """
    Raises:
        ConfigurationError: no Gemini credentials (a draft cannot be produced at all)
    """
    model = get_gemini_model()
    if model is None:
        raise ConfigurationError("GEMINI_API_KEY is required to generate receipt drafts")
    return GeminiDraftGenerator(model=model)
