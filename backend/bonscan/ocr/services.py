import datetime
import json
import logging
import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
)

from bonscan.config import settings
from bonscan.common.schemas import to_decimal
from bonscan.ocr.exceptions import (
    ExtractionUnavailable,
    FileValidationError,
    StructuringFailure,
)
from bonscan.ocr.schemas import LLMReceiptExtraction, LLMReceiptItem
from bonscan.receipts.itemizers import LidlItemizer
from bonscan.receipts.schemas import (
    MAX_ITEM_PRICE,
    LineItem,
    ProvenanceFlags,
    ReceiptDraft,
    is_noise_name,
)

logger = logging.getLogger(__name__)

# Magic bytes dla obsługiwanych formatów obrazów
ALLOWED_MAGIC_BYTES = {
    b'\xff\xd8\xff': 'image/jpeg',
    b'\x89\x50\x4e\x47': 'image/png',
    b'\x52\x49\x46\x46': 'image/webp',
}

_CODE_FENCE_START = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_CODE_FENCE_END = re.compile(r"\s*```\s*$")
# "7.49 ..." jako nazwa = fragment ceny, nie produkt
_PRICE_FRAGMENT = re.compile(r"^\d+[.,]\d+")

DEFAULT_DRAFT_CONFIDENCE = 90
MAX_DRAFT_CONFIDENCE = 98
DRAFT_ITEM_CONFIDENCE = 0.95
UNIT_PRICE_TOLERANCE = Decimal("0.01")


def validate_image(image: bytes, max_size: Optional[int] = None) -> str:
    """
    Waliduje obraz: magic bytes i rozmiar.

    Returns:
        Wykryty typ MIME

    Raises:
        FileValidationError: Jeśli walidacja się nie powiedzie
    """
    max_size = max_size or settings.OCR_MAX_FILE_SIZE

    if len(image) < 4:
        raise FileValidationError("Plik jest zbyt mały lub uszkodzony")

    magic_bytes = image[:4]
    mime_type = None
    for magic, mime in ALLOWED_MAGIC_BYTES.items():
        if magic_bytes.startswith(magic):
            mime_type = mime
            break

    if not mime_type:
        raise FileValidationError("Invalid file format. Allowed: JPEG, PNG, WEBP")

    if len(image) > max_size:
        raise FileValidationError(f"File too large. Max size: {max_size / (1024 * 1024)}MB")

    return mime_type


def _should_retry_gemini_error(exception: BaseException) -> bool:
    """
    Sprawdza, czy błąd Gemini powinien być retryowany.

    NIE retryujemy:
    - InvalidArgument (błędne żądanie)
    - PermissionDenied (brak uprawnień)
    - błędów parsowania odpowiedzi (powtórka da ten sam wynik)

    Retryujemy:
    - ResourceExhausted (429 Too Many Requests)
    - ServiceUnavailable (503)
    - InternalServerError (500)
    - DeadlineExceeded (Timeout)
    """
    if isinstance(exception, (
        google_exceptions.ResourceExhausted,
        google_exceptions.ServiceUnavailable,
        google_exceptions.InternalServerError,
        google_exceptions.DeadlineExceeded,
        google_exceptions.Aborted,
    )):
        logger.warning(f"Gemini API error (will retry): {str(exception)}")
        return True

    return False


def sanitize_schema(schema: Any) -> None:
    """
    Usuwa klucze 'default', 'title' i '$defs' ze schematu JSON Schema,
    ponieważ API Gemini (Protobuf) ich nie obsługuje.
    Rozwija referencje ($ref) przez inlining definicji, a Optional[X]
    (anyOf z null) zamienia na X z flagą nullable.
    Działa rekurencyjnie (mutuje słownik).
    """
    if isinstance(schema, dict):
        defs = schema.pop('$defs', {})
        if defs:
            _resolve_refs(schema, defs)

        variants = schema.pop('anyOf', None)
        if variants:
            non_null = [variant for variant in variants if variant.get('type') != 'null']
            if non_null:
                schema.update(non_null[0])
            if len(non_null) < len(variants):
                schema['nullable'] = True

        for key in ['default', 'title', 'additionalProperties']:
            schema.pop(key, None)

        for value in schema.values():
            sanitize_schema(value)
    elif isinstance(schema, list):
        for item in schema:
            sanitize_schema(item)


def _resolve_refs(schema: Any, defs: Dict[str, Any]) -> None:
    """
    Rekurencyjnie zamienia $ref na definicje z $defs (inlining).
    Gemini nie obsługuje $ref/$defs w JSON Schema.
    """
    if isinstance(schema, dict):
        if '$ref' in schema:
            ref_name = schema.pop('$ref').split('/')[-1]
            if ref_name in defs:
                schema.update(defs[ref_name])
                _resolve_refs(schema, defs)

        for value in schema.values():
            _resolve_refs(value, defs)
    elif isinstance(schema, list):
        for item in schema:
            _resolve_refs(item, defs)


def _strip_code_fences(text: str) -> str:
    return _CODE_FENCE_END.sub("", _CODE_FENCE_START.sub("", text.strip())).strip()


class RawTextExtractor(ABC):
    """Source of the plain OCR transcription of a receipt image."""

    @abstractmethod
    async def extract_text(self, image: bytes, mime_type: str) -> str:
        """
        Raises:
            ExtractionUnavailable: text could not be obtained
        """


class UnavailableRawTextExtractor(RawTextExtractor):
    """Used when no OCR backend is configured; the pipeline runs in degraded mode."""

    def __init__(self, reason: str = "Raw text extraction is not configured"):
        self.reason = reason

    async def extract_text(self, image: bytes, mime_type: str) -> str:
        raise ExtractionUnavailable(self.reason)


class GeminiRawTextExtractor(RawTextExtractor):
    """Plain transcription of the receipt with Gemini (no structure, line breaks kept)."""

    PROMPT = (
        "Transcribe ALL text printed on this Bulgarian receipt exactly as it appears, "
        "line by line, preserving line breaks, Cyrillic characters, numbers and symbols. "
        "Do not translate, summarize, correct or format the text. Return plain text only."
    )

    def __init__(self, model: genai.GenerativeModel):
        self.model = model

    async def extract_text(self, image: bytes, mime_type: str) -> str:
        try:
            text = await self._call_gemini_with_retry([self.PROMPT, {"mime_type": mime_type, "data": image}])
        except ExtractionUnavailable:
            raise
        except Exception as e:
            raise ExtractionUnavailable(f"Raw text extraction failed: {str(e)}") from e

        logger.info("Raw text extracted", extra={"chars": len(text)})
        return text

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception(_should_retry_gemini_error),
        reraise=True
    )
    async def _call_gemini_with_retry(self, parts: List[Any]) -> str:
        response = await self.model.generate_content_async(
            parts,
            generation_config=genai.GenerationConfig(temperature=0.0),
            request_options={"timeout": settings.GEMINI_TIMEOUT},
        )
        text = (response.text or "").strip()
        if not text:
            raise ExtractionUnavailable("Gemini zwróciło pusty tekst")
        return text


class GeminiDraftGenerator:
    """
    Vision model -> ReceiptDraft.

    The raw OCR text (if any) is passed as context so the model can anchor totals
    and layout-specific quantity lines; the heuristic reconciler still has the
    final word on total, retailer and date.
    """

    def __init__(self, model: genai.GenerativeModel):
        self.model = model

    async def generate(self, image: bytes, mime_type: str, raw_text: str = "") -> ReceiptDraft:
        """
        Args:
            image: Receipt image bytes (already validated)
            mime_type: Detected MIME type
            raw_text: Raw OCR transcription, "" in degraded mode

        Returns:
            ReceiptDraft (unvalidated, goes to reconciliation and the quality gate)

        Raises:
            StructuringFailure: API failure after retries, empty/invalid response
        """
        logger.info("Draft generation started", extra={"raw_text_chars": len(raw_text)})
        parts = self._build_prompt_parts({"mime_type": mime_type, "data": image}, raw_text)

        try:
            llm_response = await self._call_gemini_with_retry(parts)
        except StructuringFailure:
            raise
        except Exception as e:
            logger.error("Gemini API error", exc_info=True, extra={"error": str(e)})
            raise StructuringFailure(f"Błąd komunikacji z Gemini API: {str(e)}") from e

        draft = self._parse_response(llm_response, used_raw_text=bool(raw_text.strip()))
        logger.info(
            "Draft generation completed",
            extra={"items_count": len(draft.items), "retailer": draft.retailer},
        )
        return draft

    def _build_prompt_parts(self, image_part: Dict[str, Any], raw_text: str) -> List[Any]:
        lidl_rules = ""
        if raw_text and LidlItemizer.DETECT_PATTERN.search(raw_text):
            lidl_rules = """
SPECIAL LIDL RECEIPT RULES:
- Quantity and unit price often appear ABOVE the product name
- Pattern: "2.000 × 7.49" appears on the line BEFORE "СЛАДОЛЕД МИНИ КЛАСИК   14.98"
- ALWAYS check the line above each product name for quantity × price patterns
- LIDL receipts typically have 25-35 items, extract all of them
"""

        raw_context = ""
        if raw_text.strip():
            raw_context = f"""
RAW OCR TEXT (context, may contain errors):
{raw_text[:settings.OCR_RAW_TEXT_PROMPT_CHARS]}
"""

        system_prompt = f"""You are an expert OCR system specialized in reading Bulgarian retail receipts (касови бележки).

Your task is to extract:
1. retailer: store name from the header (e.g. Лидл, Билла, Кауфланд)
2. total_amount: the amount after "ОБЩА СУМА", "ВСИЧКО" or "TOTAL" (in BGN)
3. purchase_date: YYYY-MM-DD. Bulgarian receipts print DD.MM.YYYY ("01.10.2025" = 2025-10-01).
   Use the exact date from the receipt, never today's date.
4. items: every purchased product with
   - name (exactly as printed)
   - total_price: the line total the customer pays
   - quantity (1 for single items)
   - unit_price: price per unit, unit_price × quantity = total_price
5. confidence: 0-100, your confidence in the whole extraction
{lidl_rules}
Rules:
- Extract ONLY real products. Ignore currency symbols (лв, BGN), VAT codes (А, Б, G, B),
  price fragments, addresses, receipt numbers and totals/subtotals.
- Each item price is realistic (0.50 to 100.00 лв).
{raw_context}"""
        return [system_prompt, image_part]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception(_should_retry_gemini_error),
        reraise=True
    )
    async def _call_gemini_with_retry(self, parts: List[Any]) -> LLMReceiptExtraction:
        """
        Wywołuje Gemini API z automatycznym retry (tylko błędy przejściowe).
        """
        schema = LLMReceiptExtraction.model_json_schema()
        sanitize_schema(schema)

        response = await self.model.generate_content_async(
            parts,
            generation_config=genai.GenerationConfig(
                response_mime_type="application/json",
                response_schema=schema,
                temperature=settings.GEMINI_TEMPERATURE,
            ),
            request_options={"timeout": settings.GEMINI_TIMEOUT},
        )

        if not response.text:
            raise StructuringFailure("Gemini zwróciło pustą odpowiedź")

        try:
            parsed_data = json.loads(_strip_code_fences(response.text))
            return LLMReceiptExtraction.model_validate(parsed_data)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse Gemini JSON response: {str(e)}", exc_info=True)
            raise StructuringFailure(f"Nieprawidłowa odpowiedź JSON z Gemini API: {str(e)}") from e
        except ValidationError as e:
            logger.error(f"Gemini response does not match schema: {str(e)}")
            raise StructuringFailure(f"Odpowiedź Gemini niezgodna ze schematem: {str(e)}") from e

    def _parse_item(self, item: LLMReceiptItem) -> Optional[LineItem]:
        name = item.name.strip()
        if is_noise_name(name) or _PRICE_FRAGMENT.match(name):
            return None

        total_price = to_decimal(item.total_price)
        if not Decimal("0") < total_price < MAX_ITEM_PRICE:
            return None

        quantity = to_decimal(item.quantity) if item.quantity else Decimal("1")
        if quantity <= 0:
            quantity = Decimal("1")

        calculated = total_price / quantity
        unit_price = to_decimal(item.unit_price) if item.unit_price else Decimal("0")
        if unit_price <= 0 or abs(unit_price - calculated) > UNIT_PRICE_TOLERANCE:
            if unit_price > 0:
                logger.debug(f"Correcting unit price for '{name}': model said {unit_price}, calculated {calculated}")
            unit_price = calculated

        return LineItem(
            name=name,
            total_price=total_price,
            quantity=quantity,
            unit_price=unit_price.quantize(Decimal("0.01")),
            confidence=DRAFT_ITEM_CONFIDENCE,
        )

    def _parse_date(self, raw: Optional[str]) -> Optional[datetime.date]:
        if not raw:
            return None
        try:
            return datetime.date.fromisoformat(raw.strip()[:10])
        except ValueError:
            logger.warning(f"Failed to parse date: {raw}")
            return None

    def _parse_response(self, llm_response: LLMReceiptExtraction, used_raw_text: bool) -> ReceiptDraft:
        """
        Konwertuje LLMReceiptExtraction na ReceiptDraft (float -> Decimal, filtr szumu).
        """
        items = [
            line_item
            for line_item in (self._parse_item(item) for item in llm_response.items)
            if line_item is not None
        ]
        dropped = len(llm_response.items) - len(items)
        if dropped:
            logger.debug(f"Dropped {dropped} noise items from model output")

        confidence = min(llm_response.confidence or DEFAULT_DRAFT_CONFIDENCE, MAX_DRAFT_CONFIDENCE)

        return ReceiptDraft(
            retailer=(llm_response.retailer or "").strip()[:200],
            total=to_decimal(llm_response.total_amount),
            date=self._parse_date(llm_response.purchase_date),
            items=items,
            confidence=max(confidence, 0),
            provenance=ProvenanceFlags(used_vision_model=True, used_raw_text=used_raw_text),
        )
