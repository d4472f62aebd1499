"""
Heuristic reconciliation of a vision-model draft against raw OCR text.

Deterministic Bulgarian text patterns (totals, chain names, dates) confirm or
overwrite what the model guessed. Every function here is pure: the draft passed
in is never mutated, a copy is returned.
"""
import logging
import re
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from bonscan.common.schemas import parse_amount
from bonscan.receipts.schemas import MAX_RECEIPT_TOTAL, MAX_RECEIPT_YEAR, MIN_RECEIPT_YEAR, ReceiptDraft

logger = logging.getLogger(__name__)

# Kolejność = priorytet
TOTAL_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"ОБЩА\s*СУМА[:\s]*(\d+[.,]\d{1,2})", re.IGNORECASE),
    re.compile(r"ВСИЧКО[:\s]*(\d+[.,]\d{1,2})", re.IGNORECASE),
    re.compile(r"TOTAL[:\s]*(\d+[.,]\d{1,2})", re.IGNORECASE),
    re.compile(r"К\s*ПЛАЩАНЕ[:\s]*(\d+[.,]\d{1,2})", re.IGNORECASE),
    re.compile(r"ЗА\s*ПЛАЩАНЕ[:\s]*(\d+[.,]\d{1,2})", re.IGNORECASE),
)

# Linie terminala płatniczego, numery kart, godziny - nie są kwotą paragonu
FALLBACK_EXCLUDED_LINE = re.compile(
    r"БОРИКА|BORICA|MASTER|VISA|MAESTRO|XXXX|\*{4}|RRN|AUTH|\d{2}:\d{2}(?::\d{2})?",
    re.IGNORECASE,
)
DECIMAL_TOKEN = re.compile(r"(?<![\d.,])(\d+[.,]\d{2})(?![\d])")
FALLBACK_MIN_TOTAL = Decimal("10")

TOTAL_AGREEMENT_TOLERANCE = Decimal("0.1")
ITEMS_SUM_WARNING_TOLERANCE = Decimal("2.0")

RETAILER_SCAN_LINES = 10
RETAILER_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"ЛИДЛ|LIDL", re.IGNORECASE), "Лидл"),
    (re.compile(r"БИЛЛА|BILLA", re.IGNORECASE), "Билла"),
    (re.compile(r"КАУФЛАНД|KAUFLAND", re.IGNORECASE), "Кауфланд"),
    (re.compile(r"ФАНТАСТИКО|FANTASTICO", re.IGNORECASE), "Фантастико"),
    (re.compile(r"\bМЕТРО\b|\bMETRO\b", re.IGNORECASE), "Метро"),
    (re.compile(r"\bОМВ\b|\bOMV\b", re.IGNORECASE), "OMV"),
    (re.compile(r"Т[\s-]?МАРКЕТ|T[\s-]?MARKET", re.IGNORECASE), "Т Маркет"),
)

DATE_PATTERN = re.compile(r"(?<!\d)(\d{1,2})[./-](\d{1,2})[./-](\d{4}|\d{2})(?!\d)")
YEAR_PIVOT = 50

CONFIRMATION_BONUS = 5


def _lines(raw_text: str) -> List[str]:
    return [line.strip() for line in raw_text.splitlines() if line.strip()]


def extract_total(raw_text: str) -> Tuple[Optional[Decimal], bool]:
    """
    Recovers the receipt total from raw text.

    Returns:
        (total, matched_pattern) - matched_pattern is False when the value
        comes from the largest-amount fallback, (None, False) when nothing found.
    """
    lines = _lines(raw_text)

    for pattern in TOTAL_PATTERNS:
        for line in lines:
            match = pattern.search(line)
            if not match:
                continue
            amount = parse_amount(match.group(1))
            if amount is not None and Decimal("0") < amount < MAX_RECEIPT_TOTAL:
                logger.debug(f"Total found by pattern {pattern.pattern!r}: {amount}")
                return amount, True

    candidates = [
        amount
        for line in lines
        if not FALLBACK_EXCLUDED_LINE.search(line)
        for token in DECIMAL_TOKEN.findall(line)
        if (amount := parse_amount(token)) is not None
        and FALLBACK_MIN_TOTAL <= amount <= MAX_RECEIPT_TOTAL
    ]
    if candidates:
        return max(candidates), False

    return None, False


def extract_retailer(raw_text: str) -> Optional[str]:
    """Canonical chain name from the receipt header (first lines only)."""
    header = _lines(raw_text)[:RETAILER_SCAN_LINES]
    for line in header:
        for pattern, canonical in RETAILER_PATTERNS:
            if pattern.search(line):
                return canonical
    return None


def _normalize_year(year: int) -> int:
    if year < 100:
        return 2000 + year if year < YEAR_PIVOT else 1900 + year
    return year


def extract_date(raw_text: str) -> Optional[date]:
    """
    First structurally valid DD.MM.YYYY / DD.MM.YY date in the text.

    Examples:
        >>> extract_date("ДАТА: 15.03.2024 14:22")
        datetime.date(2024, 3, 15)
        >>> extract_date("31/02/24") is None
        True
    """
    for line in _lines(raw_text):
        for match in DATE_PATTERN.finditer(line):
            day, month = int(match.group(1)), int(match.group(2))
            year = _normalize_year(int(match.group(3)))
            if not (1 <= day <= 31 and 1 <= month <= 12 and MIN_RECEIPT_YEAR <= year <= MAX_RECEIPT_YEAR):
                continue
            try:
                return date(year, month, day)
            except ValueError:
                # 31.02 i podobne
                continue
    return None


def reconcile(
    raw_text: str,
    draft: ReceiptDraft,
    today: Callable[[], date] = date.today,
) -> ReceiptDraft:
    """
    Cross-validates retailer, total and date of the draft against raw OCR text.

    Args:
        raw_text: Plain text from the Raw Text Extractor
        draft: Draft from the Structured Draft Generator
        today: Clock used when no date can be found in the text

    Returns:
        New ReceiptDraft with reconciled fields and provenance flags
    """
    updates = {}
    provenance = draft.provenance.model_copy(update={"used_raw_text": True, "reconciled": True})
    confidence = draft.confidence

    # 1. Total
    text_total, from_pattern = extract_total(raw_text)
    if text_total is not None:
        if abs(text_total - draft.total) <= TOTAL_AGREEMENT_TOLERANCE:
            provenance.total_confirmed = True
            confidence += CONFIRMATION_BONUS
        elif from_pattern or draft.total <= 0:
            logger.info(f"Total overwritten from text: {draft.total} -> {text_total}")
            updates["total"] = text_total
            provenance.total_confirmed = from_pattern
            confidence += CONFIRMATION_BONUS if from_pattern else 0
        else:
            logger.debug(
                f"Fallback total {text_total} disagrees with draft total {draft.total}, keeping draft"
            )

    # 2. Retailer
    text_retailer = extract_retailer(raw_text)
    if text_retailer and len(text_retailer) > len(draft.retailer):
        logger.info(f"Retailer overwritten from text: {draft.retailer!r} -> {text_retailer!r}")
        updates["retailer"] = text_retailer

    # 3. Date
    text_date = extract_date(raw_text)
    if text_date is not None:
        if text_date != draft.date:
            logger.info(f"Date overwritten from text: {draft.date} -> {text_date}")
        updates["date"] = text_date
        provenance.date_confirmed = True
        confidence += CONFIRMATION_BONUS
    else:
        updates["date"] = today()
        provenance.date_confirmed = False
        logger.warning("No date found in raw text, defaulting to today (unconfirmed)")

    updates["provenance"] = provenance
    updates["confidence"] = min(confidence, 100)

    result = draft.model_copy(update=updates)

    items_sum = result.items_sum
    if result.items and abs(items_sum - result.total) > ITEMS_SUM_WARNING_TOLERANCE:
        logger.warning(
            f"Items sum {items_sum} differs from total {result.total}",
            extra={"items_count": len(result.items), "retailer": result.retailer},
        )

    return result
