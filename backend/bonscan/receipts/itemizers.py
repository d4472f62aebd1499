"""
Retailer-specific line itemizers.

Some chains print "quantity × unit price" on the line above the product name,
which vision models regularly skip. Each supported layout is a strategy with the
same capability set: detect, extract_pairs, itemize.
"""
import logging
import re
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from bonscan.common.schemas import parse_amount
from bonscan.receipts.schemas import MAX_ITEM_PRICE, LineItem, is_noise_name

logger = logging.getLogger(__name__)


class QuantityPair(NamedTuple):
    quantity: Decimal
    unit_price: Decimal


class RetailerItemizer(ABC):
    """Strategy interface for recovering line items from a retailer's receipt layout."""

    retailer_name: str = ""

    @abstractmethod
    def detect(self, raw_text: str) -> bool:
        """True when the raw text comes from this retailer's layout."""

    @abstractmethod
    def extract_pairs(self, lines: Sequence[str]) -> Dict[int, QuantityPair]:
        """Maps line index -> quantity/unit price found on that line."""

    @abstractmethod
    def itemize(self, raw_text: str, existing_items: Iterable[LineItem]) -> List[LineItem]:
        """Returns items missing from existing_items (never duplicates)."""


def _sentence_case(name: str) -> str:
    """'СЛАДОЛЕД МИНИ КЛАСИК' -> 'Сладолед мини класик'"""
    lowered = name.lower()
    return lowered[:1].upper() + lowered[1:]


class LidlItemizer(RetailerItemizer):
    """
    LIDL Bulgaria layout:

        2.000 × 7.49
        СЛАДОЛЕД МИНИ КЛАСИК        14.98 Б

    The pair line belongs to the product line directly below it. The printed line
    total is authoritative and is never recomputed from quantity × unit price.
    """

    retailer_name = "Лидл"
    ITEM_CONFIDENCE = 0.85

    DETECT_PATTERN = re.compile(r"ЛИДЛ|LIDL", re.IGNORECASE)
    PAIR_PATTERN = re.compile(r"(\d+[.,]\d+)\s*[×xXхХ*]\s*(\d+[.,]\d+)")
    CYRILLIC_WORD = re.compile(r"[а-яА-Я]{3,}")
    # nazwa + cena na końcu linii, opcjonalnie waluta i kod ДДС (А/Б/В/Г)
    NAME_WITH_PRICE = re.compile(
        r"^(?P<name>.+?)\s+(?P<price>\d+[.,]\d{1,2})\s*(?:лв\.?|BGN)?\s*[АБВГABG]?\s*$",
        re.IGNORECASE,
    )
    NAME_CLEANUP = re.compile(r"[#<>]")

    EXCLUDED_LINE_PATTERNS: Tuple[re.Pattern, ...] = (
        # metadane sklepu
        re.compile(r"ЛИДЛ|LIDL|България|ЕООД|УНП|ЕИК|ЗДДС|Касиер|\bКаса\b|отчет|Ном:|Бон:", re.IGNORECASE),
        # sumy i płatności
        re.compile(r"ОБЩО|TOTAL|СУМА|ПЛАЩАНЕ|КАРТА|CASH|ПОЛУЧЕНИ|ВСИЧКО|МЕЖДИННА|РЕСТО", re.IGNORECASE),
        # daty, terminal, kursy walut
        re.compile(r"ДАТА|DATE|ВРЕМЕ|TIME|НОМЕР|БАНКА|КУРС|ЕВРО|\bТЕЛ\b|\bTID\b", re.IGNORECASE),
        # sama cena
        re.compile(r"^\d+[.,]\d+\s*(?:лв|BGN|[БB])?\s*$", re.IGNORECASE),
        # sam kod ДДС
        re.compile(r"^[АБВГABG]\s*$"),
        # numer lub komentarz
        re.compile(r"^#|^\d+$"),
    )

    MIN_LINE_LENGTH = 3
    MAX_LINE_LENGTH = 50

    def detect(self, raw_text: str) -> bool:
        return bool(raw_text) and bool(self.DETECT_PATTERN.search(raw_text))

    def extract_pairs(self, lines: Sequence[str]) -> Dict[int, QuantityPair]:
        pairs: Dict[int, QuantityPair] = {}
        for index, line in enumerate(lines):
            match = self.PAIR_PATTERN.search(line)
            if not match:
                continue
            quantity = parse_amount(match.group(1))
            unit_price = parse_amount(match.group(2))
            if quantity and unit_price and quantity > 0 and unit_price > 0:
                pairs[index] = QuantityPair(quantity=quantity, unit_price=unit_price)
        return pairs

    def _is_product_line(self, line: str) -> bool:
        if not (self.MIN_LINE_LENGTH <= len(line) <= self.MAX_LINE_LENGTH):
            return False
        if not self.CYRILLIC_WORD.search(line):
            return False
        return not any(pattern.search(line) for pattern in self.EXCLUDED_LINE_PATTERNS)

    def _split_name_and_price(self, line: str) -> Optional[Tuple[str, Decimal]]:
        match = self.NAME_WITH_PRICE.match(line)
        if not match:
            return None
        price = parse_amount(match.group("price"))
        if price is None:
            return None
        name = " ".join(self.NAME_CLEANUP.sub("", match.group("name")).split())
        return name, price

    def itemize(self, raw_text: str, existing_items: Iterable[LineItem]) -> List[LineItem]:
        lines = [line.strip() for line in raw_text.splitlines()]
        pairs = self.extract_pairs(lines)
        seen = {item.name.strip().lower() for item in existing_items}
        recovered: List[LineItem] = []

        for index, line in enumerate(lines):
            if index in pairs or not self._is_product_line(line):
                continue

            parsed = self._split_name_and_price(line)
            if parsed is None:
                continue
            raw_name, total_price = parsed

            if is_noise_name(raw_name) or not (Decimal("0") < total_price < MAX_ITEM_PRICE):
                continue

            name = _sentence_case(raw_name)
            if name.lower() in seen:
                continue

            pair = pairs.get(index - 1)
            if pair is not None:
                quantity, unit_price = pair.quantity, pair.unit_price
                if abs(quantity * unit_price - total_price) > Decimal("0.05"):
                    logger.debug(
                        f"LIDL pair {quantity} × {unit_price} does not match line total {total_price} for {name!r}"
                    )
            else:
                quantity, unit_price = Decimal("1"), total_price

            recovered.append(LineItem(
                name=name,
                total_price=total_price,
                quantity=quantity,
                unit_price=unit_price,
                confidence=self.ITEM_CONFIDENCE,
            ))
            seen.add(name.lower())

        logger.info(
            f"LIDL itemizer recovered {len(recovered)} item(s)",
            extra={"pairs_found": len(pairs)},
        )
        return recovered


DEFAULT_ITEMIZERS: Tuple[RetailerItemizer, ...] = (LidlItemizer(),)


def find_itemizers(raw_text: str, itemizers: Sequence[RetailerItemizer] = DEFAULT_ITEMIZERS) -> List[RetailerItemizer]:
    """Strategies whose layout matches the raw text."""
    return [itemizer for itemizer in itemizers if itemizer.detect(raw_text)]
