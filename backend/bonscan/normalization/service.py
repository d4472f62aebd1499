"""
Bulgarian product name normalizer.

Raw OCR string -> ProductComponents -> canonical display string, e.g.

    "VEREIA MLEKO 3.6% 1L"            -> "Мляко Верея 3.6% 1л"
    "хляб добруджа пълнозърнест 500гр" -> "Хляб Добруджа пълнозърнест 500г"

Stages run in a fixed order, each consuming matched tokens from the residual text:
punctuation -> size/unit -> percentage -> brand -> base product/type -> attributes.
"""
import logging
import re
from decimal import Decimal
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

from bonscan.normalization.dictionaries import default_dictionary
from bonscan.normalization.schemas import NormalizerDictionary, ProductComponents

logger = logging.getLogger(__name__)

_DASHES = re.compile(r"[‐-―−-]")
_QUOTES = re.compile(r"[\"'`‘’‚‛“”„«»]")
# przecinek/średnik, ale nie przecinek dziesiętny (3,6%)
_SEPARATORS = re.compile(r"(?<!\d)[,;]|[,;](?!\d)")
_TOKEN_EDGE_PUNCTUATION = ".,;:!?()[]{}/\\*+"
_NUMBER = r"\d+(?:[.,]\d+)?"
_PERCENT = re.compile(rf"(?<![\w.,])({_NUMBER})\s*%")
_LETTER = re.compile(r"[^\W\d_]")


def _phrase_pattern(phrase: str) -> re.Pattern:
    """Case-insensitive whole-word pattern; inner spaces match any whitespace."""
    body = r"\s+".join(re.escape(part) for part in phrase.split())
    return re.compile(rf"(?<!\w){body}(?!\w)", re.IGNORECASE)


def _remove_span(text: str, match: re.Match) -> str:
    return _collapse(text[:match.start()] + " " + text[match.end():])


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _to_decimal(raw: str) -> Decimal:
    return Decimal(raw.replace(",", "."))


def format_size(size: Decimal) -> str:
    """
    Bulgarian number formatting for sizes.

    Examples:
        >>> format_size(Decimal("1980"))
        '1980'
        >>> format_size(Decimal("1.50"))
        '1,5'
    """
    if size == size.to_integral_value():
        return str(int(size))
    return format(size.normalize(), "f").replace(".", ",")


class ProductNameNormalizer:
    """
    Pure, dictionary-driven normalizer. Instances are immutable after construction
    and safe to share between coroutines.
    """

    def __init__(self, dictionary: Optional[NormalizerDictionary] = None):
        self.dictionary = dictionary or default_dictionary()
        self._compile()

    def _compile(self) -> None:
        unit_aliases: Dict[str, str] = {}
        for short, aliases in self.dictionary.units.items():
            for alias in [short, *aliases]:
                unit_aliases[alias.lower()] = short
        self._unit_aliases = unit_aliases

        # najdłuższe aliasy najpierw ("литър" przed "л")
        units = "|".join(re.escape(alias) for alias in sorted(unit_aliases, key=len, reverse=True))
        unit_group = rf"(?P<unit>{units})(?![^\W\d_])"
        self._multipack = re.compile(
            rf"(?<![\w.,])(?P<count>\d+)\s*[xх×*]\s*(?P<value>{_NUMBER})\s*{unit_group}",
            re.IGNORECASE,
        )
        self._single_size = re.compile(rf"(?<![\w.,])(?P<value>{_NUMBER})\s*{unit_group}", re.IGNORECASE)

        self._brands: List[Tuple[str, re.Pattern]] = [
            (canonical, _phrase_pattern(alias))
            for group in self.dictionary.brands.values()
            for canonical, aliases in group.items()
            for alias in [canonical, *aliases]
        ]

        self._products: List[Tuple[str, str, int, re.Pattern]] = [
            (category, canonical, len(alias), _phrase_pattern(alias))
            for category, vocabulary in self.dictionary.products.items()
            for canonical, aliases in vocabulary.keywords.items()
            for alias in [canonical, *aliases]
        ]
        self._types: Dict[str, List[Tuple[str, re.Pattern]]] = {
            category: [(variant, _phrase_pattern(variant)) for variant in vocabulary.types]
            for category, vocabulary in self.dictionary.products.items()
        }

        self._attributes: List[Tuple[str, List[re.Pattern]]] = [
            (canonical, [_phrase_pattern(alias) for alias in [canonical, *aliases]])
            for canonical, aliases in self.dictionary.attributes.items()
        ]
        self._attribute_words = {
            alias.lower()
            for canonical, aliases in self.dictionary.attributes.items()
            for alias in [canonical, *aliases]
            if " " not in alias
        }

    # Stage 1
    def _clean(self, raw: str) -> str:
        text = _DASHES.sub(" ", raw)
        text = _QUOTES.sub(" ", text)
        text = _SEPARATORS.sub(" ", text)
        return _collapse(text)

    # Stage 2
    def _extract_size(self, text: str) -> Tuple[Optional[Decimal], Optional[str], str]:
        match = self._multipack.search(text)
        if match:
            size = int(match.group("count")) * _to_decimal(match.group("value"))
        else:
            match = self._single_size.search(text)
            if not match:
                return None, None, text
            size = _to_decimal(match.group("value"))

        if size <= 0:
            return None, None, _remove_span(text, match)
        unit = self._unit_aliases[match.group("unit").lower()]
        return size, unit, _remove_span(text, match)

    # Stage 3
    def _extract_percentage(self, text: str) -> Tuple[Optional[str], str]:
        match = _PERCENT.search(text)
        if not match:
            return None, text
        return f"{match.group(1).replace(',', '.')}%", _remove_span(text, match)

    # Stage 4
    def _extract_brand(self, text: str) -> Tuple[Optional[str], str]:
        for canonical, pattern in self._brands:
            match = pattern.search(text)
            if match:
                return canonical, _remove_span(text, match)
        return None, text

    # Stage 5
    def _identify_base_product(self, text: str) -> Tuple[Optional[str], Optional[str], str]:
        best: Optional[Tuple[int, str, str, re.Match]] = None
        for category, canonical, alias_length, pattern in self._products:
            match = pattern.search(text)
            if match and (best is None or alias_length > best[0]):
                best = (alias_length, category, canonical, match)

        if best is None:
            return self._fallback_base_product(text)

        _, category, canonical, match = best
        residual = _remove_span(text, match)

        found: Optional[Tuple[int, str, re.Match]] = None
        for variant, pattern in self._types.get(category, []):
            type_match = pattern.search(residual)
            if type_match and (found is None or type_match.start() < found[0]):
                found = (type_match.start(), variant, type_match)

        if found is None:
            return canonical, None, residual
        return canonical, found[1], _remove_span(residual, found[2])

    def _fallback_base_product(self, text: str) -> Tuple[Optional[str], Optional[str], str]:
        # "без захар" i inne synonimy atrybutów nie mogą zostać produktem bazowym
        scrubbed = text
        for _, patterns in self._attributes:
            for pattern in patterns:
                scrubbed = pattern.sub(" ", scrubbed)

        for token in scrubbed.split():
            word = token.strip(_TOKEN_EDGE_PUNCTUATION)
            if len(word) < 3 or not _LETTER.search(word) or word.lower() in self._attribute_words:
                continue
            match = _phrase_pattern(word).search(text)
            residual = _remove_span(text, match) if match else text
            return word[:1].upper() + word[1:].lower(), None, residual
        return None, None, text

    # Stage 6
    def _extract_attributes(self, text: str) -> Tuple[List[str], str]:
        found: List[str] = []
        for canonical, patterns in self._attributes:
            for pattern in patterns:
                match = pattern.search(text)
                while match:
                    if canonical not in found:
                        found.append(canonical)
                    text = _remove_span(text, match)
                    match = pattern.search(text)
        return found, text

    def parse(self, raw: str) -> ProductComponents:
        """
        Decomposes a raw product string.

        Args:
            raw: Product name as read from the receipt

        Returns:
            ProductComponents; for empty/unrecognizable input base_product is the trimmed original
        """
        original = (raw or "").strip()
        if not original:
            return ProductComponents(base_product="")

        text = self._clean(original)
        size, unit, text = self._extract_size(text)
        percentage, text = self._extract_percentage(text)
        brand, text = self._extract_brand(text)
        base_product, product_type, text = self._identify_base_product(text)
        attributes, text = self._extract_attributes(text)
        residual_words = [
            word for word in (token.strip(_TOKEN_EDGE_PUNCTUATION).casefold() for token in text.split()) if word
        ]

        key_attributes = ([percentage] if percentage else []) + attributes

        if not base_product:
            if not brand:
                return ProductComponents(base_product=original)
            # np. "coca cola 2л" - marka jest jedynym rzeczownikiem
            base_product, brand = brand, None

        return ProductComponents(
            base_product=base_product,
            brand=brand,
            type=product_type,
            key_attributes=key_attributes,
            size=size,
            unit=unit,
            residual_words=residual_words,
        )

    @staticmethod
    def assemble(components: ProductComponents) -> str:
        """Assembles `base [brand] [type] [attributes...] [size+unit]`."""
        parts = [components.base_product, components.brand, components.type, *components.key_attributes]
        if components.size is not None and components.unit:
            parts.append(f"{format_size(components.size)}{components.unit}")
        return _collapse(" ".join(part for part in parts if part))

    def normalize(self, raw: str) -> str:
        """
        Canonical display name for a raw product string.
        Never raises: on unexpected errors the trimmed original is returned.
        """
        original = (raw or "").strip()
        if not original:
            return original
        try:
            return self.assemble(self.parse(original)) or original
        except Exception as e:
            logger.error(f"Product name normalization failed for {original!r}: {e}", exc_info=True)
            return original

    def normalization_key(self, raw: str) -> str:
        """
        Lookup key for user corrections: canonical name plus the unrecognized words, casefolded.

        The display name drops residual words ("Паста за зъби Колгейт" -> "Паста"), the key keeps
        them so unrelated products with the same base product do not share a correction.
        """
        original = (raw or "").strip()
        if not original:
            return original
        try:
            components = self.parse(original)
            return _collapse(" ".join([self.assemble(components), *components.residual_words])).casefold()
        except Exception as e:
            logger.error(f"Correction key failed for {original!r}: {e}", exc_info=True)
            return _collapse(self._clean(original)).casefold()


@lru_cache(maxsize=1)
def get_normalizer() -> ProductNameNormalizer:
    return ProductNameNormalizer()


def normalize(raw: str) -> str:
    return get_normalizer().normalize(raw)


def parse(raw: str) -> ProductComponents:
    return get_normalizer().parse(raw)
