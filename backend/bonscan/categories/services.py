import asyncio
import logging
import re
from typing import List, Optional, Sequence, Tuple

from bonscan.config import settings
from bonscan.categories.corrections import CorrectionStore
from bonscan.categories.exceptions import (
    CorrectionLookupFailure,
    CorrectionPersistFailure,
    UnknownCategoryError,
)
from bonscan.categories.schemas import (
    CategorizationMethod,
    Category,
    CategoryAssignment,
    CorrectionRecord,
    KeywordRulesData,
)
from bonscan.categories.taxonomy import Taxonomy, default_taxonomy, load_keyword_rules
from bonscan.normalization.service import ProductNameNormalizer, get_normalizer

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s]")


def _keyword_pattern(keyword: str, stem: bool = False) -> re.Pattern:
    """Whole-word match; stems match any word starting with them ("пилешк" -> "пилешко", "пилешки")."""
    body = r"\s+".join(re.escape(part) for part in keyword.casefold().split())
    if stem:
        return re.compile(rf"(?<!\w){body}")
    return re.compile(rf"(?<!\w){body}(?!\w)")


class CategorizationEngine:
    """
    Assigns a category + confidence + method to a product name.

    Resolution order (first applicable wins):
    1. User correction (exact correction key)   -> confidence 1.0, method user_correction
    2. Keyword rules / retailer private labels -> rule confidence, method keyword_rule
    3. Fallback category ("Други")             -> low confidence, method default
    """

    def __init__(
        self,
        correction_store: CorrectionStore,
        normalizer: Optional[ProductNameNormalizer] = None,
        taxonomy: Optional[Taxonomy] = None,
        rules: Optional[KeywordRulesData] = None,
    ):
        """
        Args:
            correction_store: Read/write access to user corrections
            normalizer: Product name normalizer (correction keys, keyword text)
            taxonomy: Category list; defaults to the bundled taxonomy
            rules: Keyword table; defaults to the bundled rules filtered by taxonomy
        """
        self.correction_store = correction_store
        self.normalizer = normalizer or get_normalizer()
        self.taxonomy = taxonomy or default_taxonomy()
        rules = rules or load_keyword_rules(taxonomy=self.taxonomy)

        self._keyword_rules: List[Tuple[str, int, re.Pattern]] = [
            (category_id, len(keyword), _keyword_pattern(keyword, stem=stem))
            for table, stem in ((rules.rules, False), (rules.stems, True))
            for category_id, keywords in table.items()
            if category_id in self.taxonomy
            for keyword in keywords
        ]
        self._store_patterns: List[Tuple[Tuple[str, ...], List[Tuple[str, re.Pattern]]]] = [
            (
                tuple(retailer.casefold() for retailer in group.retailers),
                [
                    (category_id, re.compile(rf"(?<!\w){re.escape(token.casefold())}(?!\w)"))
                    for token, category_id in group.patterns.items()
                    if category_id in self.taxonomy
                ],
            )
            for group in rules.store_patterns
        ]

    def _assignment(self, category: Category, confidence: float, method: CategorizationMethod) -> CategoryAssignment:
        return CategoryAssignment(
            category_id=category.id,
            category_name=category.name,
            confidence=confidence,
            method=method,
        )

    def _match_text(self, product_name: str, normalized_name: str) -> str:
        # dopasowujemy zarówno postać kanoniczną, jak i surową (rezydua normalizatora)
        text = f"{normalized_name} {product_name}".casefold()
        return " ".join(_NON_WORD.sub(" ", text).split())

    async def _from_correction(self, key: str, user_id: Optional[str]) -> Optional[CategoryAssignment]:
        try:
            record = await self.correction_store.get(key, user_id=user_id)
        except CorrectionLookupFailure as e:
            logger.warning(f"Correction lookup failed for '{key}', falling back to rules: {e}", exc_info=True)
            return None

        if record is None:
            return None

        try:
            category = self.taxonomy.resolve(record.category_id)
        except UnknownCategoryError:
            logger.warning(
                f"Correction for '{key}' points to unknown category '{record.category_id}'. Przechodzę do reguł."
            )
            return None

        logger.debug(f"User correction applied: '{key}' -> {category.id}")
        return self._assignment(category, record.confidence, CategorizationMethod.USER_CORRECTION)

    def _from_keywords(self, text: str) -> Optional[CategoryAssignment]:
        best: Optional[Tuple[int, str]] = None
        for category_id, keyword_length, pattern in self._keyword_rules:
            if (best is None or keyword_length > best[0]) and pattern.search(text):
                best = (keyword_length, category_id)

        if best is None:
            return None
        return self._assignment(
            self.taxonomy.resolve(best[1]),
            settings.CATEGORIZATION_KEYWORD_CONFIDENCE,
            CategorizationMethod.KEYWORD_RULE,
        )

    def _from_store_patterns(self, text: str, retailer: Optional[str]) -> Optional[CategoryAssignment]:
        if not retailer:
            return None
        retailer_key = retailer.casefold()
        for retailers, patterns in self._store_patterns:
            if not any(alias in retailer_key for alias in retailers):
                continue
            for category_id, pattern in patterns:
                if pattern.search(text):
                    return self._assignment(
                        self.taxonomy.resolve(category_id),
                        settings.CATEGORIZATION_STORE_PATTERN_CONFIDENCE,
                        CategorizationMethod.KEYWORD_RULE,
                    )
        return None

    def _default(self) -> CategoryAssignment:
        category = self.taxonomy.get(settings.CATEGORIZATION_FALLBACK_CATEGORY_ID) or self.taxonomy.fallback
        return self._assignment(category, settings.CATEGORIZATION_DEFAULT_CONFIDENCE, CategorizationMethod.DEFAULT)

    async def categorize(
        self,
        product_name: str,
        retailer: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CategoryAssignment:
        """
        Categorizes a single product (raw or already normalized name).

        Args:
            product_name: Product name as printed or normalized
            retailer: Retailer name, enables private-label patterns
            user_id: Enables the user's own corrections before global ones

        Returns:
            CategoryAssignment (never raises for store problems)
        """
        normalized_name = self.normalizer.normalize(product_name)
        key = self.normalizer.normalization_key(product_name)

        if key:
            assignment = await self._from_correction(key, user_id)
            if assignment is not None:
                return assignment

        text = self._match_text(product_name or "", normalized_name)
        assignment = self._from_keywords(text) or self._from_store_patterns(text, retailer)
        if assignment is not None:
            return assignment

        logger.debug(f"No rule matched '{product_name}', using fallback category")
        return self._default()

    async def categorize_many(
        self,
        product_names: Sequence[str],
        retailer: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[CategoryAssignment]:
        """
        Categorizes products in fixed-size concurrent batches with a pause between batches.
        Output order equals input order.
        """
        batch_size = max(1, settings.CATEGORIZATION_BATCH_SIZE)
        results: List[CategoryAssignment] = []

        for start in range(0, len(product_names), batch_size):
            if start > 0 and settings.CATEGORIZATION_BATCH_DELAY > 0:
                await asyncio.sleep(settings.CATEGORIZATION_BATCH_DELAY)

            batch = product_names[start:start + batch_size]
            results.extend(await asyncio.gather(*(
                self.categorize(name, retailer=retailer, user_id=user_id) for name in batch
            )))
            logger.debug(f"Categorized batch {start // batch_size + 1} ({len(batch)} items)")

        return results

    async def record_correction(
        self,
        product_name: str,
        category_id: str,
        user_id: Optional[str] = None,
    ) -> bool:
        """
        Persists a user correction for the product's normalized name.

        Returns:
            True when saved, False when the store failed (failure is logged, never raised)

        Raises:
            UnknownCategoryError: category_id not in the taxonomy (caller error)
        """
        category = self.taxonomy.resolve(category_id)
        key = self.normalizer.normalization_key(product_name)
        if not key:
            logger.warning("Ignoring correction for an empty product name")
            return False

        record = CorrectionRecord(
            normalized_product_name=key,
            product_name=product_name.strip(),
            category_id=category.id,
            user_id=user_id,
        )
        try:
            await self.correction_store.save(record)
        except CorrectionPersistFailure as e:
            logger.error(f"{e.message}", extra={"user_id": user_id, "category_id": category.id})
            return False
        except Exception as e:
            # Nie blokujemy requestu użytkownika - tracimy tylko sygnał uczący
            logger.error(f"Unexpected error while saving correction for '{key}': {e}", exc_info=True)
            return False

        return True

    @staticmethod
    def needs_review(assignment: CategoryAssignment) -> bool:
        """Below the review threshold an item is queued for manual confirmation."""
        return assignment.confidence < settings.CATEGORIZATION_REVIEW_THRESHOLD
