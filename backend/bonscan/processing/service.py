"""
Receipt Processing Pipeline.

Orchestrates a single receipt image from bytes to a categorized ProcessedReceipt.
"""
import logging
from datetime import date
from typing import Callable, List, Optional, Sequence

from bonscan.common.exceptions import AppError
from bonscan.categories.services import CategorizationEngine
from bonscan.normalization.service import ProductNameNormalizer, get_normalizer
from bonscan.ocr.exceptions import ExtractionUnavailable
from bonscan.ocr.services import GeminiDraftGenerator, RawTextExtractor, validate_image
from bonscan.processing.exceptions import ProcessingError
from bonscan.processing.schemas import ProcessedItem, ProcessedReceipt
from bonscan.receipts.exceptions import QualityCheckFailure
from bonscan.receipts.itemizers import DEFAULT_ITEMIZERS, RetailerItemizer, find_itemizers
from bonscan.receipts.quality import Accepted, Rejected, evaluate
from bonscan.receipts.reconciliation import reconcile
from bonscan.receipts.schemas import ReceiptDraft

logger = logging.getLogger(__name__)


class ReceiptPipeline:
    """
    Flow:
    1. Validate image (magic bytes, size)
    2. Raw text extraction (degrades to "" when unavailable)
    3. Structured draft from the vision model
    4. Heuristic reconciliation (only with raw text)
    5. Retailer itemizers (recover items skipped by the model)
    6. Quality gate (Rejected -> QualityCheckFailure, nothing downstream runs)
    7. Normalization + batched categorization

    Stateless between calls; one instance can serve many receipts.
    """

    def __init__(
        self,
        raw_text_extractor: RawTextExtractor,
        draft_generator: GeminiDraftGenerator,
        categorization_engine: CategorizationEngine,
        normalizer: Optional[ProductNameNormalizer] = None,
        itemizers: Sequence[RetailerItemizer] = DEFAULT_ITEMIZERS,
        today: Callable[[], date] = date.today,
    ):
        self.raw_text_extractor = raw_text_extractor
        self.draft_generator = draft_generator
        self.categorization_engine = categorization_engine
        self.normalizer = normalizer or get_normalizer()
        self.itemizers = itemizers
        self.today = today

    async def process(self, image: bytes, user_id: Optional[str] = None) -> ProcessedReceipt:
        """
        Args:
            image: Receipt image bytes (JPEG, PNG, WEBP)
            user_id: Owner of the receipt, enables per-user corrections

        Returns:
            ProcessedReceipt

        Raises:
            FileValidationError: invalid image
            StructuringFailure: the vision model produced no usable draft
            QualityCheckFailure: draft violated receipt invariants
            ProcessingError: any other unexpected failure
        """
        logger.info("Receipt processing started", extra={"user_id": user_id, "size": len(image)})

        try:
            mime_type = validate_image(image)
            raw_text = await self._extract_raw_text(image, mime_type)
            draft = await self.draft_generator.generate(image, mime_type, raw_text)

            if raw_text:
                draft = reconcile(raw_text, draft, today=self.today)
            draft = self._apply_itemizers(raw_text, draft)

            verdict = evaluate(draft)
            if isinstance(verdict, Rejected):
                raise QualityCheckFailure(verdict.issues)

            result = await self._finalize(verdict, user_id)
        except AppError:
            # Błędy domenowe propagują się bez zmian
            raise
        except Exception as e:
            logger.error(f"Unexpected error during receipt processing: {e}", exc_info=True)
            raise ProcessingError(f"Receipt processing failed: {str(e)}") from e

        logger.info(
            f"Receipt processed: {result.retailer}, {result.total} лв, {len(result.items)} items",
            extra={"user_id": user_id, "needs_review": result.needs_review},
        )
        return result

    async def _extract_raw_text(self, image: bytes, mime_type: str) -> str:
        try:
            return await self.raw_text_extractor.extract_text(image, mime_type)
        except ExtractionUnavailable as e:
            logger.warning(f"Raw text unavailable, continuing with vision draft only: {e.message}")
            return ""

    def _apply_itemizers(self, raw_text: str, draft: ReceiptDraft) -> ReceiptDraft:
        if not raw_text:
            return draft

        items = list(draft.items)
        for itemizer in find_itemizers(raw_text, self.itemizers):
            recovered = itemizer.itemize(raw_text, items)
            if recovered:
                logger.info(f"{itemizer.retailer_name} itemizer added {len(recovered)} item(s)")
                items.extend(recovered)

        if len(items) == len(draft.items):
            return draft
        return draft.model_copy(update={"items": items})

    async def _finalize(self, verdict: Accepted, user_id: Optional[str]) -> ProcessedReceipt:
        draft = verdict.draft
        names = [item.name for item in draft.items]
        assignments = await self.categorization_engine.categorize_many(
            names, retailer=draft.retailer, user_id=user_id
        )

        items: List[ProcessedItem] = [
            ProcessedItem(
                name=item.name,
                normalized_name=self.normalizer.normalize(item.name),
                total_price=item.total_price,
                quantity=item.quantity,
                unit_price=item.unit_price,
                confidence=item.confidence,
                category=assignment,
                needs_review=self.categorization_engine.needs_review(assignment),
            )
            for item, assignment in zip(draft.items, assignments)
        ]

        return ProcessedReceipt(
            retailer=draft.retailer,
            total=draft.total,
            date=draft.date,
            confidence=draft.confidence,
            provenance=draft.provenance,
            items=items,
            warnings=verdict.warnings,
        )
