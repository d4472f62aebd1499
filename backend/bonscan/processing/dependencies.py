"""
Factory functions for the Receipt Pipeline.

Works both with a DB session (SQL-backed corrections) and standalone (CLI, tests).
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bonscan.categories.dependencies import get_categorization_engine
from bonscan.ocr.dependencies import get_draft_generator, get_raw_text_extractor
from bonscan.processing.service import ReceiptPipeline

logger = logging.getLogger(__name__)


def get_receipt_pipeline(session: Optional[AsyncSession] = None) -> ReceiptPipeline:
    """
    Factory function for ReceiptPipeline.

    Args:
        session: Optional AsyncSession (jeśli None, korekty kategorii tylko w pamięci)

    Returns:
        ReceiptPipeline: Configured pipeline instance

    Raises:
        ConfigurationError: Gemini is not configured
    """
    return ReceiptPipeline(
        raw_text_extractor=get_raw_text_extractor(),
        draft_generator=get_draft_generator(),
        categorization_engine=get_categorization_engine(session=session),
    )
