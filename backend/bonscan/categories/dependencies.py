"""
Factory functions for the categorization services.

Works both inside a DB session scope (SQL-backed corrections) and standalone
(process-local corrections, e.g. single-run CLI).
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bonscan.categories.corrections import CorrectionStore, InMemoryCorrectionStore, SqlCorrectionStore
from bonscan.categories.services import CategorizationEngine

logger = logging.getLogger(__name__)


def get_correction_store(session: Optional[AsyncSession] = None) -> CorrectionStore:
    """
    Args:
        session: Optional AsyncSession (jeśli None, korekty trzymane są tylko w pamięci)
    """
    if session is None:
        logger.debug("No session provided, using in-memory correction store")
        return InMemoryCorrectionStore()
    return SqlCorrectionStore(session)


def get_categorization_engine(
    session: Optional[AsyncSession] = None,
    correction_store: Optional[CorrectionStore] = None,
) -> CategorizationEngine:
    """
    Factory for CategorizationEngine.

    Args:
        session: Optional AsyncSession used for the SQL correction store
        correction_store: Explicit store (wins over session)

    Returns:
        CategorizationEngine with the bundled taxonomy, keyword rules and normalizer
    """
    return CategorizationEngine(correction_store=correction_store or get_correction_store(session))
