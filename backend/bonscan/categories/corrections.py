"""
Correction Store: persisted user corrections keyed by normalized product name.

Lookup priority mirrors alias resolution: the user's own correction first, then a
global one (user_id = NULL). Within a scope the newest record wins.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bonscan.categories.exceptions import CorrectionLookupFailure, CorrectionPersistFailure
from bonscan.categories.models import CategorizationCorrection
from bonscan.categories.schemas import CorrectionRecord

logger = logging.getLogger(__name__)


class CorrectionStore(ABC):
    """Keyed read + write path for CorrectionRecords."""

    @abstractmethod
    async def get(self, normalized_name: str, user_id: Optional[str] = None) -> Optional[CorrectionRecord]:
        """
        Newest correction for the key (user scope first, then global).

        Raises:
            CorrectionLookupFailure: backend unavailable
        """

    @abstractmethod
    async def save(self, record: CorrectionRecord) -> CorrectionRecord:
        """
        Persists a new record (records are never updated in place).

        Raises:
            CorrectionPersistFailure: backend rejected the write
        """


class InMemoryCorrectionStore(CorrectionStore):
    """Process-local store; used in tests and for single-run CLI processing."""

    def __init__(self):
        self._records: Dict[Tuple[Optional[str], str], CorrectionRecord] = {}

    async def get(self, normalized_name: str, user_id: Optional[str] = None) -> Optional[CorrectionRecord]:
        if user_id is not None:
            record = self._records.get((user_id, normalized_name))
            if record is not None:
                return record
        return self._records.get((None, normalized_name))

    async def save(self, record: CorrectionRecord) -> CorrectionRecord:
        if record.created_at is None:
            record = record.model_copy(update={"created_at": datetime.now(timezone.utc)})
        self._records[(record.user_id, record.normalized_product_name)] = record
        return record

    def __len__(self) -> int:
        return len(self._records)


def _to_record(row: CategorizationCorrection) -> CorrectionRecord:
    return CorrectionRecord(
        normalized_product_name=row.product_name_normalized,
        product_name=row.product_name,
        category_id=row.category_id,
        user_id=row.user_id,
        created_at=row.created_at,
    )


class SqlCorrectionStore(CorrectionStore):
    """SQLAlchemy async store over the `categorization_corrections` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _newest(self, normalized_name: str, user_id: Optional[str]) -> Optional[CategorizationCorrection]:
        stmt = select(CategorizationCorrection).where(
            CategorizationCorrection.product_name_normalized == normalized_name
        )
        if user_id is None:
            stmt = stmt.where(CategorizationCorrection.user_id.is_(None))
        else:
            stmt = stmt.where(CategorizationCorrection.user_id == user_id)

        stmt = stmt.order_by(
            CategorizationCorrection.created_at.desc(),
            CategorizationCorrection.id.desc(),
        ).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, normalized_name: str, user_id: Optional[str] = None) -> Optional[CorrectionRecord]:
        try:
            # Próba 1: korekta użytkownika
            if user_id is not None:
                row = await self._newest(normalized_name, user_id)
                if row is not None:
                    return _to_record(row)

            # Próba 2: korekta globalna
            row = await self._newest(normalized_name, None)
        except SQLAlchemyError as e:
            raise CorrectionLookupFailure(f"Correction lookup failed for {normalized_name!r}: {e}") from e

        return _to_record(row) if row is not None else None

    async def save(self, record: CorrectionRecord) -> CorrectionRecord:
        correction = CategorizationCorrection(
            user_id=record.user_id,
            product_name=record.product_name,
            product_name_normalized=record.normalized_product_name,
            category_id=record.category_id,
        )
        if record.created_at is not None:
            correction.created_at = record.created_at

        self.session.add(correction)
        try:
            await self.session.commit()
            await self.session.refresh(correction)
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise CorrectionPersistFailure(record.normalized_product_name, str(e)) from e

        logger.info(
            f"Correction saved: {record.normalized_product_name!r} -> {record.category_id}",
            extra={"user_id": record.user_id, "correction_id": correction.id},
        )
        return _to_record(correction)
