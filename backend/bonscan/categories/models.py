from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from bonscan.db.main import Base


class CategorizationCorrection(Base):
    """
    CategorizationCorrection model.
    Pins a normalized product name to a category on explicit user action.
    Acts as the categorizer's learning memory.

    Attributes:
        id: Primary key (auto-incremented)
        user_id: Author of the correction (nullable = global correction, indexed)
        product_name: Raw product name the user corrected
        product_name_normalized: Correction key (case-folded canonical name, indexed)
        category_id: Stable category slug
        created_at: Timestamp of creation (newest record wins)
    """
    __tablename__ = 'categorization_corrections'

    __table_args__ = (
        Index('idx_categorization_corrections_key', 'product_name_normalized'),
        Index('idx_categorization_corrections_user_id', 'user_id'),
        {'comment': 'User corrections overriding automatic categorization'}
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_name_normalized: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
