import datetime
from decimal import Decimal
from typing import List

from pydantic import Field

from bonscan.common.schemas import AppBaseModel
from bonscan.categories.schemas import CategoryAssignment
from bonscan.receipts.quality import QualityIssue
from bonscan.receipts.schemas import ProvenanceFlags


class ProcessedItem(AppBaseModel):
    """Pozycja po normalizacji i kategoryzacji"""
    name: str = Field(..., description="Raw product name as printed")
    normalized_name: str = Field(..., description="Canonical display name")
    total_price: Decimal = Field(..., description="Line total (BGN)")
    quantity: Decimal = Field(..., description="Quantity")
    unit_price: Decimal = Field(..., description="Unit price (BGN)")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Read confidence of the line")
    category: CategoryAssignment = Field(..., description="Assigned category")
    needs_review: bool = Field(default=False, description="Category confidence below the review threshold")


class ProcessedReceipt(AppBaseModel):
    """Accepted receipt with normalized, categorized items."""
    retailer: str = Field(..., description="Retailer name")
    total: Decimal = Field(..., description="Receipt total (BGN)")
    date: datetime.date = Field(..., description="Purchase date")
    confidence: int = Field(..., ge=0, le=100, description="Overall extraction confidence")
    provenance: ProvenanceFlags = Field(..., description="Source flags")
    items: List[ProcessedItem] = Field(default_factory=list, description="Items in receipt order")
    warnings: List[QualityIssue] = Field(default_factory=list, description="Non-fatal quality findings")

    @property
    def needs_review(self) -> bool:
        return any(item.needs_review for item in self.items)
