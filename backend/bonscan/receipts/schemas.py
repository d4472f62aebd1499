import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from bonscan.common.schemas import AppBaseModel

# Fragmenty, które OCR/LLM często zwraca jako "produkt" (waluta, kody ДДС)
NOISE_TOKENS = frozenset({"лв", "ЛЕЗ", "BGN", "Fi", "G", "B"})

MIN_ITEM_NAME_LENGTH = 3
MAX_ITEM_PRICE = Decimal("100")
MAX_RECEIPT_TOTAL = Decimal("10000")
# Wiarygodny zakres lat daty zakupu
MIN_RECEIPT_YEAR = 2020
MAX_RECEIPT_YEAR = 2030


def is_noise_name(name: str) -> bool:
    """True for names that cannot be a real product (too short or a known noise token)."""
    stripped = name.strip()
    return len(stripped) < MIN_ITEM_NAME_LENGTH or stripped in NOISE_TOKENS


class LineItem(AppBaseModel):
    """Pojedyncza pozycja paragonu"""
    name: str = Field(..., max_length=500, description="Raw product name as printed on the receipt")
    total_price: Decimal = Field(..., description="Line total (BGN), authoritative value printed on the receipt")
    quantity: Decimal = Field(default=Decimal("1"), description="Quantity")
    unit_price: Decimal = Field(..., description="Unit price (BGN)")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0, description="Read confidence (0.0-1.0)")


class ProvenanceFlags(AppBaseModel):
    """Which sources contributed to a draft and which fields were confirmed by text patterns."""
    used_raw_text: bool = Field(default=False, description="Raw OCR text was available")
    used_vision_model: bool = Field(default=False, description="Draft produced by the vision model")
    reconciled: bool = Field(default=False, description="Heuristic reconciliation was applied")
    total_confirmed: bool = Field(default=False, description="Total matched by a text pattern")
    date_confirmed: bool = Field(default=False, description="Date matched by a text pattern")


class ReceiptDraft(AppBaseModel):
    """
    Unvalidated receipt record produced by OCR/AI.

    Invariants (retailer length, total range, date, items) are not enforced here:
    the Quality Gate decides, so that a bad draft can still be inspected.
    """
    retailer: str = Field(default="", max_length=200, description="Retailer (canonical name where recognized)")
    total: Decimal = Field(..., description="Receipt total (BGN)")
    date: Optional[datetime.date] = Field(None, description="Purchase date")
    items: List[LineItem] = Field(default_factory=list, description="Line items in receipt order")
    confidence: int = Field(default=0, ge=0, le=100, description="Overall confidence (0-100)")
    provenance: ProvenanceFlags = Field(default_factory=ProvenanceFlags, description="Source flags")

    @property
    def items_sum(self) -> Decimal:
        return sum((item.total_price for item in self.items), Decimal("0"))
