from typing import List, Optional

from pydantic import ConfigDict

from bonscan.common.schemas import AppBaseModel


# Strict Mode Schema dla LLM
class LLMReceiptItem(AppBaseModel):
    """Strict schema dla pojedynczej pozycji - używane w komunikacji z LLM"""
    model_config = ConfigDict(
        strict=True,
        extra='forbid'
    )

    name: str
    total_price: float
    quantity: Optional[float] = None
    unit_price: Optional[float] = None


class LLMReceiptExtraction(AppBaseModel):
    """Strict schema dla całego paragonu - używane w komunikacji z LLM"""
    model_config = ConfigDict(
        strict=True,
        extra='forbid'
    )

    retailer: Optional[str] = None
    total_amount: float
    purchase_date: Optional[str] = None  # Format YYYY-MM-DD
    items: List[LLMReceiptItem]
    confidence: Optional[int] = None  # 0-100
