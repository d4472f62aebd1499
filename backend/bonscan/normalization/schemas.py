from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import Field, model_validator

from bonscan.common.schemas import AppBaseModel


class ProductComponents(AppBaseModel):
    """Structured decomposition of a raw product name (intermediate form of the normalizer)."""
    base_product: str = Field(..., description="Base product, e.g. 'Мляко'")
    brand: Optional[str] = Field(None, description="Canonical brand, e.g. 'Верея'")
    type: Optional[str] = Field(None, description="Variant within the product category, e.g. 'пълнозърнест'")
    key_attributes: List[str] = Field(default_factory=list, description="Ordered, unique: '3.6%', 'био', ...")
    size: Optional[Decimal] = Field(None, gt=0, description="Size in `unit`")
    unit: Optional[str] = Field(None, description="Short unit: л, мл, г, кг, бр")
    residual_words: List[str] = Field(
        default_factory=list,
        description="Casefolded words no stage recognized; not displayed, but part of the correction key",
    )

    @model_validator(mode='after')
    def validate_size_unit(self) -> 'ProductComponents':
        if (self.size is None) != (self.unit is None):
            raise ValueError("size and unit must be given together")
        return self


class ProductVocabulary(AppBaseModel):
    """Per product category: canonical base product -> aliases, plus the variant (type) vocabulary."""
    keywords: Dict[str, List[str]] = Field(..., description="Canonical base product -> match aliases")
    types: List[str] = Field(default_factory=list, description="Known variants in this category")


class NormalizerDictionary(AppBaseModel):
    """
    Loadable data tables driving the normalizer.

    Keys are canonical display forms, values are lowercase match aliases
    (including Latin transliterations seen on receipts).
    """
    brands: Dict[str, Dict[str, List[str]]] = Field(..., description="Brand category -> canonical brand -> aliases")
    products: Dict[str, ProductVocabulary] = Field(..., description="Product category -> vocabulary")
    units: Dict[str, List[str]] = Field(..., description="Short unit -> aliases")
    attributes: Dict[str, List[str]] = Field(..., description="Canonical attribute -> synonyms")
