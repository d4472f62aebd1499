from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import Field, model_validator

from bonscan.common.schemas import AppBaseModel


class CategorizationMethod(str, Enum):
    USER_CORRECTION = "user_correction"
    KEYWORD_RULE = "keyword_rule"
    DEFAULT = "default"


class Category(AppBaseModel):
    """Taxonomy entry. `id` is the stable slug referenced by rules and corrections."""
    id: str = Field(..., min_length=1, max_length=50, description="Stable slug, e.g. 'basic_foods'")
    name: str = Field(..., min_length=1, max_length=100, description="Display name (Bulgarian)")
    aliases: List[str] = Field(default_factory=list, description="Legacy ids / display names accepted at the boundary")


class TaxonomyData(AppBaseModel):
    fallback_id: str = Field(..., description="Category used when nothing matches")
    categories: List[Category] = Field(..., min_length=1)

    @model_validator(mode='after')
    def validate_fallback(self) -> 'TaxonomyData':
        ids = [category.id for category in self.categories]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate category id in taxonomy")
        if self.fallback_id not in ids:
            raise ValueError(f"Fallback category '{self.fallback_id}' is not defined")
        return self


class StorePatternGroup(AppBaseModel):
    retailers: List[str] = Field(..., min_length=1, description="Retailer names/aliases (lowercase)")
    patterns: Dict[str, str] = Field(..., description="Private-label token -> category id")


class KeywordRulesData(AppBaseModel):
    rules: Dict[str, List[str]] = Field(..., description="Category id -> keywords (whole-word match)")
    stems: Dict[str, List[str]] = Field(default_factory=dict, description="Category id -> word-start stems for inflected forms")
    store_patterns: List[StorePatternGroup] = Field(default_factory=list)


class CategoryAssignment(AppBaseModel):
    """Category attached 1:1 to a line item after categorization."""
    category_id: str = Field(..., description="Stable category slug")
    category_name: str = Field(..., description="Display name at assignment time")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence (0.0-1.0)")
    method: CategorizationMethod = Field(..., description="Which resolution step produced the assignment")


class CorrectionRecord(AppBaseModel):
    """
    User-authored override pinning a normalized product name to a category.
    Immutable; a newer record for the same key supersedes older ones.
    """
    normalized_product_name: str = Field(..., min_length=1, max_length=500, description="Correction key")
    product_name: Optional[str] = Field(None, max_length=500, description="Raw name the user corrected")
    category_id: str = Field(..., description="Stable category slug")
    user_id: Optional[str] = Field(None, max_length=64, description="Author; None = global correction")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")

    @property
    def confidence(self) -> float:
        return 1.0
