from bonscan.categories.schemas import CategorizationMethod, Category, CategoryAssignment, CorrectionRecord
from bonscan.categories.services import CategorizationEngine
from bonscan.categories.taxonomy import Taxonomy, default_taxonomy

__all__ = [
    "CategorizationEngine",
    "CategorizationMethod",
    "Category",
    "CategoryAssignment",
    "CorrectionRecord",
    "Taxonomy",
    "default_taxonomy",
]
