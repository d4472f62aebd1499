"""
Product Name Normalizer module.

Pure decomposition of Bulgarian receipt product names into components and
their canonical display form.
"""

from bonscan.normalization.schemas import NormalizerDictionary, ProductComponents
from bonscan.normalization.service import ProductNameNormalizer, get_normalizer, normalize, parse

__all__ = [
    "NormalizerDictionary",
    "ProductComponents",
    "ProductNameNormalizer",
    "get_normalizer",
    "normalize",
    "parse",
]
