"""
Receipt Processing Pipeline module.

This module contains the service orchestrating a receipt image from upload to categorized items.
"""

from bonscan.processing.service import ReceiptPipeline
from bonscan.processing.exceptions import ProcessingError

__all__ = ["ReceiptPipeline", "ProcessingError"]
