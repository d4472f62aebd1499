from typing import Optional

from bonscan.common.exceptions import AppError


class CategorizationError(AppError):
    """Base exception for the categorization module."""
    pass


class UnknownCategoryError(CategorizationError):
    """Category id/alias not present in the taxonomy."""

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Unknown category: {category_id!r}")


class CorrectionPersistFailure(CategorizationError):
    """
    Writing a CorrectionRecord failed.

    Soft failure: the categorization path logs it and carries on, a lost learning
    signal never fails the user's request.
    """

    def __init__(self, normalized_name: str, reason: Optional[str] = None):
        self.normalized_name = normalized_name
        self.reason = reason
        super().__init__(f"Failed to persist correction for {normalized_name!r}: {reason or 'unknown error'}")


class CorrectionLookupFailure(CategorizationError):
    """Reading from the correction store failed; categorization falls through to rules."""
    pass
