from typing import Optional

from bonscan.common.exceptions import AppError


class ProcessingError(AppError):
    """Unexpected pipeline failure (not a typed OCR/quality error); wraps the cause."""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.message = message
        self.stage = stage
        super().__init__(self.message)
