from bonscan.common.exceptions import AppError


class OCRException(AppError):
    """Base exception for OCR-related errors"""
    pass


class FileValidationError(OCRException):
    """Invalid file format, corrupted or too large file"""
    pass


class ExtractionUnavailable(OCRException):
    """
    Raw text could not be obtained (no credentials, API down, empty transcription).
    Recoverable: the pipeline continues with the vision draft alone.
    """
    pass


class StructuringFailure(OCRException):
    """The vision model could not produce a usable structured draft (fatal for the attempt)"""
    pass
