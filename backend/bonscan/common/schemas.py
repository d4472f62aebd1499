import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, ConfigDict

_AMOUNT_CLEANUP = re.compile(r"[^\d.,-]")


class AppBaseModel(BaseModel):
    """
    Global base model for the application.
    Centralizes Pydantic configuration (strict mode, stripping, etc.).
    """
    model_config = ConfigDict(
        strict=True,                # No implicit type coercion (ex: "1" != 1)
        str_strip_whitespace=True,  # Auto-strip whitespace from strings
        validate_assignment=True,   # Validate values even when setting attributes after creation
        from_attributes=True,       # Enable ORM mode (SQLAlchemy -> Pydantic)
    )


def parse_amount(raw: Optional[str]) -> Optional[Decimal]:
    """
    Parses a receipt amount token into Decimal.

    Bulgarian receipts print both "12,50" and "12.50"; currency suffixes
    and stray OCR characters are dropped.

    Examples:
        >>> parse_amount("45,20")
        Decimal('45.20')
        >>> parse_amount("7.49 лв")
        Decimal('7.49')
        >>> parse_amount("abc") is None
        True
    """
    if raw is None:
        return None
    cleaned = _AMOUNT_CLEANUP.sub("", raw).strip(".,").replace(",", ".")
    if not cleaned or cleaned.count(".") > 1:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def to_decimal(value: float | int | str) -> Decimal:
    """float -> Decimal bez artefaktów binarnych (0.1 + 0.2)."""
    return Decimal(str(value))
