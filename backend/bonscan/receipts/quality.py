"""
Quality Gate: the mandatory invariant-check boundary between extraction and categorization.

The gate is a pure predicate. It never retries; it returns a tagged verdict so the
caller can branch on the failed checks instead of re-deriving them.
"""
import logging
from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Literal, Union

from pydantic import Field

from bonscan.common.schemas import AppBaseModel
from bonscan.receipts.schemas import (
    MAX_ITEM_PRICE,
    MAX_RECEIPT_TOTAL,
    MAX_RECEIPT_YEAR,
    MIN_ITEM_NAME_LENGTH,
    MIN_RECEIPT_YEAR,
    ReceiptDraft,
)

logger = logging.getLogger(__name__)

MIN_RETAILER_LENGTH = 3
ITEMS_SUM_TOLERANCE_PERCENT = Decimal("2")


class QualityCheck(str, Enum):
    TOTAL_RANGE = "total_range"
    RETAILER_NAME = "retailer_name"
    DATE = "date"
    ITEMS_PRESENT = "items_present"
    ITEM_VALID = "item_valid"
    ITEMS_SUM = "items_sum"  # tylko ostrzeżenie


class QualityIssue(AppBaseModel):
    check: QualityCheck = Field(..., description="Which check produced the issue")
    message: str = Field(..., description="Human readable description")


class Accepted(AppBaseModel):
    """Draft passed every mandatory check."""
    status: Literal["accepted"] = "accepted"
    draft: ReceiptDraft
    warnings: List[QualityIssue] = Field(default_factory=list, description="Non-fatal findings")


class Rejected(AppBaseModel):
    """Draft failed at least one mandatory check; nothing from it may be used downstream."""
    status: Literal["rejected"] = "rejected"
    draft: ReceiptDraft
    issues: List[QualityIssue] = Field(..., min_length=1, description="Every failed check")


QualityVerdict = Annotated[Union[Accepted, Rejected], Field(discriminator="status")]


def _mandatory_issues(draft: ReceiptDraft) -> List[QualityIssue]:
    issues: List[QualityIssue] = []

    # 1. total w (0, 10000]
    if not (Decimal("0") < draft.total <= MAX_RECEIPT_TOTAL):
        issues.append(QualityIssue(
            check=QualityCheck.TOTAL_RANGE,
            message=f"Total {draft.total} outside (0, {MAX_RECEIPT_TOTAL}]",
        ))

    # 2. retailer
    if len(draft.retailer.strip()) < MIN_RETAILER_LENGTH:
        issues.append(QualityIssue(
            check=QualityCheck.RETAILER_NAME,
            message=f"Retailer name {draft.retailer!r} shorter than {MIN_RETAILER_LENGTH} characters",
        ))

    # 3. data: obecna i w wiarygodnym zakresie lat
    if draft.date is None:
        issues.append(QualityIssue(check=QualityCheck.DATE, message="Missing or invalid purchase date"))
    elif not (MIN_RECEIPT_YEAR <= draft.date.year <= MAX_RECEIPT_YEAR):
        issues.append(QualityIssue(
            check=QualityCheck.DATE,
            message=f"Purchase date {draft.date} outside {MIN_RECEIPT_YEAR}-{MAX_RECEIPT_YEAR}",
        ))

    # 4. pozycje
    if not draft.items:
        issues.append(QualityIssue(check=QualityCheck.ITEMS_PRESENT, message="Receipt has no line items"))

    # 5. każda pozycja
    for index, item in enumerate(draft.items, start=1):
        if len(item.name.strip()) < MIN_ITEM_NAME_LENGTH:
            issues.append(QualityIssue(
                check=QualityCheck.ITEM_VALID,
                message=f"Item #{index} name {item.name!r} too short",
            ))
        if not (Decimal("0") < item.total_price <= MAX_ITEM_PRICE):
            issues.append(QualityIssue(
                check=QualityCheck.ITEM_VALID,
                message=f"Item #{index} ({item.name!r}) price {item.total_price} outside (0, {MAX_ITEM_PRICE}]",
            ))

    return issues


def _warnings(draft: ReceiptDraft) -> List[QualityIssue]:
    items_sum = draft.items_sum
    difference = abs(items_sum - draft.total)
    if (difference / draft.total) * Decimal("100") > ITEMS_SUM_TOLERANCE_PERCENT:
        return [QualityIssue(
            check=QualityCheck.ITEMS_SUM,
            message=f"Items sum {items_sum} differs from total {draft.total} by {difference}",
        )]
    return []


def evaluate(draft: ReceiptDraft) -> Union[Accepted, Rejected]:
    """
    Runs all mandatory checks over a draft.

    Args:
        draft: Reconciled (or raw) ReceiptDraft

    Returns:
        Accepted (possibly with warnings) or Rejected listing every failed check
    """
    issues = _mandatory_issues(draft)
    if issues:
        logger.warning(
            f"Quality gate rejected draft: {len(issues)} issue(s)",
            extra={"checks": [issue.check.value for issue in issues], "retailer": draft.retailer},
        )
        return Rejected(draft=draft, issues=issues)

    warnings = _warnings(draft)
    for warning in warnings:
        logger.info(f"Quality gate warning: {warning.message}")
    return Accepted(draft=draft, warnings=warnings)
