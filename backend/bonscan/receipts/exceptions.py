from typing import Sequence, TYPE_CHECKING

from bonscan.common.exceptions import AppError

if TYPE_CHECKING:
    from bonscan.receipts.quality import QualityIssue


class QualityCheckFailure(AppError):
    """
    Draft violated one or more receipt invariants.

    Fatal for the attempt: nothing from the draft may be normalized, categorized
    or persisted. The caller decides whether to retry the pipeline.
    """

    def __init__(self, issues: Sequence["QualityIssue"]):
        self.issues = list(issues)
        summary = "; ".join(issue.message for issue in self.issues)
        super().__init__(f"Receipt rejected by quality gate: {summary}")

    @property
    def checks(self) -> list:
        return [issue.check for issue in self.issues]
