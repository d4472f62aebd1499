"""
Unit tests for the receipt Quality Gate.
"""
import datetime
from decimal import Decimal

import pytest

from bonscan.receipts.exceptions import QualityCheckFailure
from bonscan.receipts.quality import Accepted, QualityCheck, Rejected, evaluate
from bonscan.receipts.schemas import LineItem


def _item(name: str = "ХЛЯБ ДОБРУДЖА", price: str = "1.89") -> LineItem:
    return LineItem(name=name, total_price=Decimal(price), unit_price=Decimal(price))


class TestEvaluate:
    """Tests for evaluate() function."""

    @pytest.mark.unit
    def test_valid_draft_is_accepted(self, make_draft):
        verdict = evaluate(make_draft())

        assert isinstance(verdict, Accepted)
        assert verdict.status == "accepted"
        assert verdict.warnings == []

    @pytest.mark.parametrize(
        "overrides,expected_check",
        [
            ({"total": Decimal("0")}, QualityCheck.TOTAL_RANGE),
            ({"total": Decimal("-5")}, QualityCheck.TOTAL_RANGE),
            ({"total": Decimal("10000.01")}, QualityCheck.TOTAL_RANGE),
            ({"retailer": ""}, QualityCheck.RETAILER_NAME),
            ({"retailer": "Ab"}, QualityCheck.RETAILER_NAME),
            ({"date": None}, QualityCheck.DATE),
            ({"date": datetime.date(2099, 1, 1)}, QualityCheck.DATE),
            ({"date": datetime.date(1999, 5, 5)}, QualityCheck.DATE),
            ({"items": []}, QualityCheck.ITEMS_PRESENT),
            ({"items": [_item(name="ab")]}, QualityCheck.ITEM_VALID),
            ({"items": [_item(price="0")]}, QualityCheck.ITEM_VALID),
            ({"items": [_item(price="100.01")]}, QualityCheck.ITEM_VALID),
        ],
    )
    @pytest.mark.unit
    def test_invariant_violations_are_rejected(self, make_draft, overrides, expected_check):
        verdict = evaluate(make_draft(**overrides))

        assert isinstance(verdict, Rejected)
        assert expected_check in [issue.check for issue in verdict.issues]

    @pytest.mark.unit
    def test_all_failed_checks_are_reported(self, make_draft):
        verdict = evaluate(make_draft(total=Decimal("0"), retailer="", date=None, items=[]))

        assert isinstance(verdict, Rejected)
        assert {issue.check for issue in verdict.issues} == {
            QualityCheck.TOTAL_RANGE,
            QualityCheck.RETAILER_NAME,
            QualityCheck.DATE,
            QualityCheck.ITEMS_PRESENT,
        }

    @pytest.mark.unit
    def test_boundary_values_are_accepted(self, make_draft):
        draft = make_draft(total=Decimal("10000"), items=[_item(price="100")], retailer="ОМВ")
        verdict = evaluate(draft)

        assert isinstance(verdict, Accepted)

    @pytest.mark.parametrize("purchase_date", [datetime.date(2020, 1, 1), datetime.date(2030, 12, 31)])
    @pytest.mark.unit
    def test_date_range_boundaries_are_accepted(self, make_draft, purchase_date):
        assert isinstance(evaluate(make_draft(date=purchase_date)), Accepted)

    @pytest.mark.unit
    def test_items_sum_mismatch_is_only_a_warning(self, make_draft):
        # pozycje 4.68, suma 5.00 -> ~6.4%
        verdict = evaluate(make_draft(total=Decimal("5.00")))

        assert isinstance(verdict, Accepted)
        assert [warning.check for warning in verdict.warnings] == [QualityCheck.ITEMS_SUM]

    @pytest.mark.unit
    def test_small_items_sum_mismatch_has_no_warning(self, make_draft):
        verdict = evaluate(make_draft(total=Decimal("4.70")))
        assert verdict.warnings == []


class TestQualityCheckFailure:
    """Tests for the QualityCheckFailure exception."""

    @pytest.mark.unit
    def test_carries_issues(self, make_draft):
        verdict = evaluate(make_draft(total=Decimal("0")))

        error = QualityCheckFailure(verdict.issues)

        assert error.issues == verdict.issues
        assert error.checks == [QualityCheck.TOTAL_RANGE]
        assert "quality gate" in error.message
