"""
Unit tests for retailer-specific line itemizers (LIDL layout).
"""
from decimal import Decimal

import pytest

from bonscan.receipts.itemizers import LidlItemizer, QuantityPair, find_itemizers
from bonscan.receipts.schemas import LineItem

LIDL_RECEIPT = """ЛИДЛ БЪЛГАРИЯ ЕООД ЕНД КО КД
ЕИК 131071587
2.000 × 7.49
СЛАДОЛЕД МИНИ КЛАСИК   14.98 Б
ХЛЯБ ДОБРУДЖА   1.89 Б
1.020 x 1.99
ЯБЪЛКИ ЧЕРВ БЪЛГ КГ   2.03 Б
ТЕЛЕВИЗОР   199.99 Б
лв   5.00
ОБЩА СУМА 18.90
КАРТА 18.90"""


@pytest.fixture
def itemizer() -> LidlItemizer:
    return LidlItemizer()


class TestLidlItemizerDetect:
    """Tests for LidlItemizer.detect()."""

    @pytest.mark.parametrize(
        "raw_text,expected",
        [
            (LIDL_RECEIPT, True),
            ("lidl bulgaria", True),
            ("БИЛЛА БЪЛГАРИЯ", False),
            ("", False),
        ],
    )
    @pytest.mark.unit
    def test_detect(self, itemizer, raw_text, expected):
        assert itemizer.detect(raw_text) is expected

    @pytest.mark.unit
    def test_find_itemizers(self):
        assert [type(i) for i in find_itemizers(LIDL_RECEIPT)] == [LidlItemizer]
        assert find_itemizers("БИЛЛА") == []


class TestLidlItemizerPairs:
    """Tests for LidlItemizer.extract_pairs()."""

    @pytest.mark.unit
    def test_extract_pairs(self, itemizer):
        lines = LIDL_RECEIPT.splitlines()

        pairs = itemizer.extract_pairs(lines)

        assert pairs == {
            2: QuantityPair(quantity=Decimal("2.000"), unit_price=Decimal("7.49")),
            5: QuantityPair(quantity=Decimal("1.020"), unit_price=Decimal("1.99")),
        }

    @pytest.mark.parametrize("separator", ["×", "x", "X", "х", "*"])
    @pytest.mark.unit
    def test_pair_separators(self, itemizer, separator):
        pairs = itemizer.extract_pairs([f"3,000 {separator} 0,89"])
        assert pairs[0] == QuantityPair(quantity=Decimal("3.000"), unit_price=Decimal("0.89"))


class TestLidlItemizerItemize:
    """Tests for LidlItemizer.itemize()."""

    @pytest.mark.unit
    def test_quantity_pair_from_line_above(self, itemizer):
        items = itemizer.itemize(LIDL_RECEIPT, [])

        ice_cream = items[0]
        assert ice_cream.name == "Сладолед мини класик"
        assert ice_cream.quantity == Decimal("2")
        assert ice_cream.unit_price == Decimal("7.49")
        assert ice_cream.total_price == Decimal("14.98")
        assert ice_cream.confidence == LidlItemizer.ITEM_CONFIDENCE

    @pytest.mark.unit
    def test_recovered_items_in_receipt_order(self, itemizer):
        items = itemizer.itemize(LIDL_RECEIPT, [])

        assert [item.name for item in items] == [
            "Сладолед мини класик",
            "Хляб добруджа",
            "Ябълки черв бълг кг",
        ]

    @pytest.mark.unit
    def test_line_without_pair_defaults_to_single_unit(self, itemizer):
        bread = itemizer.itemize(LIDL_RECEIPT, [])[1]

        assert bread.quantity == Decimal("1")
        assert bread.unit_price == bread.total_price == Decimal("1.89")

    @pytest.mark.unit
    def test_printed_total_is_authoritative(self, itemizer):
        """1.020 × 1.99 = 2.0298, the receipt prints 2.03 and that is what we keep."""
        apples = itemizer.itemize(LIDL_RECEIPT, [])[2]

        assert apples.total_price == Decimal("2.03")
        assert apples.quantity == Decimal("1.020")

    @pytest.mark.unit
    def test_existing_items_are_not_duplicated(self, itemizer):
        existing = [
            LineItem(name="СЛАДОЛЕД МИНИ КЛАСИК", total_price=Decimal("14.98"), unit_price=Decimal("7.49"),
                     quantity=Decimal("2")),
        ]

        items = itemizer.itemize(LIDL_RECEIPT, existing)

        assert "Сладолед мини класик" not in [item.name for item in items]
        assert len(items) == 2

    @pytest.mark.unit
    def test_excluded_and_invalid_lines_are_skipped(self, itemizer):
        names = [item.name.lower() for item in itemizer.itemize(LIDL_RECEIPT, [])]

        assert not any("лидл" in name or "сума" in name or "карта" in name for name in names)
        assert "телевизор" not in names  # cena > 100
        assert "лв" not in names

    @pytest.mark.unit
    def test_empty_text(self, itemizer):
        assert itemizer.itemize("", []) == []
