"""
Unit tests for heuristic reconciliation of drafts against raw OCR text.

Tests cover:
- extract_total() - keyword patterns, priority, largest-amount fallback
- extract_retailer() - chain detection in the receipt header
- extract_date() - DD.MM.YYYY parsing with year window
- reconcile() - overwrite/confirm rules and provenance flags
"""
import datetime
from decimal import Decimal

import pytest

from bonscan.receipts.reconciliation import (
    extract_date,
    extract_retailer,
    extract_total,
    reconcile,
)

LIDL_TEXT = """ЛИДЛ БЪЛГАРИЯ ЕООД ЕНД КО КД
гр. София, бул. Черни връх 47
ХЛЯБ ДОБРУДЖА        1.89 Б
МЛЯКО ВЕРЕЯ 3.6%     2.79 Б
ОБЩА СУМА: 45.20
VISA ****1234
01.10.2025 14:22:05"""


class TestExtractTotal:
    """Tests for extract_total() function."""

    @pytest.mark.parametrize(
        "raw_text,expected",
        [
            ("ОБЩА СУМА: 45.20", Decimal("45.20")),
            ("ОБЩА СУМА 45,20", Decimal("45.20")),
            ("ВСИЧКО 12.30", Decimal("12.30")),
            ("TOTAL: 9.99", Decimal("9.99")),
            ("total 9.9", Decimal("9.9")),
            ("К ПЛАЩАНЕ: 100.00", Decimal("100.00")),
            ("ЗА ПЛАЩАНЕ 18,45", Decimal("18.45")),
        ],
    )
    @pytest.mark.unit
    def test_keyword_patterns(self, raw_text, expected):
        total, from_pattern = extract_total(raw_text)
        assert total == expected
        assert from_pattern is True

    @pytest.mark.parametrize(
        "raw_text",
        [
            "TOTAL 10.00\nХЛЯБ 1.89\nОБЩА СУМА: 45.20",
            "ВСИЧКО 12.00\nХЛЯБ 1.89\nОБЩА СУМА: 45.20",
            "ЗА ПЛАЩАНЕ 12.00\nВСИЧКО 30.00\nОБЩА СУМА 45,20",
        ],
    )
    @pytest.mark.unit
    def test_pattern_priority_beats_line_order(self, raw_text):
        """ОБЩА СУМА wins even when a lower-priority total line appears earlier."""
        total, from_pattern = extract_total(raw_text)
        assert total == Decimal("45.20")
        assert from_pattern is True

    @pytest.mark.unit
    def test_later_priority_line_overwrites_draft_total(self, make_draft):
        draft = make_draft(total=Decimal("12.00"))

        result = reconcile("ЛИДЛ\nВСИЧКО 12.00\nОБЩА СУМА: 45.20\n01.10.2025", draft)

        assert result.total == Decimal("45.20")
        assert result.provenance.total_confirmed is True

    @pytest.mark.unit
    def test_fallback_largest_amount(self):
        raw_text = "ХЛЯБ 1.89\nСИРЕНЕ 12.40\nНЕЩО 23.45\nVISA 99.99\n14:22 55.55"
        total, from_pattern = extract_total(raw_text)
        assert total == Decimal("23.45")
        assert from_pattern is False

    @pytest.mark.unit
    def test_fallback_ignores_amounts_below_minimum(self):
        assert extract_total("ХЛЯБ 1.89\nМЛЯКО 2.79") == (None, False)

    @pytest.mark.parametrize("raw_text", ["", "без суми", "ОБЩА СУМА: 0.00"])
    @pytest.mark.unit
    def test_nothing_found(self, raw_text):
        assert extract_total(raw_text) == (None, False)


class TestExtractRetailer:
    """Tests for extract_retailer() function."""

    @pytest.mark.parametrize(
        "raw_text,expected",
        [
            ("ЛИДЛ БЪЛГАРИЯ ЕООД ЕНД КО КД", "Лидл"),
            ("lidl bulgaria", "Лидл"),
            ("БИЛЛА БЪЛГАРИЯ ЕООД", "Билла"),
            ("KAUFLAND БЪЛГАРИЯ", "Кауфланд"),
            ("ФАНТАСТИКО ГРУП", "Фантастико"),
            ("МЕТРО КЕШ ЕНД КЕРИ", "Метро"),
            ("OMV БЪЛГАРИЯ", "OMV"),
            ("Т МАРКЕТ", "Т Маркет"),
            ("МАГАЗИН ПРИ ИВАН", None),
        ],
    )
    @pytest.mark.unit
    def test_retailer_patterns(self, raw_text, expected):
        assert extract_retailer(raw_text) == expected

    @pytest.mark.unit
    def test_only_header_lines_are_scanned(self):
        raw_text = "\n".join(["ред"] * 10 + ["ЛИДЛ"])
        assert extract_retailer(raw_text) is None


class TestExtractDate:
    """Tests for extract_date() function."""

    @pytest.mark.parametrize(
        "raw_text,expected",
        [
            ("01.10.2025 14:22:05", datetime.date(2025, 10, 1)),
            ("ДАТА: 15.03.2024", datetime.date(2024, 3, 15)),
            ("30/09/2025", datetime.date(2025, 9, 30)),
            ("5-1-2026", datetime.date(2026, 1, 5)),
            ("01.10.25", datetime.date(2025, 10, 1)),
        ],
    )
    @pytest.mark.unit
    def test_valid_dates(self, raw_text, expected):
        assert extract_date(raw_text) == expected

    @pytest.mark.parametrize(
        "raw_text",
        [
            "31.02.2024",  # nie istnieje
            "01.13.2024",  # miesiąc
            "01.01.2019",  # poza oknem lat
            "01.01.2031",
            "bez daty",
        ],
    )
    @pytest.mark.unit
    def test_invalid_dates(self, raw_text):
        assert extract_date(raw_text) is None

    @pytest.mark.unit
    def test_first_valid_date_wins(self):
        assert extract_date("31.02.2024\n02.03.2024\n03.03.2024") == datetime.date(2024, 3, 2)


class TestReconcile:
    """Tests for reconcile() function."""

    @pytest.mark.unit
    def test_pattern_total_overwrites_draft(self, make_draft):
        draft = make_draft(total=Decimal("40.00"))

        result = reconcile(LIDL_TEXT, draft)

        assert result.total == Decimal("45.20")
        assert result.provenance.total_confirmed is True
        assert result.provenance.reconciled is True
        assert result.provenance.used_raw_text is True
        assert result.provenance.used_vision_model is True

    @pytest.mark.unit
    def test_agreeing_total_is_kept_and_confirmed(self, make_draft):
        draft = make_draft(total=Decimal("45.15"), confidence=80)

        result = reconcile(LIDL_TEXT, draft)

        assert result.total == Decimal("45.15")
        assert result.provenance.total_confirmed is True
        # +5 suma, +5 data
        assert result.confidence == 90

    @pytest.mark.unit
    def test_confidence_is_capped(self, make_draft):
        result = reconcile(LIDL_TEXT, make_draft(total=Decimal("45.20"), confidence=98))
        assert result.confidence == 100

    @pytest.mark.unit
    def test_disagreeing_fallback_total_keeps_draft(self, make_draft):
        draft = make_draft(total=Decimal("40.00"))

        result = reconcile("ЛИДЛ\nНЕЩО 55.00\n01.10.2025", draft)

        assert result.total == Decimal("40.00")
        assert result.provenance.total_confirmed is False

    @pytest.mark.unit
    def test_fallback_total_replaces_missing_draft_total(self, make_draft):
        draft = make_draft(total=Decimal("0"))

        result = reconcile("ЛИДЛ\nНЕЩО 55.00\n01.10.2025", draft)

        assert result.total == Decimal("55.00")
        assert result.provenance.total_confirmed is False

    @pytest.mark.unit
    def test_retailer_overwritten_when_longer(self, make_draft):
        result = reconcile(LIDL_TEXT, make_draft(retailer="Л"))
        assert result.retailer == "Лидл"

    @pytest.mark.unit
    def test_retailer_kept_when_draft_is_more_specific(self, make_draft):
        result = reconcile(LIDL_TEXT, make_draft(retailer="Лидл България"))
        assert result.retailer == "Лидл България"

    @pytest.mark.unit
    def test_date_from_text_wins(self, make_draft):
        result = reconcile(LIDL_TEXT, make_draft(date=datetime.date(2025, 1, 10)))
        assert result.date == datetime.date(2025, 10, 1)
        assert result.provenance.date_confirmed is True

    @pytest.mark.unit
    def test_missing_date_defaults_to_today_unconfirmed(self, make_draft):
        today = datetime.date(2026, 10, 19)

        result = reconcile("ЛИДЛ\nОБЩА СУМА: 4.68", make_draft(date=None), today=lambda: today)

        assert result.date == today
        assert result.provenance.date_confirmed is False

    @pytest.mark.unit
    def test_input_draft_is_not_mutated(self, make_draft):
        draft = make_draft(total=Decimal("40.00"))

        reconcile(LIDL_TEXT, draft)

        assert draft.total == Decimal("40.00")
        assert draft.provenance.reconciled is False
        assert draft.provenance.total_confirmed is False
