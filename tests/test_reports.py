"""Tests for monthly report aggregation."""

from datetime import datetime
from decimal import Decimal

import pytest

from prompt_finance.models.finance import (
    AiPersona,
    Language,
    ReportStatus,
    SubCategory,
    Transaction,
    TransactionType,
)
from prompt_finance.insights.reports import (
    FALLBACK_SUMMARY,
    build_monthly_report,
    classify,
    narration_context,
)


def tx(amount: str, type: TransactionType, category: str, when: datetime) -> Transaction:
    return Transaction(amount=Decimal(amount), type=type, category=category, label="x", date=when)


TRANSACTIONS = [
    tx("3000", TransactionType.INCOME, "income", datetime(2026, 2, 1)),
    tx("450", TransactionType.EXPENSE, "foodAndDining", datetime(2026, 2, 5)),
    tx("200", TransactionType.EXPENSE, "entertainment", datetime(2026, 2, 9)),
    tx("105", TransactionType.EXPENSE, "transport", datetime(2026, 2, 20)),
    tx("999", TransactionType.EXPENSE, "shopping", datetime(2026, 3, 1)),
]

SUB_CATEGORIES = [
    SubCategory(name="Food", planned_amount=Decimal("400"), category_id="foodAndDining"),
    SubCategory(name="Transport", planned_amount=Decimal("100"), category_id="transport"),
    SubCategory(name="Health", planned_amount=Decimal("150"), category_id="health"),
]


class TestClassify:
    """Tests for the planned/actual status."""

    def test_statuses(self):
        """Test ok, warning and over."""
        assert classify(Decimal("100"), Decimal("100")) == ReportStatus.OK
        assert classify(Decimal("100"), Decimal("105")) == ReportStatus.WARNING
        assert classify(Decimal("100"), Decimal("111")) == ReportStatus.OVER
        assert classify(Decimal("0"), Decimal("1")) == ReportStatus.OVER
        assert classify(Decimal("0"), Decimal("0")) == ReportStatus.OK


class TestBuildMonthlyReport:
    """Tests for the deterministic figures."""

    def test_totals_cover_only_the_month(self):
        """Test that other months are ignored."""
        report = build_monthly_report(2, 2026, TRANSACTIONS, SUB_CATEGORIES)
        assert report.id == "2026-02"
        assert report.month == "February"
        assert report.total_income == Decimal("3000")
        assert report.total_expenses == Decimal("755")
        assert report.net_savings == Decimal("2245")
        assert report.savings_rate == pytest.approx(74.833, rel=1e-3)

    def test_breakdown_union_sorted_by_actual(self):
        """Test that planned-only categories appear and rows are ordered."""
        report = build_monthly_report(2, 2026, TRANSACTIONS, SUB_CATEGORIES)
        rows = {r.category_id: r for r in report.category_breakdown}
        assert [r.category_id for r in report.category_breakdown] == [
            "foodAndDining", "entertainment", "transport", "health",
        ]
        assert rows["foodAndDining"].status == ReportStatus.OVER
        assert rows["transport"].status == ReportStatus.WARNING
        assert rows["entertainment"].status == ReportStatus.OVER
        assert rows["health"].status == ReportStatus.OK
        assert rows["health"].difference == Decimal("150")

    def test_no_income_means_zero_rate(self):
        """Test that the savings rate is 0 without income."""
        report = build_monthly_report(3, 2026, TRANSACTIONS, [])
        assert report.savings_rate == 0.0
        assert report.net_savings == Decimal("-999")

    def test_fallback_narrative(self):
        """Test that narrative fields start with the fallback text."""
        report = build_monthly_report(2, 2026, TRANSACTIONS, [])
        assert report.executive_summary == FALLBACK_SUMMARY
        assert report.actionable_tips

    def test_french_month_name(self):
        """Test localized month names."""
        assert build_monthly_report(8, 2026, [], [], Language.FR).month == "août"

    def test_invalid_month(self):
        """Test that month 13 is rejected."""
        with pytest.raises(ValueError):
            build_monthly_report(13, 2026, [], [])


class TestNarrationContext:
    """Tests for what the narrator may see."""

    def test_context_is_aggregated(self):
        """Test the context fields."""
        report = build_monthly_report(2, 2026, TRANSACTIONS, SUB_CATEGORIES)
        context = narration_context(report, AiPersona.STRICT)
        assert context["period"] == "2/2026"
        assert context["persona"] == "strict"
        assert len(context["top_expenses"]) == 4
        assert [r["category_id"] for r in context["worst_over_budget"]] == [
            "entertainment", "foodAndDining", "transport",
        ]
        assert "transactions" not in context
