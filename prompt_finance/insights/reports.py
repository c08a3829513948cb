"""
Monthly Report Aggregation

CRITICAL: Every figure in a MonthlyReport is computed here,
deterministically. The language model only writes the narrative fields,
from the context produced by `narration_context`.
"""

import calendar
from datetime import datetime
from decimal import Decimal
from typing import Any

from prompt_finance.models.finance import (
    AiPersona,
    Language,
    MonthlyReport,
    ReportCategoryBreakdown,
    ReportStatus,
    SubCategory,
    Transaction,
    TransactionType,
)

# Overspending by more than this share of the plan is "over", otherwise "warning"
OVER_BUDGET_TOLERANCE = Decimal("0.1")

FALLBACK_SUMMARY = "Analysis unavailable (API Key missing)"
FALLBACK_ANALYSIS = "Analysis unavailable"
FALLBACK_TIPS = ["Check your budget settings."]

_FRENCH_MONTHS = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]


def month_name(month: int, language: Language = Language.EN) -> str:
    if language == Language.FR:
        return _FRENCH_MONTHS[month - 1]
    return calendar.month_name[month]


def classify(planned: Decimal, actual: Decimal) -> ReportStatus:
    """
    ok when within plan, warning when up to 10% over, over beyond that.
    Any spending in an unplanned category is over.
    """
    if actual > planned and planned > 0:
        return ReportStatus.OVER if actual / planned - 1 > OVER_BUDGET_TOLERANCE else ReportStatus.WARNING
    if planned == 0 and actual > 0:
        return ReportStatus.OVER
    return ReportStatus.OK


def build_category_breakdown(
    transactions: list[Transaction],
    sub_categories: list[SubCategory],
) -> list[ReportCategoryBreakdown]:
    """
    Planned versus actual per category, over the union of planned and spent
    categories, largest actual first.
    """
    actual: dict[str, Decimal] = {}
    for t in transactions:
        if t.type == TransactionType.EXPENSE:
            category = t.category or "general"
            actual[category] = actual.get(category, Decimal("0")) + t.amount

    planned: dict[str, Decimal] = {}
    for sub in sub_categories:
        planned[sub.category_id] = planned.get(sub.category_id, Decimal("0")) + sub.planned_amount

    breakdown = []
    for category_id in list(actual) + [c for c in planned if c not in actual]:
        p = planned.get(category_id, Decimal("0"))
        a = actual.get(category_id, Decimal("0"))
        breakdown.append(
            ReportCategoryBreakdown(
                category_id=category_id,
                planned=p,
                actual=a,
                difference=p - a,
                status=classify(p, a),
            )
        )
    breakdown.sort(key=lambda row: row.actual, reverse=True)
    return breakdown


def build_monthly_report(
    month: int,
    year: int,
    transactions: list[Transaction],
    sub_categories: list[SubCategory],
    language: Language = Language.EN,
) -> MonthlyReport:
    """
    Aggregate one calendar month (month is 1-12).

    The narrative fields carry the fallback text until a narrator replaces
    them.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")

    in_month = [t for t in transactions if t.date.year == year and t.date.month == month]
    income = sum((t.amount for t in in_month if t.type == TransactionType.INCOME), Decimal("0"))
    expenses = sum((t.amount for t in in_month if t.type == TransactionType.EXPENSE), Decimal("0"))
    net = income - expenses
    savings_rate = float(net / income * 100) if income > 0 else 0.0

    return MonthlyReport(
        id=f"{year}-{month:02d}",
        month=month_name(month, language),
        year=year,
        generated_at=datetime.now(),
        total_income=income,
        total_expenses=expenses,
        net_savings=net,
        savings_rate=savings_rate,
        category_breakdown=build_category_breakdown(in_month, sub_categories),
        executive_summary=FALLBACK_SUMMARY,
        behavioral_analysis=FALLBACK_ANALYSIS,
        actionable_tips=list(FALLBACK_TIPS),
    )


def narration_context(report: MonthlyReport, persona: AiPersona) -> dict[str, Any]:
    """The only data the narrator is allowed to see."""
    rows = report.category_breakdown
    top = sorted(rows, key=lambda r: r.actual, reverse=True)[:5]
    worst = sorted((r for r in rows if r.difference < 0), key=lambda r: r.difference)[:3]
    return {
        "period": f"{report.id[5:].lstrip('0')}/{report.year}",
        "income": str(report.total_income),
        "expenses": str(report.total_expenses),
        "net_savings": str(report.net_savings),
        "savings_rate": round(report.savings_rate, 1),
        "top_expenses": [r.model_dump(mode="json") for r in top],
        "worst_over_budget": [r.model_dump(mode="json") for r in worst],
        "persona": persona.value,
    }
