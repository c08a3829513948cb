"""
Financial Profile Scoring

Heuristic 0-100 scores derived from what the user has recorded:

- maturity: how much of the toolkit is in use (tracking, budgets, goals,
  debt handling)
- discipline: how well budgets are respected
- stability: debt load against savings, and income regularity

The scores then drive the inferred stress and education levels used for
coaching tone and content recommendations.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from prompt_finance.models.finance import (
    Budget,
    BudgetType,
    Debt,
    DebtStatus,
    DebtType,
    EducationalLevel,
    Goal,
    ProfileInferred,
    ProfileMetrics,
    StressLevel,
    Transaction,
    TransactionType,
    UserProfile,
)

NEUTRAL_DISCIPLINE = 50
BASE_STABILITY = 50


def calculate_maturity_score(
    transactions: list[Transaction],
    budgets: list[Budget],
    goals: list[Goal],
    debts: list[Debt],
) -> int:
    score = 0

    # Tracking basics (max 30)
    for threshold in (5, 20, 50):
        if len(transactions) > threshold:
            score += 10

    # Planning (max 30)
    if budgets:
        score += 15
    if any(b.type == BudgetType.MONTHLY for b in budgets):
        score += 15

    # Future orientation (max 20)
    if goals:
        score += 10
    if any(g.current_saved > 0 for g in goals):
        score += 10

    # Debt management (max 20): debt-free, or tracking and repaying
    has_debt = any(d.type == DebtType.DEBT and d.status == DebtStatus.ACTIVE for d in debts)
    if not has_debt:
        score += 20
    else:
        score += 10
        if any("debt" in t.label.lower() or "dette" in t.label.lower() for t in transactions):
            score += 10

    return min(100, score)


def calculate_discipline_score(budgets: list[Budget]) -> int:
    """
    Mean adherence across budgets with a non-zero limit.

    A budget within its limit scores 100; each percent over costs one point.
    """
    scores = []
    for budget in budgets:
        if budget.limit == 0:
            continue
        adherence = budget.current_spent / budget.limit
        if adherence <= 1:
            scores.append(Decimal("100"))
        else:
            penalty = min(Decimal("100"), (adherence - 1) * 100)
            scores.append(100 - penalty)

    if not scores:
        return NEUTRAL_DISCIPLINE
    return round(sum(scores) / len(scores))


def calculate_stability_index(
    transactions: list[Transaction],
    debts: list[Debt],
    goals: list[Goal],
) -> int:
    score = BASE_STABILITY

    total_debt = sum(
        (d.remaining for d in debts if d.type == DebtType.DEBT and d.status == DebtStatus.ACTIVE),
        Decimal("0"),
    )
    total_savings = sum((g.current_saved for g in goals), Decimal("0"))

    if total_debt == 0:
        score += 20
    elif total_savings > total_debt:
        score += 10
    else:
        score -= 10

    income_months = {
        (t.date.year, t.date.month)
        for t in transactions
        if t.type == TransactionType.INCOME
    }
    if len(income_months) >= 3:
        score += 20
    if len(income_months) >= 6:
        score += 10

    return max(0, min(100, score))


def infer_stress_level(
    stability: int,
    discipline: int,
    debts: list[Debt],
    now: Optional[datetime] = None,
) -> StressLevel:
    today = (now or datetime.now()).date()
    has_overdue = any(
        d.due_date is not None and d.status != DebtStatus.PAID and d.due_date < today
        for d in debts
    )
    if has_overdue or stability < 30:
        return StressLevel.HIGH
    if discipline < 50 or stability < 60:
        return StressLevel.MEDIUM
    return StressLevel.LOW


def infer_educational_level(maturity: int) -> EducationalLevel:
    if maturity < 40:
        return EducationalLevel.BEGINNER
    if maturity < 80:
        return EducationalLevel.INTERMEDIATE
    return EducationalLevel.ADVANCED


def top_spending_category(transactions: list[Transaction]) -> Optional[str]:
    """Category with the largest expense total; the first seen wins ties."""
    totals: dict[str, Decimal] = {}
    for t in transactions:
        if t.type == TransactionType.EXPENSE:
            category = t.category or "general"
            totals[category] = totals.get(category, Decimal("0")) + t.amount

    top, best = None, Decimal("0")
    for category, amount in totals.items():
        if amount > best:
            top, best = category, amount
    return top


def recalculate_profile(
    profile: UserProfile,
    transactions: list[Transaction],
    budgets: list[Budget],
    goals: list[Goal],
    debts: list[Debt],
    now: Optional[datetime] = None,
) -> UserProfile:
    """Return a copy of `profile` with fresh metrics and inferences."""
    now = now or datetime.now()
    maturity = calculate_maturity_score(transactions, budgets, goals, debts)
    discipline = calculate_discipline_score(budgets)
    stability = calculate_stability_index(transactions, debts, goals)

    return profile.model_copy(update={
        "metrics": ProfileMetrics(
            maturity_score=maturity,
            discipline_score=discipline,
            stability_score=stability,
            monthly_progress=0,
        ),
        "inferred": ProfileInferred(
            stress_level=infer_stress_level(stability, discipline, debts, now),
            educational_level=infer_educational_level(maturity),
            top_spending_category=top_spending_category(transactions),
        ),
        "last_updated": now,
    })
