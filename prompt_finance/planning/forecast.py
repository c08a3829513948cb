"""
Balance Forecast

Projects the balance month by month under three scenarios.

The baseline monthly flow is the average of the last three months of
history. With too little history (fewer than MIN_HISTORY_TRANSACTIONS
entries) the known recurring items are used instead.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from prompt_finance.models.finance import (
    Frequency,
    RecurringTransaction,
    Transaction,
    TransactionType,
    add_months,
)


ALLOWED_DURATIONS = (3, 6, 12)
HISTORY_MONTHS = 3
MIN_HISTORY_TRANSACTIONS = 5
OPTIMISTIC_EXPENSE_FACTOR = Decimal("0.9")
CONSERVATIVE_EXPENSE_FACTOR = Decimal("1.1")


class ForecastPoint(BaseModel):
    month: date
    realistic: Decimal
    optimistic: Decimal
    conservative: Decimal


def monthly_equivalent(item: RecurringTransaction) -> Decimal:
    if item.frequency == Frequency.WEEKLY:
        return item.amount * 4
    if item.frequency == Frequency.YEARLY:
        return item.amount / 12
    return item.amount


def monthly_flows(
    transactions: list[Transaction],
    recurring: list[RecurringTransaction],
    now: Optional[datetime] = None,
) -> tuple[Decimal, Decimal]:
    """Estimated (income, expense) per month."""
    now = now or datetime.now()
    cutoff = datetime.combine(add_months(now.date(), -HISTORY_MONTHS), now.time())
    history = [t for t in transactions if t.date >= cutoff]

    if len(history) < MIN_HISTORY_TRANSACTIONS:
        income = sum(
            (monthly_equivalent(r) for r in recurring if r.type == TransactionType.INCOME),
            Decimal("0"),
        )
        expense = sum(
            (monthly_equivalent(r) for r in recurring if r.type == TransactionType.EXPENSE),
            Decimal("0"),
        )
        return income, expense

    income = sum((t.amount for t in history if t.type == TransactionType.INCOME), Decimal("0"))
    expense = sum((t.amount for t in history if t.type == TransactionType.EXPENSE), Decimal("0"))
    return income / HISTORY_MONTHS, expense / HISTORY_MONTHS


def project_balance(
    balance: Decimal,
    transactions: list[Transaction],
    recurring: list[RecurringTransaction],
    months: int = 6,
    now: Optional[datetime] = None,
) -> list[ForecastPoint]:
    """
    Project the balance for `months` months (3, 6 or 12).

    Point 0 is today's balance. Each later point adds one month of flow;
    the optimistic scenario spends 10% less, the conservative one 10% more.
    """
    if months not in ALLOWED_DURATIONS:
        raise ValueError(f"Forecast duration must be one of {ALLOWED_DURATIONS}")

    now = now or datetime.now()
    income, expense = monthly_flows(transactions, recurring, now)
    start = now.date().replace(day=1)

    realistic = optimistic = conservative = balance
    points = [ForecastPoint(month=now.date(), realistic=balance, optimistic=balance, conservative=balance)]
    for i in range(1, months + 1):
        realistic += income - expense
        optimistic += income - expense * OPTIMISTIC_EXPENSE_FACTOR
        conservative += income - expense * CONSERVATIVE_EXPENSE_FACTOR
        points.append(
            ForecastPoint(
                month=add_months(start, i),
                realistic=realistic,
                optimistic=optimistic,
                conservative=conservative,
            )
        )
    return points
