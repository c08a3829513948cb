"""
Debt Installment Scheduler

Pure functions over Debt models. Every function returns a new Debt and never
mutates its argument, so the store can apply them to either the live state or
a simulation copy.

DESIGN DECISION: Installments are whole currency units. The even share is
floored and the remainder lands on the LAST installment, so the schedule
always sums to the debt's total.

CRITICAL: Paid installments are history. Redistribution after an edit only
ever touches unpaid installments that fall after the edited one.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from prompt_finance.models.finance import (
    Budget,
    BudgetType,
    BuiltinCategory,
    Debt,
    DebtStatus,
    Installment,
    MonthlyPlan,
    add_months,
    floor_money,
)


NEEDS_CATEGORIES = frozenset({
    BuiltinCategory.FOOD_AND_DINING.value,
    BuiltinCategory.TRANSPORT.value,
    BuiltinCategory.BILLS_AND_UTILITIES.value,
    BuiltinCategory.HEALTH.value,
})

# Share of the post-essentials income considered safe for repayments
SAFE_CAPACITY_RATIO = Decimal("0.8")


def _split_evenly(total: Decimal, count: int) -> list[Decimal]:
    share = floor_money(total / count)
    amounts = [share] * count
    amounts[-1] = total - share * (count - 1)
    return amounts


def generate_installments(
    total_amount: Decimal,
    due_date: date,
    now: Optional[datetime] = None,
) -> list[Installment]:
    """
    Build a monthly schedule from next month until the due date.

    One installment per month of difference (at least one), each on the 1st
    of its month. A due date that is not in the future yields no schedule.
    """
    now = now or datetime.now()
    today = now.date()
    if due_date <= today:
        return []

    months = (due_date.year - today.year) * 12 + (due_date.month - today.month)
    count = max(1, months)
    first_of_month = today.replace(day=1)

    return [
        Installment(due_date=add_months(first_of_month, i + 1), amount=amount)
        for i, amount in enumerate(_split_evenly(total_amount, count))
    ]


def redistribute_installments(
    debt: Debt,
    installment_id: UUID,
    new_amount: Decimal,
) -> Debt:
    """
    Change one unpaid installment and rebalance the future ones.

    The unpaid installments dated after the edited one share what is left
    of the total once every other installment is accounted for (floor, with
    the remainder on the last). The shared amount never goes below zero.
    Without later installments only the edited amount changes.

    Raises:
        ValueError: Negative amount, unknown id, or a paid installment
    """
    if new_amount < 0:
        raise ValueError("Installment amount cannot be negative")

    ordered = sorted(debt.installments, key=lambda i: i.due_date)
    index = next((n for n, inst in enumerate(ordered) if inst.id == installment_id), None)
    if index is None:
        raise ValueError(f"Installment {installment_id} not found")
    if ordered[index].is_paid:
        raise ValueError("Paid installments cannot be edited")

    ordered[index] = ordered[index].model_copy(update={"amount": new_amount})

    future = [n for n in range(index + 1, len(ordered)) if not ordered[n].is_paid]
    if future:
        future_set = set(future)
        fixed = sum(
            (inst.amount for n, inst in enumerate(ordered) if n not in future_set),
            Decimal("0"),
        )
        remaining = max(Decimal("0"), debt.total_amount - fixed)
        for n, amount in zip(future, _split_evenly(remaining, len(future))):
            ordered[n] = ordered[n].model_copy(update={"amount": amount})

    return debt.model_copy(update={"installments": ordered})


def _with_status(debt: Debt, paid_amount: Decimal, installments: list[Installment]) -> Debt:
    status = DebtStatus.PAID if paid_amount >= debt.total_amount else DebtStatus.ACTIVE
    return debt.model_copy(update={
        "paid_amount": paid_amount,
        "installments": installments,
        "status": status,
    })


def apply_payment(debt: Debt, amount: Decimal) -> Debt:
    """
    Record money paid against a debt (or received back on a loan).

    The paid total is capped at the debt's total. Installments are marked
    paid in date order for as long as the cumulative paid amount covers them.
    """
    if amount <= 0:
        raise ValueError("Payment amount must be positive")

    paid = min(debt.total_amount, debt.paid_amount + amount)

    covered = Decimal("0")
    installments = []
    for inst in sorted(debt.installments, key=lambda i: i.due_date):
        covered += inst.amount
        installments.append(inst if inst.is_paid else inst.model_copy(update={"is_paid": covered <= paid}))

    return _with_status(debt, paid, installments)


def toggle_installment(debt: Debt, installment_id: UUID) -> Debt:
    """Flip an installment's paid flag and derive the paid total from the schedule."""
    found = False
    installments = []
    for inst in debt.installments:
        if inst.id == installment_id:
            inst = inst.model_copy(update={"is_paid": not inst.is_paid})
            found = True
        installments.append(inst)
    if not found:
        raise ValueError(f"Installment {installment_id} not found")

    paid = min(
        debt.total_amount,
        sum((i.amount for i in installments if i.is_paid), Decimal("0")),
    )
    return _with_status(debt, paid, installments)


def mark_paid(debt: Debt) -> Debt:
    installments = [i.model_copy(update={"is_paid": True}) for i in debt.installments]
    return _with_status(debt, debt.total_amount, installments)


def reschedule(debt: Debt, due_date: Optional[date], now: Optional[datetime] = None) -> Debt:
    """
    Move a debt's due date.

    Paid installments are kept; the unpaid balance is spread over a fresh
    schedule up to the new date.
    """
    kept = [i for i in debt.installments if i.is_paid]
    fresh: list[Installment] = []
    if due_date is not None and debt.remaining > 0:
        fresh = generate_installments(debt.remaining, due_date, now)
    return debt.model_copy(update={"due_date": due_date, "installments": kept + fresh})


def is_overdue(debt: Debt, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return (
        debt.due_date is not None
        and debt.due_date < today
        and debt.status != DebtStatus.PAID
    )


def safe_monthly_capacity(plan: Optional[MonthlyPlan], budgets: list[Budget]) -> Optional[Decimal]:
    """
    How much can safely go to repayments each month.

    80% of planned income left after the monthly budgets for essential
    categories. None means unbounded (no plan or no planned income).
    """
    if plan is None or plan.planned_income <= 0:
        return None
    essentials = sum(
        (
            b.limit for b in budgets
            if b.type == BudgetType.MONTHLY and b.category in NEEDS_CATEGORIES
        ),
        Decimal("0"),
    )
    return max(Decimal("0"), (plan.planned_income - essentials) * SAFE_CAPACITY_RATIO)


def exceeds_capacity(installment: Installment, capacity: Optional[Decimal]) -> bool:
    """True for an unpaid installment larger than the safe monthly capacity."""
    return capacity is not None and not installment.is_paid and installment.amount > capacity
