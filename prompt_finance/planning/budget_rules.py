"""
Budgeting Rule Allocator

Maps categories onto the needs/wants/savings buckets and turns an income plus
a percentage rule (50/30/20 and friends) into concrete sub-category lines.

DESIGN DECISION: Every allocated line is floored to whole currency units.
The unallocated cents stay unplanned rather than being pushed onto an
arbitrary line.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from prompt_finance.models.finance import (
    Bucket,
    BudgetingRule,
    BudgetMethod,
    BuiltinCategory,
    Category,
    SubCategory,
    Transaction,
    TransactionType,
    floor_money,
)


CATEGORY_BUCKETS: dict[str, Bucket] = {
    BuiltinCategory.BILLS_AND_UTILITIES.value: Bucket.NEEDS,
    BuiltinCategory.TRANSPORT.value: Bucket.NEEDS,
    BuiltinCategory.HEALTH.value: Bucket.NEEDS,
    BuiltinCategory.FOOD_AND_DINING.value: Bucket.NEEDS,
    BuiltinCategory.SHOPPING.value: Bucket.WANTS,
    BuiltinCategory.ENTERTAINMENT.value: Bucket.WANTS,
    BuiltinCategory.GENERAL.value: Bucket.WANTS,
    BuiltinCategory.INCOME.value: Bucket.WANTS,
}

# English and French words users type for a category
USER_INPUT_CATEGORY_IDS: dict[str, str] = {
    "housing": "billsAndUtilities",
    "bills": "billsAndUtilities",
    "utilities": "billsAndUtilities",
    "transportation": "transport",
    "food": "foodAndDining",
    "dining": "foodAndDining",
    "leisure": "entertainment",
    "fun": "entertainment",
    "savings": "general",
    "logement": "billsAndUtilities",
    "factures": "billsAndUtilities",
    "alimentation": "foodAndDining",
    "nourriture": "foodAndDining",
    "loisirs": "entertainment",
    "épargne": "general",
}

# bucket -> [(line name, share of the bucket, category id)]
SUB_CATEGORY_DISTRIBUTION: dict[Bucket, list[tuple[str, Decimal, str]]] = {
    Bucket.NEEDS: [
        ("Rent", Decimal("0.40"), "billsAndUtilities"),
        ("Food", Decimal("0.25"), "foodAndDining"),
        ("Transport", Decimal("0.20"), "transport"),
        ("Health", Decimal("0.15"), "health"),
    ],
    Bucket.WANTS: [
        ("Dining out", Decimal("0.40"), "foodAndDining"),
        ("Shopping", Decimal("0.30"), "shopping"),
        ("Entertainment", Decimal("0.30"), "entertainment"),
    ],
    Bucket.SAVINGS: [
        ("Savings", Decimal("1.00"), "general"),
    ],
}

METHOD_RULES: dict[BudgetMethod, BudgetingRule] = {
    BudgetMethod.RULE_50_30_20: BudgetingRule(needs=50, wants=30, savings=20),
    BudgetMethod.RULE_60_30_10: BudgetingRule(needs=60, wants=30, savings=10),
    BudgetMethod.RULE_80_20: BudgetingRule(needs=80, wants=0, savings=20),
}


def get_bucket_for_category(category_id: str) -> Bucket:
    """Unknown and custom categories count as wants."""
    return CATEGORY_BUCKETS.get(category_id, Bucket.WANTS)


def map_user_input_to_category_id(user_input: str) -> Optional[str]:
    """
    Resolve what the user typed ("food", "logement", "transport") to a
    category id, or None when nothing matches.
    """
    lowered = user_input.strip().lower()
    if lowered in USER_INPUT_CATEGORY_IDS:
        return USER_INPUT_CATEGORY_IDS[lowered]
    for category_id in CATEGORY_BUCKETS:
        if category_id.lower() == lowered:
            return category_id
    return None


def rule_for_method(method: BudgetMethod) -> Optional[BudgetingRule]:
    """The percentage rule behind a budget method; None for manual and ai."""
    return METHOD_RULES.get(method)


def method_for_rule(rule: Optional[BudgetingRule]) -> Optional[BudgetMethod]:
    """Inverse of rule_for_method; None for custom splits."""
    if rule is None:
        return None
    for method, known in METHOD_RULES.items():
        if known == rule:
            return method
    return None


def bucket_amounts(income: Decimal, rule: BudgetingRule) -> dict[Bucket, Decimal]:
    return {bucket: income * rule.percentage_for(bucket) / 100 for bucket in Bucket}


def get_default_sub_categories(income: Decimal, rule: BudgetingRule) -> list[SubCategory]:
    """
    Split an income across the distribution table.

    Buckets at 0% and lines that floor to nothing are skipped.
    """
    sub_categories: list[SubCategory] = []
    for bucket, total in bucket_amounts(income, rule).items():
        if rule.percentage_for(bucket) <= 0:
            continue
        for name, share, category_id in SUB_CATEGORY_DISTRIBUTION[bucket]:
            amount = floor_money(total * share)
            if amount > 0:
                sub_categories.append(
                    SubCategory(name=name, planned_amount=amount, category_id=category_id, bucket=bucket)
                )
    return sub_categories


def sub_category_bucket(sub: SubCategory, categories: Optional[list[Category]] = None) -> Bucket:
    if sub.bucket is not None:
        return sub.bucket
    for category in categories or []:
        if category.id == sub.category_id:
            return category.bucket
    return get_bucket_for_category(sub.category_id)


def scale_sub_categories_to_rule(
    sub_categories: list[SubCategory],
    income: Decimal,
    rule: BudgetingRule,
    categories: Optional[list[Category]] = None,
) -> list[SubCategory]:
    """
    Rescale each bucket's lines so they add up to that bucket's target,
    keeping their relative weights. Buckets with nothing planned are left
    untouched.
    """
    targets = bucket_amounts(income, rule)
    planned: dict[Bucket, Decimal] = {bucket: Decimal("0") for bucket in Bucket}
    for sub in sub_categories:
        planned[sub_category_bucket(sub, categories)] += sub.planned_amount

    scaled = []
    for sub in sub_categories:
        bucket = sub_category_bucket(sub, categories)
        if planned[bucket] > 0:
            amount = floor_money(sub.planned_amount * targets[bucket] / planned[bucket])
            sub = sub.model_copy(update={"planned_amount": amount})
        scaled.append(sub)
    return scaled


def plan_to_monthly_budgets(sub_categories: list[SubCategory]) -> dict[str, Decimal]:
    """Total planned amount per category id, in first-seen order."""
    totals: dict[str, Decimal] = {}
    for sub in sub_categories:
        totals[sub.category_id] = totals.get(sub.category_id, Decimal("0")) + sub.planned_amount
    return totals


# =============================================================================
# PROGRESS AGAINST THE RULE
# =============================================================================

class BucketStatus(BaseModel):
    bucket: Bucket
    target: Decimal
    spent: Decimal

    @property
    def ratio(self) -> float:
        return float(self.spent / self.target) if self.target > 0 else 0.0


class SubCategoryProgress(BaseModel):
    sub_category: SubCategory
    bucket: Bucket
    actual: Decimal
    difference: Decimal
    difference_percent: float
    status: str  # ok | warning | good


def _in_month(transaction: Transaction, now: datetime) -> bool:
    return transaction.date.year == now.year and transaction.date.month == now.month


def rule_bucket_status(
    transactions: list[Transaction],
    rule: BudgetingRule,
    now: Optional[datetime] = None,
) -> list[BucketStatus]:
    """
    Compare this month's spending per bucket with the rule's targets.

    Targets are a share of this month's recorded income. Expenses linked to a
    goal count as savings.
    """
    now = now or datetime.now()
    month = [t for t in transactions if _in_month(t, now)]
    income = sum((t.amount for t in month if t.type == TransactionType.INCOME), Decimal("0"))

    spent = {bucket: Decimal("0") for bucket in Bucket}
    for transaction in month:
        if transaction.type != TransactionType.EXPENSE:
            continue
        bucket = Bucket.SAVINGS if transaction.goal_id else get_bucket_for_category(transaction.category)
        spent[bucket] += transaction.amount

    targets = bucket_amounts(income, rule)
    return [BucketStatus(bucket=b, target=targets[b], spent=spent[b]) for b in Bucket]


def sub_category_progress(
    sub_categories: list[SubCategory],
    transactions: list[Transaction],
    categories: Optional[list[Category]] = None,
    now: Optional[datetime] = None,
) -> list[SubCategoryProgress]:
    """
    Planned-versus-actual for the budget table.

    A line's actual is this month's expenses whose label contains the line
    name. Savings lines also collect goal contributions.
    """
    now = now or datetime.now()
    expenses = [
        t for t in transactions
        if t.type == TransactionType.EXPENSE and _in_month(t, now)
    ]

    rows = []
    for sub in sub_categories:
        needle = sub.name.strip().lower()
        actual = sum(
            (
                t.amount for t in expenses
                if needle in t.label.lower()
                or (sub.category_id == BuiltinCategory.GENERAL.value and t.goal_id)
            ),
            Decimal("0"),
        )
        difference = sub.planned_amount - actual
        percent = float(difference / sub.planned_amount * 100) if sub.planned_amount > 0 else 0.0
        bucket = sub_category_bucket(sub, categories)

        status = "ok"
        if bucket == Bucket.SAVINGS:
            if actual >= sub.planned_amount:
                status = "good"
        elif actual > sub.planned_amount:
            status = "warning"

        rows.append(
            SubCategoryProgress(
                sub_category=sub,
                bucket=bucket,
                actual=actual,
                difference=difference,
                difference_percent=percent,
                status=status,
            )
        )
    return rows
