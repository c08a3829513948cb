"""Tests for the budgeting rule allocator."""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from prompt_finance.models.finance import (
    Bucket,
    BudgetingRule,
    BudgetMethod,
    SubCategory,
    Transaction,
    TransactionType,
)
from prompt_finance.planning.budget_rules import (
    get_bucket_for_category,
    get_default_sub_categories,
    map_user_input_to_category_id,
    method_for_rule,
    plan_to_monthly_budgets,
    rule_bucket_status,
    rule_for_method,
    scale_sub_categories_to_rule,
    sub_category_progress,
)


RULE_50_30_20 = BudgetingRule(needs=50, wants=30, savings=20)


class TestCategoryMapping:
    """Tests for user input and bucket lookups."""

    @pytest.mark.parametrize("text,expected", [
        ("food", "foodAndDining"),
        ("Housing", "billsAndUtilities"),
        ("logement", "billsAndUtilities"),
        ("transport", "transport"),
        ("HEALTH", "health"),
        ("yachts", None),
    ])
    def test_map_user_input(self, text, expected):
        """Test English, French and id inputs."""
        assert map_user_input_to_category_id(text) == expected

    def test_unknown_category_counts_as_wants(self):
        """Test that custom categories fall in the wants bucket."""
        assert get_bucket_for_category("custom-1234") == Bucket.WANTS
        assert get_bucket_for_category("health") == Bucket.NEEDS


class TestMethods:
    """Tests for method/rule conversion."""

    def test_eighty_twenty_has_no_wants(self):
        """Test that 80/20 is needs and savings only."""
        rule = rule_for_method(BudgetMethod.RULE_80_20)
        assert (rule.needs, rule.wants, rule.savings) == (80, 0, 20)

    def test_manual_and_ai_have_no_rule(self):
        """Test that non-rule methods map to None."""
        assert rule_for_method(BudgetMethod.MANUAL) is None
        assert rule_for_method(BudgetMethod.AI) is None

    def test_method_for_rule(self):
        """Test the inverse lookup."""
        assert method_for_rule(RULE_50_30_20) == BudgetMethod.RULE_50_30_20
        assert method_for_rule(BudgetingRule(needs=70, wants=20, savings=10)) is None
        assert method_for_rule(None) is None


class TestDefaultSubCategories:
    """Tests for the income split."""

    def test_fifty_thirty_twenty_on_3000(self):
        """Test the exact lines for 3000 at 50/30/20."""
        lines = {s.name: s.planned_amount for s in get_default_sub_categories(Decimal("3000"), RULE_50_30_20)}
        assert lines == {
            "Rent": Decimal("600"),
            "Food": Decimal("375"),
            "Transport": Decimal("300"),
            "Health": Decimal("225"),
            "Dining out": Decimal("360"),
            "Shopping": Decimal("270"),
            "Entertainment": Decimal("270"),
            "Savings": Decimal("600"),
        }

    def test_lines_are_floored(self):
        """Test that no line has cents and the total never exceeds income."""
        lines = get_default_sub_categories(Decimal("1234.56"), RULE_50_30_20)
        assert all(s.planned_amount == s.planned_amount.to_integral_value() for s in lines)
        assert sum(s.planned_amount for s in lines) <= Decimal("1234.56")

    def test_zero_bucket_is_skipped(self):
        """Test that 80/20 produces no wants lines."""
        lines = get_default_sub_categories(Decimal("2000"), rule_for_method(BudgetMethod.RULE_80_20))
        assert all(s.bucket != Bucket.WANTS for s in lines)

    def test_lines_carry_their_bucket(self):
        """Test that the allocator records the bucket on each line."""
        lines = get_default_sub_categories(Decimal("3000"), RULE_50_30_20)
        savings = [s for s in lines if s.name == "Savings"][0]
        assert savings.bucket == Bucket.SAVINGS
        assert savings.category_id == "general"


class TestScaling:
    """Tests for rescaling lines onto a rule."""

    def test_scaling_keeps_relative_weights(self):
        """Test that a bucket's lines are scaled to the bucket target."""
        subs = [
            SubCategory(name="Rent", planned_amount=Decimal("1000"), category_id="billsAndUtilities"),
            SubCategory(name="Food", planned_amount=Decimal("1000"), category_id="foodAndDining"),
        ]
        scaled = scale_sub_categories_to_rule(subs, Decimal("2000"), RULE_50_30_20)
        assert [s.planned_amount for s in scaled] == [Decimal("500"), Decimal("500")]

    def test_explicit_bucket_wins_over_category(self):
        """Test that a savings line in the general category scales as savings."""
        subs = [
            SubCategory(name="Savings", planned_amount=Decimal("100"), category_id="general", bucket=Bucket.SAVINGS),
        ]
        scaled = scale_sub_categories_to_rule(subs, Decimal("1000"), RULE_50_30_20)
        assert scaled[0].planned_amount == Decimal("200")

    def test_plan_to_monthly_budgets_sums_per_category(self):
        """Test that lines sharing a category are added together."""
        subs = get_default_sub_categories(Decimal("3000"), RULE_50_30_20)
        totals = plan_to_monthly_budgets(subs)
        assert totals["foodAndDining"] == Decimal("735")
        assert list(totals)[0] == "billsAndUtilities"


class TestProgress:
    """Tests for planned-versus-actual."""

    def test_rule_bucket_status(self):
        """Test that targets come from this month's income."""
        now = datetime(2026, 3, 15)
        transactions = [
            Transaction(amount=Decimal("2000"), label="salary", type=TransactionType.INCOME, date=datetime(2026, 3, 1)),
            Transaction(amount=Decimal("300"), label="rent", type=TransactionType.EXPENSE,
                        category="billsAndUtilities", date=datetime(2026, 3, 2)),
            Transaction(amount=Decimal("50"), label="to goal", type=TransactionType.EXPENSE,
                        category="general", goal_id=uuid4(), date=datetime(2026, 3, 3)),
            Transaction(amount=Decimal("999"), label="old", type=TransactionType.EXPENSE,
                        category="shopping", date=datetime(2026, 2, 3)),
        ]
        status = {s.bucket: s for s in rule_bucket_status(transactions, RULE_50_30_20, now)}
        assert status[Bucket.NEEDS].target == Decimal("1000")
        assert status[Bucket.NEEDS].spent == Decimal("300")
        assert status[Bucket.SAVINGS].spent == Decimal("50")
        assert status[Bucket.WANTS].spent == Decimal("0")

    def test_sub_category_progress_matches_labels(self):
        """Test that a line collects expenses whose label contains its name."""
        now = datetime(2026, 3, 15)
        subs = [SubCategory(name="Food", planned_amount=Decimal("100"), category_id="foodAndDining")]
        transactions = [
            Transaction(amount=Decimal("120"), label="food market", type=TransactionType.EXPENSE,
                        date=datetime(2026, 3, 10)),
        ]
        row = sub_category_progress(subs, transactions, now=now)[0]
        assert row.actual == Decimal("120")
        assert row.difference == Decimal("-20")
        assert row.status == "warning"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
