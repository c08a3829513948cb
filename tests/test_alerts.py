"""Tests for proactive coach alerts."""

from datetime import date, datetime, timedelta
from decimal import Decimal

from prompt_finance.models.finance import (
    Budget,
    FinancialState,
    Frequency,
    Language,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from prompt_finance.insights.alerts import (
    budget_alerts,
    daily_spend_alert,
    drift_alerts,
    duplicate_alerts,
    generate_coach_alerts,
    subscription_alerts,
)


NOW = datetime(2026, 3, 15, 18, 0)


def expense(amount: str, when: datetime, label: str = "item", category: str = "general") -> Transaction:
    return Transaction(amount=Decimal(amount), label=label, type=TransactionType.EXPENSE,
                       category=category, date=when)


class TestBudgetAlerts:
    """Tests for budget thresholds."""

    def test_warning_at_eighty_percent(self):
        """Test the nearly-reached alert."""
        budget = Budget(name="Trip", limit=Decimal("100"), current_spent=Decimal("85"))
        alerts = budget_alerts(FinancialState(budgets=[budget]), NOW, Language.EN)
        assert len(alerts) == 1
        assert alerts[0].id == f"budget-warning-{budget.id}"
        assert "85%" in alerts[0].message

    def test_exceeded(self):
        """Test the exceeded alert."""
        budget = Budget(name="Trip", limit=Decimal("100"), current_spent=Decimal("100"))
        alerts = budget_alerts(FinancialState(budgets=[budget]), NOW, Language.EN)
        assert alerts[0].id == f"budget-over-{budget.id}"

    def test_french_text(self):
        """Test that alerts follow the language."""
        budget = Budget(name="Voyage", limit=Decimal("100"), current_spent=Decimal("150"))
        alerts = budget_alerts(FinancialState(budgets=[budget]), NOW, Language.FR)
        assert alerts[0].title == "Budget dépassé"

    def test_quiet_below_threshold(self):
        """Test that low usage raises nothing."""
        budget = Budget(name="Trip", limit=Decimal("100"), current_spent=Decimal("10"))
        assert budget_alerts(FinancialState(budgets=[budget]), NOW, Language.EN) == []


class TestSpendingPatterns:
    """Tests for daily spend and drift."""

    def test_high_daily_spend(self):
        """Test that today above twice the weekly average is flagged."""
        state = FinancialState(transactions=[
            expense("70", NOW - timedelta(hours=2)),
            expense("70", NOW - timedelta(days=3)),
        ])
        alert = daily_spend_alert(state, NOW, Language.EN)
        assert alert is not None
        assert alert.id == "high-daily-spend"

    def test_small_spend_is_ignored(self):
        """Test the absolute floor."""
        state = FinancialState(transactions=[expense("15", NOW - timedelta(hours=1))])
        assert daily_spend_alert(state, NOW, Language.EN) is None

    def test_category_drift(self):
        """Test that this month 20% above the past average is flagged."""
        state = FinancialState(transactions=[
            expense("100", datetime(2026, 1, 10), category="shopping"),
            expense("100", datetime(2026, 2, 10), category="shopping"),
            expense("150", datetime(2026, 3, 10), category="shopping"),
        ])
        alerts = drift_alerts(state, NOW, Language.EN)
        assert [a.id for a in alerts] == ["drift-shopping"]


class TestDuplicatesAndSubscriptions:
    """Tests for duplicate and subscription detection."""

    def test_duplicate_within_a_day(self):
        """Test that the same amount and similar label within 24h is flagged."""
        state = FinancialState(transactions=[
            expense("12.50", NOW, label="Lunch"),
            expense("12.50", NOW - timedelta(hours=3), label="lunch cafe"),
            expense("12.50", NOW - timedelta(days=3), label="lunch"),
        ])
        alerts = duplicate_alerts(state, NOW, Language.EN)
        assert len(alerts) == 1
        assert alerts[0].action_label == "Check"

    def test_overlapping_subscriptions(self):
        """Test that two video subscriptions are flagged."""
        state = FinancialState(recurring_transactions=[
            RecurringTransaction(label="Netflix", amount=Decimal("15"), frequency=Frequency.MONTHLY,
                                 next_due_date=date(2026, 4, 1)),
            RecurringTransaction(label="Disney+", amount=Decimal("9"), frequency=Frequency.MONTHLY,
                                 next_due_date=date(2026, 4, 1)),
            RecurringTransaction(label="Spotify", amount=Decimal("10"), frequency=Frequency.MONTHLY,
                                 next_due_date=date(2026, 4, 1)),
        ])
        alerts = subscription_alerts(state, NOW, Language.EN)
        assert [a.id for a in alerts] == ["optimize-sub-video"]

    def test_generate_is_stable(self):
        """Test that running twice yields the same ids."""
        budget = Budget(name="Trip", limit=Decimal("100"), current_spent=Decimal("90"))
        state = FinancialState(budgets=[budget])
        first = [a.id for a in generate_coach_alerts(state, NOW)]
        second = [a.id for a in generate_coach_alerts(state, NOW)]
        assert first == second == [f"budget-warning-{budget.id}"]
