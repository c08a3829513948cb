"""
Tests for the orchestration flows.

Every flow is wired by hand with in-memory storage and fake models, so
these tests cover the end-to-end behaviour without Gemini or Sheets.
"""

import asyncio
import io
import json
from datetime import date, datetime
from decimal import Decimal

import pytest
from PIL import Image

from prompt_finance.agents import (
    BudgetSuggestionAgent,
    CategoryAgent,
    InsightsAgent,
    ReceiptScanAgent,
    ReportNarrationAgent,
)
from prompt_finance.insights.reports import FALLBACK_SUMMARY
from prompt_finance.models.commands import CommandAction
from prompt_finance.models.finance import (
    ActiveWidget,
    BudgetCreationStep,
    BudgetMethod,
    Frequency,
    TransactionType,
)
from prompt_finance.orchestrator import (
    MAX_HISTORY,
    AppComponents,
    BudgetCreationFlow,
    CommandFlow,
    InsightsFlow,
    ReceiptFlow,
    ReportFlow,
    StatePersistence,
)
from prompt_finance.services.storage import StorageError
from prompt_finance.state import FinanceStore

from conftest import FakeModel, InMemoryStateStorage


@pytest.fixture
def persistence(store, state_storage, audit_logger) -> StatePersistence:
    return StatePersistence(store, state_storage, audit_logger)


@pytest.fixture
def flow(store, persistence, audit_logger) -> CommandFlow:
    return CommandFlow(store, persistence=persistence, audit_logger=audit_logger)


def run(flow: CommandFlow, text: str):
    return asyncio.run(flow.execute(text))


def add_expenses(store: FinanceStore, count: int) -> None:
    for index in range(count):
        store.add_transaction(Decimal("10"), f"item {index}", TransactionType.EXPENSE,
                              category="foodAndDining")


class TestCommandFlow:
    """Tests for command-bar submissions."""

    def test_blank_input_is_refused(self, flow, state_storage):
        """Test that nothing happens for blank input."""
        outcome = run(flow, "   ")
        assert outcome.success is False
        assert outcome.message == "Type a command first."
        assert state_storage.save_count == 0

    def test_expense_is_recorded_and_saved(self, flow, store, state_storage, audit_storage):
        """Test the happy path from text to saved state."""
        outcome = run(flow, "12.50 lunch")
        assert outcome.success is True
        assert outcome.action == CommandAction.ADD_TRANSACTION
        assert outcome.message.startswith("Expense added:")
        assert store.balance == Decimal("-12.50")
        assert state_storage.save_count == 1
        assert audit_storage.types() == [
            "command_received", "command_parsed", "command_executed", "state_saved",
        ]

    def test_correlation_id_is_shared(self, flow, audit_storage):
        """Test that every event of a command carries one correlation id."""
        outcome = run(flow, "+2000 salary")
        assert {e.correlation_id for e in audit_storage.events} == {outcome.correlation_id}

    def test_unknown_command(self, flow, state_storage, audit_storage):
        """Test that gibberish fails without saving."""
        outcome = run(flow, "hello there")
        assert outcome.success is False
        assert "didn't understand" in outcome.message
        assert state_storage.save_count == 0
        assert "command_failed" in audit_storage.types()

    def test_tagged_expense_links_budget(self, flow, store):
        """Test that #tag attaches the expense to the named budget."""
        run(flow, "budget Wedding 1000")
        outcome = run(flow, "200 flowers #wedding")
        assert "(budget: Wedding)" in outcome.message
        assert store.current.budgets[0].current_spent == Decimal("200")
        assert store.current.transactions[0].label == "flowers"

    def test_unknown_tag_is_reported(self, flow, store):
        """Test that an unknown tag still records the expense."""
        outcome = run(flow, "50 hotel #trip")
        assert outcome.success is True
        assert "(no budget named 'trip')" in outcome.message
        assert store.current.transactions[0].budget_id is None

    def test_category_agent_fills_missing_category(self, store):
        """Test that the category agent is asked when the grammar has no category."""
        agent = CategoryAgent(model=FakeModel('{"category": "foodAndDining"}'))
        flow = CommandFlow(store, category_agent=agent)
        asyncio.run(flow.execute("8 pizza"))
        assert store.current.transactions[0].category == "foodAndDining"

    def test_income_defaults_to_income_category(self, flow, store):
        """Test the fallback category for income."""
        run(flow, "+2500 salary")
        assert store.current.transactions[0].category == "income"

    def test_alias_expands(self, flow, store):
        """Test that an alias runs its command."""
        outcome = run(flow, "alias coffee 3.50 coffee")
        assert outcome.message == "Alias 'coffee' now runs: 3.50 coffee"
        run(flow, "Coffee")
        assert store.balance == Decimal("-3.50")

    def test_widget_commands(self, flow, store):
        """Test show and clear."""
        outcome = run(flow, "budgets")
        assert outcome.widget == ActiveWidget.BUDGETS
        assert outcome.message == "Showing budgets."
        assert store.current.active_widget == ActiveWidget.BUDGETS
        assert run(flow, "clear").message == "View cleared."

    def test_goal_contribution(self, flow, store):
        """Test creating a goal and saving towards it."""
        run(flow, "goal Car 5000")
        outcome = run(flow, "save 200 for car")
        assert outcome.success is True
        assert outcome.widget == ActiveWidget.GOALS
        assert store.current.goals[0].current_saved == Decimal("200")

    def test_missing_goal(self, flow):
        """Test that saving for an unknown goal fails."""
        outcome = run(flow, "save 50 for Boat")
        assert outcome.success is False
        assert outcome.message == "Goal 'Boat' not found."

    def test_debt_and_payment(self, flow, store):
        """Test recording a debt and paying part of it."""
        assert run(flow, "debt from John 500").message.startswith("Debt recorded: John")
        outcome = run(flow, "pay 100 to John")
        assert outcome.success is True
        assert "remaining" in outcome.message
        assert store.current.debts[0].remaining == Decimal("400")

    def test_payment_without_debt(self, flow):
        """Test that paying nobody fails."""
        outcome = run(flow, "pay 10 to Nobody")
        assert outcome.success is False
        assert outcome.message == "No open debt or loan with Nobody."

    def test_monthly_budget_by_category(self, flow, store):
        """Test that a category word creates a monthly budget."""
        outcome = run(flow, "monthly budget food 400")
        assert outcome.widget == ActiveWidget.BUDGETS
        assert store.current.budgets[0].category == "foodAndDining"

    def test_monthly_budget_unmapped_category(self, flow, store):
        """Test that an unmapped category word is kept as the category id."""
        outcome = run(flow, "monthly budget Rent 500")
        assert outcome.success is True
        assert store.current.budgets[0].category == "rent"
        assert store.current.budgets[0].limit == Decimal("500")

    @pytest.mark.parametrize("text", ["budget   50", "+   5", "debt from   50"])
    def test_blank_names_fail_cleanly(self, flow, store, text):
        """Test that blank captured names give a failed outcome, not an exception."""
        outcome = run(flow, text)
        assert outcome.success is False
        assert store.current.budgets == []
        assert store.current.debts == []

    def test_unknown_sub_category(self, flow):
        """Test that a budget line needs a known category."""
        outcome = run(flow, "plan subcategory Rent 800 for nowhere")
        assert outcome.success is False
        assert outcome.message == "Unknown category 'nowhere'."

    def test_rule_command(self, flow, store):
        """Test setting a budgeting rule."""
        outcome = run(flow, "set rule 60/30/10")
        assert outcome.message == "Budgeting rule set to 60/30/10"
        assert store.current.budgeting_rule.needs == 60

    def test_recurring_command(self, flow, store):
        """Test that a recurring item is scheduled."""
        outcome = run(flow, "every month 15 Netflix")
        assert outcome.widget == ActiveWidget.RECURRING
        assert store.current.recurring_transactions[0].frequency == Frequency.MONTHLY

    def test_budget_setup_blocks_commands(self, flow, store):
        """Test that the guided setup must be finished first."""
        outcome = run(flow, "monthly budget")
        assert outcome.success is True
        assert store.budget_creation.step == BudgetCreationStep.GET_INCOME
        blocked = run(flow, "12 lunch")
        assert blocked.success is False
        assert blocked.message == "Finish or cancel the monthly budget setup first."

    def test_save_failure_keeps_command(self, store, audit_logger, audit_storage):
        """Test that a failing backend does not undo the command."""
        persistence = StatePersistence(store, InMemoryStateStorage(fail_saves=True), audit_logger)
        flow = CommandFlow(store, persistence=persistence, audit_logger=audit_logger)
        outcome = asyncio.run(flow.execute("12 lunch"))
        assert outcome.success is True
        assert store.balance == Decimal("-12")
        assert "save_failed" in audit_storage.types()

    def test_history_is_capped(self, flow):
        """Test that only the latest commands are kept."""
        for index in range(MAX_HISTORY + 5):
            run(flow, f"{index + 1} snack")
        assert len(flow.history) == MAX_HISTORY
        assert flow.history[-1] == f"{MAX_HISTORY + 5} snack"


class TestSimulation:
    """Tests for what-if mode through the command bar."""

    def test_nested_command_is_not_saved(self, flow, store, state_storage, audit_storage):
        """Test that a simulated expense never reaches storage."""
        outcome = run(flow, "simulate 300 new phone")
        assert outcome.success is True
        assert outcome.simulated is True
        assert store.balance == Decimal("-300")
        assert state_storage.save_count == 0
        assert "simulation_started" in audit_storage.types()

    def test_second_simulation_is_refused(self, flow):
        """Test that only one simulation can run."""
        run(flow, "simulate")
        outcome = run(flow, "simulate")
        assert outcome.success is False
        assert outcome.message == "Simulation mode is already active."

    def test_commit_saves(self, flow, store, state_storage):
        """Test that committing keeps and saves the changes."""
        run(flow, "simulate 300 new phone")
        assert asyncio.run(flow.commit_simulation()) is True
        assert store.is_simulating is False
        assert store.balance == Decimal("-300")
        assert state_storage.save_count == 1

    def test_cancel_discards(self, flow, store, state_storage, audit_storage):
        """Test that cancelling throws the changes away."""
        run(flow, "simulate")
        run(flow, "300 new phone")
        assert asyncio.run(flow.cancel_simulation()) is True
        assert store.balance == Decimal("0")
        assert state_storage.save_count == 0
        assert "simulation_cancelled" in audit_storage.types()

    def test_commit_without_simulation(self, flow):
        """Test that commit reports when nothing is running."""
        assert asyncio.run(flow.commit_simulation()) is False


class TestBudgetCreationFlow:
    """Tests for the guided monthly budget setup."""

    def test_rule_method(self, store, persistence, audit_logger, state_storage, audit_storage):
        """Test the income then method path with a percentage rule."""
        flow = BudgetCreationFlow(store, persistence=persistence, audit_logger=audit_logger)
        flow.start()
        assert flow.set_income(Decimal("3000")).success is True
        outcome = asyncio.run(flow.generate(BudgetMethod.RULE_50_30_20))
        assert outcome.success is True
        assert outcome.widget == ActiveWidget.RULE_BASED_BUDGET
        assert flow.step == BudgetCreationStep.IDLE
        assert state_storage.save_count == 1
        assert "budget_plan_generated" in audit_storage.types()

    def test_income_must_be_positive(self, store):
        """Test that zero income is refused."""
        flow = BudgetCreationFlow(store)
        flow.start()
        outcome = flow.set_income(Decimal("0"))
        assert outcome.success is False
        assert flow.step == BudgetCreationStep.GET_INCOME

    def test_method_before_income(self, store):
        """Test that a method needs an income first."""
        flow = BudgetCreationFlow(store)
        flow.start()
        outcome = asyncio.run(flow.generate(BudgetMethod.MANUAL))
        assert outcome.message == "Enter your monthly income first."

    def test_ai_not_configured(self, store):
        """Test the AI method without an agent."""
        flow = BudgetCreationFlow(store)
        flow.start()
        flow.set_income(Decimal("2000"))
        outcome = asyncio.run(flow.generate(BudgetMethod.AI))
        assert outcome.message == "AI budget suggestions are not configured."

    def test_ai_needs_history(self, store):
        """Test that the AI method needs enough expenses."""
        agent = BudgetSuggestionAgent(model=FakeModel("[]"))
        flow = BudgetCreationFlow(store, budget_agent=agent)
        add_expenses(store, 3)
        flow.start()
        flow.set_income(Decimal("2000"))
        outcome = asyncio.run(flow.generate(BudgetMethod.AI))
        assert outcome.success is False
        assert "at least 10 expenses" in outcome.message
        assert agent._model.calls == []

    def test_ai_suggestion_becomes_table(self, store):
        """Test that AI lines fill the budget table."""
        reply = json.dumps([
            {"name": "Groceries", "plannedAmount": 400, "categoryId": "foodAndDining"},
            {"name": "Bus pass", "plannedAmount": 60, "categoryId": "transport"},
        ])
        flow = BudgetCreationFlow(store, budget_agent=BudgetSuggestionAgent(model=FakeModel(reply)))
        add_expenses(store, 10)
        flow.start()
        flow.set_income(Decimal("2000"))
        outcome = asyncio.run(flow.generate(BudgetMethod.AI))
        assert outcome.success is True
        assert outcome.widget == ActiveWidget.TABLE_BUDGET
        assert [s.name for s in store.current.sub_categories] == ["Groceries", "Bus pass"]

    def test_ai_failure_is_reported(self, store, audit_logger, audit_storage):
        """Test that a broken reply fails the step and is audited."""
        agent = BudgetSuggestionAgent(model=FakeModel("no json here"))
        flow = BudgetCreationFlow(store, audit_logger=audit_logger, budget_agent=agent)
        add_expenses(store, 10)
        flow.start()
        flow.set_income(Decimal("2000"))
        outcome = asyncio.run(flow.generate(BudgetMethod.AI))
        assert outcome.success is False
        assert outcome.message == "Failed to generate AI budget suggestion."
        assert "external_service_error" in audit_storage.types()
        assert flow.step == BudgetCreationStep.GET_METHOD


class TestReportFlow:
    """Tests for monthly report generation."""

    def test_without_narrator_keeps_fallback(self, store, persistence, audit_logger, audit_storage):
        """Test that the figures are stored with fallback text."""
        store.add_transaction(Decimal("1000"), "salary", TransactionType.INCOME, date=datetime(2026, 2, 1))
        flow = ReportFlow(store, persistence=persistence, audit_logger=audit_logger)
        report = asyncio.run(flow.generate_report(2, 2026))
        assert report.executive_summary == FALLBACK_SUMMARY
        assert store.current.monthly_reports[0].id == "2026-02"
        narrated = [e for e in audit_storage.events if e.event_type.value == "report_generated"]
        assert narrated[0].details["narrated"] is False

    def test_narrator_writes_text(self, store):
        """Test that the narrator fills the narrative fields only."""
        reply = json.dumps({
            "executiveSummary": "A calm month.",
            "behavioralAnalysis": "Food spending was steady.",
            "coachingTips": ["Cook more", "Track snacks", "Review subscriptions", "Extra"],
        })
        store.add_transaction(Decimal("80"), "groceries", TransactionType.EXPENSE,
                              category="foodAndDining", date=datetime(2026, 2, 3))
        flow = ReportFlow(store, narrator=ReportNarrationAgent(model=FakeModel(reply)))
        report = asyncio.run(flow.generate_report(2, 2026))
        assert report.executive_summary == "A calm month."
        assert report.actionable_tips == ["Cook more", "Track snacks", "Review subscriptions"]
        assert report.total_expenses == Decimal("80")


class TestInsightsFlow:
    """Tests for coach questions."""

    def test_not_configured(self, store):
        """Test the message when no coach is available."""
        assert asyncio.run(InsightsFlow(store).ask("How am I doing?")) == InsightsFlow.NOT_CONFIGURED

    def test_answer_uses_aggregated_context(self, store, audit_logger, audit_storage):
        """Test that the coach receives the context and its answer is returned."""
        add_expenses(store, 3)
        model = FakeModel("Cook at home twice a week.")
        flow = InsightsFlow(store, agent=InsightsAgent(model=model), audit_logger=audit_logger)
        answer = asyncio.run(flow.ask("Where does my money go?"))
        assert answer == "Cook at home twice a week."
        assert "CONTEXT DATA" in model.calls[0]
        assert "monthly_history" in model.calls[0]
        assert audit_storage.events[-1].details["answered"] is True

    def test_not_enough_data(self, store, audit_logger, audit_storage):
        """Test that the coach waits for a few transactions."""
        model = FakeModel("unused")
        flow = InsightsFlow(store, agent=InsightsAgent(model=model), audit_logger=audit_logger)
        assert asyncio.run(flow.ask("Any tips?")) == InsightsAgent.NOT_ENOUGH_DATA
        assert model.calls == []
        assert audit_storage.events[-1].details["answered"] is False


class TestReceiptFlow:
    """Tests for receipt scanning."""

    def test_data_url(self):
        """Test the attachment form of a receipt."""
        assert ReceiptFlow.to_data_url(b"abc", "image/png") == "data:image/png;base64,YWJj"

    def test_disabled_without_scanner(self):
        """Test that no scanner means no line."""
        flow = ReceiptFlow()
        assert flow.enabled is False
        assert asyncio.run(flow.scan(b"abc", "image/png")) is None

    def test_scan_returns_command_line(self, audit_logger, audit_storage):
        """Test that a readable receipt becomes a command line."""
        buffer = io.BytesIO()
        Image.new("RGB", (40, 60), "white").save(buffer, format="PNG")
        scanner = ReceiptScanAgent(
            model=FakeModel("25.50 Starbucks"),
            supported_formats=["png", "jpeg"],
            max_size_bytes=1_000_000,
        )
        flow = ReceiptFlow(scanner=scanner, audit_logger=audit_logger)
        assert asyncio.run(flow.scan(buffer.getvalue(), "image/png")) == "25.50 Starbucks"
        assert audit_storage.types() == ["receipt_scanned"]


class FailingLoadStorage(InMemoryStateStorage):
    async def load_state(self):
        raise StorageError("corrupt")


def build_components(store: FinanceStore, storage, audit_logger) -> AppComponents:
    persistence = StatePersistence(store, storage, audit_logger)
    return AppComponents(
        store=store,
        storage=storage,
        audit_logger=audit_logger,
        persistence=persistence,
        command_flow=CommandFlow(store, persistence=persistence, audit_logger=audit_logger),
        budget_flow=BudgetCreationFlow(store, persistence=persistence, audit_logger=audit_logger),
        report_flow=ReportFlow(store, persistence=persistence, audit_logger=audit_logger),
        insights_flow=InsightsFlow(store, audit_logger=audit_logger),
        receipt_flow=ReceiptFlow(audit_logger=audit_logger),
    )


class TestLoadState:
    """Tests for restoring state at startup."""

    def test_loads_and_books_due_recurring(self, audit_logger):
        """Test that loading catches up on recurring items and saves."""
        saved = FinanceStore()
        saved.add_recurring("rent", Decimal("900"), Frequency.MONTHLY, first_due_date=date(2026, 3, 1))
        storage = InMemoryStateStorage(saved.app_state)

        store = FinanceStore()
        components = build_components(store, storage, audit_logger)
        assert asyncio.run(components.load_state(datetime(2026, 3, 15))) is True
        assert store.balance == Decimal("-900")
        assert storage.save_count == 1

    def test_nothing_stored(self, store, audit_logger):
        """Test a first start."""
        storage = InMemoryStateStorage()
        components = build_components(store, storage, audit_logger)
        assert asyncio.run(components.load_state()) is False
        assert storage.save_count == 0

    def test_load_failure_starts_fresh(self, store, audit_logger, audit_storage):
        """Test that unreadable state is logged and the app still starts."""
        components = build_components(store, FailingLoadStorage(), audit_logger)
        assert asyncio.run(components.load_state()) is False
        assert audit_storage.types() == ["system_error"]
        assert len(store.app_state.conversations) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
