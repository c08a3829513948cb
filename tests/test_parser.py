"""Tests for the command grammar and its AI fallback."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from prompt_finance.models.commands import (
    CommandAction,
    CommandSource,
    DebtPaymentType,
    ParsedCommand,
    TransactionPayload,
)
from prompt_finance.models.finance import (
    ActiveWidget,
    DebtType,
    Frequency,
    Language,
    TransactionType,
)
from prompt_finance.parsing import (
    extract_budget_tag,
    parse_command,
    parse_with_grammar,
    safe_eval_amount,
)


class RecordingAiParser:
    def __init__(self, result: ParsedCommand):
        self.result = result
        self.calls: list[str] = []

    async def parse(self, text, today=None):
        self.calls.append(text)
        return self.result


class TestSafeEvalAmount:
    """Tests for the arithmetic evaluator."""

    @pytest.mark.parametrize("expression,expected", [
        ("10+5", Decimal("15")),
        ("3*(2.5+1)", Decimal("10.50")),
        ("1/3", Decimal("0.33")),
        ("05+1", Decimal("6")),
        ("12.50", Decimal("12.50")),
    ])
    def test_valid_expressions(self, expression, expected):
        """Test that arithmetic is evaluated and rounded to cents."""
        assert safe_eval_amount(expression) == expected

    @pytest.mark.parametrize("expression", ["", "abc", "10/0", "5+", "()"])
    def test_invalid_expressions(self, expression):
        """Test that invalid arithmetic yields None rather than raising."""
        assert safe_eval_amount(expression) is None

    def test_names_are_stripped_not_evaluated(self):
        """Test that only arithmetic characters survive."""
        assert safe_eval_amount("__import__('os')") is None


class TestBudgetTag:
    """Tests for #tag extraction."""

    def test_tag_is_split_off(self):
        """Test that the tag and the clean label are returned."""
        assert extract_budget_tag("dinner #wedding") == ("dinner", "wedding")

    def test_no_tag(self):
        """Test that a label without a tag is returned unchanged."""
        assert extract_budget_tag("dinner") == ("dinner", None)


class TestGrammarTransactions:
    """Tests for expenses and income."""

    def test_simple_expense(self):
        """Test '<amount> <label>'."""
        command = parse_with_grammar("12.50 lunch")
        assert command.action == CommandAction.ADD_TRANSACTION
        assert command.payload.type == TransactionType.EXPENSE
        assert command.payload.amount == Decimal("12.50")
        assert command.payload.label == "lunch"
        assert command.source == CommandSource.GRAMMAR

    def test_arithmetic_expense(self):
        """Test that the amount may be an expression."""
        command = parse_with_grammar("10+5*2 groceries")
        assert command.payload.amount == Decimal("20")
        assert command.payload.label == "groceries"

    def test_expense_keeps_budget_tag(self):
        """Test that the tag stays in the label for the dispatcher."""
        command = parse_with_grammar("12.50 lunch #Trip")
        assert command.payload.label == "lunch #Trip"

    def test_income(self):
        """Test '+<amount> <label>'."""
        command = parse_with_grammar("+2500 salary")
        assert command.action == CommandAction.ADD_TRANSACTION
        assert command.payload.type == TransactionType.INCOME
        assert command.payload.amount == Decimal("2500")
        assert command.payload.label == "salary"

    def test_zero_amount_is_not_a_transaction(self):
        """Test that a zero expense does not match."""
        assert parse_with_grammar("0 lunch") is None

    def test_division_by_zero_is_not_a_transaction(self):
        """Test that a broken expression does not match."""
        assert parse_with_grammar("10/0 lunch") is None

    def test_sub_cent_expense_is_kept(self):
        """Test that a tiny positive amount is not rounded away to zero."""
        command = parse_with_grammar("0.001 coffee")
        assert command.action == CommandAction.ADD_TRANSACTION
        assert command.payload.amount == Decimal("0.001")

    def test_expense_is_rounded_to_cents(self):
        """Test that expression results are stored in cents."""
        assert parse_with_grammar("10/3 taxi").payload.amount == Decimal("3.33")


class TestGrammarKeywords:
    """Tests for the one-word commands."""

    @pytest.mark.parametrize("text,widget", [
        ("list", ActiveWidget.SHOPPING_LIST),
        ("budgets", ActiveWidget.BUDGETS),
        ("Goals", ActiveWidget.GOALS),
        ("graph", ActiveWidget.GRAPH),
        ("forecast", ActiveWidget.FORECAST),
        ("reports", ActiveWidget.REPORTS),
        ("insights", ActiveWidget.INSIGHTS),
        ("recurring", ActiveWidget.RECURRING),
        ("plan", ActiveWidget.PLANNING),
        ("debt", ActiveWidget.DEBT),
        ("learn", ActiveWidget.EDUCATION),
        ("profile", ActiveWidget.PROFILE),
        ("clear", ActiveWidget.NONE),
    ])
    def test_widget_keywords(self, text, widget):
        """Test that view keywords map to SHOW_WIDGET."""
        command = parse_with_grammar(text)
        assert command.action == CommandAction.SHOW_WIDGET
        assert command.payload.widget == widget

    def test_help(self):
        """Test the help keyword."""
        assert parse_with_grammar("help").action == CommandAction.OPEN_HELP

    def test_monthly_budget_starts_creation(self):
        """Test that 'monthly budget' alone starts the guided setup."""
        assert parse_with_grammar("monthly budget").action == CommandAction.START_BUDGET_CREATION

    def test_french_keywords(self):
        """Test that French keywords work in French mode."""
        assert parse_with_grammar("aide", Language.FR).action == CommandAction.OPEN_HELP
        command = parse_with_grammar("objectifs", Language.FR)
        assert command.payload.widget == ActiveWidget.GOALS


class TestGrammarEnvelopes:
    """Tests for budgets, goals and shopping."""

    def test_event_budget(self):
        """Test 'budget <name> <limit>'."""
        command = parse_with_grammar("budget Wedding 15000")
        assert command.action == CommandAction.ADD_BUDGET
        assert command.payload.name == "Wedding"
        assert command.payload.limit == Decimal("15000")

    def test_monthly_budget_maps_category_alias(self):
        """Test that 'food' becomes the foodAndDining category."""
        command = parse_with_grammar("monthly budget food 400")
        assert command.action == CommandAction.ADD_MONTHLY_BUDGET
        assert command.payload.category == "foodAndDining"
        assert command.payload.limit == Decimal("400")

    def test_goal_with_quoted_name_and_date(self):
        """Test that MM/YYYY means the end of that month."""
        command = parse_with_grammar('goal "New car" 8000 by 12/2026')
        assert command.action == CommandAction.ADD_GOAL
        assert command.payload.name == "New car"
        assert command.payload.target == Decimal("8000")
        assert command.payload.target_date == date(2026, 12, 31)

    def test_goal_without_date(self):
        """Test a single-word goal."""
        command = parse_with_grammar("goal Vacation 2000")
        assert command.payload.name == "Vacation"
        assert command.payload.target_date is None

    def test_contribution_and_withdrawal(self):
        """Test 'save ... for' and 'withdraw ... from'."""
        save = parse_with_grammar("save 200 for Vacation")
        assert save.action == CommandAction.ADD_CONTRIBUTION
        assert save.payload.goal_name == "Vacation"
        withdraw = parse_with_grammar("withdraw 100 from Vacation")
        assert withdraw.action == CommandAction.WITHDRAW_FROM_GOAL
        assert withdraw.payload.amount == Decimal("100")

    def test_shopping_item(self):
        """Test '+ <item> <amount>'."""
        command = parse_with_grammar("+ milk 3")
        assert command.action == CommandAction.ADD_SHOPPING_ITEM
        assert command.payload.text == "milk"
        assert command.payload.planned_amount == Decimal("3")

    def test_create_list(self):
        """Test 'create list <name>'."""
        command = parse_with_grammar("create list Groceries")
        assert command.action == CommandAction.CREATE_SHOPPING_LIST
        assert command.payload.name == "Groceries"


class TestGrammarPlanning:
    """Tests for recurring items, plans and rules."""

    def test_recurring_expense(self):
        """Test 'every month <amount> <label>'."""
        command = parse_with_grammar("every month 15 Netflix")
        assert command.action == CommandAction.ADD_RECURRING_TRANSACTION
        assert command.payload.frequency == Frequency.MONTHLY
        assert command.payload.type == TransactionType.EXPENSE

    def test_recurring_salary_is_income(self):
        """Test that salary-like labels become income."""
        command = parse_with_grammar("every week 500 paycheck")
        assert command.payload.frequency == Frequency.WEEKLY
        assert command.payload.type == TransactionType.INCOME

    def test_set_rule(self):
        """Test 'set rule N/N/N'."""
        command = parse_with_grammar("set rule 60/30/10")
        assert command.action == CommandAction.SET_BUDGETING_RULE
        assert command.payload.rule.describe() == "60/30/10"

    def test_rule_not_summing_to_100_does_not_match(self):
        """Test that an invalid rule is not a command."""
        assert parse_with_grammar("set rule 50/30/30") is None

    def test_plan_income_and_savings(self):
        """Test the monthly plan commands."""
        income = parse_with_grammar("plan income 3000")
        assert income.action == CommandAction.SET_PLANNED_INCOME
        assert income.payload.amount == Decimal("3000")
        save = parse_with_grammar("plan save 50 for car")
        assert save.action == CommandAction.ADD_PLANNED_CONTRIBUTION
        assert save.payload.goal_name == "car"

    def test_sub_category(self):
        """Test 'plan subcategory <name> <amount> for <category>'."""
        command = parse_with_grammar("plan subcategory Rent 800 for housing")
        assert command.action == CommandAction.ADD_SUB_CATEGORY
        assert command.payload.name == "Rent"
        assert command.payload.category == "housing"


class TestGrammarDebtsAliasesSimulation:
    """Tests for the remaining multi-word forms."""

    def test_debt_and_loan(self):
        """Test 'debt from' and 'loan to'."""
        debt = parse_with_grammar("debt from John 500")
        assert debt.action == CommandAction.ADD_DEBT
        assert debt.payload.type == DebtType.DEBT
        assert debt.payload.person == "John"
        loan = parse_with_grammar("loan to Alice 200")
        assert loan.payload.type == DebtType.LOAN
        assert loan.payload.total_amount == Decimal("200")

    def test_french_debt(self):
        """Test the French debt form."""
        command = parse_with_grammar("dette de Jean 500", Language.FR)
        assert command.action == CommandAction.ADD_DEBT
        assert command.payload.person == "Jean"

    def test_payments(self):
        """Test 'pay ... to' and 'receive ... from'."""
        pay = parse_with_grammar("pay 100 to John")
        assert pay.action == CommandAction.RECORD_DEBT_PAYMENT
        assert pay.payload.type == DebtPaymentType.PAYMENT
        receive = parse_with_grammar("receive 50 from Alice")
        assert receive.payload.type == DebtPaymentType.REPAYMENT
        assert receive.payload.person == "Alice"

    def test_alias(self):
        """Test 'alias <key> <command>'."""
        command = parse_with_grammar("alias coffee 3.50 coffee")
        assert command.action == CommandAction.ADD_ALIAS
        assert command.payload.key == "coffee"
        assert command.payload.command == "3.50 coffee"

    def test_simulate_with_and_without_command(self):
        """Test that simulate carries the nested command text."""
        nested = parse_with_grammar("simulate 300 new phone")
        assert nested.action == CommandAction.START_SIMULATION
        assert nested.payload.command == "300 new phone"
        bare = parse_with_grammar("simulate")
        assert bare.payload.command is None


class TestParseCommand:
    """Tests for the full parse with fallback."""

    def test_blank_is_unknown(self):
        """Test that blank input is UNKNOWN."""
        assert asyncio.run(parse_command("   ")).action == CommandAction.UNKNOWN

    @pytest.mark.parametrize("text", ["budget   50", "+   5", "debt from   50", 'goal "  " 500'])
    def test_blank_captures_do_not_raise(self, text):
        """Test that a rule capturing only spaces is skipped, leaving UNKNOWN."""
        assert parse_with_grammar(text) is None
        assert asyncio.run(parse_command(text)).action == CommandAction.UNKNOWN

    def test_unmatched_without_ai_is_unknown(self):
        """Test that free text without a fallback is UNKNOWN."""
        assert asyncio.run(parse_command("hello there")).action == CommandAction.UNKNOWN

    def test_ai_fallback_used_only_when_grammar_misses(self):
        """Test that the AI sees only text the grammar could not parse."""
        ai_result = ParsedCommand(
            action=CommandAction.ADD_TRANSACTION,
            payload=TransactionPayload(type=TransactionType.EXPENSE, amount=Decimal("5"), label="coffee"),
            source=CommandSource.AI,
        )
        ai = RecordingAiParser(ai_result)

        grammar_hit = asyncio.run(parse_command("12 lunch", ai_parser=ai))
        assert grammar_hit.source == CommandSource.GRAMMAR
        assert ai.calls == []

        fallback = asyncio.run(parse_command("  coffee for five bucks ", ai_parser=ai))
        assert fallback.source == CommandSource.AI
        assert ai.calls == ["coffee for five bucks"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
