"""
Command Grammar

Turns one line of command-bar text into a ParsedCommand.

DESIGN DECISION: A deterministic regex cascade runs first and the first
matching rule wins. The order matters: specific multi-word forms ("plan
save 50 for car") are tried before the generic ones ("budget ...",
"<amount> <label>") that would otherwise swallow them.

CRITICAL: Only when every rule misses is the text handed to the AI
fallback, and the AI may only ever produce ADD_TRANSACTION or UNKNOWN.

Matching is case-insensitive, but captured labels and names keep the casing
the user typed. Keywords are bilingual; the active language's words are
tried first.
"""

import ast
import operator
import re
from calendar import monthrange
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import lru_cache
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ValidationError

from prompt_finance.models.commands import (
    AliasPayload,
    AmountPayload,
    BudgetPayload,
    CommandAction,
    DebtPayload,
    DebtPaymentPayload,
    DebtPaymentType,
    GoalAmountPayload,
    GoalPayload,
    MonthlyBudgetPayload,
    NamePayload,
    ParsedCommand,
    RecurringPayload,
    RulePayload,
    ShoppingItemPayload,
    SimulationPayload,
    SubCategoryPayload,
    TransactionPayload,
)
from prompt_finance.models.finance import (
    ActiveWidget,
    BudgetingRule,
    BudgetType,
    DebtType,
    Frequency,
    Language,
    TransactionType,
)


class AiCommandParser(Protocol):
    """Anything that can turn free text into a transaction command."""

    async def parse(self, text: str, today: Optional[date] = None) -> ParsedCommand:
        ...


# =============================================================================
# KEYWORDS
# =============================================================================

# name -> (english ordering, french ordering)
_KEYWORDS: dict[str, tuple[list[str], list[str]]] = {
    # Exact one-word (or fixed phrase) commands
    "help": (["help", "commands", "aide"], ["aide", "help", "commandes", "commands"]),
    "monthly_budget_cmd": (["monthly budget", "budget mensuel"], ["budget mensuel", "monthly budget"]),
    "list": (["list"], ["liste", "list"]),
    "budgets": (["budgets", "budget"], ["budgets", "budget"]),
    "goals": (["goals", "goal", "objectifs", "objectif"], ["objectifs", "objectif", "goals", "goal"]),
    "graph": (["graph", "chart", "graphique"], ["graphique", "graph", "chart"]),
    "forecast": (["forecast", "projection", "future"], ["prévision", "projection", "forecast", "avenir"]),
    "reports": (["reports", "report", "rapports", "rapport"], ["rapports", "rapport", "reports", "report"]),
    "insights": (["insights", "analyze", "aperçus", "analyser"], ["aperçus", "analyser", "insights", "analyze"]),
    "recurring": (
        ["recurring", "subscriptions", "récurrents", "abonnements"],
        ["récurrents", "abonnements", "recurring", "subscriptions"],
    ),
    "plan": (["plan", "planning", "planification"], ["plan", "planification", "planning"]),
    "rule": (["rule", "budget rule", "règle", "règle budget"], ["règle", "règle budget", "rule", "budget rule"]),
    "table": (
        ["table", "budget table", "tableau", "tableau budget"],
        ["tableau", "tableau budget", "table", "budget table"],
    ),
    "debt": (
        ["debt", "loan", "debts", "dette", "prêt", "dettes", "prêts"],
        ["dette", "prêt", "dettes", "prêts", "debt", "loan", "debts"],
    ),
    "education": (["education", "learn", "course"], ["éducation", "apprendre", "cours", "education", "learn"]),
    "profile": (["profile", "my profile", "me"], ["profil", "profile", "mon profil", "my profile"]),
    "clear": (["clear", "hide", "effacer", "cacher"], ["effacer", "cacher", "clear", "hide"]),
    "simulate": (
        ["simulate", "simulation", "sim", "what if"],
        ["simuler", "simulate", "simulation", "sim", "what if", "et si"],
    ),
    # Building blocks of the multi-word forms
    "w_debt": (["debt"], ["dette"]),
    "w_loan": (["loan"], ["prêt"]),
    "w_from": (["from"], ["de"]),
    "w_to": (["to"], ["à"]),
    "w_for": (["for"], ["pour"]),
    "w_pay": (["pay"], ["payer"]),
    "w_receive": (["receive"], ["recevoir"]),
    "w_create": (["create"], ["créer", "creer"]),
    "w_list": (["list"], ["liste"]),
    "w_plan": (["plan"], ["planifier"]),
    "w_subcategory": (["subcategory"], ["sous-catégorie"]),
    "w_set": (["set"], ["définir"]),
    "w_rule": (["rule"], ["règle"]),
    "w_income": (["income"], ["revenu"]),
    "w_plan_save": (["save"], ["épargne"]),
    "w_monthly": (["monthly"], ["mensuel"]),
    "w_every": (["every"], ["chaque"]),
    "w_week": (["week"], ["semaine"]),
    "w_month": (["month"], ["mois"]),
    "w_year": (["year"], ["an"]),
    "w_save": (["save"], ["épargner"]),
    "w_withdraw": (["withdraw", "use"], ["retirer", "utiliser"]),
    "w_goal": (["goal"], ["objectif"]),
    "w_by": (["by"], ["pour le", "d'ici"]),
    "w_in": (["in", "+"], ["revenu", "in", "+"]),
}

# Exact keyword -> widget, checked in this order after help/monthly budget
_WIDGET_KEYWORDS: list[tuple[str, ActiveWidget]] = [
    ("list", ActiveWidget.SHOPPING_LIST),
    ("budgets", ActiveWidget.BUDGETS),
    ("goals", ActiveWidget.GOALS),
    ("graph", ActiveWidget.GRAPH),
    ("forecast", ActiveWidget.FORECAST),
    ("reports", ActiveWidget.REPORTS),
    ("insights", ActiveWidget.INSIGHTS),
    ("recurring", ActiveWidget.RECURRING),
    ("plan", ActiveWidget.PLANNING),
    ("rule", ActiveWidget.RULE_BASED_BUDGET),
    ("table", ActiveWidget.TABLE_BUDGET),
    ("debt", ActiveWidget.DEBT),
    ("education", ActiveWidget.EDUCATION),
    ("profile", ActiveWidget.PROFILE),
    ("clear", ActiveWidget.NONE),
]

MONTHLY_BUDGET_CATEGORY_ALIASES = {
    "food": "foodAndDining",
    "transportation": "transport",
    "bills": "billsAndUtilities",
    "alimentation": "foodAndDining",
    "factures": "billsAndUtilities",
}

INCOME_LABEL_HINTS = ("salary", "paycheck", "salaire")

AMOUNT = r"(\d+(?:\.\d{1,2})?)"

BUDGET_TAG_PATTERN = re.compile(r"#([\w\u00C0-\uFFFF-]+)")


def keywords(name: str, language: Language) -> list[str]:
    english, french = _KEYWORDS[name]
    return french if language == Language.FR else english


def _alt(name: str, language: Language) -> str:
    return "|".join(re.escape(word) for word in keywords(name, language))


@lru_cache(maxsize=None)
def _grammar(language: Language) -> dict[str, re.Pattern]:
    """Compile the multi-word rules for one language."""
    def k(name: str) -> str:
        return _alt(name, language)

    flags = re.IGNORECASE
    return {
        "simulate": re.compile(rf"^({k('simulate')})(?:\s+(.+))?$", flags),
        "alias": re.compile(r"^alias\s+(\w+)\s+(.+)$", flags),
        "debt": re.compile(
            rf"^({k('w_debt')})\s+({k('w_from')})\s+(.+?)\s+{AMOUNT}(?:\s+({k('w_for')})\s+(.+))?$",
            flags,
        ),
        "loan": re.compile(
            rf"^({k('w_loan')})\s+({k('w_to')})\s+(.+?)\s+{AMOUNT}(?:\s+({k('w_for')})\s+(.+))?$",
            flags,
        ),
        "pay": re.compile(rf"^({k('w_pay')})\s+{AMOUNT}\s+({k('w_to')})\s+(.+)", flags),
        "receive": re.compile(rf"^({k('w_receive')})\s+{AMOUNT}\s+({k('w_from')})\s+(.+)", flags),
        "create_list": re.compile(rf"^({k('w_create')})\s+({k('w_list')})\s+(.+)", flags),
        "sub_category": re.compile(
            rf"^({k('w_plan')})\s+({k('w_subcategory')})\s+(.+?)\s+{AMOUNT}\s+({k('w_for')})\s+(.+)",
            flags,
        ),
        "set_rule": re.compile(
            rf"^({k('w_set')})\s+({k('w_rule')})\s+(\d{{1,2}})/(\d{{1,2}})/(\d{{1,2}})",
            flags,
        ),
        "plan_income": re.compile(rf"^({k('w_plan')})\s+({k('w_income')})\s+{AMOUNT}", flags),
        "plan_save": re.compile(
            rf"^({k('w_plan')})\s+({k('w_plan_save')})\s+{AMOUNT}\s+({k('w_for')})\s+(.+)",
            flags,
        ),
        "monthly_budget": re.compile(rf"^({k('w_monthly')})\s+(budget)\s+(\w+)\s+{AMOUNT}", flags),
        "recurring": re.compile(
            rf"^({k('w_every')})\s+({k('w_week')}|{k('w_month')}|{k('w_year')})\s+{AMOUNT}\s+(.+)",
            flags,
        ),
        "contribution": re.compile(rf"^({k('w_save')})\s+{AMOUNT}\s+({k('w_for')})\s+(.+)", flags),
        "withdraw": re.compile(rf"^({k('w_withdraw')})\s+{AMOUNT}\s+({k('w_from')})\s+(.+)", flags),
        "shopping": re.compile(rf"^\+\s(.+?)\s{AMOUNT}$"),
        "goal": re.compile(
            rf"^({k('w_goal')})\s+(?:\"(.*?)\"|(\S+))\s+{AMOUNT}"
            rf"(?:\s+({k('w_by')})\s+(\d{{1,2}}/\d{{4}}|\d{{4}}-\d{{2}}-\d{{2}}))?",
            flags,
        ),
        "income": re.compile(rf"^({k('w_in')})\s?{AMOUNT}\s+(.+)", flags),
        "budget": re.compile(rf"^budget\s(.+?)\s{AMOUNT}", flags),
        "expense": re.compile(r"^([\d+\-*/.()\s]+)\s+(.+)"),
    }


# =============================================================================
# HELPERS
# =============================================================================

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _evaluate(node: ast.AST) -> Decimal:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return Decimal(str(node.value))
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        return _BINARY_OPERATORS[type(node.op)](_evaluate(node.left), _evaluate(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def _evaluate_expression(expression: str) -> Optional[Decimal]:
    cleaned = re.sub(r"[^0-9+\-*/.()\s]", "", expression).strip()
    if not cleaned:
        return None
    # "05" is a syntax error in Python source; drop leading zeros of integer parts
    cleaned = re.sub(r"(?<![\d.])0+(?=\d)", "", cleaned)
    try:
        return _evaluate(ast.parse(cleaned, mode="eval"))
    except (SyntaxError, ValueError, ArithmeticError, InvalidOperation):
        return None


def _round_cents(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def safe_eval_amount(expression: str) -> Optional[Decimal]:
    """
    Evaluate a small arithmetic expression such as "10+5" or "3*(2.5+1)".

    Only numbers, + - * / and parentheses are accepted. The result is
    rounded to cents. Returns None when the expression is not valid
    arithmetic or divides by zero.
    """
    value = _evaluate_expression(expression)
    if value is None:
        return None
    try:
        return _round_cents(value)
    except InvalidOperation:
        return None


def _expense_amount(expression: str) -> Optional[Decimal]:
    """
    The amount of an expense line, or None when it is not a positive number.

    Positivity is judged before rounding; a sub-cent amount is kept as typed
    instead of being rounded away to zero.
    """
    value = _evaluate_expression(expression)
    if value is None or value <= 0:
        return None
    try:
        rounded = _round_cents(value)
    except InvalidOperation:
        return None
    return rounded if rounded > 0 else value


def _command(action: CommandAction, payload_type: type[BaseModel], **fields: Any) -> Optional[ParsedCommand]:
    """
    Build a command from captured fields.

    Returns None when a capture is blank or otherwise fails validation, so the
    cascade can move on to the next rule.
    """
    try:
        return ParsedCommand(action=action, payload=payload_type(**fields))
    except ValidationError:
        return None


def extract_budget_tag(label: str) -> tuple[str, Optional[str]]:
    """
    Split "dinner #wedding" into ("dinner", "wedding").

    Returns the label unchanged and None when there is no tag.
    """
    match = BUDGET_TAG_PATTERN.search(label)
    if not match:
        return label, None
    return BUDGET_TAG_PATTERN.sub("", label, count=1).strip(), match.group(1)


def _parse_goal_date(raw: Optional[str]) -> Optional[date]:
    """MM/YYYY means the last day of that month; YYYY-MM-DD is taken as is."""
    if not raw:
        return None
    try:
        if "/" in raw:
            month, year = (int(part) for part in raw.split("/"))
            return date(year, month, monthrange(year, month)[1])
        return date.fromisoformat(raw)
    except ValueError:
        return None


def _frequency_for(word: str, language: Language) -> Frequency:
    word = word.lower()
    if word == keywords("w_week", language)[0]:
        return Frequency.WEEKLY
    if word == keywords("w_month", language)[0]:
        return Frequency.MONTHLY
    return Frequency.YEARLY


# =============================================================================
# PARSER
# =============================================================================

def parse_with_grammar(text: str, language: Language = Language.EN) -> Optional[ParsedCommand]:
    """
    Run the deterministic cascade only.

    A rule whose captures come out blank counts as a miss and the cascade
    continues. Returns None when no rule matches.
    """
    raw = text.strip()
    clean = raw.lower()

    if clean in keywords("help", language):
        return ParsedCommand(action=CommandAction.OPEN_HELP)
    if clean in keywords("monthly_budget_cmd", language):
        return ParsedCommand(action=CommandAction.START_BUDGET_CREATION)
    for name, widget in _WIDGET_KEYWORDS:
        if clean in keywords(name, language):
            return ParsedCommand.show(widget)

    grammar = _grammar(language)

    match = grammar["simulate"].match(raw)
    if match:
        command = _command(CommandAction.START_SIMULATION, SimulationPayload, command=match.group(2))
        if command:
            return command

    match = grammar["alias"].match(raw)
    if match:
        command = _command(CommandAction.ADD_ALIAS, AliasPayload, key=match.group(1), command=match.group(2))
        if command:
            return command

    for rule_name, debt_type in (("debt", DebtType.DEBT), ("loan", DebtType.LOAN)):
        match = grammar[rule_name].match(raw)
        if match:
            command = _command(
                CommandAction.ADD_DEBT,
                DebtPayload,
                type=debt_type,
                person=match.group(3),
                total_amount=Decimal(match.group(4)),
            )
            if command:
                return command

    for rule_name, payment_type in (
        ("pay", DebtPaymentType.PAYMENT),
        ("receive", DebtPaymentType.REPAYMENT),
    ):
        match = grammar[rule_name].match(raw)
        if match:
            command = _command(
                CommandAction.RECORD_DEBT_PAYMENT,
                DebtPaymentPayload,
                amount=Decimal(match.group(2)),
                person=match.group(4),
                type=payment_type,
            )
            if command:
                return command

    match = grammar["create_list"].match(raw)
    if match:
        command = _command(CommandAction.CREATE_SHOPPING_LIST, NamePayload, name=match.group(3))
        if command:
            return command

    match = grammar["sub_category"].match(raw)
    if match:
        command = _command(
            CommandAction.ADD_SUB_CATEGORY,
            SubCategoryPayload,
            name=match.group(3),
            amount=Decimal(match.group(4)),
            category=match.group(6),
        )
        if command:
            return command

    # A rule that does not sum to 100 falls through to the remaining rules
    match = grammar["set_rule"].match(clean)
    if match:
        needs, wants, savings = (int(match.group(i)) for i in (3, 4, 5))
        if needs + wants + savings == 100:
            return ParsedCommand(
                action=CommandAction.SET_BUDGETING_RULE,
                payload=RulePayload(rule=BudgetingRule(needs=needs, wants=wants, savings=savings)),
            )

    match = grammar["plan_income"].match(raw)
    if match:
        return ParsedCommand(
            action=CommandAction.SET_PLANNED_INCOME,
            payload=AmountPayload(amount=Decimal(match.group(3))),
        )

    match = grammar["plan_save"].match(raw)
    if match:
        command = _command(
            CommandAction.ADD_PLANNED_CONTRIBUTION,
            GoalAmountPayload,
            amount=Decimal(match.group(3)),
            goal_name=match.group(5),
        )
        if command:
            return command

    match = grammar["monthly_budget"].match(raw)
    if match:
        category = match.group(3).lower()
        return ParsedCommand(
            action=CommandAction.ADD_MONTHLY_BUDGET,
            payload=MonthlyBudgetPayload(
                category=MONTHLY_BUDGET_CATEGORY_ALIASES.get(category, category),
                limit=Decimal(match.group(4)),
            ),
        )

    match = grammar["recurring"].match(raw)
    if match:
        label = match.group(4)
        is_income = any(hint in label.lower() for hint in INCOME_LABEL_HINTS)
        command = _command(
            CommandAction.ADD_RECURRING_TRANSACTION,
            RecurringPayload,
            amount=Decimal(match.group(3)),
            label=label,
            frequency=_frequency_for(match.group(2), language),
            type=TransactionType.INCOME if is_income else TransactionType.EXPENSE,
        )
        if command:
            return command

    for rule_name, action in (
        ("contribution", CommandAction.ADD_CONTRIBUTION),
        ("withdraw", CommandAction.WITHDRAW_FROM_GOAL),
    ):
        match = grammar[rule_name].match(raw)
        if match:
            command = _command(
                action,
                GoalAmountPayload,
                amount=Decimal(match.group(2)),
                goal_name=match.group(4),
            )
            if command:
                return command

    match = grammar["shopping"].match(raw)
    if match:
        command = _command(
            CommandAction.ADD_SHOPPING_ITEM,
            ShoppingItemPayload,
            text=match.group(1),
            planned_amount=Decimal(match.group(2)),
        )
        if command:
            return command

    match = grammar["goal"].match(raw)
    if match and (match.group(2) or match.group(3)):
        command = _command(
            CommandAction.ADD_GOAL,
            GoalPayload,
            name=match.group(2) or match.group(3),
            target=Decimal(match.group(4)),
            target_date=_parse_goal_date(match.group(6)),
        )
        if command:
            return command

    match = grammar["income"].match(raw)
    if match:
        command = _command(
            CommandAction.ADD_TRANSACTION,
            TransactionPayload,
            type=TransactionType.INCOME,
            amount=Decimal(match.group(2)),
            label=match.group(3),
        )
        if command:
            return command

    match = grammar["budget"].match(raw)
    if match:
        command = _command(
            CommandAction.ADD_BUDGET,
            BudgetPayload,
            name=match.group(1),
            limit=Decimal(match.group(2)),
            type=BudgetType.EVENT,
        )
        if command:
            return command

    match = grammar["expense"].match(raw)
    if match:
        amount = _expense_amount(match.group(1))
        if amount is not None:
            label, tag = extract_budget_tag(match.group(2))
            if tag:
                label = f"{label} #{tag}" if label else f"#{tag}"
            return _command(
                CommandAction.ADD_TRANSACTION,
                TransactionPayload,
                type=TransactionType.EXPENSE,
                amount=amount,
                label=label,
            )

    return None


async def parse_command(
    text: str,
    language: Language = Language.EN,
    ai_parser: Optional[AiCommandParser] = None,
    today: Optional[date] = None,
) -> ParsedCommand:
    """
    Parse command-bar text.

    Args:
        text: Raw user input
        language: Which keyword ordering to use
        ai_parser: Fallback used when the grammar does not match.
                   Without one, unmatched input is UNKNOWN.
        today: Reference date handed to the AI for relative dates

    Returns:
        The parsed command; never raises for unrecognized input.
    """
    if not text or not text.strip():
        return ParsedCommand.unknown()

    command = parse_with_grammar(text, language)
    if command is not None:
        return command

    if ai_parser is None:
        return ParsedCommand.unknown()

    return await ai_parser.parse(text.strip(), today=today)
