"""
Parsed Command Models

The command bar turns free text into exactly one ParsedCommand.

DESIGN DECISION: Each action has its own payload model rather than a loose
dict. The dispatcher in the orchestrator can then rely on field names and
types, and a malformed AI reply fails validation instead of corrupting state.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from prompt_finance.models.finance import (
    ActiveWidget,
    BudgetingRule,
    BudgetType,
    DebtType,
    Frequency,
    TransactionType,
)


class CommandAction(str, Enum):
    ADD_TRANSACTION = "ADD_TRANSACTION"
    ADD_SHOPPING_ITEM = "ADD_SHOPPING_ITEM"
    CREATE_SHOPPING_LIST = "CREATE_SHOPPING_LIST"
    ADD_BUDGET = "ADD_BUDGET"
    ADD_MONTHLY_BUDGET = "ADD_MONTHLY_BUDGET"
    ADD_GOAL = "ADD_GOAL"
    ADD_CONTRIBUTION = "ADD_CONTRIBUTION"
    WITHDRAW_FROM_GOAL = "WITHDRAW_FROM_GOAL"
    ADD_RECURRING_TRANSACTION = "ADD_RECURRING_TRANSACTION"
    SHOW_WIDGET = "SHOW_WIDGET"
    SET_PLANNED_INCOME = "SET_PLANNED_INCOME"
    ADD_PLANNED_CONTRIBUTION = "ADD_PLANNED_CONTRIBUTION"
    SET_BUDGETING_RULE = "SET_BUDGETING_RULE"
    ADD_SUB_CATEGORY = "ADD_SUB_CATEGORY"
    START_BUDGET_CREATION = "START_BUDGET_CREATION"
    ADD_DEBT = "ADD_DEBT"
    RECORD_DEBT_PAYMENT = "RECORD_DEBT_PAYMENT"
    ADD_ALIAS = "ADD_ALIAS"
    START_SIMULATION = "START_SIMULATION"
    OPEN_HELP = "OPEN_HELP"
    UNKNOWN = "UNKNOWN"


class DebtPaymentType(str, Enum):
    """PAYMENT settles a debt; REPAYMENT is money returned on a loan."""
    PAYMENT = "payment"
    REPAYMENT = "repayment"


class CommandSource(str, Enum):
    GRAMMAR = "grammar"
    AI = "ai"


# =============================================================================
# PAYLOADS
# =============================================================================

class _Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)


class EmptyPayload(_Payload):
    pass


class TransactionPayload(_Payload):
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    label: str = Field(..., min_length=1)
    category: Optional[str] = None
    date: Optional[datetime] = None


class ShoppingItemPayload(_Payload):
    text: str = Field(..., min_length=1)
    planned_amount: Decimal = Field(..., ge=0)


class NamePayload(_Payload):
    name: str = Field(..., min_length=1)


class BudgetPayload(_Payload):
    name: str = Field(..., min_length=1)
    limit: Decimal = Field(..., ge=0)
    type: BudgetType = BudgetType.EVENT


class MonthlyBudgetPayload(_Payload):
    category: str = Field(..., min_length=1)
    limit: Decimal = Field(..., ge=0)


class GoalPayload(_Payload):
    name: str = Field(..., min_length=1)
    target: Decimal = Field(..., ge=0)
    target_date: Optional[date] = None


class GoalAmountPayload(_Payload):
    """Shared by contributions, withdrawals and planned contributions."""
    amount: Decimal = Field(..., ge=0)
    goal_name: str = Field(..., min_length=1)


class RecurringPayload(_Payload):
    amount: Decimal = Field(..., ge=0)
    label: str = Field(..., min_length=1)
    frequency: Frequency
    type: TransactionType


class WidgetPayload(_Payload):
    widget: ActiveWidget


class AmountPayload(_Payload):
    amount: Decimal = Field(..., ge=0)


class RulePayload(_Payload):
    rule: BudgetingRule


class SubCategoryPayload(_Payload):
    name: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    category: str = Field(..., min_length=1, description="Raw user text, mapped later")


class DebtPayload(_Payload):
    type: DebtType
    person: str = Field(..., min_length=1)
    total_amount: Decimal = Field(..., ge=0)
    due_date: Optional[date] = None


class DebtPaymentPayload(_Payload):
    person: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    type: DebtPaymentType


class AliasPayload(_Payload):
    key: str = Field(..., min_length=1)
    command: str = Field(..., min_length=1)


class SimulationPayload(_Payload):
    command: Optional[str] = None


CommandPayload = Union[
    TransactionPayload,
    ShoppingItemPayload,
    NamePayload,
    BudgetPayload,
    MonthlyBudgetPayload,
    GoalPayload,
    GoalAmountPayload,
    RecurringPayload,
    WidgetPayload,
    AmountPayload,
    RulePayload,
    SubCategoryPayload,
    DebtPayload,
    DebtPaymentPayload,
    AliasPayload,
    SimulationPayload,
    EmptyPayload,
]


class ParsedCommand(BaseModel):
    """
    The structured result of parsing one command-bar input.

    `source` records whether the deterministic grammar or the AI fallback
    produced it, so AI-derived entries can be audited separately.
    """
    model_config = ConfigDict(frozen=True)

    action: CommandAction
    payload: CommandPayload = Field(default_factory=EmptyPayload)
    source: CommandSource = CommandSource.GRAMMAR

    @classmethod
    def unknown(cls) -> "ParsedCommand":
        return cls(action=CommandAction.UNKNOWN)

    @classmethod
    def show(cls, widget: ActiveWidget) -> "ParsedCommand":
        return cls(action=CommandAction.SHOW_WIDGET, payload=WidgetPayload(widget=widget))
