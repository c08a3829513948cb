"""
Core Data Models for Prompt Finance

These models define the schemas for every piece of financial state that the
command bar creates or mutates:
1. Ledger entries (transactions, recurring items)
2. Envelopes (budgets, goals, shopping lists, debts)
3. Planning (monthly plan, budgeting rule, sub-categories)
4. Derived artefacts (profile, monthly reports, coach alerts)
5. The per-conversation state tree and the application container

DESIGN DECISION: Money is Decimal everywhere. Planners floor amounts to
whole currency units, which is exact with Decimal and lossy with floats.

DESIGN DECISION: Category ids are plain strings. The eight built-in ids are
listed in BuiltinCategory, but users may add custom categories at runtime.
"""

from calendar import monthrange
from datetime import date, datetime
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def floor_money(value: Decimal) -> Decimal:
    """Round an amount down to whole currency units."""
    return Decimal(value).quantize(Decimal("1"), rounding=ROUND_FLOOR)


def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping to the target month's last day."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return day.replace(year=year, month=month, day=min(day.day, monthrange(year, month)[1]))


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


class BudgetType(str, Enum):
    """
    Budget flavours.

    EVENT budgets are one-off envelopes fed by tagged expenses (#wedding).
    MONTHLY budgets track a category for the current calendar month.
    """
    EVENT = "event"
    MONTHLY = "monthly"


class Frequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class DebtType(str, Enum):
    """DEBT is money the user owes; LOAN is money the user lent out."""
    DEBT = "debt"
    LOAN = "loan"


class DebtStatus(str, Enum):
    ACTIVE = "active"
    PAID = "paid"


class ShoppingItemStatus(str, Enum):
    PENDING = "pending"
    PURCHASED = "purchased"


class Bucket(str, Enum):
    """Budgeting-rule buckets."""
    NEEDS = "needs"
    WANTS = "wants"
    SAVINGS = "savings"


class BuiltinCategory(str, Enum):
    """Category ids shipped with every conversation."""
    FOOD_AND_DINING = "foodAndDining"
    TRANSPORT = "transport"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    BILLS_AND_UTILITIES = "billsAndUtilities"
    HEALTH = "health"
    INCOME = "income"
    GENERAL = "general"


class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class AiPersona(str, Enum):
    """Tone used by the coach and by report narration."""
    BENEVOLENT = "benevolent"
    STRICT = "strict"
    HUMOROUS = "humorous"


class RiskTolerance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LearningStyle(str, Enum):
    VISUAL = "visual"
    TEXTUAL = "textual"
    INTERACTIVE = "interactive"


class StressLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EducationalLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class ReportStatus(str, Enum):
    """Planned-versus-actual classification of a report line."""
    OK = "ok"
    WARNING = "warning"
    OVER = "over"


class AlertType(str, Enum):
    WARNING = "warning"
    INFO = "info"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    XOF = "XOF"


class Language(str, Enum):
    EN = "en"
    FR = "fr"


class BudgetMethod(str, Enum):
    RULE_50_30_20 = "50/30/20"
    RULE_60_30_10 = "60/30/10"
    RULE_80_20 = "80/20"
    MANUAL = "manual"
    AI = "ai"


class BudgetCreationStep(str, Enum):
    IDLE = "idle"
    GET_INCOME = "get_income"
    GET_METHOD = "get_method"


class ActiveWidget(str, Enum):
    """The data view the front end should surface after a command."""
    NONE = "NONE"
    SHOPPING_LIST = "SHOPPING_LIST"
    BUDGETS = "BUDGETS"
    GOALS = "GOALS"
    GRAPH = "GRAPH"
    INSIGHTS = "INSIGHTS"
    RECURRING = "RECURRING"
    PLANNING = "PLANNING"
    RULE_BASED_BUDGET = "RULE_BASED_BUDGET"
    TABLE_BUDGET = "TABLE_BUDGET"
    DEBT = "DEBT"
    FORECAST = "FORECAST"
    REPORTS = "REPORTS"
    EDUCATION = "EDUCATION"
    PROFILE = "PROFILE"


# =============================================================================
# LEDGER
# =============================================================================

class Transaction(BaseModel):
    """A single income or expense entry."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    date: datetime = Field(default_factory=datetime.now)
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Always positive; the sign comes from `type`"
    )
    label: str = Field(..., min_length=1, max_length=300)
    type: TransactionType
    category: str = Field(default=BuiltinCategory.GENERAL.value)
    budget_id: Optional[UUID] = None
    goal_id: Optional[UUID] = None
    receipt_image: Optional[str] = Field(
        default=None,
        description="Base64 data URL of the receipt the entry was scanned from"
    )


class RecurringTransaction(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    label: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    category: str = Field(default=BuiltinCategory.GENERAL.value)
    frequency: Frequency
    next_due_date: date
    budget_id: Optional[UUID] = None
    type: TransactionType = TransactionType.EXPENSE


# =============================================================================
# ENVELOPES - budgets, goals, shopping lists, debts
# =============================================================================

class ShoppingItem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    text: str = Field(..., min_length=1)
    planned_amount: Decimal = Field(..., ge=0)
    actual_amount: Optional[Decimal] = Field(default=None, ge=0)
    status: ShoppingItemStatus = ShoppingItemStatus.PENDING
    created_at: datetime = Field(default_factory=datetime.now)


class ShoppingList(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1)
    items: list[ShoppingItem] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class Budget(BaseModel):
    """
    A spending envelope.

    `current_spent` is derived from the ledger and recomputed by the store
    after every transaction change; it is stored for display only.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1)
    limit: Decimal = Field(..., ge=0)
    current_spent: Decimal = Field(default=Decimal("0"), ge=0)
    type: BudgetType = BudgetType.EVENT
    category: Optional[str] = None
    reset_date: Optional[date] = None

    @property
    def remaining(self) -> Decimal:
        return self.limit - self.current_spent


class Goal(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1)
    target: Decimal = Field(..., gt=0)
    current_saved: Decimal = Field(default=Decimal("0"), ge=0)
    created_at: datetime = Field(default_factory=datetime.now)
    target_date: Optional[date] = None

    @property
    def progress(self) -> float:
        """Saved fraction of the target, capped at 1."""
        return min(1.0, float(self.current_saved / self.target))


class Installment(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    due_date: date
    amount: Decimal = Field(..., ge=0)
    is_paid: bool = False


class Debt(BaseModel):
    """
    Money owed by the user (DEBT) or to the user (LOAN).

    CRITICAL: `paid_amount` never exceeds `total_amount`; the scheduler and
    the payment recorder both clamp to it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    type: DebtType
    person: str = Field(..., min_length=1)
    total_amount: Decimal = Field(..., gt=0)
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0)
    status: DebtStatus = DebtStatus.ACTIVE
    created_at: datetime = Field(default_factory=datetime.now)
    due_date: Optional[date] = None
    installments: list[Installment] = Field(default_factory=list)

    @property
    def remaining(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @model_validator(mode='after')
    def validate_paid_amount(self) -> 'Debt':
        if self.paid_amount > self.total_amount:
            raise ValueError(
                f"Paid amount ({self.paid_amount}) exceeds total amount ({self.total_amount})"
            )
        return self


# =============================================================================
# PLANNING
# =============================================================================

class PlannedContribution(BaseModel):
    goal_id: UUID
    amount: Decimal = Field(..., gt=0)


class MonthlyPlan(BaseModel):
    month: str = Field(
        default_factory=lambda: datetime.now().strftime("%Y-%m"),
        pattern=r"^\d{4}-\d{2}$",
    )
    planned_income: Decimal = Field(default=Decimal("0"), ge=0)
    planned_contributions: list[PlannedContribution] = Field(default_factory=list)

    @property
    def planned_savings(self) -> Decimal:
        return sum((c.amount for c in self.planned_contributions), Decimal("0"))


class BudgetingRule(BaseModel):
    """
    A needs/wants/savings percentage split.

    CRITICAL: The three percentages must sum to exactly 100.
    """
    needs: int = Field(..., ge=0, le=100)
    wants: int = Field(..., ge=0, le=100)
    savings: int = Field(..., ge=0, le=100)

    @model_validator(mode='after')
    def validate_total(self) -> 'BudgetingRule':
        total = self.needs + self.wants + self.savings
        if total != 100:
            raise ValueError(f"Budgeting rule must sum to 100, got {total}")
        return self

    def percentage_for(self, bucket: Bucket) -> int:
        return getattr(self, bucket.value)

    def describe(self) -> str:
        return f"{self.needs}/{self.wants}/{self.savings}"


class SubCategory(BaseModel):
    """A planned budget line inside a category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1)
    planned_amount: Decimal = Field(..., ge=0)
    category_id: str
    bucket: Optional[Bucket] = Field(
        default=None,
        description="Set by the allocator; otherwise derived from the category"
    )


class Category(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    bucket: Bucket
    is_custom: bool = False


def default_categories() -> list[Category]:
    """The eight built-in categories with their budgeting-rule bucket."""
    needs = {
        BuiltinCategory.FOOD_AND_DINING,
        BuiltinCategory.TRANSPORT,
        BuiltinCategory.BILLS_AND_UTILITIES,
        BuiltinCategory.HEALTH,
    }
    return [
        Category(
            id=category.value,
            name=category.value,
            bucket=Bucket.NEEDS if category in needs else Bucket.WANTS,
        )
        for category in BuiltinCategory
    ]


# =============================================================================
# PROFILE, REPORTS, ALERTS, EDUCATION
# =============================================================================

class ProfileMetrics(BaseModel):
    """Heuristic scores, each in 0..100."""
    maturity_score: int = Field(default=0, ge=0, le=100)
    discipline_score: int = Field(default=0, ge=0, le=100)
    stability_score: int = Field(default=0, ge=0, le=100)
    monthly_progress: int = 0


class ProfileInferred(BaseModel):
    stress_level: StressLevel = StressLevel.LOW
    educational_level: EducationalLevel = EducationalLevel.BEGINNER
    top_spending_category: Optional[str] = None


class UserProfile(BaseModel):
    financial_method: str = "custom"
    risk_tolerance: RiskTolerance = RiskTolerance.MEDIUM
    learning_style: LearningStyle = LearningStyle.VISUAL
    metrics: ProfileMetrics = Field(default_factory=ProfileMetrics)
    inferred: ProfileInferred = Field(default_factory=ProfileInferred)
    last_updated: Optional[datetime] = None


class ReportCategoryBreakdown(BaseModel):
    category_id: str
    planned: Decimal
    actual: Decimal
    difference: Decimal = Field(
        ...,
        description="planned - actual; negative means overspent"
    )
    status: ReportStatus


class MonthlyReport(BaseModel):
    """
    Month-end summary.

    The figures are computed deterministically; only the three narrative
    fields come from the language model.
    """
    id: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    month: str
    year: int
    generated_at: datetime = Field(default_factory=datetime.now)
    status: str = "final"
    total_income: Decimal
    total_expenses: Decimal
    net_savings: Decimal
    savings_rate: float
    category_breakdown: list[ReportCategoryBreakdown] = Field(default_factory=list)
    executive_summary: str = ""
    behavioral_analysis: str = ""
    actionable_tips: list[str] = Field(default_factory=list)


class CoachAlert(BaseModel):
    id: str = Field(..., description="Stable id; used to avoid duplicate alerts")
    type: AlertType
    title: str
    message: str
    action_label: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class EducationState(BaseModel):
    read_resource_ids: list[str] = Field(default_factory=list)
    active_path_id: Optional[str] = None


class BudgetCreationState(BaseModel):
    step: BudgetCreationStep = BudgetCreationStep.IDLE
    income: Optional[Decimal] = None


# =============================================================================
# STATE TREE
# =============================================================================

class FinancialState(BaseModel):
    """
    Everything one conversation knows.

    CRITICAL: This tree is deep-copied for simulation mode, so it must only
    contain plain data.
    """

    user_name: str = "Utilisateur"
    user_avatar: str = "👤"
    ai_persona: AiPersona = AiPersona.BENEVOLENT
    is_privacy_mode: bool = False
    user_profile: UserProfile = Field(default_factory=UserProfile)

    transactions: list[Transaction] = Field(default_factory=list)
    shopping_lists: list[ShoppingList] = Field(default_factory=list)
    active_shopping_list_id: Optional[UUID] = None
    budgets: list[Budget] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    recurring_transactions: list[RecurringTransaction] = Field(default_factory=list)

    monthly_plan: MonthlyPlan = Field(default_factory=MonthlyPlan)
    budgeting_rule: Optional[BudgetingRule] = None
    sub_categories: list[SubCategory] = Field(default_factory=list)

    active_widget: ActiveWidget = ActiveWidget.NONE
    budget_creation_state: BudgetCreationState = Field(default_factory=BudgetCreationState)

    debts: list[Debt] = Field(default_factory=list)
    monthly_reports: list[MonthlyReport] = Field(default_factory=list)
    aliases: dict[str, str] = Field(default_factory=dict)
    categories: list[Category] = Field(default_factory=default_categories)
    education_state: EducationState = Field(default_factory=EducationState)
    coach_alerts: list[CoachAlert] = Field(default_factory=list)

    @property
    def balance(self) -> Decimal:
        """Income minus expenses over the whole ledger."""
        total = Decimal("0")
        for transaction in self.transactions:
            if transaction.type == TransactionType.INCOME:
                total += transaction.amount
            else:
                total -= transaction.amount
        return total


class Conversation(BaseModel):
    """A named, isolated budget with its own FinancialState."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    created_at: datetime = Field(default_factory=datetime.now)
    status: ConversationStatus = ConversationStatus.ACTIVE


class AppState(BaseModel):
    conversations: list[Conversation] = Field(default_factory=list)
    active_conversation_id: Optional[UUID] = None
    financial_data: dict[str, FinancialState] = Field(
        default_factory=dict,
        description="Keyed by str(conversation.id)"
    )

    @model_validator(mode='after')
    def validate_active_conversation(self) -> 'AppState':
        known = {c.id for c in self.conversations}
        if self.active_conversation_id is not None and self.active_conversation_id not in known:
            raise ValueError("Active conversation does not exist")
        return self


# =============================================================================
# QUERY MODELS (deterministic data access for the assistant)
# =============================================================================

class StructuredQuery(BaseModel):
    """
    A data request issued on behalf of the assistant.

    CRITICAL: Queries are executed DETERMINISTICALLY on the current state.
    The LLM only ever sees the results, never the raw state tree.
    """

    query_id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=datetime.now)
    query_type: str = Field(
        ...,
        pattern="^(balance|recent_transactions|budget_status|spending_context)$",
        description="Type of query to execute"
    )
    limit: int = Field(default=5, ge=1, le=100)


class QueryResult(BaseModel):
    """Result of executing a structured query."""

    query_id: UUID
    executed_at: datetime = Field(default_factory=datetime.now)

    success: bool
    error_message: Optional[str] = None

    data_found: bool = Field(..., description="Was any data found?")
    result_count: int = Field(ge=0, description="Number of results")
    results: list[dict] = Field(default_factory=list)
    aggregation_result: Optional[dict[str, Any]] = None

    query_description: str = Field(
        ...,
        description="Human-readable description of what was queried"
    )

    @field_validator('results')
    @classmethod
    def validate_results(cls, v: list[dict]) -> list[dict]:
        if any(not isinstance(row, dict) for row in v):
            raise ValueError("Query results must be dictionaries")
        return v
