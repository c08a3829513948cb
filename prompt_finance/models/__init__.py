"""Data models for Prompt Finance."""

from prompt_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from prompt_finance.models.commands import (
    CommandAction,
    CommandSource,
    DebtPaymentType,
    ParsedCommand,
)
from prompt_finance.models.finance import (
    ActiveWidget,
    AiPersona,
    AppState,
    Bucket,
    Budget,
    BudgetingRule,
    BudgetMethod,
    BudgetType,
    BuiltinCategory,
    Category,
    CoachAlert,
    Conversation,
    Debt,
    DebtStatus,
    DebtType,
    FinancialState,
    Frequency,
    Goal,
    Installment,
    Language,
    MonthlyPlan,
    MonthlyReport,
    QueryResult,
    RecurringTransaction,
    ShoppingItem,
    ShoppingList,
    StructuredQuery,
    SubCategory,
    Transaction,
    TransactionType,
    UserProfile,
)

__all__ = [
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Commands
    "CommandAction",
    "CommandSource",
    "DebtPaymentType",
    "ParsedCommand",
    # Finance
    "ActiveWidget",
    "AiPersona",
    "AppState",
    "Bucket",
    "Budget",
    "BudgetingRule",
    "BudgetMethod",
    "BudgetType",
    "BuiltinCategory",
    "Category",
    "CoachAlert",
    "Conversation",
    "Debt",
    "DebtStatus",
    "DebtType",
    "FinancialState",
    "Frequency",
    "Goal",
    "Installment",
    "Language",
    "MonthlyPlan",
    "MonthlyReport",
    "QueryResult",
    "RecurringTransaction",
    "ShoppingItem",
    "ShoppingList",
    "StructuredQuery",
    "SubCategory",
    "Transaction",
    "TransactionType",
    "UserProfile",
]
