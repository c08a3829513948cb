"""Gemini-backed agents."""

from prompt_finance.agents.ai_agents import (
    BudgetSuggestionAgent,
    BudgetSuggestionError,
    CategoryAgent,
    CommandParsingAgent,
    InsightsAgent,
    ReceiptScanAgent,
    ReceiptValidationError,
    ReportNarrationAgent,
)

__all__ = [
    "BudgetSuggestionAgent",
    "BudgetSuggestionError",
    "CategoryAgent",
    "CommandParsingAgent",
    "InsightsAgent",
    "ReceiptScanAgent",
    "ReceiptValidationError",
    "ReportNarrationAgent",
]
