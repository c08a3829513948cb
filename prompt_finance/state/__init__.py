"""In-memory application state and its mutations."""

from prompt_finance.state.store import FinanceStore, next_due_date

__all__ = [
    "FinanceStore",
    "next_due_date",
]
