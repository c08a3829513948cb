"""Deterministic data access for the assistant."""

from prompt_finance.queries.executor import AssistantQueryExecutor, QueryExecutionError

__all__ = [
    "AssistantQueryExecutor",
    "QueryExecutionError",
]
