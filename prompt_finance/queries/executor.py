"""
Query Execution Engine

DESIGN DECISION: Query execution is DETERMINISTIC.
The assistant asks for data through a StructuredQuery; this engine answers
from the current state of the store. The coach only ever sees what this
engine returns.

This is the critical boundary that prevents hallucinated figures.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from prompt_finance.models.finance import (
    FinancialState,
    QueryResult,
    StructuredQuery,
    Transaction,
    TransactionType,
    add_months,
)
from prompt_finance.state.store import FinanceStore

CONTEXT_MONTHS = 6
CONTEXT_RECENT_TRANSACTIONS = 20


class QueryExecutionError(Exception):
    """Error during query execution."""
    pass


def _transaction_to_dict(transaction: Transaction) -> dict:
    return {
        "id": str(transaction.id),
        "date": transaction.date.date().isoformat(),
        "amount": float(transaction.amount),
        "label": transaction.label,
        "category": transaction.category,
        "type": transaction.type.value,
    }


class AssistantQueryExecutor:
    """
    Executes structured queries against the store's current state.

    GUARANTEES:
    - Only returns real data from the state
    - Never invents or estimates
    - Clear "no data found" if nothing matches
    """

    def __init__(self, store: FinanceStore):
        self._store = store

    async def execute(self, query: StructuredQuery, now: Optional[datetime] = None) -> QueryResult:
        """Run one query; failures come back as an unsuccessful result."""
        try:
            state = self._store.current
            if query.query_type == "balance":
                return self._execute_balance(query, state)
            elif query.query_type == "recent_transactions":
                return self._execute_recent(query, state)
            elif query.query_type == "budget_status":
                return self._execute_budget_status(query, state)
            elif query.query_type == "spending_context":
                return self._execute_spending_context(query, state, now or datetime.now())
            raise QueryExecutionError(f"Unsupported query type: {query.query_type}")

        except Exception as e:
            return QueryResult(
                query_id=query.query_id,
                success=False,
                error_message=str(e),
                data_found=False,
                result_count=0,
                query_description=f"Query failed: {str(e)}",
            )

    def _execute_balance(self, query: StructuredQuery, state: FinancialState) -> QueryResult:
        income = sum(
            (t.amount for t in state.transactions if t.type == TransactionType.INCOME),
            Decimal("0"),
        )
        expenses = sum(
            (t.amount for t in state.transactions if t.type == TransactionType.EXPENSE),
            Decimal("0"),
        )
        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=bool(state.transactions),
            result_count=len(state.transactions),
            aggregation_result={
                "balance": float(income - expenses),
                "total_income": float(income),
                "total_expenses": float(expenses),
            },
            query_description="Balance: income minus expenses",
        )

    def _execute_recent(self, query: StructuredQuery, state: FinancialState) -> QueryResult:
        recent = sorted(state.transactions, key=lambda t: t.date, reverse=True)[:query.limit]
        results = [_transaction_to_dict(t) for t in recent]
        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=len(results) > 0,
            result_count=len(results),
            results=results,
            query_description=f"Latest {query.limit} transactions",
        )

    def _execute_budget_status(self, query: StructuredQuery, state: FinancialState) -> QueryResult:
        results = [
            {
                "name": budget.name,
                "type": budget.type.value,
                "limit": float(budget.limit),
                "spent": float(budget.current_spent),
                "remaining": float(budget.remaining),
            }
            for budget in state.budgets
        ]
        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=len(results) > 0,
            result_count=len(results),
            results=results,
            query_description="Budget limits and spending",
        )

    def _execute_spending_context(
        self,
        query: StructuredQuery,
        state: FinancialState,
        now: datetime,
    ) -> QueryResult:
        """Everything the coach may know, aggregated."""
        start = add_months(now.date().replace(day=1), -(CONTEXT_MONTHS - 1))
        history: dict[str, dict[str, float]] = {}
        for t in state.transactions:
            if t.type != TransactionType.EXPENSE or t.date.date() < start:
                continue
            month = history.setdefault(t.date.strftime("%Y-%m"), {})
            month[t.category] = month.get(t.category, 0.0) + float(t.amount)

        recent = sorted(state.transactions, key=lambda t: t.date, reverse=True)
        rule = state.budgeting_rule
        plan = state.monthly_plan

        context: dict[str, Any] = {
            "user_name": state.user_name,
            "monthly_history": dict(sorted(history.items())),
            "recent_transactions": [
                _transaction_to_dict(t) for t in recent[:CONTEXT_RECENT_TRANSACTIONS]
            ],
            "active_budgets": [
                {
                    "name": b.name,
                    "limit": float(b.limit),
                    "current_spent": float(b.current_spent),
                    "type": b.type.value,
                }
                for b in state.budgets
            ],
            "financial_goals": [
                {
                    "name": g.name,
                    "target": float(g.target),
                    "current_saved": float(g.current_saved),
                    "target_date": g.target_date.isoformat() if g.target_date else None,
                }
                for g in state.goals
            ],
            "budgeting_method": f"Rule: {rule.describe()}" if rule else "No specific rule set",
            "monthly_plan_summary": {
                "planned_income": float(plan.planned_income),
                "planned_savings": float(plan.planned_savings),
            },
            "debts": [
                {
                    "type": d.type.value,
                    "person": d.person,
                    "amount": float(d.total_amount),
                    "status": d.status.value,
                }
                for d in state.debts
            ],
            "profile_metrics": state.user_profile.metrics.model_dump(),
        }

        return QueryResult(
            query_id=query.query_id,
            success=True,
            data_found=bool(state.transactions),
            result_count=len(state.transactions),
            aggregation_result=context,
            query_description=f"Spending context for the last {CONTEXT_MONTHS} months",
        )
