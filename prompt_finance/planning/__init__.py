"""Deterministic planners: budgeting rules, debt schedules and forecasts."""

from prompt_finance.planning.budget_rules import (
    get_bucket_for_category,
    get_default_sub_categories,
    map_user_input_to_category_id,
    rule_for_method,
    scale_sub_categories_to_rule,
)
from prompt_finance.planning.debts import (
    apply_payment,
    generate_installments,
    is_overdue,
    redistribute_installments,
    safe_monthly_capacity,
)
from prompt_finance.planning.forecast import ForecastPoint, project_balance

__all__ = [
    "ForecastPoint",
    "apply_payment",
    "generate_installments",
    "get_bucket_for_category",
    "get_default_sub_categories",
    "is_overdue",
    "map_user_input_to_category_id",
    "project_balance",
    "redistribute_installments",
    "rule_for_method",
    "safe_monthly_capacity",
    "scale_sub_categories_to_rule",
]
