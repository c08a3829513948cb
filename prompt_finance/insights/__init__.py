"""Derived views over a conversation: profile scores, reports and alerts."""

from prompt_finance.insights.alerts import generate_coach_alerts
from prompt_finance.insights.profile import recalculate_profile
from prompt_finance.insights.reports import build_monthly_report, narration_context

__all__ = [
    "build_monthly_report",
    "generate_coach_alerts",
    "narration_context",
    "recalculate_profile",
]
