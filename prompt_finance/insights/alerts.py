"""
Proactive Coach Alerts

Scans one conversation's state for situations worth a nudge. Each alert has
a stable id derived from what triggered it, so re-running the scan never
produces duplicates once the store merges by id.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from prompt_finance.models.finance import (
    AlertType,
    CoachAlert,
    FinancialState,
    Language,
    TransactionType,
)

BUDGET_WARNING_RATIO = Decimal("0.8")
DAILY_SPEND_MULTIPLIER = 2
DAILY_SPEND_FLOOR = Decimal("20")
DRIFT_MULTIPLIER = Decimal("1.2")
DRIFT_FLOOR = Decimal("50")
DUPLICATE_WINDOW = timedelta(hours=24)
DUPLICATE_SCAN_SIZE = 20

SUBSCRIPTION_GROUPS: dict[str, list[str]] = {
    "video": ["netflix", "disney", "amazon prime", "hbo", "canal+", "youtube premium"],
    "music": ["spotify", "deezer", "apple music", "tidal"],
    "cloud": ["icloud", "google one", "dropbox", "onedrive"],
}


def _text(language: Language, en: str, fr: str) -> str:
    return fr if language == Language.FR else en


def budget_alerts(state: FinancialState, now: datetime, language: Language) -> list[CoachAlert]:
    alerts = []
    for budget in state.budgets:
        if budget.limit <= 0:
            continue
        ratio = budget.current_spent / budget.limit
        name = budget.name or budget.category
        if BUDGET_WARNING_RATIO <= ratio < 1:
            percent = round(ratio * 100)
            alerts.append(CoachAlert(
                id=f"budget-warning-{budget.id}",
                type=AlertType.WARNING,
                title=_text(language, "Budget nearly reached", "Budget presque atteint"),
                message=_text(
                    language,
                    f'You have used {percent}% of your "{name}" budget.',
                    f'Vous avez utilisé {percent}% de votre budget "{name}".',
                ),
                created_at=now,
            ))
        elif ratio >= 1:
            alerts.append(CoachAlert(
                id=f"budget-over-{budget.id}",
                type=AlertType.WARNING,
                title=_text(language, "Budget exceeded", "Budget dépassé"),
                message=_text(
                    language,
                    f'The "{name}" budget has been exceeded.',
                    f'Le budget "{name}" est dépassé.',
                ),
                created_at=now,
            ))
    return alerts


def daily_spend_alert(state: FinancialState, now: datetime, language: Language) -> Optional[CoachAlert]:
    """Today's spending is more than twice the trailing 7-day daily average."""
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_ago = now - timedelta(days=7)
    expenses = [t for t in state.transactions if t.type == TransactionType.EXPENSE]

    today_total = sum((t.amount for t in expenses if t.date >= start_of_today), Decimal("0"))
    week_total = sum(
        (t.amount for t in expenses if week_ago <= t.date < start_of_today),
        Decimal("0"),
    )

    if today_total > week_total / 7 * DAILY_SPEND_MULTIPLIER and today_total > DAILY_SPEND_FLOOR:
        return CoachAlert(
            id="high-daily-spend",
            type=AlertType.INFO,
            title=_text(language, "High daily spend", "Dépense quotidienne élevée"),
            message=_text(
                language,
                "Your spending today is significantly higher than your usual average.",
                "Vos dépenses aujourd'hui sont nettement supérieures à votre moyenne habituelle.",
            ),
            created_at=now,
        )
    return None


def drift_alerts(state: FinancialState, now: datetime, language: Language) -> list[CoachAlert]:
    """This month's spending in a category is 20% above its past monthly average."""
    alerts = []
    for category in state.categories:
        expenses = [
            t for t in state.transactions
            if t.type == TransactionType.EXPENSE and t.category == category.id
        ]
        current = [t for t in expenses if t.date.year == now.year and t.date.month == now.month]
        past = [t for t in expenses if not (t.date.year == now.year and t.date.month == now.month)]
        if not past:
            continue

        oldest = min(t.date for t in past)
        month_span = (now.year - oldest.year) * 12 + (now.month - oldest.month)
        past_average = sum((t.amount for t in past), Decimal("0")) / max(1, month_span)
        current_total = sum((t.amount for t in current), Decimal("0"))

        if current_total > past_average * DRIFT_MULTIPLIER and current_total > DRIFT_FLOOR:
            alerts.append(CoachAlert(
                id=f"drift-{category.id}",
                type=AlertType.WARNING,
                title=_text(language, "Budget Drift", "Dérive budgétaire"),
                message=_text(
                    language,
                    f'Careful, your spending on "{category.name}" is 20% higher than your average.',
                    f'Attention, vos dépenses en "{category.name}" sont 20% au-dessus de votre moyenne.',
                ),
                created_at=now,
            ))
    return alerts


def duplicate_alerts(state: FinancialState, now: datetime, language: Language) -> list[CoachAlert]:
    """Same amount and type within 24h, with one label containing the other."""
    recent = state.transactions[:DUPLICATE_SCAN_SIZE]
    alerts = []
    for i, first in enumerate(recent):
        for second in recent[i + 1:]:
            if first.amount != second.amount or first.type != second.type:
                continue
            if abs(first.date - second.date) >= DUPLICATE_WINDOW:
                continue
            a, b = first.label.lower(), second.label.lower()
            if a in b or b in a:
                alerts.append(CoachAlert(
                    id=f"duplicate-{first.id}-{second.id}",
                    type=AlertType.INFO,
                    title=_text(language, "Potential Duplicate", "Doublon potentiel"),
                    message=_text(
                        language,
                        f'Two identical transactions for "{first.label}" detected within 24h.',
                        f'Deux transactions identiques pour "{first.label}" détectées à moins de 24h.',
                    ),
                    action_label=_text(language, "Check", "Vérifier"),
                    created_at=now,
                ))
    return alerts


def subscription_alerts(state: FinancialState, now: datetime, language: Language) -> list[CoachAlert]:
    """More than one recurring item in the same subscription family."""
    alerts = []
    for group, words in SUBSCRIPTION_GROUPS.items():
        found = [
            r for r in state.recurring_transactions
            if any(word in r.label.lower() for word in words)
        ]
        if len(found) > 1:
            alerts.append(CoachAlert(
                id=f"optimize-sub-{group}",
                type=AlertType.INFO,
                title=_text(language, "Subscription Optimization", "Optimisation abonnements"),
                message=_text(
                    language,
                    f'You have {len(found)} subscriptions for "{group}". Could you cancel one?',
                    f'Vous avez {len(found)} abonnements de type "{group}". Pouvez-vous en supprimer un ?',
                ),
                created_at=now,
            ))
    return alerts


def generate_coach_alerts(
    state: FinancialState,
    now: Optional[datetime] = None,
    language: Language = Language.EN,
) -> list[CoachAlert]:
    """Run every detector; the caller merges the result by alert id."""
    now = now or datetime.now()
    alerts = budget_alerts(state, now, language)
    daily = daily_spend_alert(state, now, language)
    if daily:
        alerts.append(daily)
    alerts.extend(drift_alerts(state, now, language))
    alerts.extend(duplicate_alerts(state, now, language))
    alerts.extend(subscription_alerts(state, now, language))
    return alerts
