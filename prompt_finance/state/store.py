"""
Finance State Store

Holds every conversation and its FinancialState in memory and exposes the
mutations the command bar and the front end need.

DESIGN DECISION: Every mutation targets the *current* state: the simulation
copy while a simulation is active, otherwise the active conversation's
state. Callers never need to know which one they are writing to.

CRITICAL: The store never persists anything itself. The orchestrator saves
after successful commands, and skips saving while a simulation is active.

Mutations that refer to an entity that does not exist return None (or
False) instead of raising.
"""

import csv
import io
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional, TypeVar
from uuid import UUID, uuid4

import structlog
from pydantic import BaseModel, ValidationError

from prompt_finance.insights.alerts import generate_coach_alerts
from prompt_finance.insights.profile import recalculate_profile
from prompt_finance.models.commands import DebtPaymentType
from prompt_finance.models.finance import (
    ActiveWidget,
    AiPersona,
    AppState,
    Bucket,
    Budget,
    BudgetCreationState,
    BudgetCreationStep,
    BudgetingRule,
    BudgetMethod,
    BudgetType,
    BuiltinCategory,
    Category,
    CoachAlert,
    Conversation,
    ConversationStatus,
    Debt,
    DebtType,
    FinancialState,
    Frequency,
    Goal,
    Installment,
    Language,
    MonthlyReport,
    PlannedContribution,
    RecurringTransaction,
    ShoppingItem,
    ShoppingItemStatus,
    ShoppingList,
    SubCategory,
    Transaction,
    TransactionType,
    add_months,
)
from prompt_finance.planning import budget_rules, debts as debt_schedule

logger = structlog.get_logger(__name__)

DEFAULT_SHOPPING_LIST_NAME = "Shopping"
CSV_COLUMNS = ["date", "type", "amount", "category", "label"]

M = TypeVar("M", bound=BaseModel)


def next_due_date(frequency: Frequency, from_date: date) -> date:
    """The occurrence after `from_date` for a recurring item."""
    if frequency == Frequency.WEEKLY:
        return from_date + timedelta(days=7)
    if frequency == Frequency.MONTHLY:
        return add_months(from_date, 1)
    return add_months(from_date, 12)


def _revalidate(model: M, changes: dict[str, Any]) -> M:
    """Apply field changes and run the model's validation again."""
    return type(model).model_validate({**model.model_dump(), **changes})


def _replace(items: list, updated: BaseModel) -> None:
    for index, item in enumerate(items):
        if item.id == updated.id:
            items[index] = updated
            return


def _find(items: list, item_id: UUID):
    return next((item for item in items if item.id == item_id), None)


def _remove(items: list, item_id: UUID) -> bool:
    for index, item in enumerate(items):
        if item.id == item_id:
            del items[index]
            return True
    return False


class FinanceStore:
    """
    In-memory owner of the application state.

    Usage:
        store = FinanceStore()
        store.add_transaction(Decimal("12.50"), "lunch", TransactionType.EXPENSE)
        store.balance  # Decimal("-12.50")
    """

    def __init__(
        self,
        state: Optional[AppState] = None,
        default_persona: AiPersona = AiPersona.BENEVOLENT,
    ):
        self._default_persona = default_persona
        self._simulation: Optional[FinancialState] = None
        self._app = AppState()
        self.load(state or AppState())

    # =========================================================================
    # STATE ACCESS
    # =========================================================================

    def load(self, state: AppState) -> None:
        """Replace everything held in memory, e.g. after reading storage."""
        self._simulation = None
        self._app = state
        for conversation in self._app.conversations:
            self._app.financial_data.setdefault(str(conversation.id), self._fresh_state())
        if not self._app.conversations:
            self.create_conversation()
        elif self._app.active_conversation_id is None:
            self._app.active_conversation_id = self._app.conversations[0].id

    @property
    def app_state(self) -> AppState:
        return self._app

    @property
    def is_simulating(self) -> bool:
        return self._simulation is not None

    @property
    def active_conversation(self) -> Conversation:
        return _find(self._app.conversations, self._app.active_conversation_id)

    @property
    def current(self) -> FinancialState:
        """The state mutations apply to."""
        if self._simulation is not None:
            return self._simulation
        return self._app.financial_data[str(self._app.active_conversation_id)]

    @property
    def balance(self) -> Decimal:
        return self.current.balance

    def _fresh_state(self) -> FinancialState:
        return FinancialState(ai_persona=self._default_persona)

    # =========================================================================
    # CONVERSATIONS
    # =========================================================================

    def create_conversation(self, name: Optional[str] = None) -> Conversation:
        """Create an empty conversation and make it the active one."""
        conversation = Conversation(name=name or f"Budget {len(self._app.conversations) + 1}")
        self._app.conversations.append(conversation)
        self._app.financial_data[str(conversation.id)] = self._fresh_state()
        self._simulation = None
        self._app.active_conversation_id = conversation.id
        return conversation

    def switch_conversation(self, conversation_id: UUID) -> bool:
        if _find(self._app.conversations, conversation_id) is None:
            return False
        self._simulation = None
        self._app.active_conversation_id = conversation_id
        return True

    def delete_conversation(self, conversation_id: UUID) -> bool:
        """Delete a conversation; there is always at least one left afterwards."""
        if not _remove(self._app.conversations, conversation_id):
            return False
        self._app.financial_data.pop(str(conversation_id), None)

        if self._app.active_conversation_id == conversation_id:
            self._simulation = None
            if self._app.conversations:
                self._app.active_conversation_id = self._app.conversations[0].id
            else:
                self._app.active_conversation_id = None
                self.create_conversation()
        return True

    def rename_conversation(self, conversation_id: UUID, name: str) -> bool:
        conversation = _find(self._app.conversations, conversation_id)
        if conversation is None:
            return False
        _replace(self._app.conversations, _revalidate(conversation, {"name": name}))
        return True

    def duplicate_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        source = _find(self._app.conversations, conversation_id)
        if source is None:
            return None
        copy = Conversation(name=f"{source.name} (copy)")
        self._app.conversations.append(copy)
        self._app.financial_data[str(copy.id)] = (
            self._app.financial_data[str(conversation_id)].model_copy(deep=True)
        )
        return copy

    def archive_conversation(self, conversation_id: UUID) -> bool:
        conversation = _find(self._app.conversations, conversation_id)
        if conversation is None:
            return False
        _replace(
            self._app.conversations,
            conversation.model_copy(update={"status": ConversationStatus.ARCHIVED}),
        )
        return True

    def reset_current(self) -> None:
        """Wipe the current state, keeping the user's identity and persona."""
        state = self.current
        fresh = FinancialState(
            user_name=state.user_name,
            user_avatar=state.user_avatar,
            ai_persona=state.ai_persona,
        )
        if self._simulation is not None:
            self._simulation = fresh
        else:
            self._app.financial_data[str(self._app.active_conversation_id)] = fresh

    # =========================================================================
    # SIMULATION
    # =========================================================================

    def start_simulation(self) -> bool:
        """Deep-copy the active state. Returns False if one is already running."""
        if self._simulation is not None:
            return False
        self._simulation = self.current.model_copy(deep=True)
        return True

    def commit_simulation(self) -> bool:
        if self._simulation is None:
            return False
        self._app.financial_data[str(self._app.active_conversation_id)] = self._simulation
        self._simulation = None
        return True

    def cancel_simulation(self) -> bool:
        if self._simulation is None:
            return False
        self._simulation = None
        return True

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def add_transaction(
        self,
        amount: Decimal,
        label: str,
        type: TransactionType,
        category: Optional[str] = None,
        date: Optional[datetime] = None,
        budget_id: Optional[UUID] = None,
        goal_id: Optional[UUID] = None,
        receipt_image: Optional[str] = None,
    ) -> Transaction:
        transaction = Transaction(
            amount=amount,
            label=label,
            type=type,
            category=category or BuiltinCategory.GENERAL.value,
            date=date or datetime.now(),
            budget_id=budget_id,
            goal_id=goal_id,
            receipt_image=receipt_image,
        )
        state = self.current
        state.transactions.append(transaction)
        state.transactions.sort(key=lambda t: t.date, reverse=True)
        self._recompute_budget_spent()
        return transaction

    def update_transaction(self, transaction_id: UUID, **changes: Any) -> Optional[Transaction]:
        state = self.current
        transaction = _find(state.transactions, transaction_id)
        if transaction is None:
            return None
        updated = _revalidate(transaction, changes)
        _replace(state.transactions, updated)
        state.transactions.sort(key=lambda t: t.date, reverse=True)
        self._recompute_budget_spent()
        return updated

    def delete_transaction(self, transaction_id: UUID) -> bool:
        if not _remove(self.current.transactions, transaction_id):
            return False
        self._recompute_budget_spent()
        return True

    def _recompute_budget_spent(self, now: Optional[datetime] = None) -> None:
        """
        Derive every budget's spent amount from the ledger.

        Event budgets count their tagged expenses. Monthly budgets also
        count this month's untagged expenses in their category.
        """
        now = now or datetime.now()
        state = self.current
        expenses = [t for t in state.transactions if t.type == TransactionType.EXPENSE]

        for index, budget in enumerate(state.budgets):
            spent = sum((t.amount for t in expenses if t.budget_id == budget.id), Decimal("0"))
            if budget.type == BudgetType.MONTHLY and budget.category:
                spent += sum(
                    (
                        t.amount for t in expenses
                        if t.budget_id != budget.id
                        and t.category == budget.category
                        and t.date.year == now.year
                        and t.date.month == now.month
                    ),
                    Decimal("0"),
                )
            state.budgets[index] = budget.model_copy(update={"current_spent": spent})

    # =========================================================================
    # BUDGETS
    # =========================================================================

    def add_budget(
        self,
        name: str,
        limit: Decimal,
        type: BudgetType = BudgetType.EVENT,
        category: Optional[str] = None,
    ) -> Budget:
        reset_date = None
        if type == BudgetType.MONTHLY:
            reset_date = add_months(date.today().replace(day=1), 1)
        budget = Budget(name=name, limit=limit, type=type, category=category, reset_date=reset_date)
        self.current.budgets.append(budget)
        self._recompute_budget_spent()
        return _find(self.current.budgets, budget.id)

    def add_monthly_budget(self, category: str, limit: Decimal) -> Budget:
        return self.add_budget(category, limit, type=BudgetType.MONTHLY, category=category)

    def update_budget(self, budget_id: UUID, **changes: Any) -> Optional[Budget]:
        budget = _find(self.current.budgets, budget_id)
        if budget is None:
            return None
        _replace(self.current.budgets, _revalidate(budget, changes))
        self._recompute_budget_spent()
        return _find(self.current.budgets, budget_id)

    def delete_budget(self, budget_id: UUID) -> bool:
        return _remove(self.current.budgets, budget_id)

    def find_budget_by_tag(self, tag: str) -> Optional[Budget]:
        """Match "#wedding" or "#summer-trip" against budget names."""
        wanted = tag.strip().lower()
        for budget in self.current.budgets:
            name = budget.name.lower()
            if name == wanted or "-".join(name.split()) == wanted:
                return budget
        return None

    # =========================================================================
    # GOALS
    # =========================================================================

    def add_goal(self, name: str, target: Decimal, target_date: Optional[date] = None) -> Goal:
        goal = Goal(name=name, target=target, target_date=target_date)
        self.current.goals.append(goal)
        return goal

    def update_goal(self, goal_id: UUID, **changes: Any) -> Optional[Goal]:
        goal = _find(self.current.goals, goal_id)
        if goal is None:
            return None
        updated = _revalidate(goal, changes)
        _replace(self.current.goals, updated)
        return updated

    def delete_goal(self, goal_id: UUID) -> bool:
        return _remove(self.current.goals, goal_id)

    def find_goal(self, name: str) -> Optional[Goal]:
        wanted = name.strip().lower()
        return next((g for g in self.current.goals if g.name.lower() == wanted), None)

    def contribute_to_goal(self, goal_id: UUID, amount: Decimal) -> Optional[Goal]:
        """Move money into a goal; the ledger records it as an expense."""
        goal = _find(self.current.goals, goal_id)
        if goal is None:
            return None
        updated = goal.model_copy(update={"current_saved": goal.current_saved + amount})
        _replace(self.current.goals, updated)
        self.add_transaction(
            amount,
            f"Contribution to {goal.name}",
            TransactionType.EXPENSE,
            category=BuiltinCategory.GENERAL.value,
            goal_id=goal.id,
        )
        return updated

    def withdraw_from_goal(self, goal_id: UUID, amount: Decimal) -> Optional[Goal]:
        """Take money out of a goal; the ledger records it as income."""
        goal = _find(self.current.goals, goal_id)
        if goal is None:
            return None
        saved = max(Decimal("0"), goal.current_saved - amount)
        updated = goal.model_copy(update={"current_saved": saved})
        _replace(self.current.goals, updated)
        self.add_transaction(
            amount,
            f"Withdrawal from {goal.name}",
            TransactionType.INCOME,
            category=BuiltinCategory.INCOME.value,
        )
        return updated

    # =========================================================================
    # SHOPPING
    # =========================================================================

    def create_shopping_list(self, name: str) -> ShoppingList:
        shopping_list = ShoppingList(name=name)
        self.current.shopping_lists.append(shopping_list)
        self.current.active_shopping_list_id = shopping_list.id
        return shopping_list

    def delete_shopping_list(self, list_id: UUID) -> bool:
        state = self.current
        if not _remove(state.shopping_lists, list_id):
            return False
        if state.active_shopping_list_id == list_id:
            state.active_shopping_list_id = state.shopping_lists[0].id if state.shopping_lists else None
        return True

    def rename_shopping_list(self, list_id: UUID, name: str) -> bool:
        shopping_list = _find(self.current.shopping_lists, list_id)
        if shopping_list is None:
            return False
        _replace(self.current.shopping_lists, _revalidate(shopping_list, {"name": name}))
        return True

    def set_active_shopping_list(self, list_id: UUID) -> bool:
        if _find(self.current.shopping_lists, list_id) is None:
            return False
        self.current.active_shopping_list_id = list_id
        return True

    def active_shopping_list(self) -> Optional[ShoppingList]:
        state = self.current
        if state.active_shopping_list_id is None:
            return None
        return _find(state.shopping_lists, state.active_shopping_list_id)

    def add_shopping_item(self, text: str, planned_amount: Decimal) -> ShoppingItem:
        """Add to the active list, creating a "Shopping" list when there is none."""
        shopping_list = self.active_shopping_list() or self.create_shopping_list(DEFAULT_SHOPPING_LIST_NAME)
        item = ShoppingItem(text=text, planned_amount=planned_amount)
        shopping_list.items.append(item)
        return item

    def delete_shopping_item(self, list_id: UUID, item_id: UUID) -> bool:
        shopping_list = _find(self.current.shopping_lists, list_id)
        if shopping_list is None:
            return False
        return _remove(shopping_list.items, item_id)

    def purchase_shopping_item(
        self,
        list_id: UUID,
        item_id: UUID,
        actual_amount: Optional[Decimal] = None,
    ) -> Optional[ShoppingItem]:
        """Mark an item bought and record what it actually cost."""
        shopping_list = _find(self.current.shopping_lists, list_id)
        if shopping_list is None:
            return None
        item = _find(shopping_list.items, item_id)
        if item is None or item.status == ShoppingItemStatus.PURCHASED:
            return None

        amount = item.planned_amount if actual_amount is None else actual_amount
        purchased = _revalidate(item, {"status": ShoppingItemStatus.PURCHASED, "actual_amount": amount})
        _replace(shopping_list.items, purchased)
        if amount > 0:
            self.add_transaction(
                amount,
                item.text,
                TransactionType.EXPENSE,
                category=BuiltinCategory.SHOPPING.value,
            )
        return purchased

    # =========================================================================
    # RECURRING
    # =========================================================================

    def add_recurring(
        self,
        label: str,
        amount: Decimal,
        frequency: Frequency,
        type: TransactionType = TransactionType.EXPENSE,
        category: Optional[str] = None,
        first_due_date: Optional[date] = None,
    ) -> RecurringTransaction:
        recurring = RecurringTransaction(
            label=label,
            amount=amount,
            frequency=frequency,
            type=type,
            category=category or (
                BuiltinCategory.INCOME.value if type == TransactionType.INCOME
                else BuiltinCategory.GENERAL.value
            ),
            next_due_date=first_due_date or next_due_date(frequency, date.today()),
        )
        self.current.recurring_transactions.append(recurring)
        return recurring

    def update_recurring(self, recurring_id: UUID, **changes: Any) -> Optional[RecurringTransaction]:
        recurring = _find(self.current.recurring_transactions, recurring_id)
        if recurring is None:
            return None
        updated = _revalidate(recurring, changes)
        _replace(self.current.recurring_transactions, updated)
        return updated

    def delete_recurring(self, recurring_id: UUID) -> bool:
        return _remove(self.current.recurring_transactions, recurring_id)

    def process_due_recurring(self, now: Optional[datetime] = None) -> list[Transaction]:
        """Record every occurrence that has come due and advance each item."""
        today = (now or datetime.now()).date()
        created = []
        state = self.current
        for index, recurring in enumerate(state.recurring_transactions):
            due = recurring.next_due_date
            while due <= today:
                created.append(self.add_transaction(
                    recurring.amount,
                    recurring.label,
                    recurring.type,
                    category=recurring.category,
                    date=datetime.combine(due, time()),
                    budget_id=recurring.budget_id,
                ))
                due = next_due_date(recurring.frequency, due)
            if due != recurring.next_due_date:
                state.recurring_transactions[index] = recurring.model_copy(update={"next_due_date": due})
        return created

    # =========================================================================
    # DEBTS
    # =========================================================================

    def add_debt(
        self,
        type: DebtType,
        person: str,
        total_amount: Decimal,
        due_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> Debt:
        installments = []
        if due_date is not None:
            installments = debt_schedule.generate_installments(total_amount, due_date, now)
        debt = Debt(
            type=type,
            person=person,
            total_amount=total_amount,
            due_date=due_date,
            installments=installments,
        )
        self.current.debts.append(debt)
        return debt

    def find_active_debt(self, person: str, type: DebtType) -> Optional[Debt]:
        wanted = person.strip().lower()
        return next(
            (
                d for d in self.current.debts
                if d.type == type and d.person.lower() == wanted and d.remaining > 0
            ),
            None,
        )

    def record_debt_payment(
        self,
        person: str,
        amount: Decimal,
        payment_type: DebtPaymentType,
    ) -> Optional[Debt]:
        """
        Apply a payment to the open debt (or loan) with this person.

        A payment settles money the user owes and is an expense; a
        repayment is money coming back on a loan and is income. The ledger
        records only the part that was actually applied.
        """
        debt_type = DebtType.DEBT if payment_type == DebtPaymentType.PAYMENT else DebtType.LOAN
        debt = self.find_active_debt(person, debt_type)
        if debt is None:
            return None

        updated = debt_schedule.apply_payment(debt, amount)
        _replace(self.current.debts, updated)

        applied = updated.paid_amount - debt.paid_amount
        if payment_type == DebtPaymentType.PAYMENT:
            self.add_transaction(
                applied,
                f"Debt payment to {debt.person}",
                TransactionType.EXPENSE,
                category=BuiltinCategory.GENERAL.value,
            )
        else:
            self.add_transaction(
                applied,
                f"Debt repayment from {debt.person}",
                TransactionType.INCOME,
                category=BuiltinCategory.INCOME.value,
            )
        return updated

    def mark_debt_paid(self, debt_id: UUID) -> Optional[Debt]:
        debt = _find(self.current.debts, debt_id)
        if debt is None:
            return None
        updated = debt_schedule.mark_paid(debt)
        _replace(self.current.debts, updated)
        return updated

    def update_debt(self, debt_id: UUID, now: Optional[datetime] = None, **changes: Any) -> Optional[Debt]:
        """
        Edit a debt. A new due date rebuilds the unpaid part of the schedule.

        Raises:
            ValidationError: If the change leaves paid above total
        """
        debt = _find(self.current.debts, debt_id)
        if debt is None:
            return None
        reschedule = "due_date" in changes
        due_date = changes.pop("due_date", None)
        updated = _revalidate(debt, changes)
        if reschedule:
            updated = debt_schedule.reschedule(updated, due_date, now)
        _replace(self.current.debts, updated)
        return updated

    def delete_debt(self, debt_id: UUID) -> bool:
        return _remove(self.current.debts, debt_id)

    def toggle_installment(self, debt_id: UUID, installment_id: UUID) -> Optional[Debt]:
        debt = _find(self.current.debts, debt_id)
        if debt is None or _find(debt.installments, installment_id) is None:
            return None
        updated = debt_schedule.toggle_installment(debt, installment_id)
        _replace(self.current.debts, updated)
        return updated

    def update_installment(self, debt_id: UUID, installment_id: UUID, amount: Decimal) -> Optional[Debt]:
        """
        Change one installment and rebalance the later ones.

        Raises:
            ValueError: Negative amount or an already paid installment
        """
        debt = _find(self.current.debts, debt_id)
        if debt is None or _find(debt.installments, installment_id) is None:
            return None
        updated = debt_schedule.redistribute_installments(debt, installment_id, amount)
        _replace(self.current.debts, updated)
        return updated

    def installments_over_capacity(self) -> list[tuple[Debt, Installment]]:
        """Unpaid installments larger than the monthly plan can safely repay."""
        state = self.current
        capacity = debt_schedule.safe_monthly_capacity(state.monthly_plan, state.budgets)
        return [
            (debt, installment)
            for debt in state.debts
            for installment in debt.installments
            if debt_schedule.exceeds_capacity(installment, capacity)
        ]

    # =========================================================================
    # PLANNING
    # =========================================================================

    def set_planned_income(self, amount: Decimal) -> None:
        plan = self.current.monthly_plan
        self.current.monthly_plan = plan.model_copy(update={"planned_income": amount})

    def add_planned_contribution(self, goal_id: UUID, amount: Decimal) -> Optional[PlannedContribution]:
        """Plan money for a goal this month; repeated calls accumulate."""
        if _find(self.current.goals, goal_id) is None:
            return None
        plan = self.current.monthly_plan
        contributions = list(plan.planned_contributions)
        for index, contribution in enumerate(contributions):
            if contribution.goal_id == goal_id:
                contributions[index] = contribution.model_copy(
                    update={"amount": contribution.amount + amount}
                )
                break
        else:
            contributions.append(PlannedContribution(goal_id=goal_id, amount=amount))
        self.current.monthly_plan = plan.model_copy(update={"planned_contributions": contributions})
        return next(c for c in contributions if c.goal_id == goal_id)

    def set_budgeting_rule(self, rule: Optional[BudgetingRule]) -> None:
        self.current.budgeting_rule = rule

    def add_sub_category(
        self,
        name: str,
        planned_amount: Decimal,
        category_id: str,
        bucket: Optional[Bucket] = None,
    ) -> SubCategory:
        sub = SubCategory(name=name, planned_amount=planned_amount, category_id=category_id, bucket=bucket)
        self.current.sub_categories.append(sub)
        return sub

    def update_sub_category(self, sub_id: UUID, **changes: Any) -> Optional[SubCategory]:
        sub = _find(self.current.sub_categories, sub_id)
        if sub is None:
            return None
        updated = _revalidate(sub, changes)
        _replace(self.current.sub_categories, updated)
        return updated

    def delete_sub_category(self, sub_id: UUID) -> bool:
        return _remove(self.current.sub_categories, sub_id)

    def apply_rule_to_sub_categories(self) -> list[SubCategory]:
        """Replace the table with the rule's default lines for the planned income."""
        state = self.current
        if state.budgeting_rule is None:
            return state.sub_categories
        state.sub_categories = budget_rules.get_default_sub_categories(
            state.monthly_plan.planned_income, state.budgeting_rule
        )
        return state.sub_categories

    def scale_sub_categories_to_rule(self) -> list[SubCategory]:
        """Keep the user's lines but resize each bucket to the rule's share."""
        state = self.current
        if state.budgeting_rule is None:
            return state.sub_categories
        state.sub_categories = budget_rules.scale_sub_categories_to_rule(
            state.sub_categories,
            state.monthly_plan.planned_income,
            state.budgeting_rule,
            state.categories,
        )
        return state.sub_categories

    def apply_plan_to_monthly_budgets(self) -> list[Budget]:
        """One monthly budget per planned category, created or resized."""
        state = self.current
        touched = []
        for category_id, total in budget_rules.plan_to_monthly_budgets(state.sub_categories).items():
            existing = next(
                (
                    b for b in state.budgets
                    if b.type == BudgetType.MONTHLY and b.category == category_id
                ),
                None,
            )
            if existing is not None:
                touched.append(self.update_budget(existing.id, limit=total))
            else:
                touched.append(self.add_monthly_budget(category_id, total))
        return touched

    # =========================================================================
    # BUDGET CREATION
    # =========================================================================

    @property
    def budget_creation(self) -> BudgetCreationState:
        return self.current.budget_creation_state

    def start_budget_creation(self) -> None:
        self.current.budget_creation_state = BudgetCreationState(step=BudgetCreationStep.GET_INCOME)

    def cancel_budget_creation(self) -> None:
        self.current.budget_creation_state = BudgetCreationState()

    def set_budget_creation_income(self, income: Decimal) -> None:
        self.current.budget_creation_state = BudgetCreationState(
            step=BudgetCreationStep.GET_METHOD,
            income=income,
        )

    def apply_budget_method(
        self,
        method: BudgetMethod,
        suggested: Optional[list[SubCategory]] = None,
    ) -> list[SubCategory]:
        """
        Finish budget creation with the chosen method.

        Raises:
            ValueError: If no income has been entered yet
        """
        state = self.current
        income = state.budget_creation_state.income
        if income is None:
            raise ValueError("Budget creation has no income yet")

        rule = budget_rules.rule_for_method(method)
        if rule is not None:
            state.budgeting_rule = rule
            state.sub_categories = budget_rules.get_default_sub_categories(income, rule)
            state.active_widget = ActiveWidget.RULE_BASED_BUDGET
        elif method == BudgetMethod.AI:
            state.sub_categories = list(suggested or [])
            state.active_widget = ActiveWidget.TABLE_BUDGET
        else:
            state.sub_categories = []
            state.active_widget = ActiveWidget.TABLE_BUDGET

        state.user_profile = state.user_profile.model_copy(update={"financial_method": method.value})
        self.set_planned_income(income)
        state.budget_creation_state = BudgetCreationState()
        return state.sub_categories

    # =========================================================================
    # ALIASES, CATEGORIES, PREFERENCES
    # =========================================================================

    def add_alias(self, key: str, command: str) -> None:
        self.current.aliases[key.strip().lower()] = command.strip()

    def delete_alias(self, key: str) -> bool:
        return self.current.aliases.pop(key.strip().lower(), None) is not None

    def resolve_alias(self, text: str) -> str:
        return self.current.aliases.get(text.strip().lower(), text)

    def add_category(self, name: str, bucket: Bucket) -> Category:
        category = Category(id=f"custom-{uuid4().hex[:8]}", name=name, bucket=bucket, is_custom=True)
        self.current.categories.append(category)
        return category

    def delete_category(self, category_id: str) -> bool:
        """Only custom categories can be deleted."""
        categories = self.current.categories
        for index, category in enumerate(categories):
            if category.id == category_id and category.is_custom:
                del categories[index]
                return True
        return False

    def set_active_widget(self, widget: ActiveWidget) -> None:
        self.current.active_widget = widget

    def set_persona(self, persona: AiPersona) -> None:
        self.current.ai_persona = persona

    def set_user_name(self, name: str) -> None:
        self.current.user_name = name

    def set_privacy_mode(self, enabled: bool) -> None:
        self.current.is_privacy_mode = enabled

    def update_profile(self, **changes: Any) -> None:
        self.current.user_profile = _revalidate(self.current.user_profile, changes)

    def refresh_profile(self, now: Optional[datetime] = None) -> None:
        state = self.current
        state.user_profile = recalculate_profile(
            state.user_profile,
            state.transactions,
            state.budgets,
            state.goals,
            state.debts,
            now,
        )

    # =========================================================================
    # ALERTS, REPORTS, EDUCATION
    # =========================================================================

    def refresh_coach_alerts(
        self,
        now: Optional[datetime] = None,
        language: Language = Language.EN,
    ) -> list[CoachAlert]:
        """Add newly detected alerts; returns only the new ones."""
        if self._simulation is not None:
            return []
        state = self.current
        known = {alert.id for alert in state.coach_alerts}
        fresh = [a for a in generate_coach_alerts(state, now, language) if a.id not in known]
        state.coach_alerts.extend(fresh)
        return fresh

    def dismiss_alert(self, alert_id: str) -> bool:
        alerts = self.current.coach_alerts
        for index, alert in enumerate(alerts):
            if alert.id == alert_id:
                del alerts[index]
                return True
        return False

    def save_monthly_report(self, report: MonthlyReport) -> None:
        """Store a report; a report for the same month replaces the old one."""
        reports = [r for r in self.current.monthly_reports if r.id != report.id]
        reports.append(report)
        reports.sort(key=lambda r: r.id, reverse=True)
        self.current.monthly_reports = reports

    def mark_resource_read(self, resource_id: str) -> None:
        education = self.current.education_state
        if resource_id not in education.read_resource_ids:
            education.read_resource_ids.append(resource_id)

    def set_active_path(self, path_id: Optional[str]) -> None:
        self.current.education_state.active_path_id = path_id

    # =========================================================================
    # PORTABILITY
    # =========================================================================

    def export_data(self) -> str:
        return self.current.model_dump_json(indent=2)

    def import_data(self, payload: str) -> bool:
        """Replace the current state with an exported one. False if invalid."""
        try:
            imported = FinancialState.model_validate_json(payload)
        except ValidationError as e:
            logger.warning("import_rejected", error_count=e.error_count())
            return False
        if self._simulation is not None:
            self._simulation = imported
        else:
            self._app.financial_data[str(self._app.active_conversation_id)] = imported
        return True

    def export_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_COLUMNS)
        for t in self.current.transactions:
            writer.writerow([t.date.isoformat(), t.type.value, str(t.amount), t.category, t.label])
        return buffer.getvalue()
