"""
Main Orchestrator for Prompt Finance

This module ties together all the components and defines the end-to-end
flows for:
1. Commands (text → alias → grammar / AI → store mutation → save)
2. Monthly budget creation (income → method → plan)
3. Monthly reports (aggregate → narrate → store)
4. Coach questions (context query → coach answer)
5. Receipts (image → command line)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is persisted while a simulation is running
- Every amount reaching the store is positive
- The coach only sees the executor's aggregated context
- Every step is audited

Command-level problems come back as CommandOutcome(success=False) with a
message for the user. They are never raised.
"""

import base64
from datetime import date, datetime
from decimal import Decimal
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field, ValidationError

from prompt_finance.agents import (
    BudgetSuggestionAgent,
    BudgetSuggestionError,
    CategoryAgent,
    CommandParsingAgent,
    InsightsAgent,
    ReceiptScanAgent,
    ReportNarrationAgent,
)
from prompt_finance.audit import AuditLogger, configure_logging, create_correlation_id
from prompt_finance.config import get_settings
from prompt_finance.insights.reports import FALLBACK_SUMMARY, build_monthly_report
from prompt_finance.models.audit import AuditEventType
from prompt_finance.models.commands import (
    AliasPayload,
    AmountPayload,
    BudgetPayload,
    CommandAction,
    CommandSource,
    DebtPayload,
    DebtPaymentPayload,
    GoalAmountPayload,
    GoalPayload,
    MonthlyBudgetPayload,
    NamePayload,
    ParsedCommand,
    RecurringPayload,
    RulePayload,
    ShoppingItemPayload,
    SimulationPayload,
    SubCategoryPayload,
    TransactionPayload,
    WidgetPayload,
)
from prompt_finance.models.finance import (
    ActiveWidget,
    AiPersona,
    BudgetCreationStep,
    BudgetMethod,
    BuiltinCategory,
    Language,
    MonthlyReport,
    StructuredQuery,
    TransactionType,
)
from prompt_finance.parsing import extract_budget_tag, parse_command
from prompt_finance.planning.budget_rules import map_user_input_to_category_id
from prompt_finance.queries import AssistantQueryExecutor
from prompt_finance.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsStateStorage,
    LocalJsonStateStorage,
    StateStorageInterface,
    StorageError,
)
from prompt_finance.state import FinanceStore

logger = structlog.get_logger(__name__)

MAX_HISTORY = 50
MIN_AI_BUDGET_EXPENSES = 10


class CommandOutcome(BaseModel):
    """What the front end shows after a command."""

    success: bool
    message: str
    action: CommandAction = CommandAction.UNKNOWN
    widget: Optional[ActiveWidget] = None
    source: Optional[CommandSource] = None
    simulated: bool = False
    correlation_id: Optional[UUID] = None


class StatePersistence:
    """
    Saves the store through the configured backend.

    CRITICAL: Saving is skipped while a simulation is active; the simulation
    copy must never reach storage.
    """

    def __init__(
        self,
        store: FinanceStore,
        storage: Optional[StateStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        backend: str = "local",
    ):
        self._store = store
        self._storage = storage
        self._audit_logger = audit_logger
        self._backend = backend

    @property
    def enabled(self) -> bool:
        return self._storage is not None

    async def save(self, correlation_id: Optional[UUID] = None) -> bool:
        if self._storage is None or self._store.is_simulating:
            return False
        try:
            await self._storage.save_state(self._store.app_state)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_save_failed(self._backend, str(e), correlation_id)
            return False

        if self._audit_logger:
            await self._audit_logger.log_state_saved(
                len(self._store.app_state.conversations), self._backend, correlation_id
            )
        return True


# =============================================================================
# COMMAND FLOW
# =============================================================================

class CommandFlow:
    """
    Orchestrates one command-bar submission.

    Flow:
    1. Guard → blank input and an unfinished budget setup are refused
    2. Resolve → a user alias may stand for a longer command
    3. Parse → grammar first, AI fallback second
    4. Dispatch → one store mutation per action
    5. Save → unless a simulation is running
    """

    def __init__(
        self,
        store: FinanceStore,
        persistence: Optional[StatePersistence] = None,
        audit_logger: Optional[AuditLogger] = None,
        ai_parser: Optional[CommandParsingAgent] = None,
        category_agent: Optional[CategoryAgent] = None,
        language: Language = Language.EN,
    ):
        self._store = store
        self._persistence = persistence
        self._audit_logger = audit_logger
        self._ai_parser = ai_parser
        self._category_agent = category_agent
        self._language = language
        self._history: list[str] = []
        self._handlers: dict[CommandAction, Callable[..., Awaitable[CommandOutcome]]] = {
            CommandAction.ADD_TRANSACTION: self._add_transaction,
            CommandAction.ADD_SHOPPING_ITEM: self._add_shopping_item,
            CommandAction.CREATE_SHOPPING_LIST: self._create_shopping_list,
            CommandAction.ADD_BUDGET: self._add_budget,
            CommandAction.ADD_MONTHLY_BUDGET: self._add_monthly_budget,
            CommandAction.ADD_GOAL: self._add_goal,
            CommandAction.ADD_CONTRIBUTION: self._add_contribution,
            CommandAction.WITHDRAW_FROM_GOAL: self._withdraw_from_goal,
            CommandAction.ADD_RECURRING_TRANSACTION: self._add_recurring,
            CommandAction.SHOW_WIDGET: self._show_widget,
            CommandAction.SET_PLANNED_INCOME: self._set_planned_income,
            CommandAction.ADD_PLANNED_CONTRIBUTION: self._add_planned_contribution,
            CommandAction.SET_BUDGETING_RULE: self._set_budgeting_rule,
            CommandAction.ADD_SUB_CATEGORY: self._add_sub_category,
            CommandAction.START_BUDGET_CREATION: self._start_budget_creation,
            CommandAction.ADD_DEBT: self._add_debt,
            CommandAction.RECORD_DEBT_PAYMENT: self._record_debt_payment,
            CommandAction.ADD_ALIAS: self._add_alias,
            CommandAction.OPEN_HELP: self._open_help,
        }

    @property
    def history(self) -> list[str]:
        """Submitted commands, most recent last."""
        return list(self._history)

    async def execute(
        self,
        text: str,
        receipt_image: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CommandOutcome:
        if not text or not text.strip():
            return CommandOutcome(success=False, message="Type a command first.")
        if self._store.budget_creation.step != BudgetCreationStep.IDLE:
            return CommandOutcome(
                success=False,
                message="Finish or cancel the monthly budget setup first.",
            )

        correlation_id = correlation_id or create_correlation_id()
        text = text.strip()
        self._history = (self._history + [text])[-MAX_HISTORY:]
        if self._audit_logger:
            await self._audit_logger.log_command_received(text, correlation_id)

        try:
            command = await self._parse(text, correlation_id)
        except ValidationError as e:
            logger.warning("command_parse_invalid", text=text, error=str(e))
            command = ParsedCommand.unknown()

        if command.action == CommandAction.START_SIMULATION:
            outcome = await self._start_simulation(command, receipt_image, correlation_id)
        else:
            outcome = await self._run(command, receipt_image, correlation_id)

        if outcome.success and not self._store.is_simulating:
            self._store.refresh_coach_alerts(language=self._language)
            if self._persistence:
                await self._persistence.save(correlation_id)
        return outcome

    async def _parse(self, text: str, correlation_id: UUID) -> ParsedCommand:
        resolved = self._store.resolve_alias(text)
        command = await parse_command(
            resolved,
            language=self._language,
            ai_parser=self._ai_parser,
            today=date.today(),
        )
        if self._audit_logger:
            if command.source == CommandSource.AI:
                await self._audit_logger.log_ai_fallback(resolved, command.action.value, correlation_id)
            await self._audit_logger.log_command_parsed(
                command.action.value, command.source.value, correlation_id
            )
        return command

    async def _run(
        self,
        command: ParsedCommand,
        receipt_image: Optional[str],
        correlation_id: UUID,
    ) -> CommandOutcome:
        handler = self._handlers.get(command.action)
        if handler is None:
            outcome = self._fail(command, "Sorry, I didn't understand that command. Type 'help' to see what I can do.")
        else:
            try:
                outcome = await handler(command, receipt_image)
            except ValueError as e:
                outcome = self._fail(command, str(e))

        outcome = outcome.model_copy(update={
            "simulated": self._store.is_simulating,
            "correlation_id": correlation_id,
        })
        if self._audit_logger:
            if outcome.success:
                await self._audit_logger.log_command_executed(
                    command.action.value, outcome.message, outcome.simulated, correlation_id
                )
            else:
                await self._audit_logger.log_command_failed(
                    command.action.value, outcome.message, correlation_id
                )
        return outcome

    async def _start_simulation(
        self,
        command: ParsedCommand,
        receipt_image: Optional[str],
        correlation_id: UUID,
    ) -> CommandOutcome:
        if not self._store.start_simulation():
            return CommandOutcome(
                success=False,
                message="Simulation mode is already active.",
                action=command.action,
                simulated=True,
                correlation_id=correlation_id,
            )
        if self._audit_logger:
            await self._audit_logger.log_simulation(
                AuditEventType.SIMULATION_STARTED,
                self._store.active_conversation.id,
                correlation_id,
            )

        payload: SimulationPayload = command.payload
        if not payload.command:
            return CommandOutcome(
                success=True,
                message="Simulation mode started. Nothing will be saved until you commit.",
                action=command.action,
                simulated=True,
                correlation_id=correlation_id,
            )

        nested = await self._parse(payload.command, correlation_id)
        if nested.action == CommandAction.START_SIMULATION:
            return self._fail(nested, "Simulation mode is already active.").model_copy(
                update={"simulated": True, "correlation_id": correlation_id}
            )
        return await self._run(nested, receipt_image, correlation_id)

    async def commit_simulation(self, correlation_id: Optional[UUID] = None) -> bool:
        """Keep the simulated changes and save them."""
        conversation_id = self._store.active_conversation.id
        if not self._store.commit_simulation():
            return False
        if self._audit_logger:
            await self._audit_logger.log_simulation(
                AuditEventType.SIMULATION_COMMITTED, conversation_id, correlation_id
            )
        if self._persistence:
            await self._persistence.save(correlation_id)
        return True

    async def cancel_simulation(self, correlation_id: Optional[UUID] = None) -> bool:
        conversation_id = self._store.active_conversation.id
        if not self._store.cancel_simulation():
            return False
        if self._audit_logger:
            await self._audit_logger.log_simulation(
                AuditEventType.SIMULATION_CANCELLED, conversation_id, correlation_id
            )
        return True

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _ok(
        command: ParsedCommand,
        message: str,
        widget: Optional[ActiveWidget] = None,
    ) -> CommandOutcome:
        return CommandOutcome(
            success=True,
            message=message,
            action=command.action,
            widget=widget,
            source=command.source,
        )

    @staticmethod
    def _fail(command: ParsedCommand, message: str) -> CommandOutcome:
        return CommandOutcome(
            success=False,
            message=message,
            action=command.action,
            source=command.source,
        )

    @staticmethod
    def _require_positive(amount: Decimal) -> None:
        if amount <= 0:
            raise ValueError("The amount must be greater than zero.")

    def _resolve_category(self, text: str) -> Optional[str]:
        mapped = map_user_input_to_category_id(text)
        if mapped:
            return mapped
        wanted = text.strip().lower()
        for category in self._store.current.categories:
            if category.id.lower() == wanted or category.name.lower() == wanted:
                return category.id
        return None

    def _show(self, widget: ActiveWidget) -> ActiveWidget:
        self._store.set_active_widget(widget)
        return widget

    # =========================================================================
    # HANDLERS (one per action)
    # =========================================================================

    async def _add_transaction(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: TransactionPayload = command.payload
        label, tag = extract_budget_tag(p.label)
        label = label or tag or p.label

        budget = self._store.find_budget_by_tag(tag) if tag else None
        category = p.category
        if not category and self._category_agent is not None:
            category = await self._category_agent.suggest_category(label)
        if not category:
            category = (
                BuiltinCategory.INCOME.value if p.type == TransactionType.INCOME
                else BuiltinCategory.GENERAL.value
            )

        self._store.add_transaction(
            p.amount,
            label,
            p.type,
            category=category,
            date=p.date,
            budget_id=budget.id if budget else None,
            receipt_image=receipt_image,
        )

        kind = "Income" if p.type == TransactionType.INCOME else "Expense"
        message = f"{kind} added: {p.amount} {label}"
        if budget:
            message += f" (budget: {budget.name})"
        elif tag:
            message += f" (no budget named '{tag}')"
        return self._ok(command, message)

    async def _add_shopping_item(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: ShoppingItemPayload = command.payload
        self._store.add_shopping_item(p.text, p.planned_amount)
        return self._ok(command, f"Added to the list: {p.text}", self._show(ActiveWidget.SHOPPING_LIST))

    async def _create_shopping_list(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: NamePayload = command.payload
        self._store.create_shopping_list(p.name)
        return self._ok(command, f"Shopping list created: {p.name}", self._show(ActiveWidget.SHOPPING_LIST))

    async def _add_budget(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: BudgetPayload = command.payload
        self._require_positive(p.limit)
        self._store.add_budget(p.name, p.limit, type=p.type)
        return self._ok(command, f"Budget created: {p.name} ({p.limit})", self._show(ActiveWidget.BUDGETS))

    async def _add_monthly_budget(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: MonthlyBudgetPayload = command.payload
        self._require_positive(p.limit)
        # Unknown words are kept as the category id; spending typed with that category counts
        category = self._resolve_category(p.category) or p.category.lower()
        self._store.add_monthly_budget(category, p.limit)
        return self._ok(command, f"Monthly budget for {category}: {p.limit}", self._show(ActiveWidget.BUDGETS))

    async def _add_goal(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: GoalPayload = command.payload
        self._require_positive(p.target)
        self._store.add_goal(p.name, p.target, p.target_date)
        return self._ok(command, f"Goal created: {p.name} ({p.target})", self._show(ActiveWidget.GOALS))

    async def _add_contribution(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: GoalAmountPayload = command.payload
        self._require_positive(p.amount)
        goal = self._store.find_goal(p.goal_name)
        if goal is None:
            return self._fail(command, f"Goal '{p.goal_name}' not found.")
        self._store.contribute_to_goal(goal.id, p.amount)
        return self._ok(command, f"Saved {p.amount} for {goal.name}", self._show(ActiveWidget.GOALS))

    async def _withdraw_from_goal(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: GoalAmountPayload = command.payload
        self._require_positive(p.amount)
        goal = self._store.find_goal(p.goal_name)
        if goal is None:
            return self._fail(command, f"Goal '{p.goal_name}' not found.")
        self._store.withdraw_from_goal(goal.id, p.amount)
        return self._ok(command, f"Withdrew {p.amount} from {goal.name}", self._show(ActiveWidget.GOALS))

    async def _add_recurring(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: RecurringPayload = command.payload
        self._require_positive(p.amount)
        recurring = self._store.add_recurring(p.label, p.amount, p.frequency, type=p.type)
        return self._ok(
            command,
            f"Recurring {p.frequency.value} {p.type.value} added: {p.amount} {p.label} "
            f"(next on {recurring.next_due_date.isoformat()})",
            self._show(ActiveWidget.RECURRING),
        )

    async def _show_widget(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: WidgetPayload = command.payload
        self._show(p.widget)
        if p.widget == ActiveWidget.NONE:
            return self._ok(command, "View cleared.", p.widget)
        return self._ok(command, f"Showing {p.widget.value.lower().replace('_', ' ')}.", p.widget)

    async def _set_planned_income(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: AmountPayload = command.payload
        self._require_positive(p.amount)
        self._store.set_planned_income(p.amount)
        return self._ok(command, f"Planned income set to {p.amount}", self._show(ActiveWidget.PLANNING))

    async def _add_planned_contribution(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: GoalAmountPayload = command.payload
        self._require_positive(p.amount)
        goal = self._store.find_goal(p.goal_name)
        if goal is None:
            return self._fail(command, f"Goal '{p.goal_name}' not found.")
        self._store.add_planned_contribution(goal.id, p.amount)
        return self._ok(command, f"Planned {p.amount} for {goal.name}", self._show(ActiveWidget.PLANNING))

    async def _set_budgeting_rule(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: RulePayload = command.payload
        self._store.set_budgeting_rule(p.rule)
        return self._ok(
            command,
            f"Budgeting rule set to {p.rule.describe()}",
            self._show(ActiveWidget.RULE_BASED_BUDGET),
        )

    async def _add_sub_category(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: SubCategoryPayload = command.payload
        self._require_positive(p.amount)
        category = map_user_input_to_category_id(p.category)
        if category is None:
            return self._fail(command, f"Unknown category '{p.category}'.")
        self._store.add_sub_category(p.name, p.amount, category)
        return self._ok(command, f"Budget line added: {p.name} ({p.amount})", self._show(ActiveWidget.TABLE_BUDGET))

    async def _start_budget_creation(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        self._store.start_budget_creation()
        return self._ok(command, "Let's build your monthly budget. What is your monthly income?")

    async def _add_debt(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: DebtPayload = command.payload
        self._require_positive(p.total_amount)
        self._store.add_debt(p.type, p.person, p.total_amount, p.due_date)
        return self._ok(command, f"{p.type.value.capitalize()} recorded: {p.person} ({p.total_amount})", self._show(ActiveWidget.DEBT))

    async def _record_debt_payment(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: DebtPaymentPayload = command.payload
        self._require_positive(p.amount)
        debt = self._store.record_debt_payment(p.person, p.amount, p.type)
        if debt is None:
            return self._fail(command, f"No open debt or loan with {p.person}.")
        return self._ok(
            command,
            f"Recorded {p.amount} with {debt.person}; {debt.remaining} remaining",
            self._show(ActiveWidget.DEBT),
        )

    async def _add_alias(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        p: AliasPayload = command.payload
        self._store.add_alias(p.key, p.command)
        return self._ok(command, f"Alias '{p.key.lower()}' now runs: {p.command}")

    async def _open_help(self, command: ParsedCommand, receipt_image: Optional[str]) -> CommandOutcome:
        return self._ok(command, "Here is what you can type.")


# =============================================================================
# BUDGET CREATION FLOW
# =============================================================================

class BudgetCreationFlow:
    """
    The guided monthly budget setup.

    Flow:
    1. Start → ask for income
    2. Income → ask for a method
    3. Method → rule split, empty manual table or AI suggestion
    """

    def __init__(
        self,
        store: FinanceStore,
        persistence: Optional[StatePersistence] = None,
        audit_logger: Optional[AuditLogger] = None,
        budget_agent: Optional[BudgetSuggestionAgent] = None,
    ):
        self._store = store
        self._persistence = persistence
        self._audit_logger = audit_logger
        self._budget_agent = budget_agent

    @property
    def step(self) -> BudgetCreationStep:
        return self._store.budget_creation.step

    def start(self) -> None:
        self._store.start_budget_creation()

    def cancel(self) -> None:
        self._store.cancel_budget_creation()

    def set_income(self, income: Decimal) -> CommandOutcome:
        if income <= 0:
            return CommandOutcome(success=False, message="Income must be greater than zero.")
        self._store.set_budget_creation_income(income)
        return CommandOutcome(success=True, message="Now pick a budgeting method.")

    async def generate(
        self,
        method: BudgetMethod,
        correlation_id: Optional[UUID] = None,
    ) -> CommandOutcome:
        correlation_id = correlation_id or create_correlation_id()
        creation = self._store.budget_creation
        if creation.step != BudgetCreationStep.GET_METHOD or creation.income is None:
            return CommandOutcome(success=False, message="Enter your monthly income first.")
        income = creation.income

        suggested = None
        if method == BudgetMethod.AI:
            if self._budget_agent is None:
                return CommandOutcome(success=False, message="AI budget suggestions are not configured.")
            expenses = [
                t for t in self._store.current.transactions
                if t.type == TransactionType.EXPENSE
            ]
            if len(expenses) < MIN_AI_BUDGET_EXPENSES:
                return CommandOutcome(
                    success=False,
                    message=f"Record at least {MIN_AI_BUDGET_EXPENSES} expenses before asking for an AI budget.",
                )
            try:
                suggested = await self._budget_agent.suggest_budget(self._store.current.transactions, income)
            except BudgetSuggestionError as e:
                if self._audit_logger:
                    await self._audit_logger.log_external_service_error("gemini", str(e), correlation_id)
                return CommandOutcome(success=False, message=str(e))
            if not suggested:
                return CommandOutcome(success=False, message="The AI could not suggest any budget lines.")

        lines = self._store.apply_budget_method(method, suggested)

        if self._audit_logger:
            await self._audit_logger.log_budget_plan_generated(
                method.value, len(lines), str(income), correlation_id
            )
        if self._persistence:
            await self._persistence.save(correlation_id)
        return CommandOutcome(
            success=True,
            message=f"Monthly budget ready with {len(lines)} lines.",
            widget=self._store.current.active_widget,
            simulated=self._store.is_simulating,
            correlation_id=correlation_id,
        )


# =============================================================================
# REPORT, INSIGHTS AND RECEIPT FLOWS
# =============================================================================

class ReportFlow:
    """
    Builds a monthly report.

    The figures are aggregated deterministically; the narrator, when
    configured, only writes the text around them.
    """

    def __init__(
        self,
        store: FinanceStore,
        persistence: Optional[StatePersistence] = None,
        audit_logger: Optional[AuditLogger] = None,
        narrator: Optional[ReportNarrationAgent] = None,
        language: Language = Language.EN,
    ):
        self._store = store
        self._persistence = persistence
        self._audit_logger = audit_logger
        self._narrator = narrator
        self._language = language

    async def generate_report(
        self,
        month: int,
        year: int,
        correlation_id: Optional[UUID] = None,
    ) -> MonthlyReport:
        correlation_id = correlation_id or create_correlation_id()
        state = self._store.current
        report = build_monthly_report(
            month, year, state.transactions, state.sub_categories, self._language
        )
        if self._narrator is not None:
            report = await self._narrator.narrate(report, state.ai_persona, self._language)

        self._store.save_monthly_report(report)
        if self._audit_logger:
            await self._audit_logger.log_report_generated(
                report.id, report.executive_summary != FALLBACK_SUMMARY, correlation_id
            )
        if self._persistence:
            await self._persistence.save(correlation_id)
        return report


class InsightsFlow:
    """
    Answers coach questions.

    CRITICAL: The coach is handed the executor's spending_context result,
    never the raw state.
    """

    NOT_CONFIGURED = "The coach needs a Gemini API key to answer questions."

    def __init__(
        self,
        store: FinanceStore,
        executor: Optional[AssistantQueryExecutor] = None,
        agent: Optional[InsightsAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
        language: Language = Language.EN,
    ):
        self._store = store
        self._executor = executor or AssistantQueryExecutor(store)
        self._agent = agent
        self._audit_logger = audit_logger
        self._language = language

    async def ask(self, question: str, correlation_id: Optional[UUID] = None) -> str:
        correlation_id = correlation_id or create_correlation_id()
        if self._agent is None:
            return self.NOT_CONFIGURED

        self._store.refresh_profile()
        result = await self._executor.execute(StructuredQuery(query_type="spending_context"))
        if not result.success:
            if self._audit_logger:
                await self._audit_logger.log_error("query_failed", result.error_message or "", None, correlation_id)
            return InsightsAgent.UNAVAILABLE

        state = self._store.current
        answer = await self._agent.ask(
            question,
            result.aggregation_result or {},
            state.ai_persona,
            state.user_profile,
            len(state.transactions),
            self._language,
        )
        if self._audit_logger:
            await self._audit_logger.log_insight_requested(
                len(question),
                answer not in (InsightsAgent.UNAVAILABLE, InsightsAgent.NOT_ENOUGH_DATA),
                correlation_id,
            )
        return answer


class ReceiptFlow:
    """Turns a receipt photo into a command-bar line."""

    def __init__(
        self,
        scanner: Optional[ReceiptScanAgent] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._scanner = scanner
        self._audit_logger = audit_logger

    @property
    def enabled(self) -> bool:
        return self._scanner is not None

    @staticmethod
    def to_data_url(image_bytes: bytes, mime_type: str) -> str:
        """The form in which a receipt is attached to its transaction."""
        return f"data:{mime_type};base64,{base64.b64encode(image_bytes).decode('ascii')}"

    async def scan(
        self,
        image_bytes: bytes,
        mime_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[str]:
        """
        Returns:
            A line such as "25.50 Starbucks", or None if unreadable

        Raises:
            ReceiptValidationError: Unsupported format or oversized image
        """
        if self._scanner is None:
            return None
        correlation_id = correlation_id or create_correlation_id()
        line = await self._scanner.scan_receipt(image_bytes, mime_type)
        if self._audit_logger:
            await self._audit_logger.log_receipt_scanned(len(image_bytes), line is not None, correlation_id)
        return line


# =============================================================================
# WIRING
# =============================================================================

class AppComponents:
    """Everything the front end needs, built once per session."""

    def __init__(
        self,
        store: FinanceStore,
        storage: Optional[StateStorageInterface],
        audit_logger: AuditLogger,
        persistence: StatePersistence,
        command_flow: CommandFlow,
        budget_flow: BudgetCreationFlow,
        report_flow: ReportFlow,
        insights_flow: InsightsFlow,
        receipt_flow: ReceiptFlow,
    ):
        self.store = store
        self.storage = storage
        self.audit_logger = audit_logger
        self.persistence = persistence
        self.command_flow = command_flow
        self.budget_flow = budget_flow
        self.report_flow = report_flow
        self.insights_flow = insights_flow
        self.receipt_flow = receipt_flow

    async def load_state(self, now: Optional[datetime] = None) -> bool:
        """
        Restore persisted state, then book recurring items that came due.

        Returns True when stored state was found and loaded.
        """
        loaded = False
        if self.storage is not None:
            try:
                state = await self.storage.load_state()
            except StorageError as e:
                await self.audit_logger.log_error("state_load_failed", str(e))
                state = None
            if state is not None:
                self.store.load(state)
                loaded = True

        if self.store.process_due_recurring(now):
            await self.persistence.save()
        return loaded


def create_app_components(use_storage: bool = True) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to persist state and audit events.
                    Set to False for testing without storage.

    Gemini-backed agents are None when Gemini is not configured; every flow
    then falls back to its deterministic behaviour.
    """
    settings = get_settings()
    app_settings = settings.app
    configure_logging(app_settings.log_level)
    language = Language(app_settings.default_language)

    store = FinanceStore(default_persona=AiPersona(app_settings.default_persona))

    storage: Optional[StateStorageInterface] = None
    audit_storage: Optional[AuditStorageInterface] = None
    backend = app_settings.storage_backend
    if use_storage:
        if backend == "google_sheets":
            try:
                sheets_client = GoogleSheetsClient()
                storage = GoogleSheetsStateStorage(sheets_client)
                audit_storage = GoogleSheetsAuditStorage(sheets_client)
            except Exception as e:
                # Sheets not configured - fall back to the local file
                logger.warning("google_sheets_not_configured", error=str(e))
                backend = "local"
        if storage is None:
            storage = LocalJsonStateStorage(app_settings.state_file_path)

    audit_logger = AuditLogger(audit_storage)

    ai_parser = category_agent = budget_agent = narrator = coach = scanner = None
    try:
        gemini = settings.gemini
        ai_parser = CommandParsingAgent(settings=gemini)
        category_agent = CategoryAgent(settings=gemini)
        budget_agent = BudgetSuggestionAgent(settings=gemini)
        narrator = ReportNarrationAgent(settings=gemini)
        coach = InsightsAgent(settings=gemini)
        scanner = ReceiptScanAgent(
            settings=gemini,
            supported_formats=app_settings.supported_formats_list,
            max_size_bytes=app_settings.max_receipt_size_bytes,
        )
    except Exception as e:
        logger.info("gemini_not_configured", error=str(e))
        ai_parser = category_agent = budget_agent = narrator = coach = scanner = None

    persistence = StatePersistence(store, storage, audit_logger, backend)

    return AppComponents(
        store=store,
        storage=storage,
        audit_logger=audit_logger,
        persistence=persistence,
        command_flow=CommandFlow(
            store,
            persistence=persistence,
            audit_logger=audit_logger,
            ai_parser=ai_parser,
            category_agent=category_agent,
            language=language,
        ),
        budget_flow=BudgetCreationFlow(
            store,
            persistence=persistence,
            audit_logger=audit_logger,
            budget_agent=budget_agent,
        ),
        report_flow=ReportFlow(
            store,
            persistence=persistence,
            audit_logger=audit_logger,
            narrator=narrator,
            language=language,
        ),
        insights_flow=InsightsFlow(
            store,
            agent=coach,
            audit_logger=audit_logger,
            language=language,
        ),
        receipt_flow=ReceiptFlow(scanner=scanner, audit_logger=audit_logger),
    )
