"""
Streamlit Frontend for Prompt Finance

Everything is driven from one command bar: the user types a short command
("12.50 lunch", "budget Wedding 15000", "simulate 300 new phone") and the
view below it follows the command.

DESIGN PRINCIPLES:
1. One input, immediate feedback
2. Clear error messages in simple language
3. Simulations are visibly marked and must be committed or cancelled
4. No hidden actions
"""

import asyncio
from datetime import datetime
from decimal import Decimal, InvalidOperation

import streamlit as st

from prompt_finance.agents import ReceiptValidationError
from prompt_finance.audit import create_correlation_id
from prompt_finance.config import validate_all_settings
from prompt_finance.content import COMMANDS, GLOSSARY, recommend_resources, suggest_commands
from prompt_finance.models.finance import ActiveWidget, BudgetCreationStep, BudgetMethod
from prompt_finance.orchestrator import AppComponents, create_app_components
from prompt_finance.planning import project_balance
from prompt_finance.planning.budget_rules import rule_bucket_status, sub_category_progress


# Page configuration
st.set_page_config(
    page_title="Prompt Finance",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .simulation-box {
        padding: 12px 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    try:
        components = create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize storage: {e}")
        components = create_app_components(use_storage=False)
    run_async(components.load_state())
    return components


def money(amount) -> str:
    if get_components().store.current.is_privacy_mode:
        return "•••"
    return f"{Decimal(amount):,.2f}"


def main():
    """Main application entry point."""
    components = get_components()

    render_sidebar(components)

    if components.store.is_simulating:
        render_simulation_banner(components)

    creation = components.store.budget_creation
    if creation.step != BudgetCreationStep.IDLE:
        render_budget_creation(components)
        return

    render_command_bar(components)
    render_alerts(components)
    render_widget(components)


def render_sidebar(components: AppComponents):
    store = components.store
    st.sidebar.title("💰 Prompt Finance")
    st.sidebar.markdown(f'<div class="big-number">{money(store.balance)}</div>', unsafe_allow_html=True)
    st.sidebar.markdown("---")

    conversations = store.app_state.conversations
    ids = [c.id for c in conversations]
    selected = st.sidebar.selectbox(
        "Budget",
        options=ids,
        index=ids.index(store.active_conversation.id),
        format_func=lambda cid: next(c.name for c in conversations if c.id == cid),
    )
    if selected != store.active_conversation.id:
        store.switch_conversation(selected)
        st.rerun()

    col1, col2 = st.sidebar.columns(2)
    with col1:
        if st.button("➕ New"):
            store.create_conversation()
            run_async(components.persistence.save())
            st.rerun()
    with col2:
        if st.button("📄 Duplicate"):
            store.duplicate_conversation(store.active_conversation.id)
            run_async(components.persistence.save())
            st.rerun()

    privacy = st.sidebar.toggle("Privacy mode", value=store.current.is_privacy_mode)
    if privacy != store.current.is_privacy_mode:
        store.set_privacy_mode(privacy)
        st.rerun()

    st.sidebar.markdown("---")
    with st.sidebar.expander("⚙️ Connection Status"):
        status = validate_all_settings()
        for name, key in [("Google Sheets (Storage)", "google_sheets"), ("Gemini (AI)", "gemini")]:
            if status.get(key, False):
                st.success(f"✅ {name}")
            else:
                st.warning(f"⚠️ {name} - not configured")

    st.sidebar.download_button(
        "⬇️ Export JSON",
        data=store.export_data(),
        file_name="prompt_finance.json",
        mime="application/json",
    )
    st.sidebar.download_button(
        "⬇️ Export CSV",
        data=store.export_csv(),
        file_name="transactions.csv",
        mime="text/csv",
    )


def render_simulation_banner(components: AppComponents):
    st.markdown("""
    <div class="simulation-box">
        <h4>🧪 Simulation mode</h4>
        <p>Nothing is saved until you commit.</p>
    </div>
    """, unsafe_allow_html=True)
    col1, col2 = st.columns(2)
    with col1:
        if st.button("✅ Commit simulation", type="primary"):
            run_async(components.command_flow.commit_simulation(create_correlation_id()))
            st.rerun()
    with col2:
        if st.button("❌ Cancel simulation"):
            run_async(components.command_flow.cancel_simulation(create_correlation_id()))
            st.rerun()


def render_command_bar(components: AppComponents):
    st.title("Prompt Finance")

    receipt = None
    if components.receipt_flow.enabled:
        uploaded = st.file_uploader("Scan a receipt", type=["jpg", "jpeg", "png", "webp"])
        if uploaded is not None and st.button("🔍 Read receipt"):
            image_bytes = uploaded.read()
            try:
                line = run_async(components.receipt_flow.scan(image_bytes, uploaded.type))
            except ReceiptValidationError as e:
                st.error(str(e))
                line = None
            if line:
                st.session_state.command_text = line
                st.session_state.receipt_image = components.receipt_flow.to_data_url(image_bytes, uploaded.type)
            else:
                st.warning("The receipt could not be read. Type the amount instead.")
        receipt = st.session_state.get("receipt_image")

    with st.form("command_bar", clear_on_submit=True):
        text = st.text_input(
            "Command",
            value=st.session_state.get("command_text", ""),
            placeholder="e.g. 12.50 lunch, +2500 salary, budgets, help",
        )
        submitted = st.form_submit_button("Run", type="primary")

    if text and not submitted:
        for suggestion in suggest_commands(text)[:3]:
            st.caption(f"{suggestion.name}: `{suggestion.example}`")

    if submitted and text:
        outcome = run_async(components.command_flow.execute(text, receipt_image=receipt))
        st.session_state.command_text = ""
        st.session_state.receipt_image = None
        st.session_state.last_outcome = outcome

    outcome = st.session_state.get("last_outcome")
    if outcome is not None:
        if outcome.success:
            st.success(outcome.message)
        else:
            st.error(outcome.message)
        if outcome.action.value == "OPEN_HELP":
            render_help()


def render_help():
    st.subheader("What you can type")
    st.dataframe(
        [{"Command": c.name, "Example": c.example, "What it does": c.description} for c in COMMANDS],
        hide_index=True,
    )


def render_alerts(components: AppComponents):
    store = components.store
    for alert in list(store.current.coach_alerts):
        col1, col2 = st.columns([6, 1])
        with col1:
            if alert.type.value == "warning":
                st.warning(f"**{alert.title}** {alert.message}")
            else:
                st.info(f"**{alert.title}** {alert.message}")
        with col2:
            if st.button("Dismiss", key=f"dismiss-{alert.id}"):
                store.dismiss_alert(alert.id)
                run_async(components.persistence.save())
                st.rerun()


def render_budget_creation(components: AppComponents):
    """The guided monthly budget setup."""
    flow = components.budget_flow
    st.title("📋 Monthly budget")

    if flow.step == BudgetCreationStep.GET_INCOME:
        income = st.text_input("What is your monthly income?")
        if st.button("Next", type="primary"):
            try:
                outcome = flow.set_income(Decimal(income))
            except InvalidOperation:
                st.error("Please enter a number.")
                return
            if not outcome.success:
                st.error(outcome.message)
                return
            st.rerun()
    else:
        method = st.radio(
            "How should the budget be split?",
            options=list(BudgetMethod),
            format_func=lambda m: m.value.upper() if m == BudgetMethod.AI else m.value.capitalize(),
        )
        if st.button("Create budget", type="primary"):
            with st.spinner("Preparing your budget..."):
                outcome = run_async(flow.generate(method, create_correlation_id()))
            st.session_state.last_outcome = outcome
            if outcome.success:
                st.rerun()
            st.error(outcome.message)

    if st.button("Cancel"):
        flow.cancel()
        st.rerun()


def render_widget(components: AppComponents):
    """Show the view the last command asked for."""
    store = components.store
    state = store.current
    widget = state.active_widget
    now = datetime.now()

    if widget == ActiveWidget.NONE:
        st.subheader("Recent transactions")
        st.dataframe(
            [
                {
                    "Date": t.date.strftime("%Y-%m-%d"),
                    "Label": t.label,
                    "Category": t.category,
                    "Amount": money(t.amount if t.type.value == "income" else -t.amount),
                }
                for t in state.transactions[:20]
            ],
            hide_index=True,
        )
    elif widget == ActiveWidget.SHOPPING_LIST:
        shopping_list = store.active_shopping_list()
        if shopping_list is None:
            st.info("No shopping list yet. Type `new list Groceries` to start one.")
            return
        st.subheader(f"🛒 {shopping_list.name}")
        for item in shopping_list.items:
            col1, col2 = st.columns([5, 1])
            with col1:
                st.write(f"{item.text} ({money(item.planned_amount)}) - {item.status.value}")
            with col2:
                if item.status.value == "pending" and st.button("Bought", key=f"buy-{item.id}"):
                    store.purchase_shopping_item(shopping_list.id, item.id)
                    run_async(components.persistence.save())
                    st.rerun()
    elif widget == ActiveWidget.BUDGETS:
        st.subheader("Budgets")
        for budget in state.budgets:
            ratio = float(budget.current_spent / budget.limit) if budget.limit else 0.0
            st.write(f"**{budget.name}**: {money(budget.current_spent)} / {money(budget.limit)}")
            st.progress(min(ratio, 1.0))
    elif widget == ActiveWidget.GOALS:
        st.subheader("Goals")
        for goal in state.goals:
            st.write(f"**{goal.name}**: {money(goal.current_saved)} / {money(goal.target)}")
            st.progress(goal.progress)
    elif widget == ActiveWidget.GRAPH:
        totals: dict[str, float] = {}
        for t in state.transactions:
            if t.type.value == "expense":
                totals[t.category] = totals.get(t.category, 0.0) + float(t.amount)
        st.bar_chart(totals)
    elif widget == ActiveWidget.FORECAST:
        months = st.radio("Months", options=[3, 6, 12], index=1, horizontal=True)
        points = project_balance(state.balance, state.transactions, state.recurring_transactions, months, now)
        st.line_chart(
            {
                "realistic": [float(p.realistic) for p in points],
                "optimistic": [float(p.optimistic) for p in points],
                "conservative": [float(p.conservative) for p in points],
            }
        )
    elif widget == ActiveWidget.RECURRING:
        st.dataframe([r.model_dump(mode="json") for r in state.recurring_transactions], hide_index=True)
    elif widget == ActiveWidget.PLANNING:
        st.json(state.monthly_plan.model_dump(mode="json"))
    elif widget in (ActiveWidget.RULE_BASED_BUDGET, ActiveWidget.TABLE_BUDGET):
        progress = sub_category_progress(state.sub_categories, state.transactions, state.categories, now)
        st.dataframe(
            [
                {
                    "Line": p.sub_category.name,
                    "Bucket": p.bucket.value,
                    "Planned": money(p.sub_category.planned_amount),
                    "Actual": money(p.actual),
                    "Status": p.status,
                }
                for p in progress
            ],
            hide_index=True,
        )
        if state.budgeting_rule is not None:
            for status in rule_bucket_status(state.transactions, state.budgeting_rule, now):
                st.write(f"{status.bucket.value.capitalize()}: {money(status.spent)} / {money(status.target)}")
                st.progress(min(status.ratio, 1.0))
        if st.button("Apply to monthly budgets"):
            store.apply_plan_to_monthly_budgets()
            run_async(components.persistence.save())
            st.rerun()
    elif widget == ActiveWidget.DEBT:
        for debt, installment in store.installments_over_capacity():
            st.warning(
                f"{debt.person}: the {installment.due_date:%d/%m/%Y} installment of "
                f"{money(installment.amount)} is above what your monthly plan can safely repay."
            )
        for debt in state.debts:
            st.write(f"**{debt.person}** ({debt.type.value}): {money(debt.paid_amount)} / {money(debt.total_amount)}")
            if debt.installments:
                st.dataframe([i.model_dump(mode="json") for i in debt.installments], hide_index=True)
    elif widget == ActiveWidget.REPORTS:
        if st.button("Generate this month's report"):
            with st.spinner("Writing your report..."):
                run_async(components.report_flow.generate_report(now.month, now.year, create_correlation_id()))
        for report in state.monthly_reports:
            with st.expander(f"{report.month} {report.year}"):
                st.write(report.executive_summary)
                st.write(report.behavioral_analysis)
                for tip in report.actionable_tips:
                    st.write(f"- {tip}")
                st.dataframe([b.model_dump(mode="json") for b in report.category_breakdown], hide_index=True)
    elif widget == ActiveWidget.INSIGHTS:
        question = st.text_input("Ask your coach", placeholder="How can I save more this month?")
        if st.button("Ask") and question:
            with st.spinner("Thinking..."):
                st.info(run_async(components.insights_flow.ask(question, create_correlation_id())))
    elif widget == ActiveWidget.EDUCATION:
        level = state.user_profile.inferred.educational_level
        for resource in recommend_resources(level, state.education_state.read_resource_ids):
            with st.expander(f"{resource.title} ({resource.read_time_minutes} min)"):
                st.write(resource.description)
                if st.button("Mark as read", key=f"read-{resource.id}"):
                    store.mark_resource_read(resource.id)
                    run_async(components.persistence.save())
                    st.rerun()
        with st.expander("Glossary"):
            for term in GLOSSARY:
                st.markdown(f"**{term.term}**: {term.definition}")
    elif widget == ActiveWidget.PROFILE:
        store.refresh_profile()
        st.json(store.current.user_profile.model_dump(mode="json"))


if __name__ == "__main__":
    main()
