"""
Command Catalog

What the command bar can do, with an example for each. It powers the help
listing and the suggestions shown while the user types.
"""

from pydantic import BaseModel, Field


class CommandHelp(BaseModel):
    name: str
    description: str
    example: str
    keywords: list[str] = Field(default_factory=list)
    is_actionable: bool = Field(
        ...,
        description="True when the example can be run as-is"
    )
    is_featured: bool = False


COMMANDS: list[CommandHelp] = [
    CommandHelp(
        name="Add an expense",
        description="Record money spent. Arithmetic and #budget tags are allowed.",
        example="12.50 lunch #trip",
        keywords=["expense", "add", "transaction", "dépense", "ajouter"],
        is_actionable=False,
        is_featured=True,
    ),
    CommandHelp(
        name="Add income",
        description="Record money received.",
        example="+2500 salary",
        keywords=["income", "add", "transaction", "revenu", "ajouter"],
        is_actionable=False,
    ),
    CommandHelp(
        name="Shopping list",
        description="Show the active shopping list.",
        example="list",
        keywords=["shopping", "list", "courses", "liste"],
        is_actionable=True,
        is_featured=True,
    ),
    CommandHelp(
        name="Budgets",
        description="Show budgets and how much of each is spent.",
        example="budgets",
        keywords=["budgets"],
        is_actionable=True,
        is_featured=True,
    ),
    CommandHelp(
        name="Goals",
        description="Show savings goals and their progress.",
        example="goals",
        keywords=["goals", "objectifs"],
        is_actionable=True,
        is_featured=True,
    ),
    CommandHelp(
        name="Spending graph",
        description="Break spending down by category.",
        example="graph",
        keywords=["graph", "chart", "breakdown", "graphique"],
        is_actionable=True,
    ),
    CommandHelp(
        name="Forecast",
        description="Project the balance over the coming months.",
        example="forecast",
        keywords=["forecast", "projection", "future", "avenir", "prévision"],
        is_actionable=True,
        is_featured=True,
    ),
    CommandHelp(
        name="Insights",
        description="Ask the coach about your spending.",
        example="insights",
        keywords=["insights", "analyze", "aperçus", "analyser"],
        is_actionable=True,
    ),
    CommandHelp(
        name="Monthly reports",
        description="Generate and browse month-end reports.",
        example="reports",
        keywords=["reports", "monthly", "rapports", "mensuel"],
        is_actionable=True,
    ),
    CommandHelp(
        name="Learn",
        description="Short lessons matched to your level.",
        example="learn",
        keywords=["learn", "education", "apprendre", "cours"],
        is_actionable=True,
    ),
    CommandHelp(
        name="Profile",
        description="Your maturity, discipline and stability scores.",
        example="profile",
        keywords=["profile", "profil", "stats", "score"],
        is_actionable=True,
    ),
    CommandHelp(
        name="Recurring",
        description="Subscriptions and other repeating transactions.",
        example="recurring",
        keywords=["recurring", "subscriptions", "récurrents", "abonnements"],
        is_actionable=True,
    ),
    CommandHelp(
        name="Planning",
        description="Planned income and contributions for the month.",
        example="plan",
        keywords=["plan", "planning", "planification"],
        is_actionable=True,
    ),
    CommandHelp(
        name="Debts",
        description="Money you owe and money you lent.",
        example="debt",
        keywords=["debt", "loan", "dette", "prêt"],
        is_actionable=True,
    ),
    CommandHelp(
        name="Create a budget",
        description="Open an event budget that #tagged expenses feed.",
        example="budget Wedding 15000",
        keywords=["create", "budget", "créer"],
        is_actionable=False,
    ),
    CommandHelp(
        name="Create a goal",
        description="Start saving towards a target, optionally by a date.",
        example='goal "New car" 8000 by 12/2026',
        keywords=["create", "goal", "objectif", "créer"],
        is_actionable=False,
    ),
    CommandHelp(
        name="Monthly budget",
        description="Build this month's plan from your income.",
        example="monthly budget",
        keywords=["monthly", "budget", "mensuel"],
        is_actionable=True,
    ),
    CommandHelp(
        name="Help",
        description="List every command.",
        example="help",
        keywords=["help", "aide", "commandes", "commands", "?"],
        is_actionable=True,
    ),
]


def featured_commands() -> list[CommandHelp]:
    return [command for command in COMMANDS if command.is_featured]


def suggest_commands(text: str) -> list[CommandHelp]:
    """
    Commands whose name or one of whose keywords contains the typed text.
    Empty input gets the featured commands.
    """
    query = text.strip().lower()
    if not query:
        return featured_commands()
    return [
        command for command in COMMANDS
        if query in command.name.lower()
        or any(query in keyword for keyword in command.keywords)
    ]
