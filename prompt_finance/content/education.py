"""
Financial Education Content

Short lessons, a glossary and learning paths. Each lesson ends with a
command the user can run to put it into practice. Recommendations follow the
educational level inferred by the profile scorer.
"""

from typing import Optional

from pydantic import BaseModel, Field

from prompt_finance.models.finance import EducationalLevel


class EducationalResource(BaseModel):
    id: str
    title: str
    description: str
    category: str = Field(..., pattern="^(budgeting|saving|debt|events|psychology)$")
    level: EducationalLevel
    read_time_minutes: int = Field(..., ge=1)
    action_command: Optional[str] = None


class GlossaryTerm(BaseModel):
    id: str
    term: str
    definition: str


class LearningPath(BaseModel):
    id: str
    title: str
    description: str
    resource_ids: list[str]


RESOURCES: list[EducationalResource] = [
    EducationalResource(
        id="basics-budget-101",
        title="Budgeting 101",
        description="Give every unit of income a job before the month starts.",
        category="budgeting",
        level=EducationalLevel.BEGINNER,
        read_time_minutes=3,
        action_command="monthly budget",
    ),
    EducationalResource(
        id="basics-emergency-fund",
        title="The emergency fund",
        description="Why three months of expenses set aside changes everything.",
        category="saving",
        level=EducationalLevel.BEGINNER,
        read_time_minutes=4,
        action_command='goal "Emergency Fund" 1000',
    ),
    EducationalResource(
        id="debt-snowball",
        title="The debt snowball",
        description="Pay the smallest balance first to build momentum.",
        category="debt",
        level=EducationalLevel.INTERMEDIATE,
        read_time_minutes=5,
        action_command="debt",
    ),
    EducationalResource(
        id="events-wedding",
        title="Budgeting a big event",
        description="Use a dedicated event budget and tag every related expense.",
        category="events",
        level=EducationalLevel.INTERMEDIATE,
        read_time_minutes=6,
        action_command="budget Wedding 15000",
    ),
    EducationalResource(
        id="psychology-impulse",
        title="Taming impulse buys",
        description="A simple split between needs and wants limits regret purchases.",
        category="psychology",
        level=EducationalLevel.BEGINNER,
        read_time_minutes=3,
        action_command="set rule 50/30/20",
    ),
]

GLOSSARY: list[GlossaryTerm] = [
    GlossaryTerm(id="apr", term="APR", definition="Annual percentage rate: the yearly cost of borrowing, fees included."),
    GlossaryTerm(id="asset", term="Asset", definition="Something you own that holds or produces value."),
    GlossaryTerm(id="compound", term="Compound interest", definition="Interest earned on previously earned interest."),
    GlossaryTerm(id="inflation", term="Inflation", definition="The general rise in prices that erodes purchasing power."),
    GlossaryTerm(id="liability", term="Liability", definition="Money you owe to someone else."),
    GlossaryTerm(id="networth", term="Net worth", definition="Assets minus liabilities."),
    GlossaryTerm(id="zerobased", term="Zero-based budget", definition="A plan where income minus planned spending and saving equals zero."),
]

PATHS: list[LearningPath] = [
    LearningPath(
        id="path-stability",
        title="Financial stability",
        description="Build the basics: a budget, a cushion and calmer spending.",
        resource_ids=["basics-budget-101", "basics-emergency-fund", "psychology-impulse"],
    ),
    LearningPath(
        id="path-debt-free",
        title="Debt free",
        description="Plan your way out of debt.",
        resource_ids=["basics-budget-101", "debt-snowball"],
    ),
]

_LEVEL_ORDER = [EducationalLevel.BEGINNER, EducationalLevel.INTERMEDIATE, EducationalLevel.ADVANCED]


def get_resource(resource_id: str) -> Optional[EducationalResource]:
    return next((r for r in RESOURCES if r.id == resource_id), None)


def get_path(path_id: str) -> Optional[LearningPath]:
    return next((p for p in PATHS if p.id == path_id), None)


def recommend_resources(
    level: EducationalLevel,
    read_ids: Optional[list[str]] = None,
) -> list[EducationalResource]:
    """Unread lessons at or below the user's level, easiest first."""
    read = set(read_ids or [])
    ceiling = _LEVEL_ORDER.index(level)
    eligible = [
        r for r in RESOURCES
        if r.id not in read and _LEVEL_ORDER.index(r.level) <= ceiling
    ]
    return sorted(eligible, key=lambda r: _LEVEL_ORDER.index(r.level))


def path_progress(path_id: str, read_ids: list[str]) -> float:
    """Share of a path's lessons already read (0 for an unknown path)."""
    path = get_path(path_id)
    if path is None or not path.resource_ids:
        return 0.0
    done = sum(1 for rid in path.resource_ids if rid in set(read_ids))
    return done / len(path.resource_ids)
