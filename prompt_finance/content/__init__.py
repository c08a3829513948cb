"""Static content: the command catalog and education material."""

from prompt_finance.content.commands import COMMANDS, CommandHelp, suggest_commands
from prompt_finance.content.education import (
    GLOSSARY,
    PATHS,
    RESOURCES,
    recommend_resources,
)

__all__ = [
    "COMMANDS",
    "CommandHelp",
    "GLOSSARY",
    "PATHS",
    "RESOURCES",
    "recommend_resources",
    "suggest_commands",
]
