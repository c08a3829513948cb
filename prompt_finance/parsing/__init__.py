"""Command-bar parsing: the bilingual grammar and the AI fallback hook."""

from prompt_finance.parsing.parser import (
    AiCommandParser,
    extract_budget_tag,
    parse_command,
    parse_with_grammar,
    safe_eval_amount,
)

__all__ = [
    "AiCommandParser",
    "extract_budget_tag",
    "parse_command",
    "parse_with_grammar",
    "safe_eval_amount",
]
