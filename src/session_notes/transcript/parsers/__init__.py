"""Parsers for different coding-agent transcript formats."""

from .base import Parser, ParserRegistry, iter_json_lines, parse_block, parse_blocks
from .claude_code import ClaudeCodeParser
from .codex import CodexParser

__all__ = [
    "ClaudeCodeParser",
    "CodexParser",
    "Parser",
    "ParserRegistry",
    "default_registry",
    "iter_json_lines",
    "parse_block",
    "parse_blocks",
]


def default_registry() -> ParserRegistry:
    """Registry with every shipped parser."""
    return ParserRegistry([ClaudeCodeParser(), CodexParser()])
