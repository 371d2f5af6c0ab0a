"""Base parser interface and registry."""

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from pathlib import Path

from session_notes.errors import UnknownAgentError
from session_notes.models import (
    ContentBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Transcript,
    TranscriptEntry,
)

__all__ = ["Parser", "ParserRegistry", "Transcript", "TranscriptEntry", "iter_json_lines", "parse_block", "parse_blocks"]


def iter_json_lines(data: bytes) -> Iterator[tuple[int, dict]]:
    """Yield (line number, object) for each JSON object line.

    Blank and malformed lines are skipped.
    """
    for lineno, line in enumerate(data.splitlines(), start=1):
        line_text = line.decode("utf-8", errors="replace").strip()
        if not line_text:
            continue
        try:
            entry = json.loads(line_text)
        except json.JSONDecodeError:
            continue
        if isinstance(entry, dict):
            yield lineno, entry


def _result_text(content: object) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
            elif isinstance(item, str):
                parts.append(item)
        return "\n".join(parts)
    return ""


def parse_block(raw: object) -> ContentBlock | None:
    """Convert one raw content block into its typed variant.

    The "type" key selects the variant; unknown kinds return None.
    """
    if isinstance(raw, str):
        return TextBlock(text=raw)
    if not isinstance(raw, dict):
        return None

    match raw.get("type"):
        case "text" | "input_text" | "output_text":
            return TextBlock(text=str(raw.get("text", "")))
        case "thinking":
            return ThinkingBlock(thinking=str(raw.get("thinking", "")))
        case "tool_use":
            tool_input = raw.get("input")
            return ToolUseBlock(
                id=str(raw.get("id", "")),
                name=str(raw.get("name", "unknown")),
                input=tool_input if isinstance(tool_input, dict) else {},
            )
        case "tool_result":
            return ToolResultBlock(
                tool_use_id=str(raw.get("tool_use_id", "")),
                content=_result_text(raw.get("content")),
                is_error=bool(raw.get("is_error", False)),
            )
        case _:
            return None


def parse_blocks(content: object) -> tuple[ContentBlock, ...]:
    """Parse a message content field: a string or a list of blocks."""
    if content is None:
        return ()
    if isinstance(content, str):
        return (TextBlock(text=content),) if content else ()
    if isinstance(content, list):
        blocks = (parse_block(item) for item in content)
        return tuple(b for b in blocks if b is not None)
    return ()


class Parser(ABC):
    """Base class for transcript parsers.

    Subclasses set ``agent_name`` and implement ``parse_bytes()`` to turn an
    agent's native log into ordered entries with stable identifiers.
    """

    agent_name: str

    @abstractmethod
    def parse_bytes(self, data: bytes) -> Transcript:
        """Parse raw transcript bytes."""

    def parse_file(self, path: Path) -> Transcript:
        return self.parse_bytes(path.read_bytes())

    def session_path(self, project_path: Path, session_id: str) -> Path | None:
        """Where the agent looks for session_id's transcript when resuming.

        None when the agent's session store is unknown.
        """
        return None


class ParserRegistry:
    """Parsers by agent name, built from an explicit list at start-up."""

    def __init__(self, parsers: Iterable[Parser] = ()) -> None:
        self._parsers: dict[str, Parser] = {}
        for parser in parsers:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        self._parsers[parser.agent_name] = parser

    def get(self, agent_name: str) -> Parser:
        """Get parser by agent name.

        Raises:
            UnknownAgentError: If no parser is registered under that name
        """
        parser = self._parsers.get(agent_name)
        if parser is None:
            raise UnknownAgentError(agent_name, self.names())
        return parser

    def names(self) -> list[str]:
        return sorted(self._parsers)

    def __contains__(self, agent_name: str) -> bool:
        return agent_name in self._parsers
