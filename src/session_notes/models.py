"""Canonical data models."""

from dataclasses import dataclass, field
from typing import Literal, Union


@dataclass(frozen=True)
class TextBlock:
    text: str
    type: Literal["text"] = "text"


@dataclass(frozen=True)
class ThinkingBlock:
    thinking: str
    type: Literal["thinking"] = "thinking"


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: dict = field(default_factory=dict)
    type: Literal["tool_use"] = "tool_use"


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False
    type: Literal["tool_result"] = "tool_result"


ContentBlock = Union[TextBlock, ThinkingBlock, ToolUseBlock, ToolResultBlock]


def block_text(block: ContentBlock) -> str:
    """Render a content block as a single line of display text."""
    match block:
        case TextBlock(text=text):
            return text
        case ThinkingBlock(thinking=thinking):
            return f"[Thinking: {thinking}]"
        case ToolUseBlock(name=name):
            return f"[Tool: {name}]"
        case ToolResultBlock(content=content, is_error=is_error):
            label = "Tool Error" if is_error else "Tool Result"
            return f"[{label}: {content[:200]}]"


@dataclass(frozen=True)
class TranscriptEntry:
    """A single ordered entry of a parsed transcript."""

    id: str  # Stable identifier within the transcript
    role: str  # user, assistant, system, tool
    timestamp: str = ""
    blocks: tuple[ContentBlock, ...] = ()

    @property
    def text(self) -> str:
        return "\n".join(block_text(b) for b in self.blocks)


@dataclass
class Transcript:
    """A parsed conversation transcript."""

    entries: list[TranscriptEntry] = field(default_factory=list)
    model: str = ""
    turns: int = 0  # user prompts, excluding tool results
    usage: dict[str, int] = field(default_factory=dict)  # summed token counts

    @property
    def message_count(self) -> int:
        return len(self.entries)

    def last_entry_id(self) -> str | None:
        """Identifier of the last entry, or None for an empty transcript."""
        if not self.entries:
            return None
        return self.entries[-1].id

    def find_entry_index(self, entry_id: str) -> int:
        for i, entry in enumerate(self.entries):
            if entry.id == entry_id:
                return i
        return -1

    def entries_since(self, entry_id: str | None) -> list[TranscriptEntry]:
        """Entries after entry_id.

        Returns every entry when entry_id is None or not present, so callers
        fall back to the full transcript.
        """
        if entry_id is None:
            return list(self.entries)
        idx = self.find_entry_index(entry_id)
        if idx == -1:
            return list(self.entries)
        return self.entries[idx + 1 :]


@dataclass(frozen=True)
class BoundaryResult:
    """Parent commit whose record ends where the incremental slice begins."""

    parent_commit: str
    last_entry_id: str


@dataclass
class PushResult:
    remote: str
    pushed: bool
    reason: str = ""


@dataclass
class PullResult:
    remote: str
    fetched: bool
    merged: bool
    reason: str = ""


@dataclass
class RemapSummary:
    """Counts reported by one reconciliation pass.

    unmatched and missing are informational; a pass with leftovers is still
    a successful pass.
    """

    orphaned: int = 0
    remapped: int = 0
    merged: int = 0  # remapped into a commit that already had a note
    already_mapped: int = 0
    unmatched: int = 0
    missing: int = 0
    failed: int = 0
    mappings: list[tuple[str, str]] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.unmatched + self.missing + self.failed
