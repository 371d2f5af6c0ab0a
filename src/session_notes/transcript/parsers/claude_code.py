"""Parser for Claude Code conversation transcripts.

Claude Code stores conversations as JSONL files at:
    ~/.claude/projects/<encoded-project-path>/<session-id>.jsonl

Each line is a JSON object with:
- type: "user", "assistant", "system", or bookkeeping types (skipped)
- uuid: stable identifier of the entry
- message.role / message.content: string or array of content blocks
- message.model: model identifier on assistant entries
- timestamp: ISO 8601 timestamp
"""

import os
from pathlib import Path

from session_notes.models import ToolResultBlock
from session_notes.transcript.parsers.base import (
    Parser,
    Transcript,
    TranscriptEntry,
    iter_json_lines,
    parse_blocks,
)

ENTRY_TYPES = ("user", "assistant", "system")
USAGE_KEYS = (
    "input_tokens",
    "output_tokens",
    "cache_creation_input_tokens",
    "cache_read_input_tokens",
)


def encode_project_path(project_path: Path | str) -> str:
    """Claude Code's directory name for a project: separators become dashes."""
    encoded = str(project_path).replace(os.sep, "-").replace("/", "-")
    if not encoded.startswith("-"):
        encoded = "-" + encoded
    return encoded


class ClaudeCodeParser(Parser):
    """Parser for Claude Code JSONL transcript files."""

    agent_name = "claude"

    def session_path(self, project_path: Path, session_id: str) -> Path:
        base_path = Path.home() / ".claude" / "projects"
        return base_path / encode_project_path(project_path) / f"{session_id}.jsonl"

    def parse_bytes(self, data: bytes) -> Transcript:
        transcript = Transcript()
        # One API response spans several lines sharing message.id
        counted_messages: set[str] = set()

        for _, entry in iter_json_lines(data):
            entry_type = entry.get("type")
            if entry_type not in ENTRY_TYPES:
                continue

            # Entries without a uuid cannot serve as a boundary
            uuid = entry.get("uuid")
            if not uuid:
                continue

            message = entry.get("message")
            if not isinstance(message, dict):
                message = {}

            if entry_type == "assistant":
                if message.get("model"):
                    transcript.model = str(message["model"])
                usage = message.get("usage")
                message_id = str(message.get("id") or uuid)
                if isinstance(usage, dict) and message_id not in counted_messages:
                    counted_messages.add(message_id)
                    for key in USAGE_KEYS:
                        value = usage.get(key)
                        if isinstance(value, int):
                            transcript.usage[key] = transcript.usage.get(key, 0) + value

            blocks = parse_blocks(message.get("content", entry.get("content")))
            if entry_type == "user" and not any(isinstance(b, ToolResultBlock) for b in blocks):
                transcript.turns += 1

            transcript.entries.append(
                TranscriptEntry(
                    id=str(uuid),
                    role=str(message.get("role") or entry_type),
                    timestamp=str(entry.get("timestamp") or ""),
                    blocks=blocks,
                )
            )

        return transcript
