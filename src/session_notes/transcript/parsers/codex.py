"""Parser for Codex (OpenAI) conversation transcripts.

Codex stores conversations as JSONL rollout files at:
    ~/.codex/sessions/<year>/<month>/<day>/rollout-*.jsonl

Each line is a JSON object with a type field:
- session_meta: Session metadata (id, cwd, timestamp)
- turn_context: Turn-level context, including the model
- response_item: Messages, reasoning and function calls

Codex entries carry no identifier of their own. Rollouts are append-only,
so "<session id>:<line number>" is stable across commits of one session.
"""

import json
import os
from datetime import datetime
from pathlib import Path

from session_notes.models import ThinkingBlock, ToolResultBlock, ToolUseBlock
from session_notes.transcript.parsers.base import (
    Parser,
    Transcript,
    TranscriptEntry,
    iter_json_lines,
    parse_blocks,
)

ROLE_MAP = {"user": "user", "assistant": "assistant", "developer": "system", "system": "system"}


class CodexParser(Parser):
    """Parser for Codex JSONL rollout files."""

    agent_name = "codex"

    def session_path(self, project_path: Path, session_id: str) -> Path:
        """A new dated rollout file; Codex finds sessions by id, not by project."""
        codex_home = Path(os.environ.get("CODEX_HOME") or Path.home() / ".codex")
        now = datetime.now()
        date_dir = codex_home / "sessions" / now.strftime("%Y") / now.strftime("%m") / now.strftime("%d")
        return date_dir / f"rollout-{now.strftime('%Y%m%dT%H%M%S')}-{session_id}.jsonl"

    def parse_bytes(self, data: bytes) -> Transcript:
        transcript = Transcript()
        session_id = ""

        for lineno, entry in iter_json_lines(data):
            event_type = entry.get("type")
            payload = entry.get("payload")
            if not isinstance(payload, dict):
                continue

            if event_type == "session_meta":
                session_id = str(payload.get("id") or session_id)
                continue

            if event_type == "turn_context":
                if payload.get("model"):
                    transcript.model = str(payload["model"])
                continue

            if event_type != "response_item":
                continue

            entry_id = f"{session_id or 'codex'}:{lineno}"
            timestamp = str(entry.get("timestamp") or "")

            match payload.get("type"):
                case "message":
                    role = ROLE_MAP.get(str(payload.get("role")))
                    if role is None:
                        continue
                    blocks = parse_blocks(payload.get("content"))
                    if role == "user":
                        # Tool output arrives as function_call_output, never as a user message
                        transcript.turns += 1
                case "reasoning":
                    role = "assistant"
                    summary = payload.get("summary") or []
                    text = "\n".join(
                        str(item.get("text", "")) for item in summary if isinstance(item, dict)
                    )
                    blocks = (ThinkingBlock(thinking=text),)
                case "function_call":
                    role = "assistant"
                    blocks = (
                        ToolUseBlock(
                            id=str(payload.get("call_id", "")),
                            name=str(payload.get("name", "unknown")),
                            input=_parse_arguments(payload.get("arguments")),
                        ),
                    )
                case "function_call_output":
                    role = "tool"
                    output = payload.get("output")
                    if isinstance(output, dict):
                        output = output.get("content", "")
                    blocks = (
                        ToolResultBlock(
                            tool_use_id=str(payload.get("call_id", "")),
                            content=str(output or ""),
                        ),
                    )
                case _:
                    continue

            transcript.entries.append(
                TranscriptEntry(id=entry_id, role=role, timestamp=timestamp, blocks=blocks)
            )

        return transcript


def _parse_arguments(arguments: object) -> dict:
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str):
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError:
            return {"raw": arguments}
        return parsed if isinstance(parsed, dict) else {"value": parsed}
    return {}
