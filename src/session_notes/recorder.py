"""Create the conversation record for a commit.

Overwrite policy: a commit holding a record of the same session with the
same transcript is left alone; anything else is replaced, with a warning
when the replaced record belonged to a different session.
"""

import json
from dataclasses import dataclass
from pathlib import Path

from session_notes.errors import CorruptRecordError, ExternalToolError
from session_notes.git.notes import NoteStore
from session_notes.git.repo import Git
from session_notes.logging import get_logger
from session_notes.storage.boundary import load_records
from session_notes.storage.envelope import ConversationRecord, Effort, compute_checksum
from session_notes.transcript.parsers import Parser

logger = get_logger("recorder")


@dataclass
class StoreOutcome:
    commit: str
    status: str  # stored, overwritten, already_stored
    record: ConversationRecord | None = None


def read_transcript_data(path: Path) -> bytes:
    """Read transcript bytes from a file or a directory of message files.

    Some agents keep one JSON file per message. Those are combined, in
    filename order, into a single JSON array; JSONL files contribute one
    element per line.
    """
    if not path.is_dir():
        return path.read_bytes()

    messages: list[object] = []
    for file_path in sorted(path.iterdir()):
        if not file_path.is_file():
            continue
        suffix = file_path.suffix.lower()
        if suffix == ".json":
            try:
                messages.append(json.loads(file_path.read_text(encoding="utf-8")))
            except json.JSONDecodeError as e:
                logger.warning("Skipping malformed message file %s: %s", file_path, e)
        elif suffix == ".jsonl":
            for lineno, line in enumerate(file_path.read_text(encoding="utf-8").splitlines(), start=1):
                if not line.strip():
                    continue
                try:
                    messages.append(json.loads(line))
                except json.JSONDecodeError as e:
                    logger.warning("Skipping malformed line %d of %s: %s", lineno, file_path, e)
    return json.dumps(messages).encode("utf-8")


def _effort_from(turns: int, usage: dict[str, int]) -> Effort | None:
    effort = Effort(
        turns=turns,
        input_tokens=usage.get("input_tokens", 0),
        output_tokens=usage.get("output_tokens", 0),
        cache_creation_input_tokens=usage.get("cache_creation_input_tokens", 0),
        cache_read_input_tokens=usage.get("cache_read_input_tokens", 0),
    )
    return effort if effort.to_dict() else None


def store_conversation(
    git: Git,
    store: NoteStore,
    parser: Parser,
    session_id: str,
    transcript_path: Path,
    commit: str = "HEAD",
) -> StoreOutcome:
    """Attach the transcript at transcript_path to commit.

    Raises:
        FileNotFoundError: If the transcript does not exist
        ExternalToolError: If git fails
    """
    commit_sha = git.resolve(commit)
    data = read_transcript_data(transcript_path)
    checksum = compute_checksum(data)

    status = "stored"
    try:
        existing = load_records(store, commit_sha)
    except CorruptRecordError as e:
        logger.warning("Replacing unreadable note on %s: %s", commit_sha[:8], e)
        existing = []

    if existing:
        for record in existing:
            if record.session_id == session_id and record.checksum == checksum:
                logger.info("Conversation already stored for commit %s", commit_sha[:8])
                return StoreOutcome(commit=commit_sha, status="already_stored", record=record)
        other_sessions = sorted({r.session_id for r in existing if r.session_id != session_id})
        if other_sessions:
            logger.warning(
                "Overwriting conversation for commit %s: session %s replaces %s",
                commit_sha[:8],
                session_id,
                ", ".join(other_sessions),
            )
        status = "overwritten"

    transcript = parser.parse_bytes(data)

    try:
        project_path = str(git.repo_root())
        branch = git.current_branch()
    except ExternalToolError:
        project_path, branch = "", ""

    record = ConversationRecord.create(
        data,
        session_id=session_id,
        project_path=project_path,
        git_branch=branch,
        message_count=transcript.message_count,
        agent=parser.agent_name,
        model=transcript.model,
        effort=_effort_from(transcript.turns, transcript.usage),
    )

    store.put(commit_sha, record.to_bytes())
    logger.info(
        "Stored conversation for commit %s: session=%s messages=%d",
        commit_sha[:8],
        session_id,
        transcript.message_count,
    )
    return StoreOutcome(commit=commit_sha, status=status, record=record)
