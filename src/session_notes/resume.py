"""Restore a stored conversation so the agent can continue it.

The transcript is written back where the agent keeps its sessions (or to
an explicit path) and the commit it belongs to is checked out.
"""

from dataclasses import dataclass
from pathlib import Path

from session_notes.errors import DirtyWorkTreeError, NoConversationError, ResumeError
from session_notes.git.notes import NoteStore
from session_notes.git.repo import Git
from session_notes.logging import get_logger
from session_notes.storage.boundary import load_record
from session_notes.storage.envelope import ConversationRecord, verify_checksum
from session_notes.transcript.parsers import ParserRegistry

logger = get_logger("resume")


@dataclass
class ResumeOutcome:
    commit: str
    record: ConversationRecord
    session_path: Path
    integrity_ok: bool
    checked_out: bool


def restore_session(
    git: Git,
    store: NoteStore,
    parsers: ParserRegistry,
    commit: str,
    session_id: str | None = None,
    output: Path | None = None,
    checkout: bool = True,
    force: bool = False,
) -> ResumeOutcome:
    """Write commit's transcript to the agent's session store and check it out.

    A checksum mismatch is logged and reported, not fatal: the transcript
    is still the best copy available.

    Raises:
        NoConversationError: If the commit holds no (matching) record
        CorruptRecordError: If the transcript payload cannot be decoded
        DirtyWorkTreeError: If checking out would meet uncommitted changes
        ResumeError: If the agent's session location is unknown and no
            output path was given
    """
    commit_sha = git.resolve(commit)
    record = load_record(store, commit_sha, session_id=session_id)
    if record is None:
        raise NoConversationError(commit_sha)

    data = record.get_transcript()
    integrity_ok = verify_checksum(data, record.checksum)
    if not integrity_ok:
        logger.warning("Transcript checksum mismatch on %s, conversation may be corrupted", commit_sha[:8])

    if checkout and not force and git.has_uncommitted_changes():
        raise DirtyWorkTreeError()

    path = output
    if path is None:
        parser = parsers.get(record.agent_name)
        path = parser.session_path(git.repo_root(), record.session_id)
        if path is None:
            raise ResumeError(f"no session location known for agent {record.agent_name!r}; use --output")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    logger.info("Restored session %s to %s", record.session_id, path)

    if checkout:
        git.checkout(commit_sha)

    return ResumeOutcome(
        commit=commit_sha,
        record=record,
        session_path=path,
        integrity_ok=integrity_ok,
        checked_out=checkout,
    )
