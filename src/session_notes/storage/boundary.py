"""Loading stored conversations and finding the incremental boundary.

When a commit and one of its parents carry records of the same session,
only the transcript entries after the parent's last entry are new to the
commit. The boundary is that last entry.
"""

from session_notes.errors import CorruptRecordError, UnknownAgentError
from session_notes.git.notes import NoteStore
from session_notes.git.repo import Git
from session_notes.logging import get_logger
from session_notes.models import BoundaryResult, Transcript, TranscriptEntry
from session_notes.storage.envelope import ConversationRecord, decode_records
from session_notes.transcript.parsers import ParserRegistry

logger = get_logger("boundary")


def load_records(store: NoteStore, commit: str) -> list[ConversationRecord]:
    """Every record attached to commit; empty when there is no note.

    Raises:
        CorruptRecordError: If the note exists but cannot be decoded
    """
    raw = store.get(commit)
    if raw is None:
        return []
    return decode_records(raw)


def load_record(store: NoteStore, commit: str, session_id: str | None = None) -> ConversationRecord | None:
    """The record attached to commit, preferring one of the given session.

    A note normally holds a single record; after a merge of concurrent
    annotations it can hold several.
    """
    records = load_records(store, commit)
    if not records:
        return None
    if session_id is not None:
        for record in records:
            if record.session_id == session_id:
                return record
        return None
    return records[0]


def parse_record(record: ConversationRecord, parsers: ParserRegistry) -> Transcript:
    """Decode and parse a record's transcript with its agent's parser.

    Raises:
        CorruptRecordError: If the payload cannot be decoded
        UnknownAgentError: If no parser handles the record's agent
    """
    parser = parsers.get(record.agent_name)
    return parser.parse_bytes(record.get_transcript())


def find_parent_boundary(
    git: Git,
    store: NoteStore,
    commit: str,
    session_id: str,
    parsers: ParserRegistry,
) -> BoundaryResult | None:
    """Find where commit's transcript continues a parent's record.

    Parents are visited in git's order. The first parent holding a record
    of the same session decides: its transcript's last entry is the
    boundary, or there is no boundary when that transcript is empty.
    None means callers should show the full transcript.
    """
    for parent in git.parents(commit):
        try:
            record = load_record(store, parent, session_id=session_id)
        except CorruptRecordError as e:
            logger.debug("Skipping parent %s with unreadable note: %s", parent[:8], e)
            continue
        if record is None:
            continue

        try:
            transcript = parse_record(record, parsers)
        except (CorruptRecordError, UnknownAgentError) as e:
            logger.warning("Could not read parent conversation on %s: %s", parent[:8], e)
            return None

        last_id = transcript.last_entry_id()
        if last_id is None:
            return None
        return BoundaryResult(parent_commit=parent, last_entry_id=last_id)

    return None


def incremental_entries(transcript: Transcript, boundary: BoundaryResult | None) -> list[TranscriptEntry]:
    """Entries of transcript not already covered by the boundary's record."""
    return transcript.entries_since(boundary.last_entry_id if boundary else None)
