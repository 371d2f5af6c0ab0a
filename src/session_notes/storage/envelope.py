"""Envelope format for conversations stored in git notes.

A record is a JSON object holding a gzip-compressed, base64-encoded
transcript plus provenance metadata and a checksum of the uncompressed
transcript bytes.

Format versions:
    1: initial format (agent added later, empty means "claude")
    2: model identifier
    3: effort metrics (turns and token usage)

Records are written as a single compact JSON line so that a notes merge
with the cat_sort_uniq strategy yields one valid record per line.
"""

import base64
import binascii
import gzip
import hashlib
import json
import zlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Self

from session_notes.errors import CorruptRecordError

NOTE_FORMAT_VERSION = 3
DEFAULT_AGENT = "claude"
CHECKSUM_ALGORITHM = "sha256"


def compress(data: bytes) -> bytes:
    # mtime=0 keeps the encoding of identical transcripts byte-identical
    return gzip.compress(data, mtime=0)


def decompress(data: bytes) -> bytes:
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise CorruptRecordError(f"invalid gzip stream: {e}") from e


def compress_and_encode(data: bytes) -> str:
    """Compress with gzip and encode as standard base64 text."""
    return base64.b64encode(compress(data)).decode("ascii")


def decode_and_decompress(text: str) -> bytes:
    """Decode base64 text and decompress the gzip payload.

    Raises:
        CorruptRecordError: If either step fails
    """
    try:
        raw = base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, ValueError, UnicodeEncodeError) as e:
        raise CorruptRecordError(f"invalid base64 payload: {e}") from e
    return decompress(raw)


def compute_checksum(data: bytes) -> str:
    """Checksum in "<algorithm>:<hex>" form."""
    return f"{CHECKSUM_ALGORITHM}:{hashlib.sha256(data).hexdigest()}"


def verify_checksum(data: bytes, expected: str) -> bool:
    return compute_checksum(data) == expected


def _now_rfc3339() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class Effort:
    """Quantified agent effort for a commit."""

    turns: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, int]:
        return {k: v for k, v in vars(self).items() if v}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            turns=_as_int(data.get("turns")),
            input_tokens=_as_int(data.get("input_tokens")),
            output_tokens=_as_int(data.get("output_tokens")),
            cache_creation_input_tokens=_as_int(data.get("cache_creation_input_tokens")),
            cache_read_input_tokens=_as_int(data.get("cache_read_input_tokens")),
        )


@dataclass
class ConversationRecord:
    """A conversation as stored in a git note."""

    version: int = NOTE_FORMAT_VERSION
    session_id: str = ""
    timestamp: str = ""
    project_path: str = ""
    git_branch: str = ""
    message_count: int = 0  # advisory only
    checksum: str = ""
    transcript: str = ""  # base64(gzip(transcript bytes))
    agent: str = ""
    model: str = ""
    effort: Effort | None = None
    extra: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def create(
        cls,
        transcript: bytes,
        session_id: str,
        project_path: str = "",
        git_branch: str = "",
        message_count: int = 0,
        agent: str = DEFAULT_AGENT,
        model: str = "",
        effort: Effort | None = None,
        timestamp: str | None = None,
    ) -> Self:
        """Build a current-version record from raw transcript bytes."""
        return cls(
            version=NOTE_FORMAT_VERSION,
            session_id=session_id,
            timestamp=timestamp or _now_rfc3339(),
            project_path=project_path,
            git_branch=git_branch,
            message_count=message_count,
            checksum=compute_checksum(transcript),
            transcript=compress_and_encode(transcript),
            agent=agent,
            model=model,
            effort=effort,
        )

    @property
    def agent_name(self) -> str:
        return self.agent or DEFAULT_AGENT

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            "project_path": self.project_path,
            "git_branch": self.git_branch,
            "message_count": self.message_count,
            "checksum": self.checksum,
            "transcript": self.transcript,
        }
        if self.agent:
            data["agent"] = self.agent
        if self.model:
            data["model"] = self.model
        if self.effort is not None and self.effort.to_dict():
            data["effort"] = self.effort.to_dict()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    def to_bytes(self) -> bytes:
        """Serialized note content: one JSON line, newline-terminated."""
        return (self.to_json() + "\n").encode("utf-8")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Build a record from a decoded JSON object.

        Missing fields take their zero value and unknown keys are kept in
        ``extra``; neither is an error.
        """
        known = {
            "version", "session_id", "timestamp", "project_path", "git_branch",
            "message_count", "checksum", "transcript", "agent", "model", "effort",
        }
        effort_data = data.get("effort")
        return cls(
            version=_as_int(data.get("version")),
            session_id=str(data.get("session_id") or ""),
            timestamp=str(data.get("timestamp") or ""),
            project_path=str(data.get("project_path") or ""),
            git_branch=str(data.get("git_branch") or ""),
            message_count=_as_int(data.get("message_count")),
            checksum=str(data.get("checksum") or ""),
            transcript=str(data.get("transcript") or ""),
            agent=str(data.get("agent") or ""),
            model=str(data.get("model") or ""),
            effort=Effort.from_dict(effort_data) if isinstance(effort_data, dict) else None,
            extra={k: v for k, v in data.items() if k not in known},
        )

    def get_transcript(self) -> bytes:
        """Decode and decompress the transcript without checksum verification.

        Raises:
            CorruptRecordError: If the payload cannot be decoded
        """
        return decode_and_decompress(self.transcript)

    def verify_integrity(self) -> bool:
        """Check the transcript against the stored checksum.

        Returns False when the payload decodes but does not match (tampered
        content). Raises CorruptRecordError when the payload itself cannot
        be decoded (corrupt carrier).
        """
        return verify_checksum(self.get_transcript(), self.checksum)


def decode_record(raw: bytes | str) -> ConversationRecord:
    """Decode a note holding exactly one record.

    Raises:
        CorruptRecordError: If the note is not a single JSON object
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise CorruptRecordError(f"could not parse conversation record: {e}") from e
    if not isinstance(data, dict):
        raise CorruptRecordError("conversation record is not a JSON object")
    return ConversationRecord.from_dict(data)


def decode_records(raw: bytes | str) -> list[ConversationRecord]:
    """Decode every record held by a note.

    A note normally holds one record. After two clones annotate the same
    commit and their notes are merged, it holds one record per line, sorted
    and de-duplicated. Legacy notes are a single pretty-printed document;
    git merges such notes line by line into fragments that are reported as
    corrupt, which is why migrate compacts them and remap merges through
    merge_notes().

    Raises:
        CorruptRecordError: If any non-blank line is not a JSON object
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    if not text.strip():
        return []

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        return [ConversationRecord.from_dict(data)]

    records = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as e:
            raise CorruptRecordError(f"could not parse record on line {lineno}: {e}") from e
        if not isinstance(item, dict):
            raise CorruptRecordError(f"record on line {lineno} is not a JSON object")
        records.append(ConversationRecord.from_dict(item))
    return records


def _record_lines(raw: bytes) -> list[bytes]:
    return [line.strip() for line in raw.splitlines() if line.strip()]


def is_legacy_document(raw: bytes) -> bool:
    """Whether a note is a single record spread over several lines.

    Such notes predate one-line records. A line-wise notes merge
    (cat_sort_uniq) would sort their lines into fragments that no longer
    decode, so they are compacted before any merge.
    """
    if len(_record_lines(raw)) < 2:
        return False
    try:
        data = json.loads(raw.decode("utf-8", errors="replace"))
    except json.JSONDecodeError:
        return False
    return isinstance(data, dict)


def note_lines(raw: bytes) -> list[bytes]:
    """One line per record held by a note, compacting a legacy document."""
    if is_legacy_document(raw):
        data = json.loads(raw.decode("utf-8", errors="replace"))
        return [json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")]
    return _record_lines(raw)


def merge_notes(*notes: bytes | None) -> bytes:
    """Combine note contents the way git's cat_sort_uniq strategy does.

    Every record line of every note is kept once, sorted bytewise.
    """
    lines = set()
    for raw in notes:
        if raw:
            lines.update(note_lines(raw))
    return b"".join(line + b"\n" for line in sorted(lines))
