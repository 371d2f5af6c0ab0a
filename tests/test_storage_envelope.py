"""Tests for the conversation record envelope."""

import base64
import gzip
import hashlib
import json

import pytest

from session_notes.errors import CorruptRecordError
from session_notes.storage.envelope import (
    NOTE_FORMAT_VERSION,
    ConversationRecord,
    Effort,
    compress_and_encode,
    compute_checksum,
    decode_and_decompress,
    decode_record,
    decode_records,
    is_legacy_document,
    merge_notes,
    verify_checksum,
)

TRANSCRIPT = b'{"type":"user","uuid":"e1","message":{"role":"user","content":"hi"}}\n'


@pytest.fixture
def record() -> ConversationRecord:
    return ConversationRecord.create(
        TRANSCRIPT,
        session_id="sess-1",
        project_path="/home/user/project",
        git_branch="main",
        message_count=1,
        agent="claude",
        model="claude-sonnet-4-5",
        effort=Effort(turns=1, input_tokens=100, output_tokens=50),
        timestamp="2026-01-26T00:38:34Z",
    )


class TestChecksum:
    """Tests for checksum helpers."""

    def test_tagged_with_algorithm(self) -> None:
        """Checksum should be "sha256:<hex>" of the raw bytes."""
        expected = "sha256:" + hashlib.sha256(b"hello").hexdigest()
        assert compute_checksum(b"hello") == expected

    def test_verify_checksum(self) -> None:
        assert verify_checksum(b"hello", compute_checksum(b"hello")) is True
        assert verify_checksum(b"hello!", compute_checksum(b"hello")) is False


class TestCompression:
    """Tests for compress/encode helpers."""

    def test_payload_is_base64_gzip(self) -> None:
        """Encoded payload should be standard base64 of a gzip stream."""
        encoded = compress_and_encode(b"some transcript")
        assert gzip.decompress(base64.b64decode(encoded)) == b"some transcript"

    def test_decode_rejects_bad_base64(self) -> None:
        with pytest.raises(CorruptRecordError):
            decode_and_decompress("not base64 !!!")

    def test_decode_rejects_bad_gzip(self) -> None:
        with pytest.raises(CorruptRecordError):
            decode_and_decompress(base64.b64encode(b"plain bytes, not gzip").decode())

    def test_encoding_is_deterministic(self) -> None:
        """Identical transcripts should encode identically."""
        assert compress_and_encode(TRANSCRIPT) == compress_and_encode(TRANSCRIPT)


class TestConversationRecord:
    """Tests for ConversationRecord encode/decode."""

    def test_create_stamps_current_version(self, record: ConversationRecord) -> None:
        assert record.version == NOTE_FORMAT_VERSION == 3

    def test_checksum_covers_uncompressed_bytes(self, record: ConversationRecord) -> None:
        assert record.checksum == compute_checksum(TRANSCRIPT)

    def test_round_trip(self, record: ConversationRecord) -> None:
        """Decoding the serialized record should recover the transcript exactly."""
        decoded = decode_record(record.to_bytes())

        assert decoded == record
        assert decoded.get_transcript() == TRANSCRIPT
        assert decoded.verify_integrity() is True

    def test_round_trip_binary_transcript(self) -> None:
        data = bytes(range(256)) * 10
        decoded = decode_record(ConversationRecord.create(data, session_id="s").to_bytes())
        assert decoded.get_transcript() == data

    def test_serialized_as_single_line(self, record: ConversationRecord) -> None:
        """Each record should occupy exactly one newline-terminated line."""
        raw = record.to_bytes()
        assert raw.endswith(b"\n")
        assert raw.count(b"\n") == 1

    def test_wire_fields(self, record: ConversationRecord) -> None:
        data = json.loads(record.to_bytes())
        assert data["version"] == 3
        assert data["session_id"] == "sess-1"
        assert data["timestamp"] == "2026-01-26T00:38:34Z"
        assert data["checksum"].startswith("sha256:")
        assert data["agent"] == "claude"
        assert data["model"] == "claude-sonnet-4-5"
        assert data["effort"] == {"turns": 1, "input_tokens": 100, "output_tokens": 50}

    def test_empty_optional_fields_omitted(self) -> None:
        data = json.loads(ConversationRecord.create(b"x", session_id="s", agent="").to_bytes())
        assert "agent" not in data
        assert "model" not in data
        assert "effort" not in data

    def test_default_timestamp_is_rfc3339_utc(self) -> None:
        record = ConversationRecord.create(b"x", session_id="s")
        assert record.timestamp.endswith("Z")
        assert "T" in record.timestamp


class TestIntegrity:
    """Tests for tamper and corruption detection."""

    def test_tampered_checksum_returns_false(self, record: ConversationRecord) -> None:
        """A modified checksum should fail verification without raising."""
        digest = record.checksum.split(":", 1)[1]
        flipped = ("0" if digest[0] != "0" else "1") + digest[1:]
        record.checksum = f"sha256:{flipped}"

        assert record.verify_integrity() is False
        assert record.get_transcript() == TRANSCRIPT

    def test_tampered_transcript_returns_false(self, record: ConversationRecord) -> None:
        record.transcript = compress_and_encode(TRANSCRIPT + b"extra")
        assert record.verify_integrity() is False

    def test_unparsable_payload_raises(self, record: ConversationRecord) -> None:
        """An undecodable payload is a corrupt carrier, not a mismatch."""
        record.transcript = "%%% definitely not base64 %%%"
        with pytest.raises(CorruptRecordError):
            record.verify_integrity()

    def test_truncated_gzip_raises(self, record: ConversationRecord) -> None:
        raw = base64.b64decode(record.transcript)
        record.transcript = base64.b64encode(raw[: len(raw) // 2]).decode()
        with pytest.raises(CorruptRecordError):
            record.verify_integrity()


class TestVersionCompatibility:
    """Tests for decoding older and newer records."""

    def test_version_1_record(self) -> None:
        """A v1 record without agent/model/effort should decode with defaults."""
        raw = json.dumps(
            {
                "version": 1,
                "session_id": "old-session",
                "timestamp": "2025-06-01T12:00:00Z",
                "project_path": "/p",
                "git_branch": "main",
                "message_count": 4,
                "checksum": compute_checksum(TRANSCRIPT),
                "transcript": compress_and_encode(TRANSCRIPT),
            },
            indent=2,
        )

        record = decode_record(raw)

        assert record.version == 1
        assert record.agent == ""
        assert record.agent_name == "claude"
        assert record.model == ""
        assert record.effort is None
        assert record.verify_integrity() is True

    def test_missing_fields_default_to_zero_values(self) -> None:
        record = decode_record(b'{"session_id": "s"}')
        assert record.version == 0
        assert record.message_count == 0
        assert record.checksum == ""

    def test_unknown_fields_are_ignored(self) -> None:
        record = decode_record(b'{"version": 9, "session_id": "s", "future_field": [1, 2]}')
        assert record.session_id == "s"
        assert record.extra == {"future_field": [1, 2]}

    def test_partial_effort(self) -> None:
        record = decode_record(b'{"version": 3, "effort": {"turns": 2}}')
        assert record.effort == Effort(turns=2)
        assert record.effort.total_tokens == 0

    def test_non_object_rejected(self) -> None:
        with pytest.raises(CorruptRecordError):
            decode_record(b"[1, 2, 3]")

    def test_invalid_json_rejected(self) -> None:
        with pytest.raises(CorruptRecordError):
            decode_record(b"{not json")


class TestDecodeRecords:
    """Tests for notes holding several merged records."""

    def test_single_record(self, record: ConversationRecord) -> None:
        assert decode_records(record.to_bytes()) == [record]

    def test_legacy_pretty_printed_record(self, record: ConversationRecord) -> None:
        raw = json.dumps(record.to_dict(), indent=2)
        assert decode_records(raw) == [record]

    def test_merged_records_one_per_line(self, record: ConversationRecord) -> None:
        other = ConversationRecord.create(b"other transcript", session_id="sess-2", timestamp="2026-01-27T00:00:00Z")
        merged = b"".join(sorted([record.to_bytes(), other.to_bytes()]))

        records = decode_records(merged)

        assert {r.session_id for r in records} == {"sess-1", "sess-2"}
        assert all(r.verify_integrity() for r in records)

    def test_empty_note(self) -> None:
        assert decode_records(b"\n") == []

    def test_garbage_line_raises(self, record: ConversationRecord) -> None:
        with pytest.raises(CorruptRecordError):
            decode_records(record.to_bytes() + b"garbage\n")


class TestMergeNotes:
    """Tests for line-wise note merging."""

    def test_union_sorted_and_deduplicated(self) -> None:
        assert merge_notes(b"b\na\n", b"a\nc\n") == b"a\nb\nc\n"

    def test_missing_notes_ignored(self) -> None:
        assert merge_notes(None, b"a\n", b"") == b"a\n"

    def test_legacy_document_compacted_before_merge(self, record: ConversationRecord) -> None:
        pretty = json.dumps(record.to_dict(), indent=2).encode()
        other = ConversationRecord.create(b"other", session_id="sess-2", timestamp="2026-01-27T00:00:00Z")

        merged = merge_notes(pretty, other.to_bytes())

        assert sorted(r.session_id for r in decode_records(merged)) == ["sess-1", "sess-2"]

    def test_pretty_document_breaks_plain_line_merge(self, record: ConversationRecord) -> None:
        pretty = json.dumps(record.to_dict(), indent=2).encode()
        other = ConversationRecord.create(b"other", session_id="sess-2", timestamp="2026-01-27T00:00:00Z")
        # What git's cat_sort_uniq does to the lines
        lines = set(pretty.splitlines()) | set(other.to_bytes().splitlines())
        naive = b"\n".join(sorted(lines)) + b"\n"

        with pytest.raises(CorruptRecordError):
            decode_records(naive)

    def test_is_legacy_document(self, record: ConversationRecord) -> None:
        assert is_legacy_document(json.dumps(record.to_dict(), indent=2).encode()) is True
        assert is_legacy_document(record.to_bytes()) is False
        assert is_legacy_document(record.to_bytes() + record.to_bytes()) is False
