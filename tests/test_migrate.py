"""Tests for migrating notes off the legacy ref."""

import json
from pathlib import Path

from conftest import git_cmd
from session_notes.config import DEFAULT_NOTES_REF, LEGACY_NOTES_REF
from session_notes.git.notes import NoteStore
from session_notes.git.repo import Git
from session_notes.migrate import compact_legacy_notes, migrate_notes_ref
from session_notes.storage.envelope import ConversationRecord, decode_records, merge_notes


class TestMigrateNotesRef:
    """Tests for migrate_notes_ref."""

    def test_nothing_without_legacy_ref(self, git: Git) -> None:
        result = migrate_notes_ref(git, LEGACY_NOTES_REF, DEFAULT_NOTES_REF)
        assert result.changed == 0
        assert not git.ref_exists(DEFAULT_NOTES_REF)

    def test_copies_legacy_history(self, git: Git) -> None:
        head = git.resolve("HEAD")
        NoteStore(git, LEGACY_NOTES_REF).put(head, b"legacy\n")

        result = migrate_notes_ref(git, LEGACY_NOTES_REF, DEFAULT_NOTES_REF)

        assert result.changed == 1
        assert NoteStore(git, DEFAULT_NOTES_REF).get(head) == b"legacy\n"
        # Legacy ref is kept
        assert git.ref_exists(LEGACY_NOTES_REF)

    def test_dry_run_changes_nothing(self, git: Git) -> None:
        NoteStore(git, LEGACY_NOTES_REF).put(git.resolve("HEAD"), b"legacy\n")

        result = migrate_notes_ref(git, LEGACY_NOTES_REF, DEFAULT_NOTES_REF, dry_run=True)

        assert result.changed == 1
        assert not git.ref_exists(DEFAULT_NOTES_REF)

    def test_existing_ref_is_not_replaced(self, git: Git) -> None:
        head = git.resolve("HEAD")
        NoteStore(git, LEGACY_NOTES_REF).put(head, b"legacy\n")
        NoteStore(git, DEFAULT_NOTES_REF).put(head, b"current\n")

        result = migrate_notes_ref(git, LEGACY_NOTES_REF, DEFAULT_NOTES_REF)

        assert result.changed == 0
        assert "already exists" in result.messages[0]
        assert NoteStore(git, DEFAULT_NOTES_REF).get(head) == b"current\n"

    def test_rewrites_config_keys(self, git: Git, repo: Path) -> None:
        NoteStore(git, LEGACY_NOTES_REF).put(git.resolve("HEAD"), b"legacy\n")
        git_cmd(repo, "config", "notes.displayRef", LEGACY_NOTES_REF)
        git_cmd(repo, "config", "notes.rewriteRef", "refs/notes/other")

        result = migrate_notes_ref(git, LEGACY_NOTES_REF, DEFAULT_NOTES_REF)

        assert result.changed == 2
        assert git.config_get("notes.displayRef") == DEFAULT_NOTES_REF
        assert git.config_get("notes.rewriteRef") == "refs/notes/other"

    def test_second_run_is_noop(self, git: Git) -> None:
        NoteStore(git, LEGACY_NOTES_REF).put(git.resolve("HEAD"), b"legacy\n")
        migrate_notes_ref(git, LEGACY_NOTES_REF, DEFAULT_NOTES_REF)
        assert migrate_notes_ref(git, LEGACY_NOTES_REF, DEFAULT_NOTES_REF).changed == 0

    def test_ref_created_concurrently_is_kept(self, git: Git, repo: Path) -> None:
        head = git.resolve("HEAD")
        NoteStore(git, LEGACY_NOTES_REF).put(head, b"legacy\n")

        class RacingGit(Git):
            def create_ref(self, ref: str, target: str) -> bool:
                NoteStore(Git(self.cwd), DEFAULT_NOTES_REF).put(head, b"written meanwhile\n")
                return super().create_ref(ref, target)

        result = migrate_notes_ref(RacingGit(repo, timeout=30), LEGACY_NOTES_REF, DEFAULT_NOTES_REF)

        assert result.changed == 0
        assert "already exists" in result.messages[0]
        assert NoteStore(git, DEFAULT_NOTES_REF).get(head) == b"written meanwhile\n"


class TestCompactLegacyNotes:
    """Pretty-printed legacy records are rewritten as one line."""

    @staticmethod
    def pretty_record() -> tuple[ConversationRecord, bytes]:
        record = ConversationRecord.create(b"transcript\n", "sess-old", timestamp="2025-06-01T00:00:00Z")
        return record, json.dumps(record.to_dict(), indent=2).encode() + b"\n"

    def test_migrate_compacts_pretty_records(self, git: Git) -> None:
        head = git.resolve("HEAD")
        record, pretty = self.pretty_record()
        NoteStore(git, LEGACY_NOTES_REF).put(head, pretty)

        result = migrate_notes_ref(git, LEGACY_NOTES_REF, DEFAULT_NOTES_REF)

        assert result.changed == 2
        assert f"compact record on {head[:8]}" in result.messages
        assert NoteStore(git, DEFAULT_NOTES_REF).get(head) == record.to_bytes()
        # Legacy history is left as it was
        assert NoteStore(git, LEGACY_NOTES_REF).get(head) == pretty

    def test_dry_run_leaves_pretty_records(self, git: Git) -> None:
        head = git.resolve("HEAD")
        _, pretty = self.pretty_record()
        NoteStore(git, LEGACY_NOTES_REF).put(head, pretty)

        result = migrate_notes_ref(git, LEGACY_NOTES_REF, DEFAULT_NOTES_REF, dry_run=True)

        assert result.changed == 2
        assert NoteStore(git, LEGACY_NOTES_REF).get(head) == pretty

    def test_compacted_record_survives_line_merge(self, git: Git) -> None:
        head = git.resolve("HEAD")
        record, pretty = self.pretty_record()
        store = NoteStore(git, DEFAULT_NOTES_REF)
        store.put(head, pretty)
        other = ConversationRecord.create(b"other\n", "sess-new", timestamp="2026-01-01T00:00:00Z")

        compact_legacy_notes(store)
        assert compact_legacy_notes(store).changed == 0

        merged = merge_notes(store.get(head), other.to_bytes())
        assert sorted(r.session_id for r in decode_records(merged)) == ["sess-new", "sess-old"]
