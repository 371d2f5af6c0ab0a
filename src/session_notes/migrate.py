"""One-time migration of notes from the legacy notes ref."""

from dataclasses import dataclass, field

from session_notes.git.notes import NoteStore
from session_notes.git.repo import Git
from session_notes.logging import get_logger
from session_notes.storage.envelope import is_legacy_document, note_lines

logger = get_logger("migrate")

# git config keys that may still name the legacy ref
NOTES_CONFIG_KEYS = ("notes.rewriteRef", "notes.displayRef")


@dataclass
class MigrationResult:
    changed: int = 0
    messages: list[str] = field(default_factory=list)


def _skip_existing(result: MigrationResult, notes_ref: str) -> None:
    result.messages.append(f"{notes_ref} already exists (skipping notes ref migration)")


def _migrate_ref(git: Git, legacy_ref: str, notes_ref: str, dry_run: bool, result: MigrationResult) -> None:
    if not git.ref_exists(legacy_ref):
        logger.debug("No legacy notes ref %s", legacy_ref)
        return

    if git.ref_exists(notes_ref):
        _skip_existing(result, notes_ref)
        return

    if not dry_run:
        target = git.output("rev-parse", legacy_ref)
        if not git.create_ref(notes_ref, target):
            # Created between the check above and now
            _skip_existing(result, notes_ref)
            return
        logger.info("Migrated notes ref: %s -> %s (%s)", legacy_ref, notes_ref, target[:8])
    result.messages.append(f"{legacy_ref} -> {notes_ref}")
    result.changed += 1

    for key in NOTES_CONFIG_KEYS:
        if git.config_get(key) != legacy_ref:
            continue
        result.messages.append(f"git config {key}: {legacy_ref} -> {notes_ref}")
        result.changed += 1
        if not dry_run:
            git.config_set(key, notes_ref)


def compact_legacy_notes(store: NoteStore, dry_run: bool = False) -> MigrationResult:
    """Rewrite pretty-printed single-record notes as one-line records.

    Multi-line records cannot survive a cat_sort_uniq notes merge.
    """
    result = MigrationResult()
    for commit in sorted(store.list_pairs()):
        raw = store.get(commit)
        if raw is None or not is_legacy_document(raw):
            continue
        result.messages.append(f"compact record on {commit[:8]}")
        result.changed += 1
        if not dry_run:
            store.put(commit, b"".join(line + b"\n" for line in note_lines(raw)))
    if result.changed and not dry_run:
        logger.info("Compacted %d legacy record(s) in %s", result.changed, store.ref)
    return result


def migrate_notes_ref(git: Git, legacy_ref: str, notes_ref: str, dry_run: bool = False) -> MigrationResult:
    """Point notes_ref at legacy_ref's notes history and compact old records.

    The legacy ref is left in place. The ref is only moved when the legacy
    ref exists and notes_ref does not, so running this twice is safe.
    """
    result = MigrationResult()
    _migrate_ref(git, legacy_ref, notes_ref, dry_run, result)

    # Before the move is applied (dry run) the records still live on the legacy ref
    source_ref = notes_ref if git.ref_exists(notes_ref) else legacy_ref
    compacted = compact_legacy_notes(NoteStore(git, source_ref), dry_run=dry_run)
    result.changed += compacted.changed
    result.messages.extend(compacted.messages)
    return result
