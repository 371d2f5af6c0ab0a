"""Re-attach notes orphaned by history rewriting.

A rebase merge on a hosting platform replays a branch's commits with new
hashes. Notes attached to the old hashes stay in the notes tree but their
commits drop off every branch. A commit's patch-id is derived only from
the diff it introduces, so it survives the rewrite and pairs each orphan
with its replayed counterpart.

Matching is deterministic: orphans are taken in hash order (the lowest hash
claims a shared patch-id) and candidates in rev-list order (the first
matching candidate wins).
"""

from collections.abc import Callable

from session_notes.errors import ExternalToolError
from session_notes.git.notes import NoteStore
from session_notes.git.repo import Git
from session_notes.logging import get_logger
from session_notes.models import RemapSummary
from session_notes.storage.envelope import merge_notes

logger = get_logger("remap")

PatchIdFn = Callable[[str], str | None]

# Set by git pull/merge to the pre-operation HEAD
RECENT_RANGE = "ORIG_HEAD..HEAD"


class Reconciler:
    """Finds orphaned notes and copies them to rewritten commits."""

    def __init__(
        self,
        git: Git,
        store: NoteStore,
        patch_id: PatchIdFn | None = None,
        patch_id_timeout: float | None = None,
    ) -> None:
        self.git = git
        self.store = store
        self._patch_id = patch_id or (lambda commit: git.patch_id(commit, timeout=patch_id_timeout))

    def find_orphaned(self, notes: dict[str, str] | None = None) -> list[str]:
        """Noted commits not reachable from any local branch, sorted by hash."""
        noted = set(self.store.list_pairs() if notes is None else notes)
        if not noted:
            return []
        reachable = set(self.git.branch_commits())
        return sorted(noted - reachable)

    def candidate_commits(self) -> list[str]:
        """Commits that may be rewritten copies of orphans.

        The range brought in by the most recent pull or merge when git still
        records it, otherwise everything on a local branch.
        """
        try:
            candidates = self.git.commits_in_range(RECENT_RANGE)
        except ExternalToolError:
            candidates = []
        if candidates:
            return candidates
        logger.debug("%s not available, scanning all branch commits", RECENT_RANGE)
        return self.git.branch_commits()

    def safe_patch_id(self, commit: str) -> str | None:
        """Patch-id of commit, or None when it cannot be computed."""
        try:
            return self._patch_id(commit)
        except ExternalToolError as e:
            logger.debug("Could not compute patch-id for %s: %s", commit[:8], e)
            return None

    def remap(self, dry_run: bool = False) -> RemapSummary:
        """Copy each orphaned note to the commit carrying the same patch-id.

        A rewritten commit that already has a note of its own keeps it: the
        orphan's records are merged in (cat_sort_uniq style), so repeating
        the pass never replaces newer records with the orphan's.

        Orphans that are gone or unmatched are counted and left in place;
        they never fail the pass.
        """
        summary = RemapSummary()
        notes = self.store.list_pairs()
        orphans = self.find_orphaned(notes)
        summary.orphaned = len(orphans)
        if not orphans:
            return summary

        by_patch_id: dict[str, str] = {}
        for commit in orphans:
            if not self.git.object_exists(commit):
                logger.debug("Orphaned commit %s no longer exists", commit[:8])
                summary.missing += 1
                continue
            patch_id = self.safe_patch_id(commit)
            if not patch_id:
                summary.missing += 1
                continue
            if patch_id in by_patch_id:
                logger.debug(
                    "Orphan %s shares patch-id with %s, leaving unmatched",
                    commit[:8],
                    by_patch_id[patch_id][:8],
                )
                summary.unmatched += 1
                continue
            by_patch_id[patch_id] = commit

        if not by_patch_id:
            logger.info("Found %d orphaned notes but no patch-ids could be computed", len(orphans))
            return summary

        for candidate in self.candidate_commits():
            if not by_patch_id:
                break
            patch_id = self.safe_patch_id(candidate)
            if not patch_id or patch_id not in by_patch_id:
                continue
            orphan = by_patch_id[patch_id]
            if orphan == candidate:
                continue
            del by_patch_id[patch_id]

            existing = notes.get(candidate)
            if existing is not None and existing == notes.get(orphan):
                # Remapped by an earlier pass
                summary.already_mapped += 1
                continue

            try:
                if existing is None:
                    if not dry_run:
                        self.store.copy(orphan, candidate)
                else:
                    # The rewritten commit has its own note; keep both
                    current = self.store.get(candidate)
                    merged = merge_notes(current, self.store.get(orphan))
                    if merged == merge_notes(current):
                        summary.already_mapped += 1
                        continue
                    if not dry_run:
                        self.store.put(candidate, merged)
                    summary.merged += 1
            except ExternalToolError as e:
                logger.warning("Failed to copy note from %s to %s: %s", orphan[:8], candidate[:8], e)
                summary.failed += 1
                continue

            logger.debug("Remapped %s -> %s (patch-id=%s)", orphan[:8], candidate[:8], patch_id[:12])
            summary.remapped += 1
            summary.mappings.append((orphan, candidate))

        summary.unmatched += len(by_patch_id)
        logger.info(
            "Remap complete: orphaned=%d remapped=%d merged=%d already=%d unmatched=%d missing=%d failed=%d",
            summary.orphaned,
            summary.remapped,
            summary.merged,
            summary.already_mapped,
            summary.unmatched,
            summary.missing,
            summary.failed,
        )
        return summary
