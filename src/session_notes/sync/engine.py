"""Push, fetch and merge of the notes ref between clones.

Pull runs in two phases. The fetch phase writes the remote ref into a
separate tracking ref and never touches local notes. The merge phase folds
the tracking ref into the local ref with git's cat_sort_uniq strategy, so
two clones that annotated the same commit both keep their records.

The only atomic commit point is git's own ref update. Re-running a pull
after an interruption re-fetches (forced) into the tracking ref and
re-merges; merging already-merged state is a no-op.
"""

from enum import Enum

from session_notes.config import DEFAULT_NOTES_REF, DEFAULT_TRACKING_REF
from session_notes.errors import ExternalToolError, NotesDivergedError
from session_notes.git.repo import Git
from session_notes.logging import get_logger
from session_notes.models import PullResult, PushResult

logger = get_logger("sync")

MERGE_STRATEGY = "cat_sort_uniq"

_DIVERGED_MARKERS = ("non-fast-forward", "[rejected]", "fetch first")
_NO_LOCAL_REF_MARKERS = ("src refspec", "does not match any")
_NO_REMOTE_REF_MARKERS = ("couldn't find remote ref", "could not find remote ref")


class SyncState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"


class SyncEngine:
    """Synchronizes one notes ref with remotes."""

    def __init__(
        self,
        git: Git,
        notes_ref: str = DEFAULT_NOTES_REF,
        tracking_ref: str = DEFAULT_TRACKING_REF,
    ) -> None:
        self.git = git
        self.notes_ref = notes_ref
        self.tracking_ref = tracking_ref
        self.state = SyncState.IDLE

    def push(self, remote: str) -> PushResult:
        """Advance the remote notes ref to the local one.

        Raises:
            NotesDivergedError: The remote ref moved; pull, then push again
            ExternalToolError: Transport, auth or any other git failure
        """
        # --no-verify keeps a pre-push hook from re-entering this command
        result = self.git.run("push", "--no-verify", remote, self.notes_ref, check=False)
        if result.ok:
            logger.info("Pushed notes: remote=%s ref=%s", remote, self.notes_ref)
            return PushResult(remote=remote, pushed=True)

        output = (result.error_text + "\n" + result.text).lower()
        if any(marker in output for marker in _DIVERGED_MARKERS):
            logger.warning("Push rejected, remote notes diverged: remote=%s", remote)
            raise NotesDivergedError(remote)
        if all(marker in output for marker in _NO_LOCAL_REF_MARKERS):
            logger.info("Nothing to push: no local notes ref %s", self.notes_ref)
            return PushResult(remote=remote, pushed=False, reason="no local notes")
        raise ExternalToolError(result.args, result.returncode, result.error_text)

    def fetch_to_tracking(self, remote: str) -> bool:
        """Fetch the remote notes ref into the tracking ref.

        Returns False when the remote has no notes ref yet.
        """
        self.state = SyncState.FETCHING
        try:
            refspec = f"+{self.notes_ref}:{self.tracking_ref}"
            result = self.git.run("fetch", remote, refspec, check=False)
            if result.ok:
                logger.debug("Fetched %s from %s into %s", self.notes_ref, remote, self.tracking_ref)
                return True
            if any(marker in result.error_text.lower() for marker in _NO_REMOTE_REF_MARKERS):
                logger.info("Remote has no notes yet: remote=%s ref=%s", remote, self.notes_ref)
                return False
            raise ExternalToolError(result.args, result.returncode, result.error_text)
        finally:
            self.state = SyncState.IDLE

    def merge_tracking(self) -> bool:
        """Merge the tracking ref into the local notes ref.

        Returns False when there is no tracking ref to merge.
        """
        if not self.git.ref_exists(self.tracking_ref):
            return False
        self.state = SyncState.MERGING
        try:
            # Create the local ref only if it is still absent; a note written
            # meanwhile makes git refuse, and the merge below keeps it.
            target = self.git.output("rev-parse", self.tracking_ref)
            if self.git.create_ref(self.notes_ref, target):
                logger.debug("Created %s from %s", self.notes_ref, self.tracking_ref)
                return True
            self.git.run(
                "notes",
                "--ref",
                self.notes_ref,
                "merge",
                "--quiet",
                f"--strategy={MERGE_STRATEGY}",
                self.tracking_ref,
            )
            logger.debug("Merged %s into %s", self.tracking_ref, self.notes_ref)
            return True
        finally:
            self.state = SyncState.IDLE

    def pull(self, remote: str) -> PullResult:
        """Fetch remote notes into the tracking ref, then merge them locally."""
        if not self.fetch_to_tracking(remote):
            return PullResult(remote=remote, fetched=False, merged=False, reason="no remote notes")
        merged = self.merge_tracking()
        logger.info("Pulled notes: remote=%s merged=%s", remote, merged)
        return PullResult(remote=remote, fetched=True, merged=merged)
