"""Git notes storage for conversation records.

Records are opaque bytes here; encoding lives in storage.envelope.
"""

from session_notes.config import DEFAULT_NOTES_REF
from session_notes.errors import ExternalToolError
from session_notes.git.repo import Git
from session_notes.logging import get_logger

logger = get_logger("notes")


class NoteStore:
    """Attaches record bytes to commits under a dedicated notes ref."""

    def __init__(self, git: Git, ref: str = DEFAULT_NOTES_REF) -> None:
        self.git = git
        self.ref = ref

    def _notes(self, *args: str, **kwargs):
        return self.git.run("notes", "--ref", self.ref, *args, **kwargs)

    def put(self, commit: str, data: bytes) -> None:
        """Attach data to commit, replacing any existing note.

        The payload goes through stdin (-F -) because transcripts can exceed
        the OS argument-length limit.

        Raises:
            ExternalToolError: If commit does not name an existing commit
        """
        # git notes accepts any full-length hash, even without an object
        if not self.git.object_exists(commit):
            raise ExternalToolError(
                ["git", "notes", "--ref", self.ref, "add", commit], None, f"no such commit: {commit}"
            )
        self._notes("add", "-f", "-F", "-", commit, input=data)
        logger.debug("Stored note: commit=%s bytes=%d", commit[:8], len(data))

    def get(self, commit: str) -> bytes | None:
        """Note content for commit, or None when the commit has no note."""
        result = self._notes("show", commit, check=False)
        if not result.ok:
            return None
        return result.stdout

    def has(self, commit: str) -> bool:
        return self.get(commit) is not None

    def list_pairs(self) -> dict[str, str]:
        """Map of noted commit -> note blob, straight from the notes tree.

        Includes commits that are no longer reachable or no longer exist.
        """
        if not self.git.ref_exists(self.ref):
            return {}
        pairs = {}
        for line in self._notes("list").lines:
            # Format: "<note blob> <annotated object>"
            parts = line.split()
            if len(parts) >= 2:
                pairs[parts[1]] = parts[0]
        return pairs

    def list(self) -> list[str]:
        """Noted commits in history order (git log order, newest first).

        Commits outside every ref's history are appended, sorted by hash.
        """
        noted = set(self.list_pairs())
        if not noted:
            return []

        ordered = [sha for sha in self.git.all_commits_topo() if sha in noted]
        seen = set(ordered)
        ordered.extend(sorted(noted - seen))
        return ordered

    def copy(self, source: str, dest: str) -> None:
        """Attach source's note to dest as well, overwriting dest's note."""
        self._notes("copy", "-f", source, dest)
        logger.debug("Copied note: %s -> %s", source[:8], dest[:8])

    def remove(self, commit: str) -> None:
        self._notes("remove", "--ignore-missing", commit)
