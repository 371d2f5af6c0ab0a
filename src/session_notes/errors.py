"""Exception hierarchy for session-notes.

All project exceptions inherit from SessionNotesError so the CLI can catch
them at a single boundary:

    SessionNotesError
    ├── NotGitRepoError
    ├── CorruptRecordError
    ├── NotesDivergedError
    ├── ExternalToolError
    │   └── GitTimeoutError
    ├── UnknownAgentError
    ├── NoConversationError
    └── ResumeError
        └── DirtyWorkTreeError

A missing note is not an exception: NoteStore.get returns None.
"""


class SessionNotesError(Exception):
    """Base class for all session-notes errors."""


class NotGitRepoError(SessionNotesError):
    """Raised when an operation requires a git repository."""

    def __init__(self, path: str | None = None) -> None:
        message = "not inside a git repository"
        if path:
            message = f"{message}: {path}"
        super().__init__(message)


class CorruptRecordError(SessionNotesError):
    """Raised when a stored record or its payload cannot be decoded."""


class NotesDivergedError(SessionNotesError):
    """Raised when a push is rejected because the remote notes ref moved."""

    def __init__(self, remote: str) -> None:
        super().__init__(
            f"remote notes on {remote} have diverged; "
            "run 'session-notes sync pull' first, then push again"
        )
        self.remote = remote


class ExternalToolError(SessionNotesError):
    """Raised when git (or another helper process) fails."""

    def __init__(self, args: list[str], returncode: int | None, stderr: str = "") -> None:
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"{' '.join(self.command)} failed"
        if returncode is not None:
            message += f" (exit {returncode})"
        if self.stderr:
            message += f": {self.stderr}"
        super().__init__(message)


class GitTimeoutError(ExternalToolError):
    """Raised when a git invocation exceeds its timeout."""

    def __init__(self, args: list[str], timeout: float) -> None:
        super().__init__(args, None, f"timed out after {timeout:g}s")
        self.timeout = timeout


class UnknownAgentError(SessionNotesError):
    """Raised when no transcript parser is registered for an agent name."""

    def __init__(self, name: str, supported: list[str]) -> None:
        super().__init__(f"unknown agent {name!r} (supported: {', '.join(supported)})")
        self.name = name


class NoConversationError(SessionNotesError):
    """Raised when a command needs a stored conversation and the commit has none."""

    def __init__(self, commit: str) -> None:
        super().__init__(f"no conversation found for commit {commit[:8]}")
        self.commit = commit


class ResumeError(SessionNotesError):
    """Raised when a stored session cannot be restored."""


class DirtyWorkTreeError(ResumeError):
    """Raised when a checkout would conflict with uncommitted changes."""

    def __init__(self) -> None:
        super().__init__("you have uncommitted changes; commit or stash them, or use --force")
