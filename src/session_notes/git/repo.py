"""Git repository utilities.

Every git call is a blocking subprocess bounded by a timeout, since a git
child can stall (for example waiting on stdin or a credential prompt).
"""

import subprocess
from dataclasses import dataclass
from pathlib import Path

from session_notes.errors import ExternalToolError, GitTimeoutError, NotGitRepoError
from session_notes.logging import get_logger

logger = get_logger("git")


@dataclass
class GitResult:
    args: list[str]
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace").strip()

    @property
    def error_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace").strip()

    @property
    def lines(self) -> list[str]:
        return [line for line in self.text.splitlines() if line.strip()]


class Git:
    """Runs git commands against one repository."""

    def __init__(self, cwd: Path | str | None = None, timeout: float = 60.0) -> None:
        self.cwd = Path(cwd) if cwd is not None else None
        self.timeout = timeout

    def run(
        self,
        *args: str,
        input: bytes | None = None,
        check: bool = True,
        timeout: float | None = None,
    ) -> GitResult:
        """Run git with the given arguments.

        Args:
            *args: Arguments after "git"
            input: Bytes written to the child's stdin (stdin is closed otherwise)
            check: Raise ExternalToolError on a non-zero exit
            timeout: Override for the default timeout

        Raises:
            GitTimeoutError: If git does not finish in time
            ExternalToolError: If git is missing, or exits non-zero with check=True
        """
        cmd = ["git", *args]
        limit = self.timeout if timeout is None else timeout
        logger.debug("git %s", " ".join(args))
        try:
            proc = subprocess.run(
                cmd,
                cwd=self.cwd,
                input=input if input is not None else b"",
                capture_output=True,
                timeout=limit,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise GitTimeoutError(cmd, limit)
        except OSError as e:
            raise ExternalToolError(cmd, None, str(e)) from e

        result = GitResult(cmd, proc.returncode, proc.stdout, proc.stderr)
        if check and not result.ok:
            raise ExternalToolError(cmd, result.returncode, result.error_text)
        return result

    def output(self, *args: str) -> str:
        """Run git and return trimmed stdout."""
        return self.run(*args).text

    def is_inside_work_tree(self) -> bool:
        try:
            result = self.run("rev-parse", "--is-inside-work-tree", check=False)
        except ExternalToolError:
            return False
        return result.ok and result.text == "true"

    def require_repo(self) -> None:
        if not self.is_inside_work_tree():
            raise NotGitRepoError(str(self.cwd or Path.cwd()))

    def repo_root(self) -> Path:
        return Path(self.output("rev-parse", "--show-toplevel"))

    def current_branch(self) -> str:
        return self.output("rev-parse", "--abbrev-ref", "HEAD")

    def resolve(self, ref: str) -> str:
        """Resolve a ref, branch, tag or abbreviated hash to a full commit hash."""
        return self.output("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")

    def ref_exists(self, ref: str) -> bool:
        return self.run("rev-parse", "--verify", "--quiet", ref, check=False).ok

    def object_exists(self, commit: str) -> bool:
        """Whether the commit object is still present (not garbage-collected)."""
        return self.run("cat-file", "-e", f"{commit}^{{commit}}", check=False).ok

    def parents(self, commit: str) -> list[str]:
        """Parent hashes in git's order; empty for a root commit."""
        result = self.run("rev-list", "--parents", "-n", "1", commit)
        parts = result.text.split()
        return parts[1:]

    def rev_list(self, *args: str) -> list[str]:
        return self.run("rev-list", *args).lines

    def commits_in_range(self, revision_range: str) -> list[str]:
        return self.rev_list(revision_range)

    def branch_commits(self) -> list[str]:
        """Every commit reachable from a local branch."""
        return self.rev_list("--branches")

    def all_commits_topo(self) -> list[str]:
        """Every reachable commit, newest first, in topological order."""
        return self.rev_list("--all", "--topo-order")

    def config_get(self, key: str) -> str | None:
        result = self.run("config", "--get", key, check=False)
        if not result.ok:
            return None
        return result.text

    def config_set(self, key: str, value: str) -> None:
        self.run("config", key, value)

    def create_ref(self, ref: str, target: str) -> bool:
        """Create ref pointing at target only if ref does not exist yet.

        The empty old value makes git check and write under its ref lock,
        so a ref created concurrently is never overwritten. Returns False
        when git refused.
        """
        return self.run("update-ref", ref, target, "", check=False).ok

    def has_uncommitted_changes(self) -> bool:
        """Whether tracked files differ from HEAD (untracked files ignored)."""
        return bool(self.run("status", "--porcelain", "--untracked-files=no").lines)

    def checkout(self, commit: str) -> None:
        self.run("checkout", "--quiet", commit)

    def patch_id(self, commit: str, timeout: float | None = None) -> str | None:
        """Content-derived identity of the diff a commit introduces.

        Stable across rebases that keep the change but alter hash, parents or
        dates. Returns None for commits that introduce no diff (e.g. merges).
        """
        diff = self.run("diff-tree", "-p", "--root", commit, timeout=timeout)
        if not diff.stdout.strip():
            return None
        result = self.run("patch-id", "--stable", input=diff.stdout, timeout=timeout)
        if not result.text:
            return None
        return result.text.split()[0]
