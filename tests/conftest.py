"""Shared fixtures: throwaway git repositories."""

import json
import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from session_notes.git.notes import NoteStore
from session_notes.git.repo import Git


def git_cmd(cwd: Path, *args: str, input: bytes | None = None) -> str:
    """Run git in cwd for test setup and return trimmed stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        input=input,
        capture_output=True,
        check=True,
    )
    return result.stdout.decode().strip()


def commit_file(repo: Path, name: str, content: str, message: str | None = None) -> str:
    """Write a file, commit it and return the new commit hash."""
    (repo / name).write_text(content)
    git_cmd(repo, "add", name)
    git_cmd(repo, "commit", "-q", "-m", message or f"Add {name}")
    return git_cmd(repo, "rev-parse", "HEAD")


def init_repo(path: Path, bare: bool = False) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    if bare:
        git_cmd(path, "init", "-q", "--bare")
    else:
        git_cmd(path, "init", "-q")
    git_cmd(path, "symbolic-ref", "HEAD", "refs/heads/main")
    return path


def clone_repo(remote: Path, dest: Path) -> Path:
    git_cmd(remote.parent, "clone", "-q", str(remote), str(dest))
    return dest


def claude_transcript(entry_ids: list[str], session_id: str = "sess-1", model: str = "claude-sonnet-4-5") -> bytes:
    """Claude Code JSONL with alternating user/assistant entries."""
    lines = []
    for i, entry_id in enumerate(entry_ids):
        role = "user" if i % 2 == 0 else "assistant"
        message: dict = {"role": role, "content": f"message {entry_id}"}
        if role == "assistant":
            message["model"] = model
            message["id"] = f"msg_{entry_id}"
            message["usage"] = {"input_tokens": 10, "output_tokens": 5}
        lines.append(
            json.dumps(
                {
                    "type": role,
                    "uuid": entry_id,
                    "sessionId": session_id,
                    "timestamp": f"2026-01-26T00:{i:02d}:00.000Z",
                    "message": message,
                }
            )
        )
    return ("\n".join(lines) + "\n").encode()


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's git config and identity out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Committer")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "committer@example.com")
    monkeypatch.delenv("SESSION_NOTES_DEBUG", raising=False)
    monkeypatch.delenv("CODEX_HOME", raising=False)


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A non-bare repository on branch main with one commit."""
    path = init_repo(tmp_path / "repo")
    commit_file(path, "README.md", "# test\n", "Initial commit")
    return path


@pytest.fixture
def git(repo: Path) -> Git:
    return Git(repo, timeout=30)


@pytest.fixture
def store(git: Git) -> NoteStore:
    return NoteStore(git)


@pytest.fixture
def make_commit(repo: Path) -> Callable[..., str]:
    def _make(name: str, content: str = "content\n", message: str | None = None) -> str:
        return commit_file(repo, name, content, message)

    return _make
