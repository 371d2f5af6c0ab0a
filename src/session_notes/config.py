"""Configuration loading and management."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

# Primary namespace; kept apart from refs/notes/commits so plain `git log`
# output and other notes users are unaffected.
DEFAULT_NOTES_REF = "refs/notes/session-notes"
DEFAULT_TRACKING_REF = "refs/notes/session-notes-remote"
LEGACY_NOTES_REF = "refs/notes/claude-conversations"

CONFIG_DIR_NAME = ".session-notes"
DEBUG_ENV_VAR = "SESSION_NOTES_DEBUG"


@dataclass
class NotesConfig:
    ref: str = DEFAULT_NOTES_REF
    tracking_ref: str = DEFAULT_TRACKING_REF
    legacy_ref: str = LEGACY_NOTES_REF


@dataclass
class GitConfig:
    timeout_seconds: float = 60.0
    patch_id_timeout_seconds: float = 30.0


@dataclass
class Config:
    debug: bool = False
    agent: str = "claude"
    remote: str = "origin"
    log_dir: Path | None = None
    notes: NotesConfig = field(default_factory=NotesConfig)
    git: GitConfig = field(default_factory=GitConfig)


def expand_env_var(value: str) -> str:
    """Expand environment variables in string (e.g. ${VAR})."""
    if value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, value)
    return value


def expand_path(path_str: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(os.path.expanduser(path_str)))


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def default_search_paths(repo_root: Path | None = None) -> list[Path]:
    """Config file locations, most specific first."""
    paths = []
    if repo_root is not None:
        paths.append(repo_root / CONFIG_DIR_NAME / "config.yaml")
    paths.append(Path.home() / ".config" / "session-notes" / "config.yaml")
    return paths


def load_config(config_path: Path | None = None, repo_root: Path | None = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Explicit config file; skips the search when given
        repo_root: Repository root used for the per-repository config file

    Returns:
        Config populated from the first file found, or defaults
    """
    if config_path is None:
        for path in default_search_paths(repo_root):
            if path.exists():
                config_path = path
                break

    data: dict = {}
    if config_path is not None and config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

    notes_data = data.get("notes", {}) or {}
    notes = NotesConfig(
        ref=notes_data.get("ref", DEFAULT_NOTES_REF),
        tracking_ref=notes_data.get("tracking_ref", DEFAULT_TRACKING_REF),
        legacy_ref=notes_data.get("legacy_ref", LEGACY_NOTES_REF),
    )

    git_data = data.get("git", {}) or {}
    git = GitConfig(
        timeout_seconds=float(git_data.get("timeout_seconds", 60)),
        patch_id_timeout_seconds=float(git_data.get("patch_id_timeout_seconds", 30)),
    )

    log_dir = data.get("log_dir")

    return Config(
        debug=bool(data.get("debug", False)) or _env_flag(DEBUG_ENV_VAR),
        agent=expand_env_var(str(data.get("agent", "claude"))),
        remote=expand_env_var(str(data.get("remote", "origin"))),
        log_dir=expand_path(log_dir) if log_dir else None,
        notes=notes,
        git=git,
    )
