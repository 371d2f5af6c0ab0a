"""CLI entry point for session-notes.

Allows running the command line as a module:
    python -m session_notes.cli
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click

from session_notes.config import Config, load_config
from session_notes.errors import CorruptRecordError, SessionNotesError, UnknownAgentError
from session_notes.git.notes import NoteStore
from session_notes.git.repo import Git
from session_notes.logging import setup_logging
from session_notes.migrate import migrate_notes_ref
from session_notes.progress import progress
from session_notes.recorder import store_conversation
from session_notes.remap.reconciler import Reconciler
from session_notes.resume import restore_session
from session_notes.storage.boundary import (
    find_parent_boundary,
    incremental_entries,
    load_records,
    parse_record,
)
from session_notes.storage.envelope import ConversationRecord
from session_notes.sync.engine import SyncEngine
from session_notes.transcript.parsers import ParserRegistry, default_registry


@dataclass
class App:
    """Everything a command needs, built once per invocation."""

    config: Config
    git: Git
    store: NoteStore
    parsers: ParserRegistry

    @property
    def show_progress(self) -> bool:
        # Log lines and the spinner would interleave on stderr
        return not self.config.debug


class NotesGroup(click.Group):
    """Command group that reports project errors without a traceback."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except SessionNotesError as e:
            raise click.ClickException(str(e)) from e


def short(sha: str) -> str:
    return sha[:8]


def print_record_header(commit: str, record: ConversationRecord) -> None:
    click.echo(f"\033[33mcommit {commit}\033[0m")
    click.echo(f"Session:  {record.session_id}")
    click.echo(f"Agent:    {record.agent_name}")
    if record.model:
        click.echo(f"Model:    {record.model}")
    click.echo(f"Date:     {record.timestamp}")
    click.echo(f"Branch:   {record.git_branch}")
    click.echo(f"Messages: {record.message_count}")
    if record.effort is not None:
        effort = record.effort
        click.echo(
            f"Effort:   {effort.turns} turns, {effort.total_tokens} tokens "
            f"({effort.input_tokens} in / {effort.output_tokens} out)"
        )


@click.group(cls=NotesGroup)
@click.option(
    "-C",
    "--repo",
    "repo",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Run as if started in this directory",
)
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), default=None)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, repo: Path | None, config_path: Path | None, debug: bool) -> None:
    """Attach coding-agent conversations to git commits."""
    git = Git(repo)
    repo_root = git.repo_root() if git.is_inside_work_tree() else None

    config = load_config(config_path, repo_root=repo_root)
    if debug:
        config.debug = True
    git.timeout = config.git.timeout_seconds

    setup_logging(
        "cli",
        log_dir=config.log_dir,
        level=logging.DEBUG if config.debug else logging.WARNING,
    )

    ctx.obj = App(
        config=config,
        git=git,
        store=NoteStore(git, config.notes.ref),
        parsers=default_registry(),
    )


@cli.command()
@click.option("--session-id", required=True, help="Agent session identifier")
@click.option(
    "--transcript",
    "transcript_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Transcript file (or directory of message files)",
)
@click.option("--agent", default=None, help="Agent that produced the transcript")
@click.option("--commit", default="HEAD", show_default=True)
@click.pass_obj
def store(app: App, session_id: str, transcript_path: Path, agent: str | None, commit: str) -> None:
    """Store a conversation on a commit."""
    app.git.require_repo()
    parser = app.parsers.get(agent or app.config.agent)
    outcome = store_conversation(app.git, app.store, parser, session_id, transcript_path, commit=commit)

    if outcome.status == "already_stored":
        click.echo(f"Conversation already stored for commit {short(outcome.commit)}")
    else:
        click.echo(f"Stored conversation for commit {short(outcome.commit)}")


@cli.command("list")
@click.pass_obj
def list_cmd(app: App) -> None:
    """List commits with stored conversations."""
    app.git.require_repo()
    commits = app.store.list()
    if not commits:
        click.echo("No conversations stored")
        return

    for commit in commits:
        try:
            records = load_records(app.store, commit)
        except CorruptRecordError:
            click.echo(f"{short(commit)}  \033[31m<unreadable>\033[0m")
            continue
        for record in records:
            click.echo(
                f"{short(commit)}  {record.timestamp}  {record.agent_name:<8} "
                f"{record.message_count:>4} msgs  {record.session_id}"
            )


@cli.command()
@click.argument("commit", default="HEAD")
@click.option("--full", is_flag=True, help="Show the whole transcript, not only new entries")
@click.pass_obj
def show(app: App, commit: str, full: bool) -> None:
    """Show the conversation stored on a commit."""
    app.git.require_repo()
    commit_sha = app.git.resolve(commit)
    records = load_records(app.store, commit_sha)
    if not records:
        click.echo(f"No conversation stored for commit {short(commit_sha)}")
        return

    for record in records:
        print_record_header(commit_sha, record)

        try:
            if not record.verify_integrity():
                click.echo("\033[31mWarning: checksum mismatch, transcript may have been modified\033[0m")
            transcript = parse_record(record, app.parsers)
        except (CorruptRecordError, UnknownAgentError) as e:
            click.echo(f"Cannot render transcript: {e}")
            continue

        boundary = None
        if not full:
            boundary = find_parent_boundary(app.git, app.store, commit_sha, record.session_id, app.parsers)
        entries = incremental_entries(transcript, boundary)

        if boundary is not None:
            click.echo(
                f"\nShowing {len(entries)} of {transcript.message_count} entries "
                f"(continued from {short(boundary.parent_commit)})\n"
            )
        else:
            click.echo(f"\nShowing all {transcript.message_count} entries\n")

        for entry in entries:
            click.echo(f"\033[32m[{entry.role}]\033[0m {entry.timestamp}")
            click.echo(f"{entry.text}\n")
        click.echo("-" * 40)


@cli.command()
@click.argument("commits", nargs=-1)
@click.pass_obj
def verify(app: App, commits: tuple[str, ...]) -> None:
    """Verify transcript checksums of stored conversations."""
    app.git.require_repo()
    targets = [app.git.resolve(c) for c in commits] if commits else app.store.list()

    counts = {"ok": 0, "tampered": 0, "corrupt": 0, "missing": 0}
    for commit in targets:
        try:
            records = load_records(app.store, commit)
            if not records:
                counts["missing"] += 1
                click.echo(f"{short(commit)}  no conversation")
                continue
            for record in records:
                if record.verify_integrity():
                    counts["ok"] += 1
                    click.echo(f"{short(commit)}  ok  {record.session_id}")
                else:
                    counts["tampered"] += 1
                    click.echo(f"{short(commit)}  \033[31mchecksum mismatch\033[0m  {record.session_id}")
        except CorruptRecordError as e:
            counts["corrupt"] += 1
            click.echo(f"{short(commit)}  \033[31mcorrupt: {e}\033[0m")

    click.echo(
        f"\nVerified {len(targets)} commit(s): ok={counts['ok']} tampered={counts['tampered']} "
        f"corrupt={counts['corrupt']} missing={counts['missing']}"
    )
    if counts["tampered"] or counts["corrupt"]:
        sys.exit(1)


@cli.group(cls=NotesGroup)
def sync() -> None:
    """Sync conversation notes with a remote."""


@sync.command()
@click.option("--remote", default=None, help="Remote to sync with (default from config)")
@click.pass_obj
def push(app: App, remote: str | None) -> None:
    """Push conversation notes to the remote."""
    app.git.require_repo()
    remote = remote or app.config.remote
    engine = SyncEngine(app.git, app.config.notes.ref, app.config.notes.tracking_ref)

    with progress(f"Pushing notes to {remote}...", enabled=app.show_progress):
        result = engine.push(remote)

    if result.pushed:
        click.echo(f"Pushed conversation notes to {remote}")
    else:
        click.echo(f"Nothing to push to {remote}: {result.reason}")


@sync.command()
@click.option("--remote", default=None, help="Remote to sync with (default from config)")
@click.pass_obj
def pull(app: App, remote: str | None) -> None:
    """Fetch conversation notes from the remote and merge them."""
    app.git.require_repo()
    remote = remote or app.config.remote
    engine = SyncEngine(app.git, app.config.notes.ref, app.config.notes.tracking_ref)

    with progress(f"Fetching notes from {remote}...", enabled=app.show_progress):
        result = engine.pull(remote)

    if not result.fetched:
        click.echo(f"Nothing to pull from {remote}: {result.reason}")
    else:
        click.echo(f"Fetched and merged conversation notes from {remote}")


@cli.command()
@click.option("--dry-run", is_flag=True, help="Report matches without copying notes")
@click.pass_obj
def remap(app: App, dry_run: bool) -> None:
    """Remap orphaned notes to rebased commits.

    Detects notes on commits that are no longer on any branch (for example
    after a rebase merge on the hosting platform) and copies them to the
    matching commits using git patch-id.
    """
    app.git.require_repo()
    reconciler = Reconciler(app.git, app.store, patch_id_timeout=app.config.git.patch_id_timeout_seconds)

    with progress("Matching orphaned notes...", enabled=app.show_progress):
        summary = reconciler.remap(dry_run=dry_run)

    if summary.orphaned == 0:
        click.echo("No orphaned notes found")
        return

    verb = "Would remap" if dry_run else "Remapped"
    for old, new in summary.mappings:
        click.echo(f"  {short(old)} -> {short(new)}")
    click.echo(f"{verb} {summary.remapped} of {summary.orphaned} orphaned note(s)")
    if summary.merged:
        click.echo(f"{summary.merged} of them merged into an existing note")
    if summary.already_mapped:
        click.echo(f"{summary.already_mapped} orphaned note(s) already remapped")
    if summary.unmatched:
        click.echo(f"{summary.unmatched} orphaned note(s) could not be matched")
    if summary.missing:
        click.echo(f"{summary.missing} orphaned note(s) skipped: commit no longer available")
    if summary.failed:
        click.echo(f"{summary.failed} note(s) failed to copy")


@cli.command()
@click.argument("commit")
@click.option("--session-id", default=None, help="Session to restore when the commit holds several")
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the transcript here instead of the agent's session directory",
)
@click.option("--no-checkout", is_flag=True, help="Restore the transcript without checking out the commit")
@click.option("-f", "--force", is_flag=True, help="Check out even with uncommitted changes")
@click.pass_obj
def resume(
    app: App, commit: str, session_id: str | None, output: Path | None, no_checkout: bool, force: bool
) -> None:
    """Restore a commit's conversation and check the commit out."""
    app.git.require_repo()
    checkout = not no_checkout
    if checkout and not force and app.git.has_uncommitted_changes():
        click.echo("Warning: you have uncommitted changes that checkout may affect.", err=True)
        click.confirm("Continue?", abort=True, err=True)
        force = True

    outcome = restore_session(
        app.git,
        app.store,
        app.parsers,
        commit,
        session_id=session_id,
        output=output,
        checkout=checkout,
        force=force,
    )

    if not outcome.integrity_ok:
        click.echo("\033[31mWarning: checksum mismatch, transcript may have been modified\033[0m")
    click.echo(
        f"Restored session {outcome.record.session_id} ({outcome.record.message_count} messages) "
        f"to {outcome.session_path}"
    )
    if outcome.checked_out:
        click.echo(f"Checked out {short(outcome.commit)}")


@cli.command()
@click.option("--dry-run", is_flag=True, help="Preview changes without applying them")
@click.pass_obj
def migrate(app: App, dry_run: bool) -> None:
    """Move notes from the legacy notes ref to the current one."""
    app.git.require_repo()
    notes = app.config.notes
    result = migrate_notes_ref(app.git, notes.legacy_ref, notes.ref, dry_run=dry_run)

    for message in result.messages:
        click.echo(f"  {message}")
    if result.changed == 0:
        click.echo("Nothing to migrate")
    elif dry_run:
        click.echo(f"{result.changed} change(s) would be applied. Run without --dry-run to apply.")
    else:
        click.echo(f"Migration complete. {result.changed} change(s) applied.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
