"""doit-code CLI: scan a workspace for TODO comments and manage the task list.

Installed as ``doit-code`` console_script via pipx / pip.
"""

from __future__ import annotations

import asyncio
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import click

from doitcode import __version__
from doitcode.config import Config, load_config, read_workspace_config, save_workspace_config
from doitcode.errors import DoitError
from doitcode.tasks.model import Task


CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


@dataclass
class CliState:
    """Options shared by every subcommand (set on the group)."""

    root: Path
    overrides: dict[str, Any] = field(default_factory=dict)
    all_projects: bool = False
    desktop_notify: bool = False
    quiet: bool = False

    def config(self) -> Config:
        return load_config(self.root, **self.overrides)

    def tracker(self, cfg: Config | None = None):
        from doitcode.notify import ConsoleNotifier, DesktopNotifier, NullNotifier
        from doitcode.tracker import Tracker

        cfg = cfg or self.config()
        if self.quiet:
            notifier = NullNotifier()
        elif self.desktop_notify:
            notifier = DesktopNotifier()
        else:
            notifier = ConsoleNotifier()
        tracker = Tracker(cfg, self.root, notifier=notifier)
        tracker.load()
        return tracker

    def scope(self, tracker) -> str | None:
        return None if self.all_projects else tracker.project


def _resolve_task(tracker, ref: str) -> Task:
    """Find a task by exact id, then unique id prefix, then unique id substring."""
    store = tracker.store
    task = store.get(ref)
    if task is not None:
        return task

    for matcher in (lambda t: t.id.startswith(ref), lambda t: ref in t.id):
        matches = [t for t in store.tasks if matcher(t)]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise click.ClickException(
                f"Task reference {ref!r} is ambiguous ({len(matches)} matches)."
            )
    raise click.ClickException(f"No task with id {ref!r}")


def _report(result, *, action: str) -> None:
    from doitcode import log

    if result.skipped:
        log.warn("Validation already in progress, skipped.")
        return
    if not result.changed:
        log.info(f"{action}: no changes.")
        return
    parts: list[str] = []
    if result.added:
        parts.append(f"{len(result.added)} added")
    if result.updated:
        parts.append(f"{len(result.updated)} updated")
    if result.completed:
        parts.append(f"{len(result.completed)} completed")
    if result.deleted:
        parts.append(f"{len(result.deleted)} deleted")
    log.success(f"{action}: {', '.join(parts)}.")


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option(
    "-w", "--workspace",
    type=click.Path(file_okay=False, exists=True, path_type=Path),
    default=".",
    help="Workspace root to scan (default: current directory)",
)
@click.option("--state-file", default=None, help="Where the task list is stored")
@click.option("--threshold", type=click.FloatRange(0.0, 1.0), default=None, help="Similarity threshold for edited annotations")
@click.option("--auto-complete/--auto-delete", "auto_complete", default=None, help="What happens to tasks whose comment was removed")
@click.option("--all-projects", is_flag=True, help="Show tasks of every project, not just this workspace")
@click.option("--desktop-notify", is_flag=True, help="Show notifications as desktop toasts")
@click.option("-q", "--quiet", is_flag=True, help="Only print warnings and errors")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="doit-code")
@click.pass_context
def main(
    ctx: click.Context,
    workspace: Path,
    state_file: str | None,
    threshold: float | None,
    auto_complete: bool | None,
    all_projects: bool,
    desktop_notify: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """doit-code: TODO comments as a tracked task list.

    Scans source files for TODO/FIXME/HACK/NOTE/BUG comments, keeps them in a
    persisted task list next to tasks you add by hand, and completes (or
    deletes) tasks whose comment disappears.

    \b
    EXAMPLES:
      doit-code scan                       # Scan the current workspace
      doit-code list                       # Pending tasks, newest first
      doit-code list --completed           # Completed tasks
      doit-code add "Write release notes"  # Manual task
      doit-code done parser.py:fix         # Complete by id fragment
      doit-code watch                      # Follow file saves
    """
    from doitcode import log

    log.set_verbose(verbose)
    log.set_quiet(quiet)

    ctx.obj = CliState(
        root=workspace.resolve(),
        overrides={
            "state_file": state_file,
            "similarity_threshold": threshold,
            "auto_complete": auto_complete,
        },
        all_projects=all_projects,
        desktop_notify=desktop_notify,
        quiet=quiet,
    )


# ── scanning ─────────────────────────────────────────────────────────


@main.command()
@click.option("--force", is_flag=True, help="Scan even when autoScan is disabled")
@click.pass_obj
def scan(state: CliState, force: bool) -> None:
    """Scan the workspace and reconcile the task list."""
    from doitcode import log

    tracker = state.tracker()
    with log.status("Scanning workspace…"):
        outcome = asyncio.run(tracker.scan_workspace(force=force))
    log.info(
        f"Scanned {outcome.report.files_scanned} files, "
        f"found {len(outcome.report.new_tasks)} TODOs"
    )
    _report(outcome.result, action="Scan")


@main.command()
@click.option("--force", is_flag=True, help="Scan even when autoScan is disabled")
@click.pass_obj
def rescan(state: CliState, force: bool) -> None:
    """Re-scan every file from scratch, then validate tracked tasks."""
    from doitcode import log

    tracker = state.tracker()
    log.info("Re-scanning workspace for tasks...")
    with log.status("Scanning workspace…"):
        outcome = asyncio.run(tracker.rescan(force=force))
    _report(outcome.result, action="Rescan")


@main.command()
@click.pass_obj
def validate(state: CliState) -> None:
    """Check that every tracked task still appears in its file."""
    tracker = state.tracker()
    result = asyncio.run(tracker.validate())
    _report(result, action="Validate")


@main.command()
@click.option("--no-initial-scan", is_flag=True, help="Skip the workspace scan on startup")
@click.pass_obj
def watch(state: CliState, no_initial_scan: bool) -> None:
    """Follow file saves/deletes and validate periodically (Ctrl+C to stop)."""
    from doitcode import log
    from doitcode.watch import watch_workspace

    tracker = state.tracker()
    tracker.store.subscribe(
        lambda change: log.debug(f"{change.kind.value}: {', '.join(change.task_ids)}")
    )

    async def _run() -> None:
        if not no_initial_scan:
            outcome = await tracker.scan_workspace()
            _report(outcome.result, action="Initial scan")
        if not tracker.cfg.auto_scan:
            log.warn("autoScan is disabled; file saves will be ignored.")
        log.info(f"Watching {tracker.root}. Press Ctrl+C to stop...")
        await asyncio.gather(
            watch_workspace(tracker.root, tracker.file_saved, tracker.file_deleted),
            tracker.run_periodic_validation(),
        )

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        log.warn("Stopped.")


# ── views ────────────────────────────────────────────────────────────


@main.command("list")
@click.option("--completed", "which", flag_value="completed", help="Show completed tasks")
@click.option("--all", "which", flag_value="all", help="Show pending and completed tasks")
@click.option("--pending", "which", flag_value="pending", default=True, hidden=True)
@click.pass_obj
def list_tasks(state: CliState, which: str) -> None:
    """List pending tasks (or completed ones), newest first."""
    from doitcode import log
    from doitcode.render import task_table
    from doitcode.tasks.views import filter_tasks, is_completed, is_pending

    tracker = state.tracker()
    scope = state.scope(tracker)

    views = {
        "pending": [("Pending", is_pending)],
        "completed": [("Completed", is_completed)],
        "all": [("Pending", is_pending), ("Completed", is_completed)],
    }[which]

    for title, predicate in views:
        tasks = filter_tasks(tracker.store.tasks, predicate, scope)
        if not tasks:
            log.info(f"No {title.lower()} tasks.")
            continue
        log.console.print(task_table(tasks, f"{title} ({len(tasks)})"))


@main.command()
@click.argument("task_ref")
@click.pass_obj
def show(state: CliState, task_ref: str) -> None:
    """Show everything known about one task."""
    from rich.markup import escape

    from doitcode import log
    from doitcode.render import task_details

    tracker = state.tracker()
    task = _resolve_task(tracker, task_ref)
    lines = task_details(task)
    log.console.print(f"[bold]{escape(lines[0])}[/bold]")
    for line in lines[1:]:
        log.console.print(f"  {escape(line)}")


# ── manual edits ─────────────────────────────────────────────────────


@main.command()
@click.argument("text")
@click.pass_obj
def add(state: CliState, text: str) -> None:
    """Add a task by hand."""
    from doitcode import log

    if not text.strip():
        raise click.BadParameter("Task text cannot be empty.", param_hint="TEXT")
    tracker = state.tracker()
    task = tracker.store.add_manual(text)
    log.success(f"New task {task.text} is added ({task.id})")


@main.command()
@click.argument("task_ref")
@click.argument("text")
@click.pass_obj
def edit(state: CliState, task_ref: str, text: str) -> None:
    """Change the text of a task."""
    from doitcode import log

    if not text.strip():
        raise click.BadParameter("Task text cannot be empty.", param_hint="TEXT")
    tracker = state.tracker()
    task = _resolve_task(tracker, task_ref)
    old_text = task.text
    tracker.store.edit(task.id, text)
    log.success(f"Task {old_text} was updated")


@main.command()
@click.argument("task_ref")
@click.pass_obj
def delete(state: CliState, task_ref: str) -> None:
    """Delete a task."""
    from doitcode import log

    tracker = state.tracker()
    task = _resolve_task(tracker, task_ref)
    tracker.store.delete(task.id)
    log.success(f"The task {task.text} was deleted")


@main.command()
@click.argument("task_ref")
@click.pass_obj
def done(state: CliState, task_ref: str) -> None:
    """Mark a task as complete."""
    from doitcode import log

    tracker = state.tracker()
    task = _resolve_task(tracker, task_ref)
    if task.completed:
        log.info("Task is already complete")
        return
    tracker.store.toggle(task.id)
    log.success("Task is now marked as complete")


@main.command()
@click.argument("task_ref")
@click.option("--force", is_flag=True, help="Revive a task whose comment was removed from its file")
@click.pass_obj
def reopen(state: CliState, task_ref: str, force: bool) -> None:
    """Mark a completed task as pending again."""
    from doitcode import log

    tracker = state.tracker()
    task = _resolve_task(tracker, task_ref)
    if not task.completed:
        log.info("Task is already pending")
        return
    try:
        tracker.store.reopen(task.id, force=force)
    except DoitError as exc:
        raise click.ClickException(str(exc)) from exc
    log.success("Task is now marked as incomplete")


@main.command()
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def reset(state: CliState, yes: bool) -> None:
    """Delete every task."""
    from doitcode import log

    if not yes:
        click.confirm("Delete all tasks?", abort=True)
    tracker = state.tracker()
    tracker.store.reset()
    log.success("All tasks have been reset")


# ── configuration ────────────────────────────────────────────────────


@main.command()
@click.argument("patterns", nargs=-1)
@click.option("--clear", is_flag=True, help="Remove all custom exclusion patterns")
@click.pass_obj
def exclude(state: CliState, patterns: tuple[str, ...], clear: bool) -> None:
    """Show or set workspace exclusion globs (e.g. '**/generated/**'), then rescan."""
    from doitcode import log

    current = list(read_workspace_config(state.root).get("exclude_patterns", []))
    if not patterns and not clear:
        if current:
            for pattern in current:
                log.console.print(f"  {pattern}")
        else:
            log.info("No custom exclusion patterns.")
        return

    new_patterns: list[str] = []
    if not clear:
        for raw in patterns:
            for item in raw.split(","):
                item = item.strip()
                if item and item not in new_patterns:
                    new_patterns.append(item)

    path = save_workspace_config(state.root, exclude_patterns=new_patterns)
    log.success(f"Exclusion patterns updated in {path}. Re-scanning...")

    tracker = state.tracker()
    outcome = asyncio.run(tracker.rescan())
    _report(outcome.result, action="Rescan")


@main.command("open")
@click.argument("task_ref")
@click.pass_obj
def open_task(state: CliState, task_ref: str) -> None:
    """Open the file a task came from, at its line."""
    from doitcode import log

    tracker = state.tracker()
    task = _resolve_task(tracker, task_ref)
    if task.origin is None:
        log.info("This task was not created from a file.")
        return

    path = task.origin.file_path
    line = task.origin.line_number + 1
    if not Path(path).is_file():
        raise click.ClickException(f"Failed to open file: {path} no longer exists")

    editor = os.environ.get("VISUAL") or os.environ.get("EDITOR")
    if editor:
        try:
            subprocess.call([*shlex.split(editor), f"+{line}", path])
        except OSError as exc:
            raise click.ClickException(f"Failed to open file: {exc}") from exc
    else:
        log.info(f"{path}:{line}")
        click.launch(path)
