"""CLI tests: every command runs against a real temp workspace and state file."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from doitcode import log
from doitcode.cli import main
from doitcode.config import WORKSPACE_CONFIG_FILE
from doitcode.io_utils import read_json, read_text
from doitcode.workspace import normalize_path
from fakes import write_file


@pytest.fixture
def cli_runner(monkeypatch):
    """Click CliRunner for invoking the CLI in-process (wide console, no wrapping)."""
    monkeypatch.setattr(log.console, "width", 200)
    return CliRunner()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    root.mkdir()
    write_file(root / "app.py", "import os\n# TODO: wire the config loader\n")
    return root


def _state() -> list[dict]:
    path = Path(os.environ["DOITCODE_STATE_FILE"])
    if not path.is_file():
        return []
    return json.loads(read_text(path))


def _invoke(runner: CliRunner, workspace: Path, *args: str, **kwargs):
    return runner.invoke(main, ["-w", str(workspace), *args], catch_exceptions=False, **kwargs)


# ── Main entry and help ────────────────────────────────────────────────


class TestCliHelpAndVersion:
    """Basic entry: --help, --version, -h."""

    def test_help_long(self, cli_runner):
        r = cli_runner.invoke(main, ["--help"])
        assert r.exit_code == 0
        assert "doit-code" in r.output

    def test_help_short(self, cli_runner):
        r = cli_runner.invoke(main, ["-h"])
        assert r.exit_code == 0
        assert "scan" in r.output

    def test_version(self, cli_runner):
        r = cli_runner.invoke(main, ["--version"])
        assert r.exit_code == 0
        assert "doit-code" in r.output
        assert "0.3.0" in r.output

    @pytest.mark.parametrize(
        "command",
        ["scan", "rescan", "validate", "watch", "list", "show", "add", "edit",
         "delete", "done", "reopen", "reset", "exclude", "open"],
    )
    def test_subcommand_help(self, cli_runner, command):
        r = cli_runner.invoke(main, [command, "--help"])
        assert r.exit_code == 0

    def test_missing_workspace_fails(self, cli_runner, tmp_path):
        r = cli_runner.invoke(main, ["-w", str(tmp_path / "nope"), "list"])
        assert r.exit_code != 0


# ── Scanning ─────────────────────────────────────────────────────────────


class TestCliScan:
    def test_scan_adds_tasks(self, cli_runner, workspace):
        r = _invoke(cli_runner, workspace, "scan")
        assert r.exit_code == 0
        assert "found 1 TODOs" in r.output

        state = _state()
        assert len(state) == 1
        assert state[0]["text"] == "wire the config loader"
        assert state[0]["project"] == "ws"
        assert state[0]["origin"]["filePath"] == normalize_path(workspace / "app.py")
        assert state[0]["origin"]["lineNumber"] == 1

    def test_scan_twice_is_idempotent(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "scan")
        r = _invoke(cli_runner, workspace, "scan")
        assert r.exit_code == 0
        assert "no changes" in r.output
        assert len(_state()) == 1

    def test_auto_scan_off_needs_force(self, cli_runner, workspace):
        write_file(workspace / WORKSPACE_CONFIG_FILE, json.dumps({"autoScan": False}))
        _invoke(cli_runner, workspace, "scan")
        assert _state() == []
        _invoke(cli_runner, workspace, "scan", "--force")
        assert len(_state()) == 1

    def test_validate_completes_removed_line(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "scan")
        write_file(workspace / "app.py", "import os\n")
        r = _invoke(cli_runner, workspace, "validate")
        assert r.exit_code == 0
        assert "1 completed" in r.output
        state = _state()
        assert state[0]["completed"] is True
        assert state[0]["origin"]["status"] == "on-removed"

    def test_auto_delete_flag(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "scan")
        write_file(workspace / "app.py", "import os\n")
        _invoke(cli_runner, workspace, "--auto-delete", "validate")
        assert _state() == []

    def test_rescan_edit_in_place(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "scan")
        write_file(workspace / "app.py", "import os\n# TODO: wire the config loaders\n")
        r = _invoke(cli_runner, workspace, "rescan")
        assert r.exit_code == 0
        state = _state()
        assert [t["text"] for t in state] == ["wire the config loaders"]
        assert state[0]["completed"] is False

    def test_exclude_writes_config_and_rescans(self, cli_runner, workspace):
        r = _invoke(cli_runner, workspace, "exclude", "**/gen/**,temp")
        assert r.exit_code == 0
        assert read_json(workspace / WORKSPACE_CONFIG_FILE)["exclude_patterns"] == ["**/gen/**", "temp"]
        assert len(_state()) == 1

        r = _invoke(cli_runner, workspace, "exclude")
        assert "temp" in r.output

        _invoke(cli_runner, workspace, "exclude", "--clear")
        assert read_json(workspace / WORKSPACE_CONFIG_FILE)["exclude_patterns"] == []


# ── Manual edits and views ───────────────────────────────────────────────


class TestCliTasks:
    def test_add_and_list(self, cli_runner, workspace):
        r = _invoke(cli_runner, workspace, "add", "Write release notes")
        assert r.exit_code == 0
        r = _invoke(cli_runner, workspace, "list")
        assert "Write release notes" in r.output
        assert _state()[0]["id"].startswith("manual_")

    def test_add_empty_text_fails(self, cli_runner, workspace):
        r = cli_runner.invoke(main, ["-w", str(workspace), "add", "   "])
        assert r.exit_code != 0
        assert _state() == []

    def test_done_and_completed_view(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "scan")
        r = _invoke(cli_runner, workspace, "done", "config loader")
        assert r.exit_code == 0
        assert "complete" in r.output
        assert _state()[0]["completed"] is True

        r = _invoke(cli_runner, workspace, "list")
        assert "No pending tasks" in r.output
        r = _invoke(cli_runner, workspace, "list", "--completed")
        assert "wire the config loader" in r.output

    def test_reopen_removed_task_is_refused(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "scan")
        write_file(workspace / "app.py", "import os\n")
        _invoke(cli_runner, workspace, "validate")

        r = cli_runner.invoke(main, ["-w", str(workspace), "reopen", "config loader"])
        assert r.exit_code == 1
        assert "cannot be marked as pending" in r.output

        r = _invoke(cli_runner, workspace, "reopen", "config loader", "--force")
        assert r.exit_code == 0
        state = _state()
        assert state[0]["completed"] is False
        assert state[0]["origin"]["status"] == "stale"

    def test_edit_and_delete(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "add", "first draft text")
        task_id = _state()[0]["id"]

        _invoke(cli_runner, workspace, "edit", task_id, "second draft text")
        assert _state()[0]["text"] == "second draft text"

        r = _invoke(cli_runner, workspace, "delete", task_id)
        assert "was deleted" in r.output
        assert _state() == []

    def test_unknown_and_ambiguous_refs(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "add", "first manual task")
        _invoke(cli_runner, workspace, "add", "second manual task")

        r = cli_runner.invoke(main, ["-w", str(workspace), "done", "does-not-exist"])
        assert r.exit_code == 1
        assert "No task with id" in r.output

        r = cli_runner.invoke(main, ["-w", str(workspace), "done", "manual_"])
        assert r.exit_code == 1
        assert "ambiguous" in r.output

    def test_show(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "scan")
        r = _invoke(cli_runner, workspace, "show", "config loader")
        assert r.exit_code == 0
        assert "Type: TODO" in r.output
        assert "Line: 2" in r.output

    def test_reset(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "scan")
        r = cli_runner.invoke(main, ["-w", str(workspace), "reset"], input="n\n")
        assert r.exit_code == 1
        assert len(_state()) == 1

        r = _invoke(cli_runner, workspace, "reset", "--yes")
        assert r.exit_code == 0
        assert _state() == []

    def test_all_projects(self, cli_runner, workspace, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        _invoke(cli_runner, other, "add", "task of other project")

        r = _invoke(cli_runner, workspace, "list")
        assert "task of other project" not in r.output
        r = _invoke(cli_runner, workspace, "--all-projects", "list")
        assert "task of other project" in r.output


class TestCliOpen:
    def test_manual_task_has_no_file(self, cli_runner, workspace):
        _invoke(cli_runner, workspace, "add", "manual task here")
        r = _invoke(cli_runner, workspace, "open", "manual_")
        assert "This task was not created from a file." in r.output

    def test_opens_editor_at_line(self, cli_runner, workspace, monkeypatch):
        calls = []
        monkeypatch.delenv("VISUAL", raising=False)
        monkeypatch.setenv("EDITOR", "myeditor --wait")
        monkeypatch.setattr("doitcode.cli.subprocess.call", lambda args: calls.append(args) or 0)

        _invoke(cli_runner, workspace, "scan")
        r = _invoke(cli_runner, workspace, "open", "config loader")
        assert r.exit_code == 0
        assert calls == [["myeditor", "--wait", "+2", normalize_path(workspace / "app.py")]]
