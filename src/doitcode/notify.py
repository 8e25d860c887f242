"""User notifications (console line or desktop toast), best-effort."""

from __future__ import annotations

import subprocess
import sys

from doitcode import log

APP_TITLE = "doit-code"


def _run_quiet(*cmd: str) -> bool:
    """Fire-and-forget subprocess, ignore failures. Returns ``False`` if it could not start."""
    try:
        subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except (FileNotFoundError, OSError):
        return False
    return True


def _escape_applescript(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


def show_toast(message: str, title: str = APP_TITLE) -> bool:
    """Show a desktop notification. Returns ``True`` if a notifier was launched."""
    if sys.platform == "darwin":
        return _run_quiet(
            "osascript", "-e",
            f'display notification "{_escape_applescript(message)}" with title "{title}"',
        )
    if sys.platform.startswith("linux"):
        return _run_quiet("notify-send", title, message)
    if sys.platform == "win32":
        script = (
            "[System.Reflection.Assembly]::LoadWithPartialName('System.Windows.Forms') | Out-Null;"
            "$n = New-Object System.Windows.Forms.NotifyIcon;"
            "$n.Icon = [System.Drawing.SystemIcons]::Information;"
            "$n.Visible = $true;"
            f"$n.ShowBalloonTip(5000, '{title}', '{message.replace(chr(39), chr(39) * 2)}', 'Info')"
        )
        return _run_quiet("powershell.exe", "-Command", script)
    return False


class ConsoleNotifier:
    def notify(self, message: str) -> None:
        log.info(message)


class DesktopNotifier:
    """Desktop toast with a console line as fallback."""

    def notify(self, message: str) -> None:
        if not show_toast(message):
            log.info(message)


class NullNotifier:
    def notify(self, message: str) -> None:
        return None

