"""Desktop and log notifications for build milestones.

Notifiers are best effort: a failing notifier is logged and never changes
the outcome of a build.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, title: str, message: str, *, subtitle: str = "", success: bool = True) -> None:
        ...


class LoggingNotifier:
    """Write notifications to the log."""

    def notify(self, title: str, message: str, *, subtitle: str = "", success: bool = True) -> None:
        text = f"{title}: {message}" + (f" ({subtitle})" if subtitle else "")
        if success:
            logger.info(text)
        else:
            logger.error(text)


class NullNotifier:
    """Discard notifications."""

    def notify(self, title: str, message: str, *, subtitle: str = "", success: bool = True) -> None:
        return None


def _applescript_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class MacOSNotifier:
    """Show a macOS notification through ``osascript``.

    Parameters
    ----------
    timeout : float, optional
        Seconds to wait for ``osascript``.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    def script(self, title: str, message: str, subtitle: str, success: bool) -> str:
        sound = "Glass" if success else "Basso"
        return (
            f"display notification {_applescript_string(message)} "
            f"with title {_applescript_string(title)} "
            f"subtitle {_applescript_string(subtitle)} "
            f"sound name {_applescript_string(sound)}"
        )

    def notify(self, title: str, message: str, *, subtitle: str = "", success: bool = True) -> None:
        if shutil.which("osascript") is None:
            logger.debug("osascript not available; notification skipped")
            return
        try:
            subprocess.run(
                ["osascript", "-e", self.script(title, message, subtitle, success)],
                check=True,
                timeout=self.timeout,
                capture_output=True,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning(f"Notification failed: {exc}")


def safe_notify(
    notifier: Notifier | None,
    title: str,
    message: str,
    *,
    subtitle: str = "",
    success: bool = True,
) -> None:
    """Call ``notifier`` and log, rather than raise, anything it throws."""
    if notifier is None:
        return
    try:
        notifier.notify(title, message, subtitle=subtitle, success=success)
    except Exception as exc:
        logger.warning(f"Notifier {type(notifier).__name__} failed: {exc}")


def create_notifier(kind: str) -> Notifier:
    """Return the notifier named by ``kind`` (``log``, ``macos`` or ``none``)."""
    if kind == "macos":
        return MacOSNotifier()
    if kind == "none":
        return NullNotifier()
    return LoggingNotifier()


__all__ = [
    "LoggingNotifier",
    "MacOSNotifier",
    "Notifier",
    "NullNotifier",
    "create_notifier",
    "safe_notify",
]
