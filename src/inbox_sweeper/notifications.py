"""Notification collaborators used by the sync engine."""

from __future__ import annotations

from dataclasses import dataclass, field

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel


@dataclass
class Notification:
    title: str
    body: str
    data: dict = field(default_factory=dict)
    key: str | None = None  # notifications sharing a key replace each other
    priority: str = "default"
    ongoing: bool = False


class Notifier:
    """Base notifier. Subclasses deliver notifications somewhere visible."""

    def request_permission(self) -> bool:
        return True

    def notify(self, notification: Notification) -> None:
        raise NotImplementedError

    def dismiss(self, key: str) -> None:
        """Remove a keyed notification if it is still shown."""


class NullNotifier(Notifier):
    """Notifier for hosts that cannot show notifications."""

    def request_permission(self) -> bool:
        return False

    def notify(self, notification: Notification) -> None:
        pass


class ConsoleNotifier(Notifier):
    """Prints notifications to a Rich console.

    Ongoing notifications are tracked by key and printed as a single status
    line, so repeated progress updates replace each other in ``active``.
    """

    def __init__(self, console: Console | None = None) -> None:
        if console is None:
            from .display import console as shared_console

            console = shared_console
        self.console = console
        self.active: dict[str, Notification] = {}

    def notify(self, notification: Notification) -> None:
        if notification.key:
            self.active[notification.key] = notification
        if notification.ongoing:
            self.console.print(f"[dim]{escape(notification.title)}: {escape(notification.body)}[/dim]")
            return
        style = "bold" if notification.priority == "high" else ""
        self.console.print(
            Panel(escape(notification.body), title=escape(notification.title), title_align="left", style=style)
        )

    def dismiss(self, key: str) -> None:
        self.active.pop(key, None)
