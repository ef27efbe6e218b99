"""Resume prompt: asks the user whether to restart an auto-stopped session."""

import logging
from typing import Callable, Optional

from rich.console import Console
from rich.panel import Panel

logger = logging.getLogger(__name__)

AcceptCallback = Callable[[Optional[str]], None]


class ResumePrompt:
    """Base prompt. ``show`` is fire-and-forget; acceptance arrives later."""

    def __init__(self):
        self._on_accepted: Optional[AcceptCallback] = None

    def on_user_accepted(self, callback: Optional[AcceptCallback]) -> None:
        """Register (or clear, with None) the acceptance callback."""
        self._on_accepted = callback

    def show(self, project_id: str, project_name: str) -> None:
        raise NotImplementedError

    def accept(self, project_id: Optional[str] = None) -> None:
        """Deliver the user's acceptance to the registered callback."""
        if self._on_accepted is None:
            logger.debug("Resume accepted with no listener registered")
            return
        self._on_accepted(project_id)


class LoggingResumePrompt(ResumePrompt):
    """Prompt that only logs. Used where no UI can be shown."""

    def show(self, project_id: str, project_name: str) -> None:
        logger.info("Resume available for %s (%s)", project_name, project_id)


class ConsoleResumePrompt(ResumePrompt):
    """Prompt rendered as a rich panel on the terminal."""

    def __init__(self, console: Optional[Console] = None):
        super().__init__()
        self.console = console or Console()
        self.pending_project_id: Optional[str] = None

    def show(self, project_id: str, project_name: str) -> None:
        self.pending_project_id = project_id
        self.console.print(
            Panel(
                f"Tracking of [bold]{project_name}[/bold] stopped while you were away.\n"
                "Type [cyan]r[/cyan] and Enter to resume.",
                title="Resume tracking?",
                border_style="yellow",
            )
        )

    def accept(self, project_id: Optional[str] = None) -> None:
        chosen = project_id or self.pending_project_id
        self.pending_project_id = None
        super().accept(chosen)
