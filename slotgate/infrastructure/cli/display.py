import json
import logging
from typing import Any, Mapping, Sequence

from rich.console import Console
from rich.json import JSON
from rich.prompt import Confirm
from rich.rule import Rule
from rich.table import Table
from rich.box import ROUNDED

from slotgate.domain.interfaces.user_interface import UserInterface

logger = logging.getLogger(__name__)


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Console = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def display_header(self, title: str, **kwargs: Any) -> None:
        self.console.print(Rule(f"[bold cyan]{title}[/bold cyan]", style=kwargs.get("style", "cyan")))

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        self.console.print(f"[blue]ℹ[/blue] {info_message}", highlight=False)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        self.console.print(f"[yellow]⚠ {warning_message}[/yellow]", highlight=False)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        self.console.print(f"[bold red]✖ {error_message}[/bold red]", highlight=False)

    def display_json(self, data: Any, **kwargs: Any) -> None:
        try:
            self.console.print(JSON(json.dumps(data, default=str)))
        except (TypeError, ValueError) as e:
            logger.error(f"Error rendering JSON output: {e}")
            self.console.print(repr(data))

    def display_table(self, title: str, columns: Sequence[str], rows: Sequence[Mapping[str, Any]]) -> None:
        table = Table(title=title, box=ROUNDED, header_style="bold cyan")
        for index, column in enumerate(columns):
            table.add_column(column, justify="left" if index == 0 else "right")
        for row in rows:
            table.add_row(*(str(row.get(column, "")) for column in columns))
        self.console.print(table)

    def confirm(self, question: str) -> bool:
        return Confirm.ask(question, console=self.console, default=False)
