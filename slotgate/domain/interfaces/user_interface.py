"""Interface for interacting with the user (output only).

Defines the contract for displaying information, errors, warnings and
structured results, allowing different UI implementations.
"""

import abc
from typing import Any, Mapping, Sequence


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_header(self, title: str, **kwargs: Any) -> None:
        """Displays a section header (one per reset step)."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user."""
        pass

    @abc.abstractmethod
    def display_json(self, data: Any, **kwargs: Any) -> None:
        """Displays a JSON-compatible value."""
        pass

    @abc.abstractmethod
    def display_table(self, title: str, columns: Sequence[str], rows: Sequence[Mapping[str, Any]]) -> None:
        """Displays rows as a table; each row maps column name to value."""
        pass

    @abc.abstractmethod
    def confirm(self, question: str) -> bool:
        """Asks a yes/no question synchronously."""
        pass
