"""User-facing notifications."""

from abc import ABC, abstractmethod
from typing import List

import click


class Notifier(ABC):
    """Shows blocking messages to the user."""

    @abstractmethod
    def alert(self, message: str) -> None:
        """Show message and return once it has been delivered."""


class ConsoleNotifier(Notifier):
    """Prints alerts to stderr in the terminal view."""

    def alert(self, message: str) -> None:
        click.secho(f"! {message}", fg="red", err=True)


class RecordingNotifier(Notifier):
    """Collects alerts instead of showing them (headless use)."""

    def __init__(self):
        self.messages: List[str] = []

    def alert(self, message: str) -> None:
        self.messages.append(message)
