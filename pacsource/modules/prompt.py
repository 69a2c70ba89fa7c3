from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.prompt import Confirm


class Prompter:
    """Answers yes/no questions. Subclasses decide where the answer comes from."""

    def confirm(self, question: str, default: bool) -> bool:
        raise NotImplementedError


class ConsolePrompter(Prompter):
    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def confirm(self, question: str, default: bool) -> bool:
        return Confirm.ask(question, default=default, console=self.console)


class DefaultPrompter(Prompter):
    """Takes the default answer for every question (--noconfirm)."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console

    def confirm(self, question: str, default: bool) -> bool:
        if self.console is not None:
            answer = "Y" if default else "N"
            self.console.print(f"{question} \\[{answer}]")
        return default
