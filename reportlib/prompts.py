"""
Prompt adapters for the few questions a report run may ask.

The pipeline and connector only talk to a prompter, so runs can be driven
without a terminal: ConsolePrompter asks on stdin via rich, StaticPrompter
answers from pre-resolved values.
"""
from typing import Dict, Iterable, Iterator, Optional

from rich.console import Console
from rich.prompt import Confirm, Prompt


class PromptUnavailable(LookupError):
    """Raised by a non-interactive prompter that has no answer left."""


class ConsolePrompter:
    """Interactive prompter backed by rich.prompt."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def ask(self, key: str, message: str) -> str:
        return Prompt.ask(message, console=self.console).strip()

    def confirm(self, message: str, default: bool = False) -> bool:
        return Confirm.ask(message, default=default, console=self.console)


class StaticPrompter:
    """
    Non-interactive prompter.

    Args:
        answers: Answers per prompt key, consumed in order on repeated asks
        confirm_answer: Answer to every yes/no question
    """

    def __init__(self, answers: Optional[Dict[str, Iterable[str]]] = None, confirm_answer: bool = False):
        self._answers: Dict[str, Iterator[str]] = {
            key: iter([values] if isinstance(values, str) else values)
            for key, values in (answers or {}).items()
        }
        self.confirm_answer = confirm_answer
        self.asked = []

    def ask(self, key: str, message: str) -> str:
        self.asked.append(key)
        try:
            return next(self._answers[key]).strip()
        except (KeyError, StopIteration):
            raise PromptUnavailable(f"No answer available for '{key}' ({message})") from None

    def confirm(self, message: str, default: bool = False) -> bool:
        return self.confirm_answer
