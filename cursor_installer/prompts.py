"""
Decision providers.

The reconciliation engine never reads from the terminal itself. It asks a
``DecisionProvider`` and receives already validated answers: an interactive
console implementation for the CLI and a preset one for unattended runs.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from pathlib import Path
from typing import Callable, Optional, Protocol, Sequence

from .inventory import InstallationRecord

logger = logging.getLogger(__name__)

InputFunc = Callable[[str], str]


class ConflictChoice(StrEnum):
    UPDATE = "u"
    REMOVE_ONE = "r"
    REMOVE_ALL = "a"
    SUBSTITUTE = "s"
    CANCEL = "c"


CONFLICT_MENU = """
Available options:
U - Update existing installation
R - Remove specific installation
A - Remove all installations
S - Install alongside the existing ones
C - Cancel installation
"""


class DecisionProvider(Protocol):
    def conflict_action(
        self, installations: Sequence[InstallationRecord]
    ) -> ConflictChoice: ...
    def select_installation(
        self, installations: Sequence[InstallationRecord], purpose: str
    ) -> int: ...
    def choose_again(self) -> bool: ...
    def continue_install(self) -> bool: ...
    def install_directory(self, default: Path) -> Path: ...
    def disable_sandbox(self) -> bool: ...
    def confirm_uninstall(self) -> bool: ...


def ask(
    question: str,
    default: str = "",
    valid_options: str = "",
    input_func: InputFunc = input,
) -> str:
    """
    Prompt until the answer is acceptable.

    Args:
        question: Prompt text
        default: Value used when the answer is empty
        valid_options: Characters accepted as a one-letter answer, compared
            case-insensitively; when empty, any non-empty answer is accepted
        input_func: Line reader, ``input`` by default

    Returns:
        The answer, lower-cased when ``valid_options`` is given
    """
    prompt = question
    if default:
        prompt += f" (default: {default})"
    if valid_options:
        prompt += f" [{valid_options}]"
    prompt += ": "

    allowed = valid_options.lower()
    while True:
        answer = input_func(prompt).strip() or default
        if allowed:
            if len(answer) == 1 and answer.lower() in allowed:
                return answer.lower()
            logger.error(f"Invalid option. Please choose one of: [{valid_options}]")
        elif answer:
            return answer
        else:
            logger.error("Please provide a valid response.")


class ConsoleDecisionProvider:
    """Interactive provider reading answers from the terminal."""

    def __init__(
        self,
        input_func: InputFunc = input,
        output: Callable[[str], None] = print,
    ) -> None:
        self.input_func = input_func
        self.output = output

    def _ask(self, question: str, default: str = "", valid_options: str = "") -> str:
        return ask(question, default, valid_options, self.input_func)

    def _yes(self, question: str, default: str) -> bool:
        return self._ask(f"{question} (y/n)", default, "yn") == "y"

    def conflict_action(
        self, installations: Sequence[InstallationRecord]
    ) -> ConflictChoice:
        logger.warning("Existing Cursor installations found:")
        for number, record in enumerate(installations, start=1):
            logger.warning(f"  {number}. {record.path}")
        self.output(CONFLICT_MENU)
        return ConflictChoice(self._ask("What do you want to do?", "c", "URASC"))

    def select_installation(
        self, installations: Sequence[InstallationRecord], purpose: str
    ) -> int:
        count = len(installations)
        while True:
            choice = self.input_func(
                f"Enter the number of the installation you want to {purpose} (1-{count}): "
            ).strip()
            if choice.isdigit() and 1 <= int(choice) <= count:
                return int(choice) - 1
            logger.error(f"Invalid choice. Please enter a number between 1 and {count}.")

    def choose_again(self) -> bool:
        return self._yes("Do you want to choose another installation?", "y")

    def continue_install(self) -> bool:
        return self._yes("Do you want to continue with the Cursor installation?", "y")

    def install_directory(self, default: Path) -> Path:
        answer = self._ask("Enter the application installation directory", str(default))
        return Path(answer).expanduser()

    def disable_sandbox(self) -> bool:
        return self._yes("Do you want to run Cursor without sandbox?", "y")

    def confirm_uninstall(self) -> bool:
        return self._yes("Are you sure you want to uninstall Cursor?", "n")


class PresetDecisionProvider:
    """Non-interactive provider answering every question from fixed values."""

    def __init__(
        self,
        conflict: ConflictChoice = ConflictChoice.SUBSTITUTE,
        selection: int = 0,
        install_dir: Optional[Path] = None,
        no_sandbox: bool = True,
        proceed: bool = True,
        uninstall: bool = False,
    ) -> None:
        self.conflict = conflict
        self.selection = selection
        self.install_dir = install_dir
        self.no_sandbox = no_sandbox
        self.proceed = proceed
        self.uninstall = uninstall

    def conflict_action(
        self, installations: Sequence[InstallationRecord]
    ) -> ConflictChoice:
        return self.conflict

    def select_installation(
        self, installations: Sequence[InstallationRecord], purpose: str
    ) -> int:
        if not 0 <= self.selection < len(installations):
            raise ValueError(
                f"Preset selection {self.selection + 1} is out of range 1-{len(installations)}"
            )
        return self.selection

    def choose_again(self) -> bool:
        return False

    def continue_install(self) -> bool:
        return self.proceed

    def install_directory(self, default: Path) -> Path:
        return self.install_dir or default

    def disable_sandbox(self) -> bool:
        return self.no_sandbox

    def confirm_uninstall(self) -> bool:
        return self.uninstall
