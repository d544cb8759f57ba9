"""Exceptions raised by the quest core."""
from __future__ import annotations

from typing import List, Sequence


class QuestError(Exception):
    """Base exception for the quest core."""


class ConfigError(QuestError):
    """Raised when the quest document or the process settings are invalid."""

    def __init__(self, message: str, issues: Sequence[str] = ()) -> None:
        self.issues: List[str] = list(issues)
        if self.issues:
            message = message + "\n" + "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(message)


class ScriptError(QuestError):
    """A screen script could not be run."""


class ScriptCompileError(ScriptError):
    """The script source did not compile."""


class ScriptRuntimeError(ScriptError):
    """The compiled script failed while running."""


class SubstitutionError(QuestError):
    """The screen text references a placeholder with no value."""


class SandboxClosedError(QuestError):
    """The sandbox was used after being closed."""
