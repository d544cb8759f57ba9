"""Branching chat quests rendered from a YAML screen graph."""
from __future__ import annotations

from .document import QuestDocument, load_document, parse_document
from .engine import QuestEngine, RenderedScreen
from .errors import (
    ConfigError,
    QuestError,
    SandboxClosedError,
    ScriptCompileError,
    ScriptError,
    ScriptRuntimeError,
    SubstitutionError,
)

__all__ = [
    "ConfigError",
    "QuestDocument",
    "QuestEngine",
    "QuestError",
    "RenderedScreen",
    "SandboxClosedError",
    "ScriptCompileError",
    "ScriptError",
    "ScriptRuntimeError",
    "SubstitutionError",
    "load_document",
    "parse_document",
]
