"""Quest document: the immutable screen graph and its YAML loader."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import yaml

from .errors import ConfigError

log = logging.getLogger(__name__)

TYPE_TAGS = ("int", "string", "float")
PREFIX_KEY = "prefix"
SUFFIX_KEY = "suffix"


# ----------------------------
# Model
# ----------------------------
@dataclass(frozen=True)
class TextSpec:
    """Screen or button text.

    ``literal`` is set for plain strings, ``translations`` for per-language
    maps. Neither set means the node had no text at all.
    """

    literal: Optional[str] = None
    translations: Optional[Dict[str, str]] = None
    prefix: Optional[str] = None
    suffix: Optional[str] = None

    @property
    def missing(self) -> bool:
        return self.literal is None and self.translations is None


@dataclass(frozen=True)
class ButtonDef:
    target: str
    text: TextSpec = field(default_factory=TextSpec)
    language: Optional[str] = None
    exits: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ButtonLayout:
    """Buttons in document order; a flat layout is a single row."""

    rows: Tuple[Tuple[ButtonDef, ...], ...]
    grouped: bool = False

    def __iter__(self) -> Iterator[ButtonDef]:
        for row in self.rows:
            yield from row


@dataclass(frozen=True)
class ScreenDef:
    id: str
    text: TextSpec
    buttons: ButtonLayout
    quest: bool = False
    variables: Dict[str, str] = field(default_factory=dict)
    script: Optional[str] = None


@dataclass(frozen=True)
class QuestDocument:
    initial_screen: str
    screens: Dict[str, ScreenDef]

    def screen(self, screen_id: str) -> ScreenDef:
        return self.screens[screen_id]


# ----------------------------
# Parsing
# ----------------------------
def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_scalar(value: Any) -> bool:
    return value is not None and not isinstance(value, (Mapping, list))


def _where(**context: Optional[str]) -> str:
    parts = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
    return f" ({parts})" if parts else ""


class _DocumentParser:
    def __init__(self) -> None:
        self.issues: List[str] = []

    def issue(self, code: str, message: str, **context: Optional[str]) -> None:
        self.issues.append(f"[{code}] {message}{_where(**context)}")

    def parse(self, root: Any) -> QuestDocument:
        if not isinstance(root, Mapping):
            self.issue("BAD_DOCUMENT", "Quest document must be a map.")
            raise ConfigError("Invalid quest document.", self.issues)

        screens_node = root.get("screens")
        screens: Dict[str, ScreenDef] = {}
        if not isinstance(screens_node, Mapping) or not screens_node:
            self.issue("NO_SCREENS", "'screens' must be a non-empty map.")
        else:
            for key, node in screens_node.items():
                screen_id = _scalar(key)
                screens[screen_id] = self.parse_screen(screen_id, node)

        initial = root.get("initial_screen")
        initial_screen = _scalar(initial) if _is_scalar(initial) else ""
        if not initial_screen:
            self.issue("NO_INITIAL_SCREEN", "'initial_screen' must name a screen.")
        elif screens and initial_screen not in screens:
            self.issue("UNKNOWN_SCREEN", "Initial screen is not declared.", screen=initial_screen)

        for screen in screens.values():
            self.check_references(screen, screens)

        if self.issues:
            raise ConfigError("Invalid quest document.", self.issues)
        return QuestDocument(initial_screen=initial_screen, screens=screens)

    def parse_screen(self, screen_id: str, node: Any) -> ScreenDef:
        if not isinstance(node, Mapping):
            self.issue("BAD_SCREEN", "Screen must be a map.", screen=screen_id)
            return ScreenDef(id=screen_id, text=TextSpec(), buttons=ButtonLayout(()))

        quest = node.get("quest", False)
        if quest is None:
            quest = False
        elif not isinstance(quest, bool):
            self.issue("BAD_QUEST_FLAG", "'quest' must be a boolean.", screen=screen_id)
            quest = False

        script = node.get("script")
        if script is not None and not isinstance(script, str):
            self.issue("BAD_SCRIPT", "'script' must be a string.", screen=screen_id)
            script = None

        return ScreenDef(
            id=screen_id,
            text=self.parse_text(node.get("text"), screen=screen_id),
            buttons=self.parse_layout(screen_id, node.get("buttons")),
            quest=quest,
            variables=self.parse_variables(screen_id, node.get("variables")),
            script=script,
        )

    def parse_text(self, node: Any, **context: Optional[str]) -> TextSpec:
        if node is None:
            return TextSpec()
        if isinstance(node, Mapping):
            translations: Dict[str, str] = {}
            prefix = suffix = None
            for key, value in node.items():
                key = _scalar(key)
                if not _is_scalar(value):
                    self.issue("BAD_TEXT", f"Text entry '{key}' must be a string.", **context)
                    continue
                if key == PREFIX_KEY:
                    prefix = _scalar(value)
                elif key == SUFFIX_KEY:
                    suffix = _scalar(value)
                else:
                    translations[key] = _scalar(value)
            return TextSpec(translations=translations, prefix=prefix, suffix=suffix)
        if _is_scalar(node):
            return TextSpec(literal=_scalar(node))
        self.issue("BAD_TEXT", "Text must be a string or a language map.", **context)
        return TextSpec()

    def parse_variables(self, screen_id: str, node: Any) -> Dict[str, str]:
        if node is None:
            return {}
        if not isinstance(node, Mapping):
            self.issue("BAD_VARIABLES", "'variables' must be a map.", screen=screen_id)
            return {}
        variables: Dict[str, str] = {}
        for name, tag in node.items():
            tag = _scalar(tag) if _is_scalar(tag) else ""
            if tag not in TYPE_TAGS:
                self.issue(
                    "BAD_VARIABLE_TYPE",
                    f"Variable type must be one of {', '.join(TYPE_TAGS)}.",
                    screen=screen_id,
                    variable=_scalar(name),
                )
                continue
            variables[_scalar(name)] = tag
        return variables

    def parse_layout(self, screen_id: str, node: Any) -> ButtonLayout:
        if node is None:
            self.issue("NO_BUTTONS", "Screen declares neither buttons nor rows.", screen=screen_id)
            return ButtonLayout(())
        if not isinstance(node, Mapping):
            self.issue("BAD_BUTTONS", "'buttons' must be a map.", screen=screen_id)
            return ButtonLayout(())
        if "rows" not in node:
            layout = ButtonLayout((self.parse_row(screen_id, node),), grouped=False)
        else:
            rows_node = node["rows"]
            if isinstance(rows_node, Mapping):
                raw_rows: List[Any] = list(rows_node.values())
            elif isinstance(rows_node, list):
                raw_rows = rows_node
            else:
                self.issue("BAD_ROWS", "'rows' must be a list or a map of rows.", screen=screen_id)
                return ButtonLayout((), grouped=True)
            layout = ButtonLayout(tuple(self.parse_row(screen_id, row) for row in raw_rows), grouped=True)

        if not any(layout.rows):
            self.issue("NO_BUTTONS", "Screen declares no buttons.", screen=screen_id)
        return layout

    def parse_row(self, screen_id: str, node: Any) -> Tuple[ButtonDef, ...]:
        if node is None:
            return ()
        if isinstance(node, Mapping):
            entries = list(node.items())
        elif isinstance(node, list):
            entries = []
            for item in node:
                if not isinstance(item, Mapping):
                    self.issue("BAD_ROW", "Row items must be button maps.", screen=screen_id)
                    continue
                entries.extend(item.items())
        else:
            self.issue("BAD_ROW", "Row must be a map or a list of buttons.", screen=screen_id)
            return ()
        return tuple(self.parse_button(screen_id, key, value) for key, value in entries)

    def parse_button(self, screen_id: str, key: Any, node: Any) -> ButtonDef:
        target = _scalar(key)
        if node is None:
            return ButtonDef(target=target)
        if not isinstance(node, Mapping):
            self.issue("BAD_BUTTON", "Button must be a map.", screen=screen_id, button=target)
            return ButtonDef(target=target)

        language = node.get("language")
        if language is not None:
            if _is_scalar(language):
                language = _scalar(language)
            else:
                self.issue("BAD_LANGUAGE", "'language' must be a string.", screen=screen_id, button=target)
                language = None

        exits_node = node.get("exits")
        exits: Tuple[str, ...] = ()
        if isinstance(exits_node, list):
            if all(_is_scalar(item) for item in exits_node):
                exits = tuple(_scalar(item) for item in exits_node)
            else:
                self.issue("BAD_EXITS", "'exits' entries must be screen ids.", screen=screen_id, button=target)
        elif exits_node is not None:
            self.issue("BAD_EXITS", "'exits' must be a list.", screen=screen_id, button=target)

        return ButtonDef(
            target=target,
            text=self.parse_text(node.get("text"), screen=screen_id, button=target),
            language=language,
            exits=exits,
        )

    def check_references(self, screen: ScreenDef, screens: Mapping[str, ScreenDef]) -> None:
        for button in screen.buttons:
            for target in (button.target,) + button.exits:
                if target not in screens:
                    self.issue("UNKNOWN_SCREEN", "Button leads to an undeclared screen.",
                               screen=screen.id, button=button.target, target=target)


def parse_document(root: Any) -> QuestDocument:
    """Build and validate a document from an already-parsed YAML tree."""
    return _DocumentParser().parse(root)


def load_document(path: Union[str, Path]) -> QuestDocument:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            root = yaml.safe_load(handle)
    except OSError as e:
        raise ConfigError(f"Cannot read quest file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse quest file {path}: {e}") from e
    document = parse_document(root)
    log.info("Loaded quest %s: %d screens, starting at '%s'", path, len(document.screens), document.initial_screen)
    return document
