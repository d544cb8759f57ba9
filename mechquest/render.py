"""Screen text: localization, prefix/suffix decoration and variable substitution."""
from __future__ import annotations

from typing import Dict, Union

from .document import TextSpec
from .errors import SubstitutionError
from .sessions import UserSession

MISSING_TEXT = "error: missing text"


def missing_translation(language: str, screen_id: str) -> str:
    return f"error: no translation for language '{language}' on screen '{screen_id}'"


class TextRenderer:
    def render(self, session: UserSession, text: TextSpec) -> str:
        """Resolve ``text`` for the session's language.

        Problems with the text itself come back as readable diagnostics and
        are shown to the user like any other text.
        """
        if text.literal is not None:
            return text.literal
        if text.translations is None:
            return MISSING_TEXT
        translated = text.translations.get(session.language)
        if translated is None:
            return missing_translation(session.language, session.current_screen)
        if text.prefix is not None:
            translated = text.prefix + " " + translated
        if text.suffix is not None:
            translated = translated + text.suffix
        return translated

    def substitute(self, session: UserSession, text: str) -> str:
        """Fill ``{name}`` placeholders from the session's live sandbox.

        Only globals the sandbox currently exposes and the session has a
        declared type for are passed. Raises SubstitutionError when the text
        names a placeholder that is not among them.
        """
        sandbox = session.sandbox
        if sandbox is None:
            return text

        values: Dict[str, Union[int, float, str]] = {}
        for name in sandbox.global_names():
            tag = session.variable_types.get(name)
            if tag == "int":
                values[name] = sandbox.read_int(name)
            elif tag == "float":
                values[name] = sandbox.read_float(name)
            elif tag == "string":
                values[name] = sandbox.read_string(name)
        if not values:
            return text

        try:
            return text.format(**values)
        except (KeyError, IndexError, ValueError, AttributeError, TypeError) as e:
            raise SubstitutionError(f"Cannot substitute variables into screen '{session.current_screen}': {e!r}") from e
