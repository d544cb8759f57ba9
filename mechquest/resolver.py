"""Matches inbound text against the current screen's buttons."""
from __future__ import annotations

import logging
from typing import Optional

from .document import ButtonDef, QuestDocument
from .render import TextRenderer
from .rng import RandomSource
from .sessions import UserSession

log = logging.getLogger(__name__)


class ScreenResolver:
    def __init__(self, document: QuestDocument, renderer: TextRenderer, rng: RandomSource) -> None:
        self.document = document
        self.renderer = renderer
        self.rng = rng

    def resolve(self, session: UserSession, text: str) -> Optional[str]:
        """Return the screen the pressed button leads to, or None to stay.

        Buttons are compared by their label in the session's current
        language; the first exact match wins. A matched button may switch
        the session language for good.
        """
        screen = self.document.screen(session.current_screen)
        for button in screen.buttons:
            if self.renderer.render(session, button.text) != text:
                continue
            if button.language is not None:
                log.debug("user=%s language %s -> %s", session.user_id, session.language, button.language)
                session.language = button.language
            return self._destination(button)
        return None

    def _destination(self, button: ButtonDef) -> str:
        if button.exits:
            return button.exits[self.rng.uniform_index(len(button.exits))]
        return button.target
