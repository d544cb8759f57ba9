"""Per-event quest flow: pick the next screen, run its script, render it."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .document import QuestDocument
from .errors import ScriptError, SubstitutionError
from .keyboard import KeyboardBuilder
from .render import TextRenderer
from .resolver import ScreenResolver
from .rng import RandomSource, SharedRandom
from .sandbox import LuaSandbox, new_sandbox
from .sessions import SessionRegistry, UserSession

log = logging.getLogger(__name__)

SCRIPT_ERROR_TEXT = "error: quest script failed"


@dataclass(frozen=True)
class RenderedScreen:
    user_id: int
    screen_id: str
    text: str
    rows: List[List[str]]


class QuestEngine:
    def __init__(
        self,
        document: QuestDocument,
        sessions: Optional[SessionRegistry] = None,
        rng: Optional[RandomSource] = None,
        sandbox_factory: Callable[[], LuaSandbox] = new_sandbox,
        rerender_unmatched: bool = True,
    ) -> None:
        self.document = document
        self.sessions = sessions if sessions is not None else SessionRegistry()
        self.renderer = TextRenderer()
        self.keyboard = KeyboardBuilder(self.renderer)
        self.resolver = ScreenResolver(document, self.renderer, rng if rng is not None else SharedRandom())
        self.sandbox_factory = sandbox_factory
        self.rerender_unmatched = rerender_unmatched

    # ----------------------------
    # Inbound events
    # ----------------------------
    def start(self, user_id: int) -> RenderedScreen:
        session = self.sessions.get_or_create(user_id)
        with session.lock:
            session.current_screen = self.document.initial_screen
            log.info("Quest started: user=%s screen=%s", user_id, session.current_screen)
            return self.show_screen(session)

    def handle_text(self, user_id: int, text: str) -> Optional[RenderedScreen]:
        """Advance the user's session by one message.

        Returns the screen to send, or None when nothing should be sent.
        """
        if text.startswith("/"):
            return None
        session = self.sessions.get_or_create(user_id)
        with session.lock:
            if not session.started:
                session.current_screen = self.document.initial_screen
                return self.show_screen(session)

            target = self.resolver.resolve(session, text)
            if target is None:
                log.debug("user=%s no button matches %r on %s", user_id, text, session.current_screen)
                if not self.rerender_unmatched:
                    return None
            else:
                log.debug("user=%s %s -> %s", user_id, session.current_screen, target)
                session.current_screen = target
            return self.show_screen(session)

    # ----------------------------
    # Screen entry
    # ----------------------------
    def show_screen(self, session: UserSession) -> RenderedScreen:
        screen = self.document.screen(session.current_screen)

        if screen.quest:
            session.reset_sandbox(self.sandbox_factory)
        session.declare_variables(screen.variables)

        text = self.renderer.render(session, screen.text)
        if screen.script is not None and session.sandbox is not None:
            try:
                session.sandbox.run(screen.script)
            except ScriptError as e:
                log.warning("Script failed: user=%s screen=%s: %s", session.user_id, screen.id, e)
                text = SCRIPT_ERROR_TEXT

        try:
            text = self.renderer.substitute(session, text)
        except SubstitutionError as e:
            log.warning("user=%s: %s", session.user_id, e)

        return RenderedScreen(
            user_id=session.user_id,
            screen_id=screen.id,
            text=text,
            rows=self.keyboard.build(session, screen),
        )

    def close(self) -> None:
        self.sessions.close()
