"""Choice rows shown under a screen."""
from __future__ import annotations

from typing import List

from .document import ScreenDef
from .render import TextRenderer
from .sessions import UserSession


class KeyboardBuilder:
    def __init__(self, renderer: TextRenderer) -> None:
        self.renderer = renderer

    def build(self, session: UserSession, screen: ScreenDef) -> List[List[str]]:
        # Same rows, same order as the resolver walks them.
        return [
            [self.renderer.render(session, button.text) for button in row]
            for row in screen.buttons.rows
        ]
