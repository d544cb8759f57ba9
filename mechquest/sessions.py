"""Per-user sessions, kept for the lifetime of the process."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .sandbox import LuaSandbox

log = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "ru"


@dataclass
class UserSession:
    user_id: int
    current_screen: str = ""
    language: str = DEFAULT_LANGUAGE
    sandbox: Optional[LuaSandbox] = None
    # Only ever grows; names outlive the sandbox that declared them.
    variable_types: Dict[str, str] = field(default_factory=dict)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def started(self) -> bool:
        return bool(self.current_screen)

    def reset_sandbox(self, factory: Callable[[], LuaSandbox]) -> LuaSandbox:
        self.close_sandbox()
        self.sandbox = factory()
        return self.sandbox

    def close_sandbox(self) -> None:
        if self.sandbox is not None:
            self.sandbox.close()
            self.sandbox = None

    def declare_variables(self, variables: Dict[str, str]) -> None:
        self.variable_types.update(variables)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "screen": self.current_screen,
            "language": self.language,
            "sandbox": self.sandbox is not None,
            "variables": dict(self.variable_types),
        }


class SessionRegistry:
    """user id -> session map.

    There is no eviction: a session created for a user lives until the
    process exits, so memory grows with the number of distinct users.
    """

    def __init__(self) -> None:
        self._sessions: Dict[int, UserSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: int) -> bool:
        return user_id in self._sessions

    def get(self, user_id: int) -> Optional[UserSession]:
        return self._sessions.get(user_id)

    def get_or_create(self, user_id: int) -> UserSession:
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = UserSession(user_id=user_id)
                self._sessions[user_id] = session
                log.info("Session created: user=%s", user_id)
            return session

    def close(self) -> None:
        """Release every live sandbox; called on process shutdown."""
        with self._lock:
            for session in self._sessions.values():
                with session.lock:
                    session.close_sandbox()
