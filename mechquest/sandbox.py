"""Per-session Lua sandbox holding the quest's global variables."""
from __future__ import annotations

import logging
import math
from typing import Any, List, Union

from lupa import LuaError, LuaRuntime

from .errors import SandboxClosedError, ScriptCompileError, ScriptRuntimeError

log = logging.getLogger(__name__)

# Host access stripped from every fresh runtime; the base library and the
# pure string/table/math/utf8/coroutine libraries stay available.
_REMOVED_GLOBALS = ("io", "os", "package", "debug", "require", "dofile", "loadfile", "load", "python")

_STRIP_SCRIPT = "for _, name in ipairs({%s}) do _G[name] = nil end" % ", ".join(
    f'"{name}"' for name in _REMOVED_GLOBALS
)


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


class LuaSandbox:
    """Owned Lua state. Close it when the session moves to a new quest.

    The runtime hands strings back as raw bytes; they are decoded here so
    that whatever bytes a script stores cannot break a read.
    """

    def __init__(self) -> None:
        self._runtime = LuaRuntime(
            encoding=None,
            register_eval=False,
            register_builtins=False,
            unpack_returned_tuples=True,
        )
        self._runtime.execute(_STRIP_SCRIPT.encode("utf-8"))
        # Scripts may shadow tostring; reads keep the builtin.
        self._tostring = self._runtime.globals()[b"tostring"]
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._runtime = None
            self._tostring = None

    def _live(self) -> LuaRuntime:
        if self._closed:
            raise SandboxClosedError("Sandbox is closed.")
        return self._runtime

    def run(self, source: str) -> None:
        """Compile ``source`` and run it once as a top-level chunk."""
        runtime = self._live()
        try:
            chunk = runtime.compile(source.encode("utf-8"))
        except LuaError as e:
            raise ScriptCompileError(str(e)) from e
        try:
            chunk()
        except LuaError as e:
            raise ScriptRuntimeError(str(e)) from e

    def global_names(self) -> List[str]:
        names = []
        for key in self._live().globals():
            if not isinstance(key, bytes):
                continue
            try:
                names.append(key.decode("utf-8"))
            except UnicodeDecodeError:
                continue
        return names

    def _get(self, name: str) -> Any:
        return self._live().globals()[name.encode("utf-8")]

    def read_number(self, name: str) -> Union[int, float]:
        value = self._get(name)
        if isinstance(value, bool):
            return 0
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, bytes):
            text = _decode(value)
            try:
                return int(text)
            except ValueError:
                pass
            try:
                number = float(text)
            except ValueError:
                return 0
            return number if math.isfinite(number) else 0
        return 0

    def read_int(self, name: str) -> int:
        number = self.read_number(name)
        if isinstance(number, float) and not math.isfinite(number):
            return 0
        return int(number)

    def read_float(self, name: str) -> Union[int, float]:
        number = self.read_number(name)
        # Whole values print without a trailing ".0".
        if isinstance(number, float) and number.is_integer():
            return int(number)
        return number

    def read_string(self, name: str) -> str:
        value = self._get(name)
        if isinstance(value, bytes):
            return _decode(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return _decode(self._tostring(value))
        return ""


def new_sandbox() -> LuaSandbox:
    log.debug("Creating Lua sandbox")
    return LuaSandbox()
