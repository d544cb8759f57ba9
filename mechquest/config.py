"""Process settings read from the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from .errors import ConfigError

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    bot_token: str
    quest_file: str = "quests.yml"
    proxy_url: Optional[str] = None
    rerender_unmatched: bool = True
    send_attempts: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    log_level: str = "INFO"


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}.")


def _number(env: Mapping[str, str], name: str, default, cast, minimum):
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}.") from e
    if value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {raw!r}.")
    return value


def proxy_with_credentials(proxy_url: str, proxy_user: Optional[str]) -> str:
    """Splice ``user:password`` into the proxy URL's netloc."""
    if not proxy_user:
        return proxy_url
    parts = urlsplit(proxy_url)
    if not parts.scheme or not parts.hostname:
        raise ConfigError(f"PROXY_URL must look like scheme://host:port, got {proxy_url!r}.")
    user, _, password = proxy_user.partition(":")
    credentials = quote(user, safe="")
    if password:
        credentials += ":" + quote(password, safe="")
    host = parts.netloc.rpartition("@")[2]
    return urlunsplit((parts.scheme, f"{credentials}@{host}", parts.path, parts.query, parts.fragment))


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    bot_token = env.get("BOT_TOKEN", "")
    if not bot_token:
        raise SystemExit("BOT_TOKEN environment variable is not set. Please set it in your host environment.")

    proxy_url = env.get("PROXY_URL") or None
    if proxy_url:
        proxy_url = proxy_with_credentials(proxy_url, env.get("PROXY_USER"))

    base_delay = _number(env, "RETRY_BASE_DELAY", 1.0, float, 0.0)
    max_delay = _number(env, "RETRY_MAX_DELAY", 30.0, float, 0.0)
    if max_delay < base_delay:
        raise ConfigError("RETRY_MAX_DELAY must not be smaller than RETRY_BASE_DELAY.")

    return Settings(
        bot_token=bot_token,
        quest_file=env.get("QUEST_FILE") or "quests.yml",
        proxy_url=proxy_url,
        rerender_unmatched=_flag(env, "RERENDER_UNMATCHED", True),
        send_attempts=_number(env, "SEND_ATTEMPTS", 5, int, 1),
        retry_base_delay=base_delay,
        retry_max_delay=max_delay,
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )
