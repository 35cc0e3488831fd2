"""
Configuration for the form session core.

Two pieces:
- EngineConfig: plain settings (timeouts, cache selection, paths), with
  defaults overridable from environment variables
- SessionStrategy: the optional save-and-resume hooks, injected at
  construction. All hooks absent means state is cache-only and is lost
  on TTL expiry or eviction.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

ONE_MINUTE_MS = 60 * 1000
ONE_HOUR_MS = 60 * ONE_MINUTE_MS


@dataclass(frozen=True)
class EngineConfig:
    """
    Settings recognised by the session core and the Flask app.

    Attributes:
        session_timeout: TTL for answer state, in milliseconds (1 day)
        confirmation_session_timeout: TTL for confirmation state, ms (20 min)
        cache_name: Selects the store backend. '' = in-memory (dev only),
                    'redis' = Redis at redis_url
        redis_url: Connection URL used when cache_name == 'redis'
        cache_max_entries: Capacity of the in-memory store
        route_prefix: Prefix the form routes are mounted under
        forms_dir: Directory the local forms service reads definitions from
        log_level: Root logging level name
        secret_key: Flask session cookie signing key
    """
    session_timeout: int = 24 * ONE_HOUR_MS
    confirmation_session_timeout: int = 20 * ONE_MINUTE_MS
    cache_name: str = ""
    redis_url: str = "redis://localhost:6379/0"
    cache_max_entries: int = 10000
    route_prefix: str = ""
    forms_dir: str = "data/forms"
    log_level: str = "INFO"
    secret_key: str = "form-engine-dev-secret-key"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "EngineConfig":
        """
        Build config from environment variables, falling back to defaults.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            EngineConfig

        Raises:
            ValueError: If a numeric setting is not an integer
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def _int(name: str, default: int) -> int:
            raw = env.get(name)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer number of milliseconds, got {raw!r}")

        return cls(
            session_timeout=_int("SESSION_TIMEOUT", defaults.session_timeout),
            confirmation_session_timeout=_int(
                "CONFIRMATION_SESSION_TIMEOUT", defaults.confirmation_session_timeout
            ),
            cache_name=env.get("CACHE_NAME", defaults.cache_name),
            redis_url=env.get("REDIS_URL", defaults.redis_url),
            cache_max_entries=_int("CACHE_MAX_ENTRIES", defaults.cache_max_entries),
            route_prefix=env.get("ROUTE_PREFIX", defaults.route_prefix).rstrip("/"),
            forms_dir=env.get("FORMS_DIR", defaults.forms_dir),
            log_level=env.get("LOG_LEVEL", defaults.log_level),
            secret_key=env.get("SECRET_KEY", defaults.secret_key),
        )


@dataclass(frozen=True)
class SessionStrategy:
    """
    Pluggable save-and-resume hooks.

    Attributes:
        key_generator: request -> base key id. Used verbatim instead of the
                       default algorithm; it alone owns uniqueness.
        session_hydrator: request -> state or None. Called on a cache miss.
        session_persister: (state, request) -> None. Called on save-and-exit.
        session_purger: request -> None. Called when a submitted form's
                       state is cleared.
    """
    key_generator: Optional[Callable[[Any], str]] = None
    session_hydrator: Optional[Callable[[Any], Optional[Dict[str, Any]]]] = None
    session_persister: Optional[Callable[[Dict[str, Any], Any], None]] = None
    session_purger: Optional[Callable[[Any], None]] = None

    @property
    def can_save_and_exit(self) -> bool:
        return self.session_persister is not None
