"""
=============================================================================
APPLICATION CONFIGURATION
=============================================================================

Centralized settings for a webkernel application.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m webkernel app:create_app --port 3000            │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── APP_ENV=dev APP_PORT=3000 python -m webkernel ...         │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ENVIRONMENTS
=============================================================================

    prod    Errors become generic 500 responses; details only in the log
    dev     Errors propagate to the caller (debugger, traceback page)
    test    Like dev, so test failures show the real exception

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple


ENVIRONMENTS = ("prod", "dev", "test")
LOG_FORMATS = ("text", "json")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class AppConfig:
    """
    Configuration for an application.

    Development:
        AppConfig(app_env="dev", log_level="DEBUG")

    Production:
        AppConfig(host="0.0.0.0", port=80, log_format="json")
    """

    # ─────────────────────────────────────────────────────────────────────
    # ENVIRONMENT
    # ─────────────────────────────────────────────────────────────────────

    app_env: str = "prod"
    """
    One of prod, dev, test. Controls whether the Kernel translates
    exceptions into responses (prod) or lets them propagate.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Root logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'text' (Apache-like) or 'json'."""

    # ─────────────────────────────────────────────────────────────────────
    # DEVELOPMENT SERVER
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8080

    # ─────────────────────────────────────────────────────────────────────
    # AUTHENTICATION
    # ─────────────────────────────────────────────────────────────────────

    login_path: str = "/login"
    """Where controllers send users who need to log in."""

    home_path: str = "/dashboard"
    """Where the Guest middleware sends users who are already logged in."""

    session_cookie: str = "webkernel_session"
    """Name of the cookie carrying the session id."""

    # ─────────────────────────────────────────────────────────────────────
    # MIDDLEWARE
    # ─────────────────────────────────────────────────────────────────────

    middleware: Tuple[Any, ...] = ()
    """
    Extra global middleware, run before the built-in
    StartSession → ExtractRouteInfo → RouterDispatch stack.
    Entries are classes, dotted import paths or service names.
    """

    @property
    def debug(self) -> bool:
        return self.app_env in ("dev", "test")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        APP_ENV         prod, dev or test (default: prod)
        APP_LOG_LEVEL   Logging level (default: INFO)
        APP_LOG_FORMAT  text or json (default: text)
        APP_HOST        Development server host (default: 127.0.0.1)
        APP_PORT        Development server port (default: 8080)
        APP_SESSION_COOKIE  Session cookie name (default: webkernel_session)

        =====================================================================
        """
        env = os.environ if environ is None else environ
        return cls(
            app_env=env.get("APP_ENV", "prod").lower(),
            log_level=env.get("APP_LOG_LEVEL", "INFO").upper(),
            log_format=env.get("APP_LOG_FORMAT", "text").lower(),
            host=env.get("APP_HOST", "127.0.0.1"),
            port=int(env.get("APP_PORT", "8080")),
            session_cookie=env.get("APP_SESSION_COOKIE", "webkernel_session"),
        )

    def validate(self) -> None:
        """Fail fast at startup on impossible settings."""
        if self.app_env not in ENVIRONMENTS:
            raise ValueError(
                f"Invalid APP_ENV: {self.app_env}. Must be one of {', '.join(ENVIRONMENTS)}."
            )
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log_format: {self.log_format}. Must be 'text' or 'json'.")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")
        if not self.session_cookie:
            raise ValueError("session_cookie must not be empty")
