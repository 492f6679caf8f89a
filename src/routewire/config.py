"""
=============================================================================
APPLICATION CONFIGURATION
=============================================================================

All runtime settings in one dataclass, validated at startup.

    ┌─────────────────────┬────────────────────────────┬──────────────────┐
    │ Field               │ Environment variable       │ Default          │
    ├─────────────────────┼────────────────────────────┼──────────────────┤
    │ host                │ ROUTEWIRE_HOST             │ 127.0.0.1        │
    │ port                │ ROUTEWIRE_PORT             │ 8080             │
    │ log_level           │ ROUTEWIRE_LOG_LEVEL        │ INFO             │
    │ log_format          │ ROUTEWIRE_LOG_FORMAT       │ text             │
    │ cors_enabled        │ ROUTEWIRE_CORS             │ off              │
    │ trust_proxy         │ ROUTEWIRE_TRUST_PROXY      │ off              │
    │ expose_errors       │ ROUTEWIRE_EXPOSE_ERRORS    │ off              │
    │ strict_routing      │ ROUTEWIRE_STRICT_ROUTING   │ on               │
    └─────────────────────┴────────────────────────────┴──────────────────┘

Boolean variables accept 1/true/yes/on and 0/false/no/off.

    ROUTEWIRE_PORT=3000 ROUTEWIRE_CORS=1 python -m routewire

=============================================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class AppConfig:
    """
    Configuration for an App and its transport.

        AppConfig()                                  # development defaults
        AppConfig(host="0.0.0.0", trust_proxy=True)  # behind a load balancer
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK (used by the transport)
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8080
    max_body_size: int = 10 * 1024 * 1024

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: "text" (Apache-style line) or "json"."""

    # ─────────────────────────────────────────────────────────────────────
    # DISPATCH
    # ─────────────────────────────────────────────────────────────────────

    powered_by: str = "routewire"
    """X-Powered-By value. Empty string disables the header."""

    cors_enabled: bool = False
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    trust_proxy: bool = False
    """
    Resolve the client address, protocol and host from proxy headers.
    Only enable behind a proxy that overwrites them; otherwise clients
    can claim any address.
    """

    expose_errors: bool = False
    """Include the exception text as "details" in 500 envelopes."""

    strict_routing: bool = True
    """Require equal segment counts between pattern and path."""

    builtin_endpoints: bool = True
    """Register /health, /health/live, /health/ready and /metrics."""

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """Build a config from ROUTEWIRE_* variables, defaults for the rest."""
        env = os.environ if environ is None else environ
        defaults = cls()

        origins = env.get("ROUTEWIRE_CORS_ORIGINS")
        return cls(
            host=env.get("ROUTEWIRE_HOST", defaults.host),
            port=int(env.get("ROUTEWIRE_PORT", defaults.port)),
            log_level=env.get("ROUTEWIRE_LOG_LEVEL", defaults.log_level).upper(),
            log_format=env.get("ROUTEWIRE_LOG_FORMAT", defaults.log_format).lower(),
            cors_enabled=_env_flag(env, "ROUTEWIRE_CORS", defaults.cors_enabled),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else defaults.cors_origins,
            trust_proxy=_env_flag(env, "ROUTEWIRE_TRUST_PROXY", defaults.trust_proxy),
            expose_errors=_env_flag(env, "ROUTEWIRE_EXPOSE_ERRORS", defaults.expose_errors),
            strict_routing=_env_flag(env, "ROUTEWIRE_STRICT_ROUTING", defaults.strict_routing),
        )

    def validate(self) -> None:
        """Raise ValueError for the first invalid setting."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}. Must be one of {', '.join(_LOG_LEVELS)}.")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"Invalid log_format: {self.log_format}. Must be 'text' or 'json'.")

        if self.max_body_size < 0:
            raise ValueError("max_body_size must be >= 0")

        if self.cors_enabled and not self.cors_origins:
            raise ValueError("cors_origins must not be empty when CORS is enabled")


def _env_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def configure_logging(config: AppConfig) -> None:
    """Configure root logging and set the routewire logger level."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger("routewire").setLevel(level)
