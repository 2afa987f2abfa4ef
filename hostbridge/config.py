"""Runtime configuration — env-driven via pydantic-settings.

All settings can be overridden with ``HOSTBRIDGE_*`` environment variables
or a ``.env`` file in the working directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Modules a native payload may import by bare name.
DEFAULT_ALLOWED_MODULES: list[str] = [
    "asyncio",
    "base64",
    "collections",
    "dataclasses",
    "datetime",
    "functools",
    "hashlib",
    "itertools",
    "json",
    "logging",
    "math",
    "pathlib",
    "re",
    "time",
    "typing",
    "uuid",
]

# Never resolvable, even when listed as allowed.
DEFAULT_BLOCKED_MODULES: list[str] = ["ctypes", "zipfile"]


class BridgeConfig(BaseSettings):
    """Process configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export HOSTBRIDGE_LOG_LEVEL=DEBUG
        export HOSTBRIDGE_TRUST_STORE_PATH=/data/trusted-native.json
        export HOSTBRIDGE_TRUST_TIMEOUT_SECONDS=30
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="HOSTBRIDGE_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Storage paths
    native_dir: Path = Path(".hostbridge/native")
    trust_store_path: Path = Path(".hostbridge/trusted-native.json")

    # IPC
    channel_namespace: str = "__HostBridgeNative"

    # Timeouts
    trust_timeout_seconds: float = 60.0
    unload_timeout_seconds: float = 5.0

    # Session-scoped rejection cache; 0 disables it
    rejection_ttl_seconds: float = 0.0

    # Native payload import policy
    allowed_modules: list[str] = list(DEFAULT_ALLOWED_MODULES)
    blocked_modules: list[str] = list(DEFAULT_BLOCKED_MODULES)

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


def configure_logging(level: str | int = "INFO") -> None:
    """Apply a basic root logging configuration for CLI and embedding use."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


# Module-level singleton, import as `from hostbridge.config import config`
config = BridgeConfig()
