"""Daemon configuration.

Sources, lowest precedence first:
1. Built-in defaults
2. YAML file (--config, or the first of the search paths that exists)
3. Environment variables
4. Command-line flags (applied by the daemon after load)

Environment variables:
- NETD_SOCKET: Socket path (default: /var/run/netd.sock)
- NETD_BACKEND: "memory" or "freebsd" (default: freebsd)
- NETD_STAGING_CAPACITY: Maximum pending changes (default: 64)
- NETD_MAX_FIBS: Number of FIBs (default: 16)
- NETD_STATE_FILE: Saved configuration path
"""
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from .interpreter.values import DEFAULT_MAX_FIBS
from .staging.buffer import DEFAULT_CAPACITY
from .staging.manager import DEFAULT_TIMEOUT
from .system import BACKEND_TYPES
from .transport import DEFAULT_MAX_REQUEST_SIZE

logger = logging.getLogger(__name__)

SOCKET_PATH = "/var/run/netd.sock"

CONFIG_SEARCH_PATHS = [
    Path("/usr/local/etc/netd.yaml"),
    Path("/etc/netd.yaml"),
]


class ConfigError(ValueError):
    """Invalid configuration value."""
    pass


@dataclass
class DaemonConfig:
    """netd daemon settings."""
    socket_path: str = SOCKET_PATH
    socket_mode: int = 0o666
    backend: str = "freebsd"
    max_request_size: int = DEFAULT_MAX_REQUEST_SIZE
    staging_capacity: int = DEFAULT_CAPACITY
    max_fibs: int = DEFAULT_MAX_FIBS
    configurator_timeout: float = DEFAULT_TIMEOUT
    stop_on_error: bool = False
    state_file: Optional[str] = None
    audit_log_dir: Optional[str] = None
    # Seed for the memory backend (interfaces/routes/current_fib)
    memory: Optional[dict[str, Any]] = None
    source: Optional[str] = field(default=None, compare=False)

    def validate(self) -> None:
        """Check ranges and enums.

        Raises:
            ConfigError: First invalid value found
        """
        if self.backend not in BACKEND_TYPES:
            raise ConfigError(
                f"Unknown backend '{self.backend}' (expected one of: {', '.join(BACKEND_TYPES)})"
            )
        if self.staging_capacity < 1:
            raise ConfigError("staging_capacity must be at least 1")
        if not 1 <= self.max_fibs <= 65536:
            raise ConfigError("max_fibs must be between 1 and 65536")
        if self.max_request_size < 1:
            raise ConfigError("max_request_size must be positive")
        if self.configurator_timeout <= 0:
            raise ConfigError("configurator_timeout must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DaemonConfig":
        """Build from a mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)} - {"source"}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        values = dict(data)
        mode = values.get("socket_mode")
        if isinstance(mode, str):
            try:
                values["socket_mode"] = int(mode, 8)
            except ValueError:
                raise ConfigError(f"socket_mode must be an octal string, got {mode!r}") from None
        return cls(**values)

    def apply_env(self, environ: Optional[dict[str, str]] = None) -> "DaemonConfig":
        """Override fields from NETD_* environment variables."""
        env = os.environ if environ is None else environ

        if "NETD_SOCKET" in env:
            self.socket_path = env["NETD_SOCKET"]
        if "NETD_BACKEND" in env:
            self.backend = env["NETD_BACKEND"].lower()
        if "NETD_STATE_FILE" in env:
            self.state_file = env["NETD_STATE_FILE"]
        try:
            if "NETD_STAGING_CAPACITY" in env:
                self.staging_capacity = int(env["NETD_STAGING_CAPACITY"])
            if "NETD_MAX_FIBS" in env:
                self.max_fibs = int(env["NETD_MAX_FIBS"])
        except ValueError as e:
            raise ConfigError(f"Invalid numeric environment override: {e}") from None
        return self

    @classmethod
    def load(
        cls,
        path: Optional[str] = None,
        environ: Optional[dict[str, str]] = None,
    ) -> "DaemonConfig":
        """
        Load configuration from YAML and the environment.

        Args:
            path: Explicit config file; must exist when given
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Validated DaemonConfig

        Raises:
            ConfigError: Unreadable file or invalid values
        """
        config_path = Path(path) if path else next(
            (p for p in CONFIG_SEARCH_PATHS if p.exists()), None
        )

        data: dict[str, Any] = {}
        if config_path is not None:
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_path}")
            try:
                with open(config_path) as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from None
            if not isinstance(data, dict):
                raise ConfigError(f"{config_path} must contain a mapping")
            logger.debug(f"Loaded configuration from {config_path}")

        try:
            config = cls.from_dict(data)
        except TypeError as e:
            raise ConfigError(str(e)) from None
        config.source = str(config_path) if config_path else None
        config.apply_env(environ)
        config.validate()
        return config
