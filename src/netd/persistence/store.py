"""Persistent configuration for `save` and daemon start-up replay.

The saved file is YAML: a metadata header (version, checksum, updated_at)
followed by the interface addresses and static routes that were live when
`save` ran. Loading turns it back into `set` commands, which the daemon
stages and commits like any other client input.
"""
import hashlib
import ipaddress
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import SemanticError
from ..interpreter.schema import (
    Command,
    InterfaceConfig,
    RouteConfig,
    RouteProtocol,
    Target,
    Verb,
)
from ..interpreter.values import parse_address, parse_cidr, parse_family
from ..system.base import InterfaceInfo, RouteEntry

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = Path("/var/db/netd/netd.yaml")


def _checksum(config: dict[str, Any]) -> str:
    config_str = json.dumps(config, sort_keys=True)
    return f"sha256:{hashlib.sha256(config_str.encode()).hexdigest()[:16]}"


@dataclass
class StoredConfig:
    """A saved configuration with metadata."""
    config: dict[str, Any] = field(default_factory=dict)
    version: int = 1
    checksum: str = ""
    updated_at: Optional[datetime] = None

    @property
    def interfaces(self) -> list[dict]:
        return self.config.get("interfaces", [])

    @property
    def routes(self) -> list[dict]:
        return self.config.get("routes", [])

    def to_yaml(self) -> str:
        """Convert to YAML string with metadata header."""
        header = {
            "version": self.version,
            "checksum": self.checksum,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        return yaml.dump({**header, **self.config}, default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "StoredConfig":
        """Parse from YAML string."""
        data = yaml.safe_load(yaml_str) or {}
        if not isinstance(data, dict):
            raise SemanticError("Saved configuration is not a mapping")

        version = data.pop("version", 1)
        checksum = data.pop("checksum", "")
        updated_at_str = data.pop("updated_at", None)

        updated_at = None
        if updated_at_str:
            try:
                updated_at = datetime.fromisoformat(str(updated_at_str))
            except ValueError:
                logger.warning(f"Ignoring invalid updated_at '{updated_at_str}'")

        return cls(config=data, version=version, checksum=checksum, updated_at=updated_at)


def _persistable(cidr: str) -> bool:
    # Link-local addresses are assigned by the kernel, not by configuration
    return not ipaddress.ip_interface(cidr).ip.is_link_local


class ConfigStore:
    """Reads and writes the saved configuration file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else DEFAULT_STATE_FILE

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[StoredConfig]:
        """Read the saved configuration; None if nothing was saved yet."""
        if not self.path.exists():
            return None
        stored = StoredConfig.from_yaml(self.path.read_text(encoding="utf-8"))
        if stored.checksum and stored.checksum != _checksum(stored.config):
            logger.warning(f"Checksum mismatch in {self.path}; file was edited by hand")
        return stored

    def save(self, interfaces: list[InterfaceInfo], routes: list[RouteEntry]) -> StoredConfig:
        """
        Snapshot live state to disk.

        Args:
            interfaces: Current interfaces (addresses and FIB bindings)
            routes: Current routes; only static gateway routes are kept

        Returns:
            The StoredConfig that was written, with its version bumped
        """
        config = {
            "interfaces": [
                {
                    "name": info.name,
                    "fib": info.fib,
                    "tunnel_fib": info.tunnel_fib,
                    "ipv4": [c for c in info.ipv4 if _persistable(c)],
                    "ipv6": [c for c in info.ipv6 if _persistable(c)],
                }
                for info in interfaces
                if any(_persistable(c) for c in info.ipv4 + info.ipv6)
            ],
            "routes": [
                {"destination": r.destination, "gateway": r.gateway, "fib": r.fib}
                for r in routes
                if r.protocol == RouteProtocol.STATIC and "G" in r.flags
            ],
        }

        previous = None
        try:
            previous = self.read()
        except (SemanticError, yaml.YAMLError) as e:
            logger.warning(f"Overwriting unreadable {self.path}: {e}")

        stored = StoredConfig(
            config=config,
            version=(previous.version + 1) if previous else 1,
            checksum=_checksum(config),
            updated_at=datetime.now(timezone.utc),
        )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(stored.to_yaml(), encoding="utf-8")
        os.replace(tmp_path, self.path)

        logger.info(
            f"Saved configuration v{stored.version} to {self.path}: "
            f"{len(config['interfaces'])} interfaces, {len(config['routes'])} routes"
        )
        return stored

    def load(self) -> list[Command]:
        """
        Turn the saved configuration into `set` commands.

        Returns:
            Interface commands first, then routes; empty if nothing was saved

        Raises:
            SemanticError: A saved value no longer parses
        """
        stored = self.read()
        if stored is None:
            return []

        commands = []
        for item in stored.interfaces:
            for key in ("ipv4", "ipv6"):
                family = parse_family(key)
                for cidr in item.get(key) or []:
                    address, prefix_len = parse_cidr(cidr, family)
                    commands.append(Command(Verb.SET, Target.INTERFACE, InterfaceConfig(
                        name=item["name"],
                        family=family,
                        address=address,
                        prefix_len=prefix_len,
                        fib=int(item.get("fib") or 0),
                        tunnel_fib=item.get("tunnel_fib"),
                    )))

        for item in stored.routes:
            destination = str(item["destination"])
            family = parse_family("inet6" if ":" in destination else "inet")
            address, prefix_len = parse_cidr(destination, family)
            commands.append(Command(Verb.SET, Target.ROUTE, RouteConfig(
                family=family,
                destination=address,
                prefix_len=prefix_len,
                gateway=parse_address(str(item["gateway"]), family),
                fib=int(item.get("fib") or 0),
            )))

        logger.info(f"Loaded {len(commands)} command(s) from {self.path} (v{stored.version})")
        return commands
