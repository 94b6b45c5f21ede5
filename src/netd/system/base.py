"""Collaborator interfaces for the host network stack.

The dispatcher and staging manager only ever talk to these two ABCs; the
concrete backends (in-memory simulation, FreeBSD) live next to this module.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from ..interpreter.schema import (
    AddressFamily,
    InterfaceConfig,
    RouteConfig,
    RouteProtocol,
)

logger = logging.getLogger(__name__)

# FreeBSD ethernet driver name prefixes, matched by "show interface ethernet"
ETHERNET_DRIVERS = (
    "em", "igb", "ix", "bge", "fxp", "re", "rl", "sis", "sk", "ste",
    "ti", "tx", "vx", "xl", "vtnet",
)


@dataclass
class InterfaceInfo:
    """Interface state as reported by the backend."""
    name: str
    ipv4: list[str] = field(default_factory=list)  # "10.0.0.1/24"
    ipv6: list[str] = field(default_factory=list)
    fib: int = 0
    tunnel_fib: Optional[int] = None
    mtu: Optional[int] = None
    flags: list[str] = field(default_factory=list)

    def addresses(self, family: AddressFamily) -> list[str]:
        return self.ipv4 if family is AddressFamily.INET4 else self.ipv6


@dataclass
class RouteEntry:
    """One routing table row."""
    destination: str
    gateway: str
    flags: str = "UGS"
    netif: str = "-"
    fib: int = 0
    expire: str = ""

    @property
    def protocol(self) -> RouteProtocol:
        return RouteProtocol.STATIC if "S" in self.flags else RouteProtocol.DYNAMIC

    @property
    def family(self) -> AddressFamily:
        if ":" in self.destination or ":" in self.gateway:
            return AddressFamily.INET6
        return AddressFamily.INET4


def matches_type_filter(name: str, type_filter: str) -> bool:
    """Check an interface name against a "show interface <type>" filter.

    "ethernet" matches the known ethernet driver prefixes; any other filter
    (known type or not) matches by name prefix. An empty filter matches all.
    """
    if not type_filter:
        return True
    if type_filter == "ethernet":
        driver = name.rstrip("0123456789")
        return driver in ETHERNET_DRIVERS
    return name.startswith(type_filter)


class InterfaceConfigurator(ABC):
    """Reads and configures interfaces."""

    @abstractmethod
    async def list_interfaces(self, type_filter: str = "") -> list[InterfaceInfo]:
        """List interfaces, optionally filtered by type."""
        pass

    @abstractmethod
    async def configure_interface(self, config: InterfaceConfig) -> tuple[bool, str]:
        """Assign an address (and FIB bindings) to an interface.

        Returns:
            Tuple of (success, message)
        """
        pass


class RouteConfigurator(ABC):
    """Reads and modifies routing tables."""

    @abstractmethod
    async def current_fib(self) -> int:
        """FIB the daemon process runs in (net.my_fibnum)."""
        pass

    @abstractmethod
    async def list_routes(
        self,
        fib: int,
        protocol: Optional[RouteProtocol] = None,
        family: Optional[AddressFamily] = None,
    ) -> list[RouteEntry]:
        """List routes in one FIB, optionally filtered."""
        pass

    @abstractmethod
    async def add_route(self, config: RouteConfig) -> tuple[bool, str]:
        """Install a static route.

        Returns:
            Tuple of (success, message)
        """
        pass

    @abstractmethod
    async def delete_route(self, config: RouteConfig) -> tuple[bool, str]:
        """Remove one route.

        Returns:
            Tuple of (success, message)
        """
        pass

    @abstractmethod
    async def delete_routes(
        self,
        fib: int,
        family: Optional[AddressFamily] = None,
        protocol: RouteProtocol = RouteProtocol.STATIC,
    ) -> int:
        """Remove every matching route in a FIB.

        Returns:
            Number of routes removed
        """
        pass
