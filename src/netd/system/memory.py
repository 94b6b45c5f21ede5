"""In-memory network stack.

Simulates interfaces, FIBs and routing tables with the rules the kernel
enforces: assigning an address installs a connected route in the
interface's FIB, a static route needs a gateway on a connected network in
the same FIB, and a destination can exist only once per FIB.

Used by the test suite and by `netd --backend memory`.
"""
import ipaddress
import logging
from typing import Any, Optional

from ..interpreter.schema import (
    AddressFamily,
    InterfaceConfig,
    RouteConfig,
    RouteProtocol,
)
from ..interpreter.values import DEFAULT_MAX_FIBS
from ..utils.logging_config import timed
from .base import (
    InterfaceConfigurator,
    InterfaceInfo,
    RouteConfigurator,
    RouteEntry,
    matches_type_filter,
)

logger = logging.getLogger(__name__)

DEFAULT_SEED: dict[str, Any] = {
    "interfaces": [
        {"name": "lo0", "ipv4": ["127.0.0.1/8"], "ipv6": ["::1/128"],
         "mtu": 16384, "flags": ["UP", "LOOPBACK", "RUNNING", "MULTICAST"]},
        {"name": "em0", "mtu": 1500, "flags": ["UP", "BROADCAST", "RUNNING", "MULTICAST"]},
        {"name": "em1", "mtu": 1500, "flags": ["UP", "BROADCAST", "RUNNING", "MULTICAST"]},
    ],
    "routes": [],
}


def _family_of(network: str) -> AddressFamily:
    return AddressFamily.INET6 if ":" in network else AddressFamily.INET4


class MemoryBackend(InterfaceConfigurator, RouteConfigurator):
    """Both collaborators over one simulated stack."""

    name = "memory"

    def __init__(
        self,
        interfaces: Optional[list[InterfaceInfo]] = None,
        current_fib: int = 0,
        max_fibs: int = DEFAULT_MAX_FIBS,
    ):
        self.max_fibs = max_fibs
        self._current_fib = current_fib
        self._interfaces: dict[str, InterfaceInfo] = {}
        # Static and dynamic routes, per FIB; connected routes are derived
        self._routes: dict[int, list[RouteEntry]] = {}

        for info in interfaces or []:
            self._interfaces[info.name] = info

    @classmethod
    def from_seed(cls, seed: Optional[dict] = None, max_fibs: int = DEFAULT_MAX_FIBS) -> "MemoryBackend":
        """
        Build a backend from a seed mapping (the `memory` config section).

        Seed format:
            interfaces: [{name, ipv4: [cidr], ipv6: [cidr], fib, tunnel_fib, mtu, flags}]
            routes: [{destination, gateway, fib, flags}]
            current_fib: 0
        """
        seed = seed if seed is not None else DEFAULT_SEED
        interfaces = [
            InterfaceInfo(
                name=item["name"],
                ipv4=list(item.get("ipv4", [])),
                ipv6=list(item.get("ipv6", [])),
                fib=int(item.get("fib", 0)),
                tunnel_fib=item.get("tunnel_fib"),
                mtu=item.get("mtu", 1500),
                flags=list(item.get("flags", ["UP"])),
            )
            for item in seed.get("interfaces", [])
        ]
        backend = cls(interfaces, current_fib=int(seed.get("current_fib", 0)), max_fibs=max_fibs)

        for item in seed.get("routes", []):
            fib = int(item.get("fib", 0))
            destination = str(ipaddress.ip_network(item["destination"], strict=False))
            gateway = str(item["gateway"])
            backend._routes.setdefault(fib, []).append(RouteEntry(
                destination=destination,
                gateway=gateway,
                flags=item.get("flags", "UGS"),
                netif=backend._egress(fib, gateway) or "-",
                fib=fib,
            ))

        logger.debug(
            f"Memory backend seeded: {len(interfaces)} interfaces, "
            f"{sum(len(r) for r in backend._routes.values())} routes"
        )
        return backend

    # === Connected networks ===

    def _connected(self, fib: int) -> list[tuple[Any, str]]:
        """(network, interface name) for every address bound to a FIB."""
        networks = []
        for info in self._interfaces.values():
            if info.fib != fib:
                continue
            for cidr in info.ipv4 + info.ipv6:
                networks.append((ipaddress.ip_interface(cidr).network, info.name))
        return networks

    def _connected_routes(self, fib: int) -> list[RouteEntry]:
        routes = []
        for network, ifname in self._connected(fib):
            # Host routes for /32 and /128 (loopback) carry the H flag
            host = network.prefixlen == network.max_prefixlen
            routes.append(RouteEntry(
                destination=str(network),
                gateway=f"link#{ifname}",
                flags="UH" if host else "U",
                netif=ifname,
                fib=fib,
            ))
        return routes

    def _egress(self, fib: int, gateway: str) -> Optional[str]:
        """Interface whose connected network contains the gateway."""
        try:
            address = ipaddress.ip_address(gateway)
        except ValueError:
            return None
        for network, ifname in self._connected(fib):
            if network.version == address.version and address in network:
                return ifname
        return None

    # === InterfaceConfigurator ===

    async def list_interfaces(self, type_filter: str = "") -> list[InterfaceInfo]:
        return [
            info for name, info in sorted(self._interfaces.items())
            if matches_type_filter(name, type_filter)
        ]

    @timed("configure_interface")
    async def configure_interface(self, config: InterfaceConfig) -> tuple[bool, str]:
        info = self._interfaces.get(config.name)
        if info is None:
            return False, f"Interface {config.name} does not exist"

        if config.fib >= self.max_fibs:
            return False, f"FIB {config.fib} does not exist"

        if config.family is AddressFamily.INET4:
            # "ifconfig em0 inet ..." replaces the primary address
            info.ipv4 = [config.cidr]
        elif config.cidr not in info.ipv6:
            info.ipv6.append(config.cidr)

        info.fib = config.fib
        if config.tunnel_fib is not None:
            info.tunnel_fib = config.tunnel_fib
        if "UP" not in info.flags:
            info.flags.insert(0, "UP")

        logger.info(f"Configured {config.describe()}")
        return True, f"Configured {config.name} {config.family.value} {config.cidr}"

    # === RouteConfigurator ===

    async def current_fib(self) -> int:
        return self._current_fib

    async def list_routes(
        self,
        fib: int,
        protocol: Optional[RouteProtocol] = None,
        family: Optional[AddressFamily] = None,
    ) -> list[RouteEntry]:
        routes = self._connected_routes(fib) + list(self._routes.get(fib, []))
        if protocol is not None:
            routes = [r for r in routes if r.protocol == protocol]
        if family is not None:
            routes = [r for r in routes if _family_of(r.destination) == family]
        return routes

    def _resolve_fib(self, fib: Optional[int]) -> int:
        return self._current_fib if fib is None else fib

    @timed("add_route")
    async def add_route(self, config: RouteConfig) -> tuple[bool, str]:
        fib = self._resolve_fib(config.fib)
        if fib >= self.max_fibs:
            return False, f"FIB {fib} does not exist"

        network = str(config.network)
        gateway = str(config.gateway)

        table = self._routes.setdefault(fib, [])
        if any(r.destination == network for r in table):
            return False, f"route {network} already exists in FIB {fib}"

        netif = self._egress(fib, gateway)
        if netif is None:
            return False, f"gateway {gateway} is unreachable in FIB {fib}"

        table.append(RouteEntry(
            destination=network, gateway=gateway, flags="UGS", netif=netif, fib=fib,
        ))
        logger.info(f"Added route {network} via {gateway} in FIB {fib}")
        return True, f"add net {network}: gateway {gateway} fib {fib}"

    @timed("delete_route")
    async def delete_route(self, config: RouteConfig) -> tuple[bool, str]:
        fib = self._resolve_fib(config.fib)
        network = str(config.network)
        gateway = str(config.gateway) if config.gateway is not None else None

        table = self._routes.get(fib, [])
        for entry in table:
            if entry.destination != network:
                continue
            if gateway is not None and entry.gateway != gateway:
                continue
            table.remove(entry)
            logger.info(f"Deleted route {network} in FIB {fib}")
            return True, f"delete net {network}: gateway {entry.gateway} fib {fib}"

        return False, f"route {network} not found in FIB {fib}"

    @timed("delete_routes")
    async def delete_routes(
        self,
        fib: int,
        family: Optional[AddressFamily] = None,
        protocol: RouteProtocol = RouteProtocol.STATIC,
    ) -> int:
        table = self._routes.get(fib, [])
        keep = []
        removed = 0
        for entry in table:
            # Only gateway routes are candidates, never connected networks
            matches = (
                "G" in entry.flags
                and entry.protocol == protocol
                and (family is None or _family_of(entry.destination) == family)
            )
            if matches:
                removed += 1
            else:
                keep.append(entry)
        self._routes[fib] = keep
        logger.info(f"Deleted {removed} {protocol.value} routes from FIB {fib}")
        return removed
