"""FreeBSD backend driving ifconfig(8), route(8), netstat(1) and sysctl(8)."""
import asyncio
import ipaddress
import logging
import re
from typing import Optional

from ..interpreter.schema import (
    AddressFamily,
    InterfaceConfig,
    RouteConfig,
    RouteProtocol,
)
from ..utils.logging_config import timed
from .base import (
    InterfaceConfigurator,
    InterfaceInfo,
    RouteConfigurator,
    RouteEntry,
    matches_type_filter,
)

logger = logging.getLogger(__name__)

_IF_HEADER_RE = re.compile(r"^(?P<name>[^\s:]+): flags=\w+<(?P<flags>[^>]*)>.*?mtu (?P<mtu>\d+)")
_INET_RE = re.compile(r"^\s+inet (?P<addr>[\d.]+) netmask (?P<mask>0x[0-9a-fA-F]+)")
_INET6_RE = re.compile(r"^\s+inet6 (?P<addr>[0-9a-fA-F:]+)(?:%\S+)? prefixlen (?P<plen>\d+)")
_FIB_RE = re.compile(r"^\s+fib: (?P<fib>\d+)")
_TUNNELFIB_RE = re.compile(r"^\s+tunnelfib: (?P<fib>\d+)")


def parse_ifconfig(output: str) -> list[InterfaceInfo]:
    """Parse `ifconfig -a` output into InterfaceInfo records."""
    interfaces: list[InterfaceInfo] = []
    current: Optional[InterfaceInfo] = None

    for line in output.splitlines():
        header = _IF_HEADER_RE.match(line)
        if header:
            current = InterfaceInfo(
                name=header.group("name"),
                mtu=int(header.group("mtu")),
                flags=[f for f in header.group("flags").split(",") if f],
            )
            interfaces.append(current)
            continue
        if current is None:
            continue

        match = _INET_RE.match(line)
        if match:
            prefix = bin(int(match.group("mask"), 16)).count("1")
            current.ipv4.append(f"{match.group('addr')}/{prefix}")
            continue
        match = _INET6_RE.match(line)
        if match:
            current.ipv6.append(f"{match.group('addr')}/{match.group('plen')}")
            continue
        match = _FIB_RE.match(line)
        if match:
            current.fib = int(match.group("fib"))
            continue
        match = _TUNNELFIB_RE.match(line)
        if match:
            current.tunnel_fib = int(match.group("fib"))

    return interfaces


def parse_netstat(output: str, fib: int) -> list[RouteEntry]:
    """Parse `netstat -rn -F <fib>` output into RouteEntry records."""
    routes = []
    section: Optional[AddressFamily] = None
    in_table = False

    for line in output.splitlines():
        stripped = line.strip()
        if stripped == "Internet:":
            section, in_table = AddressFamily.INET4, False
            continue
        if stripped == "Internet6:":
            section, in_table = AddressFamily.INET6, False
            continue
        if stripped.startswith("Destination"):
            in_table = True
            continue
        if not in_table or not stripped or section is None:
            continue

        fields = stripped.split()
        if len(fields) < 4:
            continue
        destination = fields[0]
        if destination == "default":
            destination = "0.0.0.0/0" if section is AddressFamily.INET4 else "::/0"
        routes.append(RouteEntry(
            destination=destination,
            gateway=fields[1],
            flags=fields[2],
            netif=fields[3],
            fib=fib,
            expire=fields[4] if len(fields) > 4 else "",
        ))

    return routes


class FreeBSDBackend(InterfaceConfigurator, RouteConfigurator):
    """Both collaborators backed by the FreeBSD base system tools."""

    name = "freebsd"

    async def _run(self, *args: str) -> tuple[bool, str]:
        """Run a base system command.

        Returns:
            Tuple of (success, stdout or stderr)
        """
        logger.debug(f"Running: {' '.join(args)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            return False, f"{args[0]}: command not found"

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            error = stderr.decode(errors="replace").strip() or f"{args[0]} exited with {process.returncode}"
            logger.warning(f"Command failed: {' '.join(args)}: {error}")
            return False, error
        return True, stdout.decode(errors="replace")

    async def _sysctl_int(self, name: str, default: int) -> int:
        ok, output = await self._run("sysctl", "-n", name)
        if not ok:
            return default
        try:
            return int(output.strip())
        except ValueError:
            return default

    # === InterfaceConfigurator ===

    async def list_interfaces(self, type_filter: str = "") -> list[InterfaceInfo]:
        ok, output = await self._run("ifconfig", "-a")
        if not ok:
            logger.error(f"ifconfig failed: {output}")
            return []
        return [
            info for info in parse_ifconfig(output)
            if matches_type_filter(info.name, type_filter)
        ]

    @timed("configure_interface")
    async def configure_interface(self, config: InterfaceConfig) -> tuple[bool, str]:
        ok, output = await self._run("ifconfig", config.name, "fib", str(config.fib))
        if not ok:
            return False, output

        if config.tunnel_fib is not None:
            ok, output = await self._run(
                "ifconfig", config.name, "tunnelfib", str(config.tunnel_fib)
            )
            if not ok:
                return False, output

        ok, output = await self._run(
            "ifconfig", config.name, config.family.value, config.cidr, "up"
        )
        if not ok:
            return False, output
        return True, f"Configured {config.name} {config.family.value} {config.cidr}"

    # === RouteConfigurator ===

    async def current_fib(self) -> int:
        return await self._sysctl_int("net.my_fibnum", 0)

    async def list_routes(
        self,
        fib: int,
        protocol: Optional[RouteProtocol] = None,
        family: Optional[AddressFamily] = None,
    ) -> list[RouteEntry]:
        args = ["netstat", "-rn", "-F", str(fib)]
        if family is not None:
            args += ["-f", family.value]
        ok, output = await self._run(*args)
        if not ok:
            logger.error(f"netstat failed: {output}")
            return []

        routes = parse_netstat(output, fib)
        if protocol is not None:
            routes = [r for r in routes if r.protocol == protocol]
        return routes

    async def _route(self, action: str, fib: int, family: AddressFamily, *args: str) -> tuple[bool, str]:
        return await self._run(
            "route", "-n", action, f"-{family.value}", *args, "-fib", str(fib)
        )

    @timed("add_route")
    async def add_route(self, config: RouteConfig) -> tuple[bool, str]:
        fib = config.fib if config.fib is not None else await self.current_fib()
        ok, output = await self._route(
            "add", fib, config.family, "-net", str(config.network), str(config.gateway)
        )
        return ok, output.strip()

    @timed("delete_route")
    async def delete_route(self, config: RouteConfig) -> tuple[bool, str]:
        fib = config.fib if config.fib is not None else await self.current_fib()
        args = ["-net", str(config.network)]
        if config.gateway is not None:
            args.append(str(config.gateway))
        ok, output = await self._route("delete", fib, config.family, *args)
        return ok, output.strip()

    @timed("delete_routes")
    async def delete_routes(
        self,
        fib: int,
        family: Optional[AddressFamily] = None,
        protocol: RouteProtocol = RouteProtocol.STATIC,
    ) -> int:
        removed = 0
        for entry in await self.list_routes(fib, protocol, family):
            if "G" not in entry.flags:
                continue
            try:
                network = ipaddress.ip_network(entry.destination, strict=False)
            except ValueError:
                logger.warning(f"Skipping unparseable destination {entry.destination}")
                continue
            entry_family = AddressFamily.INET4 if network.version == 4 else AddressFamily.INET6
            ok, output = await self._route(
                "delete", fib, entry_family, "-net", str(network), entry.gateway
            )
            if ok:
                removed += 1
            else:
                logger.warning(f"Failed to delete {network} from FIB {fib}: {output}")
        return removed
