"""Text rendering of query results and help for CLI clients."""
from .system.base import InterfaceInfo, RouteEntry

USAGE = """\
Usage:
  net [command]                    - One-shot mode
  net                              - Interactive mode
  net --xml [command]              - Send the command as a NETCONF RPC

Commands:
  show interface                   - Show all interfaces
  show interface <type>            - Show interfaces by type (ethernet, bridge, gif, etc.)
  show route [fib N] [protocol static|dynamic] [inet|inet6]
                                   - Show routing table (default: current FIB)
  set interface [<type>] <if> inet addr <addr>/<prefix> [fib N] [tunnelfib N]
  set interface [<type>] <if> inet6 addr <addr>/<prefix> [fib N] [tunnelfib N]
  set route protocol static [fib N] inet <dest>/<prefix> <gw>
  set route protocol static [fib N] inet6 <dest>/<prefix> <gw>
  delete route protocol static [fib N] [inet|inet6 [<dest>/<prefix> <gw>]]
  commit                           - Apply staged changes
  discard                          - Drop staged changes
  save                             - Persist configuration
  help                             - Show this help
  quit, exit                       - Exit interactive mode

Interface Types:
  ethernet, bridge, gif, tun, tap, vlan, lo

Tab completion is available for all commands.
"""


def usage_text() -> str:
    return USAGE


def _optional(value) -> str:
    return "-" if value is None else str(value)


def format_interfaces(interfaces: list[InterfaceInfo]) -> str:
    """Interface table; additional addresses get continuation rows."""
    row = "{:<12} {:<20} {:<30} {:<5} {:<9} {}"
    lines = [row.format("Interface", "IPv4 Address", "IPv6 Address", "VRF", "TunnelVRF", "MTU")]

    for info in interfaces:
        depth = max(len(info.ipv4), len(info.ipv6), 1)
        for i in range(depth):
            ipv4 = info.ipv4[i] if i < len(info.ipv4) else ("-" if i == 0 else "")
            ipv6 = info.ipv6[i] if i < len(info.ipv6) else ("-" if i == 0 else "")
            if i == 0:
                lines.append(row.format(
                    info.name, ipv4, ipv6, info.fib,
                    _optional(info.tunnel_fib), _optional(info.mtu),
                ).rstrip())
            else:
                lines.append(row.format("", ipv4, ipv6, "", "", "").rstrip())

    if not interfaces:
        lines.append("(no matching interfaces)")
    return "\n".join(lines) + "\n"


def format_routes(fib: int, routes: list[RouteEntry]) -> str:
    """Routing table for one FIB, netstat style."""
    row = "{:<25} {:<25} {:<8} {:<8} {}"
    lines = [
        f"FIB {fib}:",
        row.format("Destination", "Gateway", "Flags", "Netif", "Expire"),
    ]
    for route in routes:
        lines.append(row.format(
            route.destination, route.gateway, route.flags, route.netif, route.expire,
        ).rstrip())
    return "\n".join(lines) + "\n"
