"""Value parsing shared by the grammar engine and the protocol bridge.

Every failure here is a SemanticError: the input was well-formed, the value
is not.
"""
import ipaddress
from typing import Optional

from ..errors import SemanticError
from .schema import INTERFACE_TYPES, AddressFamily, IPAddress, RouteProtocol

# Default number of FIBs (FreeBSD net.fibs)
DEFAULT_MAX_FIBS = 16


def parse_family(text: str) -> AddressFamily:
    """Parse "inet"/"inet6" (or YANG "ipv4"/"ipv6")."""
    value = text.strip().lower()
    if value in ("inet", "ipv4"):
        return AddressFamily.INET4
    if value in ("inet6", "ipv6"):
        return AddressFamily.INET6
    raise SemanticError(f"Invalid address family '{text}'")


def parse_address(text: str, family: AddressFamily) -> IPAddress:
    """Parse an address with the parser selected by the family keyword."""
    try:
        if family is AddressFamily.INET4:
            return ipaddress.IPv4Address(text)
        return ipaddress.IPv6Address(text)
    except ValueError:
        raise SemanticError(
            f"Invalid {family.value} address '{text}'"
        ) from None


def parse_cidr(text: str, family: AddressFamily) -> tuple[IPAddress, int]:
    """Parse "addr[/prefix]".

    Without a prefix the length defaults to the family maximum (32 for
    inet, 128 for inet6), decided by the family, never by the string.
    """
    addr_str, slash, prefix_str = text.partition("/")
    if not slash:
        return parse_address(addr_str, family), family.max_prefix

    if not prefix_str.isdigit():
        raise SemanticError(f"Invalid prefix length in '{text}'")

    prefix_len = int(prefix_str)
    if prefix_len > family.max_prefix:
        raise SemanticError(
            f"Prefix length {prefix_len} out of range for {family.value} "
            f"(0-{family.max_prefix})"
        )
    return parse_address(addr_str, family), prefix_len


def parse_fib(text: str, max_fibs: int = DEFAULT_MAX_FIBS) -> int:
    """Parse a FIB number and check it against the configured FIB count."""
    try:
        fib = int(text)
    except (TypeError, ValueError):
        raise SemanticError(f"Invalid FIB number '{text}'") from None

    if fib < 0 or fib >= max_fibs:
        raise SemanticError(
            f"FIB {fib} out of range (0-{max_fibs - 1})"
        )
    return fib


def parse_protocol(text: str) -> RouteProtocol:
    try:
        return RouteProtocol(text.strip().lower())
    except ValueError:
        raise SemanticError(f"Unknown route protocol '{text}'") from None


def parse_interface_type(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    if text not in INTERFACE_TYPES:
        raise SemanticError(
            f"Unknown interface type '{text}' "
            f"(expected one of: {', '.join(INTERFACE_TYPES)})"
        )
    return text
