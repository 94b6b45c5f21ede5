"""Schema definitions for the command interpreter.

Defines tokens and the Command model shared by the grammar engine, the
protocol bridge and the dispatcher.
"""
import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class TokenType(str, Enum):
    """Lexical token categories."""
    SHOW = "show"
    SET = "set"
    DELETE = "delete"
    COMMIT = "commit"
    SAVE = "save"
    DISCARD = "discard"
    HELP = "help"
    INTERFACE = "interface"
    ROUTE = "route"
    PROTOCOL = "protocol"
    STATIC = "static"
    DYNAMIC = "dynamic"
    INET = "inet"
    INET6 = "inet6"
    ADDR = "addr"
    FIB = "fib"
    TUNNELFIB = "tunnelfib"
    WORD = "WORD"
    NUMBER = "NUMBER"
    SLASH = "SLASH"
    END = "END"
    ERROR = "ERROR"

    @property
    def is_keyword(self) -> bool:
        return self not in GENERIC_TOKENS


GENERIC_TOKENS = frozenset({
    TokenType.WORD,
    TokenType.NUMBER,
    TokenType.SLASH,
    TokenType.END,
    TokenType.ERROR,
})

# Lexemes recognized as keywords; "address" is an alias of "addr"
KEYWORDS: dict[str, TokenType] = {
    t.value: t for t in TokenType if t.is_keyword
}
KEYWORDS["address"] = TokenType.ADDR


@dataclass(frozen=True)
class Token:
    """A single lexical token."""
    type: TokenType
    lexeme: str
    position: int


class Verb(str, Enum):
    """Command verb."""
    SHOW = "show"
    SET = "set"
    DELETE = "delete"
    COMMIT = "commit"
    SAVE = "save"
    DISCARD = "discard"


class Target(str, Enum):
    """What a command operates on."""
    INTERFACE = "interface"
    ROUTE = "route"
    NONE = "none"


class AddressFamily(str, Enum):
    """Address family selected by the inet/inet6 keyword."""
    INET4 = "inet"
    INET6 = "inet6"

    @property
    def max_prefix(self) -> int:
        return 32 if self is AddressFamily.INET4 else 128

    @property
    def yang_name(self) -> str:
        return "ipv4" if self is AddressFamily.INET4 else "ipv6"


class RouteProtocol(str, Enum):
    """Route origin."""
    STATIC = "static"
    DYNAMIC = "dynamic"


# Interface types accepted in "set interface <type> <name> ..."
INTERFACE_TYPES = ("ethernet", "bridge", "gif", "tun", "tap", "vlan", "lo")


@dataclass(frozen=True)
class InterfaceQuery:
    """Payload of "show interface [type]"; empty filter means all."""
    type_filter: str = ""


@dataclass(frozen=True)
class RouteQuery:
    """Payload of "show route ..."; every filter is optional.

    fib=None means the daemon's current default FIB, not all FIBs.
    """
    fib: Optional[int] = None
    protocol: Optional[RouteProtocol] = None
    family: Optional[AddressFamily] = None


@dataclass(frozen=True)
class InterfaceConfig:
    """Address assignment for one interface."""
    name: str
    family: AddressFamily
    address: IPAddress
    prefix_len: int
    fib: int = 0
    tunnel_fib: Optional[int] = None
    if_type: Optional[str] = None

    @property
    def cidr(self) -> str:
        return f"{self.address}/{self.prefix_len}"

    @property
    def interface(self) -> Union[ipaddress.IPv4Interface, ipaddress.IPv6Interface]:
        return ipaddress.ip_interface(self.cidr)

    def describe(self) -> str:
        text = f"interface {self.name} {self.family.value} {self.cidr} fib {self.fib}"
        if self.tunnel_fib is not None:
            text += f" tunnelfib {self.tunnel_fib}"
        return text


@dataclass(frozen=True)
class RouteConfig:
    """A route to add, or the selector of routes to delete.

    destination=None is the bulk-delete signal: it selects every route of
    `protocol` (and `family`, if set) in the FIB. It is never inferred from
    a zero address. family=None is only valid for bulk deletes.
    """
    family: Optional[AddressFamily]
    destination: Optional[IPAddress] = None
    prefix_len: Optional[int] = None
    gateway: Optional[IPAddress] = None
    fib: Optional[int] = None
    protocol: RouteProtocol = RouteProtocol.STATIC

    @property
    def is_bulk(self) -> bool:
        return self.destination is None

    @property
    def network(self) -> Optional[Union[ipaddress.IPv4Network, ipaddress.IPv6Network]]:
        if self.destination is None:
            return None
        return ipaddress.ip_network(
            f"{self.destination}/{self.prefix_len}", strict=False
        )

    def describe(self) -> str:
        fib = "current" if self.fib is None else str(self.fib)
        if self.is_bulk:
            family = self.family.value if self.family else "all families"
            return f"all {self.protocol.value} routes ({family}) in FIB {fib}"
        return f"route {self.network} via {self.gateway} in FIB {fib}"


Payload = Union[InterfaceQuery, RouteQuery, InterfaceConfig, RouteConfig, None]


@dataclass(frozen=True)
class Command:
    """A fully validated operation.

    Valid shapes:
        SHOW    NONE        None             (help)
        SHOW    INTERFACE   InterfaceQuery
        SHOW    ROUTE       RouteQuery
        SET     INTERFACE   InterfaceConfig
        SET     ROUTE       RouteConfig      (destination and gateway set)
        DELETE  ROUTE       RouteConfig
        COMMIT | SAVE | DISCARD  NONE  None
    """
    verb: Verb
    target: Target = Target.NONE
    payload: Payload = None

    @property
    def interface(self) -> Optional[InterfaceConfig]:
        return self.payload if isinstance(self.payload, InterfaceConfig) else None

    @property
    def route(self) -> Optional[RouteConfig]:
        return self.payload if isinstance(self.payload, RouteConfig) else None

    @property
    def interface_query(self) -> Optional[InterfaceQuery]:
        return self.payload if isinstance(self.payload, InterfaceQuery) else None

    @property
    def route_query(self) -> Optional[RouteQuery]:
        return self.payload if isinstance(self.payload, RouteQuery) else None

    @property
    def is_read_only(self) -> bool:
        return self.verb == Verb.SHOW


StagedEntry = Union[InterfaceConfig, RouteConfig]
