"""Protocol bridge between the CLI command model and NETCONF-style RPCs.

CLI verb    RPC operation
--------    -------------
show        get-config (source running) with a subtree filter
set         edit-config (target running)
delete      edit-config with operation="delete" on the target element
commit      commit
discard     discard-changes
save        copy-config running -> startup

Data lives under <netd-config> in the netd-simple namespace:

    <interface>
      <name>em0</name> [<type>ethernet</type>] <fib>0</fib> [<tunnel-fib>1</tunnel-fib>]
      <address><ip>10.0.0.1</ip><prefix-length>24</prefix-length><family>ipv4</family></address>
    </interface>
    <route>
      <protocol>static</protocol> [<family>ipv4</family>]
      [<destination>10.1.0.0/16</destination> <gateway>10.0.0.254</gateway>] [<fib>1</fib>]
    </route>

Namespaces are optional on input; elements are matched by local name.
"""
import logging
from typing import Optional

from lxml import etree

from ..errors import ParseError, SemanticError, UnknownOperationError, UnknownTargetError
from ..interpreter.schema import (
    AddressFamily,
    Command,
    InterfaceConfig,
    InterfaceQuery,
    RouteConfig,
    RouteQuery,
    Target,
    Verb,
)
from ..interpreter.values import (
    DEFAULT_MAX_FIBS,
    parse_address,
    parse_cidr,
    parse_family,
    parse_fib,
    parse_interface_type,
    parse_protocol,
)
from ..system.base import InterfaceInfo, RouteEntry

logger = logging.getLogger(__name__)

# NETCONF XML namespaces
NC_NS = "urn:ietf:params:xml:ns:netconf:base:1.0"
NETD_NS = "urn:netd:params:xml:ns:yang:netd-simple"
CONTAINER = "netd-config"

OPERATIONS = ("get-config", "edit-config", "commit", "discard-changes", "copy-config")

# No entity expansion, no DTD or network fetches
_PARSER = etree.XMLParser(
    resolve_entities=False,
    no_network=True,
    load_dtd=False,
    huge_tree=False,
    remove_blank_text=True,
)


def looks_like_rpc(text: str) -> bool:
    """True when a request should go through the bridge instead of the grammar."""
    return text.lstrip().startswith("<")


# === Element helpers ===

def _nc(tag: str) -> str:
    return f"{{{NC_NS}}}{tag}"


def _netd(tag: str) -> str:
    return f"{{{NETD_NS}}}{tag}"


def _local(element) -> str:
    return etree.QName(element).localname


def _children(element) -> list:
    # Skip comments and processing instructions
    return [child for child in element if isinstance(child.tag, str)]


def _find(element, name: str):
    for child in _children(element):
        if _local(child) == name:
            return child
    return None


def _find_deep(element, names: tuple[str, ...]):
    """First descendant whose local name is in names."""
    for child in element.iter():
        if isinstance(child.tag, str) and child is not element and _local(child) in names:
            return child
    return None


def _text(element, name: str, required: bool = False) -> Optional[str]:
    child = _find(element, name)
    if child is None or child.text is None or not child.text.strip():
        if required:
            raise SemanticError(f"<{_local(element)}> is missing <{name}>")
        return None
    return child.text.strip()


def _sub(parent, tag: str, text=None):
    child = etree.SubElement(parent, _netd(tag))
    if text is not None:
        child.text = str(text)
    return child


def _serialize(root) -> str:
    return etree.tostring(
        root, xml_declaration=True, encoding="UTF-8", pretty_print=True
    ).decode("utf-8")


def _rpc(message_id: str):
    return etree.Element(_nc("rpc"), {"message-id": message_id}, nsmap={None: NC_NS})


def _datastore(parent, tag: str, name: str) -> None:
    wrapper = etree.SubElement(parent, _nc(tag))
    etree.SubElement(wrapper, _nc(name))


def _container(parent):
    return etree.SubElement(parent, _netd(CONTAINER), nsmap={None: NETD_NS, "nc": NC_NS})


# === CLI -> RPC ===

def _interface_element(parent, config: InterfaceConfig) -> None:
    element = _sub(parent, "interface")
    _sub(element, "name", config.name)
    if config.if_type:
        _sub(element, "type", config.if_type)
    _sub(element, "fib", config.fib)
    if config.tunnel_fib is not None:
        _sub(element, "tunnel-fib", config.tunnel_fib)
    address = _sub(element, "address")
    _sub(address, "ip", config.address)
    _sub(address, "prefix-length", config.prefix_len)
    _sub(address, "family", config.family.yang_name)


def _route_element(parent, config: RouteConfig, delete: bool = False) -> None:
    element = _sub(parent, "route")
    if delete:
        element.set(_nc("operation"), "delete")
    _sub(element, "protocol", config.protocol.value)
    if config.family is not None:
        _sub(element, "family", config.family.yang_name)
    if config.destination is not None:
        _sub(element, "destination", f"{config.destination}/{config.prefix_len}")
    if config.gateway is not None:
        _sub(element, "gateway", config.gateway)
    if config.fib is not None:
        _sub(element, "fib", config.fib)


def _filter_element(parent, command: Command) -> None:
    if command.target == Target.NONE:
        return
    filter_el = etree.SubElement(parent, _nc("filter"), {"type": "subtree"})
    container = _container(filter_el)

    if command.target == Target.INTERFACE:
        element = _sub(container, "interface")
        query = command.interface_query
        if query is not None and query.type_filter:
            _sub(element, "type", query.type_filter)
        return

    element = _sub(container, "route")
    query = command.route_query
    if query is None:
        return
    if query.fib is not None:
        _sub(element, "fib", query.fib)
    if query.protocol is not None:
        _sub(element, "protocol", query.protocol.value)
    if query.family is not None:
        _sub(element, "family", query.family.yang_name)


def cli_to_rpc(command: Command, message_id: str = "1") -> str:
    """
    Wrap a Command in an <rpc> envelope.

    Args:
        command: Parsed command
        message_id: RPC message-id attribute

    Returns:
        Serialized XML document
    """
    rpc = _rpc(message_id)

    if command.verb == Verb.SHOW:
        get_config = etree.SubElement(rpc, _nc("get-config"))
        _datastore(get_config, "source", "running")
        _filter_element(get_config, command)

    elif command.verb in (Verb.SET, Verb.DELETE):
        edit = etree.SubElement(rpc, _nc("edit-config"))
        _datastore(edit, "target", "running")
        config = etree.SubElement(edit, _nc("config"))
        container = _container(config)
        if command.interface is not None:
            _interface_element(container, command.interface)
        elif command.route is not None:
            _route_element(container, command.route, delete=command.verb == Verb.DELETE)
        else:
            raise UnknownTargetError(command.verb.value, command.target.value)

    elif command.verb == Verb.COMMIT:
        etree.SubElement(rpc, _nc("commit"))

    elif command.verb == Verb.DISCARD:
        etree.SubElement(rpc, _nc("discard-changes"))

    elif command.verb == Verb.SAVE:
        copy = etree.SubElement(rpc, _nc("copy-config"))
        _datastore(copy, "target", "startup")
        _datastore(copy, "source", "running")

    return _serialize(rpc)


# === RPC -> CLI ===

def _family(text: Optional[str]) -> Optional[AddressFamily]:
    return parse_family(text) if text is not None else None


def _fib(text: Optional[str], max_fibs: int) -> Optional[int]:
    return parse_fib(text, max_fibs) if text is not None else None


def _parse_get_config(operation, max_fibs: int) -> Command:
    filter_el = _find(operation, "filter")
    if filter_el is None:
        return Command(Verb.SHOW)

    target = _find_deep(filter_el, ("interface", "route"))
    if target is None:
        return Command(Verb.SHOW)

    if _local(target) == "interface":
        return Command(Verb.SHOW, Target.INTERFACE, InterfaceQuery(_text(target, "type") or ""))

    protocol = _text(target, "protocol")
    return Command(Verb.SHOW, Target.ROUTE, RouteQuery(
        fib=_fib(_text(target, "fib"), max_fibs),
        protocol=parse_protocol(protocol) if protocol else None,
        family=_family(_text(target, "family")),
    ))


def _is_delete(element) -> bool:
    for key, value in element.attrib.items():
        if etree.QName(key).localname == "operation":
            return value in ("delete", "remove")
    return False


def _parse_interface(element, max_fibs: int) -> InterfaceConfig:
    address = _find(element, "address")
    if address is None:
        raise SemanticError("<interface> is missing <address>")

    family = parse_family(_text(address, "family", required=True))
    ip_text = _text(address, "ip", required=True)
    prefix = _text(address, "prefix-length")
    addr, prefix_len = parse_cidr(f"{ip_text}/{prefix}" if prefix else ip_text, family)

    return InterfaceConfig(
        name=_text(element, "name", required=True),
        family=family,
        address=addr,
        prefix_len=prefix_len,
        fib=_fib(_text(element, "fib"), max_fibs) or 0,
        tunnel_fib=_fib(_text(element, "tunnel-fib"), max_fibs),
        if_type=parse_interface_type(_text(element, "type")),
    )


def _parse_route(element, max_fibs: int, delete: bool) -> RouteConfig:
    family = _family(_text(element, "family"))
    destination = _text(element, "destination")
    gateway = _text(element, "gateway")
    protocol = _text(element, "protocol")

    if not delete and (family is None or destination is None or gateway is None):
        raise SemanticError("<route> needs <family>, <destination> and <gateway>")
    if (destination is None) != (gateway is None):
        raise SemanticError("<route> needs both <destination> and <gateway>, or neither")
    if destination is not None and family is None:
        raise SemanticError("<route> with a <destination> needs a <family>")

    addr, prefix_len = (None, None)
    if destination is not None:
        addr, prefix_len = parse_cidr(destination, family)

    route = RouteConfig(
        family=family,
        destination=addr,
        prefix_len=prefix_len,
        gateway=parse_address(gateway, family) if gateway is not None else None,
        fib=_fib(_text(element, "fib"), max_fibs),
    )
    if protocol is not None and parse_protocol(protocol) != route.protocol:
        raise SemanticError(f"Only static routes can be configured, not '{protocol}'")
    return route


def _parse_edit_config(operation, max_fibs: int) -> Command:
    config = _find(operation, "config")
    if config is None:
        raise UnknownOperationError("<edit-config> is missing <config>")

    targets = [
        el for el in config.iter()
        if isinstance(el.tag, str) and _local(el) in ("interface", "route")
    ]
    if len(targets) != 1:
        raise UnknownOperationError(
            "<edit-config> must carry exactly one <interface> or <route>"
        )
    element = targets[0]
    delete = _is_delete(element)

    if _local(element) == "interface":
        if delete:
            raise UnknownTargetError("delete", "interface")
        return Command(Verb.SET, Target.INTERFACE, _parse_interface(element, max_fibs))

    verb = Verb.DELETE if delete else Verb.SET
    return Command(verb, Target.ROUTE, _parse_route(element, max_fibs, delete))


def _parse_copy_config(operation) -> Command:
    target = _find(operation, "target")
    source = _find(operation, "source")
    target_name = _local(_children(target)[0]) if target is not None and _children(target) else None
    source_name = _local(_children(source)[0]) if source is not None and _children(source) else None
    if (source_name, target_name) != ("running", "startup"):
        raise UnknownOperationError(
            f"copy-config from {source_name} to {target_name} is not supported"
        )
    return Command(Verb.SAVE)


def parse_envelope(xml: str) -> tuple[object, str]:
    """
    Parse a request document and read its message-id.

    Returns:
        Tuple of (root element, message_id); the root is either an <rpc>
        envelope or a bare operation element

    Raises:
        UnknownOperationError: Malformed XML
    """
    try:
        root = etree.fromstring(xml.encode("utf-8"), parser=_PARSER)
    except etree.XMLSyntaxError as e:
        raise UnknownOperationError(f"Malformed XML: {e}") from None

    if _local(root) == "rpc":
        return root, root.get("message-id", "1")
    return root, "1"


def operation_to_command(root, max_fibs: int = DEFAULT_MAX_FIBS) -> Command:
    """
    Map a parsed request to a Command.

    Raises:
        UnknownOperationError: Unsupported or ambiguous operation
        SemanticError: Operation carries invalid values
    """
    operation = root
    if _local(root) == "rpc":
        children = _children(root)
        if len(children) != 1:
            raise UnknownOperationError("<rpc> must contain exactly one operation")
        operation = children[0]

    name = _local(operation)
    if name == "get-config":
        command = _parse_get_config(operation, max_fibs)
    elif name == "edit-config":
        command = _parse_edit_config(operation, max_fibs)
    elif name == "commit":
        command = Command(Verb.COMMIT)
    elif name == "discard-changes":
        command = Command(Verb.DISCARD)
    elif name == "copy-config":
        command = _parse_copy_config(operation)
    else:
        raise UnknownOperationError(
            f"Unsupported operation <{name}> (supported: {', '.join(OPERATIONS)})"
        )

    logger.debug(f"RPC {name} -> {command}")
    return command


def rpc_to_command(xml: str, max_fibs: int = DEFAULT_MAX_FIBS) -> tuple[Command, str]:
    """
    Parse an RPC envelope (or a bare operation element) into a Command.

    Args:
        xml: Request document
        max_fibs: FIB count for range checks

    Returns:
        Tuple of (command, message_id)

    Raises:
        UnknownOperationError: Malformed XML or unsupported operation
        SemanticError: Operation carries invalid values
    """
    root, message_id = parse_envelope(xml)
    return operation_to_command(root, max_fibs), message_id


# === Replies ===

def _reply(message_id: str):
    return etree.Element(_nc("rpc-reply"), {"message-id": message_id}, nsmap={None: NC_NS})


def reply_ok(message_id: str = "1") -> str:
    reply = _reply(message_id)
    etree.SubElement(reply, _nc("ok"))
    return _serialize(reply)


def reply_error(message_id: str, message: str, tag: str = "operation-failed") -> str:
    """<rpc-error> reply carrying an error message."""
    reply = _reply(message_id)
    error = etree.SubElement(reply, _nc("rpc-error"))
    for name, value in (
        ("error-type", "application"),
        ("error-tag", tag),
        ("error-severity", "error"),
        ("error-message", message),
    ):
        etree.SubElement(error, _nc(name)).text = value
    return _serialize(reply)


def reply_data(
    message_id: str,
    interfaces: Optional[list[InterfaceInfo]] = None,
    routes: Optional[list[RouteEntry]] = None,
    fib: Optional[int] = None,
    text: Optional[str] = None,
) -> str:
    """
    <data> reply for get-config.

    Args:
        message_id: Request message-id
        interfaces: Interfaces to serialize
        routes: Routes to serialize
        fib: FIB the routes were read from
        text: Free text (help) when there is no structured data
    """
    reply = _reply(message_id)
    data = etree.SubElement(reply, _nc("data"))
    container = _container(data)

    for info in interfaces or []:
        element = _sub(container, "interface")
        _sub(element, "name", info.name)
        _sub(element, "fib", info.fib)
        if info.tunnel_fib is not None:
            _sub(element, "tunnel-fib", info.tunnel_fib)
        if info.mtu is not None:
            _sub(element, "mtu", info.mtu)
        for family in AddressFamily:
            for cidr in info.addresses(family):
                ip, _, prefix = cidr.partition("/")
                address = _sub(element, "address")
                _sub(address, "ip", ip)
                if prefix:
                    _sub(address, "prefix-length", prefix)
                _sub(address, "family", family.yang_name)

    for route in routes or []:
        element = _sub(container, "route")
        _sub(element, "destination", route.destination)
        _sub(element, "gateway", route.gateway)
        _sub(element, "fib", route.fib if fib is None else fib)
        _sub(element, "protocol", route.protocol.value)
        _sub(element, "flags", route.flags)
        _sub(element, "netif", route.netif)

    if text:
        _sub(container, "help", text)

    return _serialize(reply)


def parse_reply(xml: str) -> tuple[bool, str]:
    """
    Summarize an <rpc-reply> for display in the client.

    Returns:
        Tuple of (success, text); text is the error message on failure and
        the pretty-printed <data> (or "OK") on success
    """
    try:
        root = etree.fromstring(xml.encode("utf-8"), parser=_PARSER)
    except etree.XMLSyntaxError as e:
        raise ParseError(f"Malformed reply: {e}") from None

    error = _find(root, "rpc-error")
    if error is not None:
        return False, _text(error, "error-message") or "unknown error"

    data = _find(root, "data")
    if data is None:
        return True, "OK"
    return True, etree.tostring(data, pretty_print=True).decode("utf-8")
