"""Render a Command back to canonical CLI text.

parse(render(c)) == c for every Command the grammar can produce. Optional
clauses are emitted only when set, so defaults stay defaults.
"""
from .schema import Command, InterfaceConfig, RouteConfig, Target, Verb


def _render_show(command: Command) -> str:
    if command.target == Target.INTERFACE:
        query = command.interface_query
        if query is not None and query.type_filter:
            return f"show interface {query.type_filter}"
        return "show interface"

    if command.target == Target.ROUTE:
        parts = ["show", "route"]
        query = command.route_query
        if query is None:
            return " ".join(parts)
        if query.fib is not None:
            parts += ["fib", str(query.fib)]
        if query.protocol is not None:
            parts += ["protocol", query.protocol.value]
        if query.family is not None:
            parts.append(query.family.value)
        return " ".join(parts)

    return "show"


def _render_interface(config: InterfaceConfig) -> str:
    parts = ["set", "interface"]
    if config.if_type:
        parts.append(config.if_type)
    parts += [config.name, config.family.value, "addr", config.cidr]
    # fib 0 is the default and is omitted
    if config.fib:
        parts += ["fib", str(config.fib)]
    if config.tunnel_fib is not None:
        parts += ["tunnelfib", str(config.tunnel_fib)]
    return " ".join(parts)


def _render_route(verb: Verb, config: RouteConfig) -> str:
    parts = [verb.value, "route", "protocol", config.protocol.value]
    if config.family is not None:
        parts.append(config.family.value)
        if config.destination is not None:
            parts += [f"{config.destination}/{config.prefix_len}", str(config.gateway)]
    if config.fib is not None:
        parts += ["fib", str(config.fib)]
    return " ".join(parts)


def render(command: Command) -> str:
    """
    Render a Command as the canonical CLI line that parses back to it.

    Args:
        command: Command produced by the grammar engine or the protocol bridge

    Returns:
        Single-line command text
    """
    if command.verb == Verb.SHOW:
        return _render_show(command)

    if command.verb == Verb.SET and command.interface is not None:
        return _render_interface(command.interface)

    if command.verb in (Verb.SET, Verb.DELETE) and command.route is not None:
        return _render_route(command.verb, command.route)

    return command.verb.value
