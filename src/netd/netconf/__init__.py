"""NETCONF-style RPC bridge for the netd command model."""
from .bridge import (
    NC_NS,
    NETD_NS,
    cli_to_rpc,
    looks_like_rpc,
    operation_to_command,
    parse_envelope,
    parse_reply,
    reply_data,
    reply_error,
    reply_ok,
    rpc_to_command,
)

__all__ = [
    "NC_NS",
    "NETD_NS",
    "cli_to_rpc",
    "looks_like_rpc",
    "operation_to_command",
    "parse_envelope",
    "parse_reply",
    "reply_data",
    "reply_error",
    "reply_ok",
    "rpc_to_command",
]
