"""Network backends: collaborator interfaces and implementations."""
from typing import Optional

from .base import (
    InterfaceConfigurator,
    InterfaceInfo,
    RouteConfigurator,
    RouteEntry,
    matches_type_filter,
)
from .freebsd import FreeBSDBackend
from .memory import MemoryBackend

__all__ = [
    "InterfaceConfigurator",
    "InterfaceInfo",
    "RouteConfigurator",
    "RouteEntry",
    "matches_type_filter",
    "FreeBSDBackend",
    "MemoryBackend",
    "create_backend",
]

BACKEND_TYPES = ("memory", "freebsd")


def create_backend(backend_type: str, seed: Optional[dict] = None, max_fibs: int = 16):
    """Factory function to create the configured backend."""
    backend_type = backend_type.lower()
    if backend_type == "memory":
        return MemoryBackend.from_seed(seed, max_fibs=max_fibs)
    if backend_type == "freebsd":
        return FreeBSDBackend()
    raise ValueError(f"Unknown backend type: {backend_type}")
