"""Staging of pending interface and route changes."""
from .buffer import DEFAULT_CAPACITY, StagingBuffer
from .manager import ApplyFailure, CommitResult, StagingManager, entry_parameters

__all__ = [
    "DEFAULT_CAPACITY",
    "StagingBuffer",
    "ApplyFailure",
    "CommitResult",
    "StagingManager",
    "entry_parameters",
]
