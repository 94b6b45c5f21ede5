"""Saved configuration: `save` snapshots and start-up replay."""
from .store import DEFAULT_STATE_FILE, ConfigStore, StoredConfig

__all__ = ["DEFAULT_STATE_FILE", "ConfigStore", "StoredConfig"]
