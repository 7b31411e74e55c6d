"""
Storage Layer.

This package handles all data persistence: the SQLite key-value store and
the cache, history and job records built on it, plus the configuration file.
"""

from .cache import CacheStore
from .config_manager import ConfigManager
from .history import HistoryLedger
from .jobs import JobStore
from .kv_store import KeyValueStore

__all__ = ["CacheStore", "ConfigManager", "HistoryLedger", "JobStore", "KeyValueStore"]
