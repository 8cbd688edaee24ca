"""
Storage Layer.

This package handles all data persistence: the configuration file, the library
catalog database, and the on-disk layout of the book library.
"""

from .catalog import LibraryCatalog
from .config_manager import ConfigManager
from .layout import StorageLayout

__all__ = ["ConfigManager", "LibraryCatalog", "StorageLayout"]
