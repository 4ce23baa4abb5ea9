"""Data loaders for the target store."""

from .base import BaseLoader, LoadResult
from .mysql_loader import MySQLLoader

__all__ = [
    "BaseLoader",
    "LoadResult",
    "MySQLLoader",
]
