from .base import Storage
from .sqlite_storage import SQLiteStorage

__all__ = ["Storage", "SQLiteStorage"]
