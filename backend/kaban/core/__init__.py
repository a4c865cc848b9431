"""
Kaban - Core Package
====================

Configuration, storage, models, schemas and the board services.
"""

from kaban.core.config import Settings, get_settings
from kaban.core.database import Base, Database
from kaban.core.errors import ExitCode, KabanError

__all__ = ["Base", "Database", "ExitCode", "KabanError", "Settings", "get_settings"]
