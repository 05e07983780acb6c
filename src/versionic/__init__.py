"""
Public surface for Versionic.
Importing this module does **not** touch the database; call
``versionic.init_versionic(engine)`` (or ``Versionic.init()``) during
application start-up, after ``is_versioned`` has run for your models.
"""

from .bootstrap import init_versionic
from .core.history import derive_history_type, history_type, watched_fields
from .core.versioned import is_versioned, versioned, versions
from .errors import ConfigurationError, VersioningError
from .events import on
from .persistence.models import Base, MigratableModel
from .runtime import Versionic

__all__ = [
    "Base",
    "ConfigurationError",
    "MigratableModel",
    "Versionic",
    "VersioningError",
    "derive_history_type",
    "history_type",
    "init_versionic",
    "is_versioned",
    "on",
    "versioned",
    "versions",
    "watched_fields",
]
