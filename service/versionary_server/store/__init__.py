"""
Storage layer for the Versionary API.

Provides the SQLite-backed versioned entity table used by every entity
service.
"""

from .table import NotFoundError, TableDefinition, TableRow, TableSet, TextValue, VersionedTable

__all__ = [
    "NotFoundError",
    "TableDefinition",
    "TableRow",
    "TableSet",
    "TextValue",
    "VersionedTable",
]
