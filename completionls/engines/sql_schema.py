"""
Schema introspectors for SQL completion.

An introspector supplies table and column names on demand. Every
implementation tolerates a missing or failing data source by returning
empty lists; errors are logged, never raised.
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class SchemaIntrospector(ABC):
    """Source of table and column names."""

    @abstractmethod
    def tables(self) -> list[str]:
        """Table (and view) names in schema order."""
        pass

    @abstractmethod
    def columns(self, table: str) -> list[str]:
        """Column names of ``table`` in schema order."""
        pass


class NullSchemaIntrospector(SchemaIntrospector):
    """Used when no data source is connected."""

    def tables(self) -> list[str]:
        return []

    def columns(self, table: str) -> list[str]:
        return []


NONE = NullSchemaIntrospector()


class StaticSchemaIntrospector(SchemaIntrospector):
    """
    Fixed schema, e.g. loaded from a YAML file:

        tables:
          Employee: [id, name, salary]
          Department: [id, title]
    """

    def __init__(self, schema: Mapping[str, Sequence[str]] | None = None) -> None:
        self._tables: dict[str, list[str]] = {
            str(table): [str(c) for c in columns or ()]
            for table, columns in (schema or {}).items()
        }
        self._lookup = {table.lower(): table for table in self._tables}

    @classmethod
    def from_yaml(cls, path: Path) -> StaticSchemaIntrospector:
        """Load a schema file; an unreadable file yields an empty schema."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            tables = data.get("tables", data) if isinstance(data, dict) else {}
            if not isinstance(tables, dict):
                raise ValueError("'tables' must be a mapping")
            return cls(tables)
        except (OSError, ValueError, AttributeError, TypeError, yaml.YAMLError) as e:
            logger.warning("Error loading schema file %s: %s", path, e)
            return cls()

    def tables(self) -> list[str]:
        return list(self._tables)

    def columns(self, table: str) -> list[str]:
        if not table:
            return []
        name = self._lookup.get(table.lower())
        return list(self._tables[name]) if name else []


class ConnectionIntrospector(SchemaIntrospector):
    """
    Introspects a live DB-API connection.

    sqlite3 connections are read through ``sqlite_master`` and
    ``PRAGMA table_info``; other drivers through ``information_schema``.
    Queries run synchronously on every call.
    """

    def __init__(self, connection: Any) -> None:
        self.connection = connection

    def tables(self) -> list[str]:
        if self.connection is None:
            return []
        if isinstance(self.connection, sqlite3.Connection):
            sql = (
                "SELECT name FROM sqlite_master "
                "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' "
                "ORDER BY name"
            )
        else:
            sql = (
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema NOT IN ('information_schema', 'pg_catalog') "
                "ORDER BY table_name"
            )
        return self._query_names(sql, 0)

    def columns(self, table: str) -> list[str]:
        if self.connection is None or not table:
            return []
        quoted = table.replace("'", "''")
        if isinstance(self.connection, sqlite3.Connection):
            # PRAGMA rows: (cid, name, type, notnull, dflt_value, pk)
            return self._query_names(f"PRAGMA table_info('{quoted}')", 1)
        sql = (
            "SELECT column_name FROM information_schema.columns "
            f"WHERE table_name = '{quoted}' ORDER BY ordinal_position"
        )
        return self._query_names(sql, 0)

    def _query_names(self, sql: str, column: int) -> list[str]:
        cursor = None
        try:
            cursor = self.connection.cursor()
            cursor.execute(sql)
            return [str(row[column]) for row in cursor.fetchall()]
        except Exception as e:
            logger.warning("Schema introspection failed: %s", e)
            return []
        finally:
            if cursor is not None:
                try:
                    cursor.close()
                except Exception as e:
                    logger.debug("Error closing cursor: %s", e)
