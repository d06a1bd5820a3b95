"""
Versioned entity table backed by SQLite.

Each entity type lives in its own SQLite file and is stored as:
- The current state of every entity, keyed by entity ID
- An append-only history of versions (versioned tables only)
- Secondary index rows (by email, status, tag, date, ...) that hold a copy
  of the current entity under a partition key

Listings are cursor-paginated: an ascending page selects keys greater than
the offset, a reverse page selects keys less than the offset. The sentinel
offsets ("-" ascending, "|" reverse) select the first page without a bound,
so keys sorting outside the sentinels (e.g. "#sunset") are still listed.

Invariants:
    - One SQLite file per table
    - All writes are atomic (single transaction)
    - Index rows always mirror the current version of their entity
    - Deleting an entity keeps its version history until versions are
      deleted individually
    - Rows with an expires_at in the past are invisible (TTL)
    - SQLite calls run in worker threads, never on the event loop

How to change safely:
    - Schema migrations must be backward compatible
    - Keep cursor comparisons strict (> / <) so offsets are exclusive
    - Use transactions for all write operations
    - New operations go through _query() or _transact()

Table schema:
    entities:
        - id TEXT PRIMARY KEY (TUID)
        - version_id TEXT (TUID, equals id for unversioned tables)
        - label TEXT
        - json TEXT
        - expires_at INTEGER (Unix seconds, NULL = never)

    versions:
        - id TEXT
        - version_id TEXT
        - json TEXT
        - expires_at INTEGER
        - PRIMARY KEY (id, version_id)

    index_rows:
        - row_name TEXT
        - part_key TEXT
        - sort_key TEXT (entity ID)
        - label TEXT
        - json TEXT
        - expires_at INTEGER
        - PRIMARY KEY (row_name, part_key, sort_key)
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")
T = TypeVar("T")

FIRST_OFFSET = "-"
LAST_OFFSET = "|"


class NotFoundError(Exception):
    """Entity or version does not exist."""

    pass


@dataclass(frozen=True)
class TextValue:
    """A key with an associated text value (e.g. an ID and its label)."""

    key: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "value": self.value}


@dataclass(frozen=True)
class TableRow:
    """Definition of a secondary index row.

    Attributes:
        row_name: Name of the index (e.g. "users_email")
        part_key_name: Name of the partition key (e.g. "email")
        part_keys: Returns the partition key value(s) for an entity;
            empty values are not indexed
        label: Optional text value stored with the row (e.g. an org name)
    """

    row_name: str
    part_key_name: str
    part_keys: Callable[[Any], list[str]]
    label: Callable[[Any], str] | None = None


@dataclass(frozen=True)
class TableDefinition:
    """Definition of a versioned entity table.

    Attributes:
        table_name: SQLite file name (without extension)
        entity_type: Entity type name used in messages (e.g. "User")
        versioned: Whether a version history is kept
        label: Returns the display label of an entity
        index_rows: Secondary index rows
        expires_at: Optional TTL (Unix seconds) for an entity
    """

    table_name: str
    entity_type: str
    versioned: bool
    label: Callable[[Any], str]
    index_rows: tuple[TableRow, ...] = ()
    expires_at: Callable[[Any], int | None] | None = None

    def row(self, row_name: str) -> TableRow:
        for row in self.index_rows:
            if row.row_name == row_name:
                return row
        raise KeyError(f"{self.entity_type} table has no index row {row_name}")


@dataclass
class _Page:
    reverse: bool
    limit: int
    offset: str | None

    @property
    def op(self) -> str:
        return "<" if self.reverse else ">"

    @property
    def order(self) -> str:
        return "DESC" if self.reverse else "ASC"

    @property
    def bounded(self) -> bool:
        sentinel = LAST_OFFSET if self.reverse else FIRST_OFFSET
        return bool(self.offset) and self.offset != sentinel

    def after(self, column: str) -> tuple[str, tuple[Any, ...]]:
        """SQL condition (and its parameter) selecting keys past the offset."""
        if not self.bounded:
            return "", ()
        return f"AND {column} {self.op} ?", (self.offset,)


class VersionedTable(Generic[E]):
    """SQLite table of versioned entities with secondary indexes.

    Entities must expose ``id``, ``version_id`` and ``to_json()``; the
    ``decode`` callable turns stored JSON back into an entity.

    Thread safety:
        Each database connection is created per-operation, inside a worker
        thread (asyncio.to_thread). SQLite handles concurrent access via
        WAL mode; schema creation is serialized by a lock.

    Example:
        >>> table = VersionedTable("/var/lib/versionary", definition, User.model_validate_json)
        >>> await table.write_entity(user)
        >>> ids = await table.read_entity_ids(reverse=False, limit=10, offset="-")
    """

    def __init__(
        self,
        data_dir: str,
        definition: TableDefinition,
        decode: Callable[[str], E],
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the table.

        Args:
            data_dir: Directory for SQLite database files
            definition: Table and index row definitions
            decode: Converts stored JSON into an entity
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.data_dir = Path(data_dir)
        self.definition = definition
        self.decode = decode
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    @property
    def entity_type(self) -> str:
        return self.definition.entity_type

    @property
    def db_path(self) -> Path:
        safe_name = "".join(c for c in self.definition.table_name if c.isalnum() or c in "-_")
        return self.data_dir / f"{safe_name}.db"

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection, creating the schema on first use."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            if not self._schema_ready:
                with self._schema_lock:
                    if not self._schema_ready:
                        self._create_schema(conn)
                        self._schema_ready = True

            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS entities (
                id TEXT PRIMARY KEY,
                version_id TEXT NOT NULL,
                label TEXT NOT NULL DEFAULT '',
                json TEXT NOT NULL,
                expires_at INTEGER
            );

            CREATE TABLE IF NOT EXISTS versions (
                id TEXT NOT NULL,
                version_id TEXT NOT NULL,
                json TEXT NOT NULL,
                expires_at INTEGER,
                PRIMARY KEY (id, version_id)
            );

            CREATE TABLE IF NOT EXISTS index_rows (
                row_name TEXT NOT NULL,
                part_key TEXT NOT NULL,
                sort_key TEXT NOT NULL,
                label TEXT NOT NULL DEFAULT '',
                json TEXT NOT NULL,
                expires_at INTEGER,
                PRIMARY KEY (row_name, part_key, sort_key)
            );

            CREATE INDEX IF NOT EXISTS idx_index_rows_sort ON index_rows(sort_key);
            CREATE INDEX IF NOT EXISTS idx_entities_label ON entities(label);
        """)

    # --- Worker thread plumbing ---

    def _fetch(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        with self._get_connection() as conn:
            return conn.execute(sql, params).fetchall()

    async def _query(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        """Run a read-only statement in a worker thread."""
        return await asyncio.to_thread(self._fetch, sql, params)

    def _in_transaction(self, work: Callable[[sqlite3.Connection], T]) -> T:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                result = work(conn)
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return result

    async def _transact(self, work: Callable[[sqlite3.Connection], T]) -> T:
        """Run work(conn) inside a write transaction in a worker thread."""
        return await asyncio.to_thread(self._in_transaction, work)

    def _open(self) -> None:
        with self._get_connection():
            pass

    async def initialize(self) -> None:
        """Create the database file and schema if they don't exist."""
        await asyncio.to_thread(self._open)
        logger.info(
            "Initialized table",
            extra={"table": self.definition.table_name, "path": str(self.db_path)},
        )

    # --- Writes ---

    def _expires_at(self, entity: E) -> int | None:
        if self.definition.expires_at is None:
            return None
        return self.definition.expires_at(entity)

    def _write_rows(self, conn: sqlite3.Connection, entity: Any, write_version: bool) -> None:
        label = self.definition.label(entity)
        data = entity.to_json()
        expires_at = self._expires_at(entity)

        conn.execute(
            """
            INSERT OR REPLACE INTO entities (id, version_id, label, json, expires_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (entity.id, entity.version_id, label, data, expires_at),
        )
        if write_version and self.definition.versioned:
            conn.execute(
                """
                INSERT OR REPLACE INTO versions (id, version_id, json, expires_at)
                VALUES (?, ?, ?, ?)
                """,
                (entity.id, entity.version_id, data, expires_at),
            )

        # Index rows always mirror the current version
        conn.execute("DELETE FROM index_rows WHERE sort_key = ?", (entity.id,))
        for row in self.definition.index_rows:
            row_label = row.label(entity) if row.label else ""
            for part_key in dict.fromkeys(row.part_keys(entity)):
                if not part_key:
                    continue
                conn.execute(
                    """
                    INSERT OR REPLACE INTO index_rows
                        (row_name, part_key, sort_key, label, json, expires_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (row.row_name, part_key, entity.id, row_label, data, expires_at),
                )

    async def write_entity(self, entity: E) -> None:
        """Write an entity: its current state, version, and index rows.

        Args:
            entity: Entity to write (new, or a refresh of an existing version)
        """
        await self._transact(lambda conn: self._write_rows(conn, entity, write_version=True))

        logger.debug(
            "Wrote entity",
            extra={"entity_type": self.entity_type, "entity_id": entity.id},
        )

    async def update_entity(self, entity: E) -> None:
        """Write a new current version of an existing entity.

        Index rows whose partition keys no longer apply are removed.

        Raises:
            NotFoundError: If the entity does not exist
        """
        entity_id = entity.id

        def work(conn: sqlite3.Connection) -> None:
            cursor = conn.execute(
                f"SELECT 1 FROM entities WHERE id = ? AND {self._live()}",
                (entity_id, self._now()),
            )
            if cursor.fetchone() is None:
                raise NotFoundError(f"not found: {self.entity_type} {entity_id}")
            self._write_rows(conn, entity, write_version=True)

        await self._transact(work)

        logger.debug(
            "Updated entity",
            extra={
                "entity_type": self.entity_type,
                "entity_id": entity_id,
                "version_id": entity.version_id,
            },
        )

    async def delete_entity(self, entity_id: str) -> E:
        """Delete the current state and index rows of an entity.

        Version history is retained.

        Returns:
            The deleted entity

        Raises:
            NotFoundError: If the entity does not exist
        """

        def work(conn: sqlite3.Connection) -> E:
            entity = self._read_entity(conn, entity_id)
            conn.execute("DELETE FROM entities WHERE id = ?", (entity_id,))
            conn.execute("DELETE FROM index_rows WHERE sort_key = ?", (entity_id,))
            return entity

        entity = await self._transact(work)

        logger.debug("Deleted entity", extra={"entity_type": self.entity_type, "entity_id": entity_id})
        return entity

    async def delete_version(self, entity_id: str, version_id: str) -> E:
        """Delete a single version of an entity.

        If the deleted version was the current one, the previous version
        becomes current; if no versions remain, the entity is removed.

        Returns:
            The deleted version

        Raises:
            NotFoundError: If the version does not exist
        """
        if not self.definition.versioned:
            if entity_id != version_id:
                raise NotFoundError(f"not found: {self.entity_type} {entity_id} version {version_id}")
            return await self.delete_entity(entity_id)

        def work(conn: sqlite3.Connection) -> E:
            deleted = self._read_version(conn, entity_id, version_id)
            conn.execute(
                "DELETE FROM versions WHERE id = ? AND version_id = ?",
                (entity_id, version_id),
            )
            current = conn.execute(
                "SELECT version_id FROM entities WHERE id = ?", (entity_id,)
            ).fetchone()
            if current is not None and current["version_id"] == version_id:
                previous = conn.execute(
                    """
                    SELECT json FROM versions WHERE id = ?
                    ORDER BY version_id DESC LIMIT 1
                    """,
                    (entity_id,),
                ).fetchone()
                if previous is None:
                    conn.execute("DELETE FROM entities WHERE id = ?", (entity_id,))
                    conn.execute("DELETE FROM index_rows WHERE sort_key = ?", (entity_id,))
                else:
                    self._write_rows(conn, self.decode(previous["json"]), write_version=False)
            return deleted

        deleted = await self._transact(work)

        logger.debug(
            "Deleted entity version",
            extra={"entity_type": self.entity_type, "entity_id": entity_id, "version_id": version_id},
        )
        return deleted

    # --- Single entity reads ---

    @staticmethod
    def _now() -> int:
        return int(time.time())

    @staticmethod
    def _live() -> str:
        return "(expires_at IS NULL OR expires_at > ?)"

    def _read_entity(self, conn: sqlite3.Connection, entity_id: str) -> E:
        row = conn.execute(
            f"SELECT json FROM entities WHERE id = ? AND {self._live()}",
            (entity_id, self._now()),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"not found: {self.entity_type} {entity_id}")
        return self.decode(row["json"])

    def _read_version(self, conn: sqlite3.Connection, entity_id: str, version_id: str) -> E:
        if not self.definition.versioned:
            if entity_id != version_id:
                raise NotFoundError(f"not found: {self.entity_type} {entity_id} version {version_id}")
            return self._read_entity(conn, entity_id)
        row = conn.execute(
            f"SELECT json FROM versions WHERE id = ? AND version_id = ? AND {self._live()}",
            (entity_id, version_id, self._now()),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"not found: {self.entity_type} {entity_id} version {version_id}")
        return self.decode(row["json"])

    def _read_entity_or_none(self, entity_id: str) -> E | None:
        with self._get_connection() as conn:
            try:
                return self._read_entity(conn, entity_id)
            except NotFoundError:
                return None

    async def read_entity(self, entity_id: str) -> E:
        """Read the current version of an entity.

        Raises:
            NotFoundError: If the entity does not exist or has expired
        """
        entity = await asyncio.to_thread(self._read_entity_or_none, entity_id)
        if entity is None:
            raise NotFoundError(f"not found: {self.entity_type} {entity_id}")
        return entity

    async def entity_exists(self, entity_id: str) -> bool:
        """Check whether an entity exists."""
        rows = await self._query(
            f"SELECT 1 FROM entities WHERE id = ? AND {self._live()}",
            (entity_id, self._now()),
        )
        return bool(rows)

    def _read_version_in_thread(self, entity_id: str, version_id: str) -> E:
        with self._get_connection() as conn:
            return self._read_version(conn, entity_id, version_id)

    async def read_version(self, entity_id: str, version_id: str) -> E:
        """Read a specific version of an entity.

        Raises:
            NotFoundError: If the version does not exist
        """
        return await asyncio.to_thread(self._read_version_in_thread, entity_id, version_id)

    async def version_exists(self, entity_id: str, version_id: str) -> bool:
        """Check whether a specific version of an entity exists."""
        try:
            await self.read_version(entity_id, version_id)
        except NotFoundError:
            return False
        return True

    async def read_entities(self, entity_ids: Sequence[str]) -> list[E]:
        """Read several entities in parallel.

        Results keep the order of ``entity_ids``; missing entities are skipped.
        """
        results = await asyncio.gather(
            *(asyncio.to_thread(self._read_entity_or_none, entity_id) for entity_id in entity_ids)
        )
        return [entity for entity in results if entity is not None]

    # --- Versions ---

    async def read_version_ids(
        self, entity_id: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[str]:
        """Read a page of version IDs for an entity."""
        if not self.definition.versioned:
            return [entity_id] if await self.entity_exists(entity_id) else []
        page = _Page(reverse, limit, offset)
        after, params = page.after("version_id")
        rows = await self._query(
            f"""
            SELECT version_id FROM versions
            WHERE id = ? {after} AND {self._live()}
            ORDER BY version_id {page.order} LIMIT ?
            """,
            (entity_id, *params, self._now(), page.limit),
        )
        return [row["version_id"] for row in rows]

    async def read_versions(
        self, entity_id: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[E]:
        """Read a page of versions of an entity, ordered by version ID."""
        if not self.definition.versioned:
            entity = await asyncio.to_thread(self._read_entity_or_none, entity_id)
            return [] if entity is None else [entity]
        page = _Page(reverse, limit, offset)
        after, params = page.after("version_id")
        rows = await self._query(
            f"""
            SELECT json FROM versions
            WHERE id = ? {after} AND {self._live()}
            ORDER BY version_id {page.order} LIMIT ?
            """,
            (entity_id, *params, self._now(), page.limit),
        )
        return [self.decode(row["json"]) for row in rows]

    async def read_all_versions(self, entity_id: str) -> list[E]:
        """Read every version of an entity, oldest first."""
        return await self.read_versions(entity_id, limit=-1, offset=None)

    # --- Entity IDs and labels ---

    async def read_entity_ids(
        self, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[str]:
        """Read a page of current entity IDs."""
        page = _Page(reverse, limit, offset)
        after, params = page.after("id")
        rows = await self._query(
            f"""
            SELECT id FROM entities
            WHERE {self._live()} {after}
            ORDER BY id {page.order} LIMIT ?
            """,
            (self._now(), *params, page.limit),
        )
        return [row["id"] for row in rows]

    async def read_all_entity_ids(self) -> list[str]:
        rows = await self._query(
            f"SELECT id FROM entities WHERE {self._live()} ORDER BY id",
            (self._now(),),
        )
        return [row["id"] for row in rows]

    async def read_entity_labels(
        self, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[TextValue]:
        """Read a page of (ID, label) pairs, ordered by ID."""
        page = _Page(reverse, limit, offset)
        after, params = page.after("id")
        rows = await self._query(
            f"""
            SELECT id, label FROM entities
            WHERE {self._live()} {after}
            ORDER BY id {page.order} LIMIT ?
            """,
            (self._now(), *params, page.limit),
        )
        return [TextValue(row["id"], row["label"]) for row in rows]

    async def read_all_entity_labels(self, sort_by_value: bool = False) -> list[TextValue]:
        """Read every (ID, label) pair, ordered by ID or by label."""
        order = "label, id" if sort_by_value else "id"
        rows = await self._query(
            f"SELECT id, label FROM entities WHERE {self._live()} ORDER BY {order}",
            (self._now(),),
        )
        return [TextValue(row["id"], row["label"]) for row in rows]

    async def filter_entity_labels(self, predicate: Callable[[str], bool]) -> list[TextValue]:
        """Return the (ID, label) pairs whose label satisfies the predicate, sorted by label."""
        labels = await self.read_all_entity_labels(sort_by_value=True)
        return [tv for tv in labels if predicate(tv.value)]

    # --- Index rows ---

    async def read_part_key_values(
        self, row_name: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[str]:
        """Read a page of distinct partition keys of an index row."""
        self.definition.row(row_name)
        page = _Page(reverse, limit, offset)
        after, params = page.after("part_key")
        rows = await self._query(
            f"""
            SELECT DISTINCT part_key FROM index_rows
            WHERE row_name = ? {after} AND {self._live()}
            ORDER BY part_key {page.order} LIMIT ?
            """,
            (row_name, *params, self._now(), page.limit),
        )
        return [row["part_key"] for row in rows]

    async def read_all_part_key_values(self, row_name: str) -> list[str]:
        """Read every distinct partition key of an index row, in key order."""
        self.definition.row(row_name)
        rows = await self._query(
            f"""
            SELECT DISTINCT part_key FROM index_rows
            WHERE row_name = ? AND {self._live()}
            ORDER BY part_key
            """,
            (row_name, self._now()),
        )
        return [row["part_key"] for row in rows]

    async def read_part_key_labels(
        self, row_name: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[TextValue]:
        """Read a page of (partition key, label) pairs of an index row."""
        self.definition.row(row_name)
        page = _Page(reverse, limit, offset)
        after, params = page.after("part_key")
        rows = await self._query(
            f"""
            SELECT part_key, MAX(label) AS label FROM index_rows
            WHERE row_name = ? {after} AND {self._live()}
            GROUP BY part_key
            ORDER BY part_key {page.order} LIMIT ?
            """,
            (row_name, *params, self._now(), page.limit),
        )
        return [TextValue(row["part_key"], row["label"]) for row in rows]

    async def read_all_part_key_labels(
        self, row_name: str, sort_by_value: bool = False
    ) -> list[TextValue]:
        """Read every (partition key, label) pair, ordered by key or by label."""
        self.definition.row(row_name)
        order = "label, part_key" if sort_by_value else "part_key"
        rows = await self._query(
            f"""
            SELECT part_key, MAX(label) AS label FROM index_rows
            WHERE row_name = ? AND {self._live()}
            GROUP BY part_key
            ORDER BY {order}
            """,
            (row_name, self._now()),
        )
        return [TextValue(row["part_key"], row["label"]) for row in rows]

    async def filter_part_key_labels(
        self, row_name: str, predicate: Callable[[str], bool]
    ) -> list[TextValue]:
        labels = await self.read_all_part_key_labels(row_name, sort_by_value=True)
        return [tv for tv in labels if predicate(tv.value)]

    async def read_entity_ids_from_row(
        self,
        row_name: str,
        part_key: str,
        reverse: bool = False,
        limit: int = 100,
        offset: str = "-",
    ) -> list[str]:
        """Read a page of entity IDs filed under a partition key."""
        self.definition.row(row_name)
        page = _Page(reverse, limit, offset)
        after, params = page.after("sort_key")
        rows = await self._query(
            f"""
            SELECT sort_key FROM index_rows
            WHERE row_name = ? AND part_key = ? {after} AND {self._live()}
            ORDER BY sort_key {page.order} LIMIT ?
            """,
            (row_name, part_key, *params, self._now(), page.limit),
        )
        return [row["sort_key"] for row in rows]

    async def read_entities_from_row(
        self,
        row_name: str,
        part_key: str,
        reverse: bool = False,
        limit: int = 100,
        offset: str = "-",
    ) -> list[E]:
        """Read a page of entities filed under a partition key, ordered by entity ID."""
        self.definition.row(row_name)
        page = _Page(reverse, limit, offset)
        after, params = page.after("sort_key")
        rows = await self._query(
            f"""
            SELECT json FROM index_rows
            WHERE row_name = ? AND part_key = ? {after} AND {self._live()}
            ORDER BY sort_key {page.order} LIMIT ?
            """,
            (row_name, part_key, *params, self._now(), page.limit),
        )
        return [self.decode(row["json"]) for row in rows]

    async def read_all_entities_from_row(self, row_name: str, part_key: str) -> list[E]:
        return await self.read_entities_from_row(row_name, part_key, limit=-1, offset=None)

    async def read_entity_range_from_row(
        self,
        row_name: str,
        part_key: str,
        start: str,
        end: str,
        reverse: bool = False,
        limit: int = -1,
        offset: str | None = None,
    ) -> list[E]:
        """Read a page of entities under a partition key with start <= ID < end.

        Args:
            start: Inclusive lower bound of the entity ID
            end: Exclusive upper bound of the entity ID
            reverse: Newest first
            limit: Maximum number of entities; -1 reads the whole range
            offset: Last entity ID of the previous page
        """
        self.definition.row(row_name)
        page = _Page(reverse, limit, offset)
        after, params = page.after("sort_key")
        rows = await self._query(
            f"""
            SELECT json FROM index_rows
            WHERE row_name = ? AND part_key = ? AND sort_key >= ? AND sort_key < ?
                {after} AND {self._live()}
            ORDER BY sort_key {page.order} LIMIT ?
            """,
            (row_name, part_key, start, end, *params, self._now(), page.limit),
        )
        return [self.decode(row["json"]) for row in rows]


@dataclass
class TableSet:
    """Registry of the tables used by the service, for bulk initialization."""

    tables: list[VersionedTable[Any]] = field(default_factory=list)

    def add(self, table: VersionedTable[E]) -> VersionedTable[E]:
        self.tables.append(table)
        return table

    async def initialize(self) -> None:
        for table in self.tables:
            await table.initialize()
