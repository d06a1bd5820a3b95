"""
Entity model and service base classes.

Every entity type (User, Organization, Device, ...) is a pydantic model
serialized with camelCase JSON keys, stored in a VersionedTable, and
managed by a service that stamps identifiers, validates, and exposes the
table's paginated reads.

Invariants:
    - Create assigns id (and, for versioned entities, version_id) from a new TUID
    - created_at is the TUID time of the ID and never changes on update
    - Update assigns a new version_id and never changes the ID
    - validate_entity() returns a list of problems; empty means valid

How to change safely:
    - Add fields with defaults so stored JSON keeps decoding
    - Keep JSON aliases stable; clients and stored rows depend on them
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .. import tuid
from ..store.table import NotFoundError, TextValue, VersionedTable
from .search import ContainsFilter

logger = logging.getLogger(__name__)


class ValidationProblems(Exception):
    """Entity failed validation.

    Attributes:
        entity_type: Entity type name
        entity_id: Entity ID (may be empty)
        problems: Human-readable validation problems
    """

    def __init__(self, entity_type: str, entity_id: str, problems: list[str]) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.problems = problems
        super().__init__(f"invalid field(s): {', '.join(problems)}")


class Entity(BaseModel):
    """Base model for stored entities."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    entity_type: ClassVar[str] = "Entity"

    id: str = ""
    created_at: datetime | None = None

    def label(self) -> str:
        return self.id

    def validate_entity(self) -> list[str]:
        return []

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class RecordEntity(Entity):
    """Base model for entities without a version history (tokens, metrics, events)."""

    expires_at: datetime | None = None

    @property
    def version_id(self) -> str:
        return self.id


class VersionedEntity(Entity):
    """Base model for entities with a version history."""

    version_id: str = Field(default="", alias="versionID")
    updated_at: datetime | None = None

    def validate_versioning(self) -> list[str]:
        problems = []
        if not self.id or not tuid.is_valid(self.id):
            problems.append("ID is missing or invalid")
        if self.created_at is None:
            problems.append("CreatedAt is missing")
        if not self.version_id or not tuid.is_valid(self.version_id):
            problems.append("VersionID is missing or invalid")
        if self.updated_at is None:
            problems.append("UpdatedAt is missing")
        return problems


E = TypeVar("E", bound=Entity)
V = TypeVar("V", bound=VersionedEntity)


@dataclass
class DeleteResult(Generic[E]):
    """Outcome of a delete with best-effort cleanup of dependent entities.

    Attributes:
        entity: The deleted entity
        warnings: Cleanup failures; they do not undo the primary delete
    """

    entity: E
    warnings: list[str] = field(default_factory=list)


def date_of(t: datetime | None) -> str:
    """Format a timestamp as YYYY-MM-DD (empty for None)."""
    return t.strftime("%Y-%m-%d") if t else ""


def unix_seconds(t: datetime | None) -> int | None:
    return int(t.timestamp()) if t else None


def is_valid_date(date: str) -> bool:
    """Check a YYYY-MM-DD date."""
    if len(date) != 10:
        return False
    try:
        datetime.strptime(date, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def date_range_ids(start_date: str, end_date: str) -> tuple[str, str]:
    """Convert YYYY-MM-DD dates into a TUID range [start, end).

    Raises:
        ValueError: If a date is malformed
    """
    try:
        start = datetime.strptime(start_date, "%Y-%m-%d")
    except ValueError:
        raise ValueError(f"invalid date {start_date} (expect yyyy-mm-dd)")
    try:
        end = datetime.strptime(end_date, "%Y-%m-%d")
    except ValueError:
        raise ValueError(f"invalid date {end_date} (expect yyyy-mm-dd)")
    return tuid.first_id_with_time(start), tuid.first_id_with_time(end)


def add_years(t: datetime, years: int) -> datetime:
    try:
        return t.replace(year=t.year + years)
    except ValueError:
        # February 29th
        return t + timedelta(days=365 * years)


class EntityService(Generic[E]):
    """Manages one entity type stored in a VersionedTable.

    Subclasses customise creation through prepare_create() and
    check_constraints(), and add reads over their own index rows.
    """

    def __init__(self, table: VersionedTable[E]) -> None:
        self.table = table

    @property
    def entity_type(self) -> str:
        return self.table.entity_type

    async def initialize(self) -> None:
        await self.table.initialize()

    def prepare_create(self, entity: E) -> E:
        """Fill in defaults on a freshly stamped entity."""
        return entity

    async def check_constraints(self, entity: E) -> list[str]:
        """Return problems that need the table to detect (e.g. uniqueness)."""
        return []

    def _stamp_new(self, entity: E) -> E:
        t = tuid.new_id()
        return entity.model_copy(update={"id": t, "created_at": tuid.tuid_time(t)})

    async def _validated(self, entity: E) -> E:
        problems = entity.validate_entity() + await self.check_constraints(entity)
        if problems:
            raise ValidationProblems(self.entity_type, entity.id, problems)
        return entity

    async def create(self, entity: E) -> E:
        """Create an entity with a new ID.

        Raises:
            ValidationProblems: If the entity is invalid
        """
        entity = await self._validated(self.prepare_create(self._stamp_new(entity)))
        await self.table.write_entity(entity)
        logger.debug("Created entity", extra={"entity_type": self.entity_type, "entity_id": entity.id})
        return entity

    async def write(self, entity: E) -> E:
        """Write an entity as-is, refreshing its index rows."""
        await self.table.write_entity(entity)
        return entity

    async def read(self, entity_id: str) -> E:
        return await self.table.read_entity(entity_id)

    async def exists(self, entity_id: str) -> bool:
        return await self.table.entity_exists(entity_id)

    async def delete(self, entity_id: str) -> E:
        return await self.table.delete_entity(entity_id)

    async def read_ids(self, reverse: bool = False, limit: int = 100, offset: str = "-") -> list[str]:
        return await self.table.read_entity_ids(reverse, limit, offset)

    async def read_all_ids(self) -> list[str]:
        return await self.table.read_all_entity_ids()

    async def read_labels(
        self, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[TextValue]:
        return await self.table.read_entity_labels(reverse, limit, offset)

    async def read_all_labels(self, sort_by_value: bool = False) -> list[TextValue]:
        return await self.table.read_all_entity_labels(sort_by_value)

    async def filter_labels(self, contains: ContainsFilter) -> list[TextValue]:
        return await self.table.filter_entity_labels(contains)

    async def read_page(self, reverse: bool = False, limit: int = 100, offset: str = "-") -> list[E]:
        """Read a page of entities, fetched individually in parallel, in cursor order."""
        ids = await self.table.read_entity_ids(reverse, limit, offset)
        return await self.table.read_entities(ids)


class VersionedEntityService(EntityService[V]):
    """EntityService for entities with a version history."""

    def prepare_update(self, entity: V, prior: V) -> V:
        """Carry values over from the prior version before validation."""
        return entity

    def _stamp_new(self, entity: V) -> V:
        t = tuid.new_id()
        at = tuid.tuid_time(t)
        return entity.model_copy(
            update={"id": t, "version_id": t, "created_at": at, "updated_at": at}
        )

    async def update(self, entity: V) -> V:
        """Write a new version of an existing entity.

        Raises:
            NotFoundError: If the entity does not exist
            ValidationProblems: If the new version is invalid
        """
        prior = await self.table.read_entity(entity.id)
        t = tuid.new_id()
        entity = entity.model_copy(
            update={"version_id": t, "created_at": prior.created_at, "updated_at": tuid.tuid_time(t)}
        )
        entity = await self._validated(self.prepare_update(entity, prior))
        await self.table.update_entity(entity)
        logger.debug(
            "Updated entity",
            extra={"entity_type": self.entity_type, "entity_id": entity.id, "version_id": t},
        )
        return entity

    async def read_version(self, entity_id: str, version_id: str) -> V:
        return await self.table.read_version(entity_id, version_id)

    async def version_exists(self, entity_id: str, version_id: str) -> bool:
        return await self.table.version_exists(entity_id, version_id)

    async def read_versions(
        self, entity_id: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[V]:
        return await self.table.read_versions(entity_id, reverse, limit, offset)

    async def read_all_versions(self, entity_id: str) -> list[V]:
        return await self.table.read_all_versions(entity_id)

    async def delete_version(self, entity_id: str, version_id: str) -> V:
        return await self.table.delete_version(entity_id, version_id)


__all__ = [
    "DeleteResult",
    "Entity",
    "EntityService",
    "NotFoundError",
    "RecordEntity",
    "ValidationProblems",
    "VersionedEntity",
    "VersionedEntityService",
    "add_years",
    "date_of",
    "date_range_ids",
    "is_valid_date",
    "unix_seconds",
]
