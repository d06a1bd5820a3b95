"""
Audit events.

Events record noteworthy outcomes (entity creation, deletion, internal
errors) with a log level. They are not versioned and expire one year after
creation. An event is indexed under every ID it mentions (user, entity,
and other IDs), its entity type, its log level, and its creation date.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import Field

from .. import tuid
from ..store.table import TableDefinition, TableRow, VersionedTable
from .base import EntityService, RecordEntity, add_years, date_of, unix_seconds

logger = logging.getLogger(__name__)

ROW_DATE = "events_date"
ROW_ENTITY = "events_entity"
ROW_ENTITY_TYPE = "events_entity_type"
ROW_LOG_LEVEL = "events_log_level"


class LogLevel(str, Enum):
    """Severity of an Event."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls._value2member_map_

    def python_level(self) -> int:
        return {
            "TRACE": logging.DEBUG,
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARN": logging.WARNING,
            "ERROR": logging.ERROR,
            "FATAL": logging.CRITICAL,
        }[self.value]


class Event(RecordEntity):
    """An audit event."""

    entity_type = "Event"

    user_id: str | None = None
    entity_id: str | None = None
    subject_type: str | None = Field(default=None, alias="entityType")
    other_ids: list[str] | None = None
    log_level: str = ""
    message: str = ""
    uri: str | None = None

    def label(self) -> str:
        return f"{self.log_level} {self.message}"

    def ids(self) -> list[str]:
        """Return every ID the event mentions."""
        ids = [self.user_id, self.entity_id, *(self.other_ids or [])]
        return list(dict.fromkeys(i for i in ids if i))

    def validate_entity(self) -> list[str]:
        problems = []
        if not self.id or not tuid.is_valid(self.id):
            problems.append("ID is missing or invalid")
        if self.created_at is None:
            problems.append("CreatedAt is missing")
        if self.expires_at is None:
            problems.append("ExpiresAt is missing")
        if self.user_id and not tuid.is_valid(self.user_id):
            problems.append("UserID is not a TUID")
        if self.entity_id and not tuid.is_valid(self.entity_id):
            problems.append("EntityID is not a TUID")
        if not LogLevel.is_valid(self.log_level):
            problems.append("LogLevel is missing or invalid")
        if not self.message:
            problems.append("Message is missing")
        return problems


EVENT_TABLE = TableDefinition(
    table_name="events",
    entity_type="Event",
    versioned=False,
    label=lambda e: e.label(),
    index_rows=(
        TableRow(ROW_DATE, "date", lambda e: [date_of(e.created_at)]),
        TableRow(ROW_ENTITY, "entity_id", lambda e: e.ids()),
        TableRow(ROW_ENTITY_TYPE, "entity_type", lambda e: [e.subject_type or ""]),
        TableRow(ROW_LOG_LEVEL, "log_level", lambda e: [e.log_level]),
    ),
    expires_at=lambda e: unix_seconds(e.expires_at),
)


def new_event_table(data_dir: str, **kwargs) -> VersionedTable[Event]:
    return VersionedTable(data_dir, EVENT_TABLE, Event.model_validate_json, **kwargs)


class EventService(EntityService[Event]):
    """Manages the audit Event log.

    Every created event is also written to the Python log at the matching level.
    """

    def prepare_create(self, entity: Event) -> Event:
        return entity.model_copy(
            update={
                "log_level": (entity.log_level or LogLevel.INFO.value).upper(),
                "expires_at": add_years(entity.created_at, 1),
            }
        )

    async def create(self, entity: Event) -> Event:
        event = await super().create(entity)
        logger.log(
            LogLevel(event.log_level).python_level(),
            event.message,
            extra={
                "event_id": event.id,
                "user_id": event.user_id,
                "entity_id": event.entity_id,
                "entity_type": event.subject_type,
                "uri": event.uri,
            },
        )
        return event

    async def read_events_from_row(
        self, row_name: str, part_key: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Event]:
        return await self.table.read_entities_from_row(row_name, part_key, reverse, limit, offset)

    async def read_all_entity_ids(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_ENTITY)

    async def read_all_entity_types(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_ENTITY_TYPE)

    async def read_all_log_levels(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_LOG_LEVEL)

    async def read_all_dates(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_DATE)
