"""
Daily Device counts.

A DeviceCount tallies the Devices last seen on one day, in total and by
client type, client name, device type and operating system. Counts are
computed on demand from the Device date index and stored one per day.

Invariants:
    - The date (YYYY-MM-DD) is the key; writing a date again replaces it
    - Empty breakdowns are omitted from the JSON document
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..store.table import TableDefinition, VersionedTable
from .base import ValidationProblems, is_valid_date

if TYPE_CHECKING:
    from .device import Device

# (breakdown field, UserAgent field)
_BREAKDOWNS = (
    ("client_types", "client_type"),
    ("client_names", "client_name"),
    ("device_types", "device_type"),
    ("os_names", "os_name"),
)


class DeviceCount(BaseModel):
    """Number of Devices seen on a date."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    entity_type: ClassVar[str] = "DeviceCount"

    date: str = ""
    total: int = 0
    client_types: dict[str, int] | None = None
    client_names: dict[str, int] | None = None
    device_types: dict[str, int] | None = None
    os_names: dict[str, int] | None = None

    @property
    def id(self) -> str:
        return self.date

    @property
    def version_id(self) -> str:
        return self.date

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def validate_entity(self) -> list[str]:
        if not self.date or not is_valid_date(self.date):
            return ["Date is missing or invalid"]
        return []

    def increment(self, device: Device) -> DeviceCount:
        """Count one more Device."""
        update: dict = {"total": self.total + 1}
        for field_name, agent_field in _BREAKDOWNS:
            key = getattr(device.user_agent, agent_field)
            if key:
                counts = dict(getattr(self, field_name) or {})
                counts[key] = counts.get(key, 0) + 1
                update[field_name] = counts
        return self.model_copy(update=update)

    def merge(self, other: DeviceCount) -> DeviceCount:
        """Add another count's tallies to this one (the date is kept)."""
        update: dict = {"total": self.total + other.total}
        for field_name, _ in _BREAKDOWNS:
            theirs = getattr(other, field_name)
            if theirs:
                counts = dict(getattr(self, field_name) or {})
                for key, n in theirs.items():
                    counts[key] = counts.get(key, 0) + n
                update[field_name] = counts
        return self.model_copy(update=update)


DEVICE_COUNT_TABLE = TableDefinition(
    table_name="device_counts",
    entity_type="DeviceCount",
    versioned=False,
    label=lambda c: c.date,
)


def new_device_count_table(data_dir: str, **kwargs) -> VersionedTable[DeviceCount]:
    return VersionedTable(data_dir, DEVICE_COUNT_TABLE, DeviceCount.model_validate_json, **kwargs)


class DeviceCountService:
    """Stores and reads DeviceCounts, keyed by date."""

    entity_type = "DeviceCount"

    def __init__(self, table: VersionedTable[DeviceCount]) -> None:
        self.table = table

    async def initialize(self) -> None:
        await self.table.initialize()

    async def write(self, count: DeviceCount) -> DeviceCount:
        """Write (or replace) the count for its date.

        Raises:
            ValidationProblems: If the date is missing or invalid
        """
        problems = count.validate_entity()
        if problems:
            raise ValidationProblems(self.entity_type, count.date, problems)
        await self.table.write_entity(count)
        return count

    async def read(self, date: str) -> DeviceCount:
        return await self.table.read_entity(date)

    async def exists(self, date: str) -> bool:
        return await self.table.entity_exists(date)

    async def read_page(self, reverse: bool = False, limit: int = 100, offset: str = "-") -> list[DeviceCount]:
        """Read a page of counts in date order; the offset is the last date of the previous page."""
        dates = await self.table.read_entity_ids(reverse, limit, offset)
        return await self.table.read_entities(dates)
