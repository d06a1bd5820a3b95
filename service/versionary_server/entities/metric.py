"""
Metrics: numeric measurements about entities, with summary statistics.

Metrics are not versioned and expire one year after creation. They are
indexed by the measured entity's ID, its entity type, and free-form tags,
and can be summarized over all time or over a [from, to) date range.
"""

from __future__ import annotations

import statistics
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .. import tuid
from ..store.table import NotFoundError, TableDefinition, TableRow, TextValue, VersionedTable
from .base import EntityService, RecordEntity, add_years, date_range_ids, unix_seconds

ROW_ENTITY = "metrics_entity"
ROW_ENTITY_TYPE = "metrics_entity_type"
ROW_TAG = "metrics_tag"


class Metric(RecordEntity):
    """A single measurement."""

    entity_type = "Metric"

    title: str = ""
    detail: str | None = Field(default=None, alias="label")
    entity_id: str | None = None
    subject_type: str | None = Field(default=None, alias="entityType")
    tags: list[str] | None = None
    value: float = 0.0
    units: str = ""

    def label(self) -> str:
        s = f"{self.title}: {self.value:g} {self.units}"
        return f"{s} ({self.detail})" if self.detail else s

    def validate_entity(self) -> list[str]:
        problems = []
        if not self.id or not tuid.is_valid(self.id):
            problems.append("ID is missing")
        if self.created_at is None:
            problems.append("CreatedAt is missing")
        if self.expires_at is None:
            problems.append("ExpiresAt is missing")
        if not self.title:
            problems.append("Title is missing")
        if self.entity_id and not tuid.is_valid(self.entity_id):
            problems.append("EntityID is not a valid TUID")
        if self.value == 0.0:
            problems.append("Value is missing")
        if not self.units:
            problems.append("Units are missing")
        return problems


class MetricStat(BaseModel):
    """Summary statistics over a set of Metrics."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    entity_id: str | None = None
    entity_type: str | None = None
    tag: str | None = None
    from_time: datetime | None = None
    to_time: datetime | None = None
    count: int = 0
    sum: float = 0.0
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    median: float = 0.0
    std_dev: float = 0.0

    @classmethod
    def from_metrics(
        cls,
        metrics: list[Metric],
        entity_id: str | None = None,
        entity_type: str | None = None,
        tag: str | None = None,
    ) -> MetricStat:
        stat = cls(entity_id=entity_id, entity_type=entity_type, tag=tag)
        if not metrics:
            return stat
        values = [m.value for m in metrics]
        times = [m.created_at for m in metrics if m.created_at is not None]
        return stat.model_copy(
            update={
                "from_time": min(times) if times else None,
                "to_time": max(times) if times else None,
                "count": len(values),
                "sum": sum(values),
                "min": min(values),
                "max": max(values),
                "mean": statistics.fmean(values),
                "median": statistics.median(values),
                "std_dev": statistics.pstdev(values),
            }
        )

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


METRIC_TABLE = TableDefinition(
    table_name="metrics",
    entity_type="Metric",
    versioned=False,
    label=lambda m: m.label(),
    index_rows=(
        TableRow(ROW_ENTITY, "entity_id", lambda m: [m.entity_id or ""]),
        TableRow(ROW_ENTITY_TYPE, "entity_type", lambda m: [m.subject_type or ""]),
        TableRow(ROW_TAG, "tag", lambda m: list(m.tags or [])),
    ),
    expires_at=lambda m: unix_seconds(m.expires_at),
)


def new_metric_table(data_dir: str, **kwargs) -> VersionedTable[Metric]:
    return VersionedTable(data_dir, METRIC_TABLE, Metric.model_validate_json, **kwargs)


class MetricService(EntityService[Metric]):
    """Manages Metrics and computes MetricStats."""

    def prepare_create(self, entity: Metric) -> Metric:
        return entity.model_copy(
            update={
                "title": entity.title or "Untitled",
                "expires_at": add_years(entity.created_at, 1),
            }
        )

    # Rows are "metrics_entity", "metrics_entity_type", or "metrics_tag"

    async def read_metrics_from_row(
        self, row_name: str, part_key: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Metric]:
        return await self.table.read_entities_from_row(row_name, part_key, reverse, limit, offset)

    async def read_metric_range_from_row(
        self,
        row_name: str,
        part_key: str,
        start_date: str,
        end_date: str,
        reverse: bool = False,
        limit: int = -1,
        offset: str | None = None,
    ) -> list[Metric]:
        """Read a page of the Metrics created on or after start_date and before end_date.

        A limit of -1 reads the whole range.

        Raises:
            ValueError: If a date is not formatted YYYY-MM-DD
        """
        start, end = date_range_ids(start_date, end_date)
        return await self.table.read_entity_range_from_row(
            row_name, part_key, start, end, reverse, limit, offset
        )

    async def read_metric_stat(
        self,
        row_name: str,
        part_key: str,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> MetricStat:
        """Summarize the Metrics under an index row, optionally for a date range.

        Raises:
            NotFoundError: If there are no matching Metrics
            ValueError: If a date is not formatted YYYY-MM-DD
        """
        if start_date and end_date:
            metrics = await self.read_metric_range_from_row(row_name, part_key, start_date, end_date)
        else:
            metrics = await self.table.read_all_entities_from_row(row_name, part_key)
        if not metrics:
            raise NotFoundError(f"not found: metrics for {part_key}")
        return MetricStat.from_metrics(
            metrics,
            entity_id=part_key if row_name == ROW_ENTITY else None,
            entity_type=part_key if row_name == ROW_ENTITY_TYPE else None,
            tag=part_key if row_name == ROW_TAG else None,
        )

    async def read_all_entity_ids(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_ENTITY)

    async def read_all_entity_types(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_ENTITY_TYPE)

    async def read_all_tags(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_TAG)

    async def read_metric_labels(
        self, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[TextValue]:
        return await self.read_labels(reverse, limit, offset)
