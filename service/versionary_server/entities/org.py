"""Organizations that users belong to."""

from __future__ import annotations

from enum import Enum

from ..store.table import TableDefinition, TableRow, TextValue, VersionedTable
from .base import VersionedEntity, VersionedEntityService
from .search import ContainsFilter

ROW_STATUS = "organizations_status"


class OrganizationStatus(str, Enum):
    """Lifecycle status of an Organization."""

    PENDING = "PENDING"
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls._value2member_map_


class Organization(VersionedEntity):
    """An organization, such as a company or a team."""

    entity_type = "Organization"

    name: str = ""
    status: str = ""

    def label(self) -> str:
        return self.name

    def validate_entity(self) -> list[str]:
        problems = self.validate_versioning()
        if not self.name.strip():
            problems.append("Name is missing")
        if not OrganizationStatus.is_valid(self.status):
            problems.append(
                "Status is missing or invalid. Expecting: "
                + ", ".join(s.value for s in OrganizationStatus)
            )
        return problems


ORGANIZATION_TABLE = TableDefinition(
    table_name="organizations",
    entity_type="Organization",
    versioned=True,
    label=lambda o: o.label(),
    index_rows=(TableRow(ROW_STATUS, "status", lambda o: [o.status], label=lambda o: o.name),),
)


def new_organization_table(data_dir: str, **kwargs) -> VersionedTable[Organization]:
    return VersionedTable(data_dir, ORGANIZATION_TABLE, Organization.model_validate_json, **kwargs)


class OrganizationService(VersionedEntityService[Organization]):
    """Manages Organizations."""

    def _standardize(self, o: Organization) -> Organization:
        return o.model_copy(
            update={"name": o.name.strip(), "status": (o.status or OrganizationStatus.PENDING.value).upper()}
        )

    def prepare_create(self, entity: Organization) -> Organization:
        return self._standardize(entity)

    def prepare_update(self, entity: Organization, prior: Organization) -> Organization:
        return self._standardize(entity)

    async def read_all_statuses(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_STATUS)

    async def read_organizations_by_status(
        self, status: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Organization]:
        return await self.table.read_entities_from_row(ROW_STATUS, status, reverse, limit, offset)

    async def read_all_names(self, sort_by_value: bool = False) -> list[TextValue]:
        return await self.read_all_labels(sort_by_value)

    async def filter_names(self, contains: ContainsFilter) -> list[TextValue]:
        return await self.filter_labels(contains)
