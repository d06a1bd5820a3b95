"""
Client devices.

A Device records a browser or app (identified by its User-Agent header)
that talks to the API, optionally tied to a User. The header is parsed
with user-agents into a client, device and operating system description,
which DeviceCount tallies per day. Devices expire a year
after they were last seen; a device that keeps calling refresh() lives on.

Invariants:
    - lastSeen and expiresAt are refreshed on every refresh()
    - A changed User-Agent creates a new version; an unchanged one only
      refreshes the current version
    - An expired device is re-created with a new ID
    - Unrecognized User-Agent details are left unset, never guessed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import user_agents
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .. import tuid
from ..store.table import NotFoundError, TableDefinition, TableRow, TextValue, VersionedTable
from .base import VersionedEntity, VersionedEntityService, add_years, date_of, is_valid_date, unix_seconds
from .device_count import DeviceCount

logger = logging.getLogger(__name__)

ROW_USER = "devices_user"
ROW_DATE = "devices_date"


class UserAgent(BaseModel):
    """The User-Agent header of a client and what it reveals about the client.

    Parsed fields are None when the parser does not recognize them.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    header: str = ""
    client_type: str | None = None
    client_name: str | None = None
    client_version: str | None = None
    device_type: str | None = None
    device_brand: str | None = None
    device_model: str | None = None
    os_name: str | None = None
    os_version: str | None = None

    @classmethod
    def from_header(cls, header: str) -> UserAgent:
        """Parse a User-Agent header."""
        header = header.strip()
        if not header:
            return cls()
        ua = user_agents.parse(header)
        return cls(
            header=header,
            client_type=_client_type(ua),
            client_name=_known(ua.browser.family),
            client_version=ua.browser.version_string or None,
            device_type=_device_type(ua),
            device_brand=ua.device.brand or None,
            device_model=ua.device.model or None,
            os_name=_known(ua.os.family),
            os_version=ua.os.version_string or None,
        )


def _known(family: str | None) -> str | None:
    # The parser reports "Other" for anything it does not recognize
    return family if family and family != "Other" else None


def _client_type(ua: user_agents.parsers.UserAgent) -> str:
    if ua.is_bot:
        return "Bot"
    if ua.is_email_client:
        return "Email Client"
    if _known(ua.browser.family):
        return "Browser"
    return "Other"


def _device_type(ua: user_agents.parsers.UserAgent) -> str:
    if ua.is_bot:
        return "Bot"
    if ua.is_tablet:
        return "Tablet"
    if ua.is_mobile:
        return "Mobile"
    if ua.is_pc:
        return "Desktop"
    return "Other"


class Device(VersionedEntity):
    """A client device seen by the API."""

    entity_type = "Device"

    last_seen: datetime | None = None
    expires_at: datetime | None = None
    user_id: str | None = None
    user_agent: UserAgent = Field(default_factory=UserAgent)

    def label(self) -> str:
        return self.user_agent.header

    def validate_entity(self) -> list[str]:
        problems = self.validate_versioning()
        if self.last_seen is None:
            problems.append("LastSeen is missing")
        if self.expires_at is None:
            problems.append("ExpiresAt is missing")
        if self.user_id and not tuid.is_valid(self.user_id):
            problems.append("UserID is not a TUID")
        if not self.user_agent.header:
            problems.append("UserAgent is missing")
        return problems


@dataclass
class RefreshResult:
    """Outcome of Device refresh: the device and whether it was newly created."""

    device: Device
    created: bool


DEVICE_TABLE = TableDefinition(
    table_name="devices",
    entity_type="Device",
    versioned=True,
    label=lambda d: d.label(),
    index_rows=(
        TableRow(ROW_USER, "user_id", lambda d: [d.user_id or ""], label=lambda d: d.label()),
        TableRow(ROW_DATE, "date", lambda d: [date_of(d.last_seen)], label=lambda d: d.label()),
    ),
    expires_at=lambda d: unix_seconds(d.expires_at),
)


def new_device_table(data_dir: str, **kwargs) -> VersionedTable[Device]:
    return VersionedTable(data_dir, DEVICE_TABLE, Device.model_validate_json, **kwargs)


class DeviceService(VersionedEntityService[Device]):
    """Manages Devices."""

    def prepare_create(self, entity: Device) -> Device:
        return entity.model_copy(
            update={"last_seen": entity.created_at, "expires_at": add_years(entity.created_at, 1)}
        )

    def prepare_update(self, entity: Device, prior: Device) -> Device:
        return entity.model_copy(
            update={"last_seen": entity.updated_at, "expires_at": add_years(entity.updated_at, 1)}
        )

    async def refresh(self, device: Device) -> RefreshResult:
        """Record that a device was seen again.

        Args:
            device: The device as reported by the client (ID, user, user agent)

        Returns:
            RefreshResult; created is True when an expired or unknown device
            was re-created with a new ID
        """
        try:
            prior = await self.table.read_entity(device.id)
        except NotFoundError:
            created = await self.create(
                Device(user_id=device.user_id, user_agent=device.user_agent)
            )
            logger.info(
                "Re-created expired device",
                extra={"device_id": device.id, "new_device_id": created.id},
            )
            return RefreshResult(device=created, created=True)

        changed_user = device.user_id is not None and device.user_id != prior.user_id
        if device.user_agent.header != prior.user_agent.header or changed_user:
            updated = prior.model_copy(
                update={"user_agent": device.user_agent, "user_id": device.user_id or prior.user_id}
            )
            return RefreshResult(device=await self.update(updated), created=False)

        now = datetime.now(timezone.utc)
        refreshed = prior.model_copy(update={"last_seen": now, "expires_at": add_years(now, 1)})
        await self.table.update_entity(refreshed)
        return RefreshResult(device=refreshed, created=False)

    async def read_all_user_ids(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_USER)

    async def read_devices_by_user(
        self, user_id: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Device]:
        return await self.table.read_entities_from_row(ROW_USER, user_id, reverse, limit, offset)

    async def read_all_dates(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_DATE)

    async def read_devices_by_date(
        self, date: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Device]:
        return await self.table.read_entities_from_row(ROW_DATE, date, reverse, limit, offset)

    async def read_all_user_agents(self, sort_by_value: bool = False) -> list[TextValue]:
        return await self.read_all_labels(sort_by_value)

    async def count_devices_by_date(self, date: str, batch_size: int = 1000) -> DeviceCount:
        """Tally the Devices last seen on a date.

        Raises:
            ValueError: If the date is not formatted YYYY-MM-DD
        """
        if not is_valid_date(date):
            raise ValueError(f"count devices by date: invalid date: {date}")
        count = DeviceCount(date=date)
        offset = "-"
        while True:
            devices = await self.read_devices_by_date(date, limit=batch_size, offset=offset)
            for device in devices:
                count = count.increment(device)
            if len(devices) < batch_size:
                return count
            offset = devices[-1].id
