"""
Email messages and email identities.

Emails are stored for auditing and later delivery; delivery itself is not
performed by this service. Every participant address (from, to, cc, bcc)
is indexed so users can list the messages they took part in.

Invariants:
    - Identity addresses are validated and lower-cased before storage
    - An email always has a sender, at least one recipient, a subject and a body
"""

from __future__ import annotations

from enum import Enum

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, Field

from ..store.table import TableDefinition, TableRow, VersionedTable
from .base import VersionedEntity, VersionedEntityService

ROW_ADDRESS = "emails_address"
ROW_STATUS = "emails_status"


class EmailStatus(str, Enum):
    """Delivery status of an email."""

    PENDING = "PENDING"
    SENT = "SENT"
    UNSENT = "UNSENT"
    ERROR = "ERROR"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls._value2member_map_


def standardize_address(address: str) -> str:
    """Validate an email address and return it trimmed and lower-cased.

    Raises:
        ValueError: If the address is missing or invalid
    """
    address = address.strip()
    if not address:
        raise ValueError("email address is missing")
    try:
        result = validate_email(address, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValueError(f"invalid email address {address}: {e}")
    return result.normalized.lower()


class Identity(BaseModel):
    """A named email address."""

    name: str | None = None
    address: str = ""

    def is_valid(self) -> bool:
        try:
            standardize_address(self.address)
        except ValueError:
            return False
        return True

    def standardized(self) -> Identity:
        if not self.is_valid():
            return self
        return Identity(name=self.name or None, address=standardize_address(self.address))

    def __str__(self) -> str:
        return f"{self.name} <{self.address}>" if self.name else self.address


class Email(VersionedEntity):
    """An email message."""

    entity_type = "Email"

    from_: Identity = Field(default_factory=Identity, alias="from")
    to: list[Identity] = Field(default_factory=list)
    cc: list[Identity] | None = None
    bcc: list[Identity] | None = None
    subject: str = ""
    body_text: str = ""
    body_html: str | None = Field(default=None, alias="bodyHTML")
    event_message: str | None = None
    status: str = ""

    def label(self) -> str:
        return self.subject

    def addresses(self) -> list[str]:
        """Return every participant address, without duplicates."""
        identities = [self.from_, *self.to, *(self.cc or []), *(self.bcc or [])]
        return list(dict.fromkeys(i.address for i in identities if i.address))

    def is_participant(self, address: str) -> bool:
        return bool(address) and address.strip().lower() in self.addresses()

    def recipients(self) -> list[str]:
        identities = [*self.to, *(self.cc or []), *(self.bcc or [])]
        return [i.address for i in identities if i.address]

    def validate_entity(self) -> list[str]:
        problems = self.validate_versioning()
        if not self.from_.is_valid():
            problems.append("From address is missing or invalid")
        if not self.to:
            problems.append("To recipients are missing")
        if any(not i.is_valid() for i in self.to):
            problems.append("To recipient address is missing or invalid")
        if any(not i.is_valid() for i in self.cc or []):
            problems.append("CC recipient address is missing or invalid")
        if any(not i.is_valid() for i in self.bcc or []):
            problems.append("BCC recipient address is missing or invalid")
        if not self.subject:
            problems.append("Subject is missing")
        if not self.body_text:
            problems.append("Body is missing")
        if not EmailStatus.is_valid(self.status):
            problems.append(
                "Status is missing or invalid. Expecting: " + ", ".join(s.value for s in EmailStatus)
            )
        return problems


EMAIL_TABLE = TableDefinition(
    table_name="emails",
    entity_type="Email",
    versioned=True,
    label=lambda e: e.label(),
    index_rows=(
        TableRow(ROW_ADDRESS, "address", lambda e: e.addresses(), label=lambda e: e.subject),
        TableRow(ROW_STATUS, "status", lambda e: [e.status]),
    ),
)


def new_email_table(data_dir: str, **kwargs) -> VersionedTable[Email]:
    return VersionedTable(data_dir, EMAIL_TABLE, Email.model_validate_json, **kwargs)


class EmailService(VersionedEntityService[Email]):
    """Manages stored Emails."""

    def _standardize(self, e: Email) -> Email:
        return e.model_copy(
            update={
                "from_": e.from_.standardized(),
                "to": [i.standardized() for i in e.to],
                "cc": [i.standardized() for i in e.cc] if e.cc else None,
                "bcc": [i.standardized() for i in e.bcc] if e.bcc else None,
                "status": (e.status or EmailStatus.PENDING.value).upper(),
            }
        )

    def prepare_create(self, entity: Email) -> Email:
        return self._standardize(entity)

    def prepare_update(self, entity: Email, prior: Email) -> Email:
        return self._standardize(entity)

    async def read_addresses(
        self, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[str]:
        return await self.table.read_part_key_values(ROW_ADDRESS, reverse, limit, offset)

    async def read_all_addresses(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_ADDRESS)

    async def read_emails_by_address(
        self, address: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Email]:
        return await self.table.read_entities_from_row(ROW_ADDRESS, address, reverse, limit, offset)

    async def read_all_statuses(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_STATUS)

    async def read_emails_by_status(
        self, status: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Email]:
        return await self.table.read_entities_from_row(ROW_STATUS, status, reverse, limit, offset)
