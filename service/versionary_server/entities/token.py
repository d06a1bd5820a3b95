"""
Bearer tokens.

A Token is an opaque, time-limited credential (a TUID) that maps to
exactly one User. Tokens are not versioned; they expire through the
table's TTL.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .. import tuid
from ..store.table import TableDefinition, TableRow, TextValue, VersionedTable
from .base import EntityService, RecordEntity, unix_seconds

ROW_USER = "tokens_user"

TOKEN_LIFETIME_DAYS = 30


class Token(RecordEntity):
    """An OAuth-style bearer token."""

    entity_type = "Token"

    user_id: str = ""
    email: str | None = None

    def label(self) -> str:
        return self.email or self.user_id

    def validate_entity(self) -> list[str]:
        problems = []
        if not self.id or not tuid.is_valid(self.id):
            problems.append("ID is missing or invalid")
        if self.created_at is None:
            problems.append("CreatedAt is missing")
        if self.expires_at is None:
            problems.append("ExpiresAt is missing")
        if not self.user_id or not tuid.is_valid(self.user_id):
            problems.append("UserID is missing or invalid")
        return problems


class TokenRequest(BaseModel):
    """Login request: a username (email or user ID) and password."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    grant_type: str = "password"
    username: str = ""
    password: str = ""


class TokenResponse(BaseModel):
    """Login response carrying the new bearer token."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    access_token: str
    token_type: str = "Bearer"
    expires_at: datetime


TOKEN_TABLE = TableDefinition(
    table_name="tokens",
    entity_type="Token",
    versioned=False,
    label=lambda t: t.label(),
    index_rows=(TableRow(ROW_USER, "user_id", lambda t: [t.user_id], label=lambda t: t.email or ""),),
    expires_at=lambda t: unix_seconds(t.expires_at),
)


def new_token_table(data_dir: str, **kwargs) -> VersionedTable[Token]:
    return VersionedTable(data_dir, TOKEN_TABLE, Token.model_validate_json, **kwargs)


class TokenService(EntityService[Token]):
    """Manages bearer Tokens."""

    def __init__(self, table: VersionedTable[Token], lifetime_days: int = TOKEN_LIFETIME_DAYS) -> None:
        super().__init__(table)
        self.lifetime_days = lifetime_days

    def prepare_create(self, entity: Token) -> Token:
        return entity.model_copy(
            update={"expires_at": entity.created_at + timedelta(days=self.lifetime_days)}
        )

    async def read_all_user_ids(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_USER)

    async def read_user_ids(self, reverse: bool = False, limit: int = 100, offset: str = "-") -> list[str]:
        return await self.table.read_part_key_values(ROW_USER, reverse, limit, offset)

    async def read_user_labels(self, sort_by_value: bool = False) -> list[TextValue]:
        return await self.table.read_all_part_key_labels(ROW_USER, sort_by_value)

    async def read_all_token_ids_by_user(self, user_id: str) -> list[str]:
        return await self.table.read_entity_ids_from_row(ROW_USER, user_id, limit=-1)

    async def read_tokens_by_user(
        self, user_id: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Token]:
        return await self.table.read_entities_from_row(ROW_USER, user_id, reverse, limit, offset)
