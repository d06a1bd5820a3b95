"""
Users and their lifecycle.

A User carries an email address (unique across users), a set of roles, an
optional organization, and a lifecycle status. Passwords are never stored
in clear text: on create/update the password is replaced by a bcrypt hash,
computed in a worker thread.

Invariants:
    - Email addresses are trimmed, lower-cased, and unique
    - The "admin" role satisfies every role check
    - scrub() hides password material; restore_scrubbed() puts it back from
      a prior version, so scrubbed documents can be round-tripped on update
    - Deleting a user also deletes the user's tokens (best effort)

How to change safely:
    - Hashes are self-describing bcrypt strings; raising bcrypt_rounds only
      affects passwords set afterwards
    - bcrypt reads at most 72 bytes; longer passwords are rejected, not truncated
    - Keep the index row names stable; they are persisted in the table
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

import bcrypt
from pydantic import Field

from .. import tuid
from ..store.table import NotFoundError, TableDefinition, TableRow, TextValue, VersionedTable
from .base import DeleteResult, ValidationProblems, VersionedEntity, VersionedEntityService
from .email import standardize_address
from .search import ContainsFilter
from .token import TokenService

logger = logging.getLogger(__name__)

ROW_EMAIL = "users_email"
ROW_ORG = "users_org"
ROW_ROLE = "users_role"
ROW_STATUS = "users_status"

ADMIN_ROLE = "admin"

MAX_PASSWORD_BYTES = 72
DEFAULT_BCRYPT_ROUNDS = 12


class UserStatus(str, Enum):
    """Lifecycle status of a User."""

    PENDING = "PENDING"
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls._value2member_map_


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Hash a clear-text password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    """Check a clear-text password against a bcrypt hash.

    Malformed hashes and over-long passwords never match.
    """
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class User(VersionedEntity):
    """A person using the API."""

    entity_type = "User"

    given_name: str | None = None
    family_name: str | None = None
    email: str = ""
    password: str | None = None
    password_hash: str | None = None
    password_reset: str | None = None
    roles: list[str] | None = None
    org_id: str | None = Field(default=None, alias="orgID")
    org_name: str | None = None
    avatar_url: str | None = Field(default=None, alias="avatarURL")
    website_url: str | None = Field(default=None, alias="websiteURL")
    status: str = ""

    def label(self) -> str:
        name = " ".join(n for n in (self.given_name, self.family_name) if n)
        if name and self.email:
            return f"{name} <{self.email}>"
        return name or self.email

    def has_role(self, role: str) -> bool:
        roles = self.roles or []
        return role in roles or ADMIN_ROLE in roles

    def is_admin(self) -> bool:
        return ADMIN_ROLE in (self.roles or [])

    def scrub(self) -> User:
        """Return a copy without password material."""
        return self.model_copy(
            update={"password": None, "password_hash": None, "password_reset": None}
        )

    def restore_scrubbed(self, prior: User) -> User:
        """Return a copy with the password material of a prior version restored.

        A plaintext password is kept; it is hashed on update and never stored.
        """
        return self.model_copy(
            update={"password_hash": prior.password_hash, "password_reset": prior.password_reset}
        )

    def valid_password(self, password: str) -> bool:
        return bool(password and self.password_hash and check_password(password, self.password_hash))

    def valid_email(self) -> bool:
        try:
            standardize_address(self.email)
        except ValueError:
            return False
        return True

    def validate_entity(self) -> list[str]:
        problems = self.validate_versioning()
        if not self.valid_email():
            problems.append("Email is missing or invalid")
        if self.org_id and not tuid.is_valid(self.org_id):
            problems.append("OrgID is not a TUID")
        if not UserStatus.is_valid(self.status):
            problems.append(
                "Status is missing or invalid. Expecting: " + ", ".join(s.value for s in UserStatus)
            )
        return problems


USER_TABLE = TableDefinition(
    table_name="users",
    entity_type="User",
    versioned=True,
    label=lambda u: u.label(),
    index_rows=(
        TableRow(ROW_EMAIL, "email", lambda u: [u.email]),
        TableRow(ROW_ORG, "org_id", lambda u: [u.org_id or ""], label=lambda u: u.org_name or ""),
        TableRow(ROW_ROLE, "role", lambda u: list(u.roles or [])),
        TableRow(ROW_STATUS, "status", lambda u: [u.status]),
    ),
)


def new_user_table(data_dir: str, **kwargs) -> VersionedTable[User]:
    return VersionedTable(data_dir, USER_TABLE, User.model_validate_json, **kwargs)


class UserService(VersionedEntityService[User]):
    """Manages Users, and the Tokens that belong to them."""

    def __init__(
        self,
        table: VersionedTable[User],
        tokens: TokenService,
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    ) -> None:
        super().__init__(table)
        self.tokens = tokens
        self.bcrypt_rounds = bcrypt_rounds

    def _standardize(self, u: User) -> User:
        update: dict = {}
        try:
            update["email"] = standardize_address(u.email)
        except ValueError:
            # Reported by validate_entity()
            update["email"] = u.email.strip().lower()
        if u.roles is not None:
            update["roles"] = list(dict.fromkeys(r.strip() for r in u.roles if r.strip())) or None
        return u.model_copy(update=update)

    async def _hash_password(self, u: User) -> User:
        """Replace a clear-text password with its bcrypt hash.

        Raises:
            ValidationProblems: If the password is longer than bcrypt accepts
        """
        if not u.password:
            return u.model_copy(update={"password": None})
        if len(u.password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationProblems(
                self.entity_type, u.id, [f"Password is longer than {MAX_PASSWORD_BYTES} bytes"]
            )
        password_hash = await asyncio.to_thread(hash_password, u.password, self.bcrypt_rounds)
        return u.model_copy(update={"password_hash": password_hash, "password": None})

    async def create(self, entity: User) -> User:
        return await super().create(await self._hash_password(entity))

    async def update(self, entity: User) -> User:
        return await super().update(await self._hash_password(entity))

    def prepare_create(self, entity: User) -> User:
        if not entity.status:
            entity = entity.model_copy(update={"status": UserStatus.PENDING.value})
        return self._standardize(entity)

    def prepare_update(self, entity: User, prior: User) -> User:
        entity = self._standardize(entity)
        if not entity.password_hash:
            entity = entity.model_copy(update={"password_hash": prior.password_hash})
        return entity

    async def check_constraints(self, entity: User) -> list[str]:
        duplicates = [
            u.id
            for u in await self.table.read_all_entities_from_row(ROW_EMAIL, entity.email)
            if u.id != entity.id
        ]
        if duplicates:
            return [f"email address {entity.email} is already in use by {', '.join(duplicates)}"]
        return []

    async def read(self, entity_id: str) -> User:
        """Read a User by ID, or by email address if the argument contains '@'."""
        if "@" in entity_id:
            return await self.read_user_by_email(entity_id)
        return await self.table.read_entity(entity_id)

    async def exists(self, entity_id: str) -> bool:
        """Check for a User by ID, or by email address if the argument contains '@'."""
        if "@" in entity_id:
            return bool(await self.read_ids_by_email(entity_id.strip().lower()))
        return await self.table.entity_exists(entity_id)

    async def read_user_by_email(self, email: str) -> User:
        users = await self.table.read_all_entities_from_row(ROW_EMAIL, email.strip().lower())
        if not users:
            raise NotFoundError(f"not found: User {email}")
        return users[0]

    async def authenticate(self, username: str, password: str) -> User:
        """Resolve a username (email or ID) and check the password.

        Raises:
            NotFoundError: If the user does not exist
            PermissionError: If the user is disabled or the password is wrong
        """
        user = await self.read(username)
        if user.status == UserStatus.DISABLED.value:
            raise PermissionError(f"user {user.id} is disabled")
        if not await asyncio.to_thread(user.valid_password, password):
            raise PermissionError("invalid username or password")
        return user

    async def delete(self, entity_id: str) -> DeleteResult[User]:
        """Delete a User, then (best effort) the User's Tokens.

        Token deletion failures are reported as warnings; they never undo
        the User deletion.

        Raises:
            NotFoundError: If the user does not exist
        """
        user = await self.table.delete_entity(entity_id)
        warnings: list[str] = []
        try:
            token_ids = await self.tokens.read_all_token_ids_by_user(entity_id)
        except Exception as e:
            warnings.append(f"read tokens for user {entity_id}: {e}")
            token_ids = []
        for token_id in token_ids:
            try:
                await self.tokens.delete(token_id)
            except Exception as e:
                warnings.append(f"delete token {token_id} for user {entity_id}: {e}")
        for warning in warnings:
            logger.warning("User deletion cleanup failed", extra={"user_id": entity_id, "warning": warning})
        return DeleteResult(entity=user, warnings=warnings)

    # --- Users by email ---

    async def read_all_emails(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_EMAIL)

    async def read_emails(self, reverse: bool = False, limit: int = 100, offset: str = "-") -> list[str]:
        return await self.table.read_part_key_values(ROW_EMAIL, reverse, limit, offset)

    async def read_ids_by_email(self, email: str) -> list[str]:
        return await self.table.read_entity_ids_from_row(ROW_EMAIL, email, limit=-1)

    async def read_users_by_email(
        self, email: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[User]:
        return await self.table.read_entities_from_row(ROW_EMAIL, email, reverse, limit, offset)

    # --- Users by organization ---

    async def read_all_orgs(self, sort_by_value: bool = False) -> list[TextValue]:
        return await self.table.read_all_part_key_labels(ROW_ORG, sort_by_value)

    async def read_orgs(
        self, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[TextValue]:
        return await self.table.read_part_key_labels(ROW_ORG, reverse, limit, offset)

    async def read_users_by_org(
        self, org_id: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[User]:
        return await self.table.read_entities_from_row(ROW_ORG, org_id, reverse, limit, offset)

    # --- Users by role ---

    async def read_all_roles(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_ROLE)

    async def read_users_by_role(
        self, role: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[User]:
        return await self.table.read_entities_from_row(ROW_ROLE, role, reverse, limit, offset)

    # --- Users by status ---

    async def read_all_statuses(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_STATUS)

    async def read_users_by_status(
        self, status: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[User]:
        return await self.table.read_entities_from_row(ROW_STATUS, status, reverse, limit, offset)

    # --- Names ---

    async def read_names(
        self, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[TextValue]:
        return await self.read_labels(reverse, limit, offset)

    async def read_all_names(self, sort_by_value: bool = False) -> list[TextValue]:
        return await self.read_all_labels(sort_by_value)

    async def filter_names(self, contains: ContainsFilter) -> list[TextValue]:
        return await self.filter_labels(contains)
