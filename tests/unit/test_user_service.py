"""
Unit tests for the UserService.

Tests cover:
- Password hashing and authentication
- Email standardization and uniqueness
- Scrubbing and restoring password material
- Deleting a user together with their tokens
"""

import tempfile

import pytest

from service.versionary_server import tuid
from service.versionary_server.entities.base import ValidationProblems
from service.versionary_server.entities.token import Token, TokenService, new_token_table
from service.versionary_server.entities.user import (
    User,
    UserService,
    check_password,
    hash_password,
    new_user_table,
)
from service.versionary_server.store.table import NotFoundError


class TestUserService:
    """Tests for UserService."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def tokens(self, data_dir):
        return TokenService(new_token_table(data_dir, wal_mode=False))

    @pytest.fixture
    def users(self, data_dir, tokens):
        return UserService(new_user_table(data_dir, wal_mode=False), tokens, bcrypt_rounds=4)

    @pytest.mark.asyncio
    async def test_create_hashes_password(self, users):
        """The clear-text password is replaced by a bcrypt hash."""
        user = await users.create(User(email="alice@example.com", password="s3cret"))

        assert user.password is None
        assert user.password_hash.startswith("$2b$04$")
        assert "s3cret" not in user.password_hash
        assert check_password("s3cret", user.password_hash)
        assert user.status == "PENDING"
        assert user.valid_password("s3cret")
        assert not user.valid_password("wrong")

    @pytest.mark.asyncio
    async def test_same_password_gets_distinct_salts(self, users):
        alice = await users.create(User(email="alice@example.com", password="s3cret"))
        bob = await users.create(User(email="bob@example.com", password="s3cret"))
        assert alice.password_hash != bob.password_hash
        assert bob.valid_password("s3cret")

    @pytest.mark.asyncio
    async def test_long_password_rejected(self, users):
        """Passwords past the bcrypt input limit are refused rather than truncated."""
        with pytest.raises(ValidationProblems) as exc_info:
            await users.create(User(email="alice@example.com", password="x" * 73))
        assert exc_info.value.problems == ["Password is longer than 72 bytes"]
        assert await users.read_all_ids() == []

        user = await users.create(User(email="alice@example.com", password="x" * 72))
        assert user.valid_password("x" * 72)

    @pytest.mark.asyncio
    async def test_email_is_standardized(self, users):
        user = await users.create(User(email="  Alice@Example.COM ", password="pw"))
        assert user.email == "alice@example.com"
        assert (await users.read("alice@example.com")).id == user.id
        assert (await users.read("ALICE@example.com")).id == user.id

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, users):
        """Email addresses are unique across users."""
        first = await users.create(User(email="alice@example.com"))
        with pytest.raises(ValidationProblems) as exc_info:
            await users.create(User(email="Alice@example.com"))
        assert exc_info.value.problems == [
            f"email address alice@example.com is already in use by {first.id}"
        ]

    @pytest.mark.asyncio
    async def test_invalid_user(self, users):
        """Missing email and a bad status are both reported."""
        with pytest.raises(ValidationProblems) as exc_info:
            await users.create(User(email="", status="BOGUS"))
        problems = exc_info.value.problems
        assert "Email is missing or invalid" in problems
        assert any(p.startswith("Status is missing or invalid") for p in problems)

    @pytest.mark.asyncio
    async def test_update_keeps_password_hash(self, users):
        """An update without password material keeps the stored hash."""
        user = await users.create(User(email="alice@example.com", password="s3cret"))
        updated = await users.update(user.scrub().model_copy(update={"given_name": "Alice"}))

        assert updated.given_name == "Alice"
        assert updated.password_hash == user.password_hash

    @pytest.mark.asyncio
    async def test_update_changes_password(self, users):
        user = await users.create(User(email="alice@example.com", password="s3cret"))
        updated = await users.update(user.model_copy(update={"password": "n3w"}))
        assert updated.password is None
        assert updated.valid_password("n3w")
        assert not updated.valid_password("s3cret")

    @pytest.mark.asyncio
    async def test_authenticate(self, users):
        """Authentication accepts an email or an ID with the right password."""
        user = await users.create(User(email="alice@example.com", password="s3cret", status="ENABLED"))

        assert (await users.authenticate("alice@example.com", "s3cret")).id == user.id
        assert (await users.authenticate(user.id, "s3cret")).id == user.id
        with pytest.raises(PermissionError):
            await users.authenticate("alice@example.com", "wrong")
        with pytest.raises(NotFoundError):
            await users.authenticate("nobody@example.com", "s3cret")

    @pytest.mark.asyncio
    async def test_disabled_user_cannot_authenticate(self, users):
        await users.create(User(email="alice@example.com", password="s3cret", status="DISABLED"))
        with pytest.raises(PermissionError, match="disabled"):
            await users.authenticate("alice@example.com", "s3cret")

    @pytest.mark.asyncio
    async def test_exists_by_email(self, users):
        user = await users.create(User(email="alice@example.com"))
        assert await users.exists(user.id)
        assert await users.exists("alice@example.com")
        assert await users.exists(" ALICE@example.com ")
        assert not await users.exists("bob@example.com")

    @pytest.mark.asyncio
    async def test_index_reads(self, users):
        """Users are listed by role, status and organization."""
        org_id = tuid.new_id()
        admin = await users.create(
            User(email="admin@example.com", roles=["admin", " admin "], status="ENABLED")
        )
        alice = await users.create(
            User(email="alice@example.com", org_id=org_id, org_name="Acme", status="PENDING")
        )

        assert admin.roles == ["admin"]
        assert [u.id for u in await users.read_users_by_role("admin")] == [admin.id]
        assert [u.id for u in await users.read_users_by_org(org_id)] == [alice.id]
        assert await users.read_all_statuses() == ["ENABLED", "PENDING"]
        assert await users.read_all_emails() == ["admin@example.com", "alice@example.com"]
        assert [tv.to_dict() for tv in await users.read_all_orgs()] == [{"key": org_id, "value": "Acme"}]
        assert await users.read_ids_by_email("alice@example.com") == [alice.id]

    @pytest.mark.asyncio
    async def test_delete_removes_tokens(self, users, tokens):
        """Deleting a user deletes every token that belongs to them."""
        user = await users.create(User(email="alice@example.com"))
        other = await users.create(User(email="bob@example.com"))
        t1 = await tokens.create(Token(user_id=user.id, email=user.email))
        t2 = await tokens.create(Token(user_id=user.id, email=user.email))
        kept = await tokens.create(Token(user_id=other.id, email=other.email))

        result = await users.delete(user.id)

        assert result.entity.id == user.id
        assert result.warnings == []
        assert not await tokens.exists(t1.id)
        assert not await tokens.exists(t2.id)
        assert await tokens.exists(kept.id)

    @pytest.mark.asyncio
    async def test_delete_reports_token_failures(self, users, tokens, monkeypatch):
        """Token cleanup failures become warnings; the user stays deleted."""
        user = await users.create(User(email="alice@example.com"))
        token = await tokens.create(Token(user_id=user.id, email=user.email))

        async def failing_delete(token_id):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(tokens, "delete", failing_delete)
        result = await users.delete(user.id)

        assert result.warnings == [f"delete token {token.id} for user {user.id}: database is locked"]
        assert not await users.exists(user.id)

    @pytest.mark.asyncio
    async def test_delete_missing_user(self, users):
        with pytest.raises(NotFoundError):
            await users.delete(tuid.new_id())


class TestUserModel:
    """Tests for User helpers."""

    def test_admin_satisfies_every_role(self):
        admin = User(email="a@example.com", roles=["admin"])
        editor = User(email="e@example.com", roles=["editor"])

        assert admin.has_role("editor")
        assert admin.is_admin()
        assert editor.has_role("editor")
        assert not editor.has_role("publisher")
        assert not User(email="n@example.com").has_role("editor")

    def test_scrub_and_restore(self):
        """restore_scrubbed() returns password material removed by scrub()."""
        user = User(
            id=tuid.new_id(),
            email="a@example.com",
            password_hash="hash",
            password_reset="reset-code",
        )
        scrubbed = user.scrub()
        assert scrubbed.password_hash is None
        assert scrubbed.password_reset is None
        assert "passwordHash" not in scrubbed.to_dict()

        restored = scrubbed.restore_scrubbed(user)
        assert restored.password_hash == "hash"
        assert restored.password_reset == "reset-code"

    def test_restore_keeps_new_password(self):
        """A clear-text password supplied by the caller is not discarded."""
        prior = User(id=tuid.new_id(), email="a@example.com", password_hash="hash")
        body = User(id=prior.id, email="a@example.com", password="n3w")
        assert body.restore_scrubbed(prior).password == "n3w"

    def test_label(self):
        assert User(email="a@example.com", given_name="Ada", family_name="Lovelace").label() == (
            "Ada Lovelace <a@example.com>"
        )
        assert User(email="a@example.com").label() == "a@example.com"

    def test_json_aliases(self):
        """Stored JSON uses camelCase keys with upper-case acronyms."""
        data = User(id="x", email="a@example.com", org_id="o", avatar_url="u").to_dict()
        assert data["orgID"] == "o"
        assert data["avatarURL"] == "u"
        assert "password" not in data


class TestPasswordHash:
    """Tests for the bcrypt helpers."""

    def test_hash_and_check(self):
        hashed = hash_password("s3cret", rounds=4)
        assert hashed.startswith("$2b$04$")
        assert check_password("s3cret", hashed)
        assert not check_password("S3cret", hashed)

    def test_legacy_digest_never_matches(self):
        """A hex digest is not a bcrypt hash and cannot authenticate."""
        assert not check_password("s3cret", "a" * 64)
        user = User(id=tuid.new_id(), email="a@example.com", password_hash="a" * 64)
        assert not user.valid_password("s3cret")
        assert not user.valid_password("")
