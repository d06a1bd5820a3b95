"""
Application services and per-request context.

Application is the explicit dependency container: it is built once by
create_app() and stored on ``app.state.api``. Handlers receive it through
``Depends(get_api)``; nothing reads it from module-level state.

RequestContext carries the caller's identity for one request. Both fields
are optional: an anonymous request has neither a token nor a user.
"""

from __future__ import annotations

import platform
from dataclasses import dataclass

from fastapi import Request

from ..config import Settings
from ..entities.device import DeviceService, new_device_table
from ..entities.device_count import DeviceCountService, new_device_count_table
from ..entities.email import EmailService, new_email_table
from ..entities.event import EventService, new_event_table
from ..entities.image import ImageService, new_image_table
from ..entities.metric import MetricService, new_metric_table
from ..entities.org import OrganizationService, new_organization_table
from ..entities.token import Token, TokenService, new_token_table
from ..entities.user import User, UserService, new_user_table
from ..store.table import TableSet


@dataclass
class Application:
    """Services shared by all request handlers."""

    settings: Settings
    users: UserService
    tokens: TokenService
    organizations: OrganizationService
    devices: DeviceService
    device_counts: DeviceCountService
    emails: EmailService
    images: ImageService
    metrics: MetricService
    events: EventService
    tables: TableSet

    @classmethod
    def from_settings(cls, settings: Settings) -> Application:
        """Build every table and service from configuration."""
        options = {
            "wal_mode": settings.sqlite_wal_mode,
            "busy_timeout_ms": settings.sqlite_busy_timeout_ms,
        }
        data_dir = settings.data_dir
        tables = TableSet()

        tokens = TokenService(
            tables.add(new_token_table(data_dir, **options)),
            lifetime_days=settings.token_lifetime_days,
        )
        return cls(
            settings=settings,
            users=UserService(
                tables.add(new_user_table(data_dir, **options)),
                tokens,
                bcrypt_rounds=settings.bcrypt_rounds,
            ),
            tokens=tokens,
            organizations=OrganizationService(tables.add(new_organization_table(data_dir, **options))),
            devices=DeviceService(tables.add(new_device_table(data_dir, **options))),
            device_counts=DeviceCountService(tables.add(new_device_count_table(data_dir, **options))),
            emails=EmailService(tables.add(new_email_table(data_dir, **options))),
            images=ImageService(tables.add(new_image_table(data_dir, **options))),
            metrics=MetricService(tables.add(new_metric_table(data_dir, **options))),
            events=EventService(tables.add(new_event_table(data_dir, **options))),
            tables=tables,
        )

    async def initialize(self) -> None:
        await self.tables.initialize()

    def about(self) -> dict[str, str]:
        """Basic information about the running application."""
        return {
            "name": self.settings.name,
            "baseDomain": self.settings.base_domain,
            "gitHash": self.settings.git_hash,
            "buildTime": self.settings.build_time,
            "language": f"Python {platform.python_version()}",
            "environment": self.settings.environment,
            "description": self.settings.description,
        }


@dataclass
class RequestContext:
    """Identity of the caller for a single request."""

    token: Token | None = None
    user: User | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def user_id(self) -> str | None:
        return self.user.id if self.user else None

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin()

    def is_self(self, user_id: str) -> bool:
        return self.user is not None and self.user.id == user_id


def get_api(request: Request) -> Application:
    """Get the Application from app state."""
    return request.app.state.api


def get_context(request: Request) -> RequestContext:
    """Get the RequestContext attached by the bearer token middleware."""
    ctx = getattr(request.state, "context", None)
    if ctx is None:
        ctx = RequestContext()
        request.state.context = ctx
    return ctx
