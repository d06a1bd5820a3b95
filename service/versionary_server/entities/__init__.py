"""
Entity models and services.

Each module defines one entity type: its pydantic model, its table
definition (index rows), and the service that manages it.
"""

from .base import (
    DeleteResult,
    Entity,
    EntityService,
    RecordEntity,
    ValidationProblems,
    VersionedEntity,
    VersionedEntityService,
)
from .device import Device, DeviceService, UserAgent
from .device_count import DeviceCount, DeviceCountService
from .email import Email, EmailService, Identity
from .event import Event, EventService, LogLevel
from .image import Image, ImageService
from .metric import Metric, MetricService, MetricStat
from .org import Organization, OrganizationService
from .search import ContainsFilter
from .token import Token, TokenRequest, TokenResponse, TokenService
from .user import User, UserService, UserStatus

__all__ = [
    "ContainsFilter",
    "DeleteResult",
    "Device",
    "DeviceCount",
    "DeviceCountService",
    "DeviceService",
    "Email",
    "EmailService",
    "Entity",
    "EntityService",
    "Event",
    "EventService",
    "Identity",
    "Image",
    "ImageService",
    "LogLevel",
    "Metric",
    "MetricService",
    "MetricStat",
    "Organization",
    "OrganizationService",
    "RecordEntity",
    "Token",
    "TokenRequest",
    "TokenResponse",
    "TokenService",
    "User",
    "UserService",
    "UserAgent",
    "UserStatus",
    "ValidationProblems",
    "VersionedEntity",
    "VersionedEntityService",
]
