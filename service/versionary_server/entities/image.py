"""
Image metadata.

Only the descriptive metadata of an image is managed here; the image
bytes live in external storage. The stored file name is derived from the
image ID and its media type.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from ..store.table import TableDefinition, TableRow, TextValue, VersionedTable
from .base import VersionedEntity, VersionedEntityService
from .search import ContainsFilter

ROW_STATUS = "images_status"
ROW_TAG = "images_tag"

MEDIA_TYPE_EXTENSIONS = {
    "image/gif": ".gif",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class ImageStatus(str, Enum):
    """Processing status of an Image."""

    PENDING = "PENDING"
    UPLOADED = "UPLOADED"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"

    @classmethod
    def is_valid(cls, value: str) -> bool:
        return value in cls._value2member_map_


class Image(VersionedEntity):
    """Metadata describing a stored image."""

    entity_type = "Image"

    title: str = ""
    alt_text: str = ""
    source_uri: str | None = Field(default=None, alias="sourceURI")
    source_file_name: str | None = None
    media_type: str = ""
    file_name: str = ""
    file_size: int = 0
    md5_hash: str = ""
    p_hash: str | None = None
    width: int | None = None
    height: int | None = None
    aspect_ratio: float | None = None
    tags: list[str] | None = None
    status: str = ""

    def label(self) -> str:
        for text in (self.title, self.alt_text, self.source_file_name, self.file_name):
            if text:
                return text
        return self.id

    def file_ext(self) -> str:
        return MEDIA_TYPE_EXTENSIONS.get(self.media_type, "")

    def validate_entity(self) -> list[str]:
        problems = self.validate_versioning()
        if self.media_type not in MEDIA_TYPE_EXTENSIONS:
            problems.append(
                "MediaType is missing or unsupported. Expected: " + ", ".join(MEDIA_TYPE_EXTENSIONS)
            )
        if not self.file_name:
            problems.append("FileName is missing")
        if not ImageStatus.is_valid(self.status):
            problems.append(
                "Status is missing or invalid. Expected: " + ", ".join(s.value for s in ImageStatus)
            )
        if self.width and self.height and not self.aspect_ratio:
            problems.append("AspectRatio is missing")
        return problems


IMAGE_TABLE = TableDefinition(
    table_name="images",
    entity_type="Image",
    versioned=True,
    label=lambda i: i.label(),
    index_rows=(
        TableRow(ROW_STATUS, "status", lambda i: [i.status], label=lambda i: i.label()),
        TableRow(ROW_TAG, "tag", lambda i: list(i.tags or []), label=lambda i: i.label()),
    ),
)


def new_image_table(data_dir: str, **kwargs) -> VersionedTable[Image]:
    return VersionedTable(data_dir, IMAGE_TABLE, Image.model_validate_json, **kwargs)


class ImageService(VersionedEntityService[Image]):
    """Manages Image metadata."""

    def _standardize(self, i: Image) -> Image:
        update: dict = {
            "file_name": i.id + i.file_ext(),
            "status": (i.status or ImageStatus.PENDING.value).upper(),
        }
        if i.tags is not None:
            update["tags"] = sorted({t.strip().lower() for t in i.tags if t.strip()}) or None
        if i.width and i.height:
            update["aspect_ratio"] = round(i.width / i.height, 4)
        return i.model_copy(update=update)

    def prepare_create(self, entity: Image) -> Image:
        return self._standardize(entity)

    def prepare_update(self, entity: Image, prior: Image) -> Image:
        return self._standardize(entity)

    async def read_all_statuses(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_STATUS)

    async def read_images_by_status(
        self, status: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Image]:
        return await self.table.read_entities_from_row(ROW_STATUS, status, reverse, limit, offset)

    async def read_all_tags(self) -> list[str]:
        return await self.table.read_all_part_key_values(ROW_TAG)

    async def read_images_by_tag(
        self, tag: str, reverse: bool = False, limit: int = 100, offset: str = "-"
    ) -> list[Image]:
        return await self.table.read_entities_from_row(ROW_TAG, tag, reverse, limit, offset)

    async def filter_image_labels(self, contains: ContainsFilter) -> list[TextValue]:
        return await self.filter_labels(contains)
