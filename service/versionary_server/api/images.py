"""Image metadata endpoints. Reads are open; writes require an administrator."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..entities.image import Image, ImageStatus
from ..entities.search import ContainsFilter
from .auth import require_admin
from .context import Application, RequestContext, get_api, get_context
from .errors import BadRequest, NotFound
from .handlers import audit, created, dicts, exists_response, parse_body, path_id, translate_errors
from .pagination import bool_param, pagination_params

router = APIRouter(tags=["Image"])


@router.post("/v1/images", status_code=201)
async def create_image(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    body = await parse_body(request, Image)
    async with translate_errors(api, ctx, request, "create image", entity_type="Image"):
        image = await api.images.create(body)
    await audit(api, ctx, request, f"created Image {image.id} {image.label()}", image.id, "Image")
    return created(request, image.id, image.to_dict())


@router.get("/v1/images")
async def read_images(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """List Images, optionally filtered by status or tag."""
    page = pagination_params(request)
    status = request.query_params.get("status", "").upper()
    if status and not ImageStatus.is_valid(status):
        raise BadRequest(f"bad request: invalid status: {status}")
    tag = request.query_params.get("tag", "").strip().lower()
    if status:
        async with translate_errors(api, ctx, request, f"read images by status {status}", entity_type="Image"):
            images = await api.images.read_images_by_status(status, page.reverse, page.limit, page.offset)
    elif tag:
        async with translate_errors(api, ctx, request, f"read images by tag {tag}", entity_type="Image"):
            images = await api.images.read_images_by_tag(tag, page.reverse, page.limit, page.offset)
    else:
        async with translate_errors(api, ctx, request, "read images", entity_type="Image"):
            images = await api.images.read_page(page.reverse, page.limit, page.offset)
    return dicts(images)


@router.head("/v1/images/{image_id}")
async def exists_image(image_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.images.exists, image_id)


@router.get("/v1/images/{image_id}")
async def read_image(
    image_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    path_id(image_id)
    async with translate_errors(
        api, ctx, request, f"read image {image_id}", f"not found: image {image_id}", image_id, "Image"
    ):
        image = await api.images.read(image_id)
    return image.to_dict()


@router.get("/v1/images/{image_id}/versions")
async def read_image_versions(
    image_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(image_id)
    page = pagination_params(request)
    async with translate_errors(
        api, ctx, request, f"read image {image_id} versions", entity_id=image_id, entity_type="Image"
    ):
        if not await api.images.exists(image_id):
            raise NotFound(f"not found: image {image_id}")
        versions = await api.images.read_versions(image_id, page.reverse, page.limit, page.offset)
    return dicts(versions)


@router.head("/v1/images/{image_id}/versions/{version_id}")
async def exists_image_version(image_id: str, version_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.images.version_exists, image_id, version_id)


@router.get("/v1/images/{image_id}/versions/{version_id}")
async def read_image_version(
    image_id: str,
    version_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    path_id(image_id)
    path_id(version_id, "VersionID")
    async with translate_errors(
        api,
        ctx,
        request,
        f"read image {image_id} version {version_id}",
        f"not found: image {image_id} version {version_id}",
        image_id,
        "Image",
    ):
        image = await api.images.read_version(image_id, version_id)
    return image.to_dict()


@router.put("/v1/images/{image_id}")
async def update_image(
    image_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    body = await parse_body(request, Image)
    path_id(image_id)
    if body.id != image_id:
        raise BadRequest(f"bad request: path parameter ID {image_id} does not match Image ID {body.id}")
    async with translate_errors(
        api, ctx, request, f"update image {image_id}", f"not found: image {image_id}", image_id, "Image"
    ):
        image = await api.images.update(body)
    await audit(api, ctx, request, f"updated Image {image.id} {image.label()}", image.id, "Image")
    return image.to_dict()


@router.delete("/v1/images/{image_id}")
async def delete_image(
    image_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(image_id)
    async with translate_errors(
        api, ctx, request, f"delete image {image_id}", f"not found: image {image_id}", image_id, "Image"
    ):
        image = await api.images.delete(image_id)
    await audit(api, ctx, request, f"deleted Image {image.id} {image.label()}", image.id, "Image")
    return image.to_dict()


@router.delete("/v1/images/{image_id}/versions/{version_id}")
async def delete_image_version(
    image_id: str,
    version_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(image_id)
    path_id(version_id, "VersionID")
    async with translate_errors(
        api,
        ctx,
        request,
        f"delete image {image_id} version {version_id}",
        f"not found: image {image_id} version {version_id}",
        image_id,
        "Image",
    ):
        image = await api.images.delete_version(image_id, version_id)
    await audit(api, ctx, request, f"deleted Image {image_id} version {version_id}", image_id, "Image")
    return image.to_dict()


@router.get("/v1/image_statuses")
async def read_image_statuses(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read image statuses", entity_type="Image"):
        return await api.images.read_all_statuses()


@router.get("/v1/image_tags")
async def read_image_tags(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read image tags", entity_type="Image"):
        return await api.images.read_all_tags()


@router.get("/v1/image_labels")
async def read_image_labels(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Image IDs and labels, optionally searched or sorted by label."""
    page = pagination_params(request, limit=1000)
    search = request.query_params.get("search", "").strip()
    any_match = bool_param(request, "any")
    sort_by_value = bool_param(request, "sorted")
    async with translate_errors(api, ctx, request, "read image labels", entity_type="Image"):
        if search:
            labels = await api.images.filter_image_labels(ContainsFilter(search, any_match))
        elif sort_by_value or "limit" not in request.query_params:
            labels = await api.images.read_all_labels(sort_by_value)
        else:
            labels = await api.images.read_labels(page.reverse, page.limit, page.offset)
    return dicts(labels)
