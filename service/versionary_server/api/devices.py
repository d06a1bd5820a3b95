"""
Device endpoints.

Clients register themselves with POST /v1/devices and report activity
with PUT /v1/devices/{id}. Both take the device description from the
User-Agent header and the caller's identity (if any), not from a body.

A PUT for a device that has expired re-creates it under a new ID and
answers 201 with a Location header; otherwise it answers 200.

Device counts (administrators only) tally the devices last seen on a day;
PUT /v1/device_counts/{date} recomputes and stores the tally for that day.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response

from ..entities.base import is_valid_date
from ..entities.device import Device, UserAgent
from .auth import require_admin
from .context import Application, RequestContext, get_api, get_context
from .errors import BadRequest, NotFound
from .handlers import audit, created, dicts, exists_response, path_id, translate_errors
from .pagination import bool_param, pagination_params

router = APIRouter(tags=["Device"])


def _user_agent(request: Request) -> UserAgent:
    return UserAgent.from_header(request.headers.get("User-Agent", ""))


@router.post("/v1/devices", status_code=201)
async def create_device(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    """Register the calling device."""
    async with translate_errors(api, ctx, request, "create Device", entity_type="Device"):
        device = await api.devices.create(Device(user_id=ctx.user_id, user_agent=_user_agent(request)))
    await audit(api, ctx, request, f"created Device {device.id}", device.id, "Device")
    return created(request, device.id, device.to_dict())


@router.put("/v1/devices/{device_id}")
async def update_device(
    device_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    """Record that the device was seen again."""
    path_id(device_id)
    async with translate_errors(
        api, ctx, request, f"update Device {device_id}", entity_id=device_id, entity_type="Device"
    ):
        result = await api.devices.refresh(
            Device(id=device_id, user_id=ctx.user_id, user_agent=_user_agent(request))
        )
    device = result.device
    if result.created:
        await audit(api, ctx, request, f"created Device {device.id}", device.id, "Device")
        return created(request, device.id, device.to_dict(), collection="/v1/devices")
    await audit(api, ctx, request, f"updated Device {device.id}", device.id, "Device")
    return device.to_dict()


@router.get("/v1/devices")
async def read_devices(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """List Devices, optionally filtered by last-seen date or user."""
    page = pagination_params(request)
    date = request.query_params.get("date", "")
    if date:
        try:
            datetime.strptime(date, "%Y-%m-%d")
        except ValueError:
            raise BadRequest(f"bad request: invalid date: {date}")
    user_id = request.query_params.get("user", "")
    if user_id:
        path_id(user_id, "user")

    if date:
        async with translate_errors(api, ctx, request, f"read devices by date {date}", entity_type="Device"):
            devices = await api.devices.read_devices_by_date(date, page.reverse, page.limit, page.offset)
    elif user_id:
        async with translate_errors(api, ctx, request, f"read devices by user id {user_id}", entity_type="Device"):
            devices = await api.devices.read_devices_by_user(user_id, page.reverse, page.limit, page.offset)
    else:
        async with translate_errors(api, ctx, request, "read devices", entity_type="Device"):
            devices = await api.devices.read_page(page.reverse, page.limit, page.offset)
    return dicts(devices)


@router.head("/v1/devices/{device_id}")
async def exists_device(device_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.devices.exists, device_id)


@router.get("/v1/devices/{device_id}")
async def read_device(
    device_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    path_id(device_id)
    async with translate_errors(
        api, ctx, request, f"read device {device_id}", f"not found: device {device_id}", device_id, "Device"
    ):
        device = await api.devices.read(device_id)
    return device.to_dict()


@router.get("/v1/devices/{device_id}/versions")
async def read_device_versions(
    device_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(device_id)
    page = pagination_params(request)
    async with translate_errors(
        api, ctx, request, f"read device {device_id} versions", entity_id=device_id, entity_type="Device"
    ):
        if not await api.devices.exists(device_id):
            raise NotFound(f"not found: device {device_id}")
        versions = await api.devices.read_versions(device_id, page.reverse, page.limit, page.offset)
    return dicts(versions)


@router.head("/v1/devices/{device_id}/versions/{version_id}")
async def exists_device_version(device_id: str, version_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.devices.version_exists, device_id, version_id)


@router.get("/v1/devices/{device_id}/versions/{version_id}")
async def read_device_version(
    device_id: str,
    version_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    path_id(device_id)
    path_id(version_id, "VersionID")
    async with translate_errors(
        api,
        ctx,
        request,
        f"read device {device_id} version {version_id}",
        f"not found: device {device_id} version {version_id}",
        device_id,
        "Device",
    ):
        device = await api.devices.read_version(device_id, version_id)
    return device.to_dict()


@router.delete("/v1/devices/{device_id}")
async def delete_device(
    device_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(device_id)
    async with translate_errors(
        api, ctx, request, f"delete Device {device_id}", f"not found: device {device_id}", device_id, "Device"
    ):
        device = await api.devices.delete(device_id)
    await audit(api, ctx, request, f"deleted Device {device.id}", device.id, "Device")
    return device.to_dict()


@router.delete("/v1/devices/{device_id}/versions/{version_id}")
async def delete_device_version(
    device_id: str,
    version_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(device_id)
    path_id(version_id, "VersionID")
    async with translate_errors(
        api,
        ctx,
        request,
        f"delete device {device_id} version {version_id}",
        f"not found: device {device_id} version {version_id}",
        device_id,
        "Device",
    ):
        device = await api.devices.delete_version(device_id, version_id)
    await audit(api, ctx, request, f"deleted Device {device_id} version {version_id}", device_id, "Device")
    return device.to_dict()


@router.get("/v1/device_agents")
async def read_device_agents(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Device IDs with their User-Agent headers."""
    sort_by_value = bool_param(request, "sorted")
    async with translate_errors(api, ctx, request, "read device user agents", entity_type="Device"):
        return dicts(await api.devices.read_all_user_agents(sort_by_value))


@router.get("/v1/device_dates")
async def read_device_dates(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read device dates", entity_type="Device"):
        return await api.devices.read_all_dates()


@router.get("/v1/device_user_ids")
async def read_device_user_ids(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read device user IDs", entity_type="Device"):
        return await api.devices.read_all_user_ids()


def _count_date(date: str) -> str:
    if not is_valid_date(date):
        raise BadRequest(f"bad request: invalid path parameter date: {date}")
    return date


@router.get("/v1/device_counts")
async def read_device_counts(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Device counts in date order."""
    page = pagination_params(request)
    async with translate_errors(api, ctx, request, "read device counts by date", entity_type="DeviceCount"):
        counts = await api.device_counts.read_page(page.reverse, page.limit, page.offset)
    return dicts(counts)


@router.head("/v1/device_counts/{date}")
async def exists_device_count(
    date: str,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    if not is_valid_date(date):
        return Response(status_code=400)
    if not await api.device_counts.exists(date):
        return Response(status_code=404)
    return Response(status_code=204)


@router.get("/v1/device_counts/{date}")
async def read_device_count(
    date: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    _count_date(date)
    async with translate_errors(
        api, ctx, request, f"read DeviceCount {date}", f"not found: DeviceCount {date}", entity_type="DeviceCount"
    ):
        count = await api.device_counts.read(date)
    return count.to_dict()


@router.put("/v1/device_counts/{date}")
async def update_device_count(
    date: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Count the devices last seen on a date and store the result."""
    _count_date(date)
    async with translate_errors(api, ctx, request, f"count devices on date {date}", entity_type="Device"):
        count = await api.devices.count_devices_by_date(date)
    async with translate_errors(api, ctx, request, f"update DeviceCount {date}", entity_type="DeviceCount"):
        count = await api.device_counts.write(count)
    await audit(api, ctx, request, f"created DeviceCount {date}", entity_type="DeviceCount")
    return count.to_dict()
