"""Audit event endpoints."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request

from .. import tuid
from ..entities.event import ROW_DATE, ROW_ENTITY, ROW_ENTITY_TYPE, ROW_LOG_LEVEL, Event, LogLevel
from .auth import require_admin
from .context import Application, RequestContext, get_api, get_context
from .errors import BadRequest
from .handlers import created, dicts, exists_response, parse_body, path_id, translate_errors
from .pagination import pagination_params

router = APIRouter(tags=["Event"])


@router.post("/v1/events", status_code=201)
async def create_event(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    body = await parse_body(request, Event)
    async with translate_errors(api, ctx, request, "create event", entity_type="Event"):
        event = await api.events.create(body)
    return created(request, event.id, event.to_dict())


@router.get("/v1/events")
async def read_events(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """List Events by entity ID, entity type, log level or date."""
    page = pagination_params(request)
    params = request.query_params
    entity_id = params.get("entity", "")
    if entity_id and not tuid.is_valid(entity_id):
        raise BadRequest(f"bad request: invalid TUID parameter, entity: {entity_id}")
    entity_type = params.get("type", "")
    log_level = params.get("log_level", "").upper()
    if log_level and not LogLevel.is_valid(log_level):
        raise BadRequest(f"bad request: invalid log level: {log_level}")
    date = params.get("date", "").strip()
    if date:
        try:
            datetime.strptime(date, "%Y-%m-%d")
        except ValueError as e:
            raise BadRequest(f"bad request: invalid date {date}: {e}")

    if entity_id:
        row_name, part_key = ROW_ENTITY, entity_id
    elif entity_type:
        row_name, part_key = ROW_ENTITY_TYPE, entity_type
    elif log_level:
        row_name, part_key = ROW_LOG_LEVEL, log_level
    elif date:
        row_name, part_key = ROW_DATE, date
    else:
        async with translate_errors(api, ctx, request, "read events", entity_type="Event"):
            events = await api.events.read_page(page.reverse, page.limit, page.offset)
        return dicts(events)

    async with translate_errors(api, ctx, request, f"read events for {part_key}", entity_type="Event"):
        events = await api.events.read_events_from_row(row_name, part_key, page.reverse, page.limit, page.offset)
    return dicts(events)


@router.head("/v1/events/{event_id}")
async def exists_event(event_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.events.exists, event_id)


@router.get("/v1/events/{event_id}")
async def read_event(
    event_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    path_id(event_id)
    async with translate_errors(
        api, ctx, request, f"read event {event_id}", f"not found: event {event_id}", event_id, "Event"
    ):
        event = await api.events.read(event_id)
    return event.to_dict()


@router.delete("/v1/events/{event_id}")
async def delete_event(
    event_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(event_id)
    async with translate_errors(
        api, ctx, request, f"delete event {event_id}", f"not found: event {event_id}", event_id, "Event"
    ):
        event = await api.events.delete(event_id)
    return event.to_dict()


@router.get("/v1/event_entity_ids")
async def read_event_entity_ids(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read event entity IDs", entity_type="Event"):
        return await api.events.read_all_entity_ids()


@router.get("/v1/event_entity_types")
async def read_event_entity_types(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read event entity types", entity_type="Event"):
        return await api.events.read_all_entity_types()


@router.get("/v1/event_log_levels")
async def read_event_log_levels(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read event log levels", entity_type="Event"):
        return await api.events.read_all_log_levels()


@router.get("/v1/event_dates")
async def read_event_dates(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read event dates", entity_type="Event"):
        return await api.events.read_all_dates()
