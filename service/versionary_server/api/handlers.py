"""
Helpers shared by the resource routers.

Each router handler follows the same shape:

    1. validate path and query parameters (400)
    2. parse the JSON body into an entity model (400)
    3. call the service inside translate_errors(), which maps
       NotFoundError to 404, ValidationProblems to 422 and anything
       else to a recorded 500
    4. record an INFO audit event for writes, best effort

How to change safely:
    - Keep error message prefixes ("bad request:", "not found:") stable;
      clients match on them
    - Audit events for successful writes must never fail the request
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .. import tuid
from ..entities.base import ValidationProblems
from ..entities.event import Event, LogLevel
from ..store.table import NotFoundError
from .context import Application, RequestContext
from .errors import ApiError, BadRequest, NotFound, UnprocessableEntity, internal_error, request_uri

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def path_id(value: str, name: str = "ID") -> str:
    """Validate a TUID path parameter.

    Raises:
        BadRequest: If the value is not a valid TUID
    """
    if not tuid.is_valid(value):
        raise BadRequest(f"bad request: invalid path parameter {name}: {value}")
    return value


async def parse_body(request: Request, model: type[M]) -> M:
    """Decode the JSON request body into a model.

    Raises:
        BadRequest: If the body is not JSON or does not fit the model
    """
    try:
        data = await request.json()
    except ValueError as e:
        raise BadRequest(f"bad request: invalid JSON body: {e}")
    if not isinstance(data, dict):
        raise BadRequest("bad request: invalid JSON body: expected an object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise BadRequest(f"bad request: invalid JSON body: {problems}")


@asynccontextmanager
async def translate_errors(
    api: Application,
    ctx: RequestContext,
    request: Request,
    operation: str,
    not_found: str | None = None,
    entity_id: str | None = None,
    entity_type: str | None = None,
) -> AsyncIterator[None]:
    """Map service exceptions onto API errors.

    Args:
        api: Application services
        ctx: Request context
        request: Incoming request
        operation: What was attempted, e.g. "read user X"; used for 500s
        not_found: Message for a missing entity (default "not found: <operation>")
        entity_id: Entity involved, recorded on error events
        entity_type: Entity type involved, recorded on error events

    Example:
        async with translate_errors(api, ctx, request, f"read user {id}", f"not found: user {id}"):
            user = await api.users.read(id)
    """
    try:
        yield
    except ApiError:
        raise
    except NotFoundError:
        raise NotFound(not_found or f"not found: {operation}")
    except ValidationProblems as e:
        raise UnprocessableEntity(f"unprocessable entity: {e}", e.problems)
    except Exception as e:
        raise await internal_error(api, ctx, request, operation, e, entity_id, entity_type) from e


async def audit(
    api: Application,
    ctx: RequestContext,
    request: Request,
    message: str,
    entity_id: str | None = None,
    entity_type: str | None = None,
    log_level: LogLevel = LogLevel.INFO,
) -> None:
    """Record an audit event for a successful operation.

    Failures are logged and never affect the response.
    """
    try:
        await api.events.create(
            Event(
                user_id=ctx.user_id,
                entity_id=entity_id,
                subject_type=entity_type,
                log_level=log_level.value,
                message=message,
                uri=request_uri(request),
            )
        )
    except Exception:
        logger.exception("Failed to record audit event", extra={"audit_message": message})


def created(request: Request, entity_id: str, content: dict, collection: str | None = None) -> JSONResponse:
    """201 response with a Location header pointing at the new entity.

    collection defaults to the request path (POST /v1/users -> /v1/users/<id>).
    """
    base = collection or request.url.path.rstrip("/")
    return JSONResponse(status_code=201, content=content, headers={"Location": f"{base}/{entity_id}"})


async def exists_response(check: Callable[..., Awaitable[bool]], *ids: str) -> Response:
    """HEAD response: 400 for a malformed ID, 404 when missing, 204 when present."""
    if not all(tuid.is_valid(i) for i in ids):
        return Response(status_code=400)
    if not await check(*ids):
        return Response(status_code=404)
    return Response(status_code=204)


def dicts(items: list) -> list[dict]:
    """Serialize a list of entities or TextValues for a JSON response."""
    return [item.to_dict() for item in items]
