"""
Error responses for the Versionary API.

Every error response is an APIEvent envelope:

    {"eventID": "...", "createdAt": "...", "logLevel": "ERROR",
     "code": 404, "message": "not found: user ...", "uri": "/v1/users/..."}

Taxonomy:
- BadRequest (400): malformed JSON, invalid path/query parameters
- Unauthenticated (401): missing or invalid bearer token
- Forbidden (403): authenticated but not allowed
- NotFound (404): missing entity or endpoint
- UnprocessableEntity (422): entity validation problems
- InternalError (500): unexpected failures

Invariants:
    - code always equals the HTTP status of the response
    - Only InternalError is recorded as an audit Event; its event ID is
      returned as eventID so operators can correlate
    - Raw exception text reaches clients only when expose_internal_errors is set
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import tuid
from ..entities.event import Event, LogLevel
from .context import Application, RequestContext, get_api

logger = logging.getLogger(__name__)


class APIEvent(BaseModel):
    """Error response envelope."""

    model_config = ConfigDict(populate_by_name=True)

    event_id: str | None = Field(default=None, alias="eventID")
    created_at: datetime = Field(alias="createdAt")
    log_level: str = Field(default=LogLevel.ERROR.value, alias="logLevel")
    code: int
    message: str
    uri: str = ""

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ApiError(Exception):
    """An error that maps onto an HTTP response.

    Attributes:
        status_code: HTTP status code
        message: Client-visible message
        event: Audit event recorded for this error, if any
    """

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None, event: Event | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.event = event

    def envelope(self, uri: str) -> APIEvent:
        if self.event is not None:
            return APIEvent(
                event_id=self.event.id,
                created_at=self.event.created_at,
                log_level=self.event.log_level,
                code=self.status_code,
                message=self.message,
                uri=self.event.uri or uri,
            )
        return APIEvent(
            created_at=datetime.now(timezone.utc),
            code=self.status_code,
            message=self.message,
            uri=uri,
        )


class BadRequest(ApiError):
    status_code = 400


class Unauthenticated(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class UnprocessableEntity(ApiError):
    """Validation failed; problems holds each individual problem."""

    status_code = 422

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or []


class InternalError(ApiError):
    status_code = 500


def request_uri(request: Request) -> str:
    """Path and query of the request, as reported in envelopes and events."""
    url = request.url
    return f"{url.path}?{url.query}" if url.query else url.path


def error_response(request: Request, err: ApiError) -> JSONResponse:
    return JSONResponse(status_code=err.status_code, content=err.envelope(request_uri(request)).to_dict())


async def internal_error(
    api: Application,
    ctx: RequestContext,
    request: Request,
    message: str,
    exc: BaseException,
    entity_id: str | None = None,
    entity_type: str | None = None,
) -> InternalError:
    """Record an ERROR audit event and build the matching 500 error.

    Args:
        api: Application services
        ctx: Request context (identifies the caller)
        request: Incoming request
        message: Description of the failed operation, e.g. "read user X"
        exc: The underlying exception
        entity_id: ID of the entity involved, if it is a TUID
        entity_type: Type of the entity involved

    Returns:
        InternalError to raise
    """
    detail = f"{message}: {exc}"
    client_message = detail if api.settings.expose_internal_errors else f"internal server error: {message}"
    try:
        event = await api.events.create(
            Event(
                user_id=ctx.user_id,
                entity_id=entity_id if entity_id and tuid.is_valid(entity_id) else None,
                subject_type=entity_type,
                log_level=LogLevel.ERROR.value,
                message=detail,
                uri=request_uri(request),
            )
        )
    except Exception:
        logger.exception("Failed to record error event", extra={"error_message": detail})
        return InternalError(client_message)
    return InternalError(client_message, event=event)


def install_error_handlers(app: FastAPI) -> None:
    """Render every error as an APIEvent envelope."""

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        return error_response(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            message = "not found: API endpoint"
        elif exc.status_code == 405:
            message = f"method not allowed: {request.method} {request.url.path}"
        else:
            message = str(exc.detail)
        return error_response(request, ApiError(message, status_code=exc.status_code))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}" for e in exc.errors()
        )
        return error_response(request, BadRequest(f"bad request: {problems}"))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        ctx = getattr(request.state, "context", None) or RequestContext()
        err = await internal_error(
            get_api(request), ctx, request, f"{request.method} {request.url.path}", exc
        )
        logger.error("Unhandled exception", exc_info=exc, extra={"uri": request_uri(request)})
        return error_response(request, err)
