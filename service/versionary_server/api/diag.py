"""Diagnostic endpoints: application info, health, and request echo."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..entities.device import UserAgent
from .auth import require_admin
from .context import Application, RequestContext, get_api
from .pagination import pagination_params

router = APIRouter(tags=["Diagnostic"])


@router.get("/")
@router.get("/about")
async def about(api: Application = Depends(get_api)):
    """Name, version and environment of the running application."""
    return api.about()


@router.get("/health")
async def health(api: Application = Depends(get_api)):
    return {"status": "healthy", "service": api.settings.name}


@router.get("/user_agent")
async def user_agent(request: Request):
    """The caller's User-Agent, as recorded for Devices."""
    return UserAgent.from_header(request.headers.get("User-Agent", "")).model_dump(by_alias=True, exclude_none=True)


@router.api_route("/echo", methods=["GET", "POST", "PUT", "DELETE", "PATCH"])
async def echo(request: Request, ctx: RequestContext = Depends(require_admin)):
    """Describe the request as the server received it."""
    page = pagination_params(request)
    body = (await request.body()).decode("utf-8", errors="replace")
    echoed = {
        "method": request.method,
        "url": str(request.url),
        "header": {k: request.headers.getlist(k) for k in request.headers.keys()},
        "host": request.url.hostname,
        "remoteAddr": request.client.host if request.client else None,
        "requestURI": request.url.path,
        "params": {"reverse": page.reverse, "limit": page.limit, "offset": page.offset},
        "body": body or None,
        "token": ctx.token.to_dict() if ctx.token else None,
        "user": ctx.user.to_dict() if ctx.user else None,
    }
    return {k: v for k, v in echoed.items() if v is not None}
