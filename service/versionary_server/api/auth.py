"""
Bearer token authentication and role authorization.

The bearer middleware runs on every request before routing. It attaches a
RequestContext to ``request.state.context``; the context holds the Token and
the scrubbed User when the Authorization header carries a usable token, and
is anonymous otherwise.

A header that is absent or is not of the form ``Bearer <token>`` always
leaves the request anonymous. A well-formed header whose token cannot be
resolved is handled according to ``Settings.strict_bearer_validation``:

    strict (default)  respond 401 "unauthenticated: <reason>" immediately
    permissive        log at DEBUG and continue anonymously

Authorization is enforced per route with the require_user and require_role
dependencies, never by the middleware.

Invariants:
    - request.state.context is set before any handler runs
    - A context user is always scrubbed (no password fields)
    - A DISABLED user never authenticates
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import Depends, FastAPI, Request, Response

from .. import tuid
from ..entities.token import Token
from ..entities.user import ADMIN_ROLE, User, UserStatus
from ..store.table import NotFoundError
from .context import Application, RequestContext, get_api, get_context
from .errors import Forbidden, Unauthenticated, error_response, internal_error

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """A bearer token could not be resolved to an enabled User."""


def parse_bearer(header: str | None) -> str | None:
    """Extract the token from an Authorization header value.

    Returns:
        The token, or None when the header is absent or not a Bearer credential
    """
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token


async def resolve_token(api: Application, token_id: str) -> tuple[Token, User]:
    """Read a Token and the User it belongs to.

    Raises:
        AuthenticationError: If the token is malformed, unknown or expired, or
            its user is missing or disabled
    """
    if not tuid.is_valid(token_id):
        raise AuthenticationError("invalid bearer token")
    try:
        token = await api.tokens.read(token_id)
    except NotFoundError as e:
        # Tokens expire, so this is a common outcome
        raise AuthenticationError(f"error reading token: {e}") from e
    try:
        user = await api.users.read(token.user_id)
    except NotFoundError as e:
        raise AuthenticationError(f"error reading user {token.user_id} from token: {e}") from e
    if user.status == UserStatus.DISABLED.value:
        raise AuthenticationError(f"user {user.id} status is {user.status}")
    return token, user


def install_bearer_auth(app: FastAPI) -> None:
    """Register the bearer token middleware on the app."""

    @app.middleware("http")
    async def bearer_token(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        ctx = RequestContext()
        request.state.context = ctx
        token_id = parse_bearer(request.headers.get("Authorization"))
        if token_id is None:
            return await call_next(request)

        api = get_api(request)
        try:
            token, user = await resolve_token(api, token_id)
        except AuthenticationError as e:
            if api.settings.strict_bearer_validation:
                return error_response(request, Unauthenticated(f"unauthenticated: {e}"))
            logger.debug("Ignoring unusable bearer token", extra={"reason": str(e)})
            return await call_next(request)
        except Exception as e:
            err = await internal_error(api, ctx, request, "read bearer token", e, entity_id=token_id, entity_type="Token")
            return error_response(request, err)

        ctx.token = token
        ctx.user = user.scrub()
        return await call_next(request)


def require_user(ctx: RequestContext = Depends(get_context)) -> RequestContext:
    """Dependency: the request must be authenticated.

    Raises:
        Unauthenticated: If no user is attached to the request
    """
    if not ctx.is_authenticated:
        raise Unauthenticated("unauthenticated")
    return ctx


def require_role(role: str) -> Callable[[RequestContext], RequestContext]:
    """Build a dependency requiring the caller to hold a role.

    Administrators satisfy every role.

    Example:
        @router.get("/v1/users", dependencies=[Depends(require_role("admin"))])
    """

    def check_role(ctx: RequestContext = Depends(get_context)) -> RequestContext:
        if not ctx.is_authenticated:
            raise Unauthenticated("unauthenticated")
        if not ctx.user.has_role(role):
            raise Forbidden("unauthorized")
        return ctx

    return check_role


require_admin = require_role(ADMIN_ROLE)
