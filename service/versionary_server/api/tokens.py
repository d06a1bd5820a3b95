"""
Token endpoints: login, logout, and token management.

Logging in (POST /v1/tokens) exchanges a username and password for a
bearer token. A Token belongs to one User; only that User or an
administrator may read or delete it.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..entities.token import Token, TokenRequest, TokenResponse
from ..store.table import NotFoundError
from .auth import require_admin, require_user
from .context import Application, RequestContext, get_api, get_context
from .errors import BadRequest, Forbidden, Unauthenticated
from .handlers import audit, created, dicts, parse_body, path_id, translate_errors
from .pagination import pagination_params

router = APIRouter(tags=["Token"])


@router.post("/v1/tokens", status_code=201)
async def create_token(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    """Log in: create a Token for a username (email or user ID) and password."""
    req = await parse_body(request, TokenRequest)
    async with translate_errors(api, ctx, request, f"create token for {req.username}", entity_type="Token"):
        try:
            user = await api.users.authenticate(req.username, req.password)
        except (NotFoundError, PermissionError):
            raise Unauthenticated("unauthenticated: invalid username or password")
        token = await api.tokens.create(Token(user_id=user.id, email=user.email))
    await audit(api, ctx, request, f"created Token {token.id} for User {user.id}", token.id, "Token")
    response = TokenResponse(access_token=token.id, expires_at=token.expires_at)
    return created(request, token.id, response.model_dump(mode="json", by_alias=True))


@router.get("/v1/tokens")
async def read_tokens(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    """List the Tokens of a User (default: the caller)."""
    id_or_email = request.query_params.get("user") or ctx.user.id
    if id_or_email not in (ctx.user.id, ctx.user.email) and not ctx.is_admin:
        raise Forbidden("unauthorized: read tokens")
    async with translate_errors(api, ctx, request, f"read tokens for user {id_or_email}", entity_type="Token"):
        try:
            user = await api.users.read(id_or_email)
        except NotFoundError as e:
            raise BadRequest(f"bad request: invalid User {id_or_email}: {e}")
        tokens = await api.tokens.read_tokens_by_user(user.id, limit=-1)
    return dicts(tokens)


@router.get("/v1/tokens/{token_id}")
async def read_token(
    token_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    path_id(token_id)
    async with translate_errors(
        api, ctx, request, f"read token {token_id}", f"not found: Token {token_id}", token_id, "Token"
    ):
        token = await api.tokens.read(token_id)
    if token.user_id != ctx.user.id and not ctx.is_admin:
        raise Forbidden("unauthorized: read token")
    return token.to_dict()


@router.delete("/v1/tokens/{token_id}")
async def delete_token(
    token_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    path_id(token_id)
    async with translate_errors(
        api, ctx, request, f"delete Token {token_id}", f"not found: Token {token_id}", token_id, "Token"
    ):
        token = await api.tokens.read(token_id)
        if token.user_id != ctx.user.id and not ctx.is_admin:
            raise Forbidden("unauthorized: delete token")
        token = await api.tokens.delete(token_id)
    await audit(api, ctx, request, f"deleted Token {token.id} for User {token.user_id}", token.id, "Token")
    return token.to_dict()


@router.get("/logout")
async def logout(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    """Delete the bearer token used for this request."""
    if ctx.token is None:
        raise Unauthenticated("unauthenticated: logout")
    async with translate_errors(
        api, ctx, request, f"logout Token {ctx.token.id}", f"not found: Token {ctx.token.id}", ctx.token.id, "Token"
    ):
        token = await api.tokens.delete(ctx.token.id)
    await audit(api, ctx, request, f"deleted Token {token.id} for User {token.user_id}", token.id, "Token")
    return token.to_dict()


@router.get("/v1/token_user_ids")
async def read_token_user_ids(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """IDs of the Users that hold Tokens."""
    page = pagination_params(request, limit=1000)
    async with translate_errors(api, ctx, request, "read token user IDs", entity_type="Token"):
        return await api.tokens.read_user_ids(page.reverse, page.limit, page.offset)
