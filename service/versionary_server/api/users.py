"""
User endpoints.

Visibility:
    - Administrators read and write any User and see every field
    - Other users read and write only themselves, scrubbed of password
      material; their updates keep the stored password hash and roles
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from ..entities.email import standardize_address
from ..entities.event import LogLevel
from ..entities.search import ContainsFilter
from ..entities.user import User, UserStatus
from .auth import require_admin, require_user
from .context import Application, RequestContext, get_api
from .errors import BadRequest, Forbidden, NotFound
from .handlers import audit, created, dicts, exists_response, parse_body, path_id, translate_errors
from .pagination import bool_param, pagination_params

router = APIRouter(tags=["User"])


def visible(ctx: RequestContext, user: User) -> dict:
    """Serialize a User as the caller may see it."""
    return user.to_dict() if ctx.is_admin else user.scrub().to_dict()


@router.post("/v1/users", status_code=201)
async def create_user(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Create a new User; the password is hashed and not returned."""
    body = await parse_body(request, User)
    async with translate_errors(api, ctx, request, f"create user {body.email}", entity_type="User"):
        user = await api.users.create(body)
    await audit(api, ctx, request, f"created User {user.id} {user.email}", user.id, "User")
    return created(request, user.id, user.to_dict())


@router.get("/v1/users")
async def read_users(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """List Users, optionally filtered by email, org, role or status."""
    page = pagination_params(request)
    params = request.query_params
    email = params.get("email", "")
    org_id = params.get("org", "")
    if org_id:
        path_id(org_id, "org")
    role = params.get("role", "")
    status = params.get("status", "").upper()
    if status and not UserStatus.is_valid(status):
        raise BadRequest(f"bad request: invalid status: {status}")

    if email:
        async with translate_errors(api, ctx, request, f"read users by email {email}", entity_type="User"):
            users = await api.users.read_users_by_email(email.strip().lower(), page.reverse, page.limit, page.offset)
    elif org_id:
        async with translate_errors(api, ctx, request, f"read users by organization {org_id}", entity_type="User"):
            users = await api.users.read_users_by_org(org_id, page.reverse, page.limit, page.offset)
    elif role:
        async with translate_errors(api, ctx, request, f"read users by role {role}", entity_type="User"):
            users = await api.users.read_users_by_role(role, page.reverse, page.limit, page.offset)
    elif status:
        async with translate_errors(api, ctx, request, f"read users by status {status}", entity_type="User"):
            users = await api.users.read_users_by_status(status, page.reverse, page.limit, page.offset)
    else:
        async with translate_errors(api, ctx, request, "read users", entity_type="User"):
            users = await api.users.read_page(page.reverse, page.limit, page.offset)
    return dicts(users)


@router.head("/v1/users/{user_id}")
async def exists_user(user_id: str, api: Application = Depends(get_api)):
    """Check for a User by ID or email address."""
    if "@" in user_id:
        try:
            address = standardize_address(user_id)
        except ValueError:
            return Response(status_code=400)
        return Response(status_code=204 if await api.users.exists(address) else 404)
    return await exists_response(api.users.exists, user_id)


@router.get("/v1/users/{user_id}")
async def read_user(
    user_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    """Read a User by ID or email address."""
    if "@" in user_id:
        try:
            standardize_address(user_id)
        except ValueError as e:
            raise BadRequest(f"bad request: invalid path parameter {user_id}: {e}")
    else:
        path_id(user_id)
    async with translate_errors(
        api, ctx, request, f"read user {user_id}", f"not found: user {user_id}", user_id, "User"
    ):
        user = await api.users.read(user_id)
    if not ctx.is_self(user.id) and not ctx.is_admin:
        raise Forbidden("unauthorized: read user")
    return visible(ctx, user)


@router.get("/v1/users/{user_id}/versions")
async def read_user_versions(
    user_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(user_id)
    page = pagination_params(request)
    async with translate_errors(
        api, ctx, request, f"read user {user_id} versions", f"not found: user {user_id}", user_id, "User"
    ):
        if not await api.users.exists(user_id):
            raise NotFound(f"not found: user {user_id}")
        versions = await api.users.read_versions(user_id, page.reverse, page.limit, page.offset)
    return dicts(versions)


@router.head("/v1/users/{user_id}/versions/{version_id}")
async def exists_user_version(user_id: str, version_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.users.version_exists, user_id, version_id)


@router.get("/v1/users/{user_id}/versions/{version_id}")
async def read_user_version(
    user_id: str,
    version_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    path_id(user_id)
    path_id(version_id, "VersionID")
    async with translate_errors(
        api,
        ctx,
        request,
        f"read user {user_id} version {version_id}",
        f"not found: user {user_id} version {version_id}",
        user_id,
        "User",
    ):
        user = await api.users.read_version(user_id, version_id)
    if not ctx.is_self(user.id) and not ctx.is_admin:
        raise Forbidden("unauthorized: read user")
    return visible(ctx, user)


@router.put("/v1/users/{user_id}")
async def update_user(
    user_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    """Replace a User with a new version.

    The body is a complete User. For non-administrators the stored password
    hash and roles are carried over from the prior version.
    """
    body = await parse_body(request, User)
    path_id(user_id)
    if body.id != user_id:
        raise BadRequest(f"bad request: path parameter ID {user_id} does not match User ID {body.id}")
    if not ctx.is_self(user_id) and not ctx.is_admin:
        raise Forbidden("unauthorized: update user")
    if not ctx.is_admin:
        async with translate_errors(
            api, ctx, request, f"read user {user_id}", f"not found: user {user_id}", user_id, "User"
        ):
            prior = await api.users.read(user_id)
        # Avoid escalating privileges
        body = body.restore_scrubbed(prior).model_copy(update={"roles": prior.roles})
    async with translate_errors(
        api, ctx, request, f"update user {user_id} {body.email}", f"not found: user {user_id}", user_id, "User"
    ):
        user = await api.users.update(body)
    await audit(api, ctx, request, f"updated User {user.id} {user.email}", user.id, "User")
    return visible(ctx, user)


@router.delete("/v1/users/{user_id}")
async def delete_user(
    user_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    """Delete a User, then their Tokens.

    Token cleanup failures are recorded as WARN events and do not change
    the response.
    """
    path_id(user_id)
    if not ctx.is_self(user_id) and not ctx.is_admin:
        raise Forbidden("unauthorized: delete user")
    async with translate_errors(
        api, ctx, request, f"delete user {user_id}", f"not found: user {user_id}", user_id, "User"
    ):
        result = await api.users.delete(user_id)
    user = result.entity
    await audit(api, ctx, request, f"deleted User {user.id} {user.email}", user.id, "User")
    for warning in result.warnings:
        await audit(api, ctx, request, warning, user.id, "User", log_level=LogLevel.WARN)
    return visible(ctx, user)


@router.delete("/v1/users/{user_id}/versions/{version_id}")
async def delete_user_version(
    user_id: str,
    version_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(user_id)
    path_id(version_id, "VersionID")
    async with translate_errors(
        api,
        ctx,
        request,
        f"delete user {user_id} version {version_id}",
        f"not found: user {user_id} version {version_id}",
        user_id,
        "User",
    ):
        user = await api.users.delete_version(user_id, version_id)
    await audit(api, ctx, request, f"deleted User {user_id} version {version_id}", user_id, "User")
    return user.to_dict()


@router.get("/v1/user_ids")
async def read_user_ids(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """IDs of the Users with an email address (normally at most one)."""
    email = request.query_params.get("email", "")
    if not email:
        raise BadRequest("bad request: missing required query parameter: email")
    try:
        email = standardize_address(email)
    except ValueError as e:
        raise BadRequest(f"bad request: invalid query parameter email: {e}")
    async with translate_errors(api, ctx, request, f"read user IDs for email {email}", entity_type="User"):
        return await api.users.read_ids_by_email(email)


@router.get("/v1/user_names")
async def read_user_names(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """User IDs and names, optionally searched or sorted by name."""
    page = pagination_params(request, limit=1000)
    search = request.query_params.get("search", "").strip()
    any_match = bool_param(request, "any")
    sort_by_value = bool_param(request, "sorted")
    read_all = sort_by_value or "limit" not in request.query_params
    if search:
        async with translate_errors(api, ctx, request, f"search ({search}) user names", entity_type="User"):
            names = await api.users.filter_names(ContainsFilter(search, any_match))
    elif read_all:
        async with translate_errors(api, ctx, request, "read all user names", entity_type="User"):
            names = await api.users.read_all_names(sort_by_value)
    else:
        async with translate_errors(api, ctx, request, f"read {page.limit} user names", entity_type="User"):
            names = await api.users.read_names(page.reverse, page.limit, page.offset)
    return dicts(names)


@router.get("/v1/user_emails")
async def read_user_emails(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    page = pagination_params(request, limit=1000)
    async with translate_errors(api, ctx, request, "read user email addresses", entity_type="User"):
        if "limit" not in request.query_params:
            return await api.users.read_all_emails()
        return await api.users.read_emails(page.reverse, page.limit, page.offset)


@router.get("/v1/user_orgs")
async def read_user_orgs(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Organization IDs and names referenced by Users."""
    page = pagination_params(request, limit=1000)
    sort_by_value = bool_param(request, "sorted")
    async with translate_errors(api, ctx, request, "read user organizations", entity_type="User"):
        if sort_by_value or "limit" not in request.query_params:
            orgs = await api.users.read_all_orgs(sort_by_value)
        else:
            orgs = await api.users.read_orgs(page.reverse, page.limit, page.offset)
    return dicts(orgs)


@router.get("/v1/user_roles")
async def read_user_roles(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read user roles", entity_type="User"):
        return await api.users.read_all_roles()


@router.get("/v1/user_statuses")
async def read_user_statuses(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read user statuses", entity_type="User"):
        return await api.users.read_all_statuses()
