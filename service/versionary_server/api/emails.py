"""
Email endpoints.

Administrators may read any Email. Other authenticated users may read
only the Emails they take part in (as sender or recipient), and their
listings are always restricted to their own address.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..entities.email import Email, EmailStatus, standardize_address
from .auth import require_admin, require_user
from .context import Application, RequestContext, get_api
from .errors import BadRequest, Forbidden, NotFound
from .handlers import audit, created, dicts, exists_response, parse_body, path_id, translate_errors
from .pagination import pagination_params

router = APIRouter(tags=["Email"])


def check_participant(ctx: RequestContext, email: Email) -> None:
    if not ctx.is_admin and not email.is_participant(ctx.user.email):
        raise Forbidden(f"forbidden: email {email.id}")


@router.post("/v1/emails", status_code=201)
async def create_email(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Store a new Email. Delivery is handled elsewhere."""
    body = await parse_body(request, Email)
    async with translate_errors(api, ctx, request, f"create email {body.subject}", entity_type="Email"):
        email = await api.emails.create(body)
    await audit(api, ctx, request, f"created Email {email.id} {email.subject}", email.id, "Email")
    return created(request, email.id, email.to_dict())


@router.get("/v1/emails")
async def read_emails(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    """List Emails by participant address or status.

    Non-administrators always list the Emails for their own address.
    """
    page = pagination_params(request)
    address = request.query_params.get("address", "")
    if not ctx.is_admin:
        address = ctx.user.email
        if not address:
            raise Forbidden(f"forbidden: user {ctx.user.id} has no email address")
    if address:
        try:
            address = standardize_address(address)
        except ValueError as e:
            raise BadRequest(f"bad request: {e}")
        async with translate_errors(api, ctx, request, f"read emails for {address}", entity_type="Email"):
            emails = await api.emails.read_emails_by_address(address, page.reverse, page.limit, page.offset)
        return dicts(emails)

    status = request.query_params.get("status", "").upper()
    if status and not EmailStatus.is_valid(status):
        raise BadRequest(f"bad request: invalid status: {status}")
    if status:
        async with translate_errors(api, ctx, request, f"read emails by status {status}", entity_type="Email"):
            emails = await api.emails.read_emails_by_status(status, page.reverse, page.limit, page.offset)
    else:
        async with translate_errors(api, ctx, request, "read emails", entity_type="Email"):
            emails = await api.emails.read_page(page.reverse, page.limit, page.offset)
    return dicts(emails)


@router.head("/v1/emails/{email_id}")
async def exists_email(email_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.emails.exists, email_id)


@router.get("/v1/emails/{email_id}")
async def read_email(
    email_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    path_id(email_id)
    async with translate_errors(
        api, ctx, request, f"read email {email_id}", f"not found: email {email_id}", email_id, "Email"
    ):
        email = await api.emails.read(email_id)
    check_participant(ctx, email)
    return email.to_dict()


@router.get("/v1/emails/{email_id}/versions")
async def read_email_versions(
    email_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(email_id)
    page = pagination_params(request)
    async with translate_errors(
        api, ctx, request, f"read email {email_id} versions", entity_id=email_id, entity_type="Email"
    ):
        if not await api.emails.exists(email_id):
            raise NotFound(f"not found: email {email_id}")
        versions = await api.emails.read_versions(email_id, page.reverse, page.limit, page.offset)
    return dicts(versions)


@router.head("/v1/emails/{email_id}/versions/{version_id}")
async def exists_email_version(email_id: str, version_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.emails.version_exists, email_id, version_id)


@router.get("/v1/emails/{email_id}/versions/{version_id}")
async def read_email_version(
    email_id: str,
    version_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_user),
):
    path_id(email_id)
    path_id(version_id, "VersionID")
    async with translate_errors(
        api,
        ctx,
        request,
        f"read email {email_id} version {version_id}",
        f"not found: email {email_id} version {version_id}",
        email_id,
        "Email",
    ):
        email = await api.emails.read_version(email_id, version_id)
    check_participant(ctx, email)
    return email.to_dict()


@router.put("/v1/emails/{email_id}")
async def update_email(
    email_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    body = await parse_body(request, Email)
    path_id(email_id)
    if body.id != email_id:
        raise BadRequest(f"bad request: path parameter ID {email_id} does not match Email ID {body.id}")
    async with translate_errors(
        api, ctx, request, f"update email {email_id}", f"not found: email {email_id}", email_id, "Email"
    ):
        email = await api.emails.update(body)
    await audit(api, ctx, request, f"updated Email {email.id} {email.subject}", email.id, "Email")
    return email.to_dict()


@router.delete("/v1/emails/{email_id}")
async def delete_email(
    email_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(email_id)
    async with translate_errors(
        api, ctx, request, f"delete email {email_id}", f"not found: email {email_id}", email_id, "Email"
    ):
        email = await api.emails.delete(email_id)
    await audit(api, ctx, request, f"deleted Email {email.id} {email.subject}", email.id, "Email")
    return email.to_dict()


@router.get("/v1/email_addresses")
async def read_email_addresses(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    page = pagination_params(request, limit=1000)
    async with translate_errors(api, ctx, request, "read email addresses", entity_type="Email"):
        if "limit" not in request.query_params:
            return await api.emails.read_all_addresses()
        return await api.emails.read_addresses(page.reverse, page.limit, page.offset)


@router.get("/v1/email_statuses")
async def read_email_statuses(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read email statuses", entity_type="Email"):
        return await api.emails.read_all_statuses()
