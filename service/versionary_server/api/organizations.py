"""Organization endpoints. Reads are open; writes require an administrator."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..entities.org import Organization, OrganizationStatus
from ..entities.search import ContainsFilter
from .auth import require_admin
from .context import Application, RequestContext, get_api, get_context
from .errors import BadRequest, NotFound
from .handlers import audit, created, dicts, exists_response, parse_body, path_id, translate_errors
from .pagination import bool_param, pagination_params

router = APIRouter(tags=["Organization"])


@router.post("/v1/organizations", status_code=201)
async def create_organization(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    body = await parse_body(request, Organization)
    async with translate_errors(api, ctx, request, f"create organization {body.name}", entity_type="Organization"):
        org = await api.organizations.create(body)
    await audit(api, ctx, request, f"created Organization {org.id} {org.name}", org.id, "Organization")
    return created(request, org.id, org.to_dict())


@router.get("/v1/organizations")
async def read_organizations(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """List Organizations, optionally filtered by status."""
    page = pagination_params(request)
    status = request.query_params.get("status", "").upper()
    if status and not OrganizationStatus.is_valid(status):
        raise BadRequest(f"bad request: invalid status: {status}")
    if status:
        async with translate_errors(
            api, ctx, request, f"read organizations by status {status}", entity_type="Organization"
        ):
            orgs = await api.organizations.read_organizations_by_status(
                status, page.reverse, page.limit, page.offset
            )
    else:
        async with translate_errors(api, ctx, request, "read organizations", entity_type="Organization"):
            orgs = await api.organizations.read_page(page.reverse, page.limit, page.offset)
    return dicts(orgs)


@router.head("/v1/organizations/{org_id}")
async def exists_organization(org_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.organizations.exists, org_id)


@router.get("/v1/organizations/{org_id}")
async def read_organization(
    org_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    path_id(org_id)
    async with translate_errors(
        api, ctx, request, f"read organization {org_id}", f"not found: organization {org_id}", org_id, "Organization"
    ):
        org = await api.organizations.read(org_id)
    return org.to_dict()


@router.get("/v1/organizations/{org_id}/versions")
async def read_organization_versions(
    org_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(org_id)
    page = pagination_params(request)
    async with translate_errors(
        api, ctx, request, f"read organization {org_id} versions", entity_id=org_id, entity_type="Organization"
    ):
        if not await api.organizations.exists(org_id):
            raise NotFound(f"not found: organization {org_id}")
        versions = await api.organizations.read_versions(org_id, page.reverse, page.limit, page.offset)
    return dicts(versions)


@router.head("/v1/organizations/{org_id}/versions/{version_id}")
async def exists_organization_version(org_id: str, version_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.organizations.version_exists, org_id, version_id)


@router.get("/v1/organizations/{org_id}/versions/{version_id}")
async def read_organization_version(
    org_id: str,
    version_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    path_id(org_id)
    path_id(version_id, "VersionID")
    async with translate_errors(
        api,
        ctx,
        request,
        f"read organization {org_id} version {version_id}",
        f"not found: organization {org_id} version {version_id}",
        org_id,
        "Organization",
    ):
        org = await api.organizations.read_version(org_id, version_id)
    return org.to_dict()


@router.put("/v1/organizations/{org_id}")
async def update_organization(
    org_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    body = await parse_body(request, Organization)
    path_id(org_id)
    if body.id != org_id:
        raise BadRequest(f"bad request: path parameter ID {org_id} does not match Organization ID {body.id}")
    async with translate_errors(
        api,
        ctx,
        request,
        f"update organization {org_id} {body.name}",
        f"not found: organization {org_id}",
        org_id,
        "Organization",
    ):
        org = await api.organizations.update(body)
    await audit(api, ctx, request, f"updated Organization {org.id} {org.name}", org.id, "Organization")
    return org.to_dict()


@router.delete("/v1/organizations/{org_id}")
async def delete_organization(
    org_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(org_id)
    async with translate_errors(
        api, ctx, request, f"delete organization {org_id}", f"not found: organization {org_id}", org_id, "Organization"
    ):
        org = await api.organizations.delete(org_id)
    await audit(api, ctx, request, f"deleted Organization {org.id} {org.name}", org.id, "Organization")
    return org.to_dict()


@router.delete("/v1/organizations/{org_id}/versions/{version_id}")
async def delete_organization_version(
    org_id: str,
    version_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(org_id)
    path_id(version_id, "VersionID")
    async with translate_errors(
        api,
        ctx,
        request,
        f"delete organization {org_id} version {version_id}",
        f"not found: organization {org_id} version {version_id}",
        org_id,
        "Organization",
    ):
        org = await api.organizations.delete_version(org_id, version_id)
    await audit(
        api, ctx, request, f"deleted Organization {org_id} version {version_id}", org_id, "Organization"
    )
    return org.to_dict()


@router.get("/v1/organization_statuses")
async def read_organization_statuses(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read organization statuses", entity_type="Organization"):
        return await api.organizations.read_all_statuses()


@router.get("/v1/organization_names")
async def read_organization_names(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Organization IDs and names, optionally searched or sorted by name."""
    page = pagination_params(request, limit=1000)
    search = request.query_params.get("search", "").strip()
    any_match = bool_param(request, "any")
    sort_by_value = bool_param(request, "sorted")
    async with translate_errors(api, ctx, request, "read organization names", entity_type="Organization"):
        if search:
            names = await api.organizations.filter_names(ContainsFilter(search, any_match))
        elif sort_by_value or "limit" not in request.query_params:
            names = await api.organizations.read_all_names(sort_by_value)
        else:
            names = await api.organizations.read_labels(page.reverse, page.limit, page.offset)
    return dicts(names)
