"""
Metric endpoints.

Metrics are listed and summarized by the entity they measure (entity),
its entity type (type) or a tag. Passing both from and to (YYYY-MM-DD)
restricts the result to Metrics created in [from, to).
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Request

from .. import tuid
from ..entities.metric import ROW_ENTITY, ROW_ENTITY_TYPE, ROW_TAG, Metric
from ..entities.search import ContainsFilter
from .auth import require_admin
from .context import Application, RequestContext, get_api, get_context
from .errors import BadRequest
from .handlers import audit, created, dicts, exists_response, parse_body, path_id, translate_errors
from .pagination import bool_param, pagination_params

router = APIRouter(tags=["Metric"])


def _date_param(request: Request, name: str) -> str:
    value = request.query_params.get(name, "").strip()
    if value:
        try:
            datetime.strptime(value, "%Y-%m-%d")
        except ValueError as e:
            raise BadRequest(f"bad request: invalid date {value}: {e}")
    return value


def metric_query(request: Request) -> tuple[str, str, str, str]:
    """Parse the entity / type / tag selector and the optional date range.

    Returns:
        (row_name, part_key, from, to); row_name is empty when no selector is given

    Raises:
        BadRequest: If the entity ID or a date is malformed
    """
    params = request.query_params
    entity_id = params.get("entity", "")
    if entity_id and not tuid.is_valid(entity_id):
        raise BadRequest(f"bad request: invalid TUID parameter, entity: {entity_id}")
    entity_type = params.get("type", "")
    tag = params.get("tag", "")
    start = _date_param(request, "from")
    end = _date_param(request, "to")
    if entity_id:
        return ROW_ENTITY, entity_id, start, end
    if entity_type:
        return ROW_ENTITY_TYPE, entity_type, start, end
    if tag:
        return ROW_TAG, tag, start, end
    return "", "", start, end


@router.post("/v1/metrics", status_code=201)
async def create_metric(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    body = await parse_body(request, Metric)
    async with translate_errors(api, ctx, request, f"create metric {body.title}", entity_type="Metric"):
        metric = await api.metrics.create(body)
    await audit(api, ctx, request, f"created Metric {metric.id} {metric.title}", metric.id, "Metric")
    return created(request, metric.id, metric.to_dict())


@router.get("/v1/metrics")
async def read_metrics(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    page = pagination_params(request)
    row_name, part_key, start, end = metric_query(request)
    if not row_name:
        async with translate_errors(api, ctx, request, "read metrics", entity_type="Metric"):
            metrics = await api.metrics.read_page(page.reverse, page.limit, page.offset)
        return dicts(metrics)

    async with translate_errors(api, ctx, request, f"read metrics for {part_key}", entity_type="Metric"):
        if start and end:
            metrics = await api.metrics.read_metric_range_from_row(
                row_name, part_key, start, end, page.reverse, page.limit, page.offset
            )
        else:
            metrics = await api.metrics.read_metrics_from_row(
                row_name, part_key, page.reverse, page.limit, page.offset
            )
    return dicts(metrics)


@router.head("/v1/metrics/{metric_id}")
async def exists_metric(metric_id: str, api: Application = Depends(get_api)):
    return await exists_response(api.metrics.exists, metric_id)


@router.get("/v1/metrics/{metric_id}")
async def read_metric(
    metric_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(get_context),
):
    path_id(metric_id)
    async with translate_errors(
        api, ctx, request, f"read metric {metric_id}", f"not found: metric {metric_id}", metric_id, "Metric"
    ):
        metric = await api.metrics.read(metric_id)
    return metric.to_dict()


@router.delete("/v1/metrics/{metric_id}")
async def delete_metric(
    metric_id: str,
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    path_id(metric_id)
    async with translate_errors(
        api, ctx, request, f"delete metric {metric_id}", f"not found: metric {metric_id}", metric_id, "Metric"
    ):
        metric = await api.metrics.delete(metric_id)
    await audit(api, ctx, request, f"deleted Metric {metric.id} {metric.title}", metric.id, "Metric")
    return metric.to_dict()


@router.get("/v1/metric_labels")
async def read_metric_labels(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Metric IDs and labels, optionally searched or sorted by label."""
    page = pagination_params(request, limit=1000)
    search = request.query_params.get("search", "").strip()
    any_match = bool_param(request, "any")
    sort_by_value = bool_param(request, "sorted")
    async with translate_errors(api, ctx, request, "read metric labels", entity_type="Metric"):
        if search:
            labels = await api.metrics.filter_labels(ContainsFilter(search, any_match))
        elif sort_by_value or "limit" not in request.query_params:
            labels = await api.metrics.read_all_labels(sort_by_value)
        else:
            labels = await api.metrics.read_metric_labels(page.reverse, page.limit, page.offset)
    return dicts(labels)


@router.get("/v1/metric_entity_ids")
async def read_metric_entity_ids(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read metric entity IDs", entity_type="Metric"):
        return await api.metrics.read_all_entity_ids()


@router.get("/v1/metric_entity_types")
async def read_metric_entity_types(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read metric entity types", entity_type="Metric"):
        return await api.metrics.read_all_entity_types()


@router.get("/v1/metric_tags")
async def read_metric_tags(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    async with translate_errors(api, ctx, request, "read metric tags", entity_type="Metric"):
        return await api.metrics.read_all_tags()


@router.get("/v1/metric_stats")
async def read_metric_stats(
    request: Request,
    api: Application = Depends(get_api),
    ctx: RequestContext = Depends(require_admin),
):
    """Summary statistics for the Metrics of an entity, entity type or tag."""
    row_name, part_key, start, end = metric_query(request)
    if not row_name:
        raise BadRequest("bad request: required query parameter: entity, type or tag")
    async with translate_errors(
        api, ctx, request, f"read metric stats for {part_key}", f"not found: metrics for {part_key}", entity_type="Metric"
    ):
        stat = await api.metrics.read_metric_stat(row_name, part_key, start or None, end or None)
    return stat.to_dict()
