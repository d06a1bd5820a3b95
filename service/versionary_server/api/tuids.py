"""TUID endpoints: generate new identifiers and decode existing ones."""

from __future__ import annotations

from fastapi import APIRouter, Request

from .. import tuid
from .errors import BadRequest
from .handlers import created
from .pagination import limit_param

router = APIRouter(prefix="/v1/tuids", tags=["TUID"])


@router.post("", status_code=201)
async def create_tuid(request: Request):
    """Generate a new TUID."""
    info = tuid.info(tuid.new_id())
    return created(request, info.id, info.to_dict())


@router.get("")
async def read_tuids(request: Request):
    """Generate a batch of new TUIDs (default 5)."""
    limit = limit_param(request, 5)
    return [tuid.info(tuid.new_id()).to_dict() for _ in range(limit)]


@router.get("/{tuid_id}")
async def read_tuid(tuid_id: str):
    """Decode a TUID into its timestamp and entropy."""
    try:
        info = tuid.validated_info(tuid_id)
    except tuid.TUIDError as e:
        raise BadRequest(str(e))
    return info.to_dict()
