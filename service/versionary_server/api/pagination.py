"""
Cursor pagination query parameters.

Every list endpoint accepts ``reverse``, ``limit`` and ``offset``. The
offset is the last key of the previous page; when it is absent, a
sentinel is used so the first page is selected by the same strict
comparison as every other page.

Invariants:
    - limit is always >= 1
    - OFFSET_FIRST sorts before every TUID and label ("-" < "0")
    - OFFSET_LAST sorts after every TUID and lower-case label ("|" > "z")
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from .errors import BadRequest

OFFSET_FIRST = "-"
OFFSET_LAST = "|"

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


@dataclass(frozen=True)
class PageRequest:
    """A normalized page request."""

    reverse: bool
    limit: int
    offset: str


def parse_bool(value: str) -> bool:
    """Parse a boolean query parameter.

    Raises:
        ValueError: If the value is not a recognized boolean
    """
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"invalid boolean: {value!r}")


def parse_limit(value: str) -> int:
    """Parse a positive integer limit.

    Raises:
        ValueError: If the value is not an integer >= 1
    """
    limit = int(value)
    if limit < 1:
        raise ValueError(f"limit must be at least 1: {limit}")
    return limit


def pagination_params(request: Request, reverse: bool = False, limit: int = 100) -> PageRequest:
    """Parse reverse/limit/offset query parameters, with defaults.

    Args:
        request: Incoming request
        reverse: Default sort direction
        limit: Default page size

    Returns:
        PageRequest

    Raises:
        BadRequest: If reverse or limit is malformed
    """
    params = request.query_params

    raw = params.get("reverse")
    if raw is not None:
        try:
            reverse = parse_bool(raw)
        except ValueError:
            raise BadRequest(f"bad request: invalid parameter, reverse: {raw}")

    raw = params.get("limit")
    if raw is not None:
        try:
            limit = parse_limit(raw)
        except ValueError:
            raise BadRequest(f"bad request: invalid parameter, limit: {raw}")

    offset = params.get("offset")
    if not offset:
        offset = OFFSET_LAST if reverse else OFFSET_FIRST

    return PageRequest(reverse=reverse, limit=limit, offset=offset)


def limit_param(request: Request, default: int) -> int:
    """Parse a standalone limit query parameter.

    Raises:
        BadRequest: If the limit is malformed
    """
    raw = request.query_params.get("limit")
    if raw is None:
        return default
    try:
        return parse_limit(raw)
    except ValueError:
        raise BadRequest(f"bad request: invalid limit parameter: {raw}")


def bool_param(request: Request, name: str, default: bool = False) -> bool:
    """Parse an optional boolean query parameter (e.g. any, sorted).

    Raises:
        BadRequest: If the value is malformed
    """
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        return parse_bool(raw)
    except ValueError:
        raise BadRequest(f"bad request: invalid parameter, {name}: {raw}")
