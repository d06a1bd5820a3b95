"""
Time-ordered unique identifiers (TUIDs).

A TUID is a base-62 string encoding a Unix timestamp in nanoseconds and
32 bits of random entropy:

    value = (unix_nanoseconds << 32) | entropy

Every entity ID and version ID in the service is a TUID, and every
paginated listing uses TUIDs (or labels) as its cursor.

Invariants:
    - The digit alphabet is "0-9A-Za-z", which is also ASCII order, so
      lexicographic order of equal-length TUIDs is chronological order
    - IDs generated by one process are strictly increasing
    - A TUID is valid only if its timestamp lies in [2000-01-01, 2200-01-01)

How to change safely:
    - Never change the alphabet or bit layout; stored cursors depend on it
    - Keep first_id_with_time() entropy at zero so date ranges stay inclusive
"""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone

DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
BASE = len(DIGITS)
ENTROPY_BITS = 32

MIN_TIME = datetime(2000, 1, 1, tzinfo=timezone.utc)
MAX_TIME = datetime(2200, 1, 1, tzinfo=timezone.utc)

_DIGIT_VALUES = {c: i for i, c in enumerate(DIGITS)}
_lock = threading.Lock()
_last_nanos = 0


class TUIDError(ValueError):
    """A string could not be interpreted as a TUID."""

    pass


@dataclass(frozen=True)
class TUIDInfo:
    """Decoded TUID components.

    Attributes:
        id: The TUID string
        timestamp: Embedded timestamp (UTC)
        nanos: Embedded timestamp as Unix nanoseconds
        entropy: Random 32-bit component
    """

    id: str
    timestamp: datetime
    nanos: int
    entropy: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": format_nanos(self.nanos),
            "entropy": self.entropy,
        }


def encode(value: int) -> str:
    """Encode a non-negative integer as a base-62 string."""
    if value == 0:
        return DIGITS[0]
    chars = []
    while value > 0:
        value, rem = divmod(value, BASE)
        chars.append(DIGITS[rem])
    return "".join(reversed(chars))


def parse(tuid: str) -> int:
    """Decode a TUID string into its integer value.

    Raises:
        TUIDError: If the string is empty or contains an invalid digit
    """
    if not tuid:
        raise TUIDError("invalid TUID: empty string")
    value = 0
    for c in tuid:
        digit = _DIGIT_VALUES.get(c)
        if digit is None:
            raise TUIDError(f"invalid digit {c!r} in TUID {tuid!r}")
        value = value * BASE + digit
    return value


def _to_nanos(t: datetime) -> int:
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    delta = t - datetime(1970, 1, 1, tzinfo=timezone.utc)
    return (delta.days * 86_400 + delta.seconds) * 1_000_000_000 + delta.microseconds * 1_000


def _from_nanos(nanos: int) -> datetime:
    seconds, rem = divmod(nanos, 1_000_000_000)
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(microsecond=rem // 1_000)


def format_nanos(nanos: int) -> str:
    """Format Unix nanoseconds as an RFC 3339 timestamp with nanoseconds."""
    seconds, rem = divmod(nanos, 1_000_000_000)
    base = datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
    return f"{base}.{rem:09d}Z"


def _next_nanos() -> int:
    global _last_nanos
    with _lock:
        nanos = time.time_ns()
        if nanos <= _last_nanos:
            nanos = _last_nanos + 1
        _last_nanos = nanos
        return nanos


def new_id() -> str:
    """Generate a new TUID for the current time."""
    return encode((_next_nanos() << ENTROPY_BITS) | secrets.randbits(ENTROPY_BITS))


def new_id_with_time(t: datetime) -> str:
    """Generate a new TUID for the given time, with random entropy."""
    return encode((_to_nanos(t) << ENTROPY_BITS) | secrets.randbits(ENTROPY_BITS))


def first_id_with_time(t: datetime) -> str:
    """Return the lowest TUID for the given time (zero entropy)."""
    return encode(_to_nanos(t) << ENTROPY_BITS)


def info(tuid: str) -> TUIDInfo:
    """Decode a TUID into its timestamp and entropy.

    Raises:
        TUIDError: On parse errors
    """
    value = parse(tuid)
    nanos = value >> ENTROPY_BITS
    entropy = value & ((1 << ENTROPY_BITS) - 1)
    try:
        timestamp = _from_nanos(nanos)
    except (OverflowError, OSError, ValueError):
        raise TUIDError(f"invalid TUID timestamp: {nanos} nanoseconds")
    return TUIDInfo(id=tuid, timestamp=timestamp, nanos=nanos, entropy=entropy)


def is_valid(tuid: str) -> bool:
    """Check that a string parses as a TUID with a plausible timestamp."""
    try:
        return MIN_TIME <= info(tuid).timestamp < MAX_TIME
    except TUIDError:
        return False


def validated_info(tuid: str) -> TUIDInfo:
    """Decode a TUID and check its timestamp range.

    Raises:
        TUIDError: On parse errors or an out-of-range timestamp
    """
    decoded = info(tuid)
    if not MIN_TIME <= decoded.timestamp < MAX_TIME:
        raise TUIDError(f"invalid TUID timestamp: {format_nanos(decoded.nanos)}")
    return decoded


def tuid_time(tuid: str) -> datetime:
    """Return the timestamp embedded in a TUID."""
    return info(tuid).timestamp
