"""Signed attestations for verified movement.

A passing analysis is turned into a payload that binds a SHA-256 hash of
the trace to the record id, issue time and pass count. The payload is
signed with HMAC-SHA256 under the server secret.
"""

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Mapping, Optional, Sequence

from pydantic import BaseModel

from .movement.features import canonical_points

logger = logging.getLogger(__name__)


class Attestation(BaseModel):
    """Signature plus the exact payload string it covers."""

    signature: str
    timestamp: int
    payload: str


def now_ms() -> int:
    return int(time.time() * 1000)


def _canonical_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def hash_movement(points: Sequence[Mapping[str, Any]]) -> str:
    """Deterministic, order-sensitive SHA-256 of a trace.

    Samples are serialized as {x, y, t} in capture order; extra keys are
    ignored so that client-side decoration does not change the hash.
    """
    data = _canonical_json(canonical_points(points))
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _sign(secret_key: str, payload: str) -> str:
    return hmac.new(secret_key.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_attestation(
    secret_key: str,
    points: Sequence[Mapping[str, Any]],
    record_id: str,
    checks_passed: int,
    timestamp: Optional[int] = None,
) -> Attestation:
    """Sign a verified trace.

    Args:
        secret_key: Server-side HMAC key. Never logged.
        points: The trace that passed analysis.
        record_id: Caller supplied id bound into the payload.
        checks_passed: Pass count from the analysis.
        timestamp: Issue time in ms since epoch; defaults to now.

    Returns:
        Attestation with the hex signature and the signed payload string.
    """
    ts = now_ms() if timestamp is None else int(timestamp)
    payload = _canonical_json({
        "movementHash": hash_movement(points),
        "recordId": record_id,
        "timestamp": ts,
        "checksPassed": checks_passed,
    })
    signature = _sign(secret_key, payload)
    logger.debug("Issued attestation for record=%s ts=%d", record_id, ts)
    return Attestation(signature=signature, timestamp=ts, payload=payload)


def constant_time_equals(a: Any, b: Any) -> bool:
    """Timing-safe string comparison that returns False instead of raising.

    Both operands are compared as UTF-8 bytes; differing lengths or
    non-string input simply fail.
    """
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def verify_attestation(secret_key: str, signature: str, payload: str) -> bool:
    """Recompute the HMAC over payload and compare it to signature."""
    if not isinstance(payload, str):
        return False
    expected = _sign(secret_key, payload)
    return constant_time_equals(signature, expected)
