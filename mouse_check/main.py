"""FastAPI application for server-side pointer movement verification.

Clients upload the raw pointer trace recorded by the widget. The server
recomputes every check, and only a trace that passes all of them receives a
signed attestation and a short-lived session id that a relying party can
re-verify later.
"""

import logging
import math
import os
import secrets
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, StrictFloat, ValidationError

from . import __version__
from .attestation import issue_attestation
from .config import DetectionConfig, load_config, session_ttl_seconds
from .config.constants import MAX_COORDINATE_PX, MAX_TIMESTAMP_MS
from .movement import analyze_movement, count_target_hits
from .movement.decision import REASON_CHECKS_FAILED
from .sessions import SessionRegistry

# --- Logging setup (persistent logs for verification attempts) ---
LOG_DIR = os.environ.get("MOUSE_CHECK_LOG_DIR", "logs")
os.makedirs(LOG_DIR, exist_ok=True)
LOG_FILE = os.path.join(LOG_DIR, "verification.log")

logger = logging.getLogger("mouse_check")
logger.setLevel(logging.INFO)


# Every record gets a trace_id so the formatter never fails, including
# records propagated from module loggers under mouse_check.*
class TraceFilter(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "trace_id"):
            record.trace_id = "-"
        return True


if not logger.handlers:
    formatter = logging.Formatter("%(asctime)s %(levelname)-8s [%(name)s] [trace=%(trace_id)s] %(message)s")

    # Rotating file handler to avoid uncontrolled log growth
    file_handler = RotatingFileHandler(LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8")
    file_handler.setFormatter(formatter)
    file_handler.addFilter(TraceFilter())
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.addFilter(TraceFilter())
    logger.addHandler(console_handler)


def get_trace_logger(trace_id: Optional[str]):
    """Return a LoggerAdapter that attaches a trace_id to each LogRecord.

    Use the record id or session id as trace id so that every message about
    one verification can be correlated.
    """
    return logging.LoggerAdapter(logger, {"trace_id": trace_id if trace_id else "-"})


ERROR_INVALID_POINTS = "Missing or invalid points array"
ERROR_INVALID_TARGETS = "Invalid targets array"
ERROR_INVALID_TARGET_HITS = "Invalid targetHits"
ERROR_MISSING_SESSION = "Missing sessionId or signature"
ERROR_INTERNAL = "Internal server error"


class Point(BaseModel):
    """One pointer sample; t is milliseconds.

    Numbers only: strings and booleans are rejected rather than coerced.
    """

    x: StrictFloat = Field(allow_inf_nan=False, ge=-MAX_COORDINATE_PX, le=MAX_COORDINATE_PX)
    y: StrictFloat = Field(allow_inf_nan=False, ge=-MAX_COORDINATE_PX, le=MAX_COORDINATE_PX)
    t: StrictFloat = Field(allow_inf_nan=False, ge=-MAX_TIMESTAMP_MS, le=MAX_TIMESTAMP_MS)


def _error(message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _json_body(request: Request) -> Optional[Dict[str, Any]]:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _parse_points(raw: Any) -> Optional[List[Dict[str, float]]]:
    """Validate a list of {x, y, t} samples; None when anything is malformed."""
    if not isinstance(raw, list):
        return None
    try:
        return [Point.model_validate(p).model_dump() for p in raw]
    except ValidationError:
        return None


def _parse_target_hits(raw: Any) -> Optional[int]:
    """Reported hit count; 0 when absent, None when not a non-negative whole number."""
    if raw is None:
        return 0
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    if isinstance(raw, float) and not (math.isfinite(raw) and raw.is_integer()):
        return None
    return int(raw) if raw >= 0 else None


def _load_secret() -> str:
    secret = os.environ.get("VERIFICATION_SECRET")
    if secret:
        return secret
    logger.warning("VERIFICATION_SECRET is not set; using a random per-process key. "
                   "Signatures will not survive a restart.")
    return secrets.token_hex(32)


def create_app(
    secret_key: Optional[str] = None,
    config: Optional[DetectionConfig] = None,
    registry: Optional[SessionRegistry] = None,
) -> FastAPI:
    """Build the service with its own config, signing key and session registry.

    Args:
        secret_key: HMAC key; read from VERIFICATION_SECRET when omitted.
        config: Detection thresholds; environment defaults when omitted.
        registry: Session store; a fresh one with the configured TTL when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting verification service v%s (%d active sessions)",
                    __version__, len(app.state.registry))
        yield
        app.state.registry.clear()
        logger.info("Verification service stopped")

    app = FastAPI(title="Mouse Movement Verification API", version=__version__, lifespan=lifespan)
    app.state.secret_key = secret_key if secret_key is not None else _load_secret()
    app.state.config = config if config is not None else load_config()
    # SessionRegistry defines __len__; an empty one is falsy
    app.state.registry = registry if registry is not None else SessionRegistry(ttl_seconds=session_ttl_seconds())

    @app.post("/api/verify")
    async def verify(request: Request):
        """Analyze a trace and, if it passes, issue a signed attestation.

        Body: {points: [{x, y, t}], targetHits: int, recordId?: str,
        targets?: [{x, y, t}]}. When target placements are supplied the hit
        count is recomputed from them instead of trusting targetHits.
        """
        body = await _json_body(request)
        if body is None:
            return _error(ERROR_INVALID_POINTS)
        points = _parse_points(body.get("points"))
        if points is None:
            return _error(ERROR_INVALID_POINTS)

        targets = None
        if body.get("targets") is not None:
            targets = _parse_points(body.get("targets"))
            if targets is None:
                return _error(ERROR_INVALID_TARGETS)
        target_hits = _parse_target_hits(body.get("targetHits"))
        if target_hits is None:
            return _error(ERROR_INVALID_TARGET_HITS)

        record_id = body.get("recordId")
        record_id = str(record_id) if record_id is not None else None
        tlog = get_trace_logger(record_id)

        try:
            if targets is not None:
                target_hits = count_target_hits(points, targets)

            result = analyze_movement(points, target_hits, request.app.state.config)
            checks = result.checks.model_dump(by_alias=True)

            if not result.verified:
                tlog.info("Verification failed: checks_passed=%d ai_detected=%s reason=%s",
                          result.checks_passed, result.ai_detected, result.reason)
                return JSONResponse(content={
                    "verified": False,
                    "aiDetected": result.ai_detected,
                    "checks": checks,
                    "checksPassed": result.checks_passed,
                    "totalChecks": result.total_checks,
                    "reason": result.reason or REASON_CHECKS_FAILED,
                    "detectionVersion": result.detection_version,
                    "metrics": result.metrics,
                })

            attestation = issue_attestation(
                request.app.state.secret_key,
                points,
                record_id or "anonymous",
                result.checks_passed,
            )
            session = request.app.state.registry.register(attestation, record_id)
            tlog.info("Verification passed: session=%s checks_passed=%d", session.session_id, result.checks_passed)

            return JSONResponse(content={
                "verified": True,
                "signature": attestation.signature,
                "sessionId": session.session_id,
                "timestamp": attestation.timestamp,
                "checks": checks,
                "checksPassed": result.checks_passed,
                "totalChecks": result.total_checks,
                "detectionVersion": result.detection_version,
                "metrics": result.metrics,
            })
        except Exception:
            tlog.exception("Unexpected error during verification")
            return _error(ERROR_INTERNAL, status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.post("/api/verify-signature")
    async def verify_signature(request: Request):
        """Re-verify a session issued by /api/verify."""
        body = await _json_body(request) or {}
        session_id = body.get("sessionId")
        signature = body.get("signature")
        if not isinstance(session_id, str) or not isinstance(signature, str) or not session_id or not signature:
            return _error(ERROR_MISSING_SESSION)

        tlog = get_trace_logger(session_id)
        try:
            outcome = request.app.state.registry.lookup(session_id, signature)
        except Exception:
            tlog.exception("Unexpected error during signature verification")
            return _error(ERROR_INTERNAL, status.HTTP_500_INTERNAL_SERVER_ERROR)

        tlog.info("Signature check: valid=%s reason=%s", outcome.valid, outcome.reason)
        return JSONResponse(content=outcome.model_dump(by_alias=True))

    @app.get("/api/health")
    async def health_check(request: Request):
        return {
            "status": "ok",
            "serverSideVerification": True,
            "activeSessions": len(request.app.state.registry),
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "3000")))
