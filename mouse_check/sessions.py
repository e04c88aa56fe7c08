"""In-memory registry of issued attestations.

Sessions are keyed by a short prefix of the signature and live for a fixed
TTL. Expired entries are dropped lazily whenever a new session is
registered, and on lookup of the expired id itself.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .attestation import Attestation, constant_time_equals, now_ms
from .config.constants import SESSION_ID_LENGTH, SESSION_TTL_SECONDS

logger = logging.getLogger(__name__)

REASON_SESSION_NOT_FOUND = "session_not_found"
REASON_SESSION_EXPIRED = "session_expired"


@dataclass(frozen=True)
class Session:
    session_id: str
    signature: str
    timestamp: int
    record_id: Optional[str]
    expires_at: int


class LookupResult(BaseModel):
    """Outcome of re-verifying a session; misses are not errors."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    valid: bool
    record_id: Optional[str] = None
    timestamp: Optional[int] = None
    reason: Optional[str] = None


class SessionRegistry:
    """Thread-safe session store owned by one service instance.

    Args:
        ttl_seconds: Lifetime of a session from its creation.
        clock: Callable returning the current time in ms; injectable for tests.
    """

    def __init__(self, ttl_seconds: int = SESSION_TTL_SECONDS, clock: Callable[[], int] = now_ms):
        self.ttl_ms = int(ttl_seconds * 1000)
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    @staticmethod
    def session_id_for(signature: str) -> str:
        return signature[:SESSION_ID_LENGTH]

    def register(self, attestation: Attestation, record_id: Optional[str]) -> Session:
        """Store an attestation and sweep expired sessions."""
        now = self._clock()
        session = Session(
            session_id=self.session_id_for(attestation.signature),
            signature=attestation.signature,
            timestamp=attestation.timestamp,
            record_id=record_id,
            expires_at=now + self.ttl_ms,
        )
        with self._lock:
            self._sessions[session.session_id] = session
            removed = self._sweep_locked(now)
        if removed:
            logger.debug("Swept %d expired sessions", removed)
        return session

    def lookup(self, session_id: str, signature: str) -> LookupResult:
        """Re-verify a previously issued signature."""
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return LookupResult(valid=False, reason=REASON_SESSION_NOT_FOUND)
            if session.expires_at < now:
                del self._sessions[session_id]
                return LookupResult(valid=False, reason=REASON_SESSION_EXPIRED)

        valid = constant_time_equals(session.signature, signature)
        return LookupResult(
            valid=valid,
            record_id=session.record_id if valid else None,
            timestamp=session.timestamp if valid else None,
        )

    def sweep(self) -> int:
        """Remove every expired session; returns how many were dropped."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: int) -> int:
        expired = [sid for sid, s in self._sessions.items() if s.expires_at < now]
        for sid in expired:
            del self._sessions[sid]
        return len(expired)

    def clear(self) -> None:
        """Administrative reset."""
        with self._lock:
            self._sessions.clear()
