from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

import sqlalchemy as sa
from jose import JWTError
from sqlalchemy.orm import Session as DbSession

from app.core.security import as_utc, decode_token, now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    user_id: str
    session_id: str


SessionHandler = Callable[[Session | None], None]


class AuthProvider(Protocol):
    def get_current_session(self) -> Session | None: ...

    def subscribe_to_session_changes(self, handler: SessionHandler) -> Callable[[], None]: ...

    def sign_out(self) -> None: ...


class SessionSignals:
    """Fan-out of session-change notifications.

    Handlers are called synchronously on the thread that emits; a handler that
    unsubscribes while being notified does not affect the current emission.
    """

    def __init__(self):
        self._handlers: list[SessionHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: SessionHandler) -> Callable[[], None]:
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe():
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def emit(self, session: Session | None):
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(session)


def revoke_session(db: DbSession, session_id: str, reason: str, replaced_by: str | None = None) -> bool:
    result = db.execute(sa.text("""
        UPDATE auth_sessions
        SET revoked_at=now(), revoked_reason=:reason, replaced_by=:replaced_by
        WHERE id=:sid AND revoked_at IS NULL
    """), {"sid": session_id, "reason": reason, "replaced_by": replaced_by})
    return bool(result.rowcount)


class BearerSessionAuth:
    """Authentication collaborator bound to one access token.

    Every call to get_current_session re-validates the token against
    auth_sessions, so a session revoked from another device is seen as absent
    on the next check. Database errors propagate to the caller.
    """

    def __init__(self, db: DbSession, token: str | None):
        self.db = db
        self.token = token
        self._signals = SessionSignals()
        self._signed_out = False

    def _claims(self) -> tuple[str, str] | None:
        if self._signed_out or not self.token:
            return None
        try:
            payload = decode_token(self.token)
        except JWTError:
            return None
        if payload.get("type") != "access":
            return None
        user_id = payload.get("sub")
        sid = payload.get("sid")
        if not user_id or not sid:
            return None
        return str(user_id), str(sid)

    def get_current_session(self) -> Session | None:
        claims = self._claims()
        if claims is None:
            return None
        user_id, sid = claims
        row = self.db.execute(sa.text("""
            SELECT s.user_id::text AS user_id, s.expires_at, s.revoked_at, u.status
            FROM auth_sessions s
            JOIN users u ON u.id = s.user_id
            WHERE s.id=:sid
        """), {"sid": sid}).mappings().first()
        if not row or row["user_id"] != user_id:
            return None
        if row["revoked_at"] is not None:
            return None
        if now_utc() > as_utc(row["expires_at"]):
            return None
        if row["status"] != "active":
            return None
        return Session(user_id=user_id, session_id=sid)

    def subscribe_to_session_changes(self, handler: SessionHandler) -> Callable[[], None]:
        return self._signals.subscribe(handler)

    def sign_out(self) -> None:
        claims = self._claims()
        if claims is not None:
            _, sid = claims
            if revoke_session(self.db, sid, "logout"):
                logger.info("session %s revoked by sign-out", sid)
        self._signed_out = True
        self._signals.emit(None)
