"""Session stores.

A session store maps an opaque session token (kept in an HttpOnly cookie) to
a SessionData snapshot. Request handling loads the snapshot, lets the
handler mutate it and saves it back, so a store never hands out live objects
shared between requests.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging
import secrets

from sqlmodel import select
from sqlalchemy import delete as sqlalchemy_delete

from . import config
from .models import Session, SessionData, now_utc

logger = logging.getLogger(__name__)


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def _as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    # sqlite returns naive datetimes even when aware ones were stored
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class SessionStore:
    """Interface every session store implements.

    Subclasses call _maybe_purge() from save() so expired sessions from
    clients that never return are dropped while the process keeps running.
    """

    def __init__(self, expire_minutes: Optional[int] = None, purge_interval_minutes: Optional[int] = None):
        self.expire_minutes = config.SESSION_EXPIRE_MINUTES if expire_minutes is None else expire_minutes
        self.purge_interval_minutes = config.SESSION_PURGE_INTERVAL_MINUTES if purge_interval_minutes is None else purge_interval_minutes
        self._last_purge = now_utc()

    def _expires_at(self) -> datetime:
        return now_utc() + timedelta(minutes=self.expire_minutes)

    async def _maybe_purge(self) -> int:
        now = now_utc()
        if now - self._last_purge < timedelta(minutes=self.purge_interval_minutes):
            return 0
        self._last_purge = now
        return await self.purge_expired()

    async def load(self, token: str) -> Optional[SessionData]:
        raise NotImplementedError

    async def save(self, token: str, data: SessionData) -> None:
        raise NotImplementedError

    async def delete(self, token: str) -> None:
        raise NotImplementedError

    async def purge_expired(self) -> int:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """In-process store; sessions vanish when the process exits."""

    def __init__(self, expire_minutes: Optional[int] = None, purge_interval_minutes: Optional[int] = None):
        super().__init__(expire_minutes, purge_interval_minutes)
        # token -> (serialized SessionData, expires_at)
        self._sessions: dict[str, tuple[str, datetime]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def load(self, token: str) -> Optional[SessionData]:
        entry = self._sessions.get(token)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at < now_utc():
            self._sessions.pop(token, None)
            logger.info('memory session expired, dropped')
            return None
        return SessionData.model_validate_json(raw)

    async def save(self, token: str, data: SessionData) -> None:
        await self._maybe_purge()
        self._sessions[token] = (data.model_dump_json(), self._expires_at())

    async def delete(self, token: str) -> None:
        self._sessions.pop(token, None)

    async def purge_expired(self) -> int:
        now = now_utc()
        expired = [tok for tok, (_, exp) in self._sessions.items() if exp < now]
        for tok in expired:
            del self._sessions[tok]
        return len(expired)


class SqlSessionStore(SessionStore):
    """Store session snapshots as rows of the Session table."""

    def __init__(self, session_factory=None, expire_minutes: Optional[int] = None, purge_interval_minutes: Optional[int] = None):
        super().__init__(expire_minutes, purge_interval_minutes)
        if session_factory is None:
            from .db import async_session
            session_factory = async_session
        self.session_factory = session_factory

    async def load(self, token: str) -> Optional[SessionData]:
        async with self.session_factory() as s:
            q = await s.exec(select(Session).where(Session.session_token == token))
            row = q.first()
            if not row:
                return None
            expires_at = _as_utc(row.expires_at)
            if expires_at and expires_at < now_utc():
                # expired: delete row and return None
                await s.exec(sqlalchemy_delete(Session).where(Session.session_token == token))
                await s.commit()
                logger.info('sql session %s expired, deleted', row.id)
                return None
            return SessionData.model_validate_json(row.data_json)

    async def save(self, token: str, data: SessionData) -> None:
        await self._maybe_purge()
        async with self.session_factory() as s:
            q = await s.exec(select(Session).where(Session.session_token == token))
            row = q.first()
            if row is None:
                row = Session(session_token=token)
            row.data_json = data.model_dump_json()
            row.modified_at = now_utc()
            row.expires_at = self._expires_at()
            s.add(row)
            await s.commit()

    async def delete(self, token: str) -> None:
        async with self.session_factory() as s:
            await s.exec(sqlalchemy_delete(Session).where(Session.session_token == token))
            await s.commit()

    async def purge_expired(self) -> int:
        now = now_utc()
        async with self.session_factory() as s:
            q = await s.exec(select(Session).where(Session.expires_at.is_not(None)))
            expired = [row for row in q.all() if _as_utc(row.expires_at) < now]
            for row in expired:
                await s.delete(row)
            await s.commit()
        if expired:
            logger.info('purged %d expired sessions', len(expired))
        return len(expired)


def build_session_store() -> SessionStore:
    backend = config.SESSION_BACKEND
    if backend == 'sql':
        return SqlSessionStore()
    if backend != 'memory':
        raise RuntimeError(f"unknown SESSION_BACKEND {backend!r}; expected 'memory' or 'sql'")
    return MemorySessionStore()
