import pytest
from httpx import AsyncClient, ASGITransport
from sqlmodel import select

import fast_lists.main as main
from fast_lists.auth import INSECURE_SECRET_KEY
from fast_lists.db import async_session, init_db
from fast_lists.main import app
from fast_lists.models import Session, SessionData
from fast_lists.sessions import MemorySessionStore, SqlSessionStore, new_session_token
from conftest import post_form

pytestmark = pytest.mark.asyncio


async def _session_rows(tokens):
    async with async_session() as sess:
        q = await sess.exec(select(Session).where(Session.session_token.in_(tokens)))
        return q.all()


async def test_startup_refuses_insecure_secret_key(monkeypatch):
    monkeypatch.setattr(main, 'SECRET_KEY', INSECURE_SECRET_KEY)
    with pytest.raises(RuntimeError):
        async with app.router.lifespan_context(app):
            pass


async def test_startup_purges_expired_memory_sessions(monkeypatch):
    store = MemorySessionStore(expire_minutes=-1)
    await store.save(new_session_token(), SessionData())
    await store.save(new_session_token(), SessionData())
    assert len(store) == 2
    monkeypatch.setattr(app.state, 'session_store', store)
    async with app.router.lifespan_context(app):
        assert len(store) == 0


async def test_startup_creates_table_and_purges_sql_sessions(monkeypatch):
    store = SqlSessionStore(expire_minutes=-1)
    monkeypatch.setattr(app.state, 'session_store', store)
    async with app.router.lifespan_context(app):
        pass
    token = new_session_token()
    await store.save(token, SessionData())
    assert len(await _session_rows([token])) == 1
    async with app.router.lifespan_context(app):
        assert await _session_rows([token]) == []


async def test_abandoned_sessions_swept_while_running(monkeypatch):
    # every visitor's session is already stale; sweeping on each save keeps
    # only the one that was just written
    store = MemorySessionStore(expire_minutes=-1, purge_interval_minutes=0)
    monkeypatch.setattr(app.state, 'session_store', store)
    transport = ASGITransport(app=app)
    for _ in range(10):
        async with AsyncClient(transport=transport, base_url='http://test') as visitor:
            resp = await visitor.get('/')
            assert resp.status_code == 302
    assert len(store) == 1


async def test_sweep_waits_for_interval():
    store = MemorySessionStore(expire_minutes=-1, purge_interval_minutes=60)
    for _ in range(3):
        await store.save(new_session_token(), SessionData())
    assert len(store) == 3


async def test_sql_sweep_on_save():
    store = SqlSessionStore(expire_minutes=-1, purge_interval_minutes=0)
    await init_db()
    stale = [new_session_token() for _ in range(3)]
    for token in stale:
        await store.save(token, SessionData())
    store.expire_minutes = 60
    live = new_session_token()
    await store.save(live, SessionData())
    assert await _session_rows(stale) == []
    assert len(await _session_rows([live])) == 1


async def test_lists_persist_in_sql_store(sql_client):
    resp = await post_form(sql_client, '/lists', {'list_name': 'Stored'})
    assert resp.status_code == 303
    resp = await post_form(sql_client, '/lists/1/todos', {'todo': 'row'})
    assert resp.status_code == 303

    page = await sql_client.get('/lists/1')
    assert page.status_code == 200
    assert 'Stored' in page.text
    assert '<h3>row</h3>' in page.text

    token = sql_client.cookies.get('session_token')
    rows = await _session_rows([token])
    assert len(rows) == 1
    data = SessionData.model_validate_json(rows[0].data_json)
    assert [lst.name for lst in data.lists] == ['Stored']
    assert [t.name for t in data.lists[0].todos] == ['row']
