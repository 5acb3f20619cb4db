import os
import re
import sys
import pathlib
import tempfile

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Ensure a secure SECRET_KEY is available during tests and point the SQL
# session store at a throwaway sqlite file before the app modules import.
os.environ.setdefault('SECRET_KEY', 'test-secret-key-for-unit-tests')
_TMP_DIR = tempfile.mkdtemp(prefix='fast_lists_tests_')
os.environ.setdefault('DATABASE_URL', f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'sessions.db')}")

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from fast_lists.main import app
from fast_lists.db import init_db
from fast_lists.sessions import MemorySessionStore, SqlSessionStore
from fast_lists import config

CSRF_RE = re.compile(r'name="csrf-token" content="([^"]+)"')


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest_asyncio.fixture
async def client(store):
    """Client with its own empty memory store so tests never share sessions."""
    original = app.state.session_store
    app.state.session_store = store
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.state.session_store = original


@pytest_asyncio.fixture
async def sql_client():
    """Client whose sessions live in the Session table instead of memory."""
    await init_db()
    original = app.state.session_store
    app.state.session_store = SqlSessionStore()
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.state.session_store = original


@pytest.fixture
def no_csrf(monkeypatch):
    monkeypatch.setattr(config, 'CSRF_ENABLED', False)


async def csrf_token(client) -> str:
    """Fetch a page to establish the session and return its CSRF token."""
    resp = await client.get('/lists')
    assert resp.status_code == 200
    m = CSRF_RE.search(resp.text)
    assert m, 'csrf meta tag missing from page'
    return m.group(1)


async def post_form(client, url: str, data: dict | None = None, **kwargs):
    token = await csrf_token(client)
    payload = {'_csrf': token}
    if data:
        payload.update(data)
    return await client.post(url, data=payload, follow_redirects=False, **kwargs)
