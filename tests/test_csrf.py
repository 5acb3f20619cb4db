import pytest
from httpx import AsyncClient, ASGITransport

from fast_lists.auth import create_csrf_token, verify_csrf_token
from fast_lists.main import app
from conftest import csrf_token

pytestmark = pytest.mark.asyncio


async def test_post_without_token_forbidden(client):
    await client.get('/lists')
    resp = await client.post('/lists', data={'list_name': 'x'})
    assert resp.status_code == 403


async def test_token_from_other_session_forbidden(client):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as other:
        foreign = await csrf_token(other)
    await client.get('/lists')
    resp = await client.post('/lists', data={'list_name': 'x', '_csrf': foreign})
    assert resp.status_code == 403


async def test_header_token_accepted(client):
    token = await csrf_token(client)
    resp = await client.post('/lists', data={'list_name': 'x'}, headers={'X-CSRF-Token': token})
    assert resp.status_code == 303


async def test_csrf_can_be_disabled(client, no_csrf):
    resp = await client.post('/lists', data={'list_name': 'x'})
    assert resp.status_code == 303


async def test_verify_rejects_garbage_and_wrong_type():
    assert verify_csrf_token(None, 'tok') is False
    assert verify_csrf_token('not-a-jwt', 'tok') is False
    token = create_csrf_token('tok')
    assert verify_csrf_token(token, 'tok') is True
    assert verify_csrf_token(token, 'other') is False
