import io
import os

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient
from PIL import Image

# Configure test environment before the app reads it
os.environ.setdefault('JWT_SECRET', 'test-secret')
os.environ.setdefault('LOG_LEVEL', 'WARNING')

from socialapp import core  # noqa: E402
from socialapp.auth import create_access_token  # noqa: E402
from socialapp.models import new_user_document  # noqa: E402
from socialapp.relationships import RelationshipManager  # noqa: E402
from socialapp.store import UserStore  # noqa: E402


@pytest_asyncio.fixture
async def mongo_client(monkeypatch):
    """An in-memory MongoDB installed as the app's client."""
    client = AsyncMongoMockClient()
    monkeypatch.setattr(core, 'MONGO', client)
    yield client


@pytest_asyncio.fixture
async def redis_client(monkeypatch):
    """An in-memory Redis installed for rate limit counters."""
    client = FakeAsyncRedis()
    monkeypatch.setattr(core, 'REDIS', client)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def store(mongo_client):
    store = UserStore(mongo_client[core.MONGO_DB_NAME])
    await store.ensure_indexes()
    return store


@pytest.fixture
def manager(store):
    return RelationshipManager(store)


@pytest.fixture
def make_user(store):
    async def _make(first_name, last_name='Tester', email=None):
        doc = new_user_document(
            first_name=first_name,
            last_name=last_name,
            email=email or f'{first_name.lower()}@example.com',
            password_hash='not-a-real-hash',
        )
        return await store.insert(doc)
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user_id):
        token = create_access_token({'id': str(user_id)})
        return {'Authorization': f'Bearer {token}'}
    return _headers


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new('RGB', (4, 4), color=(200, 30, 30)).save(buf, format='PNG')
    return buf.getvalue()


@pytest_asyncio.fixture
async def client(store):
    from socialapp.main import app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac
