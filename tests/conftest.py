import os
import uuid

import pytest

from tests.fakes import ANON_KEY, SUPABASE_URL, FakeSupabase

# Settings must be in place before bookerhq.config is imported
os.environ["SUPABASE_URL"] = SUPABASE_URL
os.environ["SUPABASE_ANON_KEY"] = ANON_KEY
os.environ["ENVIRONMENT"] = "development"
os.environ["APP_URL"] = "http://localhost:3000"
os.environ.pop("LOOPS_API_KEY", None)

from bookerhq.session_store import MemoryTokenStorage  # noqa: E402
from bookerhq.supabase_client import create_supabase_client  # noqa: E402


@pytest.fixture(autouse=True)
def clear_token_storage():
    MemoryTokenStorage._entries.clear()
    yield
    MemoryTokenStorage._entries.clear()


@pytest.fixture
def backend() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def make_client(backend):
    """Factory for platform clients that talk to the fake backend, one storage namespace each"""

    async def factory(namespace: str = None):
        storage = MemoryTokenStorage(namespace or uuid.uuid4().hex)
        return await create_supabase_client(SUPABASE_URL, ANON_KEY, storage, backend.http_client())

    return factory


@pytest.fixture
async def client(make_client):
    return await make_client()


@pytest.fixture
def app(backend):
    from bookerhq.main import create_app

    return create_app(
        http_client=backend.http_client(),
        storage_factory=MemoryTokenStorage,
        store_options={"session_timeout": 1, "sign_out_timeout": 1, "failsafe_timeout": 2},
    )


@pytest.fixture
def api(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
