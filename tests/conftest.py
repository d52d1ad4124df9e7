import asyncio
import os
import tempfile
from pathlib import Path

_DB_DIR = tempfile.mkdtemp(prefix="donatehub-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["RATE_LIMIT_INITIATE_PER_MINUTE"] = "0"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["ADMIN_EMAIL"] = "admin@example.com"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["API_BASE_URL"] = "http://api.test"
os.environ["PAYMENT_CURRENCY"] = "GHS"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_paystack"
os.environ["FLUTTERWAVE_WEBHOOK_HASH"] = "flw-test-hash"
os.environ["WEBHOOK_VERIFY_SIGNATURES"] = "true"

import pytest

from donatehub.database import Base, engine
from helpers import StubProvider


async def _reset_schema():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture(autouse=True)
def fresh_db():
    asyncio.run(_reset_schema())
    yield


@pytest.fixture
def stub():
    return StubProvider()


@pytest.fixture
def client(stub):
    from fastapi.testclient import TestClient

    from donatehub.core.dependencies import get_provider_factory
    from donatehub.main import app

    app.dependency_overrides[get_provider_factory] = lambda: (lambda method: stub)
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
