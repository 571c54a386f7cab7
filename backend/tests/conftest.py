import os
import tempfile
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Must be set before anything imports pngfun.config
_db_path = Path(tempfile.gettempdir()) / f"pngfun-test-{os.getpid()}.db"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_db_path}")
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["JOBS_ENABLED"] = "0"
os.environ["AUTO_FINALIZE"] = "0"
os.environ["ENVIRONMENT"] = "test"

import pytest
import pytest_asyncio

from pngfun.db import Base, engine, SessionLocal
from pngfun.main import app
import pngfun.models.user  # noqa: F401  ensure every table is registered
import pngfun.models.challenge  # noqa: F401
import pngfun.models.submission  # noqa: F401
import pngfun.models.vote  # noqa: F401
import pngfun.models.winnings  # noqa: F401
from pngfun.security import make_identity_token
from pngfun.services.policy import LedgerPolicy
from pngfun.services.storage import get_photo_storage
from pngfun.services.users import get_or_create_user
from pngfun.services.challenges import create_challenge

ADMIN = {"X-Admin-Key": "test-admin-key"}
NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


class FakePhotoStorage:
    def __init__(self):
        self.objects: dict[str, bytes] = {}

    async def upload_photo(self, data: bytes, user_id, content_type: str = "image/jpeg", ext: str = "jpg") -> str:
        key = f"{user_id}/{len(self.objects)}.{ext}"
        self.objects[key] = data
        return f"https://photos.test/{key}"


@pytest_asyncio.fixture
async def db():
    """Fresh schema for every test that touches storage."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest_asyncio.fixture
async def session(db):
    async with SessionLocal() as s:
        yield s


@pytest.fixture
def policy():
    return LedgerPolicy(allow_self_vote=False, tie_policy="split", auto_finalize=False)


@pytest.fixture
def make_user(session):
    async def _make(name: str | None = None):
        wallet = f"0x{uuid.uuid4().hex[:8]}{(name or 'user').lower()}"
        return await get_or_create_user(session, wallet)
    return _make


@pytest.fixture
def open_challenge(session):
    """An active challenge whose window covers `NOW` (or a window shifted by `day`)."""
    async def _open(day: int = 0, title: str = "Daily photo"):
        start = NOW - timedelta(hours=6) + timedelta(days=day)
        return await create_challenge(
            session, title=title, starts_at=start, ends_at=start + timedelta(days=1), activate=True
        )
    return _open


@pytest.fixture
def photo_storage():
    fake = FakePhotoStorage()
    app.dependency_overrides[get_photo_storage] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_photo_storage, None)


def bearer(wallet_address: str) -> dict:
    return {"Authorization": f"Bearer {make_identity_token(wallet_address)}"}


@pytest.fixture
def auth_headers():
    return bearer
