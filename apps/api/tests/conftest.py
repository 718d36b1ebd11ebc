from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base
from main import app
from routers import rate_limit
from services.blob_storage import LocalBlobStore, get_blob_store
from services.share_lifecycle import ShareLifecycle, get_share_lifecycle
from services.share_store import ShareStore


class FakeClock:
    """Mutable clock so tests can step past expiry without sleeping."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingBlobStore(LocalBlobStore):
    """Local store that remembers every signing call."""

    def __init__(self, root):
        super().__init__(root)
        self.signed = []

    async def signed_url(self, locator: str, expires_in: int = 3600) -> str:
        url = await super().signed_url(locator, expires_in)
        self.signed.append(locator)
        return url


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "shares.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def share_store(session_maker):
    return ShareStore(session_maker, timeout_seconds=5)


@pytest.fixture
def blob_store(tmp_path):
    return RecordingBlobStore(tmp_path / "blobs")


@pytest_asyncio.fixture
async def lifecycle(share_store, blob_store, clock):
    engine = ShareLifecycle(
        share_store,
        blob_store,
        clock=clock,
        one_time_grace_seconds=5,
        password_iterations=1_000,
    )
    yield engine
    await engine.shutdown()


@pytest_asyncio.fixture
async def share_client(lifecycle, blob_store):
    app.dependency_overrides[get_share_lifecycle] = lambda: lifecycle
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.pop(get_share_lifecycle, None)
    app.dependency_overrides.pop(get_blob_store, None)
