"""
Test fixtures - in-memory SQLite database + HTTP client bound to the app
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from fieldops.database import Base, get_db, configure_sqlite
from fieldops.main import app
from fieldops.models.material import Material
from fieldops.services.photo_storage import photo_storage


@pytest_asyncio.fixture()
async def engine():
    """Fresh in-memory SQLite database for each test"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    configure_sqlite(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def seed_data(db_session):
    """Material catalog used for exact-name resolution"""
    cement = Material(id="M001", name="Ciment", type="consommable", quantity=120)
    shovel = Material(id="M002", name="Pelle", type="outil", quantity=15)
    helmet = Material(id="M003", name="Casque", type="EPI", quantity=40)

    db_session.add_all([cement, shovel, helmet])
    await db_session.commit()

    return {"cement": cement, "shovel": shovel, "helmet": helmet}


@pytest.fixture(autouse=True)
def photo_dir(tmp_path, monkeypatch):
    """Report photos go to a per-test directory"""
    base_dir = tmp_path / "rapports"
    monkeypatch.setattr(photo_storage, "base_dir", str(base_dir))
    return base_dir


@pytest_asyncio.fixture()
async def client(db_session, seed_data):
    """httpx AsyncClient bound to the FastAPI app"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac

    app.dependency_overrides.clear()
