import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from reviewservice.config import Settings
from reviewservice.database import Base, DatabaseManager, ProductRepository
from reviewservice.policies import ImmediateCountingPolicy, ModerationGatePolicy
from reviewservice.service import ReviewService


@pytest_asyncio.fixture
async def test_db_manager():
    """Create a test database manager with in-memory SQLite."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    db_manager = DatabaseManager(Settings(database_url="sqlite+aiosqlite:///:memory:"))
    db_manager.engine = engine
    db_manager.async_session = async_session

    yield db_manager

    await engine.dispose()


@pytest_asyncio.fixture
async def create_product(test_db_manager):
    """Return a coroutine that inserts a catalogue product."""
    async def _create(product_id, average_rating=0.0, ratings_count=0, **fields):
        async with test_db_manager.get_session() as session:
            product = await ProductRepository(session).create(
                product_id,
                average_rating=average_rating,
                ratings_count=ratings_count,
                **fields
            )
            return product.to_dict()

    return _create


@pytest_asyncio.fixture
async def moderated_service(test_db_manager):
    return ReviewService(test_db_manager, policy=ModerationGatePolicy())


@pytest_asyncio.fixture
async def immediate_service(test_db_manager):
    return ReviewService(test_db_manager, policy=ImmediateCountingPolicy())
