import logging
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from google.cloud import secretmanager

from ..config import Settings, get_settings
from ..errors import StorageError
from .models import Base

logger = logging.getLogger(__name__)

LOCAL_DATABASE_URL = "sqlite+aiosqlite:///./reviews.db"


class DatabaseManager:
    """Database manager using SQLAlchemy ORM.

    Connects to ``DATABASE_URL`` when it is set. Otherwise, when
    ``CLOUDSQL_HOST`` is set, builds a PostgreSQL URL whose password comes
    from Google Secret Manager. With neither, falls back to a local SQLite
    file.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database engine and session factory."""
        database_url = await self._resolve_database_url()

        engine_kwargs = {"echo": self.settings.sql_echo}
        if database_url.startswith("postgresql"):
            engine_kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)

        self.engine = create_async_engine(database_url, **engine_kwargs)

        # Create session factory
        self.async_session = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        logger.info(f"Database engine ready for {self.engine.url.render_as_string(hide_password=True)}")

        # Create tables if they don't exist
        await self._create_tables()

    async def close(self):
        """Close the database engine."""
        if self.engine:
            await self.engine.dispose()

    async def _resolve_database_url(self) -> str:
        if self.settings.database_url:
            return self.settings.database_url

        if not self.settings.cloudsql_host:
            logger.info(f"Neither DATABASE_URL nor CLOUDSQL_HOST set - using {LOCAL_DATABASE_URL}")
            return LOCAL_DATABASE_URL

        logger.info("Initializing Cloud SQL connection for reviews...")

        # Get database password from Secret Manager
        password = await self._get_secret_payload(
            self.settings.project_id,
            self.settings.db_secret_name,
            "latest"
        )
        return (
            f"postgresql+asyncpg://{self.settings.db_user}:{password}"
            f"@{self.settings.cloudsql_host}/{self.settings.db_name}"
        )

    async def _get_secret_payload(self, project_id: str, secret_id: str, version: str) -> str:
        """Retrieve secret from Google Secret Manager."""
        logger.info(f"Attempting to connect to Secret Manager for project={project_id}, secret={secret_id}")

        client = secretmanager.SecretManagerServiceClient()
        name = f"projects/{project_id}/secrets/{secret_id}/versions/{version}"

        response = client.access_secret_version(request={"name": name})
        logger.info("Successfully retrieved secret from Secret Manager")

        return response.payload.data.decode("UTF-8").strip()

    async def _create_tables(self):
        """Create database tables if they don't exist."""
        if not self.engine:
            return

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database tables created/verified")

    @asynccontextmanager
    async def get_session(self):
        """Get a session whose work commits on exit and rolls back on error."""
        if not self.async_session:
            raise StorageError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
