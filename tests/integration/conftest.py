"""PostgreSQL fixtures for the repository integration tests.

One testcontainers instance serves the whole session. The passkey
repositories commit every call, so isolation comes from emptying the
tables around each test rather than from rolled-back transactions.
"""

import os
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

import src.storage.entities  # noqa: F401  registers tables on Base.metadata
from src.storage import SessionFactory, committing_session_factory
from src.storage.models import Base


def _point_at_podman() -> None:
    """Use a rootless Podman socket when no Docker endpoint is configured."""
    if os.environ.get("DOCKER_HOST") or os.path.exists("/var/run/docker.sock"):
        return
    socket = f"/run/user/{os.getuid()}/podman/podman.sock"
    if os.path.exists(socket):
        os.environ["DOCKER_HOST"] = f"unix://{socket}"
        os.environ.setdefault("TESTCONTAINERS_RYUK_DISABLED", "true")


@pytest.fixture(scope="session")
def postgres_url() -> Generator[str, None, None]:
    """Start postgres:16 and yield an asyncpg URL for it."""
    postgres = pytest.importorskip("testcontainers.postgres")
    _point_at_podman()
    try:
        container = postgres.PostgresContainer(
            image="postgres:16-alpine",
            username="latchkey",
            password="latchkey",
            dbname="latchkey_test",
            driver="asyncpg",
        )
        container.start()
    except Exception as e:
        pytest.skip(f"No container runtime for PostgreSQL: {e}")

    try:
        yield container.get_connection_url()
    finally:
        container.stop()


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def integration_engine(postgres_url: str) -> AsyncGenerator[AsyncEngine, None]:
    # Pool sized for the concurrent-consumer tests
    engine = create_async_engine(postgres_url, pool_pre_ping=True, pool_size=10)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


async def _empty_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())


@pytest_asyncio.fixture(loop_scope="session")
async def session_factory(integration_engine: AsyncEngine) -> AsyncGenerator[SessionFactory, None]:
    """Committing session factory bound to the container.

    Every session checks out its own pooled connection, so concurrent
    repository calls race the same way they do in production.
    """
    await _empty_tables(integration_engine)
    yield committing_session_factory(
        async_sessionmaker(bind=integration_engine, expire_on_commit=False, autoflush=False)
    )
    await _empty_tables(integration_engine)

