"""Test configuration and fixtures."""

import os
from pathlib import Path
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set up test environment variables BEFORE importing app modules
TEST_SECRET = "test-secret-for-testing-32-bytes"
os.environ.setdefault("JWT_SECRET", TEST_SECRET)
os.environ.setdefault("JWT_ISSUER", "credential-service-tests")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from credential_service.cli.keygen import generate_key_pair
from credential_service.core.account_lifecycle import AccountLifecycle
from credential_service.core.key_provider import KeyMaterialProvider
from credential_service.core.password_engine import PasswordHasher
from credential_service.core.token_service import TokenService
from credential_service.core.user_store import SQLAlchemyUserStore
from credential_service.database import Base, get_db
from credential_service.models import User  # noqa: F401 (registers the table)

TEST_ISSUER = "credential-service-tests"
TEST_LIFETIME = 3600
TEST_PASSWORD = "longenough1"


def _write_pair(directory: Path, bits: int = 2048) -> tuple[Path, Path]:
    private_pem, public_pem = generate_key_pair(bits)
    public_path = directory / "jwt_public.pem"
    private_path = directory / "jwt_private.pem"
    public_path.write_bytes(public_pem)
    private_path.write_bytes(private_pem)
    return public_path, private_path


@pytest.fixture(scope="session")
def rsa_key_files(tmp_path_factory) -> tuple[Path, Path]:
    """(public_path, private_path) of a 2048-bit RSA pair shared by the session."""
    return _write_pair(tmp_path_factory.mktemp("keys"))


@pytest.fixture(scope="session")
def other_rsa_key_files(tmp_path_factory) -> tuple[Path, Path]:
    """A second, unrelated RSA pair."""
    return _write_pair(tmp_path_factory.mktemp("other-keys"))


@pytest.fixture
def key_provider(rsa_key_files) -> KeyMaterialProvider:
    public_path, private_path = rsa_key_files
    return KeyMaterialProvider(TEST_SECRET, public_path, private_path)


@pytest.fixture
def token_service(key_provider) -> TokenService:
    return TokenService(key_provider, issuer=TEST_ISSUER, expires_in=TEST_LIFETIME)


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher()


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def store(db_session) -> SQLAlchemyUserStore:
    return SQLAlchemyUserStore(db_session)


@pytest.fixture
def lifecycle(store, token_service, hasher) -> AccountLifecycle:
    return AccountLifecycle(store=store, tokens=token_service, hasher=hasher)


@pytest.fixture
async def registered_user(lifecycle) -> str:
    """Id of an active account a@x.com / TEST_PASSWORD."""
    return await lifecycle.register("a@x.com", TEST_PASSWORD, "A", "B")


@pytest.fixture
def app(db_session, key_provider, token_service):
    """FastAPI app wired to the test database and keys (lifespan not run)."""
    from credential_service.config import Settings
    from credential_service.main import create_app

    application = create_app(Settings())
    application.state.keys = key_provider
    application.state.tokens = token_service

    async def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
