"""
Pytest configuration and fixtures.
"""
import pytest
import pytest_asyncio

from sso_service.core.config import Settings
from sso_service.core.container import ServiceContainer

TEST_PASSWORD = "Corr3ct!Horse"
REDIRECT_URI = "https://app.example.com/callback"


@pytest.fixture(scope="session")
def key_dir(tmp_path_factory):
    """One RSA key pair for the whole run; generated by the first container"""
    return tmp_path_factory.mktemp("keys")


@pytest.fixture
def settings(tmp_path, key_dir):
    return Settings(
        environment="testing",
        db_url=f"sqlite:///{tmp_path / 'sso.db'}",
        db_timeout=5.0,
        private_key_path=str(key_dir / "private_key.pem"),
        public_key_path=str(key_dir / "public_key.pem"),
        bcrypt_rounds=4,
        internal_api_key="test-internal-key",
        enable_rate_limiting=False,
    )


@pytest_asyncio.fixture
async def container(settings):
    """Started service container backed by a file database in tmp_path"""
    container = ServiceContainer(settings)
    await container.startup()
    yield container
    await container.shutdown()


@pytest_asyncio.fixture
async def db(container):
    async with container.database.session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def user(container, db):
    return await container.users.create_user(db, "alice@example.com", TEST_PASSWORD, "Alice", "Liddell")


@pytest_asyncio.fixture
async def oauth_client(container, db, user):
    """Registered confidential client; returns (client, plaintext secret)"""
    return await container.oauth2.create_client(
        db,
        owner_id=user.id,
        name="Demo App",
        redirect_uris=[REDIRECT_URI],
        grant_types=["authorization_code", "refresh_token"],
        scopes=["openid", "profile", "email"],
    )
