"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from api.connections import get_dispatcher, get_registry
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    account,
    connection,
    stale_connection,
    user,
)
from tests.fixtures.mocks import (
    MockBankingProvider,
    MockProviderRegistry,
    RecordingDispatcher,
    SAMPLE_PROVIDER_ACCOUNTS,
)


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(name="dispatcher")
def dispatcher_fixture():
    """A dispatcher that records scheduled jobs."""
    return RecordingDispatcher()


@pytest.fixture(name="mock_provider")
def mock_provider_fixture():
    """A healthy mock Plaid provider with sample accounts."""
    return MockBankingProvider(accounts=SAMPLE_PROVIDER_ACCOUNTS)


@pytest.fixture(name="mock_provider_registry")
def mock_provider_registry_fixture(mock_provider):
    """Create a mock provider registry with the mock Plaid provider."""
    return MockProviderRegistry({"plaid": mock_provider})


@pytest.fixture(name="client")
def client_fixture(db, dispatcher, mock_provider_registry):
    """Create a test client with the test database."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_registry():
        return mock_provider_registry

    def override_get_dispatcher():
        return dispatcher

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = override_get_registry
    app.dependency_overrides[get_dispatcher] = override_get_dispatcher
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
