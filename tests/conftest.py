"""
Pytest configuration and fixtures for the Collections Follow-up Service.
"""
import asyncio
from datetime import timedelta
from typing import Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from collections_service.core.config import Settings, get_settings
from collections_service.core.dependencies import get_repository
from collections_service.core.permissions import AuthenticatedUser, Role
from collections_service.database import InMemoryCollectionsRepository
from collections_service.main import app
from collections_service.utils.clock import utc_now
from tests.seed_data import (
    ADMIN_ID,
    MANAGER_ID,
    OTHER_SUPERVISOR_ID,
    SUPERVISOR_ID,
    identity,
    seed_repository,
)


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the local environment."""
    return Settings(_env_file=None, database_url=None)


@pytest_asyncio.fixture
async def repository() -> InMemoryCollectionsRepository:
    """Seeded in-memory repository for service tests."""
    return await seed_repository(InMemoryCollectionsRepository())


@pytest.fixture
def manager() -> AuthenticatedUser:
    return AuthenticatedUser(id=MANAGER_ID, role=Role.MANAGER)


@pytest.fixture
def supervisor() -> AuthenticatedUser:
    return AuthenticatedUser(id=SUPERVISOR_ID, role=Role.SUPERVISOR)


@pytest.fixture
def other_supervisor() -> AuthenticatedUser:
    return AuthenticatedUser(id=OTHER_SUPERVISOR_ID, role=Role.SUPERVISOR)


@pytest.fixture
def administrator() -> AuthenticatedUser:
    return AuthenticatedUser(id=ADMIN_ID, role=Role.ADMINISTRATOR)


@pytest.fixture
def tomorrow():
    return utc_now() + timedelta(days=1)


@pytest.fixture
def api_repository() -> InMemoryCollectionsRepository:
    """Seeded repository for API tests, built outside any running loop."""
    return asyncio.run(seed_repository(InMemoryCollectionsRepository()))


@pytest.fixture
def client(api_repository, settings) -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.

    The repository and settings dependencies are replaced so every test starts
    from the same seeded store.
    """
    app.dependency_overrides[get_repository] = lambda: api_repository
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def api_prefix(settings) -> str:
    """Get the API prefix from settings."""
    return settings.api_prefix


@pytest.fixture
def manager_headers() -> dict:
    return identity(MANAGER_ID, "manager")


@pytest.fixture
def supervisor_headers() -> dict:
    return identity(SUPERVISOR_ID, "supervisor")


@pytest.fixture
def admin_headers() -> dict:
    return identity(ADMIN_ID, "administrator")
