"""
Shared test fixtures for the PCF exchange core.

This module provides:
- A fresh configuration and logger per test
- Service fixtures wired to FakeHttpClient and in-memory repositories
- An in-memory SQLite database manager
"""

from typing import Any, Dict

import pytest

from pcf_exchange_core.config import (
    AppConfig,
    DatabaseConfig,
    FetchConfig,
    SyncConfig,
    TokenConfig,
    ValidationConfig,
    reset_config,
    set_config,
)
from pcf_exchange_core.db.db_config import DatabaseManager, set_db_manager
from pcf_exchange_core.exceptions import clear_correlation_id
from pcf_exchange_core.services.credential_service import CredentialStore
from pcf_exchange_core.services.footprint_fetcher import FootprintFetcher
from pcf_exchange_core.services.footprint_store import FootprintStore
from pcf_exchange_core.services.orchestrator import DataSourceOrchestrator
from pcf_exchange_core.services.token_service import TokenManager
from pcf_exchange_core.utils.logger import reset_logging
from tests.fixtures.fakes import AUTH_URL, EVENTS_URL, FOOTPRINTS_URL, SECRET, FakeHttpClient


@pytest.fixture(autouse=True)
def fresh_environment():
    """Give every test its own configuration and logger state."""
    set_config(AppConfig())
    reset_logging()
    clear_correlation_id()
    yield
    reset_config()
    reset_logging()
    clear_correlation_id()
    set_db_manager(None)


@pytest.fixture
def http_client() -> FakeHttpClient:
    return FakeHttpClient()


@pytest.fixture
def credential_store() -> CredentialStore:
    return CredentialStore()


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(refresh_margin_seconds=60, default_lifetime_seconds=600, wait_timeout_seconds=5)


@pytest.fixture
def token_manager(credential_store, http_client, token_config) -> TokenManager:
    return TokenManager(credential_store, http_client, token_config)


@pytest.fixture
def footprint_store() -> FootprintStore:
    return FootprintStore(config=ValidationConfig())


@pytest.fixture
def fetcher(credential_store, token_manager, http_client) -> FootprintFetcher:
    return FootprintFetcher(
        credential_store, token_manager, http_client, FetchConfig(page_limit=2, max_pages=10)
    )


@pytest.fixture
def orchestrator(credential_store, token_manager, fetcher, footprint_store, http_client):
    config = AppConfig(sync=SyncConfig(max_workers=3))
    orchestrator = DataSourceOrchestrator(
        credential_store=credential_store,
        token_manager=token_manager,
        fetcher=fetcher,
        store=footprint_store,
        http_client=http_client,
        config=config,
    )
    yield orchestrator
    orchestrator.close()


@pytest.fixture
def registration() -> Dict[str, Any]:
    """Standard registration request in wire form."""
    return {
        "dataSourceName": "Partner Corp",
        "userName": "client-id",
        "password": SECRET,
        "authenticateUrl": AUTH_URL,
        "footprintsUrl": FOOTPRINTS_URL,
        "eventsUrl": EVENTS_URL,
    }


@pytest.fixture
def data_source(credential_store, registration):
    """A registered data source with all three endpoints."""
    return credential_store.register(registration)


@pytest.fixture
def db_manager():
    """In-memory SQLite database with all tables created."""
    manager = DatabaseManager(DatabaseConfig(connection_string="sqlite:///:memory:"))
    manager.create_tables()
    set_db_manager(manager)
    yield manager
    manager.drop_tables()
    manager.close()
