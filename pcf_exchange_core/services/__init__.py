"""Service layer for the data exchange."""

from .credential_service import CredentialStore, requires_reauthentication
from .event_ingestor import EventIngestor
from .footprint_fetcher import FootprintFetcher, FootprintStream
from .footprint_store import FootprintStore, SaveResult
from .orchestrator import DataSourceOrchestrator, SyncResult
from .token_service import TokenManager

__all__ = [
    "CredentialStore",
    "DataSourceOrchestrator",
    "EventIngestor",
    "FootprintFetcher",
    "FootprintStore",
    "FootprintStream",
    "SaveResult",
    "SyncResult",
    "TokenManager",
    "requires_reauthentication",
]
