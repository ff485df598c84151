"""
Data source orchestration.

Top-level entry point for the exchange: manages the data source registry,
keeps the token cache consistent with it, and synchronizes every data
source concurrently. Each source runs in its own task and its failure is
recorded in its own result; nothing is shared across sources except the
footprint store.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..config import AppConfig, get_config
from ..constants import OperationStatus, SaveAction
from ..context.operation_context import operation
from ..exceptions import BaseError, ErrorCode, SyncCancelledError, ValidationError
from ..processing.filter_parser import FetchFilter
from ..processing.footprint_tree import BreakdownIssue
from ..schemas.data_source_schemas import DataSource, DataSourceRegistration, DataSourceUpdate
from ..schemas.event_schemas import CloudEvent, FootprintNotification, IngestResult
from ..utils.http_client import HttpClient
from ..utils.logger import get_logger
from .credential_service import CredentialStore, requires_reauthentication
from .event_ingestor import EventIngestor
from .footprint_fetcher import FootprintFetcher
from .footprint_store import FootprintStore
from .token_service import TokenManager


class SyncResult(BaseModel):
    """Outcome of synchronizing one data source."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data_source_id: str
    status: OperationStatus
    fetched: int = 0
    stored: int = 0
    stale: int = 0
    pages: int = 0
    item_errors: List[ValidationError] = Field(default_factory=list)
    breakdown_issues: List[BreakdownIssue] = Field(default_factory=list)
    error: Optional[BaseError] = None
    next_cursor: Optional[str] = Field(None, description="Where to resume after a failure")
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == OperationStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        """Plain summary for reports; errors use their public dict form."""
        return {
            "data_source_id": self.data_source_id,
            "status": self.status.value,
            "fetched": self.fetched,
            "stored": self.stored,
            "stale": self.stale,
            "pages": self.pages,
            "item_errors": [error.to_dict()["error"] for error in self.item_errors],
            "breakdown_issues": [issue.model_dump(mode="json") for issue in self.breakdown_issues],
            "error": self.error.to_dict()["error"] if self.error else None,
            "next_cursor": self.next_cursor,
            "duration_ms": self.duration_ms,
        }


class DataSourceOrchestrator:
    """
    Coordinates the credential store, token manager, fetcher and store.

    Collaborators not passed in are built from the global configuration
    with in-memory repositories.
    """

    def __init__(
        self,
        credential_store: Optional[CredentialStore] = None,
        token_manager: Optional[TokenManager] = None,
        fetcher: Optional[FootprintFetcher] = None,
        store: Optional[FootprintStore] = None,
        http_client: Optional[HttpClient] = None,
        config: Optional[AppConfig] = None,
        event_ingestor: Optional[EventIngestor] = None,
    ):
        self.config = config or get_config()
        self.credential_store = credential_store or CredentialStore()
        self.http_client = http_client or HttpClient(self.config.http)
        self.token_manager = token_manager or TokenManager(
            self.credential_store, self.http_client, self.config.token
        )
        self.fetcher = fetcher or FootprintFetcher(
            self.credential_store, self.token_manager, self.http_client, self.config.fetch
        )
        self.store = store or FootprintStore(config=self.config.validation)
        self.event_ingestor = event_ingestor or EventIngestor(
            self.credential_store, self.fetcher, self.store
        )
        self._cancel_events: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()
        self.logger = get_logger()

    # Registry

    @operation()
    def register(self, registration: Union[DataSourceRegistration, dict]) -> DataSource:
        return self.credential_store.register(registration)

    @operation()
    def update(self, data_source_id: str, update: Union[DataSourceUpdate, dict]) -> DataSource:
        """
        Update a data source; a cached token is dropped when credentials or
        the Authenticate URL change.
        """
        before = self.credential_store.get(data_source_id)
        after = self.credential_store.update(data_source_id, update)
        if requires_reauthentication(before, after):
            self.token_manager.invalidate(data_source_id)
        return after

    @operation()
    def remove(self, data_source_id: str) -> None:
        """
        Remove a data source, its token cache entry first.

        Raises:
            NotFoundError: If the data source does not exist
        """
        self.credential_store.get(data_source_id)
        self.cancel(data_source_id)
        self.token_manager.forget(data_source_id)
        self.credential_store.delete(data_source_id)

    def get_data_source(self, data_source_id: str) -> DataSource:
        return self.credential_store.get(data_source_id)

    def list_data_sources(self) -> List[DataSource]:
        return self.credential_store.list()

    # Synchronization

    @operation()
    def sync_all(self, fetch_filter: Optional[FetchFilter] = None) -> Dict[str, SyncResult]:
        """
        Synchronize every registered data source.

        Returns:
            Results keyed by data source id; a failed source never prevents
            the others from completing
        """
        data_sources = self.credential_store.list()
        results: Dict[str, SyncResult] = {}
        if not data_sources:
            return results

        workers = min(self.config.sync.max_workers, len(data_sources))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pcf-sync") as executor:
            futures = {
                executor.submit(self.sync_one, data_source.data_source_id, fetch_filter): data_source.data_source_id
                for data_source in data_sources
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        self.logger.info(
            "Synchronization finished",
            extra={
                "data_sources": len(results),
                "succeeded": sum(1 for result in results.values() if result.ok),
                "fetched": sum(result.fetched for result in results.values()),
            },
        )
        return results

    def sync_one(
        self,
        data_source_id: str,
        fetch_filter: Optional[FetchFilter] = None,
        cursor: Optional[str] = None,
    ) -> SyncResult:
        """
        Synchronize one data source into the store.

        Never raises: failures are returned in the result. Pass the
        next_cursor of a failed result as cursor to resume.
        """
        cancel_event = threading.Event()
        with self._lock:
            self._cancel_events[data_source_id] = cancel_event
        timer = None
        if self.config.sync.source_timeout_seconds:
            timer = threading.Timer(self.config.sync.source_timeout_seconds, cancel_event.set)
            timer.daemon = True
            timer.start()

        started = time.perf_counter()
        stream = None
        stored = stale = 0
        store_errors: List[ValidationError] = []
        breakdown_issues: List[BreakdownIssue] = []
        status, error = OperationStatus.SUCCESS, None
        try:
            stream = self.fetcher.fetch_all(data_source_id, fetch_filter, cursor, cancel_event)
            for footprint in stream:
                try:
                    saved = self.store.save(footprint)
                except ValidationError as e:
                    store_errors.append(e)
                    continue
                if saved.action == SaveAction.STALE:
                    stale += 1
                else:
                    stored += 1
                breakdown_issues.extend(saved.issues)
        except SyncCancelledError as e:
            status, error = OperationStatus.CANCELLED, e
        except BaseError as e:
            status, error = OperationStatus.ERROR, e
        except Exception as e:
            status = OperationStatus.ERROR
            error = BaseError(
                f"Unexpected failure synchronizing {data_source_id}",
                ErrorCode.INTERNAL_ERROR,
                cause=e,
                data_source_id=data_source_id,
            )
        finally:
            if timer is not None:
                timer.cancel()
            with self._lock:
                if self._cancel_events.get(data_source_id) is cancel_event:
                    del self._cancel_events[data_source_id]

        result = SyncResult(
            data_source_id=data_source_id,
            status=status,
            fetched=stream.count if stream else 0,
            stored=stored,
            stale=stale,
            pages=stream.pages_fetched if stream else 0,
            item_errors=(stream.errors if stream else []) + store_errors,
            breakdown_issues=breakdown_issues,
            error=error,
            next_cursor=stream.next_cursor if stream and error is not None else None,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        self.logger.info(
            "Data source synchronized",
            extra={
                "data_source_id": data_source_id,
                "status": status.value,
                "fetched": result.fetched,
                "stored": stored,
                "item_errors": len(result.item_errors),
                "error_code": error.error_code.value if error else None,
            },
        )
        return result

    def cancel(self, data_source_id: str) -> bool:
        """Stop a running sync of one data source before its next page."""
        with self._lock:
            cancel_event = self._cancel_events.get(data_source_id)
        if cancel_event is None:
            return False
        cancel_event.set()
        self.logger.info("Synchronization cancel requested", extra={"data_source_id": data_source_id})
        return True

    # Events

    def ingest(self, data_source_id: str, event: Union[FootprintNotification, dict]) -> IngestResult:
        return self.event_ingestor.ingest(data_source_id, event)

    def ingest_cloud_event(
        self, event: Union[CloudEvent, dict], data_source_id: Optional[str] = None
    ) -> List[IngestResult]:
        return self.event_ingestor.ingest_cloud_event(event, data_source_id)

    def close(self) -> None:
        self.event_ingestor.shutdown()
