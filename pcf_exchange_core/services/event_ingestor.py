"""
Inbound event handling.

Events are freshness signals only. An event for an unknown footprint, or
for a newer version than the one stored, schedules a deferred fetch of that
footprint from its data source; an event for a version already held is a
no-op. Event payload fields are never written to the store.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Dict, List, Optional, Tuple, Union

from ..constants import EventType
from ..context.operation_context import operation
from ..exceptions import ValidationError
from ..schemas.event_schemas import CloudEvent, FootprintNotification, IngestResult
from ..utils.logger import get_logger
from .credential_service import CredentialStore, coerce_model
from .footprint_fetcher import FootprintFetcher
from .footprint_store import FootprintStore, SaveResult

HANDLED_EVENT_TYPES = (EventType.FOOTPRINT_PUBLISHED, EventType.FOOTPRINT_UPDATED)


class EventIngestor:
    """
    Reconciles partner events against the local store.

    Fetches run on a worker pool. A fetch for the same footprint that is
    still queued absorbs further events for it instead of queueing a second
    one.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        fetcher: FootprintFetcher,
        store: FootprintStore,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = 2,
    ):
        self.credential_store = credential_store
        self.fetcher = fetcher
        self.store = store
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="pcf-event-fetch"
        )
        self._pending: Dict[Tuple[str, str], Future] = {}
        self._lock = threading.Lock()
        self.logger = get_logger()

    @operation()
    def ingest(
        self, data_source_id: str, event: Union[FootprintNotification, dict]
    ) -> IngestResult:
        """
        Ingest one {dataId, version} notification from a data source.

        Raises:
            ValidationError: If the event does not reference a dataId
            NotFoundError: If the data source does not exist
        """
        if not isinstance(event, FootprintNotification):
            event = FootprintNotification.from_payload(event)
        self.credential_store.get(data_source_id)
        return self._reconcile(data_source_id, event)

    @operation()
    def ingest_cloud_event(
        self, event: Union[CloudEvent, dict], data_source_id: Optional[str] = None
    ) -> List[IngestResult]:
        """
        Ingest a CloudEvent envelope.

        Without data_source_id the event is attributed by matching its source
        against registered endpoint URLs. Event types other than footprint
        published/updated are acknowledged and ignored.

        Raises:
            ValidationError: If the event is malformed or its source is unknown
            NotFoundError: If data_source_id is given but does not exist
        """
        event = coerce_model(CloudEvent, event, "event")
        if event.event_type not in HANDLED_EVENT_TYPES:
            self.logger.info("Event type ignored", extra={"event_type": event.type})
            return [IngestResult.ignored(event.type)]

        if data_source_id is None:
            data_source = self.credential_store.find_by_endpoint_url(event.source)
            if data_source is None:
                raise ValidationError(
                    "Event source does not match a registered data source",
                    field="source",
                    source=event.source,
                )
            data_source_id = data_source.data_source_id
        else:
            self.credential_store.get(data_source_id)

        notifications = FootprintNotification.from_cloud_event(event)
        return [self._reconcile(data_source_id, notification) for notification in notifications]

    def _reconcile(self, data_source_id: str, notification: FootprintNotification) -> IngestResult:
        local_version = self.store.local_version(notification.data_id)
        # An event without a version cannot be ordered, so it always refetches
        if (
            local_version is not None
            and notification.version is not None
            and local_version >= notification.version
        ):
            self.logger.debug(
                "Event already reflected locally",
                extra={
                    "data_source_id": data_source_id,
                    "data_id": notification.data_id,
                    "event_version": notification.version,
                    "local_version": local_version,
                },
            )
            return IngestResult.no_op(notification, local_version)

        fetch = self._schedule_fetch(data_source_id, notification.data_id)
        self.logger.info(
            "Fetch scheduled for event",
            extra={
                "data_source_id": data_source_id,
                "data_id": notification.data_id,
                "event_version": notification.version,
                "local_version": local_version,
            },
        )
        return IngestResult.fetch_scheduled(notification, local_version, fetch)

    def _schedule_fetch(self, data_source_id: str, data_id: str) -> Future:
        key = (data_source_id, data_id)
        with self._lock:
            pending = self._pending.get(key)
            if pending is not None and not pending.running() and not pending.done():
                return pending
            future = self._executor.submit(self._fetch_and_store, data_source_id, data_id)
            self._pending[key] = future
        future.add_done_callback(partial(self._fetch_done, key))
        return future

    def _fetch_and_store(self, data_source_id: str, data_id: str) -> SaveResult:
        footprint = self.fetcher.fetch_one(data_source_id, data_id)
        return self.store.save(footprint)

    def _fetch_done(self, key: Tuple[str, str], future: Future) -> None:
        with self._lock:
            if self._pending.get(key) is future:
                del self._pending[key]
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self.logger.warning(
                "Deferred fetch failed",
                extra={"data_source_id": key[0], "data_id": key[1], "error": str(error)},
            )

    def shutdown(self, wait: bool = True) -> None:
        """Stop the fetch pool if this ingestor created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
