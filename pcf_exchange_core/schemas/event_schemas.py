"""
Schemas for inbound partner events.

Partners push CloudEvents to the UpdateEvent action. Each event names one or
more footprints by data id and, optionally, version; it is a freshness
signal only and never carries authoritative footprint fields.
"""

from concurrent.futures import Future
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..constants import EventType, IngestAction
from ..exceptions import ValidationError


class CloudEvent(BaseModel):
    """Envelope of an inbound event."""

    model_config = ConfigDict(extra="allow")

    specversion: Optional[str] = None
    id: Optional[str] = None
    type: str = Field(..., min_length=1)
    source: Optional[str] = None
    time: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @property
    def event_type(self) -> Optional[EventType]:
        try:
            return EventType(self.type)
        except ValueError:
            return None


class FootprintNotification(BaseModel):
    """A single "footprint changed" signal."""

    data_id: str = Field(..., min_length=1)
    version: Optional[int] = Field(None, ge=0)
    event_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any, event_id: Optional[str] = None) -> "FootprintNotification":
        """
        Build a notification from a bare {dataId, version} payload.

        Raises:
            ValidationError: If the payload has no data id or a bad version
        """
        if not isinstance(payload, dict):
            raise ValidationError("Event payload must be an object", field="event")
        data_id = payload.get("dataId", payload.get("id"))
        if not isinstance(data_id, str) or not data_id:
            raise ValidationError("Event does not reference a dataId", field="dataId")
        version = payload.get("version")
        if version is not None and (isinstance(version, bool) or not isinstance(version, int) or version < 0):
            raise ValidationError("Event version must be a non-negative integer", field="version")
        return cls(data_id=data_id, version=version, event_id=event_id)

    @classmethod
    def from_cloud_event(cls, event: CloudEvent) -> List["FootprintNotification"]:
        """
        Expand a footprint CloudEvent into notifications.

        Published events list ids in data.pfIds and carry no version; Updated
        events may carry data.id and data.version.

        Raises:
            ValidationError: If the event names no footprint
        """
        data = event.data or {}
        if event.event_type == EventType.FOOTPRINT_PUBLISHED:
            pf_ids = data.get("pfIds")
            if not isinstance(pf_ids, list) or not pf_ids:
                raise ValidationError("Event data does not contain pfIds", field="data.pfIds")
            notifications = []
            for pf_id in pf_ids:
                if not isinstance(pf_id, str) or not pf_id:
                    raise ValidationError("Event pfIds must be non-empty strings", field="data.pfIds")
                notifications.append(cls(data_id=pf_id, event_id=event.id))
            return notifications
        return [cls.from_payload(data, event_id=event.id)]


class IngestResult(BaseModel):
    """Outcome of ingesting one notification."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data_id: Optional[str] = None
    action: IngestAction
    event_version: Optional[int] = None
    local_version: Optional[int] = None
    reason: Optional[str] = None
    fetch: Optional[Future] = Field(default=None, exclude=True)

    @classmethod
    def fetch_scheduled(
        cls, notification: FootprintNotification, local_version: Optional[int], fetch: Future
    ) -> "IngestResult":
        return cls(
            data_id=notification.data_id,
            action=IngestAction.FETCH_SCHEDULED,
            event_version=notification.version,
            local_version=local_version,
            fetch=fetch,
        )

    @classmethod
    def no_op(cls, notification: FootprintNotification, local_version: int) -> "IngestResult":
        return cls(
            data_id=notification.data_id,
            action=IngestAction.NO_OP,
            event_version=notification.version,
            local_version=local_version,
            reason="Local footprint is as new or newer",
        )

    @classmethod
    def ignored(cls, event_type: str) -> "IngestResult":
        return cls(action=IngestAction.IGNORED, reason=f"Event type {event_type} is not handled")

    def wait(self, timeout: Optional[float] = None) -> Any:
        """Block until the scheduled fetch finishes and return its result."""
        if self.fetch is None:
            return None
        return self.fetch.result(timeout=timeout)
