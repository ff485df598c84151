"""
Credential store for partner data sources.

Holds each data source's endpoint URLs and credentials. There is no network
logic here; callers that cache tokens are responsible for invalidating them
when requires_reauthentication() says the credentials changed.
"""

import threading
import uuid
from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..constants import ActionKind
from ..context.operation_context import operation
from ..exceptions import ValidationError, not_found
from ..repositories.base_repository import DataSourceRepository
from ..repositories.memory_repository import InMemoryDataSourceRepository
from ..schemas.data_source_schemas import (
    DataSource,
    DataSourceRegistration,
    DataSourceUpdate,
    upsert_endpoints,
)
from ..utils.logger import get_logger

M = TypeVar("M", bound=BaseModel)


def coerce_model(model_class: Type[M], value: Any, field: str) -> M:
    """
    Accept a schema instance or its wire dict.

    Raises:
        ValidationError: If the dict does not match the schema
    """
    if isinstance(value, model_class):
        return value
    try:
        return model_class.model_validate(value)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {field}",
            field=field,
            cause=e,
            errors=[
                {"loc": ".".join(str(part) for part in error["loc"]), "msg": error["msg"]}
                for error in e.errors()
            ],
        )


def _normalize_url(url: str) -> str:
    url = url.strip()
    if url.startswith("//"):
        url = "https:" + url
    return url.rstrip("/")


def requires_reauthentication(before: DataSource, after: DataSource) -> bool:
    """Whether a cached token for before is unusable for after."""
    if before.credentials() != after.credentials():
        return True
    old = before.endpoint(ActionKind.AUTHENTICATE)
    new = after.endpoint(ActionKind.AUTHENTICATE)
    return (old.url if old else None) != (new.url if new else None)


class CredentialStore:
    """
    Registry of data sources and their credentials.

    Registration and update accept either schema instances or camelCase
    dicts. Convenience URL fields upsert the endpoint of their action kind;
    kinds not mentioned are left untouched.
    """

    def __init__(self, repository: Optional[DataSourceRepository] = None):
        self.repository = repository or InMemoryDataSourceRepository()
        self._lock = threading.Lock()
        self.logger = get_logger()

    @operation()
    def register(self, registration: Union[DataSourceRegistration, dict]) -> DataSource:
        """
        Register a new data source.

        Returns:
            The stored data source with its generated id

        Raises:
            ValidationError: If the registration is invalid
        """
        registration = coerce_model(DataSourceRegistration, registration, "registration")
        endpoints = upsert_endpoints(
            registration.endpoints or [], registration.convenience_endpoints()
        )
        data_source = DataSource(
            data_source_id=str(uuid.uuid4()),
            data_source_name=registration.data_source_name,
            data_source_type=registration.data_source_type,
            user_name=registration.user_name,
            password=registration.password,
            endpoints=endpoints,
        )
        stored = self.repository.put(data_source)
        self.logger.info(
            "Data source registered",
            extra={
                "data_source_id": stored.data_source_id,
                "endpoints": [endpoint.type.value for endpoint in stored.endpoints],
            },
        )
        return stored

    @operation()
    def update(self, data_source_id: str, update: Union[DataSourceUpdate, dict]) -> DataSource:
        """
        Update a data source.

        An explicit endpoints list replaces the whole endpoint set; convenience
        URL fields are then upserted on top of it.

        Raises:
            NotFoundError: If the data source does not exist
            ValidationError: If the update is invalid
        """
        update = coerce_model(DataSourceUpdate, update, "update")
        with self._lock:
            current = self.get(data_source_id)
            endpoints = update.endpoints if update.endpoints is not None else current.endpoints
            endpoints = upsert_endpoints(endpoints, update.convenience_endpoints())
            changes = {"endpoints": endpoints}
            if update.data_source_name is not None:
                changes["data_source_name"] = update.data_source_name
            if update.user_name is not None:
                changes["user_name"] = update.user_name
            if update.password is not None:
                changes["password"] = update.password
            try:
                updated = DataSource.model_validate({**dict(current), **changes})
            except PydanticValidationError as e:
                raise ValidationError("Invalid update", field="update", cause=e)
            stored = self.repository.put(updated)

        self.logger.info(
            "Data source updated",
            extra={
                "data_source_id": data_source_id,
                "changed_fields": sorted(update.model_fields_set),
            },
        )
        return stored

    def get(self, data_source_id: str) -> DataSource:
        """
        Raises:
            NotFoundError: If the data source does not exist
        """
        data_source = self.repository.get(data_source_id)
        if data_source is None:
            raise not_found("DataSource", data_source_id=data_source_id)
        return data_source

    def list(self) -> List[DataSource]:
        return self.repository.list()

    @operation()
    def delete(self, data_source_id: str) -> None:
        """
        Raises:
            NotFoundError: If the data source does not exist
        """
        with self._lock:
            if not self.repository.delete(data_source_id):
                raise not_found("DataSource", data_source_id=data_source_id)
        self.logger.info("Data source deleted", extra={"data_source_id": data_source_id})

    def find_by_endpoint_url(self, url: Optional[str]) -> Optional[DataSource]:
        """
        Find the data source owning an endpoint URL.

        Used to attribute inbound events by their source URL. UpdateEvent
        endpoints are preferred over other kinds on the same URL.
        """
        if not url:
            return None
        target = _normalize_url(url)
        fallback = None
        for data_source in self.list():
            for endpoint in data_source.endpoints:
                if _normalize_url(endpoint.url) != target:
                    continue
                if endpoint.type == ActionKind.UPDATE_EVENT:
                    return data_source
                fallback = fallback or data_source
        return fallback
