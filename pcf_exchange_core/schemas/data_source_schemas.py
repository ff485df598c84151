"""
Pydantic schemas for partner data sources.

A data source carries its credentials and the action endpoints used to talk
to the partner. The record returned to callers never includes the secret.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..constants import ActionKind, DataSourceType


class WireModel(BaseModel):
    """Base for schemas exchanged with callers using camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        hide_input_in_errors=True,
    )


class Endpoint(WireModel):
    """One action URL of a data source."""

    type: ActionKind = Field(..., description="Action served by this URL")
    url: str = Field(..., min_length=1, description="Absolute action URL")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        return _check_url(v)


def _check_url(url: str) -> str:
    """Only http(s) URLs are callable."""
    if not (url.startswith("https://") or url.startswith("http://")):
        raise ValueError("Endpoint URL must start with http:// or https://")
    return url


def _ensure_unique_kinds(endpoints: List[Endpoint]) -> List[Endpoint]:
    seen = set()
    for endpoint in endpoints:
        if endpoint.type in seen:
            raise ValueError(f"Duplicate endpoint for action {endpoint.type.value}")
        seen.add(endpoint.type)
    return endpoints


class ConvenienceEndpointFields(WireModel):
    """Per-action URL shortcuts accepted on registration and update."""

    authenticate_url: Optional[str] = Field(None, description="Authenticate action URL")
    footprints_url: Optional[str] = Field(None, description="GetFootprints action URL")
    events_url: Optional[str] = Field(None, description="UpdateEvent action URL")

    @field_validator("authenticate_url", "footprints_url", "events_url")
    @classmethod
    def validate_urls(cls, v):
        return _check_url(v) if v is not None else v

    def convenience_endpoints(self) -> List[Endpoint]:
        """Endpoints for the shortcut fields that were supplied, in action order."""
        supplied = (
            (ActionKind.AUTHENTICATE, self.authenticate_url),
            (ActionKind.GET_FOOTPRINTS, self.footprints_url),
            (ActionKind.UPDATE_EVENT, self.events_url),
        )
        return [Endpoint(type=kind, url=url) for kind, url in supplied if url is not None]


class DataSourceRegistration(ConvenienceEndpointFields):
    """Request to register a new data source."""

    data_source_name: str = Field(..., min_length=1, max_length=255)
    data_source_type: DataSourceType = Field(default=DataSourceType.PATHFINDER)
    user_name: str = Field(..., min_length=1, description="Client id used to authenticate")
    password: SecretStr = Field(..., description="Client secret used to authenticate")
    endpoints: Optional[List[Endpoint]] = Field(None, description="Explicit endpoint set")

    @field_validator("endpoints")
    @classmethod
    def validate_endpoints(cls, v):
        return _ensure_unique_kinds(v) if v is not None else v


class DataSourceUpdate(ConvenienceEndpointFields):
    """
    Request to update a data source.

    Absent fields are left untouched. A supplied endpoints list replaces the
    whole set before the convenience fields are applied on top of it.
    """

    data_source_name: Optional[str] = Field(None, min_length=1, max_length=255)
    user_name: Optional[str] = Field(None, min_length=1)
    password: Optional[SecretStr] = None
    endpoints: Optional[List[Endpoint]] = None

    @field_validator("endpoints")
    @classmethod
    def validate_endpoints(cls, v):
        return _ensure_unique_kinds(v) if v is not None else v


class DataSource(WireModel):
    """A registered partner system."""

    data_source_id: str = Field(..., description="Opaque identifier")
    data_source_name: str = Field(..., min_length=1)
    data_source_type: DataSourceType = Field(default=DataSourceType.PATHFINDER)
    user_name: str = Field(..., min_length=1)
    password: SecretStr
    endpoints: List[Endpoint] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_endpoints(self):
        _ensure_unique_kinds(self.endpoints)
        return self

    def endpoint(self, kind: ActionKind) -> Optional[Endpoint]:
        """The endpoint registered for an action, if any."""
        for endpoint in self.endpoints:
            if endpoint.type == kind:
                return endpoint
        return None

    def credentials(self) -> tuple:
        """Basic credentials for the Authenticate action."""
        return self.user_name, self.password.get_secret_value()

    def to_record(self) -> Dict[str, Any]:
        """Caller-facing record without credentials."""
        return {
            "dataSourceId": self.data_source_id,
            "dataSourceName": self.data_source_name,
            "dataSourceType": self.data_source_type.value,
            "userName": self.user_name,
            "endpoints": [
                {"type": endpoint.type.value, "url": endpoint.url} for endpoint in self.endpoints
            ],
        }


def upsert_endpoints(existing: List[Endpoint], updates: List[Endpoint]) -> List[Endpoint]:
    """
    Apply endpoint upserts by action kind.

    Existing entries keep their position when replaced; new kinds are appended.
    Kinds not mentioned in updates are left untouched.
    """
    result = [endpoint.model_copy() for endpoint in existing]
    for update in updates:
        for index, endpoint in enumerate(result):
            if endpoint.type == update.type:
                result[index] = update.model_copy()
                break
        else:
            result.append(update.model_copy())
    return result
