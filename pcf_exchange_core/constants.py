"""
Constants and enums for the PCF Exchange Core.

This module centralizes the protocol strings, environment variable names and
numeric limits used throughout the package so that the wire contract with
partners is spelled out in exactly one place.
"""

from enum import Enum


class ActionKind(str, Enum):
    """Action endpoints a data source may expose."""

    AUTHENTICATE = "Authenticate"
    GET_FOOTPRINTS = "GetFootprints"
    UPDATE_EVENT = "UpdateEvent"


class DataSourceType(str, Enum):
    """Data source variants."""

    PATHFINDER = "Pathfinder"


class FootprintStatus(str, Enum):
    """Lifecycle status of a product footprint."""

    ACTIVE = "Active"
    DEPRECATED = "Deprecated"


class IdentifierScheme(str, Enum):
    """Identifier schemes accepted for companies and products."""

    UUID = "UUID"
    SGTIN = "SGTIN"
    SGLN = "SGLN"
    LEI = "LEI"
    SUPPLIER_SPECIFIC = "SupplierSpecific"
    BUYER_SPECIFIC = "BuyerSpecific"


class EventType(str, Enum):
    """CloudEvent types understood by the event ingestor."""

    FOOTPRINT_PUBLISHED = "org.wbcsd.pathfinder.ProductFootprint.Published.v1"
    FOOTPRINT_UPDATED = "org.wbcsd.pathfinder.ProductFootprint.Updated.v1"
    REQUEST_CREATED = "org.wbcsd.pathfinder.ProductFootprintRequest.Created.v1"
    REQUEST_FULFILLED = "org.wbcsd.pathfinder.ProductFootprintRequest.Fulfilled.v1"
    REQUEST_REJECTED = "org.wbcsd.pathfinder.ProductFootprintRequest.Rejected.v1"


class IngestAction(str, Enum):
    """Outcome of ingesting one event notification."""

    FETCH_SCHEDULED = "fetch_scheduled"
    NO_OP = "no_op"
    IGNORED = "ignored"


class SaveAction(str, Enum):
    """Outcome of writing one footprint to the store."""

    CREATED = "created"
    REPLACED = "replaced"
    STALE = "stale"


class OperationStatus(str, Enum):
    """Status values for operations."""

    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class LogLevel(str, Enum):
    """Standard logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EnvironmentVariable(str, Enum):
    """Standard environment variable names."""

    DATABASE_URL = "DATABASE_URL"
    APP_ENV = "APP_ENV"
    LOG_LEVEL = "LOG_LEVEL"
    DEBUG = "DEBUG"
    HTTP_TIMEOUT = "PCF_HTTP_TIMEOUT"
    VERIFY_SSL = "PCF_VERIFY_SSL"
    TOKEN_REFRESH_MARGIN = "PCF_TOKEN_REFRESH_MARGIN"
    SYNC_MAX_WORKERS = "PCF_SYNC_MAX_WORKERS"
    ENCRYPTION_KEY = "PCF_ENCRYPTION_KEY"


class LogContextKey(str, Enum):
    """Standard keys for logging context."""

    OPERATION_ID = "operation_id"
    CORRELATION_ID = "correlation_id"
    DATA_SOURCE_ID = "data_source_id"
    DATA_ID = "data_id"
    DURATION_MS = "duration_ms"
    STATUS = "status"
    ERROR_CODE = "error_code"
    SOURCE_MODULE = "source_module"


# Wire-level constants of the partner protocol
class Protocol:
    """Fixed strings of the partner action protocol."""

    SPEC_VERSION = "2.2.0"
    CLOUDEVENTS_SPEC_VERSION = "1.0"
    GRANT_TYPE = "client_credentials"
    FILTER_PARAM = "$filter"
    LIMIT_PARAM = "limit"
    NEXT_LINK_REL = "next"
    TRACEABILITY_EXTENSION_SCHEMA = (
        "https://mill6-plat6aux.github.io/traceability-extension/schema.json"
    )


class Limits:
    """System limits and thresholds."""

    DEFAULT_PAGE_LIMIT = 100
    MAX_PAGES = 1000
    DEFAULT_SYNC_WORKERS = 4
    MAX_SYNC_WORKERS = 64


class Timeouts:
    """Timeout values in seconds."""

    EXTERNAL_API_CALL = 30
    TOKEN_REFRESH_MARGIN = 60
    DEFAULT_TOKEN_LIFETIME = 600
    TOKEN_WAIT = 60
