"""
Validation schemas package.

Local models of data sources, tokens and footprints, plus the wire shapes
of the partner action protocol and its events.
"""

from .data_source_schemas import (
    DataSource,
    DataSourceRegistration,
    DataSourceUpdate,
    Endpoint,
    upsert_endpoints,
)
from .event_schemas import CloudEvent, FootprintNotification, IngestResult
from .footprint_schemas import (
    AccountingStandard,
    AmountUnit,
    Assurance,
    CarbonAccountingRule,
    ChildFootprint,
    DataQualityIndicator,
    FieldState,
    Footprint,
    Identifier,
    InventoryDatabase,
)
from .token_schemas import AuthToken

__all__ = [
    "AccountingStandard",
    "AmountUnit",
    "Assurance",
    "AuthToken",
    "CarbonAccountingRule",
    "ChildFootprint",
    "CloudEvent",
    "DataQualityIndicator",
    "DataSource",
    "DataSourceRegistration",
    "DataSourceUpdate",
    "Endpoint",
    "FieldState",
    "Footprint",
    "FootprintNotification",
    "Identifier",
    "IngestResult",
    "InventoryDatabase",
    "upsert_endpoints",
]
