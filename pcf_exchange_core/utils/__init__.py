"""Utility modules for the PCF Exchange Core."""

from .http_client import HttpClient, HttpResponse
from .identifier_utils import (
    parse_company_urns,
    parse_product_urns,
    to_company_urn,
    to_product_urn,
    validate,
)
from .json_utils import EnhancedJSONEncoder, dumps, loads
from .logger import ContextAwareLogger, SecretMaskingFilter, configure_logging, get_logger

__all__ = [
    "ContextAwareLogger",
    "EnhancedJSONEncoder",
    "HttpClient",
    "HttpResponse",
    "SecretMaskingFilter",
    "configure_logging",
    "dumps",
    "get_logger",
    "loads",
    "parse_company_urns",
    "parse_product_urns",
    "to_company_urn",
    "to_product_urn",
    "validate",
]
