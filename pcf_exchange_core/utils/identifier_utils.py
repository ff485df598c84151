"""
Company and product identifier validation and URN conversion.

The syntax rules per scheme are fixed by the partner data model and are
applied exactly; free-form schemes accept any code.
"""

import re
from typing import Dict, Iterable, List, Optional, Tuple

from ..constants import IdentifierScheme

_PATTERNS: Dict[IdentifierScheme, Tuple[re.Pattern, ...]] = {
    IdentifierScheme.UUID: (
        re.compile(r"^[0-9A-F]{8}-[0-9A-F]{4}-[1-4][0-9A-F]{3}-[0-9A-F]{4}-[0-9A-F]{12}$"),
        re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-4][0-9a-f]{3}-[0-9a-f]{4}-[0-9a-f]{12}$"),
    ),
    IdentifierScheme.SGTIN: (re.compile(r"^[0-9]{13,14}[0-9]{1,20}$"),),
    IdentifierScheme.SGLN: (re.compile(r"^[0-9]{13}[0-9]{1,20}$"),),
    IdentifierScheme.LEI: (re.compile(r"^[0-9A-Z]{20}$"),),
}

_FREE_FORM = (IdentifierScheme.SUPPLIER_SPECIFIC, IdentifierScheme.BUYER_SPECIFIC)

COMPANY_URN_PREFIXES: Dict[IdentifierScheme, str] = {
    IdentifierScheme.UUID: "urn:uuid:",
    IdentifierScheme.SGLN: "urn:epc:id:sgln:",
    IdentifierScheme.LEI: "urn:lei:",
    IdentifierScheme.SUPPLIER_SPECIFIC: "urn:pathfinder:company:customcode:vendor-assigned:",
    IdentifierScheme.BUYER_SPECIFIC: "urn:pathfinder:company:customcode:buyer-assigned:",
}

PRODUCT_URN_PREFIXES: Dict[IdentifierScheme, str] = {
    IdentifierScheme.UUID: "urn:uuid:",
    IdentifierScheme.SGTIN: "urn:epc:id:sgtin:",
    IdentifierScheme.SUPPLIER_SPECIFIC: "urn:pathfinder:product:customcode:vendor-assigned:",
    IdentifierScheme.BUYER_SPECIFIC: "urn:pathfinder:product:customcode:buyer-assigned:",
}


def _as_scheme(scheme) -> Optional[IdentifierScheme]:
    if isinstance(scheme, IdentifierScheme):
        return scheme
    try:
        return IdentifierScheme(scheme)
    except (TypeError, ValueError):
        return None


def validate(scheme, code) -> bool:
    """
    Validate an identifier code against its declared scheme.

    Unknown schemes and non-string codes are invalid; this never raises.
    UUIDs must be entirely upper- or entirely lower-case hex with a version
    nibble between 1 and 4.
    """
    resolved = _as_scheme(scheme)
    if resolved is None or not isinstance(code, str):
        return False
    if resolved in _FREE_FORM:
        return True
    return any(pattern.fullmatch(code) for pattern in _PATTERNS[resolved])


def _to_urn(prefixes: Dict[IdentifierScheme, str], scheme, code: str) -> Optional[str]:
    resolved = _as_scheme(scheme)
    prefix = prefixes.get(resolved) if resolved else None
    return f"{prefix}{code}" if prefix else None


def _parse_urns(
    prefixes: Dict[IdentifierScheme, str], urns: Iterable[str]
) -> List[Tuple[IdentifierScheme, str]]:
    results = []
    for urn in urns:
        if not isinstance(urn, str):
            continue
        for scheme, prefix in prefixes.items():
            if urn.startswith(prefix):
                results.append((scheme, urn[len(prefix):]))
                break
    return results


def to_company_urn(scheme, code: str) -> Optional[str]:
    """Render a company identifier as a URN, or None for schemes without one."""
    return _to_urn(COMPANY_URN_PREFIXES, scheme, code)


def to_product_urn(scheme, code: str) -> Optional[str]:
    """Render a product identifier as a URN, or None for schemes without one."""
    return _to_urn(PRODUCT_URN_PREFIXES, scheme, code)


def parse_company_urns(urns: Iterable[str]) -> List[Tuple[IdentifierScheme, str]]:
    """Parse company URNs into (scheme, code) pairs, dropping unknown ones."""
    return _parse_urns(COMPANY_URN_PREFIXES, urns)


def parse_product_urns(urns: Iterable[str]) -> List[Tuple[IdentifierScheme, str]]:
    """Parse product URNs into (scheme, code) pairs, dropping unknown ones."""
    return _parse_urns(PRODUCT_URN_PREFIXES, urns)
