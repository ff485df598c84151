"""
Mapping of partner footprint documents into the local footprint model.

The partner document is checked structurally first; a document that fails
raises ValidationError and is skipped by the caller. Problems limited to
one identifier or one classification entry are returned as issues
alongside the mapped footprint instead.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import ErrorCode, ValidationError
from ..schemas.footprint_schemas import ChildFootprint, Footprint
from ..schemas.pathfinder_schemas import (
    PartialCarbonFootprintSection,
    ProductFootprintDocument,
    traceability_data,
)
from ..utils import identifier_utils
from ..utils.logger import get_logger

DECLARED_UNITS = {
    "liter": "l",
    "kilogram": "kg",
    "cubic meter": "m3",
    "square meter": "m2",
    "kilowatt hour": "kWh",
    "megajoule": "MJ",
    "ton kilometer": "t-km",
}

ACCOUNTING_STANDARDS = {
    "GHG Protocol Product standard": "GHGProtocol",
    "ISO Standard 14067": "ISO14067",
    "ISO Standard 14044": "ISO14044",
}

# pcf.<wire name> -> local field name
PCF_FIELDS = {
    "unitaryProductAmount": "amount",
    "pCfExcludingBiogenic": "carbonFootprint",
    "pCfIncludingBiogenic": "carbonFootprintIncludingBiogenic",
    "fossilGhgEmissions": "fossilEmissions",
    "fossilCarbonContent": "fossilCarbonContent",
    "biogenicCarbonContent": "biogenicCarbonContent",
    "dLucGhgEmissions": "dLucEmissions",
    "landManagementGhgEmissions": "landManagementEmissions",
    "otherBiogenicGhgEmissions": "otherBiogenicEmissions",
    "iLucGhgEmissions": "iLucGhgEmissions",
    "biogenicCarbonWithdrawal": "biogenicRemoval",
    "aircraftGhgEmissions": "aircraftEmissions",
    "packagingGhgEmissions": "packagingGhgEmissions",
    "biogenicAccountingMethodology": "biogenicAccountingStandard",
    "boundaryProcessesDescription": "boundaryProcesses",
    "referencePeriodStart": "measurementStartDate",
    "referencePeriodEnd": "measurementEndDate",
    "geographyRegionOrSubregion": "region",
    "geographyCountry": "country",
    "geographyCountrySubdivision": "subdivision",
    "exemptedEmissionsPercent": "exemptedEmissionsRate",
    "exemptedEmissionsDescription": "exemptedEmissionsReason",
    "allocationRulesDescription": "allocationRules",
    "uncertaintyAssessmentDescription": "uncertaintyAssessment",
    "primaryDataShare": "primaryDataShare",
}

# Top-level wire name -> local field name
DOCUMENT_FIELDS = {
    "id": "dataId",
    "version": "version",
    "status": "status",
    "statusComment": "statusComment",
    "validityPeriodStart": "availableStartDate",
    "validityPeriodEnd": "availableEndDate",
    "companyName": "companyName",
    "productNameCompany": "productNameCompany",
    "productDescription": "productDescription",
    "productCategoryCpc": "productCategoryCpc",
    "comment": "comment",
}

# Fields a breakdown child may assert, by where they sit on the wire
CHILD_DOCUMENT_FIELDS = {
    "id": "dataId",
    "validityPeriodStart": "availableStartDate",
    "validityPeriodEnd": "availableEndDate",
}
CHILD_PCF_FIELDS = {
    "pCfExcludingBiogenic": "carbonFootprint",
    "pCfIncludingBiogenic": "carbonFootprintIncludingBiogenic",
    "referencePeriodStart": "measurementStartDate",
    "referencePeriodEnd": "measurementEndDate",
    "primaryDataShare": "primaryDataShare",
}


def _map_dqi(dqi: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if dqi is None:
        return None
    return {
        "coverage": dqi.get("coveragePercent"),
        "ter": dqi.get("technologicalDQR"),
        "tir": dqi.get("temporalDQR"),
        "ger": dqi.get("geographicalDQR"),
        "completeness": dqi.get("completenessDQR"),
        "reliability": dqi.get("reliabilityDQR"),
    }


def _map_assurance(assurance: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if assurance is None:
        return None
    return {
        "coverage": assurance.get("coverage"),
        "level": assurance.get("level"),
        "boundary": assurance.get("boundary"),
        "providerName": assurance.get("providerName"),
        "updatedDate": assurance.get("completedAt"),
        "standard": assurance.get("standardName"),
        "comments": assurance.get("comments"),
    }


def _updated_date(document: Dict[str, Any]) -> Optional[str]:
    return document.get("updated") or document.get("created")


def _identifiers(
    urns: List[str], parse, field: str, data_id: str, issues: List[ValidationError]
) -> List[Dict[str, str]]:
    results = []
    for urn in urns:
        parsed = parse([urn])
        if not parsed:
            issues.append(
                ValidationError(
                    f"Unsupported identifier URN in {field}",
                    field=field,
                    error_code=ErrorCode.INVALID_FORMAT,
                    data_id=data_id,
                    value=urn,
                )
            )
            continue
        scheme, code = parsed[0]
        if not identifier_utils.validate(scheme, code):
            issues.append(
                ValidationError(
                    f"Invalid {scheme.value} identifier in {field}",
                    field=field,
                    error_code=ErrorCode.INVALID_FORMAT,
                    data_id=data_id,
                    value=urn,
                )
            )
            continue
        results.append({"scheme": scheme.value, "code": code})
    return results


def _breakdown_entries(extensions: Any) -> Optional[List[Any]]:
    data = traceability_data(extensions)
    if data is None:
        return None
    entries = data.get("breakdownPfs")
    return entries if isinstance(entries, list) else None


def map_child(entry: Dict[str, Any]) -> ChildFootprint:
    """
    Map one breakdown entry into a sparse child.

    Only wire fields actually present on the entry become present on the
    child, so an explicit null stays distinct from an omitted field.
    """
    if not isinstance(entry, dict):
        raise ValidationError("Breakdown entry must be an object", field="breakdownPfs")
    record: Dict[str, Any] = {}
    for wire, local in CHILD_DOCUMENT_FIELDS.items():
        if wire in entry:
            record[local] = entry[wire]
    if "updated" in entry or "created" in entry:
        record["updatedDate"] = _updated_date(entry)
    if "productFootprintId" in entry:
        record["productFootprintId"] = entry["productFootprintId"]

    pcf = entry.get("pcf")
    if pcf is not None:
        try:
            section = PartialCarbonFootprintSection.model_validate(pcf)
        except PydanticValidationError as e:
            raise ValidationError(
                "Breakdown entry has a malformed pcf section",
                field="breakdownPfs",
                cause=e,
                data_id=entry.get("id"),
            )
        for wire, local in CHILD_PCF_FIELDS.items():
            if wire in pcf:
                record[local] = pcf[wire]
        if "dqi" in pcf:
            record["dataQualityIndicator"] = _map_dqi(section.dqi)
        if "assurance" in pcf:
            record["assurance"] = _map_assurance(section.assurance)

    children = _breakdown_entries(entry.get("extensions"))
    if children is not None:
        record["breakdown"] = [map_child(child) for child in children]

    try:
        return ChildFootprint.model_validate(record)
    except PydanticValidationError as e:
        raise ValidationError(
            "Breakdown entry does not match the footprint schema",
            field="breakdownPfs",
            cause=e,
            data_id=entry.get("id"),
        )


def map_product_footprint(
    document: Any, data_source_id: Optional[str] = None
) -> Tuple[Footprint, List[ValidationError]]:
    """
    Map a partner footprint document.

    Args:
        document: Decoded partner document
        data_source_id: Data source the document came from

    Returns:
        Tuple of (footprint, per-field issues that did not prevent mapping)

    Raises:
        ValidationError: If required fields are missing or malformed
    """
    data_id = document.get("id") if isinstance(document, dict) else None
    try:
        checked = ProductFootprintDocument.model_validate(document)
    except PydanticValidationError as e:
        raise ValidationError(
            "Footprint document is missing required fields or has malformed values",
            error_code=ErrorCode.MISSING_REQUIRED,
            cause=e,
            data_id=data_id,
            data_source_id=data_source_id,
        )

    issues: List[ValidationError] = []
    pcf = document["pcf"]

    record: Dict[str, Any] = {"dataSourceId": data_source_id}
    for wire, local in DOCUMENT_FIELDS.items():
        if wire in document:
            record[local] = document[wire]
    record["updatedDate"] = _updated_date(document)

    unit = DECLARED_UNITS.get(checked.pcf.declared_unit)
    if unit is None:
        raise ValidationError(
            f"Unknown declared unit {checked.pcf.declared_unit}",
            field="pcf.declaredUnit",
            error_code=ErrorCode.INVALID_FORMAT,
            data_id=data_id,
        )
    record["amountUnit"] = unit

    for wire, local in PCF_FIELDS.items():
        if pcf.get(wire) is not None:
            record[local] = pcf[wire]

    section = checked.pcf
    gwp_reports = section.ipcc_characterization_factors_sources or []
    if not gwp_reports and section.characterization_factors:
        gwp_reports = [section.characterization_factors]
    record["gwpReports"] = list(gwp_reports)

    standards = []
    for name in section.cross_sectoral_standards_used or []:
        if name in ACCOUNTING_STANDARDS:
            standards.append(ACCOUNTING_STANDARDS[name])
        else:
            issues.append(
                ValidationError(
                    f"Unknown accounting standard {name}",
                    field="pcf.crossSectoralStandardsUsed",
                    data_id=data_id,
                )
            )
    record["accountingStandards"] = standards

    rules = section.product_or_sector_specific_rules
    if rules:
        record["carbonAccountingRules"] = [
            {
                "operator": rule.operator,
                "ruleNames": list(rule.rule_names or []),
                "operatorName": rule.other_operator_name,
            }
            for rule in rules
        ]

    sources = section.secondary_emission_factor_sources
    if sources:
        record["inventoryDatabases"] = [
            {"emissionFactorCategoryName": source.name, "version": source.version}
            for source in sources
        ]

    record["dataQualityIndicator"] = _map_dqi(section.dqi)
    record["assurance"] = _map_assurance(section.assurance)

    record["companyIds"] = _identifiers(
        checked.company_ids, identifier_utils.parse_company_urns, "companyIds", data_id, issues
    )
    record["productIds"] = _identifiers(
        checked.product_ids, identifier_utils.parse_product_urns, "productIds", data_id, issues
    )

    children = _breakdown_entries(checked.extensions)
    record["breakdown"] = [map_child(child) for child in children or []]

    try:
        footprint = Footprint.model_validate(record)
    except PydanticValidationError as e:
        raise ValidationError(
            "Footprint document does not match the footprint schema",
            error_code=ErrorCode.INVALID_FORMAT,
            cause=e,
            data_id=data_id,
            data_source_id=data_source_id,
        )

    if issues:
        get_logger().debug(
            "Footprint mapped with issues",
            extra={"data_id": data_id, "issue_count": len(issues)},
        )
    return footprint, issues

