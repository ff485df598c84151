"""
Wire schemas of the partner action protocol.

Only the parts the exchange core depends on are declared; everything else
on a partner document passes through untouched (extra="allow") and is
handled by the footprint mapper.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..constants import Protocol


class AuthenticateResponse(BaseModel):
    """Body of a successful Authenticate call."""

    model_config = ConfigDict(extra="allow", hide_input_in_errors=True)

    access_token: str = Field(..., min_length=1)
    token_type: Optional[str] = "Bearer"
    expires_in: Optional[int] = Field(None, ge=0)

    @field_validator("expires_in", mode="before")
    @classmethod
    def coerce_expires_in(cls, v):
        # Some partners send the lifetime as a decimal or a string
        if isinstance(v, Decimal):
            return int(v)
        return v


class ProductOrSectorRule(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    operator: Optional[str] = None
    rule_names: Optional[List[str]] = Field(None, alias="ruleNames")
    other_operator_name: Optional[str] = Field(None, alias="otherOperatorName")


class EmissionFactorSource(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    version: Optional[str] = None


class PartialCarbonFootprintSection(BaseModel):
    """
    Shapes of the nested `pcf` values the mapper reads.

    Every field is optional so the same check applies to sparse breakdown
    entries; a value of the wrong shape fails validation instead of
    reaching the mapper.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    dqi: Optional[Dict[str, Any]] = None
    assurance: Optional[Dict[str, Any]] = None
    product_or_sector_specific_rules: Optional[List[ProductOrSectorRule]] = Field(
        None, alias="productOrSectorSpecificRules"
    )
    secondary_emission_factor_sources: Optional[List[EmissionFactorSource]] = Field(
        None, alias="secondaryEmissionFactorSources"
    )
    cross_sectoral_standards_used: Optional[List[str]] = Field(
        None, alias="crossSectoralStandardsUsed"
    )
    ipcc_characterization_factors_sources: Optional[List[str]] = Field(
        None, alias="ipccCharacterizationFactorsSources"
    )
    characterization_factors: Optional[str] = Field(None, alias="characterizationFactors")


class CarbonFootprintSection(PartialCarbonFootprintSection):
    """The required core of the `pcf` object."""

    declared_unit: str = Field(..., alias="declaredUnit")
    unitary_product_amount: Union[str, Decimal, int] = Field(..., alias="unitaryProductAmount")
    p_cf_excluding_biogenic: Union[str, Decimal, int] = Field(..., alias="pCfExcludingBiogenic")


class ProductFootprintDocument(BaseModel):
    """Structural check of one partner footprint before it is mapped."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(..., min_length=1)
    spec_version: Optional[str] = Field(None, alias="specVersion")
    version: int = Field(..., ge=0)
    status: str
    pcf: CarbonFootprintSection
    company_ids: List[str] = Field(default_factory=list, alias="companyIds")
    product_ids: List[str] = Field(default_factory=list, alias="productIds")
    extensions: Optional[List[Dict[str, Any]]] = None


def traceability_data(extensions: Any) -> Optional[Dict[str, Any]]:
    """Data of the traceability extension carrying breakdown children, if present."""
    if not isinstance(extensions, list):
        return None
    for extension in extensions:
        if isinstance(extension, dict) and extension.get("dataSchema") == Protocol.TRACEABILITY_EXTENSION_SCHEMA:
            data = extension.get("data")
            return data if isinstance(data, dict) else {}
    return None
