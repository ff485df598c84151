"""
Pydantic schemas for product carbon footprints.

Quantities are held as Decimal and serialized as decimal strings; binary
floats are rejected at the boundary. A footprint may carry an ordered
breakdown of child footprints, which are sparse records: a child field that
was never supplied is distinct from one explicitly set to null.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Set, Tuple

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..constants import FootprintStatus, IdentifierScheme
from ..utils import identifier_utils


def _to_decimal(value: Any) -> Any:
    if value is None:
        return value
    if isinstance(value, (bool, float)):
        raise ValueError("Quantities must be decimal strings, not binary floats")
    if isinstance(value, (str, int, Decimal)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Invalid decimal value: {value!r}")
        if not result.is_finite():
            raise ValueError(f"Decimal value must be finite: {value!r}")
        return result
    raise ValueError(f"Unsupported quantity type: {type(value).__name__}")


DecimalString = Annotated[
    Decimal,
    BeforeValidator(_to_decimal),
    PlainSerializer(lambda v: str(v), return_type=str),
]


class AmountUnit(str, Enum):
    """Declared unit of a footprint amount."""

    KILOGRAM = "kg"
    LITER = "l"
    CUBIC_METER = "m3"
    SQUARE_METER = "m2"
    KILOWATT_HOUR = "kWh"
    MEGAJOULE = "MJ"
    TON_KILOMETER = "t-km"


class AccountingStandard(str, Enum):
    """Cross-sectoral accounting standards."""

    GHG_PROTOCOL = "GHGProtocol"
    ISO14067 = "ISO14067"
    ISO14044 = "ISO14044"


class FieldState(str, Enum):
    """Presence of a field on a sparse record."""

    ABSENT = "absent"
    NULL = "null"
    VALUE = "value"


class FootprintModel(BaseModel):
    """Base for footprint schemas using the camelCase record field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )


class Identifier(FootprintModel):
    """Company or product identifier; the code must satisfy its scheme."""

    scheme: IdentifierScheme
    code: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_code(self):
        if not identifier_utils.validate(self.scheme, self.code):
            raise ValueError(f"Invalid {self.scheme.value} identifier: {self.code}")
        return self


class CarbonAccountingRule(FootprintModel):
    operator: str
    rule_names: List[str] = Field(default_factory=list)
    operator_name: Optional[str] = None


class InventoryDatabase(FootprintModel):
    emission_factor_category_id: Optional[int] = None
    emission_factor_category_name: str
    version: Optional[str] = None


class DataQualityIndicator(FootprintModel):
    coverage: Optional[DecimalString] = None
    ter: Optional[DecimalString] = None
    tir: Optional[DecimalString] = None
    ger: Optional[DecimalString] = None
    completeness: Optional[DecimalString] = None
    reliability: Optional[DecimalString] = None


class Assurance(FootprintModel):
    coverage: Optional[str] = None
    level: Optional[str] = None
    boundary: Optional[str] = None
    provider_name: Optional[str] = None
    updated_date: Optional[datetime] = None
    standard: Optional[str] = None
    comments: Optional[str] = None


def _check_window(start: Optional[datetime], end: Optional[datetime], label: str) -> None:
    if start is not None and end is not None and start > end:
        raise ValueError(f"{label} starts after it ends")


class ChildFootprint(FootprintModel):
    """
    Sparse breakdown contribution.

    Only the fields a partner asserted are set. Use field_state() to tell an
    absent field from an explicit null; to_record() preserves the distinction.
    """

    product_footprint_id: Optional[int] = None
    data_id: Optional[str] = None
    updated_date: Optional[datetime] = None
    available_start_date: Optional[datetime] = None
    available_end_date: Optional[datetime] = None
    carbon_footprint: Optional[DecimalString] = None
    carbon_footprint_including_biogenic: Optional[DecimalString] = None
    measurement_start_date: Optional[datetime] = None
    measurement_end_date: Optional[datetime] = None
    primary_data_share: Optional[DecimalString] = None
    data_quality_indicator: Optional[DataQualityIndicator] = None
    assurance: Optional[Assurance] = None
    breakdown: Optional[List["ChildFootprint"]] = None

    @model_validator(mode="after")
    def validate_windows(self):
        _check_window(self.available_start_date, self.available_end_date, "Validity period")
        _check_window(self.measurement_start_date, self.measurement_end_date, "Reference period")
        return self

    def field_state(self, name: str) -> FieldState:
        if name not in type(self).model_fields:
            raise KeyError(name)
        if name not in self.model_fields_set:
            return FieldState.ABSENT
        return FieldState.NULL if getattr(self, name) is None else FieldState.VALUE

    def get(self, name: str) -> Tuple[FieldState, Any]:
        """Field state together with its value."""
        return self.field_state(name), getattr(self, name)

    def present_fields(self) -> Set[str]:
        return set(self.model_fields_set)

    def unset(self, name: str) -> None:
        """Return a field to the absent state."""
        if name not in type(self).model_fields:
            raise KeyError(name)
        self.model_fields_set.discard(name)
        object.__setattr__(self, name, None)

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class Footprint(FootprintModel):
    """
    Full product footprint.

    External footprints are identified by (data_id, version); the local key
    product_footprint_id is assigned by the store on first save.
    """

    product_footprint_id: Optional[int] = None
    data_source_id: Optional[str] = None

    data_id: str = Field(..., min_length=1)
    version: int = Field(..., ge=0)
    updated_date: Optional[datetime] = None
    status: FootprintStatus = FootprintStatus.ACTIVE
    status_comment: Optional[str] = None
    available_start_date: Optional[datetime] = None
    available_end_date: Optional[datetime] = None

    company_name: Optional[str] = None
    company_ids: List[Identifier] = Field(default_factory=list)
    product_name_company: Optional[str] = None
    product_description: Optional[str] = None
    product_category_cpc: Optional[str] = None
    product_ids: List[Identifier] = Field(default_factory=list)
    comment: Optional[str] = None

    amount_unit: AmountUnit
    amount: DecimalString
    carbon_footprint: DecimalString
    carbon_footprint_including_biogenic: Optional[DecimalString] = None
    fossil_emissions: Optional[DecimalString] = None
    fossil_carbon_content: Optional[DecimalString] = None
    biogenic_carbon_content: Optional[DecimalString] = None
    d_luc_emissions: Optional[DecimalString] = None
    land_management_emissions: Optional[DecimalString] = None
    other_biogenic_emissions: Optional[DecimalString] = None
    i_luc_ghg_emissions: Optional[DecimalString] = None
    biogenic_removal: Optional[DecimalString] = None
    aircraft_emissions: Optional[DecimalString] = None
    packaging_ghg_emissions: Optional[DecimalString] = None

    gwp_reports: List[str] = Field(default_factory=list)
    accounting_standards: List[AccountingStandard] = Field(default_factory=list)
    carbon_accounting_rules: Optional[List[CarbonAccountingRule]] = None
    biogenic_accounting_standard: Optional[str] = None
    boundary_processes: Optional[str] = None
    measurement_start_date: Optional[datetime] = None
    measurement_end_date: Optional[datetime] = None
    region: Optional[str] = None
    country: Optional[str] = None
    subdivision: Optional[str] = None
    inventory_databases: Optional[List[InventoryDatabase]] = None
    exempted_emissions_rate: Optional[DecimalString] = None
    exempted_emissions_reason: Optional[str] = None
    allocation_rules: Optional[str] = None
    uncertainty_assessment: Optional[str] = None
    primary_data_share: Optional[DecimalString] = None
    data_quality_indicator: Optional[DataQualityIndicator] = None
    assurance: Optional[Assurance] = None

    breakdown: List[ChildFootprint] = Field(default_factory=list)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("Declared amount must be positive")
        return v

    @model_validator(mode="after")
    def validate_windows(self):
        _check_window(self.available_start_date, self.available_end_date, "Validity period")
        _check_window(self.measurement_start_date, self.measurement_end_date, "Reference period")
        return self

    @property
    def is_local(self) -> bool:
        return self.product_footprint_id is not None

    def to_record(self) -> Dict[str, Any]:
        """Record shape with decimal strings and sparse children."""
        record = self.model_dump(mode="json", by_alias=True, exclude={"breakdown"})
        record["breakdown"] = [child.to_record() for child in self.breakdown]
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Footprint":
        return cls.model_validate(record)


ChildFootprint.model_rebuild()
