from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


AttributeValue = Union[bool, int, float, str, List[Union[str, int, float]]]


class DataKind(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ENUM = "enum"
    SOCKET = "socket"
    MEMORY_TYPE = "memory_type"
    POWER_CONNECTOR = "power_connector"

    @property
    def is_enumerated(self) -> bool:
        return self in ENUMERATED_KINDS


ENUMERATED_KINDS = frozenset(
    {DataKind.ENUM, DataKind.SOCKET, DataKind.MEMORY_TYPE, DataKind.POWER_CONNECTOR}
)


class RuleType(str, Enum):
    EXACT_MATCH = "exact_match"
    COMPATIBLE_VALUES = "compatible_values"
    RANGE_CHECK = "range_check"
    CUSTOM = "custom"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class BuildStatus(str, Enum):
    VALID = "valid"
    WARNING = "warning"
    ERROR = "error"


class Category(BaseModel):
    id: str
    name: str
    slug: str
    is_subcategory: bool = False
    parent_id: Optional[str] = None
    max_components: int = Field(default=1, ge=1)


class AttributeTemplate(BaseModel):
    id: str
    category_id: str
    name: str
    display_name: str = ""
    data_kind: DataKind = DataKind.TEXT
    enum_values: Optional[List[str]] = None
    is_compatibility_key: bool = False
    is_required: bool = False

    @property
    def label(self) -> str:
        return self.display_name or self.name


class Part(BaseModel):
    id: str
    category_id: str
    name: str = ""
    attributes: Dict[str, AttributeValue] = Field(default_factory=dict)
    price: float = Field(default=0, ge=0)
    in_stock: bool = True

    @property
    def label(self) -> str:
        return self.name or self.id


class CompatibilityRule(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    primary_category_id: str
    primary_attribute_id: str
    secondary_category_id: str
    secondary_attribute_id: str
    rule_type: RuleType
    compatible_values: Optional[List[str]] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    custom_check_ref: Optional[str] = None


class Finding(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: Severity
    primary_label: str
    secondary_label: str
    message: str
    details: Optional[str] = None
    rule_id: Optional[str] = None
    part_ids: List[str] = Field(default_factory=list)


class ValidationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool = True
    status: BuildStatus = BuildStatus.VALID
    issues: List[Finding] = Field(default_factory=list)
    warnings: List[Finding] = Field(default_factory=list)
    total_power_draw_watts: float = 0
    recommended_psu_watts: int = 0
    total_price: float = 0
    power_breakdown: Dict[str, float] = Field(default_factory=dict)


RawSelection = Dict[str, Union[str, List[str], None]]


class SelectionRequest(BaseModel):
    selection: RawSelection = Field(default_factory=dict)


class CategoryFindings(BaseModel):
    slug: str
    name: str
    issues: List[Finding] = Field(default_factory=list)
    warnings: List[Finding] = Field(default_factory=list)


class ValidateResponse(BaseModel):
    result: ValidationResult
    breakdown: List[CategoryFindings] = Field(default_factory=list)


class ScheduledResponse(BaseModel):
    session_id: str
    generation: int
    status: Literal["scheduled"] = "scheduled"


class ValidationRunResponse(BaseModel):
    session_id: str
    generation: int
    result: ValidationResult
    breakdown: List[CategoryFindings] = Field(default_factory=list)
