"""
Dual-Native conformance and validation result schemas
"""

from typing import Any, Dict, List, Optional

import pydantic


class ConformanceResult(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    level: pydantic.conint(ge=0, le=4)
    passed_requirements: List[str] = pydantic.Field(alias="passedRequirements")
    failed_requirements: List[str] = pydantic.Field(alias="failedRequirements")
    details: Dict[str, Any] = {}


class ConformanceReport(ConformanceResult):
    """
    Conformance result of this server extended by its feature checks
    """

    profile: str
    checks: Dict[str, bool] = {}


class EquivalenceResult(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    is_valid: bool = pydantic.Field(alias="isValid")
    fields_checked: List[str] = pydantic.Field(alias="fieldsChecked")
    differences: List[str]
    details: Dict[str, Any] = {}


class ValidationTest(pydantic.BaseModel):
    name: str
    status: str
    result: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None


class ValidationSummary(pydantic.BaseModel):
    passed: pydantic.NonNegativeInt = 0
    failed: pydantic.NonNegativeInt = 0
    skipped: pydantic.NonNegativeInt = 0


class ValidationReport(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(populate_by_name=True)

    overall_status: str = pydantic.Field(alias="overallStatus")
    timestamp: str
    tests: List[ValidationTest]
    summary: ValidationSummary
