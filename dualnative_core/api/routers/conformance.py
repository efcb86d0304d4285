"""
Dual-Native router module for conformance and validation reports
"""

from typing import Any, Dict

from fastapi import Depends

from ._router import router
from ..dependency import LocalRequestData
from .. import helpers, versioning
from ... import schemas
from ...core import conformance


@router.get("/conformance", tags=["Conformance"], response_model=schemas.ConformanceReport)
@versioning.versions(minimal=2)
async def get_conformance(local: LocalRequestData = Depends(LocalRequestData)):
    """
    Return the conformance level of this server together with its feature checks
    """

    result = local.system.validate_conformance()
    report = schemas.ConformanceReport(
        **result.model_dump(),
        profile=local.system.config.profile,
        checks=conformance.feature_checks()
    )
    return helpers.make_json_response(report)


@router.post("/conformance", tags=["Conformance"], response_model=schemas.ConformanceResult)
@versioning.versions(minimal=2)
async def check_conformance(flags: Dict[str, Any], local: LocalRequestData = Depends(LocalRequestData)):
    """
    Evaluate the capability flags of any dual-native implementation to its conformance level
    """

    return helpers.make_json_response(local.system.validate_conformance(flags))


@router.post("/validation", tags=["Conformance"], response_model=schemas.ValidationReport)
@versioning.versions(minimal=2)
async def run_validation(data: Dict[str, Any], local: LocalRequestData = Depends(LocalRequestData)):
    """
    Run the semantic equivalence and conformance tests on the supplied data

    Known keys are `hr_content`, `mr_content`, `equivalence_scope`,
    `system_info` (the capability flags) and `required_level`.
    Tests lacking their input are skipped.
    """

    return helpers.make_json_response(local.system.comprehensive_validation(data))
